"""Exception hierarchy for the prompt library.

Every failure raised by the store, the save pipeline or search derives from
:class:`PromptLibraryError`, so callers can catch one base class while still
telling the categories apart.
"""

from __future__ import annotations


class PromptLibraryError(Exception):
    """Base exception for prompt library failures."""


class PromptNotFoundError(PromptLibraryError):
    """Raised when a prompt's metadata or body is absent from the store."""


class PromptPermissionError(PromptLibraryError):
    """Raised when a built-in prompt would be created, edited or deleted."""


class PromptStorageError(PromptLibraryError):
    """Raised when the underlying database fails (I/O, locking, corruption)."""


class StoreOpenError(PromptStorageError):
    """Raised to every awaiter of a store handle whose open attempt failed."""


class SearchCancelledError(PromptLibraryError):
    """Raised when a search was superseded by a newer one from the same session."""
