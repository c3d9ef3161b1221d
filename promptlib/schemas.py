"""Pydantic models for prompt identifiers and metadata."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

UNTITLED = "Untitled"


class BuiltInKind(str, Enum):
    EDIT_WORKFLOW = "EditWorkflow"
    COMMIT_MESSAGE = "CommitMessage"


# ── Identifiers ──

class PromptId(BaseModel):
    """Tagged identifier: a random user UUID or one of the fixed built-in kinds.

    Serialized as ``{"kind": "User", "uuid": "..."}`` or ``{"kind": "CommitMessage"}``;
    that JSON text is also the row key in the current-generation tables.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["User", "EditWorkflow", "CommitMessage"]
    uuid: Optional[UUID] = None

    @model_validator(mode="after")
    def _check_variant(self) -> PromptId:
        if self.kind == "User" and self.uuid is None:
            raise ValueError("user prompt ids require a uuid")
        if self.kind != "User" and self.uuid is not None:
            raise ValueError(f"built-in prompt id {self.kind} takes no uuid")
        return self

    @classmethod
    def new(cls) -> PromptId:
        return cls(kind="User", uuid=uuid4())

    @classmethod
    def user(cls, value: UUID | str) -> PromptId:
        return cls(kind="User", uuid=UUID(str(value)))

    @classmethod
    def built_in(cls, kind: BuiltInKind) -> PromptId:
        return cls(kind=BuiltInKind(kind).value)

    @classmethod
    def parse(cls, text: str) -> PromptId:
        """Parse a key, a bare UUID, or a built-in kind name."""
        text = text.strip()
        if text.startswith("{"):
            return cls.model_validate_json(text)
        try:
            return cls.built_in(BuiltInKind(text))
        except ValueError:
            return cls.user(text)

    def is_built_in(self) -> bool:
        return self.kind != "User"

    @property
    def built_in_kind(self) -> BuiltInKind | None:
        return None if self.kind == "User" else BuiltInKind(self.kind)

    def to_key(self) -> str:
        return self.model_dump_json(exclude_none=True)

    def __str__(self) -> str:
        return str(self.uuid) if self.uuid is not None else self.kind


# ── Metadata ──

class PromptMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: PromptId
    title: Optional[str] = None
    default: bool = False
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("saved_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @property
    def display_title(self) -> str:
        return self.title or UNTITLED


class PromptMetadataV1(BaseModel):
    """Legacy metadata record, keyed by a bare UUID before ids were tagged."""

    id: UUID
    title: Optional[str] = None
    default: bool = False
    saved_at: datetime

    def upgrade(self) -> PromptMetadata:
        return PromptMetadata(
            id=PromptId.user(self.id),
            title=self.title,
            default=self.default,
            saved_at=self.saved_at,
        )


# ── Built-ins ──

# Purged from both table generations on every open.
DEPRECATED_BUILT_INS = (BuiltInKind.EDIT_WORKFLOW,)

# Seeded on open when absent: kind -> (title, body)
BUILT_IN_PROMPTS: dict[BuiltInKind, tuple[str, str]] = {
    BuiltInKind.COMMIT_MESSAGE: (
        "Commit message",
        "Write a concise git commit message for the staged changes.\n"
        "Use a short imperative subject line under 72 characters, a blank line,\n"
        "then a body explaining what changed and why.\n",
    ),
}
