"""Configuration loaded from environment variables with sensible defaults."""

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class PromptLibConfig:
    # Storage
    data_dir: Path = field(default_factory=lambda: Path(os.getenv("PROMPTLIB_DATA_DIR", str(Path.home() / ".promptlib"))))
    db_filename: str = field(default_factory=lambda: os.getenv("PROMPTLIB_DB_FILENAME", "prompts.db"))

    # Tuning
    save_throttle_ms: int = field(default_factory=lambda: int(os.getenv("PROMPTLIB_SAVE_THROTTLE_MS", "500")))
    search_max_results: int = field(default_factory=lambda: int(os.getenv("PROMPTLIB_SEARCH_MAX_RESULTS", "100")))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("PROMPTLIB_LOG_LEVEL", "INFO"))

    @property
    def store_dir(self) -> Path:
        """Directory holding the prompt database (created by the store on open)."""
        return self.data_dir / "prompts-library-db.0"

    @property
    def save_throttle(self) -> float:
        return self.save_throttle_ms / 1000.0


config = PromptLibConfig()
