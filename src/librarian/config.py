"""Configuration management for librarian.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

DEFAULT_DB_PATH = Path.home() / ".librarian" / "library.db"


@dataclass
class Config:
    """Application configuration."""

    # Database
    db_path: Path

    # Logging
    log_level: str

    # Listing
    page_limit: int
    max_page_limit: int

    # HTTP server
    host: str
    port: int

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get("LIBRARIAN_DB_PATH", str(DEFAULT_DB_PATH))
        db_path = Path(db_path_str) if db_path_str == ":memory:" else Path(db_path_str).expanduser()

        return cls(
            db_path=db_path,
            log_level=os.environ.get("LIBRARIAN_LOG_LEVEL", "INFO").upper(),
            page_limit=int(os.environ.get("LIBRARIAN_PAGE_LIMIT", "10")),
            max_page_limit=int(os.environ.get("LIBRARIAN_MAX_PAGE_LIMIT", "100")),
            host=os.environ.get("LIBRARIAN_HOST", "127.0.0.1"),
            port=int(os.environ.get("LIBRARIAN_PORT", "5000")),
        )

    @property
    def is_memory(self) -> bool:
        """Check if the database lives in memory."""
        return str(self.db_path) == ":memory:"

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"Unknown log level: {self.log_level}")

        if self.page_limit < 1:
            errors.append("Page limit must be at least 1")
        if self.max_page_limit < self.page_limit:
            errors.append("Max page limit must not be below the default page limit")

        if not 0 < self.port < 65536:
            errors.append(f"Invalid port: {self.port}")

        # Check database directory is writable
        if not self.is_memory and not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        return errors


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
