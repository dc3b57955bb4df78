"""Configuration module for the link maintainer."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from notelinks.exceptions import ConfigurationError

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD
# (e.g. when launched from a launchd timer).
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config
_USER_ENV = Path.home() / ".notelinks" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

DEFAULT_BEAR_DATABASE = (
    Path.home()
    / "Library"
    / "Group Containers"
    / "9K33E3U3T4.net.shinyfrog.bear"
    / "Application Data"
    / "database.sqlite"
)

STORE_KINDS = ("bear", "folder")


class LinkMaintainerConfig(BaseModel):
    """Configuration for the link maintainer."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTELINKS_BASE_DIR", "."))
    )
    # Index store (titles, links, meta)
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NOTELINKS_DATABASE_PATH", "data/db/notelinks.db")
        )
    )
    # Which note store adapter to use: "bear" or "folder"
    store: str = Field(default_factory=lambda: os.getenv("NOTELINKS_STORE", "bear"))
    bear_database_path: Path = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTELINKS_BEAR_DATABASE"))
            if os.getenv("NOTELINKS_BEAR_DATABASE")
            else DEFAULT_BEAR_DATABASE
        )
    )
    # xcall helper binary, needed to learn the id of a freshly created Bear note
    xcall_path: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTELINKS_XCALL_PATH"))
            if os.getenv("NOTELINKS_XCALL_PATH")
            else None
        )
    )
    folder_path: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTELINKS_FOLDER_PATH", "data/notes"))
    )
    # SQLite's default SQLITE_MAX_VARIABLE_NUMBER
    query_parameter_limit: int = Field(
        default_factory=lambda: int(
            os.getenv("NOTELINKS_QUERY_PARAMETER_LIMIT", "999")
        )
    )
    report_title: str = Field(
        default_factory=lambda: os.getenv(
            "NOTELINKS_REPORT_TITLE", "\U0001f6a8 Broken Note Links!"
        )
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("NOTELINKS_LOG_LEVEL", "INFO")
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTELINKS_LOG_DIR"))
            if os.getenv("NOTELINKS_LOG_DIR")
            else None
        )
    )

    @model_validator(mode="after")
    def _validate(self) -> "LinkMaintainerConfig":
        """Reject settings the engine cannot work with."""
        # Triples are the widest tuples bound by the batch executor
        if self.query_parameter_limit < 3:
            raise ValueError("query_parameter_limit must be >= 3")
        if self.store not in STORE_KINDS:
            raise ValueError(
                f"store must be one of {', '.join(STORE_KINDS)}, got '{self.store}'"
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        path = path.expanduser()
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for the SQLite index store."""
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


def load_config() -> LinkMaintainerConfig:
    """Build the settings from the environment.

    Raises:
        ConfigurationError: If a NOTELINKS_* value is malformed or out of range.
    """
    try:
        return LinkMaintainerConfig()
    except ValueError as e:
        raise ConfigurationError("Invalid notelinks settings", original_error=e) from e


# Create a global config instance
config = load_config()
