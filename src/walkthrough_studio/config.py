"""Configuration for Walkthrough Studio."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


class Config:
    """Global configuration."""

    # Storage
    DB_PATH = Path(os.getenv("WALKTHROUGH_DB_PATH", "data/walkthroughs.db"))

    # Logging
    LOG_LEVEL = os.getenv("WALKTHROUGH_LOG_LEVEL", "INFO")

    # Imports
    MAX_IMPORT_BYTES = _int_env("WALKTHROUGH_MAX_IMPORT_BYTES", 5 * 1024 * 1024)

    # Web
    WEB_HOST = os.getenv("WALKTHROUGH_WEB_HOST", "127.0.0.1")
    WEB_PORT = _int_env("WALKTHROUGH_WEB_PORT", 5000)

    # Paths
    PACKAGE_DIR = Path(__file__).parent
    DEFAULTS_DIR = PACKAGE_DIR / "data" / "defaults"
    TEMPLATES_DIR = PACKAGE_DIR / "templates"
    EXPORT_DIR = Path(os.getenv("WALKTHROUGH_EXPORT_DIR", "output"))

    @classmethod
    def ensure_dirs(cls):
        """Create the database and export directories."""
        cls.DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        cls.EXPORT_DIR.mkdir(parents=True, exist_ok=True)
        return cls.DB_PATH.parent
