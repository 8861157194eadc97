"""File handling utilities for Walkthrough Studio."""

from pathlib import Path
from typing import Any
import yaml


class FileHandler:
    """Read import sources and write exports."""

    @staticmethod
    def load_text(filepath: Path) -> str:
        """Load text file content, dropping a UTF-8 byte order mark."""
        return filepath.read_text(encoding='utf-8-sig')

    @staticmethod
    def load_bytes(filepath: Path) -> bytes:
        return filepath.read_bytes()

    @staticmethod
    def save_text(filepath: Path, content: str) -> Path:
        """Save text content to file, creating parent directories."""
        filepath.parent.mkdir(parents=True, exist_ok=True)
        filepath.write_text(content, encoding='utf-8')
        return filepath

    @staticmethod
    def load_yaml(filepath: Path) -> Any:
        """Load a YAML walkthrough; the defaults are shipped this way."""
        return yaml.safe_load(filepath.read_text(encoding='utf-8-sig'))
