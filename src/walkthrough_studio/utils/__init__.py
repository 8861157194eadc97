"""Utility modules."""

from .file_handler import FileHandler
from .logging_setup import configure_logging

__all__ = ["FileHandler", "configure_logging"]
