"""Walkthrough Studio: authoring and review pipeline for pre-trip inspection walkthroughs."""

__version__ = "0.1.0"
