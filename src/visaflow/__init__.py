"""Case status workflow for immigration case management."""

__version__ = "0.1.0"
