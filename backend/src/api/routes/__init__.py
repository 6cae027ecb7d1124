"""API routes package."""

from . import books, health, insights, progress_ws

__all__ = ["books", "health", "insights", "progress_ws"]
