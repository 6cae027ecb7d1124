"""Services package for backend business logic."""

from . import book_service
from . import insight_service

__all__ = [
    "book_service",
    "insight_service",
]
