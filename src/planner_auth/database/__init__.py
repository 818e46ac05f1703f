"""Database access for the durable stores."""

from .connection import DatabaseManager

__all__ = ["DatabaseManager"]
