"""Utility helpers for planner-auth."""

from .uuid import generate_uuid_v7, generate_token
from .datetime import utc_now

__all__ = ["generate_uuid_v7", "generate_token", "utc_now"]
