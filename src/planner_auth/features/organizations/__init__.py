"""Organization, group and role management."""

from .services import OrganizationService, make_slug

__all__ = ["OrganizationService", "make_slug"]
