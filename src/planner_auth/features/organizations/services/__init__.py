from .organization_service import OrganizationService, make_slug

__all__ = ["OrganizationService", "make_slug"]
