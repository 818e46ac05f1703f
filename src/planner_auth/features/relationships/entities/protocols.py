"""Protocol interfaces for the relationship store."""

from abc import abstractmethod
from typing import Dict, List, Optional, Protocol, Sequence, Set, runtime_checkable

from .relationship import ObjectRef, RelationshipTuple


@runtime_checkable
class RelationshipStoreProtocol(Protocol):
    """Stores subject-relation-resource tuples and answers permission queries.

    Checks are fully consistent: every check observes the latest committed
    write. Connectivity failures and timeouts raise
    PermissionServiceUnavailableError; callers must treat that as a denial.
    """

    @abstractmethod
    async def check_permission(
        self,
        subject_id: str,
        permission: str,
        resource_type: str,
        resource_id: str,
    ) -> bool:
        """Check a permission directly and through parent links."""
        ...

    @abstractmethod
    async def check_permissions(
        self,
        subject_id: str,
        permission: str,
        resources: Sequence[ObjectRef],
    ) -> Dict[str, bool]:
        """Bulk check, keyed by resource id."""
        ...

    @abstractmethod
    async def write_relationship(
        self,
        resource_type: str,
        resource_id: str,
        relation: str,
        subject_type: str,
        subject_id: str,
    ) -> None:
        """Idempotent upsert of one tuple."""
        ...

    @abstractmethod
    async def delete_relationship(
        self,
        resource_type: str,
        resource_id: str,
        relation: str,
        subject_type: str,
        subject_id: str,
    ) -> None:
        """Idempotent removal of one tuple."""
        ...

    @abstractmethod
    async def read_relationships(
        self,
        resource_type: str,
        resource_id: str,
        relation: Optional[str] = None,
    ) -> List[RelationshipTuple]:
        """Read the tuples written on a resource."""
        ...

    @abstractmethod
    async def lookup_resources(
        self,
        subject_id: str,
        permission: str,
        resource_type: str,
    ) -> Set[str]:
        """Ids of every resource of a type the subject holds a permission on."""
        ...

    @abstractmethod
    async def delete_all_relationships_for_resource(self, resource_type: str, resource_id: str) -> int:
        """Remove every tuple written on a resource."""
        ...

    @abstractmethod
    async def make_organization_admin(self, user_id: str, organization_id: str) -> None:
        """Grant the organization admin relation."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check store connectivity."""
        ...
