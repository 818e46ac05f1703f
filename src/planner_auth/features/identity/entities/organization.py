"""Organization hierarchy: organization -> group -> role."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ....utils.datetime import utc_now


@dataclass
class Organization:
    id: str
    name: str
    slug: str
    created_by: Optional[str] = None
    color: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class Group:
    """Belongs to exactly one organization."""

    id: str
    organization_id: str
    name: str
    color: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class Role:
    """Belongs to exactly one group and carries a flat permission list.

    Entries are exact names (`tasks.create`), prefix wildcards (`tasks.*`)
    or the universal wildcard `*`. Priority orders roles for display and
    authority, higher first.
    """

    id: str
    group_id: str
    name: str
    permissions: List[str] = field(default_factory=list)
    priority: int = 0
    color: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
