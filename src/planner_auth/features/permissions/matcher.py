"""
Role permission matching.

Roles carry flat permission lists. Three kinds of entries are supported:

- Universal wildcard: "*" grants every permission
- Exact: "tasks.create" grants exactly "tasks.create"
- Prefix wildcard: "tasks.*" grants "tasks.create", "tasks.comments.edit", ...
  but never "tasks" itself

The kinds are additive: an entry of one kind never revokes what another grants.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, FrozenSet, Iterable, List, Union

logger = logging.getLogger(__name__)

UNIVERSAL = "*"
WILDCARD_SUFFIX = ".*"


@dataclass(frozen=True)
class PermissionSet:
    """Parsed role permission list."""

    universal: bool = False
    exact: FrozenSet[str] = frozenset()
    prefixes: FrozenSet[str] = frozenset()

    @classmethod
    def parse(cls, raw: Union[None, str, Iterable[Any]]) -> "PermissionSet":
        """
        Parse a permission list.

        Args:
            raw: A list of strings, or the same list JSON-encoded

        Returns:
            PermissionSet; invalid entries are dropped with a warning
        """
        if raw is None:
            return cls()

        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError:
                logger.warning(f"Unparseable permission list: {raw!r}")
                return cls()
            if not isinstance(raw, list):
                logger.warning(f"Permission list must be a JSON array, got {type(raw).__name__}")
                return cls()

        universal = False
        exact = set()
        prefixes = set()

        for entry in raw:
            if not isinstance(entry, str) or not entry.strip():
                logger.warning(f"Ignoring invalid permission entry: {entry!r}")
                continue
            entry = entry.strip()

            if entry == UNIVERSAL:
                universal = True
            elif entry.endswith(WILDCARD_SUFFIX):
                prefix = entry[: -len(WILDCARD_SUFFIX)]
                if not prefix:
                    logger.warning(f"Ignoring invalid permission entry: {entry!r}")
                    continue
                prefixes.add(prefix)
            else:
                exact.add(entry)

        return cls(universal=universal, exact=frozenset(exact), prefixes=frozenset(prefixes))

    def allows(self, permission: str) -> bool:
        """Check whether the set grants a concrete permission."""
        if not permission:
            return False
        if self.universal:
            return True
        if permission in self.exact:
            return True
        return any(permission.startswith(prefix + ".") for prefix in self.prefixes)

    def __contains__(self, permission: str) -> bool:
        return self.allows(permission)

    def to_list(self) -> List[str]:
        entries = sorted(self.exact) + sorted(f"{p}{WILDCARD_SUFFIX}" for p in self.prefixes)
        return [UNIVERSAL] + entries if self.universal else entries


def has_permission(raw_permissions: Union[None, str, Iterable[Any]], permission: str,
                   is_admin: bool = False) -> bool:
    """Check a raw role permission list; platform admins hold everything."""
    if is_admin:
        return True
    return PermissionSet.parse(raw_permissions).allows(permission)


def validate_permissions(raw: Iterable[Any]) -> List[str]:
    """Return the permission list normalized, or raise ValueError on any bad entry."""
    normalized = []
    for entry in raw:
        if not isinstance(entry, str) or not entry.strip() or entry.strip() == WILDCARD_SUFFIX:
            raise ValueError(f"Invalid permission entry: {entry!r}")
        normalized.append(entry.strip())
    return normalized
