"""Permission schema for the relationship graph.

Each resource type declares the relations that may be written on it, at most
one parent link, and its permissions. A permission is a union of terms:

- a relation name: subjects holding that relation directly
- another permission name on the same type
- an arrow `link->permission`: the permission evaluated on the parent resource

Parent links form the board -> project -> team -> organization chain along
which permissions are inherited.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Sequence, Tuple

from ....core.exceptions import ValidationError

ARROW = "->"


@dataclass(frozen=True)
class PermissionTerm:
    """One operand of a permission union."""

    name: str
    via: Optional[str] = None  # parent link relation for arrow terms

    @classmethod
    def parse(cls, expression: str) -> "PermissionTerm":
        expression = expression.strip()
        if ARROW in expression:
            link, _, target = expression.partition(ARROW)
            if not link.strip() or not target.strip():
                raise ValidationError(f"Malformed arrow term: {expression}")
            return cls(name=target.strip(), via=link.strip())
        if not expression:
            raise ValidationError("Empty permission term")
        return cls(name=expression)

    @property
    def is_arrow(self) -> bool:
        return self.via is not None

    def __str__(self) -> str:
        return f"{self.via}{ARROW}{self.name}" if self.via else self.name


@dataclass(frozen=True)
class ParentLink:
    """Relation pointing at the resource this one inherits from."""

    relation: str
    resource_type: str


@dataclass(frozen=True)
class ResourceDefinition:
    """Relations, parent link and permissions of one resource type."""

    name: str
    relations: FrozenSet[str]
    permissions: Mapping[str, Tuple[PermissionTerm, ...]] = field(default_factory=dict)
    parent: Optional[ParentLink] = None

    @classmethod
    def build(
        cls,
        name: str,
        relations: Iterable[str],
        permissions: Mapping[str, Sequence[str]],
        parent: Optional[ParentLink] = None,
    ) -> "ResourceDefinition":
        relation_set = set(relations)
        if parent:
            relation_set.add(parent.relation)
        parsed = {
            permission: tuple(PermissionTerm.parse(term) for term in terms)
            for permission, terms in permissions.items()
        }
        return cls(name=name, relations=frozenset(relation_set), permissions=parsed, parent=parent)

    def has(self, name: str) -> bool:
        return name in self.relations or name in self.permissions

    def is_parent_link(self, relation: str) -> bool:
        return self.parent is not None and self.parent.relation == relation


class PermissionSchema:
    """Validated collection of resource definitions."""

    def __init__(self, definitions: Iterable[ResourceDefinition]):
        self._definitions: Dict[str, ResourceDefinition] = {d.name: d for d in definitions}
        self._validate()

    def _validate(self) -> None:
        for definition in self._definitions.values():
            overlap = definition.relations & set(definition.permissions)
            if overlap:
                raise ValidationError(
                    f"{definition.name}: names used as both relation and permission: {sorted(overlap)}"
                )
            if definition.parent and definition.parent.resource_type not in self._definitions:
                raise ValidationError(
                    f"{definition.name}: parent type {definition.parent.resource_type} is not defined"
                )
            for permission, terms in definition.permissions.items():
                for term in terms:
                    self._validate_term(definition, permission, term)

    def _validate_term(self, definition: ResourceDefinition, permission: str, term: PermissionTerm) -> None:
        if term.is_arrow:
            if not definition.is_parent_link(term.via):
                raise ValidationError(f"{definition.name}.{permission}: {term.via} is not a parent link")
            parent = self._definitions[definition.parent.resource_type]
            if not parent.has(term.name):
                raise ValidationError(
                    f"{definition.name}.{permission}: {parent.name} has no relation or permission {term.name}"
                )
        elif not definition.has(term.name):
            raise ValidationError(f"{definition.name}.{permission}: unknown term {term.name}")

    def get(self, resource_type: str) -> Optional[ResourceDefinition]:
        return self._definitions.get(resource_type)

    def __contains__(self, resource_type: str) -> bool:
        return resource_type in self._definitions

    @property
    def resource_types(self) -> FrozenSet[str]:
        return frozenset(self._definitions)


DEFAULT_SCHEMA = PermissionSchema([
    ResourceDefinition.build(
        "organization",
        relations={"admin", "member"},
        permissions={
            "manage_members": ["admin"],
            "update": ["admin"],
            "delete": ["admin"],
            "create_team": ["admin", "member"],
            "view": ["admin", "member"],
        },
    ),
    ResourceDefinition.build(
        "team",
        relations={"owner", "admin", "member"},
        parent=ParentLink("parent_organization", "organization"),
        permissions={
            "delete": ["owner", "parent_organization->delete"],
            "manage_members": ["owner", "admin", "parent_organization->manage_members"],
            "update": ["owner", "admin", "parent_organization->update"],
            "create_project": ["update", "member"],
            "view": ["update", "member", "parent_organization->view"],
        },
    ),
    ResourceDefinition.build(
        "project",
        relations={"owner", "editor", "viewer"},
        parent=ParentLink("parent_team", "team"),
        permissions={
            "delete": ["owner", "parent_team->delete"],
            "manage_members": ["owner", "parent_team->manage_members"],
            "update": ["owner", "editor", "parent_team->update"],
            "create_board": ["update"],
            "view": ["update", "viewer", "parent_team->view"],
        },
    ),
    ResourceDefinition.build(
        "board",
        relations={"owner", "editor", "viewer"},
        parent=ParentLink("parent_project", "project"),
        permissions={
            "delete": ["owner", "parent_project->delete"],
            "manage_members": ["owner", "parent_project->manage_members"],
            "update": ["owner", "editor", "parent_project->update"],
            "view": ["update", "viewer", "parent_project->view"],
        },
    ),
    ResourceDefinition.build(
        "card",
        relations={"assignee"},
        parent=ParentLink("parent_board", "board"),
        permissions={
            "delete": ["parent_board->delete"],
            "update": ["assignee", "parent_board->update"],
            "view": ["update", "parent_board->view"],
        },
    ),
])
