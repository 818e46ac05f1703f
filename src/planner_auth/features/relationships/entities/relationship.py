"""Relationship tuple value objects."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ObjectRef:
    """Typed reference to a subject or resource, e.g. `board:42`."""

    type: str
    id: str

    def __post_init__(self):
        if not self.type or not self.id:
            raise ValueError(f"Object reference needs a type and an id, got: {self.type!r}:{self.id!r}")
        if ":" in self.type:
            raise ValueError(f"Object type must not contain ':', got: {self.type}")
        object.__setattr__(self, "id", str(self.id))

    @classmethod
    def parse(cls, value: str) -> "ObjectRef":
        """Parse the `type:id` form."""
        object_type, sep, object_id = value.partition(":")
        if not sep:
            raise ValueError(f"Object reference must be in format 'type:id', got: {value}")
        return cls(object_type, object_id)

    def __str__(self) -> str:
        return f"{self.type}:{self.id}"


@dataclass(frozen=True)
class RelationshipTuple:
    """A (subject, relation, resource) fact."""

    resource: ObjectRef
    relation: str
    subject: ObjectRef

    @classmethod
    def of(
        cls,
        resource_type: str,
        resource_id: str,
        relation: str,
        subject_type: str,
        subject_id: str,
    ) -> "RelationshipTuple":
        return cls(
            resource=ObjectRef(resource_type, resource_id),
            relation=relation,
            subject=ObjectRef(subject_type, subject_id),
        )

    def to_dict(self) -> dict:
        return {
            "resource": str(self.resource),
            "relation": self.relation,
            "subject": str(self.subject),
        }

    def __str__(self) -> str:
        return f"{self.subject}#{self.relation}@{self.resource}"
