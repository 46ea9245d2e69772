"""
Reserved-resource resolution for conflict detection.

An event reserves either a set of venue areas or a free-text named space.
Each reserved resource maps to one or more buckets; two events can only
conflict when they share a bucket.

    resource = reserved_resource(areas=[Area(3, "Hall A")], venue_space=None)
    buckets(resource, venue_id=1, venue_name="Town Hall")
    # [Bucket(key="area::3", venue_name="Town Hall", space_label="Hall A")]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

UNKNOWN_VENUE_LABEL = "Unknown venue"
SPECIFIC_AREA_LABEL = "Specific area"
GENERAL_SPACE_LABEL = "General space"


@dataclass(frozen=True)
class Area:
    id: int | str
    name: str | None = None
    capacity: int | None = None

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "capacity": self.capacity}


@dataclass(frozen=True)
class Areas:
    """One or more specific venue areas."""
    areas: tuple[Area, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class NamedSpace:
    """A free-text space label (or none at all: the general space)."""
    label: str | None = None


ReservedResource = Union[Areas, NamedSpace]


@dataclass(frozen=True)
class Bucket:
    key: str
    venue_name: str
    space_label: str


def reserved_resource(*, areas=None, venue_space: str | None = None) -> ReservedResource:
    """Areas win over the free-text space whenever at least one is linked."""
    if areas:
        return Areas(tuple(areas))
    return NamedSpace(venue_space or None)


def buckets(resource: ReservedResource, *, venue_id=None, venue_name: str | None = None) -> list[Bucket]:
    venue_label = venue_name or UNKNOWN_VENUE_LABEL

    if isinstance(resource, Areas):
        return [
            Bucket(
                key=f"area::{area.id}",
                venue_name=venue_label,
                space_label=area.name or SPECIFIC_AREA_LABEL,
            )
            for area in resource.areas
        ]

    venue_key = venue_id if venue_id is not None else (venue_name or "unknown")
    return [
        Bucket(
            key=f"{venue_key}::{resource.label or 'general'}",
            venue_name=venue_label,
            space_label=resource.label or GENERAL_SPACE_LABEL,
        )
    ]
