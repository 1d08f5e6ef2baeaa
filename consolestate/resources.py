"""Resources of the instrumented runtime: their statistics, kinds and ordering."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Mapping

from .fields import (
    Attribute,
    Color,
    Metadata,
    Span,
    Styles,
    format_location,
    make_formatted_attributes,
)
from .store import Id, Ids, Store, Visibility
from .wire import ResourceKind, ResourceMessage, ResourceStatsMessage, ResourceUpdate

__all__ = [
    "ResourceKindError",
    "TypeVisibility",
    "SortBy",
    "ResourceStats",
    "Resource",
    "ResourcesState",
    "kind_from_proto",
]

log = logging.getLogger(__name__)

_ZERO = timedelta(0)


class ResourceKindError(ValueError):
    """Raised when a known resource kind code is not recognised."""


class TypeVisibility(enum.IntEnum):
    """Whether a resource's type is public or internal to the runtime."""

    PUBLIC = 0
    INTERNAL = 1

    def render(self, styles: Styles) -> Span:
        if self is TypeVisibility.INTERNAL:
            return Span.styled(styles.if_utf8("\U0001F512", "INT"), styles.fg(Color.RED))
        return Span.styled(styles.if_utf8("\u2705", "PUB"), styles.fg(Color.GREEN))


@dataclass
class ResourceStats:
    """Lifetime statistics and rendered attributes of a resource."""

    created_at: datetime
    dropped_at: datetime | None = None
    total: timedelta | None = None
    formatted_attributes: list[list[Span]] = field(default_factory=list)

    @classmethod
    def from_proto(
        cls, pb: ResourceStatsMessage, meta: Metadata, styles: Styles
    ) -> "ResourceStats":
        attributes = [
            attr
            for attr in (Attribute.from_proto(a, meta) for a in pb.attributes)
            if attr is not None
        ]
        formatted = make_formatted_attributes(styles, attributes)
        if pb.created_at is None:
            raise ValueError("resource span was never created")
        created_at = pb.created_at
        dropped_at = pb.dropped_at
        total = None if dropped_at is None else max(dropped_at - created_at, _ZERO)
        return cls(
            created_at=created_at,
            dropped_at=dropped_at,
            total=total,
            formatted_attributes=formatted,
        )


@dataclass(eq=False)
class Resource:
    """A resource, identified by a sequential console id and its remote span id."""

    id: Id
    span_id: int
    stats: ResourceStats
    id_str: str = ""
    parent: str = "n/a"
    parent_id: str = "n/a"
    meta_id: int = 0
    kind: str = ""
    target: str = ""
    concrete_type: str = ""
    location: str = ""
    type_visibility: TypeVisibility = TypeVisibility.PUBLIC

    @property
    def formatted_attributes(self) -> list[list[Span]]:
        return self.stats.formatted_attributes

    def total(self, since: datetime) -> timedelta:
        if self.stats.total is not None:
            return self.stats.total
        return max(since - self.stats.created_at, _ZERO)

    def dropped(self) -> bool:
        return self.stats.total is not None


class SortBy(enum.IntEnum):
    """Columns of the resource list that can be sorted on."""

    RID = 0
    KIND = 1
    CONCRETE_TYPE = 2
    TARGET = 3
    TOTAL = 4

    @classmethod
    def default(cls) -> "SortBy":
        return cls.RID

    def as_column(self) -> int:
        return int(self)

    def sort(self, now: datetime, resources: list[Resource]) -> None:
        """Sort ``resources`` in place, ascending by this column."""
        keys = {
            SortBy.RID: lambda r: r.id,
            SortBy.KIND: lambda r: r.kind,
            SortBy.CONCRETE_TYPE: lambda r: r.concrete_type,
            SortBy.TARGET: lambda r: r.target,
            SortBy.TOTAL: lambda r: r.total(now),
        }
        resources.sort(key=keys[self])


def kind_from_proto(pb: ResourceKind) -> str:
    """Return the display name of a resource kind.

    Raises ``ResourceKindError`` for an unrecognised known kind and
    ``ValueError`` when the kind carries no value at all.
    """
    if pb.known is not None:
        if pb.known == ResourceKind.TIMER:
            return "Timer"
        raise ResourceKindError(f"failed to parse known kind from {pb.known}")
    if pb.other is not None:
        return pb.other
    raise ValueError("a resource should have a kind field")


class ResourcesState:
    """All known resources."""

    def __init__(self) -> None:
        self.resources: Store[Resource] = Store()
        self.dropped_events = 0

    @property
    def ids(self) -> Ids:
        return self.resources.ids

    def take_new_resources(self) -> list[Resource]:
        """Return the resources added since the last call."""
        return self.resources.take_new_items()

    def update_resources(
        self,
        styles: Styles,
        metas: Mapping[int, Metadata],
        update: ResourceUpdate,
        visibility: Visibility,
    ) -> None:
        parents: dict[Id, Resource] = {}
        for pb in update.new_resources:
            if pb.parent_resource_id is None:
                continue
            parent = self.resources.get_by_span(pb.parent_resource_id)
            if parent is not None:
                parents[parent.id] = parent

        stats_update = dict(update.stats_update)

        def build(ids: Ids, pb: ResourceMessage) -> "tuple[Id, Resource] | None":
            if pb.id is None:
                log.warning("skipping resource with no id: %r", pb)
            if pb.metadata is None:
                log.warning("resource has no metadata ID, skipping: %r", pb)
                return None
            meta = metas.get(pb.metadata)
            if meta is None:
                log.warning("no metadata for resource, skipping: meta_id=%s", pb.metadata)
                return None
            if pb.kind is None:
                return None
            try:
                kind = kind_from_proto(pb.kind)
            except ResourceKindError as err:
                log.warning("resource kind cannot be parsed: %s", err)
                return None

            if pb.id is None:
                return None
            span_id = pb.id
            stats_pb = stats_update.pop(span_id, None)
            if stats_pb is None:
                return None
            stats = ResourceStats.from_proto(stats_pb, meta, styles)

            id = ids.id_for(span_id)
            parent_id = (
                None if pb.parent_resource_id is None else ids.id_for(pb.parent_resource_id)
            )
            if parent_id is None:
                parent = "n/a"
            else:
                known = parents.get(parent_id)
                parent = (
                    str(parent_id)
                    if known is None
                    else f"{known.id} ({known.target}::{known.concrete_type})"
                )

            resource = Resource(
                id=id,
                span_id=span_id,
                stats=stats,
                id_str=str(id),
                parent=parent,
                parent_id="n/a" if parent_id is None else str(parent_id),
                meta_id=pb.metadata,
                kind=kind,
                target=meta.target,
                concrete_type=pb.concrete_type,
                location=format_location(pb.location),
                type_visibility=(
                    TypeVisibility.INTERNAL if pb.is_internal else TypeVisibility.PUBLIC
                ),
            )
            return id, resource

        self.resources.insert_with(visibility, update.new_resources, build)

        self.dropped_events += update.dropped_events

        for stats_pb, resource in self.resources.updated(stats_update):
            meta = metas.get(resource.meta_id)
            if meta is not None:
                log.debug("processing stats update for resource %s", resource.id)
                resource.stats = ResourceStats.from_proto(stats_pb, meta, styles)

    def retain_active(self, now: datetime, retain_for: timedelta) -> None:
        """Drop resources that were dropped at least ``retain_for`` before ``now``."""

        def keep(_id: Id, resource: Resource) -> bool:
            dropped_at = resource.stats.dropped_at
            if dropped_at is None:
                return True
            return retain_for > max(now - dropped_at, _ZERO)

        self.resources.retain(keep)