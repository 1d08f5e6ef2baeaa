"""Async operations on resources: their statistics and ordering."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterator, Mapping

from .fields import Attribute, Metadata, Span, Styles, make_formatted_attributes, pb_duration
from .store import Id, Ids, Store, Visibility
from .wire import AsyncOpMessage, AsyncOpStatsMessage, AsyncOpUpdate

__all__ = ["SortBy", "AsyncOpStats", "AsyncOp", "AsyncOpsState"]

log = logging.getLogger(__name__)

_ZERO = timedelta(0)


def _opt_key(value: Any) -> tuple:
    return (0,) if value is None else (1, value)


@dataclass
class AsyncOpStats:
    """Timing statistics and rendered attributes of an async operation."""

    created_at: datetime
    dropped_at: datetime | None = None
    polls: int = 0
    busy: timedelta = _ZERO
    last_poll_started: datetime | None = None
    last_poll_ended: datetime | None = None
    idle: timedelta | None = None
    total: timedelta | None = None
    task_id: Id | None = None
    task_id_str: str = "n/a"
    formatted_attributes: list[list[Span]] = field(default_factory=list)

    @classmethod
    def from_proto(
        cls,
        pb: AsyncOpStatsMessage,
        meta: Metadata,
        styles: Styles,
        task_ids: Ids,
    ) -> "AsyncOpStats":
        attributes = [
            attr
            for attr in (Attribute.from_proto(a, meta) for a in pb.attributes)
            if attr is not None
        ]
        if pb.created_at is None:
            raise ValueError("async op span was never created")
        created_at = pb.created_at
        dropped_at = pb.dropped_at
        total = None if dropped_at is None else max(dropped_at - created_at, _ZERO)

        poll_stats = pb.poll_stats
        if poll_stats is None:
            raise ValueError("task should have poll stats")
        busy = _ZERO if poll_stats.busy_time is None else pb_duration(*poll_stats.busy_time)
        idle = None if total is None else max(total - busy, _ZERO)
        formatted = make_formatted_attributes(styles, attributes)
        task_id = None if pb.task_id is None else task_ids.id_for(pb.task_id)
        return cls(
            created_at=created_at,
            dropped_at=dropped_at,
            polls=poll_stats.polls,
            busy=busy,
            last_poll_started=poll_stats.last_poll_started,
            last_poll_ended=poll_stats.last_poll_ended,
            idle=idle,
            total=total,
            task_id=task_id,
            task_id_str="n/a" if task_id is None else str(task_id),
            formatted_attributes=formatted,
        )


@dataclass(eq=False)
class AsyncOp:
    """An async operation performed on a resource."""

    id: Id
    parent_id: str
    resource_id: Id
    meta_id: int
    source: str
    stats: AsyncOpStats

    @property
    def task_id(self) -> Id | None:
        return self.stats.task_id

    @property
    def task_id_str(self) -> str:
        return self.stats.task_id_str

    @property
    def total_polls(self) -> int:
        return self.stats.polls

    @property
    def formatted_attributes(self) -> list[list[Span]]:
        return self.stats.formatted_attributes

    def total(self, since: datetime) -> timedelta:
        if self.stats.total is not None:
            return self.stats.total
        return max(since - self.stats.created_at, _ZERO)

    def busy(self, since: datetime) -> timedelta:
        started = self.stats.last_poll_started
        if started is not None and self.stats.last_poll_ended is None:
            return self.stats.busy + max(since - started, _ZERO)
        return self.stats.busy

    def idle(self, since: datetime) -> timedelta:
        if self.stats.idle is not None:
            return self.stats.idle
        remaining = self.total(since) - self.busy(since)
        return remaining if remaining >= _ZERO else _ZERO

    def dropped(self) -> bool:
        return self.stats.total is not None


class SortBy(enum.IntEnum):
    """Columns of the async op list that can be sorted on."""

    AID = 0
    TASK = 1
    SOURCE = 2
    TOTAL = 3
    BUSY = 4
    IDLE = 5
    POLLS = 6

    @classmethod
    def default(cls) -> "SortBy":
        return cls.AID

    def as_column(self) -> int:
        return int(self)

    def sort(self, now: datetime, ops: list[AsyncOp]) -> None:
        """Sort ``ops`` in place, ascending by this column."""
        keys = {
            SortBy.AID: lambda op: op.id,
            SortBy.TASK: lambda op: _opt_key(op.task_id),
            SortBy.SOURCE: lambda op: op.source,
            SortBy.TOTAL: lambda op: op.total(now),
            SortBy.BUSY: lambda op: op.busy(now),
            SortBy.IDLE: lambda op: op.idle(now),
            SortBy.POLLS: lambda op: op.stats.polls,
        }
        ops.sort(key=keys[self])


class AsyncOpsState:
    """All known async operations."""

    def __init__(self) -> None:
        self.ops: Store[AsyncOp] = Store()
        self.dropped_events = 0

    def take_new_async_ops(self) -> list[AsyncOp]:
        """Return the async ops added since the last call."""
        return self.ops.take_new_items()

    def async_ops(self) -> Iterator[AsyncOp]:
        """Iterate over all async ops."""
        return self.ops.values()

    def update_async_ops(
        self,
        styles: Styles,
        metas: Mapping[int, Metadata],
        update: AsyncOpUpdate,
        resource_ids: Ids,
        task_ids: Ids,
        visibility: Visibility,
    ) -> None:
        stats_update = dict(update.stats_update)

        def build(ids: Ids, pb: AsyncOpMessage) -> "tuple[Id, AsyncOp] | None":
            if pb.id is None:
                log.warning("skipping async op with no id: %r", pb)
            if pb.metadata is None:
                log.warning("async op has no metadata ID, skipping: %r", pb)
                return None
            meta = metas.get(pb.metadata)
            if meta is None:
                log.warning("no metadata for async op, skipping: meta_id=%s", pb.metadata)
                return None
            if pb.id is None:
                return None
            span_id = pb.id
            stats_pb = stats_update.pop(span_id, None)
            if stats_pb is None:
                return None
            stats = AsyncOpStats.from_proto(stats_pb, meta, styles, task_ids)

            id = ids.id_for(span_id)
            if pb.resource_id is None:
                return None
            resource_id = resource_ids.id_for(pb.resource_id)
            parent_id = (
                "n/a"
                if pb.parent_async_op_id is None
                else str(ids.id_for(pb.parent_async_op_id))
            )
            op = AsyncOp(
                id=id,
                parent_id=parent_id,
                resource_id=resource_id,
                meta_id=pb.metadata,
                source=pb.source,
                stats=stats,
            )
            return id, op

        self.ops.insert_with(visibility, update.new_async_ops, build)

        for stats_pb, op in self.ops.updated(stats_update):
            meta = metas.get(op.meta_id)
            if meta is not None:
                log.debug("processing stats update for async op %s", op.id)
                op.stats = AsyncOpStats.from_proto(stats_pb, meta, styles, task_ids)

        self.dropped_events += update.dropped_events

    def retain_active(self, now: datetime, retain_for: timedelta) -> None:
        """Drop async ops that were dropped at least ``retain_for`` before ``now``."""

        def keep(_id: Id, op: AsyncOp) -> bool:
            dropped_at = op.stats.dropped_at
            if dropped_at is None:
                return True
            return retain_for > max(now - dropped_at, _ZERO)

        self.ops.retain(keep)