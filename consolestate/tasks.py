"""Tasks of the instrumented runtime: their statistics, state and ordering."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Iterator, Mapping, Protocol

from .fields import (
    Color,
    Field,
    Metadata,
    Span,
    Styles,
    format_location,
    make_formatted_fields,
    pb_duration,
)
from .histogram import DurationHistogram
from .store import Id, Ids, Store, Visibility
from .util import percent_of
from .wire import TaskMessage, TaskStatsMessage, TaskUpdate, ValueKind

__all__ = [
    "SortBy",
    "TaskState",
    "Details",
    "TaskStats",
    "Task",
    "TasksState",
]

log = logging.getLogger(__name__)

_ZERO = timedelta(0)


class Linter(Protocol):
    """A check run against each task; ``check`` returns a warning or ``None``."""

    def check(self, task: "Task") -> Any: ...

    def count(self) -> int: ...


def _opt_gt(a: datetime | None, b: datetime | None) -> bool:
    """Compare optional timestamps with ``None`` ordered before any value."""
    if a is None:
        return False
    if b is None:
        return True
    return a > b


def _opt_key(value: Any) -> tuple:
    return (0,) if value is None else (1, value)


def _elapsed(later: datetime, earlier: datetime) -> timedelta | None:
    """Return ``later - earlier``, or ``None`` if that would be negative."""
    delta = later - earlier
    return delta if delta >= _ZERO else None


class TaskState(enum.IntEnum):
    """The state of a task, ordered for sorting."""

    COMPLETED = 0
    IDLE = 1
    RUNNING = 2
    SCHEDULED = 3

    def render(self, styles: Styles) -> Span:
        if self is TaskState.RUNNING:
            return Span.styled(styles.if_utf8("\u25B6", "BUSY"), styles.fg(Color.GREEN))
        if self is TaskState.SCHEDULED:
            return Span.raw(styles.if_utf8("\u23EB", "SCHED"))
        if self is TaskState.IDLE:
            return Span.raw(styles.if_utf8("\u23F8", "IDLE"))
        return Span.raw(styles.if_utf8("\u23F9", "DONE"))


@dataclass
class Details:
    """Histograms describing one task in detail."""

    span_id: int = 0
    poll_times_histogram: DurationHistogram | None = None
    scheduled_times_histogram: DurationHistogram | None = None


@dataclass
class TaskStats:
    """Timing and waker statistics of a task."""

    created_at: datetime
    dropped_at: datetime | None = None
    polls: int = 0
    busy: timedelta = _ZERO
    scheduled: timedelta = _ZERO
    last_poll_started: datetime | None = None
    last_poll_ended: datetime | None = None
    idle: timedelta | None = None
    total: timedelta | None = None
    wakes: int = 0
    waker_clones: int = 0
    waker_drops: int = 0
    last_wake: datetime | None = None
    self_wakes: int = 0

    @classmethod
    def from_proto(cls, pb: TaskStatsMessage) -> "TaskStats":
        if pb.created_at is None:
            raise ValueError("task span was never created")
        created_at = pb.created_at
        dropped_at = pb.dropped_at
        total = None if dropped_at is None else max(dropped_at - created_at, _ZERO)

        poll_stats = pb.poll_stats
        if poll_stats is None:
            raise ValueError("task should have poll stats")
        busy = _ZERO if poll_stats.busy_time is None else pb_duration(*poll_stats.busy_time)
        scheduled = _ZERO if pb.scheduled_time is None else pb_duration(*pb.scheduled_time)
        idle = None if total is None else max(total - (busy + scheduled), _ZERO)
        return cls(
            created_at=created_at,
            dropped_at=dropped_at,
            polls=poll_stats.polls,
            busy=busy,
            scheduled=scheduled,
            last_poll_started=poll_stats.last_poll_started,
            last_poll_ended=poll_stats.last_poll_ended,
            idle=idle,
            total=total,
            wakes=pb.wakes,
            waker_clones=pb.waker_clones,
            waker_drops=pb.waker_drops,
            last_wake=pb.last_wake,
            self_wakes=pb.self_wakes,
        )


@dataclass(eq=False)
class Task:
    """A task, identified by a sequential console id and its remote span id."""

    id: Id
    span_id: int
    stats: TaskStats
    task_id: int | None = None
    id_str: str = ""
    short_desc: str = ""
    formatted_fields: list[list[Span]] = field(default_factory=list)
    target: str = ""
    name: str | None = None
    warnings: list[Any] = field(default_factory=list)
    location: str = ""

    def is_running(self) -> bool:
        """Whether the task is currently being polled."""
        return _opt_gt(self.stats.last_poll_started, self.stats.last_poll_ended)

    def is_scheduled(self) -> bool:
        return _opt_gt(self.stats.last_wake, self.stats.last_poll_started)

    def is_completed(self) -> bool:
        return self.stats.total is not None

    def state(self) -> TaskState:
        if self.is_completed():
            return TaskState.COMPLETED
        if self.is_running():
            return TaskState.RUNNING
        if self.is_scheduled():
            return TaskState.SCHEDULED
        return TaskState.IDLE

    def total(self, since: datetime) -> timedelta:
        if self.stats.total is not None:
            return self.stats.total
        return _elapsed(since, self.stats.created_at) or _ZERO

    def busy(self, since: datetime) -> timedelta:
        started = self.stats.last_poll_started
        if started is not None and self.is_running():
            return self.stats.busy + max(since - started, _ZERO)
        return self.stats.busy

    def scheduled(self, since: datetime) -> timedelta:
        wake = self.stats.last_wake
        if wake is not None and self.is_scheduled():
            return self.stats.scheduled + max(since - wake, _ZERO)
        return self.stats.scheduled

    def idle(self, since: datetime) -> timedelta:
        if self.stats.idle is not None:
            return self.stats.idle
        remaining = self.total(since) - (self.busy(since) + self.scheduled(since))
        return remaining if remaining >= _ZERO else _ZERO

    @property
    def total_polls(self) -> int:
        return self.stats.polls

    @property
    def last_wake(self) -> datetime | None:
        return self.stats.last_wake

    def since_wake(self, now: datetime) -> timedelta | None:
        """Time since the last wake, or ``None`` if never woken or woken after ``now``."""
        if self.stats.last_wake is None:
            return None
        return _elapsed(now, self.stats.last_wake)

    def waker_count(self) -> int:
        """The number of wakers currently alive for this task."""
        return max(self.stats.waker_clones - self.stats.waker_drops, 0)

    def self_wake_percent(self) -> int:
        """The percentage of wakeups that the task caused itself."""
        return percent_of(self.stats.self_wakes, self.stats.wakes)

    def is_awakened(self) -> bool:
        """Whether the task has been woken and not yet polled since."""
        return self.stats.polls == 0 or _opt_gt(
            self.stats.last_wake, self.stats.last_poll_started
        )

    def lint(self, linters: Iterable[Linter]) -> None:
        """Replace this task's warnings with those the linters report."""
        self.warnings.clear()
        for linter in linters:
            log.debug("checking %r against task %s", linter, self.id)
            warning = linter.check(self)
            if warning is not None:
                log.info("found a warning %r for task %s", warning, self.id)
                self.warnings.append(warning)


class SortBy(enum.IntEnum):
    """Columns of the task list that can be sorted on."""

    WARNS = 0
    TID = 1
    STATE = 2
    NAME = 3
    TOTAL = 4
    BUSY = 5
    SCHEDULED = 6
    IDLE = 7
    POLLS = 8
    TARGET = 9
    LOCATION = 10

    @classmethod
    def default(cls) -> "SortBy":
        return cls.TOTAL

    def as_column(self) -> int:
        return int(self)

    def sort(self, now: datetime, tasks: list[Task]) -> None:
        """Sort ``tasks`` in place, ascending by this column."""
        keys = {
            SortBy.WARNS: lambda t: len(t.warnings),
            SortBy.TID: lambda t: _opt_key(t.task_id),
            SortBy.STATE: lambda t: t.state(),
            SortBy.NAME: lambda t: _opt_key(t.name),
            SortBy.TOTAL: lambda t: t.total(now),
            SortBy.BUSY: lambda t: t.busy(now),
            SortBy.SCHEDULED: lambda t: t.scheduled(now),
            SortBy.IDLE: lambda t: t.idle(now),
            SortBy.POLLS: lambda t: t.stats.polls,
            SortBy.TARGET: lambda t: t.target,
            SortBy.LOCATION: lambda t: t.location,
        }
        tasks.sort(key=keys[self])


class TasksState:
    """All known tasks, plus the linters run against them."""

    def __init__(self) -> None:
        self.tasks: Store[Task] = Store()
        self.linters: list[Linter] = []
        self.dropped_events = 0

    @property
    def ids(self) -> Ids:
        return self.tasks.ids

    def take_new_tasks(self) -> list[Task]:
        """Return the tasks added since the last call."""
        return self.tasks.take_new_items()

    def update_tasks(
        self,
        styles: Styles,
        metas: Mapping[int, Metadata],
        update: TaskUpdate,
        visibility: Visibility,
    ) -> None:
        stats_update = dict(update.stats_update)
        linters = self.linters

        def build(ids: Ids, pb: TaskMessage) -> "tuple[Id, Task] | None":
            if pb.id is None:
                log.warning("skipping task with no id: %r", pb)
            if pb.metadata is None:
                log.warning("task has no metadata ID, skipping: %r", pb)
                return None
            meta = metas.get(pb.metadata)
            if meta is None:
                log.warning("no metadata for task, skipping: meta_id=%s", pb.metadata)
                return None

            name: str | None = None
            task_id: int | None = None
            fields: list[Field] = []
            for field_pb in pb.fields:
                resolved = Field.from_proto(field_pb, meta)
                if resolved is None:
                    continue
                if resolved.name == Field.NAME:
                    name = str(resolved.value)
                elif resolved.name == Field.TASK_ID:
                    task_id = (
                        resolved.value.value
                        if resolved.value.kind is ValueKind.U64
                        else None
                    )
                else:
                    fields.append(resolved)

            formatted_fields = make_formatted_fields(styles, fields)
            if pb.id is None:
                return None
            span_id = pb.id
            stats_pb = stats_update.pop(span_id, None)
            if stats_pb is None:
                return None
            stats = TaskStats.from_proto(stats_pb)
            location = format_location(pb.location)

            id = ids.id_for(span_id)

            if task_id is not None and name is not None:
                short_desc = f"{task_id} ({name})"
            elif task_id is not None:
                short_desc = str(task_id)
            elif name is not None:
                short_desc = name
            else:
                short_desc = ""

            task = Task(
                id=id,
                span_id=span_id,
                stats=stats,
                task_id=task_id,
                id_str="" if task_id is None else str(task_id),
                short_desc=short_desc,
                formatted_fields=formatted_fields,
                target=meta.target,
                name=name,
                location=location,
            )
            task.lint(linters)
            return id, task

        self.tasks.insert_with(visibility, update.new_tasks, build)

        for stats_pb, task in self.tasks.updated(stats_update):
            log.debug("processing stats update for task %s", task.id)
            task.stats = TaskStats.from_proto(stats_pb)
            task.lint(linters)

        self.dropped_events += update.dropped_events

    def retain_active(self, now: datetime, retain_for: timedelta) -> None:
        """Drop tasks that completed at least ``retain_for`` before ``now``."""

        def keep(_id: Id, task: Task) -> bool:
            dropped_at = task.stats.dropped_at
            if dropped_at is None:
                return True
            return retain_for > max(now - dropped_at, _ZERO)

        self.tasks.retain(keep)

    def warnings(self) -> Iterator[Linter]:
        """Yield the linters that currently report at least one task."""
        return (linter for linter in self.linters if linter.count() > 0)

    def task(self, id: Id) -> Task | None:
        return self.tasks.get(id)