"""Messages received from the instrumented process."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

__all__ = [
    "ValueKind",
    "FieldMessage",
    "AttributeMessage",
    "MetadataMessage",
    "Location",
    "PollStats",
    "TaskMessage",
    "TaskStatsMessage",
    "TaskUpdate",
    "ResourceKind",
    "ResourceMessage",
    "ResourceStatsMessage",
    "ResourceUpdate",
    "AsyncOpMessage",
    "AsyncOpStatsMessage",
    "AsyncOpUpdate",
    "DurationHistogramMessage",
    "TaskDetailsMessage",
    "Update",
]

# Durations on the wire are ``(seconds, nanos)`` pairs.
WireDuration = tuple[int, int]


class ValueKind(enum.Enum):
    BOOL = "bool"
    STR = "str"
    U64 = "u64"
    I64 = "i64"
    DEBUG = "debug"


@dataclass
class FieldMessage:
    """A field: named either by string or by index into its metadata's names."""

    name: str | int | None = None
    metadata_id: int | None = None
    kind: ValueKind | None = None
    value: Any = None


@dataclass
class AttributeMessage:
    field: FieldMessage | None = None
    unit: str | None = None


@dataclass
class MetadataMessage:
    id: int | None = None
    target: str = ""
    field_names: list[str] = field(default_factory=list)


@dataclass
class Location:
    file: str | None = None
    module_path: str | None = None
    line: int | None = None
    column: int | None = None

    def __str__(self) -> str:
        if self.file is not None:
            text = self.file
        elif self.module_path is not None:
            text = self.module_path
        else:
            return "<unknown location>"
        if self.line is not None:
            text += f":{self.line}"
            if self.column is not None:
                text += f":{self.column}"
        return text


@dataclass
class PollStats:
    polls: int = 0
    busy_time: WireDuration | None = None
    last_poll_started: datetime | None = None
    last_poll_ended: datetime | None = None


@dataclass
class TaskMessage:
    id: int | None = None
    metadata: int | None = None
    fields: list[FieldMessage] = field(default_factory=list)
    location: Location | None = None


@dataclass
class TaskStatsMessage:
    created_at: datetime | None = None
    dropped_at: datetime | None = None
    poll_stats: PollStats | None = None
    scheduled_time: WireDuration | None = None
    last_wake: datetime | None = None
    wakes: int = 0
    waker_clones: int = 0
    waker_drops: int = 0
    self_wakes: int = 0


@dataclass
class TaskUpdate:
    new_tasks: list[TaskMessage] = field(default_factory=list)
    stats_update: dict[int, TaskStatsMessage] = field(default_factory=dict)
    dropped_events: int = 0


@dataclass
class ResourceKind:
    """Either a known kind code or a free-form kind name."""

    TIMER = 0

    known: int | None = None
    other: str | None = None


@dataclass
class ResourceMessage:
    id: int | None = None
    metadata: int | None = None
    kind: ResourceKind | None = None
    concrete_type: str = ""
    location: Location | None = None
    parent_resource_id: int | None = None
    is_internal: bool = False


@dataclass
class ResourceStatsMessage:
    created_at: datetime | None = None
    dropped_at: datetime | None = None
    attributes: list[AttributeMessage] = field(default_factory=list)


@dataclass
class ResourceUpdate:
    new_resources: list[ResourceMessage] = field(default_factory=list)
    stats_update: dict[int, ResourceStatsMessage] = field(default_factory=dict)
    dropped_events: int = 0


@dataclass
class AsyncOpMessage:
    id: int | None = None
    metadata: int | None = None
    resource_id: int | None = None
    source: str = ""
    parent_async_op_id: int | None = None


@dataclass
class AsyncOpStatsMessage:
    created_at: datetime | None = None
    dropped_at: datetime | None = None
    task_id: int | None = None
    poll_stats: PollStats | None = None
    attributes: list[AttributeMessage] = field(default_factory=list)


@dataclass
class AsyncOpUpdate:
    new_async_ops: list[AsyncOpMessage] = field(default_factory=list)
    stats_update: dict[int, AsyncOpStatsMessage] = field(default_factory=dict)
    dropped_events: int = 0


@dataclass
class DurationHistogramMessage:
    raw_histogram: bytes = b""
    high_outliers: int = 0
    highest_outlier: int | None = None


@dataclass
class TaskDetailsMessage:
    """Task details; a ``bytes`` poll histogram is the legacy encoding."""

    task_id: int | None = None
    now: datetime | None = None
    poll_times_histogram: DurationHistogramMessage | bytes | None = None
    scheduled_times_histogram: DurationHistogramMessage | None = None


@dataclass
class Update:
    now: datetime | None = None
    new_metadata: list[MetadataMessage] | None = None
    task_update: TaskUpdate | None = None
    resource_update: ResourceUpdate | None = None
    async_op_update: AsyncOpUpdate | None = None