"""The console's view of the instrumented process, assembled from updates."""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timedelta
from typing import Iterable

from .async_ops import AsyncOpsState
from .fields import Metadata, Styles
from .histogram import DurationHistogram
from .resources import ResourcesState
from .store import Visibility
from .tasks import Details, Linter, TasksState
from .wire import TaskDetailsMessage, Update

__all__ = ["ViewKind", "State"]

log = logging.getLogger(__name__)


class ViewKind(enum.Enum):
    """The view currently on screen, which decides what counts as newly shown."""

    TASKS_LIST = "tasks_list"
    RESOURCES_LIST = "resources_list"
    TASK_INSTANCE = "task_instance"
    RESOURCE_INSTANCE = "resource_instance"


class _Temporality(enum.Enum):
    LIVE = "live"
    PAUSED = "paused"


def _visibility(current: ViewKind, shown_in: ViewKind) -> Visibility:
    return Visibility.SHOW if current is shown_in else Visibility.HIDE


class State:
    """Tasks, resources and async ops known to the console, and their metadata."""

    def __init__(self) -> None:
        self.metas: dict[int, Metadata] = {}
        self.last_updated_at: datetime | None = None
        self._temporality = _Temporality.LIVE
        self.tasks_state = TasksState()
        self.resources_state = ResourcesState()
        self.async_ops_state = AsyncOpsState()
        self.task_details: Details | None = None
        self.retain_for: timedelta | None = None

    def with_retain_for(self, retain_for: timedelta | None) -> "State":
        """Set how long completed items are kept; return ``self``."""
        self.retain_for = retain_for
        return self

    def with_task_linters(self, linters: Iterable[Linter]) -> "State":
        """Add linters run against every task; return ``self``."""
        self.tasks_state.linters.extend(linters)
        return self

    def update(self, styles: Styles, current_view: ViewKind, update: Update) -> None:
        """Apply one update from the instrumented process."""
        if update.now is not None:
            self.last_updated_at = update.now

        if update.new_metadata is not None:
            for meta in update.new_metadata:
                if meta.id is None:
                    continue
                self.metas[meta.id] = Metadata.from_proto(meta, meta.id)

        if update.task_update is not None:
            self.tasks_state.update_tasks(
                styles,
                self.metas,
                update.task_update,
                _visibility(current_view, ViewKind.TASKS_LIST),
            )

        if update.resource_update is not None:
            self.resources_state.update_resources(
                styles,
                self.metas,
                update.resource_update,
                _visibility(current_view, ViewKind.RESOURCES_LIST),
            )

        if update.async_op_update is not None:
            self.async_ops_state.update_async_ops(
                styles,
                self.metas,
                update.async_op_update,
                self.resources_state.ids,
                self.tasks_state.ids,
                _visibility(current_view, ViewKind.RESOURCE_INSTANCE),
            )

    def retain_active(self) -> None:
        """Drop items that completed longer ago than the retention period."""
        if self.is_paused():
            return
        now, retain_for = self.last_updated_at, self.retain_for
        if now is None or retain_for is None:
            return
        self.tasks_state.retain_active(now, retain_for)
        self.resources_state.retain_active(now, retain_for)
        self.async_ops_state.retain_active(now, retain_for)

    def update_task_details(self, update: TaskDetailsMessage) -> None:
        """Replace the current task details if the update names a task."""
        if update.task_id is None:
            return
        poll = (
            None
            if update.poll_times_histogram is None
            else DurationHistogram.from_poll_durations(update.poll_times_histogram)
        )
        scheduled = (
            None
            if update.scheduled_times_histogram is None
            else DurationHistogram.from_proto(update.scheduled_times_histogram)
        )
        self.task_details = Details(
            span_id=update.task_id,
            poll_times_histogram=poll,
            scheduled_times_histogram=scheduled,
        )

    def unset_task_details(self) -> None:
        self.task_details = None

    def pause(self) -> None:
        self._temporality = _Temporality.PAUSED

    def resume(self) -> None:
        self._temporality = _Temporality.LIVE

    def is_paused(self) -> bool:
        return self._temporality is _Temporality.PAUSED