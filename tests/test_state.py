from datetime import datetime, timedelta, timezone

from consolestate.fields import Styles
from consolestate.state import State, ViewKind
from consolestate.wire import (
    AsyncOpMessage,
    AsyncOpStatsMessage,
    AsyncOpUpdate,
    FieldMessage,
    MetadataMessage,
    PollStats,
    ResourceKind,
    ResourceMessage,
    ResourceStatsMessage,
    ResourceUpdate,
    TaskDetailsMessage,
    TaskMessage,
    TaskStatsMessage,
    TaskUpdate,
    Update,
    ValueKind,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
STYLES = Styles()
META = MetadataMessage(id=1, target="app", field_names=["task.name"])


def task_update(span_id, dropped_at=None, name="worker"):
    return TaskUpdate(
        new_tasks=[
            TaskMessage(
                id=span_id,
                metadata=1,
                fields=[FieldMessage(name="task.name", kind=ValueKind.STR, value=name)],
            )
        ],
        stats_update={
            span_id: TaskStatsMessage(
                created_at=T0, dropped_at=dropped_at, poll_stats=PollStats()
            )
        },
    )


def with_meta(**kwargs):
    return Update(new_metadata=[META], **kwargs)


def test_update_records_now_and_metadata():
    state = State()
    state.update(STYLES, ViewKind.TASKS_LIST, with_meta(now=T0))
    assert state.last_updated_at == T0
    assert state.metas[1].target == "app"


def test_metadata_without_id_is_ignored():
    state = State()
    state.update(
        STYLES, ViewKind.TASKS_LIST, Update(new_metadata=[MetadataMessage(target="x")])
    )
    assert state.metas == {}


def test_task_added_from_update():
    state = State()
    state.update(STYLES, ViewKind.TASKS_LIST, with_meta(task_update=task_update(5)))
    new = state.tasks_state.take_new_tasks()
    assert [t.name for t in new] == ["worker"]
    assert new[0].target == "app"
    assert new[0].span_id == 5


def test_task_without_known_metadata_is_skipped():
    state = State()
    state.update(STYLES, ViewKind.TASKS_LIST, Update(task_update=task_update(5)))
    assert state.tasks_state.take_new_tasks() == []


def test_hidden_view_accumulates_new_tasks():
    state = State()
    state.update(STYLES, ViewKind.RESOURCES_LIST, with_meta(task_update=task_update(1)))
    state.update(STYLES, ViewKind.RESOURCES_LIST, Update(task_update=task_update(2)))
    assert len(state.tasks_state.take_new_tasks()) == 2


def test_shown_view_clears_previous_new_tasks():
    state = State()
    state.update(STYLES, ViewKind.TASKS_LIST, with_meta(task_update=task_update(1)))
    state.update(STYLES, ViewKind.TASKS_LIST, Update(task_update=task_update(2)))
    assert [t.span_id for t in state.tasks_state.take_new_tasks()] == [2]


def _state_with_dropped_task(retain_for):
    state = State().with_retain_for(retain_for)
    state.update(
        STYLES,
        ViewKind.TASKS_LIST,
        with_meta(
            now=T0 + timedelta(seconds=100),
            task_update=task_update(1, dropped_at=T0 + timedelta(seconds=1)),
        ),
    )
    return state


def test_retain_active_drops_old_tasks():
    state = _state_with_dropped_task(timedelta(seconds=10))
    state.retain_active()
    assert len(state.tasks_state.tasks) == 0


def test_retain_active_keeps_recent_tasks():
    state = _state_with_dropped_task(timedelta(seconds=1000))
    state.retain_active()
    assert len(state.tasks_state.tasks) == 1


def test_retain_active_does_nothing_while_paused():
    state = _state_with_dropped_task(timedelta(seconds=10))
    state.pause()
    state.retain_active()
    assert len(state.tasks_state.tasks) == 1


def test_retain_active_without_retention_keeps_everything():
    state = _state_with_dropped_task(None)
    state.retain_active()
    assert len(state.tasks_state.tasks) == 1


def test_pause_and_resume():
    state = State()
    assert state.is_paused() is False
    state.pause()
    assert state.is_paused() is True
    state.resume()
    assert state.is_paused() is False


class _AlwaysWarn:
    def __init__(self):
        self.seen = 0

    def check(self, task):
        self.seen += 1
        return "warn"

    def count(self):
        return self.seen


def test_task_linters_are_applied():
    linter = _AlwaysWarn()
    state = State().with_task_linters([linter])
    state.update(STYLES, ViewKind.TASKS_LIST, with_meta(task_update=task_update(3)))
    task = state.tasks_state.take_new_tasks()[0]
    assert task.warnings == ["warn"]
    assert list(state.tasks_state.warnings()) == [linter]


def test_resources_and_async_ops_share_ids():
    state = State()
    resources = ResourceUpdate(
        new_resources=[
            ResourceMessage(
                id=7, metadata=1, kind=ResourceKind(other="Mutex"), concrete_type="M"
            )
        ],
        stats_update={7: ResourceStatsMessage(created_at=T0)},
    )
    ops = AsyncOpUpdate(
        new_async_ops=[AsyncOpMessage(id=9, metadata=1, resource_id=7, source="lock")],
        stats_update={9: AsyncOpStatsMessage(created_at=T0, poll_stats=PollStats())},
    )
    state.update(
        STYLES,
        ViewKind.RESOURCE_INSTANCE,
        with_meta(resource_update=resources, async_op_update=ops),
    )
    resource = state.resources_state.take_new_resources()[0]
    op = state.async_ops_state.take_new_async_ops()[0]
    assert resource.kind == "Mutex"
    assert op.resource_id == resource.id
    assert op.source == "lock"


def test_update_task_details_and_unset():
    state = State()
    state.update_task_details(TaskDetailsMessage(task_id=42))
    assert state.task_details.span_id == 42
    assert state.task_details.poll_times_histogram is None
    state.unset_task_details()
    assert state.task_details is None


def test_task_details_without_task_id_leaves_details():
    state = State()
    state.update_task_details(TaskDetailsMessage(task_id=42))
    state.update_task_details(TaskDetailsMessage())
    assert state.task_details.span_id == 42