# consolestate

`consolestate` keeps the in-memory state behind an async runtime console.
It takes instrumentation updates and turns them into tasks, resources and
async operations that you can query, sort and render as styled text.

It needs no third-party dependencies.

## What is in the package

- `consolestate.wire`: the update messages the state is built from
  (`Update`, `TaskUpdate`, `ResourceUpdate`, `AsyncOpUpdate`,
  `TaskDetailsMessage` and the messages they hold). Wire durations are
  `(seconds, nanos)` pairs and timestamps are `datetime` values.
- `consolestate.store`: `Store`, `Ids` and `Id`. Each item gets a short,
  sequential `Id` in place of the server's span id, which may be reused.
  `Store.take_new_items()` returns the items added since the last call.
- `consolestate.tasks`: `TasksState`, `Task`, `TaskStats`, `TaskState`,
  `Details` and `SortBy`. A task reports its total, busy, scheduled and idle
  time, its waker count, its self-wake percentage and its current state.
- `consolestate.resources`: `ResourcesState`, `Resource`, `ResourceStats`,
  `TypeVisibility`, `SortBy` and `kind_from_proto`.
- `consolestate.async_ops`: `AsyncOpsState`, `AsyncOp`, `AsyncOpStats` and
  `SortBy`. Each async op is linked to its resource's and its task's
  sequential ids.
- `consolestate.histogram`: `Histogram`, a high-dynamic-range histogram of
  integer values, with `serialize_histogram` and `deserialize_histogram`
  for its V2 encoding. Compressed input is also accepted when decoding.
  `DurationHistogram` adds outlier information.
- `consolestate.fields`: `Field`, `Attribute`, `FieldValue` and `Metadata`,
  plus `Span`, `Style` and `Styles` for styled output.
  `make_formatted_fields` and `make_formatted_attributes` turn fields into
  `name=value` span lines. `truncate_registry_path` replaces a
  package-registry or git-checkout path prefix with `<cargo>/`.
- `consolestate.state`: `State`, which ties all of the above together, and
  `ViewKind`.
- `consolestate.term`: `init_terminal`, `exit_terminal`, `OnShutdown` and
  `TerminalError`.

## Installation

```
pip install .
```

## Usage

```python
from datetime import datetime, timedelta, timezone

from consolestate.fields import Styles
from consolestate.state import State, ViewKind
from consolestate.tasks import SortBy
from consolestate.wire import (
    FieldMessage,
    MetadataMessage,
    PollStats,
    TaskMessage,
    TaskStatsMessage,
    TaskUpdate,
    Update,
    ValueKind,
)

now = datetime(2024, 1, 1, tzinfo=timezone.utc)
update = Update(
    now=now,
    new_metadata=[MetadataMessage(id=1, target="app", field_names=["task.name"])],
    task_update=TaskUpdate(
        new_tasks=[
            TaskMessage(
                id=42,
                metadata=1,
                fields=[FieldMessage(name=0, metadata_id=1, kind=ValueKind.STR, value="worker")],
            )
        ],
        stats_update={42: TaskStatsMessage(created_at=now, poll_stats=PollStats())},
    ),
)

state = State().with_retain_for(timedelta(seconds=6))
state.update(Styles(), ViewKind.TASKS_LIST, update)
state.retain_active()

tasks = state.tasks_state.take_new_tasks()
SortBy.TOTAL.sort(now, tasks)
task = tasks[0]
print(task.id, task.short_desc, task.state())
```

Items whose `dropped_at` is at least `retain_for` older than the last
update's `now` are removed by `retain_active`. While `state.pause()` is in
effect, `retain_active` removes nothing. `state.resume()` turns removal back on.

Task linters are objects with `check(task)` and `count()` methods. Pass
them to `State.with_task_linters`. Each task's `warnings` list holds what
`check` returned for it when it was last updated.
`TasksState.warnings()` yields the linters whose `count()` is above zero.

## Terminal handling

`init_terminal` writes the alternate-screen sequence to a stream. If the
stream is a terminal, it also switches that terminal to raw mode. It returns an
`OnShutdown` guard. The guard restores the terminal once, either through
`run()` or at the end of a `with` block. It logs cleanup errors and does not
raise them.

```python
import sys

from consolestate.term import init_terminal

with init_terminal(sys.stdout):
    ...
```

## What this package does not do

The package holds state and formats it. It has no command to run and does not
draw the console's screens. It also does not connect to an instrumented
process. You receive the updates yourself and pass them to `State.update`
as `consolestate.wire` objects.

## Running the tests

```
pip install .[test]
pytest
```