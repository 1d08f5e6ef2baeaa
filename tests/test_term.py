import io
import logging

import pytest

from consolestate.term import (
    ENTER_ALTERNATE_SCREEN,
    LEAVE_ALTERNATE_SCREEN,
    OnShutdown,
    TerminalError,
    exit_terminal,
    init_terminal,
)


def test_init_and_shutdown_write_sequences():
    stream = io.StringIO()
    with init_terminal(stream):
        assert stream.getvalue() == ENTER_ALTERNATE_SCREEN
    assert stream.getvalue() == ENTER_ALTERNATE_SCREEN + LEAVE_ALTERNATE_SCREEN


def test_on_shutdown_runs_once():
    calls = []
    cleanup = OnShutdown(lambda: calls.append(1))
    cleanup.run()
    cleanup.run()
    assert calls == [1]


def test_exit_on_closed_stream_raises():
    stream = io.StringIO()
    stream.close()
    with pytest.raises(TerminalError):
        exit_terminal(stream)


def test_cleanup_error_is_logged(caplog):
    def fail():
        raise TerminalError("boom")

    with caplog.at_level(logging.ERROR):
        OnShutdown(fail).run()
    assert "boom" in caplog.text