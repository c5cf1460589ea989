"""
Tests for component loggers and the generation trace history.
"""

import json

from dagflow.src.utilities import io_logger
from dagflow.src.utilities.constants import get_trace_history_limit
from dagflow.src.utilities.io_logger import (
    IOLogger,
    clear_trace_history,
    get_trace_history,
    log_trace,
)


class TestTraceHistory:
    def test_history_is_bounded(self):
        clear_trace_history()
        limit = get_trace_history_limit()
        assert io_logger.trace_history.maxlen == limit

        ids = [log_trace("workflow_generation", f"turn {i}") for i in range(limit + 5)]

        history = get_trace_history()
        assert len(history) == limit
        assert [entry["id"] for entry in history] == ids[5:]
        assert clear_trace_history() == limit
        assert get_trace_history() == []

    def test_entry_fields(self):
        clear_trace_history()
        trace_id = log_trace("workflow_generation", "turn 1", response="[]", metadata={"turn": 1})
        [entry] = get_trace_history()
        assert entry["id"] == trace_id
        assert entry["response"] == "[]"
        assert entry["metadata"] == {"turn": 1}


class TestComponentLogger:
    def test_group_nests_run_id(self, capsys):
        logger = IOLogger("deployment").enable_grouping()
        with logger.group("Deploy", run_id="run-12345678"):
            with logger.group("Push"):
                assert logger.current_context.indent_level == 1
                assert logger.current_context.run_id == "run-12345678"
        assert logger.current_context is None
        assert "completed in" in capsys.readouterr().out

    def test_structured_mode_emits_json(self, capsys):
        IOLogger("poller", structured=True).warning("Slow tick", data={"runs": 3})
        line = capsys.readouterr().out.strip().splitlines()[-1]
        payload = json.loads(line)
        assert payload["level"] == "WARN"
        assert payload["message"] == "Slow tick"
