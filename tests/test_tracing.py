"""Tests for Langfuse tracing wrappers and the cost tracker."""

from unittest.mock import MagicMock

import pytest

from board_agent.config import settings
from board_agent.tracing import setup as tracing_setup
from board_agent.tracing.cost_tracker import CostTracker
from board_agent.tracing.setup import CommandTrace, init_tracing, shutdown_tracing


class TestCommandTrace:
    """Tests for CommandTrace."""

    def test_disabled_is_noop(self) -> None:
        trace = CommandTrace(name="cmd", user_id="u1", input={"command": "x"})

        trace.generation(name="g", model="gpt-4o", input=None, output=None)
        trace.update(output={"message": "ok"}, error="boom")
        trace.flush()

        assert trace.enabled is False
        assert trace.id

    def test_enabled_forwards_to_langfuse(self, monkeypatch) -> None:
        client = MagicMock()
        client.trace.return_value.id = "t-1"
        monkeypatch.setattr(tracing_setup, "langfuse_client", client)

        trace = CommandTrace(name="cmd", user_id="", input={"command": "x"})
        trace.generation(name="openai-turn-0", model="gpt-4o", input={}, output={}, input_tokens=5, output_tokens=2)
        trace.update(output={"message": "ok"})

        assert trace.id == "t-1"
        assert client.trace.call_args.kwargs["user_id"] is None
        generation = client.trace.return_value.generation.call_args.kwargs
        assert generation["usage"] == {"input": 5, "output": 2}
        client.trace.return_value.event.assert_not_called()
        assert client.trace.return_value.update.call_args.kwargs["metadata"] == {"level": "DEFAULT"}

    def test_flush_failure_is_logged(self, monkeypatch, caplog) -> None:
        client = MagicMock()
        client.flush.side_effect = RuntimeError("network down")

        tracing_setup._flush(client)

        assert "network down" in caplog.text


class TestInitTracing:
    """Tests for init_tracing and shutdown_tracing."""

    def test_disabled_without_keys(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "langfuse_secret_key", "")
        monkeypatch.setattr(settings, "langfuse_public_key", "")

        init_tracing()

        assert tracing_setup.langfuse_client is None

    def test_shutdown_flushes(self, monkeypatch) -> None:
        client = MagicMock()
        monkeypatch.setattr(tracing_setup, "langfuse_client", client)

        shutdown_tracing()

        client.flush.assert_called_once()
        client.shutdown.assert_called_once()
        assert tracing_setup.langfuse_client is None


class TestCostTracker:
    """Tests for CostTracker."""

    def test_prices_known_models(self) -> None:
        tracker = CostTracker()

        cost = tracker.record("gpt-4o", "simple", 1_000_000, 0, "t", "create")

        assert cost == pytest.approx(2.50)

    def test_unknown_model_is_free(self) -> None:
        assert CostTracker().record("mystery", "simple", 100, 100, "t", "create") == 0

    def test_summary_groups(self) -> None:
        tracker = CostTracker()
        tracker.record("gpt-4o", "simple", 100, 10, "t1", "create")
        tracker.record("claude-sonnet-4-6", "creative", 200, 20, "t2", "drawing")
        tracker.record("filtered", "filtered", 0, 0, "t3", "refusal")

        summary = tracker.get_summary()

        assert summary["total_requests"] == 3
        assert summary["total_input_tokens"] == 300
        assert summary["by_task_kind"] == {"simple": 1, "creative": 1, "filtered": 1}
        assert summary["by_operation"]["drawing"]["tokens"] == 220
        assert len(summary["recent"]) == 3

    def test_recent_is_capped(self) -> None:
        tracker = CostTracker()
        for i in range(25):
            tracker.record("gpt-4o", "simple", i, 0, "t", "create")

        recent = tracker.get_summary()["recent"]

        assert len(recent) == 20
        assert recent[-1]["input_tokens"] == 24

    def test_reset(self) -> None:
        tracker = CostTracker()
        tracker.record("gpt-4o", "simple", 1, 1, "t", "create")

        tracker.reset()

        assert tracker.get_summary()["total_requests"] == 0
