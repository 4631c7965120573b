"""Shared pytest fixtures for the board command pipeline tests."""

import copy

import pytest

from board_agent.agent.adapters import Completion, TextDelta, ToolInvocation, Usage
from board_agent.agent.models import CREATIVE_MODEL, SIMPLE_MODEL, ModelSpec
from board_agent.config import settings
from board_agent.models.board_objects import BoardObject
from board_agent.tracing import setup as tracing_setup
from board_agent.tracing.cost_tracker import cost_tracker


class ScriptedAdapter:
    """ModelAdapter that replays scripted turns and records every call.

    Each script entry is a Completion, an Exception to raise, or (for
    streaming) a list of stream items.
    """

    def __init__(self, spec: ModelSpec, script: list | None = None):
        self.spec = spec
        self.script = list(script or [])
        self.calls: list[dict] = []

    def _next(self, system_prompt, turns, tools, streaming):
        self.calls.append({
            "system_prompt": system_prompt,
            "turns": copy.deepcopy(turns),
            "tools": tools,
            "stream": streaming,
        })
        if not self.script:
            return Completion(text="", invocations=[])
        entry = self.script.pop(0)
        if isinstance(entry, Exception):
            raise entry
        return entry

    async def complete(self, system_prompt, turns, tools):
        entry = self._next(system_prompt, turns, tools, streaming=False)
        if isinstance(entry, list):
            return _completion_from_items(entry)
        return entry

    async def complete_streaming(self, system_prompt, turns, tools):
        entry = self._next(system_prompt, turns, tools, streaming=True)
        if isinstance(entry, Completion):
            entry = _items_from_completion(entry)
        for item in entry:
            if isinstance(item, Exception):
                raise item
            yield item


def _completion_from_items(items: list) -> Completion:
    text = "".join(i.text for i in items if isinstance(i, TextDelta))
    invocations = [i for i in items if isinstance(i, ToolInvocation)]
    usage = Usage()
    for i in items:
        if isinstance(i, Usage):
            usage.add(i)
    return Completion(text=text, invocations=invocations, usage=usage)


def _items_from_completion(completion: Completion) -> list:
    items: list = []
    if completion.text:
        items.append(TextDelta(text=completion.text))
    items.extend(completion.invocations)
    items.append(completion.usage)
    return items


def call(name: str, **arguments) -> ToolInvocation:
    return ToolInvocation(name=name, arguments=arguments)


def reply(text: str = "", *invocations: ToolInvocation, input_tokens: int = 10, output_tokens: int = 5) -> Completion:
    return Completion(
        text=text,
        invocations=list(invocations),
        usage=Usage(input_tokens=input_tokens, output_tokens=output_tokens),
    )


@pytest.fixture
def simple_adapter() -> ScriptedAdapter:
    return ScriptedAdapter(SIMPLE_MODEL)


@pytest.fixture
def creative_adapter() -> ScriptedAdapter:
    return ScriptedAdapter(CREATIVE_MODEL)


@pytest.fixture
def board_objects() -> list[BoardObject]:
    """A small board: two red stickies, one yellow sticky, one rectangle."""
    return [
        BoardObject(id="1", type="sticky", x=0, y=0, width=200, height=200, color="#f44336", text="Red one"),
        BoardObject(id="2", type="sticky", x=220, y=0, width=200, height=200, color="#f44336", text="Red two"),
        BoardObject(id="3", type="sticky", x=440, y=0, width=200, height=200, color="#ffeb3b", text="Yellow"),
        BoardObject(id="4", type="rectangle", x=0, y=300, width=160, height=120, color="#2196f3"),
    ]


@pytest.fixture(autouse=True)
def _isolate(monkeypatch):
    """No telemetry, no settle delay, fresh cost records."""
    monkeypatch.setattr(tracing_setup, "langfuse_client", None)
    monkeypatch.setattr(settings, "connector_settle_seconds", 0.0)
    cost_tracker.reset()
    yield
    cost_tracker.reset()
