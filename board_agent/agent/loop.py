"""Provider-agnostic tool-calling loop.

Each turn asks the adapter for a completion, validates every tool invocation
against the action vocabulary, emits the valid ones as actions and feeds a
synthetic result back to the model. The loop stops when a turn requests no
tools or the bucket's turn budget runs out. Backend errors propagate to the
caller unchanged.
"""

import inspect
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union

from board_agent.agent.adapters import (
    ConversationTurn,
    ModelAdapter,
    TextDelta,
    ToolInvocation,
    Usage,
)
from board_agent.models.actions import Action, InvalidActionError, tool_definitions, validate_action
from board_agent.models.board_objects import BoardObject

logger = logging.getLogger(__name__)

NO_RESULT_MESSAGE = "Sorry, I wasn't able to do that."

ActionCallback = Callable[[Action], Union[None, Awaitable[None]]]
TextCallback = Callable[[str], Union[None, Awaitable[None]]]


@dataclass
class Generation:
    """One adapter call, kept for telemetry."""

    turn: int
    text: str
    tool_names: list[str]
    usage: Usage


@dataclass
class LoopResult:
    text: str
    actions: list[Action]
    usage: Usage
    turns_used: int


def _fmt(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _plural(count: int, noun: str) -> str:
    return noun if count == 1 else f"{noun}s"


def build_tool_result(action: Action, board_objects: list[BoardObject]) -> str:
    """Short natural-language result fed back to the model for one action."""
    args = action.arguments
    tool = action.tool

    if tool == "create_connector":
        start = args.get("start_object_id") or f"({_fmt(args.get('start_x', 0))}, {_fmt(args.get('start_y', 0))})"
        end = args.get("end_object_id") or f"({_fmt(args.get('end_x', 0))}, {_fmt(args.get('end_y', 0))})"
        return f"Created connector from {start} to {end}."
    if tool.startswith("create_"):
        kind = tool[len("create_"):]
        return f"Created {kind} at ({_fmt(args.get('x', 0))}, {_fmt(args.get('y', 0))})."
    if tool == "move_object":
        return f"Moved object {args['id']} to ({_fmt(args.get('x', 0))}, {_fmt(args.get('y', 0))})."
    if tool == "update_object":
        return f"Updated object {args['id']}."
    if tool == "bulk_update_objects":
        parts = []
        if "filter" in args:
            obj_type = args["filter"]["type"]
            matched = sum(1 for obj in board_objects if obj.type == obj_type)
            parts.append(f"Updated {matched} {obj_type} {_plural(matched, 'object')}.")
        if args.get("updates"):
            n = len(args["updates"])
            parts.append(f"Updated {n} {_plural(n, 'object')}.")
        return " ".join(parts) or "No objects matched."
    if tool == "delete_object":
        return f"Deleted object {args['id']}."
    if tool == "clear_board":
        return f"Cleared all {len(board_objects)} objects from the board."
    if tool == "organize_board":
        strategy = args.get("strategy", "grid")
        return f"Organized {len(board_objects)} objects using strategy {strategy}."
    if tool == "analyze_board":
        if not board_objects:
            return "The board is empty."
        counts = Counter(obj.type for obj in board_objects)
        summary = ", ".join(f"{n} {t}" for t, n in counts.items())
        return f"The board has {len(board_objects)} objects: {summary}."
    return f"Done: {tool}."


def summarize_actions(actions: list[Action]) -> str:
    """Fallback reply when the model produced actions but no text."""
    if not actions:
        return NO_RESULT_MESSAGE
    counts = Counter(a.tool.replace("create_", "", 1).replace("_", " ") for a in actions)
    parts = [f"{n} {name}s" if n > 1 else f"a {name}" for name, n in counts.items()]
    return f"Here's {', '.join(parts)}!"


async def _notify(callback, value) -> None:
    if callback is None:
        return
    result = callback(value)
    if inspect.isawaitable(result):
        await result


class OrchestrationLoop:
    """Runs one command against one adapter. Not reusable across commands."""

    def __init__(self, adapter: ModelAdapter, board_objects: list[BoardObject]):
        self.adapter = adapter
        self.board_objects = board_objects
        self.generations: list[Generation] = []
        self._tools = tool_definitions()

    def _resolve(self, invocation: ToolInvocation) -> tuple[Action | None, str]:
        try:
            action = validate_action(invocation.name, invocation.arguments)
        except InvalidActionError as e:
            logger.warning("Skipping tool call: %s", e)
            return None, f"Error: invalid arguments for {invocation.name}, skipped."
        return action, build_tool_result(action, self.board_objects)

    def _record_turn(
        self,
        turns: list[ConversationTurn],
        text: str,
        invocations: list[ToolInvocation],
        results: list[str],
    ) -> None:
        turns.append(ConversationTurn(role="assistant", content=text, tool_calls=invocations))
        for invocation, result in zip(invocations, results):
            turns.append(ConversationTurn(role="tool", content=result, tool_call_id=invocation.id))

    async def run(self, system_prompt: str, turns: list[ConversationTurn]) -> LoopResult:
        """Batched mode: collect every action and the joined text."""
        turns = list(turns)
        texts: list[str] = []
        actions: list[Action] = []
        usage = Usage()
        turns_used = 0

        for turn in range(self.adapter.spec.max_turns):
            completion = await self.adapter.complete(system_prompt, turns, self._tools)
            turns_used += 1
            usage.add(completion.usage)
            self.generations.append(Generation(
                turn=turn,
                text=completion.text,
                tool_names=[i.name for i in completion.invocations],
                usage=completion.usage,
            ))
            if completion.text:
                texts.append(completion.text)
            if not completion.invocations:
                break

            results = []
            for invocation in completion.invocations:
                action, result = self._resolve(invocation)
                if action is not None:
                    actions.append(action)
                results.append(result)
            self._record_turn(turns, completion.text, completion.invocations, results)
        else:
            logger.info("Turn budget of %d exhausted", self.adapter.spec.max_turns)

        text = " ".join(texts) or summarize_actions(actions)
        return LoopResult(text=text, actions=actions, usage=usage, turns_used=turns_used)

    async def run_streaming(
        self,
        system_prompt: str,
        turns: list[ConversationTurn],
        on_action: ActionCallback | None = None,
        on_text: TextCallback | None = None,
    ) -> LoopResult:
        """Streaming mode: text deltas and actions are reported as soon as the
        adapter produces them. Text from a later turn is separated from earlier
        text by a single space."""
        turns = list(turns)
        full_text = ""
        actions: list[Action] = []
        usage = Usage()
        turns_used = 0

        for turn in range(self.adapter.spec.max_turns):
            turn_text = ""
            invocations: list[ToolInvocation] = []
            results: list[str] = []
            turn_usage = Usage()

            async for item in self.adapter.complete_streaming(system_prompt, turns, self._tools):
                if isinstance(item, TextDelta):
                    if not item.text:
                        continue
                    delta = item.text
                    if not turn_text and full_text:
                        delta = " " + delta
                    turn_text += item.text
                    full_text += delta
                    await _notify(on_text, delta)
                elif isinstance(item, ToolInvocation):
                    action, result = self._resolve(item)
                    invocations.append(item)
                    results.append(result)
                    if action is not None:
                        actions.append(action)
                        await _notify(on_action, action)
                elif isinstance(item, Usage):
                    turn_usage.add(item)

            turns_used += 1
            usage.add(turn_usage)
            self.generations.append(Generation(
                turn=turn,
                text=turn_text,
                tool_names=[i.name for i in invocations],
                usage=turn_usage,
            ))
            if not invocations:
                break
            self._record_turn(turns, turn_text, invocations, results)
        else:
            logger.info("Turn budget of %d exhausted", self.adapter.spec.max_turns)

        return LoopResult(
            text=full_text or summarize_actions(actions),
            actions=actions,
            usage=usage,
            turns_used=turns_used,
        )
