"""Board command service: filter, classify, route to a backend bucket, run the tool loop."""

import asyncio
import inspect
import logging
import threading
from typing import AsyncIterator, Awaitable, Callable, Union

from board_agent.agent.adapters import ConversationTurn, ModelAdapter, create_adapter
from board_agent.agent.loop import ActionCallback, LoopResult, OrchestrationLoop, TextCallback
from board_agent.agent.models import ModelSpec, get_model_spec
from board_agent.agent.safety import REFUSAL_MESSAGE, TaskKind, classify_task, filter_message
from board_agent.config import settings
from board_agent.models.actions import Action
from board_agent.models.board_objects import BoardObject
from board_agent.models.schemas import AgentCommandResponse, HistoryTurn
from board_agent.services.layout_service import describe_board_layout
from board_agent.streaming import ActionEvent, ErrorEvent, TextEvent
from board_agent.tracing.cost_tracker import cost_tracker
from board_agent.tracing.setup import CommandTrace

logger = logging.getLogger(__name__)

ERROR_MESSAGE = "Sorry, I encountered an error processing your request."

SYSTEM_PROMPT = """You are an AI assistant for CollabBoard, a collaborative whiteboard.
You change the board only by calling the provided tools.

POSITIONING:
- x and y are offsets in pixels from the centre of the user's current view. (0, 0) is the centre.
- Leave 20-40px gaps between objects. Sticky notes are at least 200x200.

EDITING EXISTING OBJECTS:
- The board listing below shows every object with its id, type, text, color and position.
- Use move_object, update_object and delete_object with those ids. Never recreate an object that already exists.
- Use bulk_update_objects to change every object of one type at once.

DIAGRAMS AND SCENES:
- Give every node you create a short id (step1, step2, ...) and connect nodes with create_connector
  using start_object_id and end_object_id. Connected diagrams are laid out automatically.
- For drawings and scenes, compose them from rectangles, circles, lines and text.

RESPONSE STYLE:
- Always call the tools. Do not just describe what you would do.
- Your final message must be short and friendly. Never mention ids, coordinates or hex colors.

CURRENT BOARD:
{board_context}

LAYOUT:
{board_layout}"""

MAX_OBJECTS_IN_CONTEXT = 50
MAX_TEXT_LENGTH = 80


def _build_board_context(board_objects: list[BoardObject]) -> str:
    """Build a board listing the model can use to identify objects."""
    if not board_objects:
        return "Board is empty (0 objects)."

    lines = [f"Board has {len(board_objects)} objects.", "OBJECTS ON BOARD:"]
    shapes = [obj for obj in board_objects if not obj.is_connector()]
    listed = 0
    for obj in shapes:
        if listed >= MAX_OBJECTS_IN_CONTEXT:
            lines.append(f"  ... and {len(shapes) - listed} more objects")
            break
        text = obj.text or ""
        if len(text) > MAX_TEXT_LENGTH:
            text = text[:MAX_TEXT_LENGTH] + "..."
        parts = [f"  [{obj.type}] id={obj.id}"]
        if text:
            parts.append(f'text="{text}"')
        if obj.color:
            parts.append(f"color={obj.color}")
        parts.append(f"pos=({int(obj.x)},{int(obj.y)}) size={int(obj.width or 0)}x{int(obj.height or 0)}")
        lines.append(" ".join(parts))
        listed += 1
    return "\n".join(lines)


def _classify_operation(command: str) -> str:
    """Classify the operation type for cost tracking."""
    cmd = command.lower()
    if any(w in cmd for w in ["flowchart", "diagram", "connect", "workflow", "process"]):
        return "diagram"
    if any(w in cmd for w in ["organize", "arrange", "tidy", "align"]):
        return "organize"
    if any(w in cmd for w in ["delete", "remove", "clear"]):
        return "delete"
    if any(w in cmd for w in ["move", "change", "update", "resize", "recolor"]):
        return "edit"
    if any(w in cmd for w in ["analyze", "summarize", "what is on"]):
        return "analysis"
    if any(w in cmd for w in ["draw", "sketch", "paint", "scene"]):
        return "drawing"
    return "create"


def _limit_history(history: list[HistoryTurn] | None) -> list[ConversationTurn]:
    turns = [
        ConversationTurn(role=h.role, content=h.content)
        for h in (history or [])
        if h.role in ("user", "assistant") and h.content
    ]
    return turns[-settings.history_limit:]


AdapterFactory = Callable[[ModelSpec], ModelAdapter]


class BoardAgent:
    """Entry point for board commands.

    Adapters are created lazily per bucket and cached. Tests (or alternative
    providers) can pass ``adapters`` or an ``adapter_factory``.
    """

    def __init__(
        self,
        adapters: dict[TaskKind, ModelAdapter] | None = None,
        adapter_factory: AdapterFactory = create_adapter,
    ):
        self._adapters: dict[TaskKind, ModelAdapter] = dict(adapters or {})
        self._adapter_factory = adapter_factory
        self._lock = threading.Lock()

    def get_adapter(self, kind: TaskKind) -> ModelAdapter:
        with self._lock:
            adapter = self._adapters.get(kind)
        if adapter is not None:
            return adapter
        adapter = self._adapter_factory(get_model_spec(kind))
        with self._lock:
            self._adapters.setdefault(kind, adapter)
        logger.info("Created %s adapter (%s)", kind.value, adapter.spec.api_model_name)
        return adapter

    def _prepare(self, text, board_objects, user_id, history):
        trace = CommandTrace(
            name="board-ai-command",
            user_id=user_id,
            input={"command": text, "objectCount": len(board_objects)},
        )
        system_prompt = SYSTEM_PROMPT.format(
            board_context=_build_board_context(board_objects),
            board_layout=describe_board_layout(board_objects),
        )
        turns = _limit_history(history) + [ConversationTurn(role="user", content=text)]
        return trace, system_prompt, turns

    def _refuse(self, trace: CommandTrace, reason: str | None) -> None:
        logger.info("Command refused (%s)", reason)
        cost_tracker.record(
            model="filtered",
            task_kind="filtered",
            input_tokens=0,
            output_tokens=0,
            trace_id=trace.id,
            operation="refusal",
        )
        trace.update(output={"message": REFUSAL_MESSAGE, "refused": reason})
        trace.flush()

    def _record(
        self,
        trace: CommandTrace,
        loop: OrchestrationLoop,
        kind: TaskKind,
        text: str,
        system_prompt: str,
    ) -> None:
        spec = loop.adapter.spec
        for gen in loop.generations:
            trace.generation(
                name=f"{spec.provider}-turn-{gen.turn}",
                model=spec.api_model_name,
                input={"command": text} if gen.turn == 0 else None,
                output={"text": gen.text, "tools": gen.tool_names},
                input_tokens=gen.usage.input_tokens,
                output_tokens=gen.usage.output_tokens,
            )
            cost_tracker.record(
                model=spec.api_model_name,
                task_kind=kind.value,
                input_tokens=gen.usage.input_tokens or len(system_prompt.split()) * 4,
                output_tokens=gen.usage.output_tokens,
                trace_id=trace.id,
                operation=_classify_operation(text),
            )

    async def process_command(
        self,
        text: str,
        board_objects: list[BoardObject] | None = None,
        user_id: str = "",
        history: list[HistoryTurn] | None = None,
    ) -> AgentCommandResponse:
        """Run a command to completion and return the reply with every action."""
        board_objects = board_objects or []
        trace, system_prompt, turns = self._prepare(text, board_objects, user_id, history)

        verdict = filter_message(text)
        if not verdict.allowed:
            self._refuse(trace, verdict.reason)
            return AgentCommandResponse(message=REFUSAL_MESSAGE, trace_id=trace.id)

        kind = classify_task(text)
        loop = None
        try:
            loop = OrchestrationLoop(self.get_adapter(kind), board_objects)
            result: LoopResult = await loop.run(system_prompt, turns)
        except Exception as e:
            logger.error("Command failed on %s bucket: %s", kind.value, e)
            if loop is not None:
                self._record(trace, loop, kind, text, system_prompt)
            trace.update(output={"error": str(e)}, error=str(e))
            trace.flush()
            return AgentCommandResponse(message=ERROR_MESSAGE, error=str(e), trace_id=trace.id)

        self._record(trace, loop, kind, text, system_prompt)
        trace.update(output={"message": result.text, "actionCount": len(result.actions)})
        trace.flush()
        logger.info(
            "Command done: kind=%s turns=%d actions=%d",
            kind.value, result.turns_used, len(result.actions),
        )
        return AgentCommandResponse(message=result.text, actions=result.actions, trace_id=trace.id)

    async def process_command_streaming(
        self,
        text: str,
        board_objects: list[BoardObject] | None = None,
        user_id: str = "",
        history: list[HistoryTurn] | None = None,
        on_action: ActionCallback | None = None,
        on_text: TextCallback | None = None,
        on_error: Callable[[str], Union[None, Awaitable[None]]] | None = None,
    ) -> AgentCommandResponse:
        """Run a command, reporting text deltas and actions as they are produced.

        A refused command produces exactly one ``on_text`` call with the
        refusal. A backend failure produces one ``on_error`` call with the raw
        error; actions already reported stay reported.
        """
        board_objects = board_objects or []
        trace, system_prompt, turns = self._prepare(text, board_objects, user_id, history)

        verdict = filter_message(text)
        if not verdict.allowed:
            self._refuse(trace, verdict.reason)
            if on_text is not None:
                await _call(on_text, REFUSAL_MESSAGE)
            return AgentCommandResponse(message=REFUSAL_MESSAGE, trace_id=trace.id)

        kind = classify_task(text)
        loop = None
        try:
            loop = OrchestrationLoop(self.get_adapter(kind), board_objects)
            result = await loop.run_streaming(system_prompt, turns, on_action=on_action, on_text=on_text)
        except Exception as e:
            logger.error("Streaming command failed on %s bucket: %s", kind.value, e)
            if loop is not None:
                self._record(trace, loop, kind, text, system_prompt)
            trace.update(output={"error": str(e)}, error=str(e))
            trace.flush()
            if on_error is not None:
                await _call(on_error, str(e))
            return AgentCommandResponse(message=ERROR_MESSAGE, error=str(e), trace_id=trace.id)

        self._record(trace, loop, kind, text, system_prompt)
        trace.update(output={"message": result.text, "actionCount": len(result.actions)})
        trace.flush()
        return AgentCommandResponse(message=result.text, actions=result.actions, trace_id=trace.id)

    async def stream_events(
        self,
        text: str,
        board_objects: list[BoardObject] | None = None,
        user_id: str = "",
        history: list[HistoryTurn] | None = None,
    ) -> AsyncIterator[Union[ActionEvent, TextEvent, ErrorEvent]]:
        """Async iterator over wire events for one command."""
        queue: asyncio.Queue = asyncio.Queue()
        done = object()

        async def on_action(action: Action) -> None:
            await queue.put(ActionEvent(action=action))

        async def on_text(delta: str) -> None:
            await queue.put(TextEvent(text=delta))

        async def on_error(message: str) -> None:
            await queue.put(ErrorEvent(message=message))

        async def run() -> None:
            try:
                await self.process_command_streaming(
                    text, board_objects, user_id, history,
                    on_action=on_action, on_text=on_text, on_error=on_error,
                )
            finally:
                await queue.put(done)

        task = asyncio.create_task(run())
        try:
            while True:
                event = await queue.get()
                if event is done:
                    break
                yield event
            await task
        finally:
            if not task.done():
                task.cancel()


async def _call(callback, value) -> None:
    result = callback(value)
    if inspect.isawaitable(result):
        await result


default_agent = BoardAgent()
