"""Consume a streamed command: decode NDJSON, apply actions, finish the board."""

import inspect
import logging
from dataclasses import dataclass, field
from typing import AsyncIterable, Callable

import httpx

from board_agent.agent.loop import summarize_actions
from board_agent.client.applier import ActionApplier, IdNamespace, Viewport
from board_agent.models.actions import Action
from board_agent.models.board_objects import BoardObject
from board_agent.models.schemas import AgentCommandRequest, HistoryTurn
from board_agent.store import BoardStore
from board_agent.streaming import ActionEvent, ErrorEvent, StreamDecoder, TextEvent

logger = logging.getLogger(__name__)

ERROR_MESSAGE = "Sorry, I encountered an error processing your request."
STREAM_PATH = "/agent/command/stream"


@dataclass
class CommandOutcome:
    message: str
    actions: list[Action] = field(default_factory=list)
    error: str | None = None


class CommandSession:
    """Transport-independent consumer for one command's event stream.

    ``on_text`` receives the accumulated reply after every text event, the way
    a chat bubble re-renders.
    """

    def __init__(
        self,
        store: BoardStore,
        board_objects: list[BoardObject] | None = None,
        viewport: Viewport | None = None,
        settle_seconds: float | None = None,
        namespace: IdNamespace | None = None,
        on_text: Callable[[str], None] | None = None,
        on_action: Callable[[Action], None] | None = None,
    ):
        self.applier = ActionApplier(
            store,
            board_objects=board_objects,
            viewport=viewport,
            settle_seconds=settle_seconds,
            namespace=namespace,
        )
        self.on_text = on_text
        self.on_action = on_action
        self.text = ""
        self.error: str | None = None

    @property
    def actions(self) -> list[Action]:
        return self.applier.actions

    async def _handle(self, event) -> None:
        if isinstance(event, ActionEvent):
            await self.applier.apply(event.action)
            if self.on_action is not None:
                result = self.on_action(event.action)
                if inspect.isawaitable(result):
                    await result
        elif isinstance(event, TextEvent):
            self.text += event.text
            if self.on_text is not None:
                self.on_text(self.text)
        elif isinstance(event, ErrorEvent):
            self.error = event.message

    async def consume(self, chunks: AsyncIterable[bytes | str]) -> CommandOutcome:
        decoder = StreamDecoder()
        try:
            async for chunk in chunks:
                for event in decoder.feed(chunk):
                    await self._handle(event)
                    if self.error is not None:
                        break
                if self.error is not None:
                    break
            else:
                for event in decoder.close():
                    await self._handle(event)
        finally:
            await self.applier.finish()

        if self.error is not None:
            logger.error("Command failed on the server: %s", self.error)
            return CommandOutcome(message=ERROR_MESSAGE, actions=self.actions, error=self.error)
        return CommandOutcome(
            message=self.text or summarize_actions(self.actions),
            actions=self.actions,
        )


async def run_remote_command(
    base_url: str,
    command: str,
    store: BoardStore,
    board_objects: list[BoardObject] | None = None,
    history: list[HistoryTurn] | None = None,
    viewport: Viewport | None = None,
    user_id: str = "",
    client: httpx.AsyncClient | None = None,
    settle_seconds: float | None = None,
) -> CommandOutcome:
    """Send a command to the streaming endpoint and replay the result onto ``store``."""
    session = CommandSession(store, board_objects=board_objects, viewport=viewport, settle_seconds=settle_seconds)
    payload = AgentCommandRequest(
        command=command,
        board_objects=board_objects or [],
        history=history or [],
        user_id=user_id,
    ).model_dump(mode="json")

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=httpx.Timeout(120.0, connect=10.0))
    try:
        async with client.stream("POST", base_url.rstrip("/") + STREAM_PATH, json=payload) as response:
            response.raise_for_status()
            return await session.consume(response.aiter_bytes())
    except httpx.HTTPError as e:
        logger.error("Remote command failed: %s", e)
        return CommandOutcome(message=ERROR_MESSAGE, actions=session.actions, error=str(e))
    finally:
        if owns_client:
            await client.aclose()
