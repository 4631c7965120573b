"""Tests for the streamed command consumer and the HTTP client."""

import json

import httpx
import pytest

from board_agent.client.applier import IdNamespace
from board_agent.client.session import ERROR_MESSAGE, STREAM_PATH, CommandSession, run_remote_command
from board_agent.models.actions import Action
from board_agent.store import InMemoryBoardStore
from board_agent.streaming import ActionEvent, ErrorEvent, TextEvent, encode_event


def _payload(*events) -> bytes:
    return b"".join(encode_event(e) for e in events)


async def _chunks(data: bytes, size: int = 7):
    for i in range(0, len(data), size):
        yield data[i:i + size]


def _action(tool: str, **arguments) -> ActionEvent:
    return ActionEvent(action=Action(tool=tool, arguments=arguments))


class TestCommandSession:
    """Tests for CommandSession.consume."""

    @pytest.mark.asyncio
    async def test_applies_actions_and_concatenates_text(self, board_objects) -> None:
        store = InMemoryBoardStore(board_objects, enforce_foreign_keys=True)
        renders = []
        session = CommandSession(
            store, board_objects, namespace=IdNamespace("b9"), on_text=renders.append,
        )
        data = _payload(
            TextEvent(text="Building"),
            _action("create_sticky_note", id="s1", text="One"),
            _action("create_sticky_note", id="s2", text="Two"),
            _action("create_connector", start_object_id="s1", end_object_id="s2"),
            TextEvent(text=" Done!"),
        )

        outcome = await session.consume(_chunks(data))

        assert outcome.message == "Building Done!"
        assert outcome.error is None
        assert renders == ["Building", "Building Done!"]
        assert [a.tool for a in outcome.actions] == ["create_sticky_note", "create_sticky_note", "create_connector"]
        assert any(o.type == "connector" for o in store.objects.values())

    @pytest.mark.asyncio
    async def test_summary_when_no_text(self) -> None:
        session = CommandSession(InMemoryBoardStore())

        outcome = await session.consume(_chunks(_payload(_action("create_circle"), _action("create_circle"))))

        assert outcome.message == "Here's 2 circles!"

    @pytest.mark.asyncio
    async def test_error_stops_consumption_but_keeps_applied_actions(self) -> None:
        store = InMemoryBoardStore()
        session = CommandSession(store)
        data = _payload(
            _action("create_rectangle"),
            ErrorEvent(message="rate limited"),
            _action("create_circle"),
        )

        outcome = await session.consume(_chunks(data, size=1000))

        assert outcome.error == "rate limited"
        assert outcome.message == ERROR_MESSAGE
        assert [o.type for o in store.objects.values()] == ["rectangle"]

    @pytest.mark.asyncio
    async def test_unterminated_last_line(self) -> None:
        session = CommandSession(InMemoryBoardStore())
        data = _payload(TextEvent(text="ok")).rstrip(b"\n")

        outcome = await session.consume(_chunks(data))

        assert outcome.message == "ok"

    @pytest.mark.asyncio
    async def test_on_action_callback(self) -> None:
        seen = []

        async def on_action(action):
            seen.append(action.tool)

        session = CommandSession(InMemoryBoardStore(), on_action=on_action)
        await session.consume(_chunks(_payload(_action("clear_board"))))

        assert seen == ["clear_board"]


class TestRunRemoteCommand:
    """Tests for run_remote_command against a mocked transport."""

    @pytest.mark.asyncio
    async def test_posts_request_and_replays_stream(self, board_objects) -> None:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            body = _payload(_action("delete_object", id="1"), TextEvent(text="Removed it."))
            return httpx.Response(200, content=body, headers={"content-type": "application/x-ndjson"})

        store = InMemoryBoardStore(board_objects)
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            outcome = await run_remote_command(
                "http://agent.test/", "delete the first note", store,
                board_objects=board_objects, user_id="u1", client=client,
            )

        assert outcome.message == "Removed it."
        assert "1" not in store.objects
        assert requests[0].url.path == STREAM_PATH
        sent = json.loads(requests[0].content)
        assert sent["command"] == "delete the first note"
        assert sent["user_id"] == "u1"
        assert len(sent["board_objects"]) == 4

    @pytest.mark.asyncio
    async def test_http_error_returns_generic_message(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, content=b"boom")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            outcome = await run_remote_command("http://agent.test", "add a note", InMemoryBoardStore(), client=client)

        assert outcome.message == ERROR_MESSAGE
        assert outcome.error
        assert outcome.actions == []


class TestInterruptedStream:
    """A transport failure mid-stream still completes what was applied."""

    @pytest.mark.asyncio
    async def test_connectors_flushed_before_error_propagates(self) -> None:
        store = InMemoryBoardStore(enforce_foreign_keys=True)
        session = CommandSession(store, namespace=IdNamespace("b5"))
        data = _payload(
            _action("create_circle", id="a"),
            _action("create_circle", id="b"),
            _action("create_connector", start_object_id="a", end_object_id="b"),
        )

        async def broken():
            yield data
            raise ConnectionResetError("peer closed")

        with pytest.raises(ConnectionResetError):
            await session.consume(broken())

        assert any(o.type == "connector" for o in store.objects.values())
