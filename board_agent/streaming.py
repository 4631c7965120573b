"""Newline-delimited JSON wire format for streamed command results.

Every event is one JSON object on its own line. The decoder tolerates
arbitrary chunk boundaries (including inside multi-byte UTF-8 characters),
blank lines and lines it cannot parse.
"""

import codecs
import logging
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from board_agent.models.actions import Action

logger = logging.getLogger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"


class ActionEvent(BaseModel):
    type: Literal["action"] = "action"
    action: Action


class TextEvent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str


StreamEvent = Annotated[Union[ActionEvent, TextEvent, ErrorEvent], Field(discriminator="type")]

_event_adapter: TypeAdapter = TypeAdapter(StreamEvent)


def encode_event(event: ActionEvent | TextEvent | ErrorEvent) -> bytes:
    return (event.model_dump_json() + "\n").encode("utf-8")


class StreamDecoder:
    """Incremental NDJSON decoder. Feed raw chunks, get complete events back."""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes | str) -> list[ActionEvent | TextEvent | ErrorEvent]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        return [event for event in map(self._parse, lines) if event is not None]

    def close(self) -> list[ActionEvent | TextEvent | ErrorEvent]:
        """Drain whatever is left once the stream has ended."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        event = self._parse(tail)
        return [event] if event is not None else []

    @staticmethod
    def _parse(line: str):
        line = line.strip()
        if not line:
            return None
        try:
            return _event_adapter.validate_json(line)
        except ValidationError as e:
            logger.debug("Skipping malformed stream line %r: %s", line[:80], e)
            return None
