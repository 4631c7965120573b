"""Provider adapters: one protocol, one LangChain-backed implementation per bucket.

The orchestration loop only talks to ``ModelAdapter``. Provider differences
(system prompt placement, tool schema format, streaming chunk shapes) are
absorbed by the LangChain chat model each adapter wraps.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Protocol, Union

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_openai import ChatOpenAI

from board_agent.agent.models import ModelSpec
from board_agent.config import settings

logger = logging.getLogger(__name__)


@dataclass
class ToolInvocation:
    """A tool call requested by the model. ``arguments`` is a dict when the
    provider parsed it, or the raw string when it could not."""

    name: str
    arguments: Union[dict, str, None]
    id: str = field(default_factory=lambda: f"call_{uuid.uuid4().hex[:12]}")


@dataclass
class TextDelta:
    text: str


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    def add(self, other: "Usage") -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens


@dataclass
class Completion:
    text: str
    invocations: list[ToolInvocation]
    usage: Usage = field(default_factory=Usage)


@dataclass
class ConversationTurn:
    role: str  # "system" | "user" | "assistant" | "tool"
    content: str = ""
    tool_calls: list[ToolInvocation] = field(default_factory=list)
    tool_call_id: str | None = None


StreamItem = Union[TextDelta, ToolInvocation, Usage]


class ModelAdapter(Protocol):
    spec: ModelSpec

    async def complete(
        self, system_prompt: str, turns: list[ConversationTurn], tools: list[dict]
    ) -> Completion:
        ...

    def complete_streaming(
        self, system_prompt: str, turns: list[ConversationTurn], tools: list[dict]
    ) -> AsyncIterator[StreamItem]:
        ...


def to_langchain_messages(system_prompt: str, turns: list[ConversationTurn]) -> list[BaseMessage]:
    messages: list[BaseMessage] = [SystemMessage(content=system_prompt)]
    for turn in turns:
        if turn.role == "user":
            messages.append(HumanMessage(content=turn.content))
        elif turn.role == "assistant":
            messages.append(AIMessage(
                content=turn.content,
                tool_calls=[
                    {
                        "name": call.name,
                        "args": call.arguments if isinstance(call.arguments, dict) else {},
                        "id": call.id,
                    }
                    for call in turn.tool_calls
                ],
            ))
        elif turn.role == "tool":
            messages.append(ToolMessage(content=turn.content, tool_call_id=turn.tool_call_id or ""))
        elif turn.role == "system":
            messages.append(SystemMessage(content=turn.content))
        else:
            raise ValueError(f"Unknown conversation role: {turn.role}")
    return messages


def content_text(content: Any) -> str:
    """Extract plain text from a message's content (string or content blocks)."""
    if isinstance(content, str):
        return content
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def _usage_from(message: Any) -> Usage:
    metadata = getattr(message, "usage_metadata", None) or {}
    return Usage(
        input_tokens=metadata.get("input_tokens", 0) or 0,
        output_tokens=metadata.get("output_tokens", 0) or 0,
    )


def _parse_streamed_args(raw: str) -> Union[dict, str]:
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    return parsed if isinstance(parsed, dict) else raw


class LangChainAdapter:
    """ModelAdapter over any LangChain chat model that supports tool binding."""

    def __init__(self, spec: ModelSpec, llm: BaseChatModel):
        self.spec = spec
        self._llm = llm

    async def complete(
        self, system_prompt: str, turns: list[ConversationTurn], tools: list[dict]
    ) -> Completion:
        bound = self._llm.bind_tools(tools)
        message = await bound.ainvoke(to_langchain_messages(system_prompt, turns))

        invocations = [
            ToolInvocation(name=call["name"], arguments=call.get("args"), id=call.get("id") or f"call_{uuid.uuid4().hex[:12]}")
            for call in message.tool_calls
        ]
        for call in getattr(message, "invalid_tool_calls", None) or []:
            logger.warning("Provider returned unparsable tool call %s", call.get("name"))
            invocations.append(ToolInvocation(
                name=call.get("name") or "",
                arguments=call.get("args"),
                id=call.get("id") or f"call_{uuid.uuid4().hex[:12]}",
            ))

        return Completion(
            text=content_text(message.content),
            invocations=invocations,
            usage=_usage_from(message),
        )

    async def complete_streaming(
        self, system_prompt: str, turns: list[ConversationTurn], tools: list[dict]
    ) -> AsyncIterator[StreamItem]:
        """Yield text deltas as they arrive and each tool call once its
        arguments are complete (when the stream moves on to the next call, or
        at the end). A single ``Usage`` item closes the stream."""
        bound = self._llm.bind_tools(tools)
        usage = Usage()
        pending: dict | None = None

        def finish(entry: dict) -> ToolInvocation:
            return ToolInvocation(
                name=entry["name"],
                arguments=_parse_streamed_args(entry["args"]),
                id=entry["id"] or f"call_{uuid.uuid4().hex[:12]}",
            )

        async for chunk in bound.astream(to_langchain_messages(system_prompt, turns)):
            text = content_text(chunk.content)
            if text:
                yield TextDelta(text=text)

            for piece in getattr(chunk, "tool_call_chunks", None) or []:
                index = piece.get("index")
                starts_new = pending is None or (index is not None and index != pending["index"])
                if starts_new:
                    if pending is not None:
                        yield finish(pending)
                    pending = {"index": index, "name": "", "args": "", "id": None}
                if piece.get("name"):
                    pending["name"] += piece["name"]
                if piece.get("args"):
                    pending["args"] += piece["args"]
                if piece.get("id"):
                    pending["id"] = piece["id"]

            usage.add(_usage_from(chunk))

        if pending is not None:
            yield finish(pending)
        yield usage


def _create_llm(spec: ModelSpec) -> BaseChatModel:
    """Create the LangChain chat model for the given bucket."""
    if spec.provider == "openai":
        if not settings.openai_api_key:
            raise ValueError("OPENAI_API_KEY is not configured")
        return ChatOpenAI(
            model=spec.api_model_name,
            temperature=spec.temperature,
            max_tokens=spec.max_tokens,
            api_key=settings.openai_api_key,
            stream_usage=True,
        )
    elif spec.provider == "anthropic":
        if not settings.anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY is not configured")
        return ChatAnthropic(
            model=spec.api_model_name,
            temperature=spec.temperature,
            max_tokens=spec.max_tokens,
            api_key=settings.anthropic_api_key,
        )
    else:
        raise ValueError(f"Unknown provider: {spec.provider}")


def create_adapter(spec: ModelSpec) -> LangChainAdapter:
    return LangChainAdapter(spec, _create_llm(spec))
