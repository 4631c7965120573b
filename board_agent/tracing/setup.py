import logging
import threading
import uuid
from typing import Any

from langfuse import Langfuse

from board_agent.config import settings

logger = logging.getLogger(__name__)

langfuse_client: Langfuse | None = None


def init_tracing():
    """Initialize the Langfuse client when keys are configured."""
    global langfuse_client

    if settings.langfuse_secret_key and settings.langfuse_public_key:
        langfuse_client = Langfuse(
            secret_key=settings.langfuse_secret_key,
            public_key=settings.langfuse_public_key,
            host=settings.langfuse_host,
        )
        logger.info("Langfuse tracing enabled (host: %s)", settings.langfuse_host)
    else:
        logger.warning("Langfuse tracing disabled, keys not set")


def shutdown_tracing():
    global langfuse_client
    if langfuse_client:
        langfuse_client.flush()
        langfuse_client.shutdown()
        langfuse_client = None


def _flush(client: Langfuse) -> None:
    try:
        client.flush()
    except Exception as e:
        logger.warning("Langfuse flush failed: %s", e)


class CommandTrace:
    """One Langfuse trace per board command.

    Every method is a no-op when tracing is disabled, so callers never branch
    on configuration.
    """

    def __init__(self, name: str, user_id: str, input: dict):
        self._client = langfuse_client
        self._trace = None
        if self._client is not None:
            self._trace = self._client.trace(name=name, user_id=user_id or None, input=input)
        self.id = getattr(self._trace, "id", None) or str(uuid.uuid4())

    @property
    def enabled(self) -> bool:
        return self._trace is not None

    def generation(
        self,
        name: str,
        model: str,
        input: Any,
        output: Any,
        input_tokens: int = 0,
        output_tokens: int = 0,
    ) -> None:
        if self._trace is None:
            return
        self._trace.generation(
            name=name,
            model=model,
            input=input,
            output=output,
            usage={"input": input_tokens, "output": output_tokens},
        )

    def update(self, output: dict, error: str | None = None) -> None:
        if self._trace is None:
            return
        if error is not None:
            self._trace.event(name="command-error", level="ERROR", status_message=error)
        self._trace.update(output=output, metadata={"level": "ERROR" if error else "DEFAULT"})

    def flush(self) -> None:
        """Send buffered events in the background; never blocks the caller."""
        if self._client is None:
            return
        threading.Thread(target=_flush, args=(self._client,), daemon=True).start()
