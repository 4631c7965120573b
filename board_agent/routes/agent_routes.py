"""Agent API routes: batched and streamed commands, templates, model buckets."""

import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from board_agent.agent.agent import default_agent
from board_agent.agent.models import MODEL_BUCKETS
from board_agent.config import settings
from board_agent.models.schemas import (
    AgentCommandRequest, AgentCommandResponse,
    SwotRequest, KanbanRequest, FlowchartRequest, TemplateResponse,
)
from board_agent.services.template_service import expand_flowchart, expand_kanban, expand_swot
from board_agent.streaming import NDJSON_MEDIA_TYPE, encode_event

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/command", response_model=AgentCommandResponse)
async def handle_command(request: AgentCommandRequest):
    """Process a natural language command and return every board action at once."""
    if not request.command.strip():
        raise HTTPException(status_code=400, detail="Command cannot be empty")

    return await default_agent.process_command(
        request.command,
        board_objects=request.board_objects,
        user_id=request.user_id,
        history=request.history,
    )


@router.post("/command/stream")
async def handle_command_stream(request: AgentCommandRequest):
    """Process a command and stream actions and text as newline-delimited JSON.

    Each event is flushed as soon as it is produced, so the client can apply
    actions while the model is still working.
    """
    if not request.command.strip():
        raise HTTPException(status_code=400, detail="Command cannot be empty")

    async def body():
        async for event in default_agent.stream_events(
            request.command,
            board_objects=request.board_objects,
            user_id=request.user_id,
            history=request.history,
        ):
            yield encode_event(event)

    return StreamingResponse(
        body(),
        media_type=NDJSON_MEDIA_TYPE,
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/templates/swot", response_model=TemplateResponse)
async def swot_template(request: SwotRequest):
    return TemplateResponse(actions=expand_swot(request))


@router.post("/templates/kanban", response_model=TemplateResponse)
async def kanban_template(request: KanbanRequest):
    return TemplateResponse(actions=expand_kanban(request))


@router.post("/templates/flowchart", response_model=TemplateResponse)
async def flowchart_template(request: FlowchartRequest):
    return TemplateResponse(actions=expand_flowchart(request))


@router.get("/models")
async def list_models():
    """Return the two backend buckets and their fixed settings.

    A bucket is available only when its provider key is configured.
    """
    models = []
    for kind, spec in MODEL_BUCKETS.items():
        if spec.provider == "openai":
            available = bool(settings.openai_api_key)
        elif spec.provider == "anthropic":
            available = bool(settings.anthropic_api_key)
        else:
            available = False

        models.append({
            "task_kind": kind.value,
            "model_id": spec.model_id,
            "display_name": spec.display_name,
            "provider": spec.provider,
            "max_tokens": spec.max_tokens,
            "max_turns": spec.max_turns,
            "available": available,
        })
    return {"models": models}
