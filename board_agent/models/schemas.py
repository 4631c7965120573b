from pydantic import BaseModel, Field

from board_agent.models.actions import Action
from board_agent.models.board_objects import BoardObject


# ── Agent Command ────────────────────────────────────────────────────────────

class HistoryTurn(BaseModel):
    role: str
    content: str


class AgentCommandRequest(BaseModel):
    command: str
    board_objects: list[BoardObject] = []
    history: list[HistoryTurn] = []
    user_id: str = ""


class AgentCommandResponse(BaseModel):
    message: str
    actions: list[Action] = []
    error: str | None = None
    trace_id: str = ""


# ── Templates ────────────────────────────────────────────────────────────────

class SwotRequest(BaseModel):
    title: str | None = None
    strengths: list[str] = []
    weaknesses: list[str] = []
    opportunities: list[str] = []
    threats: list[str] = []


class KanbanColumn(BaseModel):
    name: str
    cards: list[str] = []


class KanbanRequest(BaseModel):
    title: str | None = None
    columns: list[KanbanColumn] = Field(min_length=1)


class FlowchartNode(BaseModel):
    id: str
    text: str
    color: str | None = None


class FlowchartEdge(BaseModel):
    from_id: str = Field(alias="from")
    to_id: str = Field(alias="to")
    label: str | None = None


class FlowchartRequest(BaseModel):
    nodes: list[FlowchartNode] = Field(min_length=1)
    edges: list[FlowchartEdge] = []


class TemplateResponse(BaseModel):
    actions: list[Action]
