"""Closed vocabulary of board actions the model is allowed to emit.

Every tool has a pydantic argument model. The same models generate the tool
definitions sent to the providers and validate the arguments that come back,
so the two can never drift apart.
"""

import json
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

Number = Union[int, float]
Anchor = Literal["top", "bottom", "left", "right", "center"]

ToolName = Literal[
    "create_sticky_note",
    "create_rectangle",
    "create_circle",
    "create_line",
    "create_text",
    "create_connector",
    "move_object",
    "update_object",
    "bulk_update_objects",
    "delete_object",
    "clear_board",
    "organize_board",
    "analyze_board",
]


class InvalidActionError(ValueError):
    """Raised when a tool invocation is unknown or its arguments are malformed."""

    def __init__(self, tool: str, detail: str):
        super().__init__(f"Invalid arguments for {tool}: {detail}")
        self.tool = tool
        self.detail = detail


class _Args(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class _Placed(_Args):
    id: str | None = Field(default=None, description="Optional id, reuse it to reference this object later in the same command")
    x: Number | None = Field(default=None, description="Horizontal offset from the centre of the user's view")
    y: Number | None = Field(default=None, description="Vertical offset from the centre of the user's view")
    color: str | None = Field(default=None, description="Hex color code")
    z_index: int | None = None


# ── Creation ─────────────────────────────────────────────────────────────────

class CreateStickyNoteArgs(_Placed):
    """Create a sticky note. It is placed near the user's current view."""

    text: str = Field(description="The text content of the sticky note")
    width: Number | None = Field(default=None, description="Width, at least 200")
    height: Number | None = Field(default=None, description="Height, at least 200")


class CreateRectangleArgs(_Placed):
    """Create a rectangle shape near the user's current view."""

    width: Number | None = Field(default=None, description="Width (default 160)")
    height: Number | None = Field(default=None, description="Height (default 120)")


class CreateCircleArgs(_Placed):
    """Create a circle shape near the user's current view."""

    size: Number | None = Field(default=None, description="Diameter (default 140)")


class CreateLineArgs(_Placed):
    """Create a line near the user's current view."""

    width: Number | None = Field(default=None, description="Horizontal extent (default 200)")
    height: Number | None = Field(default=None, description="Vertical extent (default 0)")


class CreateTextArgs(_Placed):
    """Create a free text label near the user's current view."""

    text: str = Field(description="The text to display")
    font_size: Number | None = Field(default=None, description="Font size (default 24)")
    width: Number | None = None


class CreateConnectorArgs(_Args):
    """Connect two objects (or two points) with an arrow."""

    id: str | None = None
    start_object_id: str | None = Field(default=None, description="Id of the object the connector starts at")
    end_object_id: str | None = Field(default=None, description="Id of the object the connector ends at")
    start_anchor: Anchor | None = None
    end_anchor: Anchor | None = None
    start_x: Number | None = None
    start_y: Number | None = None
    end_x: Number | None = None
    end_y: Number | None = None
    style: Literal["orthogonal", "straight", "curved"] | None = None
    color: str | None = None
    stroke_width: Number | None = None
    arrow_end: bool | None = None
    label: str | None = Field(default=None, description="Optional label shown at the connector midpoint")
    z_index: int | None = None


# ── Editing ──────────────────────────────────────────────────────────────────

class MoveObjectArgs(_Args):
    """Move an existing object to an offset from the centre of the user's view."""

    id: str
    x: Number | None = None
    y: Number | None = None


class UpdateObjectArgs(_Args):
    """Change properties of an existing object. Only the given fields change."""

    id: str
    color: str | None = None
    text: str | None = None
    font_size: Number | None = None
    width: Number | None = None
    height: Number | None = None
    z_index: int | None = None


class ObjectChanges(_Args):
    id: str
    color: str | None = None
    text: str | None = None
    width: Number | None = None
    height: Number | None = None
    z_index: int | None = None


class BulkFilter(_Args):
    type: str = Field(description="Object type to match, e.g. sticky, rectangle, circle")
    color: str | None = None
    text: str | None = None
    width: Number | None = None
    height: Number | None = None
    z_index: int | None = None


class BulkUpdateObjectsArgs(_Args):
    """Update many objects at once, either every object of a type or an explicit list."""

    filter: BulkFilter | None = Field(default=None, description="Type to match plus the changes to apply")
    updates: list[ObjectChanges] | None = None


class DeleteObjectArgs(_Args):
    """Delete an object from the board."""

    id: str


class ClearBoardArgs(_Args):
    """Remove every object from the board."""


class OrganizeBoardArgs(_Args):
    """Arrange the objects on the board into tidy groups."""

    strategy: str | None = Field(default=None, description="Organization strategy, e.g. grid, by_type, by_color")


class AnalyzeBoardArgs(_Args):
    """Summarize what is currently on the board."""


ACTION_SCHEMAS: dict[str, type[_Args]] = {
    "create_sticky_note": CreateStickyNoteArgs,
    "create_rectangle": CreateRectangleArgs,
    "create_circle": CreateCircleArgs,
    "create_line": CreateLineArgs,
    "create_text": CreateTextArgs,
    "create_connector": CreateConnectorArgs,
    "move_object": MoveObjectArgs,
    "update_object": UpdateObjectArgs,
    "bulk_update_objects": BulkUpdateObjectsArgs,
    "delete_object": DeleteObjectArgs,
    "clear_board": ClearBoardArgs,
    "organize_board": OrganizeBoardArgs,
    "analyze_board": AnalyzeBoardArgs,
}


class Action(BaseModel):
    """A validated board mutation: one tool name plus its arguments."""

    tool: ToolName
    arguments: dict[str, Any] = {}


def validate_action(tool: str, arguments: dict | str | None) -> Action:
    """Validate a raw tool invocation and return the normalized Action.

    Arguments may arrive as a JSON string (unparsed provider output). Unset
    fields are dropped from the result.
    """
    schema = ACTION_SCHEMAS.get(tool)
    if schema is None:
        raise InvalidActionError(tool, "unknown tool")

    if arguments is None:
        arguments = {}
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments) if arguments.strip() else {}
        except json.JSONDecodeError as e:
            raise InvalidActionError(tool, f"unparsable JSON ({e})") from e
    if not isinstance(arguments, dict):
        raise InvalidActionError(tool, "arguments must be an object")

    try:
        parsed = schema.model_validate(arguments)
    except ValidationError as e:
        raise InvalidActionError(tool, str(e)) from e

    return Action(tool=tool, arguments=parsed.model_dump(exclude_none=True))


def _strip_titles(node: Any) -> Any:
    if isinstance(node, dict):
        return {k: _strip_titles(v) for k, v in node.items() if k != "title"}
    if isinstance(node, list):
        return [_strip_titles(v) for v in node]
    return node


def tool_definitions() -> list[dict]:
    """OpenAI-format function definitions for every tool in the vocabulary."""
    definitions = []
    for name, schema in ACTION_SCHEMAS.items():
        parameters = _strip_titles(schema.model_json_schema())
        description = parameters.pop("description", "") or (schema.__doc__ or "").strip()
        parameters.setdefault("properties", {})
        definitions.append({
            "type": "function",
            "function": {
                "name": name,
                "description": description,
                "parameters": parameters,
            },
        })
    return definitions
