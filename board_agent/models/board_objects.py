from pydantic import BaseModel, ConfigDict


class BoardObject(BaseModel):
    """One object on the whiteboard.

    A superset of every shape's fields; unknown fields from the store are kept
    so snapshot objects round-trip untouched.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    type: str
    x: float = 0
    y: float = 0
    width: float | None = None
    height: float | None = None
    color: str | None = None
    text: str | None = None
    font_size: float | None = None
    rotation: float = 0
    z_index: int = 0
    created_by: str | None = None
    updated_at: float | None = None

    # Connector fields
    start_object_id: str | None = None
    end_object_id: str | None = None
    start_anchor: str | None = None
    end_anchor: str | None = None
    start_x: float | None = None
    start_y: float | None = None
    end_x: float | None = None
    end_y: float | None = None
    style: str | None = None
    stroke_width: float | None = None
    arrow_end: bool | None = None

    def is_connector(self) -> bool:
        return self.type == "connector"

    def attached_to(self, object_id: str) -> bool:
        return self.is_connector() and object_id in (self.start_object_id, self.end_object_id)
