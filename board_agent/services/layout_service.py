"""Spatial helpers: board layout description for prompts and layered diagram layout.

The diagram layout places the nodes of freshly created connector graphs in
top-down layers (Kahn's algorithm) centred on the user's view.
"""

import logging
from dataclasses import dataclass

from board_agent.models.board_objects import BoardObject

logger = logging.getLogger(__name__)

H_GAP = 40
V_GAP = 60
DEFAULT_NODE_WIDTH = 150
DEFAULT_NODE_HEIGHT = 80


@dataclass
class BBox:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)


def _extract_bboxes(objects: list[BoardObject]) -> list[BBox]:
    """Bounding boxes of every non-connector object."""
    return [
        BBox(x=o.x, y=o.y, width=o.width or 0, height=o.height or 0)
        for o in objects
        if not o.is_connector()
    ]


def get_board_bounds(objects: list[BoardObject]) -> BBox | None:
    bboxes = _extract_bboxes(objects)
    if not bboxes:
        return None
    min_x = min(b.x for b in bboxes)
    min_y = min(b.y for b in bboxes)
    return BBox(
        x=min_x,
        y=min_y,
        width=max(b.right for b in bboxes) - min_x,
        height=max(b.bottom for b in bboxes) - min_y,
    )


def describe_board_layout(objects: list[BoardObject]) -> str:
    """Human-readable summary of where things are, for the system prompt."""
    bounds = get_board_bounds(objects)
    if bounds is None:
        return "The board is empty. Positions are offsets from the centre of the user's view."

    bboxes = _extract_bboxes(objects)
    mid_x, mid_y = bounds.center
    regions = {"top-left": 0, "top-right": 0, "bottom-left": 0, "bottom-right": 0}
    for b in bboxes:
        cx, cy = b.center
        h = "left" if cx < mid_x else "right"
        v = "top" if cy < mid_y else "bottom"
        regions[f"{v}-{h}"] += 1

    type_counts: dict[str, int] = {}
    for o in objects:
        type_counts[o.type] = type_counts.get(o.type, 0) + 1
    types_desc = ", ".join(f"{c} {t}{'s' if c > 1 else ''}" for t, c in type_counts.items())

    desc = (
        f"Board has {len(objects)} objects ({types_desc}). "
        f"Objects occupy the area from ({int(bounds.x)}, {int(bounds.y)}) "
        f"to ({int(bounds.right)}, {int(bounds.bottom)})."
    )
    dense = [r for r, c in regions.items() if c > len(bboxes) / 4]
    if dense:
        desc += f" Most objects are in the {', '.join(dense)} area."
    return desc


# ── Layered diagram layout ───────────────────────────────────────────────────

def compute_layers(node_ids: list[str], edges: list[tuple[str, str]]) -> list[list[str]]:
    """Split nodes into layers with Kahn's algorithm.

    Nodes keep their input order inside a layer. Nodes left over because they
    sit on a cycle all go into one final layer.
    """
    indegree = {n: 0 for n in node_ids}
    children: dict[str, list[str]] = {n: [] for n in node_ids}
    for src, dst in edges:
        if src not in indegree or dst not in indegree or src == dst:
            continue
        children[src].append(dst)
        indegree[dst] += 1

    layers: list[list[str]] = []
    placed: set[str] = set()
    current = [n for n in node_ids if indegree[n] == 0]
    while current:
        layers.append(current)
        placed.update(current)
        ready = set()
        for n in current:
            for child in children[n]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    ready.add(child)
        current = [n for n in node_ids if n in ready]

    leftover = [n for n in node_ids if n not in placed]
    if leftover:
        logger.debug("Cycle detected, %d nodes placed in a final layer", len(leftover))
        layers.append(leftover)
    return layers


def apply_diagram_layout(
    draft: dict[str, BoardObject],
    new_ids: set[str],
    center_x: float,
    center_y: float,
) -> list[BoardObject]:
    """Reposition the new nodes referenced by new connectors.

    Updates ``draft`` in place and returns the moved objects so the caller can
    persist them. Pre-existing objects and connectors are never moved.
    """
    edges: list[tuple[str, str]] = []
    node_ids: list[str] = []
    for oid in draft:
        obj = draft[oid]
        if oid not in new_ids or not obj.is_connector():
            continue
        src, dst = obj.start_object_id, obj.end_object_id
        ends = [e for e in (src, dst) if e in new_ids and e in draft and not draft[e].is_connector()]
        for e in ends:
            if e not in node_ids:
                node_ids.append(e)
        if len(ends) == 2:
            edges.append((src, dst))

    if not node_ids:
        return []

    layers = compute_layers(node_ids, edges)

    def size(oid: str) -> tuple[float, float]:
        o = draft[oid]
        return (o.width or DEFAULT_NODE_WIDTH, o.height or DEFAULT_NODE_HEIGHT)

    layer_heights = [max(size(n)[1] for n in layer) for layer in layers]
    total_h = sum(layer_heights) + V_GAP * (len(layers) - 1)
    y = center_y - total_h / 2

    moved: list[BoardObject] = []
    for layer, layer_h in zip(layers, layer_heights):
        layer_w = sum(size(n)[0] for n in layer) + H_GAP * (len(layer) - 1)
        x = center_x - layer_w / 2
        for n in layer:
            w, _ = size(n)
            updated = draft[n].model_copy(update={"x": x, "y": y})
            draft[n] = updated
            moved.append(updated)
            x += w + H_GAP
        y += layer_h + V_GAP

    return moved
