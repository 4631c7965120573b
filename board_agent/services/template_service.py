"""Deterministic template expansion into primitive board actions.

SWOT and Kanban templates come out fully positioned (offsets from the centre of
the user's view) with no connectors. Flowcharts come out as unpositioned nodes
plus connectors so the client layout engine places them.

All coordinates are top-left corners.
"""

import math
from itertools import count

from board_agent.models.actions import Action
from board_agent.models.schemas import FlowchartRequest, KanbanRequest, SwotRequest


def _id_factory():
    counter = count()
    return lambda prefix: f"{prefix}-{next(counter)}"


# ── SWOT ─────────────────────────────────────────────────────────────────────

SWOT_NOTE_W = 200
SWOT_NOTE_H = 200
SWOT_NOTE_GAP = 16
SWOT_HEADER_H = 50
SWOT_PAD = 20
SWOT_COL_GAP = 30
SWOT_ROW_GAP = 30
SWOT_TITLE_H = 60
SWOT_TITLE_GAP = 20
SWOT_NOTES_PER_ROW = 2

SWOT_QUADRANTS = [
    ("Strengths", "#4caf50", "strengths"),
    ("Weaknesses", "#f44336", "weaknesses"),
    ("Opportunities", "#2196f3", "opportunities"),
    ("Threats", "#ff9800", "threats"),
]


def _swot_quadrant_height(item_count: int) -> int:
    rows = math.ceil(item_count / SWOT_NOTES_PER_ROW)
    return (
        SWOT_PAD + SWOT_HEADER_H
        + rows * SWOT_NOTE_H + max(rows - 1, 0) * SWOT_NOTE_GAP
        + SWOT_PAD
    )


def expand_swot(swot: SwotRequest) -> list[Action]:
    """Expand a SWOT analysis into a 2x2 grid of tinted quadrants.

    Each quadrant yields a background rectangle, a header text and one sticky
    note per item (two per row). An optional title sits above the grid.
    """
    next_id = _id_factory()
    actions: list[Action] = []

    quadrant_w = (
        SWOT_NOTES_PER_ROW * SWOT_NOTE_W
        + (SWOT_NOTES_PER_ROW - 1) * SWOT_NOTE_GAP
        + SWOT_PAD * 2
    )
    top_h = max(
        _swot_quadrant_height(len(swot.strengths)),
        _swot_quadrant_height(len(swot.weaknesses)),
    )
    bottom_h = max(
        _swot_quadrant_height(len(swot.opportunities)),
        _swot_quadrant_height(len(swot.threats)),
    )
    title_block = SWOT_TITLE_H + SWOT_TITLE_GAP if swot.title else 0
    total_w = quadrant_w * 2 + SWOT_COL_GAP
    total_h = title_block + top_h + SWOT_ROW_GAP + bottom_h

    grid_x = round(-total_w / 2)
    grid_y = round(-total_h / 2)

    if swot.title:
        actions.append(Action(tool="create_text", arguments={
            "id": next_id("swot-title"),
            "text": swot.title,
            "font_size": 28,
            "color": "#1a1a1a",
            "x": grid_x,
            "y": grid_y,
            "width": total_w,
            "z_index": 90,
        }))

    top_y = grid_y + title_block
    right_x = grid_x + quadrant_w + SWOT_COL_GAP
    bottom_y = top_y + top_h + SWOT_ROW_GAP
    positions = [(grid_x, top_y), (right_x, top_y), (grid_x, bottom_y), (right_x, bottom_y)]
    heights = [top_h, top_h, bottom_h, bottom_h]

    for (label, color, field), (qx, qy), qh in zip(SWOT_QUADRANTS, positions, heights):
        actions.append(Action(tool="create_rectangle", arguments={
            "id": next_id("swot-bg"),
            "color": color + "18",
            "x": qx,
            "y": qy,
            "width": quadrant_w,
            "height": qh,
            "z_index": 1,
        }))
        actions.append(Action(tool="create_text", arguments={
            "id": next_id("swot-header"),
            "text": label,
            "font_size": 22,
            "color": color,
            "x": qx + SWOT_PAD,
            "y": qy + SWOT_PAD,
            "width": quadrant_w - SWOT_PAD * 2,
            "z_index": 80,
        }))

        first_item_y = qy + SWOT_PAD + SWOT_HEADER_H
        for i, item in enumerate(getattr(swot, field)):
            col = i % SWOT_NOTES_PER_ROW
            row = i // SWOT_NOTES_PER_ROW
            actions.append(Action(tool="create_sticky_note", arguments={
                "id": next_id("swot-item"),
                "text": item,
                "color": color,
                "x": qx + SWOT_PAD + col * (SWOT_NOTE_W + SWOT_NOTE_GAP),
                "y": first_item_y + row * (SWOT_NOTE_H + SWOT_NOTE_GAP),
                "width": SWOT_NOTE_W,
                "height": SWOT_NOTE_H,
                "z_index": 50 + i,
            }))

    return actions


# ── Kanban ───────────────────────────────────────────────────────────────────

KANBAN_COL_W = 240
KANBAN_COL_GAP = 24
KANBAN_CARD_H = 200  # sticky notes render at least 200x200
KANBAN_CARD_GAP = 12
KANBAN_HEADER_H = 50
KANBAN_COLORS = ["#2196f3", "#ff9800", "#4caf50", "#9c27b0", "#f44336", "#00bcd4"]


def expand_kanban(kanban: KanbanRequest) -> list[Action]:
    """Expand a Kanban board into columns of cards, left to right."""
    next_id = _id_factory()
    actions: list[Action] = []

    num_cols = len(kanban.columns)
    total_w = num_cols * KANBAN_COL_W + (num_cols - 1) * KANBAN_COL_GAP
    start_x = -total_w / 2
    start_y = -250 if kanban.title else -200

    if kanban.title:
        actions.append(Action(tool="create_text", arguments={
            "id": next_id("kanban-title"),
            "text": kanban.title,
            "font_size": 28,
            "color": "#1a1a1a",
            "x": -200,
            "y": start_y - 50,
            "width": 400,
            "z_index": 90,
        }))

    for c, column in enumerate(kanban.columns):
        cx = start_x + c * (KANBAN_COL_W + KANBAN_COL_GAP)
        color = KANBAN_COLORS[c % len(KANBAN_COLORS)]
        col_h = (
            KANBAN_HEADER_H + KANBAN_CARD_GAP
            + len(column.cards) * (KANBAN_CARD_H + KANBAN_CARD_GAP)
            + KANBAN_CARD_GAP
        )

        actions.append(Action(tool="create_rectangle", arguments={
            "id": next_id("kanban-colbg"),
            "color": "#f0f0f0",
            "x": cx,
            "y": start_y,
            "width": KANBAN_COL_W,
            "height": col_h,
            "z_index": 1,
        }))
        actions.append(Action(tool="create_text", arguments={
            "id": next_id("kanban-header"),
            "text": column.name,
            "font_size": 18,
            "color": "#1a1a1a",
            "x": cx + 12,
            "y": start_y + 12,
            "width": KANBAN_COL_W - 24,
            "z_index": 80,
        }))
        for i, card in enumerate(column.cards):
            actions.append(Action(tool="create_sticky_note", arguments={
                "id": next_id("kanban-card"),
                "text": card,
                "color": color,
                "x": cx + 8,
                "y": start_y + KANBAN_HEADER_H + KANBAN_CARD_GAP + i * (KANBAN_CARD_H + KANBAN_CARD_GAP),
                "width": KANBAN_COL_W - 16,
                "height": KANBAN_CARD_H,
                "z_index": 50 + i,
            }))

    return actions


# ── Flowchart ────────────────────────────────────────────────────────────────

FLOW_NODE_W = 150
FLOW_NODE_H = 80


def expand_flowchart(flowchart: FlowchartRequest) -> list[Action]:
    """Expand a flowchart into unpositioned sticky nodes and connectors between them."""
    actions: list[Action] = []

    for node in flowchart.nodes:
        actions.append(Action(tool="create_sticky_note", arguments={
            "id": node.id,
            "text": node.text,
            "color": node.color or "#ffeb3b",
            "width": FLOW_NODE_W,
            "height": FLOW_NODE_H,
            "z_index": 50,
        }))

    for edge in flowchart.edges:
        arguments = {
            "start_object_id": edge.from_id,
            "end_object_id": edge.to_id,
            "style": "orthogonal",
            "z_index": 10,
        }
        if edge.label:
            arguments["label"] = edge.label
        actions.append(Action(tool="create_connector", arguments=arguments))

    return actions
