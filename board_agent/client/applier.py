"""Client-side replay of board actions into concrete objects.

The applier keeps a draft of the board (seeded from the snapshot the command
was issued against), turns each action into objects positioned relative to the
user's view, and writes them to the store. Connectors are held back until the
nodes they reference are persisted, then flushed in creation order.
"""

import asyncio
import inspect
import logging
import math
import time
import uuid
from dataclasses import dataclass
from typing import Any

from board_agent.config import settings
from board_agent.models.actions import Action
from board_agent.models.board_objects import BoardObject
from board_agent.services.layout_service import apply_diagram_layout
from board_agent.store import BoardStore

logger = logging.getLogger(__name__)

STICKY_MIN_SIZE = 200
ORGANIZE_TYPE_ORDER = ["sticky", "text", "rectangle", "circle", "line"]
ORGANIZE_GAP = 16
ORGANIZE_GROUP_GAP = 60
ORGANIZE_MAX_COLS = 6

_EDITABLE_FIELDS = ("color", "text", "font_size", "width", "height", "z_index")


def _base36(n: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while True:
        n, r = divmod(n, 36)
        out = digits[r] + out
        if n == 0:
            return out


def _nonce() -> str:
    return f"{_base36(int(time.time() * 1000))}-{uuid.uuid4().hex[:8]}"


@dataclass
class Viewport:
    center_x: float = 400
    center_y: float = 300


class IdNamespace:
    """Per-command id table.

    Model-supplied ids on created objects are prefixed so identical ids from
    different commands (``step1``, ``step2``...) never collide. References
    resolve through the table first and otherwise point at existing objects
    unchanged.
    """

    def __init__(self, prefix: str | None = None):
        self.prefix = prefix or f"b{_base36(int(time.time() * 1000))}{uuid.uuid4().hex[:8]}"
        self._ids: dict[str, str] = {}

    def remap(self, raw_id: str) -> str:
        if raw_id not in self._ids:
            self._ids[raw_id] = f"{self.prefix}-{raw_id}"
        return self._ids[raw_id]

    def resolve(self, ref: str) -> str:
        return self._ids.get(ref, ref)

    def __contains__(self, raw_id: str) -> bool:
        return raw_id in self._ids


def anchor_point(obj: BoardObject, anchor: str) -> tuple[float, float]:
    w = obj.width or 0
    h = obj.height or 0
    cx = obj.x + w / 2
    cy = obj.y + h / 2
    if anchor == "top":
        return (cx, obj.y)
    if anchor == "bottom":
        return (cx, obj.y + h)
    if anchor == "left":
        return (obj.x, cy)
    if anchor == "right":
        return (obj.x + w, cy)
    return (cx, cy)


class ActionApplier:
    """Applies one command's actions to a draft board and a store."""

    def __init__(
        self,
        store: BoardStore,
        board_objects: list[BoardObject] | None = None,
        viewport: Viewport | None = None,
        settle_seconds: float | None = None,
        namespace: IdNamespace | None = None,
    ):
        self.store = store
        self.viewport = viewport or Viewport()
        self.settle_seconds = settings.connector_settle_seconds if settle_seconds is None else settle_seconds
        self.ids = namespace or IdNamespace()
        self.draft: dict[str, BoardObject] = {
            o.id: o.model_copy(deep=True) for o in board_objects or []
        }
        self.new_ids: set[str] = set()
        self.actions: list[Action] = []
        self._deferred: list[str] = []
        self._labels: dict[str, str] = {}
        self._pending: list[tuple[str, str, asyncio.Future]] = []
        self._failed: set[str] = set()

    # ── Store plumbing ───────────────────────────────────────────────────────

    def _track(self, op: str, object_id: str, ack: Any) -> None:
        if inspect.isawaitable(ack):
            self._pending.append((op, object_id, asyncio.ensure_future(ack)))

    async def _drain(self) -> None:
        """Wait for outstanding store writes. Failed creates are logged and remembered."""
        pending, self._pending = self._pending, []
        if not pending:
            return
        results = await asyncio.gather(*(f for _, _, f in pending), return_exceptions=True)
        for (op, object_id, _), result in zip(pending, results):
            if isinstance(result, Exception):
                logger.error("Store %s of %s failed: %s", op, object_id, result)
                if op == "create":
                    self._failed.add(object_id)

    def _put(self, obj: BoardObject) -> None:
        self.draft[obj.id] = obj
        self.new_ids.add(obj.id)
        self._track("create", obj.id, self.store.create_object(obj))

    def _replace(self, obj: BoardObject) -> None:
        self.draft[obj.id] = obj
        if obj.id not in self._deferred:
            self._track("update", obj.id, self.store.update_object(obj))

    # ── Dispatch ─────────────────────────────────────────────────────────────

    async def apply(self, action: Action) -> str | None:
        """Apply one action. Returns the id of the created object, if any."""
        self.actions.append(action)
        handler = getattr(self, f"_apply_{action.tool}", None)
        if handler is None:
            logger.debug("No client handler for %s", action.tool)
            return None
        return handler(action.arguments)

    def _new_id(self, args: dict, kind: str) -> str:
        if args.get("id"):
            return self.ids.remap(str(args["id"]))
        return f"{kind}-{_nonce()}"

    def _position(self, args: dict, x_key: str = "x", y_key: str = "y") -> tuple[float, float]:
        return (
            self.viewport.center_x + (args.get(x_key) or 0),
            self.viewport.center_y + (args.get(y_key) or 0),
        )

    def _lookup(self, ref: str | None) -> BoardObject | None:
        if not ref:
            return None
        return self.draft.get(self.ids.resolve(ref))

    # ── Creation ─────────────────────────────────────────────────────────────

    def _apply_create_sticky_note(self, args: dict) -> str:
        x, y = self._position(args)
        obj = BoardObject(
            id=self._new_id(args, "sticky"),
            type="sticky",
            x=x,
            y=y,
            width=max(args.get("width") or STICKY_MIN_SIZE, STICKY_MIN_SIZE),
            height=max(args.get("height") or STICKY_MIN_SIZE, STICKY_MIN_SIZE),
            text=args.get("text", ""),
            color=args.get("color") or "#ffeb3b",
            z_index=args.get("z_index", 0),
        )
        self._put(obj)
        return obj.id

    def _apply_create_rectangle(self, args: dict) -> str:
        x, y = self._position(args)
        obj = BoardObject(
            id=self._new_id(args, "rect"),
            type="rectangle",
            x=x,
            y=y,
            width=args.get("width") or 160,
            height=args.get("height") or 120,
            color=args.get("color") or "#2196f3",
            z_index=args.get("z_index", 0),
        )
        self._put(obj)
        return obj.id

    def _apply_create_circle(self, args: dict) -> str:
        x, y = self._position(args)
        size = args.get("size") or 140
        obj = BoardObject(
            id=self._new_id(args, "circle"),
            type="circle",
            x=x,
            y=y,
            width=size,
            height=size,
            color=args.get("color") or "#4caf50",
            z_index=args.get("z_index", 0),
        )
        self._put(obj)
        return obj.id

    def _apply_create_text(self, args: dict) -> str:
        x, y = self._position(args)
        obj = BoardObject(
            id=self._new_id(args, "text"),
            type="text",
            x=x,
            y=y,
            width=args.get("width"),
            text=args.get("text", ""),
            font_size=args.get("font_size") or 24,
            color=args.get("color") or "#1a1a1a",
            z_index=args.get("z_index", 0),
        )
        self._put(obj)
        return obj.id

    def _apply_create_line(self, args: dict) -> str:
        x, y = self._position(args)
        obj = BoardObject(
            id=self._new_id(args, "line"),
            type="line",
            x=x,
            y=y,
            width=args.get("width") or 200,
            height=args.get("height") or 0,
            color=args.get("color") or "#333333",
            z_index=args.get("z_index", 0),
        )
        self._put(obj)
        return obj.id

    def _apply_create_connector(self, args: dict) -> str:
        start_obj = self._lookup(args.get("start_object_id"))
        end_obj = self._lookup(args.get("end_object_id"))
        start_anchor = args.get("start_anchor") or "bottom"
        end_anchor = args.get("end_anchor") or "top"

        start = anchor_point(start_obj, start_anchor) if start_obj else self._position(args, "start_x", "start_y")
        end = anchor_point(end_obj, end_anchor) if end_obj else self._position(args, "end_x", "end_y")

        connector = BoardObject(
            id=self._new_id(args, "connector"),
            type="connector",
            x=start[0],
            y=start[1],
            start_x=start[0],
            start_y=start[1],
            end_x=end[0],
            end_y=end[1],
            start_object_id=start_obj.id if start_obj else None,
            end_object_id=end_obj.id if end_obj else None,
            start_anchor=start_anchor,
            end_anchor=end_anchor,
            style=args.get("style") or "orthogonal",
            color=args.get("color") or "#333333",
            stroke_width=args.get("stroke_width") or 2,
            arrow_end=args.get("arrow_end", True) is not False,
            z_index=args.get("z_index", 0),
        )
        self.draft[connector.id] = connector
        self.new_ids.add(connector.id)
        self._deferred.append(connector.id)

        if args.get("label"):
            mid_x, mid_y = (start[0] + end[0]) / 2, (start[1] + end[1]) / 2
            label = BoardObject(
                id=f"label-{_nonce()}",
                type="text",
                x=mid_x - 20,
                y=mid_y - 12,
                text=args["label"],
                font_size=14,
                color=args.get("color") or "#333333",
                width=60,
                z_index=args.get("z_index", 0) + 1,
            )
            self.draft[label.id] = label
            self.new_ids.add(label.id)
            self._deferred.append(label.id)
            self._labels[connector.id] = label.id

        return connector.id

    # ── Editing ──────────────────────────────────────────────────────────────

    def _apply_move_object(self, args: dict) -> None:
        obj = self._lookup(args.get("id"))
        if obj is None:
            return
        x, y = self._position(args)
        self._replace(obj.model_copy(update={"x": x, "y": y}))

    def _apply_update_object(self, args: dict) -> None:
        obj = self._lookup(args.get("id"))
        if obj is None:
            return
        changes = {k: args[k] for k in _EDITABLE_FIELDS if k in args}
        self._replace(obj.model_copy(update=changes))

    def _apply_bulk_update_objects(self, args: dict) -> None:
        flt = args.get("filter")
        if flt:
            changes = {k: flt[k] for k in _EDITABLE_FIELDS if k in flt}
            for obj in [o for o in self.draft.values() if o.type == flt.get("type")]:
                self._replace(obj.model_copy(update=changes))
        for upd in args.get("updates") or []:
            obj = self._lookup(upd.get("id"))
            if obj is None:
                continue
            changes = {k: upd[k] for k in _EDITABLE_FIELDS if k in upd}
            self._replace(obj.model_copy(update=changes))

    def _forget(self, object_id: str) -> bool:
        """Drop an object from the draft. Returns True if it was persisted."""
        self.draft.pop(object_id, None)
        if object_id in self._deferred:
            self._deferred.remove(object_id)
            label_id = self._labels.pop(object_id, None)
            if label_id:
                self._forget(label_id)
            return False
        return True

    def _apply_delete_object(self, args: dict) -> None:
        object_id = self.ids.resolve(args.get("id", ""))
        if object_id not in self.draft:
            return
        attached = [o.id for o in self.draft.values() if o.attached_to(object_id)]
        persisted = self._forget(object_id)
        for cid in attached:
            self._forget(cid)
        if persisted:
            self._track("delete", object_id, self.store.delete_object(object_id))

    def _apply_clear_board(self, args: dict) -> None:
        for object_id in list(self.draft):
            if object_id not in self.draft:
                continue
            if self._forget(object_id):
                self._track("delete", object_id, self.store.delete_object(object_id))
        self.draft.clear()

    def _apply_organize_board(self, args: dict) -> None:
        groups: dict[str, list[BoardObject]] = {}
        for obj in self.draft.values():
            if obj.is_connector() or obj.id in self._deferred:
                continue
            groups.setdefault(obj.type or "other", []).append(obj)

        def order(key: str) -> int:
            return ORGANIZE_TYPE_ORDER.index(key) if key in ORGANIZE_TYPE_ORDER else 99

        cursor_x = self.viewport.center_x - 300
        base_y = self.viewport.center_y - 200
        for key in sorted(groups, key=order):
            group = groups[key]
            cols = min(math.ceil(math.sqrt(len(group))), ORGANIZE_MAX_COLS)
            cell_w = max(o.width or 80 for o in group) + ORGANIZE_GAP
            cell_h = max(o.height or 80 for o in group) + ORGANIZE_GAP
            for i, obj in enumerate(group):
                col, row = i % cols, i // cols
                self._replace(obj.model_copy(update={
                    "x": cursor_x + col * cell_w,
                    "y": base_y + row * cell_h,
                }))
            cursor_x += cols * cell_w + ORGANIZE_GROUP_GAP

    def _apply_analyze_board(self, args: dict) -> None:
        return None

    # ── Completion ───────────────────────────────────────────────────────────

    def _refresh_connector(self, connector_id: str) -> None:
        conn = self.draft.get(connector_id)
        if conn is None:
            return
        start = self.draft.get(conn.start_object_id or "")
        end = self.draft.get(conn.end_object_id or "")
        changes: dict[str, Any] = {}
        if start is not None:
            sx, sy = anchor_point(start, conn.start_anchor or "bottom")
            changes.update(x=sx, y=sy, start_x=sx, start_y=sy)
        if end is not None:
            changes.update(zip(("end_x", "end_y"), anchor_point(end, conn.end_anchor or "top")))
        conn = conn.model_copy(update=changes)
        self.draft[connector_id] = conn

        label_id = self._labels.get(connector_id)
        if label_id in self.draft:
            mid_x = (conn.start_x + conn.end_x) / 2
            mid_y = (conn.start_y + conn.end_y) / 2
            self.draft[label_id] = self.draft[label_id].model_copy(update={"x": mid_x - 20, "y": mid_y - 12})

    def _orphaned(self, obj: BoardObject) -> bool:
        return obj.is_connector() and any(
            ref in self._failed for ref in (obj.start_object_id, obj.end_object_id)
        )

    async def finish(self) -> None:
        """Lay out new diagrams, wait for node writes, then persist connectors."""
        await self._drain()

        new_connectors = [oid for oid in self._deferred if oid in self.draft and self.draft[oid].is_connector()]
        if new_connectors:
            moved = apply_diagram_layout(self.draft, self.new_ids, self.viewport.center_x, self.viewport.center_y)
            for obj in moved:
                self._track("update", obj.id, self.store.update_object(obj))
            for cid in new_connectors:
                self._refresh_connector(cid)

        await self._drain()

        if not self._deferred:
            return
        if self.settle_seconds > 0:
            await asyncio.sleep(self.settle_seconds)
        deferred, self._deferred = self._deferred, []
        skipped = {
            cid for cid in deferred
            if cid in self.draft and self._orphaned(self.draft[cid])
        }
        skipped.update(self._labels[cid] for cid in list(skipped) if cid in self._labels)
        for oid in deferred:
            obj = self.draft.get(oid)
            if oid in skipped:
                logger.warning("Skipping %s, an endpoint was not persisted", oid)
                continue
            if obj is not None:
                self._track("create", obj.id, self.store.create_object(obj))
        await self._drain()
        logger.debug("Flushed %d deferred objects", len(deferred))
