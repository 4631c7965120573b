"""Tests for the client-side action applier."""

import asyncio

import pytest

from board_agent.client.applier import ActionApplier, IdNamespace, Viewport, anchor_point
from board_agent.models.actions import Action
from board_agent.models.board_objects import BoardObject
from board_agent.store import InMemoryBoardStore


def act(tool: str, **arguments) -> Action:
    return Action(tool=tool, arguments=arguments)


class SlowStore(InMemoryBoardStore):
    """Store whose creates are acknowledged asynchronously."""

    def __init__(self, *args, delay: float = 0.01, **kwargs):
        super().__init__(*args, **kwargs)
        self.delay = delay
        self.acked: list[str] = []

    def create_object(self, obj: BoardObject):
        async def ack():
            await asyncio.sleep(self.delay)
            super(SlowStore, self).create_object(obj)
            self.acked.append(obj.id)
        return ack()


@pytest.fixture
def store(board_objects) -> InMemoryBoardStore:
    return InMemoryBoardStore(board_objects, enforce_foreign_keys=True)


@pytest.fixture
def applier(store, board_objects) -> ActionApplier:
    return ActionApplier(store, board_objects, viewport=Viewport(400, 300), namespace=IdNamespace("b1"))


class TestIdNamespace:
    """Tests for IdNamespace."""

    def test_remap_is_stable(self) -> None:
        ids = IdNamespace("bx")

        assert ids.remap("step1") == "bx-step1"
        assert ids.remap("step1") == "bx-step1"
        assert "step1" in ids

    def test_unknown_refs_pass_through(self) -> None:
        assert IdNamespace("bx").resolve("1") == "1"

    def test_generated_prefixes_differ(self) -> None:
        prefixes = {IdNamespace().prefix for _ in range(50)}

        assert len(prefixes) == 50
        assert all(p.startswith("b") for p in prefixes)

    @pytest.mark.asyncio
    async def test_same_model_id_in_two_commands(self) -> None:
        store = InMemoryBoardStore()
        first = ActionApplier(store)
        second = ActionApplier(store)

        a = await first.apply(act("create_sticky_note", id="step1", text="first"))
        b = await second.apply(act("create_sticky_note", id="step1", text="second"))

        assert a != b
        assert {store.objects[a].text, store.objects[b].text} == {"first", "second"}


class TestCreation:
    """Tests for create_* actions."""

    @pytest.mark.asyncio
    async def test_sticky_defaults_and_viewport_offset(self, applier, store) -> None:
        oid = await applier.apply(act("create_sticky_note", text="Hi", x=10, y=-20, width=50))

        obj = store.objects[oid]
        assert (obj.x, obj.y) == (410, 280)
        assert obj.width == 200 and obj.height == 200
        assert obj.color == "#ffeb3b"
        assert oid.startswith("sticky-")

    @pytest.mark.asyncio
    async def test_shape_defaults(self, applier, store) -> None:
        rect = await applier.apply(act("create_rectangle"))
        circle = await applier.apply(act("create_circle", size=90))
        text = await applier.apply(act("create_text", text="Title"))
        line = await applier.apply(act("create_line"))

        assert (store.objects[rect].width, store.objects[rect].height, store.objects[rect].color) == (160, 120, "#2196f3")
        assert store.objects[circle].width == store.objects[circle].height == 90
        assert store.objects[text].font_size == 24
        assert store.objects[line].width == 200

    @pytest.mark.asyncio
    async def test_model_ids_are_namespaced(self, applier, store) -> None:
        oid = await applier.apply(act("create_circle", id="head"))

        assert oid == "b1-head"
        assert "b1-head" in store.objects

    @pytest.mark.asyncio
    async def test_generated_ids_are_unique(self, applier) -> None:
        ids = {await applier.apply(act("create_rectangle")) for _ in range(20)}

        assert len(ids) == 20


class TestConnectors:
    """Tests for connector deferral and layout."""

    @pytest.mark.asyncio
    async def test_connectors_persist_after_their_nodes(self, applier, store) -> None:
        await applier.apply(act("create_sticky_note", id="step1", text="Start"))
        await applier.apply(act("create_sticky_note", id="step2", text="End"))
        cid = await applier.apply(act("create_connector", start_object_id="step1", end_object_id="step2", label="next"))

        assert cid not in store.objects
        await applier.finish()

        conn = store.objects[cid]
        assert conn.start_object_id == "b1-step1"
        assert conn.end_object_id == "b1-step2"
        creates = [oid for op, oid in store.log if op == "create"]
        assert creates.index("b1-step2") < creates.index(cid)

    @pytest.mark.asyncio
    async def test_diagram_is_laid_out_top_down(self, applier, store) -> None:
        await applier.apply(act("create_sticky_note", id="a", text="A", x=500, y=500))
        await applier.apply(act("create_sticky_note", id="b", text="B", x=500, y=500))
        cid = await applier.apply(act("create_connector", start_object_id="a", end_object_id="b"))

        await applier.finish()

        a, b, conn = store.objects["b1-a"], store.objects["b1-b"], store.objects[cid]
        assert b.y > a.y + a.height
        assert a.x == b.x == 400 - 100
        assert (conn.start_x, conn.start_y) == anchor_point(a, "bottom")
        assert (conn.end_x, conn.end_y) == anchor_point(b, "top")

    @pytest.mark.asyncio
    async def test_label_sits_at_midpoint(self, applier, store) -> None:
        await applier.apply(act("create_sticky_note", id="a", text="A"))
        await applier.apply(act("create_sticky_note", id="b", text="B"))
        cid = await applier.apply(act("create_connector", start_object_id="a", end_object_id="b", label="yes"))

        await applier.finish()

        conn = store.objects[cid]
        label = next(o for o in store.objects.values() if o.type == "text" and o.text == "yes")
        assert label.x == (conn.start_x + conn.end_x) / 2 - 20
        assert label.y == (conn.start_y + conn.end_y) / 2 - 12
        assert label.font_size == 14

    @pytest.mark.asyncio
    async def test_connector_to_existing_objects(self, applier, store) -> None:
        cid = await applier.apply(act("create_connector", start_object_id="1", end_object_id="4"))

        await applier.finish()

        assert store.objects[cid].start_object_id == "1"
        assert store.objects["1"].x == 0

    @pytest.mark.asyncio
    async def test_free_endpoints_use_coordinates(self, applier, store) -> None:
        cid = await applier.apply(act("create_connector", start_x=0, start_y=0, end_x=100, end_y=50))

        await applier.finish()

        conn = store.objects[cid]
        assert (conn.start_x, conn.end_x, conn.end_y) == (400, 500, 350)
        assert conn.start_object_id is None

    @pytest.mark.asyncio
    async def test_waits_for_async_acks(self, board_objects) -> None:
        store = SlowStore(board_objects, enforce_foreign_keys=True, delay=0.02)
        applier = ActionApplier(store, board_objects, namespace=IdNamespace("b2"))

        await applier.apply(act("create_circle", id="x"))
        await applier.apply(act("create_circle", id="y"))
        cid = await applier.apply(act("create_connector", start_object_id="x", end_object_id="y"))
        await applier.finish()

        assert store.acked == ["b2-x", "b2-y", cid]


class TestEditing:
    """Tests for move, update, bulk update and delete."""

    @pytest.mark.asyncio
    async def test_move_is_relative_to_viewport(self, applier, store) -> None:
        await applier.apply(act("move_object", id="3", x=0, y=0))

        assert (store.objects["3"].x, store.objects["3"].y) == (400, 300)

    @pytest.mark.asyncio
    async def test_update_changes_only_given_fields(self, applier, store) -> None:
        await applier.apply(act("update_object", id="1", color="#4caf50"))

        assert store.objects["1"].color == "#4caf50"
        assert store.objects["1"].text == "Red one"

    @pytest.mark.asyncio
    async def test_update_unknown_id_is_ignored(self, applier, store) -> None:
        await applier.apply(act("update_object", id="missing", color="#000000"))

        assert store.log == []

    @pytest.mark.asyncio
    async def test_bulk_update_by_type(self, applier, store) -> None:
        await applier.apply(act("bulk_update_objects", filter={"type": "sticky", "color": "#2196f3"}))

        colors = {o.id: o.color for o in store.objects.values()}
        assert colors == {"1": "#2196f3", "2": "#2196f3", "3": "#2196f3", "4": "#2196f3"}
        assert [oid for op, oid in store.log if op == "update"] == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_bulk_update_list(self, applier, store) -> None:
        await applier.apply(act("bulk_update_objects", updates=[{"id": "1", "text": "A"}, {"id": "4", "width": 300}]))

        assert store.objects["1"].text == "A"
        assert store.objects["4"].width == 300

    @pytest.mark.asyncio
    async def test_edit_created_object_by_model_id(self, applier, store) -> None:
        await applier.apply(act("create_sticky_note", id="note", text="draft"))
        await applier.apply(act("update_object", id="note", text="final"))

        assert store.objects["b1-note"].text == "final"

    @pytest.mark.asyncio
    async def test_delete_red_sticky_notes(self, applier, store) -> None:
        for oid in ("1", "2"):
            await applier.apply(act("delete_object", id=oid))
        await applier.finish()

        assert set(store.objects) == {"3", "4"}

    @pytest.mark.asyncio
    async def test_delete_cascades_in_draft(self, board_objects) -> None:
        board = board_objects + [BoardObject(id="c", type="connector", start_object_id="1", end_object_id="2")]
        store = InMemoryBoardStore(board)
        applier = ActionApplier(store, board)

        await applier.apply(act("delete_object", id="1"))

        assert "c" not in applier.draft
        assert "c" not in store.objects

    @pytest.mark.asyncio
    async def test_delete_unflushed_connector_never_hits_store(self, applier, store) -> None:
        await applier.apply(act("create_circle", id="a"))
        await applier.apply(act("create_circle", id="b"))
        cid = await applier.apply(act("create_connector", start_object_id="a", end_object_id="b"))

        await applier.apply(act("delete_object", id=cid))
        await applier.finish()

        assert cid not in store.objects
        assert ("delete", cid) not in store.log

    @pytest.mark.asyncio
    async def test_delete_unknown_id_is_ignored(self, applier, store) -> None:
        await applier.apply(act("delete_object", id="nope"))

        assert store.log == []


class TestBoardActions:
    """Tests for clear, organize and analyze."""

    @pytest.mark.asyncio
    async def test_clear_board(self, applier, store) -> None:
        await applier.apply(act("create_rectangle"))
        await applier.apply(act("clear_board"))
        await applier.finish()

        assert store.objects == {}
        assert applier.draft == {}

    @pytest.mark.asyncio
    async def test_organize_groups_by_type_without_overlap(self, applier, store) -> None:
        await applier.apply(act("organize_board", strategy="by_type"))

        objs = list(store.objects.values())
        for i, a in enumerate(objs):
            for b in objs[i + 1:]:
                overlap_x = a.x < b.x + b.width and b.x < a.x + a.width
                overlap_y = a.y < b.y + b.height and b.y < a.y + a.height
                assert not (overlap_x and overlap_y), (a.id, b.id)
        assert store.objects["4"].x > max(store.objects[s].x for s in ("1", "2", "3"))

    @pytest.mark.asyncio
    async def test_analyze_changes_nothing(self, applier, store) -> None:
        assert await applier.apply(act("analyze_board")) is None
        assert store.log == []
        assert [a.tool for a in applier.actions] == ["analyze_board"]


class FlakyStore(SlowStore):
    """Store that rejects the create of one object id."""

    def __init__(self, *args, reject: str, **kwargs):
        super().__init__(*args, **kwargs)
        self.reject = reject

    def create_object(self, obj: BoardObject):
        if obj.id != self.reject:
            return super().create_object(obj)

        async def fail():
            raise ConnectionError("write rejected")
        return fail()


class TestFailedWrites:
    """A rejected write never takes the rest of the command down with it."""

    @pytest.mark.asyncio
    async def test_connectors_to_failed_nodes_are_skipped(self, caplog) -> None:
        store = FlakyStore(enforce_foreign_keys=True, delay=0, reject="b3-bad")
        applier = ActionApplier(store, namespace=IdNamespace("b3"))

        for oid in ("a", "b", "bad"):
            await applier.apply(act("create_sticky_note", id=oid, text=oid))
        good = await applier.apply(act("create_connector", start_object_id="a", end_object_id="b"))
        broken = await applier.apply(act("create_connector", start_object_id="b", end_object_id="bad", label="no"))

        await applier.finish()

        assert good in store.objects
        assert broken not in store.objects
        assert not any(o.text == "no" for o in store.objects.values())
        assert "write rejected" in caplog.text


class TestTemplatesApplied:
    """Template output replayed through the applier."""

    @pytest.mark.asyncio
    async def test_kanban_cards_do_not_overlap(self) -> None:
        from board_agent.models.schemas import KanbanRequest
        from board_agent.services.template_service import expand_kanban

        kanban = KanbanRequest.model_validate({
            "title": "Sprint",
            "columns": [{"name": "Todo", "cards": ["a", "b", "c"]}, {"name": "Done", "cards": ["d", "e"]}],
        })
        store = InMemoryBoardStore()
        applier = ActionApplier(store)
        for action in expand_kanban(kanban):
            await applier.apply(action)
        await applier.finish()

        cards = [o for o in store.objects.values() if o.type == "sticky"]
        columns = [o for o in store.objects.values() if o.type == "rectangle"]
        assert len(cards) == 5
        for i, a in enumerate(cards):
            for b in cards[i + 1:]:
                overlap_x = a.x < b.x + b.width and b.x < a.x + a.width
                overlap_y = a.y < b.y + b.height and b.y < a.y + a.height
                assert not (overlap_x and overlap_y), (a.text, b.text)
            column = next(c for c in columns if c.x <= a.x and a.x + a.width <= c.x + c.width)
            assert a.y + a.height <= column.y + column.height
