"""Tests for the in-memory board store."""

import pytest

from board_agent.models.board_objects import BoardObject
from board_agent.store import ForeignKeyError, InMemoryBoardStore


def _connector(cid: str, start: str, end: str) -> BoardObject:
    return BoardObject(id=cid, type="connector", start_object_id=start, end_object_id=end)


class TestInMemoryBoardStore:
    """Tests for InMemoryBoardStore."""

    def test_create_replaces_same_id(self) -> None:
        store = InMemoryBoardStore()
        store.create_object(BoardObject(id="a", type="sticky", text="first"))
        store.create_object(BoardObject(id="a", type="sticky", text="second"))

        assert len(store.objects) == 1
        assert store.objects["a"].text == "second"

    def test_update_merges_set_fields(self) -> None:
        store = InMemoryBoardStore([BoardObject(id="a", type="sticky", text="keep", color="#ffeb3b", rotation=15)])

        store.update_object(BoardObject(id="a", type="sticky", color="#f44336", rotation=15))

        assert store.objects["a"].text == "keep"
        assert store.objects["a"].color == "#f44336"

    def test_update_missing_is_noop(self) -> None:
        store = InMemoryBoardStore()

        store.update_object(BoardObject(id="ghost", type="sticky"))

        assert store.objects == {}
        assert store.log == []

    def test_delete_cascades_to_attached_connectors(self) -> None:
        store = InMemoryBoardStore([
            BoardObject(id="a", type="sticky"),
            BoardObject(id="b", type="sticky"),
            BoardObject(id="c", type="sticky"),
            _connector("ab", "a", "b"),
            _connector("bc", "b", "c"),
        ])

        store.delete_object("a")

        assert set(store.objects) == {"b", "c", "bc"}

    def test_delete_missing_is_noop(self) -> None:
        store = InMemoryBoardStore([BoardObject(id="a", type="sticky")])

        store.delete_object("zzz")

        assert set(store.objects) == {"a"}

    def test_foreign_keys_enforced(self) -> None:
        store = InMemoryBoardStore([BoardObject(id="a", type="sticky")], enforce_foreign_keys=True)

        with pytest.raises(ForeignKeyError):
            store.create_object(_connector("ab", "a", "b"))

        store.create_object(BoardObject(id="b", type="sticky"))
        store.create_object(_connector("ab", "a", "b"))
        assert "ab" in store.objects

    def test_snapshot_is_a_copy(self) -> None:
        store = InMemoryBoardStore([BoardObject(id="a", type="sticky", text="x")])

        snap = store.snapshot()
        snap[0].text = "changed"

        assert store.objects["a"].text == "x"

    def test_unlisted_types_and_extra_fields_round_trip(self) -> None:
        frame = BoardObject.model_validate({"id": "f", "type": "frame", "x": 1, "title": "Area"})
        store = InMemoryBoardStore([frame])

        snap = store.snapshot()[0]

        assert snap.type == "frame"
        assert snap.model_dump()["title"] == "Area"
