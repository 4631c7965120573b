"""Board object store interface and the in-memory reference store.

The applier only needs three writes. Any of them may return an awaitable that
resolves once the write is acknowledged; the applier waits on those before
persisting connectors that reference freshly created nodes.
"""

import logging
from typing import Awaitable, Protocol, Union

from board_agent.models.board_objects import BoardObject

logger = logging.getLogger(__name__)

Ack = Union[None, Awaitable[None]]


class BoardStore(Protocol):
    def create_object(self, obj: BoardObject) -> Ack:
        ...

    def update_object(self, obj: BoardObject) -> Ack:
        ...

    def delete_object(self, object_id: str) -> Ack:
        ...


class ForeignKeyError(ValueError):
    pass


class InMemoryBoardStore:
    """Last-write-wins object store.

    - create replaces any object with the same id
    - update merges the set fields into an existing object, no-op when missing
    - delete removes the object and every connector attached to it

    With ``enforce_foreign_keys`` a connector whose endpoint ids are not stored
    yet is rejected, mirroring a relational backend.
    """

    def __init__(self, objects: list[BoardObject] | None = None, enforce_foreign_keys: bool = False):
        self.objects: dict[str, BoardObject] = {o.id: o for o in objects or []}
        self.enforce_foreign_keys = enforce_foreign_keys
        self.log: list[tuple[str, str]] = []

    def _check_endpoints(self, obj: BoardObject) -> None:
        if not (self.enforce_foreign_keys and obj.is_connector()):
            return
        for ref in (obj.start_object_id, obj.end_object_id):
            if ref is not None and ref not in self.objects:
                raise ForeignKeyError(f"Connector {obj.id} references missing object {ref}")

    def create_object(self, obj: BoardObject) -> None:
        self._check_endpoints(obj)
        self.objects[obj.id] = obj.model_copy(deep=True)
        self.log.append(("create", obj.id))

    def update_object(self, obj: BoardObject) -> None:
        existing = self.objects.get(obj.id)
        if existing is None:
            return
        changes = obj.model_dump(exclude_none=True)
        self.objects[obj.id] = existing.model_copy(update=changes, deep=True)
        self.log.append(("update", obj.id))

    def delete_object(self, object_id: str) -> None:
        doomed = [
            oid for oid, o in self.objects.items()
            if oid == object_id or o.attached_to(object_id)
        ]
        for oid in doomed:
            del self.objects[oid]
        if doomed:
            self.log.append(("delete", object_id))
            logger.debug("Deleted %s (%d objects including attached connectors)", object_id, len(doomed))

    def snapshot(self) -> list[BoardObject]:
        return [o.model_copy(deep=True) for o in self.objects.values()]
