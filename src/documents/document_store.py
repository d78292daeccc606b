"""
Document store seam.

The host owns persistence; the tracker and the migration runner only talk to
the async ``DocumentStore`` interface defined here. ``InMemoryDocumentStore``
is a complete stand-in used by the CLI demo and the test suite. It keeps
documents that fail validation in a raw form, reachable only through the
``*_invalid_*`` fallback methods, the way the host keeps invalid documents
out of its normal collections.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Union
import copy
import logging

from src.data_models import (
    ActorDocument,
    ItemDocument,
    UserDocument,
    merge_update,
    new_document_id,
)

logger = logging.getLogger(__name__)

Document = Union[ActorDocument, ItemDocument]


class DocumentStoreError(Exception):
    """Raised when a document store operation fails."""

    pass


class DocumentNotFoundError(DocumentStoreError):
    """Raised when the addressed document does not exist."""

    pass


# =============================================================================
# COMPENDIUM PACKS
# =============================================================================


class CompendiumPack:
    """
    A compendium of Actor or Item documents.

    Attributes:
        collection: Fully qualified pack id, e.g. ``world.monsters``
        document_name: "Actor" or "Item"
        package_type: "world" for world packs, "system" for built-in packs
        locked: Locked packs reject writes
        migrate_count: How many times the host schema migration ran
    """

    def __init__(
        self,
        collection: str,
        document_name: str,
        package_type: str = "world",
        locked: bool = True,
        documents: Optional[list[Document]] = None,
    ):
        self.collection = collection
        self.document_name = document_name
        self.package_type = package_type
        self.locked = locked
        self.migrate_count = 0
        self._documents: dict[str, Document] = {}
        for doc in documents or []:
            self.add_document(doc)

    def add_document(self, doc: Document) -> None:
        doc_id = doc.actor_id if isinstance(doc, ActorDocument) else doc.item_id
        self._documents[doc_id] = doc

    async def configure(self, locked: bool) -> None:
        self.locked = locked

    async def migrate(self) -> None:
        """Host-side schema migration of the pack's stored documents."""
        self.migrate_count += 1
        logger.debug(f"Host schema migration requested for pack {self.collection}")

    async def get_documents(self) -> list[Document]:
        return list(self._documents.values())

    async def update_document(self, doc_id: str, update: dict[str, Any]) -> Document:
        if self.locked:
            raise DocumentStoreError(f"Compendium {self.collection} is locked")
        if doc_id not in self._documents:
            raise DocumentNotFoundError(f"No document {doc_id} in pack {self.collection}")
        doc = self._documents[doc_id]
        doc.apply_update(update)
        return doc

    def __repr__(self) -> str:
        return (
            f"CompendiumPack({self.collection!r}, {self.document_name}, "
            f"{self.package_type}, locked={self.locked}, docs={len(self._documents)})"
        )


# =============================================================================
# STORE INTERFACE
# =============================================================================


class DocumentStore(ABC):
    """
    Async contract the core consumes.

    Item methods take ``actor_id`` for embedded items; ``actor_id=None``
    addresses world-level items.
    """

    @abstractmethod
    async def get_actor(self, actor_id: str) -> Optional[ActorDocument]:
        ...

    @abstractmethod
    async def get_item(
        self, item_id: str, actor_id: Optional[str] = None
    ) -> Optional[ItemDocument]:
        ...

    @abstractmethod
    async def list_actors(self) -> list[ActorDocument]:
        ...

    @abstractmethod
    async def list_items(self, actor_id: Optional[str] = None) -> list[ItemDocument]:
        ...

    @abstractmethod
    async def list_users(self) -> list[UserDocument]:
        ...

    @abstractmethod
    async def update_actor(self, actor_id: str, update: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def update_item(
        self, item_id: str, update: dict[str, Any], actor_id: Optional[str] = None
    ) -> None:
        ...

    @abstractmethod
    async def create_item(
        self, item: ItemDocument, actor_id: Optional[str] = None
    ) -> ItemDocument:
        ...

    @abstractmethod
    async def delete_item(self, item_id: str, actor_id: Optional[str] = None) -> None:
        ...

    @abstractmethod
    async def create_actor(self, actor: ActorDocument) -> ActorDocument:
        ...

    @abstractmethod
    async def delete_actor(self, actor_id: str) -> None:
        ...

    @abstractmethod
    async def list_invalid_actor_ids(self) -> list[str]:
        ...

    @abstractmethod
    async def get_invalid_actor_source(self, actor_id: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def list_invalid_item_ids(self, actor_id: Optional[str] = None) -> list[str]:
        ...

    @abstractmethod
    async def get_invalid_item_source(
        self, item_id: str, actor_id: Optional[str] = None
    ) -> dict[str, Any]:
        ...

    @abstractmethod
    async def list_packs(self) -> list[CompendiumPack]:
        ...


# =============================================================================
# IN-MEMORY STORE
# =============================================================================


class InMemoryDocumentStore(DocumentStore):
    """
    In-process document store.

    Attributes:
        fail_on_update: Document ids whose writes raise DocumentStoreError
        operations: Journal of (operation, document_id) writes, in order
    """

    def __init__(self):
        self._actors: dict[str, ActorDocument] = {}
        self._items: dict[str, ItemDocument] = {}
        self._users: dict[str, UserDocument] = {}
        self._invalid_actors: dict[str, dict[str, Any]] = {}
        # Keyed by owning actor id; None holds invalid world items
        self._invalid_items: dict[Optional[str], dict[str, dict[str, Any]]] = {}
        self._packs: list[CompendiumPack] = []
        self.fail_on_update: set[str] = set()
        self.operations: list[tuple[str, str]] = []

    # =========================================================================
    # SETUP (synchronous, used by fixtures and the demo)
    # =========================================================================

    def add_actor(self, actor: ActorDocument) -> ActorDocument:
        for item in actor.items.values():
            item.actor_id = actor.actor_id
        self._actors[actor.actor_id] = actor
        return actor

    def add_item(self, item: ItemDocument, actor_id: Optional[str] = None) -> ItemDocument:
        if actor_id is None:
            item.actor_id = None
            self._items[item.item_id] = item
        else:
            self._require_actor(actor_id).items[item.item_id] = item
            item.actor_id = actor_id
        return item

    def add_user(self, user: UserDocument) -> UserDocument:
        self._users[user.user_id] = user
        return user

    def add_pack(self, pack: CompendiumPack) -> CompendiumPack:
        self._packs.append(pack)
        return pack

    def add_raw_actor(self, data: dict[str, Any]) -> Optional[ActorDocument]:
        """
        Add an actor from raw source, validating it like the host would.

        Invalid actors (and all of their embedded items) are kept raw.
        """
        header = {k: v for k, v in data.items() if k != "items"}
        try:
            actor = ActorDocument.from_object(header)
        except (KeyError, TypeError, ValueError) as e:
            actor_id = str(data.get("_id") or new_document_id())
            logger.warning(f"Actor {actor_id} failed validation: {e}")
            self._invalid_actors[actor_id] = copy.deepcopy(data)
            return None

        self._actors[actor.actor_id] = actor
        for raw_item in data.get("items") or []:
            self.add_raw_item(raw_item, actor_id=actor.actor_id)
        return actor

    def add_raw_item(
        self, data: dict[str, Any], actor_id: Optional[str] = None
    ) -> Optional[ItemDocument]:
        """Add an item from raw source; invalid items are kept raw."""
        try:
            item = ItemDocument.from_object(data, actor_id=actor_id)
        except (KeyError, TypeError, ValueError) as e:
            item_id = str(data.get("_id") or new_document_id())
            logger.warning(f"Item {item_id} failed validation: {e}")
            self._invalid_items.setdefault(actor_id, {})[item_id] = copy.deepcopy(data)
            return None
        return self.add_item(item, actor_id=actor_id)

    # =========================================================================
    # READS
    # =========================================================================

    async def get_actor(self, actor_id: str) -> Optional[ActorDocument]:
        return self._actors.get(actor_id)

    async def get_item(
        self, item_id: str, actor_id: Optional[str] = None
    ) -> Optional[ItemDocument]:
        if actor_id is None:
            return self._items.get(item_id)
        actor = self._actors.get(actor_id)
        return actor.get_item(item_id) if actor else None

    async def list_actors(self) -> list[ActorDocument]:
        return list(self._actors.values())

    async def list_items(self, actor_id: Optional[str] = None) -> list[ItemDocument]:
        if actor_id is None:
            return list(self._items.values())
        if actor_id in self._invalid_actors:
            return []
        return list(self._require_actor(actor_id).items.values())

    async def list_users(self) -> list[UserDocument]:
        return list(self._users.values())

    # =========================================================================
    # WRITES
    # =========================================================================

    async def update_actor(self, actor_id: str, update: dict[str, Any]) -> None:
        self._check_writable(actor_id)
        if actor_id in self._invalid_actors:
            raw = merge_update(self._invalid_actors[actor_id], update)
            self._revalidate_actor(actor_id, raw)
        else:
            self._require_actor(actor_id).apply_update(update)
        self.operations.append(("update_actor", actor_id))

    async def update_item(
        self, item_id: str, update: dict[str, Any], actor_id: Optional[str] = None
    ) -> None:
        self._check_writable(item_id)

        if actor_id in self._invalid_actors:
            raw_item = self._find_raw_embedded_item(actor_id, item_id)
            merge_update(raw_item, update)
        elif item_id in self._invalid_items.get(actor_id, {}):
            raw = merge_update(self._invalid_items[actor_id][item_id], update)
            self._revalidate_item(item_id, raw, actor_id)
        else:
            item = await self.get_item(item_id, actor_id)
            if item is None:
                raise DocumentNotFoundError(self._item_label(item_id, actor_id))
            item.apply_update(update)

        self.operations.append(("update_item", item_id))

    async def create_item(
        self, item: ItemDocument, actor_id: Optional[str] = None
    ) -> ItemDocument:
        if not item.item_id:
            item.item_id = new_document_id()
        self.add_item(item, actor_id=actor_id)
        self.operations.append(("create_item", item.item_id))
        return item

    async def delete_item(self, item_id: str, actor_id: Optional[str] = None) -> None:
        self._check_writable(item_id)
        if actor_id is None:
            if self._items.pop(item_id, None) is None:
                raise DocumentNotFoundError(self._item_label(item_id, actor_id))
        else:
            actor = self._require_actor(actor_id)
            if actor.items.pop(item_id, None) is None:
                raise DocumentNotFoundError(self._item_label(item_id, actor_id))
        self.operations.append(("delete_item", item_id))

    async def create_actor(self, actor: ActorDocument) -> ActorDocument:
        if not actor.actor_id:
            actor.actor_id = new_document_id()
        self.add_actor(actor)
        self.operations.append(("create_actor", actor.actor_id))
        return actor

    async def delete_actor(self, actor_id: str) -> None:
        self._check_writable(actor_id)
        if self._actors.pop(actor_id, None) is None:
            raise DocumentNotFoundError(f"Actor {actor_id} not found")
        self._invalid_items.pop(actor_id, None)
        self.operations.append(("delete_actor", actor_id))

    # =========================================================================
    # RAW FALLBACK
    # =========================================================================

    async def list_invalid_actor_ids(self) -> list[str]:
        return list(self._invalid_actors)

    async def get_invalid_actor_source(self, actor_id: str) -> dict[str, Any]:
        if actor_id not in self._invalid_actors:
            raise DocumentNotFoundError(f"Invalid actor {actor_id} not found")
        return copy.deepcopy(self._invalid_actors[actor_id])

    async def list_invalid_item_ids(self, actor_id: Optional[str] = None) -> list[str]:
        if actor_id in self._invalid_actors:
            return [
                raw.get("_id") for raw in self._invalid_actors[actor_id].get("items") or []
                if raw.get("_id")
            ]
        return list(self._invalid_items.get(actor_id, {}))

    async def get_invalid_item_source(
        self, item_id: str, actor_id: Optional[str] = None
    ) -> dict[str, Any]:
        if actor_id in self._invalid_actors:
            return copy.deepcopy(self._find_raw_embedded_item(actor_id, item_id))
        raw = self._invalid_items.get(actor_id, {}).get(item_id)
        if raw is None:
            raise DocumentNotFoundError(f"Invalid {self._item_label(item_id, actor_id)}")
        return copy.deepcopy(raw)

    async def list_packs(self) -> list[CompendiumPack]:
        return list(self._packs)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _require_actor(self, actor_id: str) -> ActorDocument:
        actor = self._actors.get(actor_id)
        if actor is None:
            raise DocumentNotFoundError(f"Actor {actor_id} not found")
        return actor

    def _check_writable(self, doc_id: str) -> None:
        if doc_id in self.fail_on_update:
            raise DocumentStoreError(f"Write rejected for document {doc_id}")

    def _find_raw_embedded_item(self, actor_id: str, item_id: str) -> dict[str, Any]:
        for raw in self._invalid_actors[actor_id].get("items") or []:
            if raw.get("_id") == item_id:
                return raw
        raise DocumentNotFoundError(self._item_label(item_id, actor_id))

    def _revalidate_actor(self, actor_id: str, raw: dict[str, Any]) -> None:
        """Promote a repaired invalid actor back into the normal collection."""
        try:
            ActorDocument.from_object({k: v for k, v in raw.items() if k != "items"})
        except (KeyError, TypeError, ValueError):
            return
        del self._invalid_actors[actor_id]
        self.add_raw_actor(raw)
        logger.info(f"Actor {actor_id} passes validation after update")

    def _revalidate_item(
        self, item_id: str, raw: dict[str, Any], actor_id: Optional[str]
    ) -> None:
        try:
            ItemDocument.from_object(raw, actor_id=actor_id)
        except (KeyError, TypeError, ValueError):
            return
        del self._invalid_items[actor_id][item_id]
        self.add_raw_item(raw, actor_id=actor_id)
        logger.info(f"Item {item_id} passes validation after update")

    @staticmethod
    def _item_label(item_id: str, actor_id: Optional[str]) -> str:
        if actor_id is None:
            return f"Item {item_id} not found"
        return f"Item {item_id} not found on actor {actor_id}"
