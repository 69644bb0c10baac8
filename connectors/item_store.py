"""
Module: connectors.item_store

Provides an in-memory inventory item store with version-checked writes.
"""

import asyncio
import logging
from datetime import datetime

from models.inventory import InventoryItem
from reservations.errors import ConcurrentModificationError

logger = logging.getLogger(__name__)


class InMemoryItemStore:
    """
    In-memory item store. Records are copied on the way in and out so callers
    never share mutable state with the store.
    """

    def __init__(self, items: list[InventoryItem] | None = None, latency: float = 0.0):
        self.latency = latency
        self._items: dict[str, InventoryItem] = {}
        for item in items or []:
            self._items[item.id] = item.model_copy(deep=True)
        self.save_count = 0

    async def get_item(self, item_id: str) -> InventoryItem | None:
        """Get an item by ID."""
        await asyncio.sleep(self.latency)
        item = self._items.get(item_id)
        return item.model_copy(deep=True) if item else None

    async def list_items(self, include_archived: bool = True) -> list[InventoryItem]:
        await asyncio.sleep(self.latency)
        return [
            item.model_copy(deep=True)
            for item in self._items.values()
            if include_archived or not item.archived
        ]

    async def save_item(self, item: InventoryItem, expected_version: int | None = None) -> InventoryItem:
        """Store the item, bumping its version. Rejects stale writes when a version is expected."""
        await asyncio.sleep(self.latency)
        current = self._items.get(item.id)
        current_version = current.version if current else 0
        if expected_version is not None and expected_version != current_version:
            raise ConcurrentModificationError(item.id, expected_version, current_version)
        stored = item.model_copy(
            update={"version": current_version + 1, "updated_at": datetime.now()}, deep=True
        )
        self._items[item.id] = stored
        self.save_count += 1
        logger.debug(f"Saved item {item.id} at version {stored.version}")
        return stored.model_copy(deep=True)

    def put(self, item: InventoryItem) -> None:
        """Seed or overwrite an item without version checks (fixtures, imports)."""
        self._items[item.id] = item.model_copy(deep=True)

    def remove(self, item_id: str) -> None:
        self._items.pop(item_id, None)
