"""
Version-checked read-modify-write of inventory items.

Callers already hold the per-item lock; the version check additionally
protects against writers in other processes sharing the same item store.
"""

import logging
from collections.abc import Callable

from connectors.interfaces import ItemStore
from models.inventory import InventoryItem
from utils.quantities import round_quantity

from .errors import ConcurrentModificationError, MaterialNotFoundError

logger = logging.getLogger(__name__)

ItemMutation = Callable[[InventoryItem], dict | None]


async def update_item(
    item_store: ItemStore,
    item_id: str,
    mutate: ItemMutation,
    max_retries: int = 3,
    user_id: str | None = None,
) -> tuple[InventoryItem, InventoryItem]:
    """
    Apply ``mutate`` to the current item and save it against the version read.

    ``mutate`` receives the freshly read item and returns the fields to change,
    or None when nothing needs writing. On a version conflict the item is re-read
    and the mutation re-applied, up to ``max_retries`` extra attempts.

    Returns:
        (item as read, item as stored)
    """
    attempt = 0
    while True:
        item = await item_store.get_item(item_id)
        if item is None:
            raise MaterialNotFoundError(item_id, context="item store")
        changes = mutate(item)
        if not changes:
            return item, item
        if user_id is not None:
            changes = {**changes, "updated_by": user_id}
        try:
            saved = await item_store.save_item(item.model_copy(update=changes), expected_version=item.version)
            return item, saved
        except ConcurrentModificationError as e:
            attempt += 1
            if attempt > max_retries:
                logger.error(f"Giving up on item {item_id} after {attempt} conflicting writes: {e}")
                raise
            logger.warning(f"Retrying write of item {item_id} ({attempt}/{max_retries}): {e}")


async def adjust_booked_quantity(
    item_store: ItemStore,
    item_id: str,
    delta: float,
    max_retries: int = 3,
    user_id: str | None = None,
) -> InventoryItem:
    """Add ``delta`` to the item's booked quantity, floored at zero."""

    def mutate(item: InventoryItem) -> dict | None:
        booked = max(0.0, round_quantity(item.booked_quantity + delta))
        if booked == item.booked_quantity:
            return None
        return {"booked_quantity": booked}

    _, saved = await update_item(item_store, item_id, mutate, max_retries=max_retries, user_id=user_id)
    return saved
