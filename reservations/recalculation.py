"""
Quantity recalculation: repairs drift between an item's stored quantity and
the sum of its batches.
"""

import asyncio

from config.config import ReservationConfig
from connectors.interfaces import BatchStore, ItemStore
from models.inventory import InventoryItem
from models.maintenance import ItemRecalculation, RecalculationFailure, RecalculationReport
from utils.keyed_lock import KeyedLock
from utils.logger import get_logger
from utils.quantities import sum_quantities

from .item_updates import update_item

logger = get_logger(__name__)


class QuantityRecalculator:
    """
    Re-derives item quantities from the batch store.

    Runs for the same item are serialized through ``locks``; pass the
    ReservationService's KeyedLock so recalculation also waits for bookings
    on that item. Different items are recalculated concurrently.
    """

    def __init__(
        self,
        item_store: ItemStore,
        batch_store: BatchStore,
        config: ReservationConfig | None = None,
        locks: KeyedLock | None = None,
    ):
        self.item_store = item_store
        self.batch_store = batch_store
        self.config = config or ReservationConfig()
        self.locks = locks or KeyedLock()

    async def recalculate_item_quantity(self, item_id: str, user_id: str | None = None) -> ItemRecalculation:
        """
        Write the sum of the item's batch quantities back as its quantity.

        Idempotent: a second call without batch changes reports zero difference.

        Raises:
            MaterialNotFoundError: No such item.
        """
        async with self.locks.acquire(item_id):
            batches = await self.batch_store.list_batches(item_id)
            new_quantity = sum_quantities(
                (b.quantity for b in batches), self.config.quantity_precision
            )

            def mutate(item: InventoryItem) -> dict | None:
                if item.quantity == new_quantity:
                    return None
                return {"quantity": new_quantity}

            before, _ = await update_item(
                self.item_store,
                item_id,
                mutate,
                max_retries=self.config.max_write_retries,
                user_id=user_id,
            )

        result = ItemRecalculation(item_id=item_id, old_quantity=before.quantity, new_quantity=new_quantity)
        if result.drifted:
            logger.info(
                f"Item {item_id} quantity corrected from {result.old_quantity} to {result.new_quantity}"
            )
        return result

    async def recalculate_all(self, cancel_event: asyncio.Event | None = None) -> RecalculationReport:
        """
        Recalculate every item.

        One item failing is recorded in ``failures`` and does not stop the rest.
        Setting ``cancel_event`` stops items that have not started yet; the report
        then carries the partial results and ``cancelled=True``.
        """
        items = await self.item_store.list_items()
        report = RecalculationReport(total_items=len(items))
        semaphore = asyncio.Semaphore(self.config.recalculation_concurrency)
        logger.info(f"Recalculating quantities of {len(items)} items")

        async def run(item_id: str) -> ItemRecalculation | None:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    return None
                return await self.recalculate_item_quantity(item_id)

        item_ids = [item.id for item in items]
        outcomes = await asyncio.gather(*(run(item_id) for item_id in item_ids), return_exceptions=True)

        for item_id, outcome in zip(item_ids, outcomes):
            if outcome is None:
                report.cancelled = True
            elif isinstance(outcome, Exception):
                logger.error(f"Recalculation of item {item_id} failed: {outcome}")
                report.failures.append(RecalculationFailure(item_id=item_id, error=str(outcome)))
            else:
                report.results.append(outcome)

        if report.cancelled:
            logger.warning(
                f"Recalculation cancelled after {report.processed} of {report.total_items} items"
            )
        else:
            logger.info(
                f"Recalculation finished: {len(report.drifted)} corrected, {len(report.failures)} failed"
            )
        return report
