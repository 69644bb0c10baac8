"""
Cleanup jobs for stale reservation data.

These mutate the transaction log and item booked quantities, so they are
meant to run as maintenance passes (e.g. once at startup), not on read paths.
"""

import asyncio
import math
from collections import defaultdict
from datetime import datetime

from config.config import ReservationConfig
from connectors.interfaces import ItemStore, TaskStore, TransactionLog
from models.enums import ReservationStatus, TransactionType
from models.maintenance import CleanupResult
from models.state import BookingCancellation, Reservation
from utils.cache import TTLCache
from utils.keyed_lock import KeyedLock
from utils.logger import get_logger

from .errors import MaterialNotFoundError
from .item_updates import adjust_booked_quantity, update_item
from .validators import validate_id

logger = get_logger(__name__)


def chunked(values: list, size: int) -> list[list]:
    return [values[i : i + size] for i in range(0, len(values), size)]


class CleanupJobs:
    def __init__(
        self,
        item_store: ItemStore,
        transaction_log: TransactionLog,
        task_store: TaskStore,
        config: ReservationConfig | None = None,
        locks: KeyedLock | None = None,
        cache: TTLCache | None = None,
    ):
        self.item_store = item_store
        self.transaction_log = transaction_log
        self.task_store = task_store
        self.config = config or ReservationConfig()
        self.locks = locks or KeyedLock()
        self.cache = cache

    async def _bookings(self, **filters) -> list[Reservation]:
        return await self.transaction_log.query(type=TransactionType.BOOKING, **filters)

    def _invalidate(self, item_id: str) -> None:
        if self.cache is not None:
            self.cache.invalidate_where(lambda key: key[0] == item_id)

    async def _existing_task_ids(self, task_ids: list[str], result: CleanupResult) -> set[str]:
        """
        Check existence in chunks, concurrently. Ids of a chunk whose check failed
        are returned as existing so their bookings are kept.
        """
        chunks = chunked(task_ids, self.config.existence_chunk_size)
        outcomes = await asyncio.gather(
            *(self.task_store.existing_task_ids(chunk) for chunk in chunks), return_exceptions=True
        )
        existing: set[str] = set()
        unchecked: set[str] = set()
        for chunk, outcome in zip(chunks, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Task existence check failed for {len(chunk)} ids: {outcome}")
                result.errors.append(f"existence check failed: {outcome}")
                unchecked.update(chunk)
            else:
                existing.update(outcome)
        return existing | unchecked

    async def _delete_bookings(self, bookings: list[Reservation], result: CleanupResult) -> None:
        """Delete bookings item by item, releasing what the active ones held."""
        by_item: dict[str, list[Reservation]] = defaultdict(list)
        for booking in bookings:
            by_item[booking.item_id].append(booking)

        for item_id, item_bookings in by_item.items():
            async with self.locks.acquire(item_id):
                released = []
                for booking in item_bookings:
                    try:
                        if await self.transaction_log.delete(booking.id):
                            result.deleted_ids.append(booking.id)
                            if booking.is_active:
                                released.append(booking.quantity)
                    except Exception as e:
                        logger.error(f"Failed to delete booking {booking.id}: {e}")
                        result.errors.append(f"{booking.id}: {e}")
                total = math.fsum(released)
                if total > 0:
                    try:
                        await adjust_booked_quantity(
                            self.item_store, item_id, -total, max_retries=self.config.max_write_retries
                        )
                    except MaterialNotFoundError:
                        logger.warning(f"Item {item_id} no longer exists; nothing to release")
                self._invalidate(item_id)
        result.count = len(result.deleted_ids)

    async def cleanup_deleted_task_reservations(self) -> CleanupResult:
        """
        Delete bookings whose owning task no longer exists.

        Safe to re-run: a second pass finds nothing. Bookings of tasks that exist,
        or whose existence could not be checked, are never touched.
        """
        result = CleanupResult()
        by_task: dict[str, list[Reservation]] = defaultdict(list)
        for booking in await self._bookings():
            if booking.reference_id:
                by_task[booking.reference_id].append(booking)
        if not by_task:
            return result

        keep = await self._existing_task_ids(list(by_task), result)
        orphaned = [b for task_id, bookings in by_task.items() if task_id not in keep for b in bookings]
        if orphaned:
            logger.info(f"Deleting {len(orphaned)} bookings of deleted tasks")
            await self._delete_bookings(orphaned, result)
        return result

    async def cleanup_micro_reservations(self, threshold: float | None = None) -> CleanupResult:
        """Delete active bookings below ``threshold`` (rounding residue from partial consumption)."""
        threshold = self.config.micro_reservation_threshold if threshold is None else threshold
        result = CleanupResult()
        micro = [b for b in await self._bookings() if b.is_active and b.quantity < threshold]
        if micro:
            logger.info(f"Deleting {len(micro)} bookings below {threshold}")
            await self._delete_bookings(micro, result)
        return result

    async def cleanup_item_reservations(self, item_id: str, user_id: str | None = None) -> CleanupResult:
        """Cancel every active booking of an item and zero its booked quantity."""
        item_id = validate_id(item_id, "item_id")
        result = CleanupResult()
        async with self.locks.acquire(item_id):
            if await self.item_store.get_item(item_id) is None:
                raise MaterialNotFoundError(item_id)
            for booking in await self._bookings(item_id=item_id):
                if not booking.is_active:
                    continue
                await self.transaction_log.update(
                    booking.model_copy(
                        update={"status": ReservationStatus.CANCELLED, "updated_at": datetime.now()}
                    )
                )
                await self.transaction_log.append(
                    BookingCancellation(
                        item_id=item_id,
                        reference_id=booking.reference_id,
                        quantity=booking.quantity,
                        reason="item cleanup",
                        user_id=user_id,
                    )
                )
                result.deleted_ids.append(booking.id)
            await update_item(
                self.item_store,
                item_id,
                lambda item: {"booked_quantity": 0.0} if item.booked_quantity else None,
                max_retries=self.config.max_write_retries,
                user_id=user_id,
            )
            self._invalidate(item_id)
        result.count = len(result.deleted_ids)
        logger.info(f"Cancelled {result.count} bookings of item {item_id}")
        return result
