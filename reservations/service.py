"""
Reservation service: books, edits and releases material reservations.

Every mutation touching an item runs under that item's lock, and the item's
booked quantity is written with a version check. Within one process this
keeps the sum of active bookings on a batch within the batch quantity.
"""

from collections import defaultdict
from datetime import datetime

from config.config import ReservationConfig
from connectors.interfaces import BatchStore, ItemStore, TaskStore, TransactionLog
from models.allocation import BatchCandidate, BatchSelection, BookingResult, ReservationGroup
from models.coverage import TaskReservationStatus
from models.enums import ReservationMethod, ReservationStatus, TransactionType
from models.inventory import Batch
from models.state import BookingCancellation, Reservation
from utils.cache import TTLCache
from utils.keyed_lock import KeyedLock
from utils.logger import get_logger
from utils.quantities import round_quantity, sum_quantities

from .batch_selection import allocate, order_candidates
from .errors import (
    BatchNotFoundError,
    InsufficientStockError,
    InventoryValidationError,
    MaterialNotFoundError,
    ReservationNotFoundError,
    TaskNotFoundError,
)
from .item_updates import adjust_booked_quantity
from .requirements import resolve_required_quantity
from .status import calculate_task_reservation_status
from .validators import validate_id, validate_positive_quantity, validate_quantity

logger = get_logger(__name__)


def _coerce_method(method: ReservationMethod | str) -> ReservationMethod:
    try:
        return ReservationMethod(method)
    except ValueError:
        raise InventoryValidationError(f"Unknown reservation method {method!r}", field="method") from None


class ReservationService:
    def __init__(
        self,
        item_store: ItemStore,
        batch_store: BatchStore,
        transaction_log: TransactionLog,
        task_store: TaskStore,
        config: ReservationConfig | None = None,
        cache: TTLCache | None = None,
        locks: KeyedLock | None = None,
    ):
        self.item_store = item_store
        self.batch_store = batch_store
        self.transaction_log = transaction_log
        self.task_store = task_store
        self.config = config or ReservationConfig()
        self.cache = cache or TTLCache(
            max_entries=self.config.cache_max_entries, ttl_seconds=self.config.cache_ttl_seconds
        )
        self.locks = locks or KeyedLock()

    # --- reads -------------------------------------------------------------

    async def _batches(self, item_id: str, warehouse_id: str | None = None, fresh: bool = False) -> list[Batch]:
        key = (item_id, warehouse_id)
        batches = None if fresh else self.cache.get(key)
        if batches is None:
            batches = await self.batch_store.list_batches(item_id, warehouse_id)
            self.cache.set(key, batches)
        return batches

    def invalidate_item(self, item_id: str) -> None:
        self.cache.invalidate_where(lambda key: key[0] == item_id)

    async def _active_bookings(self, item_id: str) -> list[Reservation]:
        bookings = await self.transaction_log.query(type=TransactionType.BOOKING, item_id=item_id)
        return [b for b in bookings if b.is_active]

    async def _get_booking(self, reservation_id: str) -> Reservation:
        record = await self.transaction_log.get(reservation_id)
        if not isinstance(record, Reservation):
            raise ReservationNotFoundError(reservation_id)
        return record

    async def get_batch_candidates(
        self, item_id: str, task_id: str | None, warehouse_id: str | None = None, fresh: bool = False
    ) -> list[BatchCandidate]:
        """
        Lots of the item with what other tasks actively hold on each.
        Bookings pointing at lots that no longer exist are ignored.

        Lot lists come from the cache unless ``fresh`` is set. Writes always
        pass ``fresh`` since the batch store can change outside this service.
        """
        batches = await self._batches(item_id, warehouse_id, fresh=fresh)
        others: dict[str, list[float]] = defaultdict(list)
        own: dict[str, list[float]] = defaultdict(list)
        for booking in await self._active_bookings(item_id):
            if not booking.batch_id:
                continue
            target = own if task_id is not None and booking.reference_id == task_id else others
            target[booking.batch_id].append(booking.quantity)

        return [
            BatchCandidate(
                batch_id=b.id,
                quantity=b.quantity,
                reserved_by_others=sum_quantities(others[b.id]),
                reserved_for_task=sum_quantities(own[b.id]),
                expiry_date=b.expiry_date,
                received_date=b.received_date,
                batch_number=b.batch_number,
                warehouse_id=b.warehouse_id,
            )
            for b in batches
        ]

    async def select_batches(
        self, task_id: str, material_id: str, warehouse_id: str | None = None
    ) -> BatchSelection:
        """
        Ordered lots for one material of a task, for the manual picker.

        Raises:
            TaskNotFoundError: No such task.
            MaterialNotFoundError: The task has no requirement for the material.
        """
        task_id = validate_id(task_id, "task_id")
        material_id = validate_id(material_id, "material_id")
        task = await self.task_store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        required = resolve_required_quantity(task, material_id)
        item_id = task.find_requirement(material_id).material_id

        candidates = await self.get_batch_candidates(item_id, task_id, warehouse_id)
        held = {c.batch_id for c in candidates if c.reserved_for_task > 0}
        held |= task.reserved_batch_ids(item_id)
        return BatchSelection(
            task_id=task_id,
            material_id=item_id,
            required=required,
            candidates=order_candidates(candidates, held),
        )

    async def get_reservations_grouped_by_task(self, item_id: str) -> list[ReservationGroup]:
        item_id = validate_id(item_id, "item_id")
        groups: dict[str, ReservationGroup] = {}
        for booking in await self._active_bookings(item_id):
            task_id = booking.reference_id or ""
            group = groups.setdefault(task_id, ReservationGroup(task_id=task_id, task_number=booking.task_number))
            group.reservations.append(booking)
        return list(groups.values())

    async def task_reservation_status(self, task_id: str) -> TaskReservationStatus:
        """Reservation status of a task computed from the live transaction log."""
        task = await self.task_store.get_task(validate_id(task_id, "task_id"))
        if task is None:
            raise TaskNotFoundError(task_id)
        bookings = []
        for requirement in task.materials:
            bookings.extend(
                await self.transaction_log.query(
                    type=TransactionType.BOOKING, reference_id=task.id, item_id=requirement.material_id
                )
            )
        return calculate_task_reservation_status(task, bookings, self.config)

    # --- mutations ---------------------------------------------------------

    async def book_material(
        self,
        item_id: str,
        quantity: float,
        task_id: str,
        user_id: str | None = None,
        method: ReservationMethod | str = ReservationMethod.FEFO,
        batch_id: str | None = None,
    ) -> BookingResult:
        """
        Reserve ``quantity`` of an item for a task.

        With ``batch_id`` the whole quantity comes from that lot, and an existing
        booking of the task on the lot is set to ``quantity`` rather than duplicated.
        Without it, lots are allocated automatically (FEFO or FIFO) on top of
        what the task already holds. Nothing is written unless the full quantity
        can be reserved.

        Raises:
            InventoryValidationError: Bad ids, quantity or method.
            MaterialNotFoundError: Unknown item.
            BatchNotFoundError: ``batch_id`` is not a lot of the item.
            InsufficientStockError: Not enough effectively available stock.
        """
        item_id = validate_id(item_id, "item_id")
        task_id = validate_id(task_id, "task_id")
        quantity = round_quantity(validate_positive_quantity(quantity), self.config.quantity_precision)
        method = _coerce_method(method)
        if batch_id is not None:
            batch_id = validate_id(batch_id, "batch_id")

        async with self.locks.acquire(item_id):
            if await self.item_store.get_item(item_id) is None:
                raise MaterialNotFoundError(item_id)
            task = await self.task_store.get_task(task_id)
            if task is None:
                logger.warning(f"Booking {item_id} for unknown task {task_id}")
            task_number = task.number if task else ""

            candidates = await self.get_batch_candidates(item_id, task_id, fresh=True)
            own: dict[str, list[Reservation]] = defaultdict(list)
            for booking in await self._active_bookings(item_id):
                if booking.reference_id == task_id and booking.batch_id:
                    own[booking.batch_id].append(booking)
            if batch_id is not None:
                result = await self._book_batch(
                    item_id, task_id, task_number, quantity, batch_id, candidates, own, user_id
                )
            else:
                result = await self._book_automatically(
                    item_id, task_id, task_number, quantity, method, candidates, own, user_id
                )

            if result.booked_delta:
                await adjust_booked_quantity(
                    self.item_store,
                    item_id,
                    result.booked_delta,
                    max_retries=self.config.max_write_retries,
                    user_id=user_id,
                )
            self.invalidate_item(item_id)

        logger.info(f"Booked {quantity} of {item_id} for task {task_id} in {len(result.reservations)} lot(s)")
        return result

    async def _book_batch(self, item_id, task_id, task_number, quantity, batch_id, candidates, own, user_id):
        candidate = next((c for c in candidates if c.batch_id == batch_id), None)
        if candidate is None:
            raise BatchNotFoundError(batch_id, item_id)
        available = round_quantity(candidate.effective_quantity)
        if quantity > available:
            raise InsufficientStockError(item_id, quantity, available, batch_id=batch_id)

        existing = own.get(batch_id)
        if existing:
            # All of the task's bookings on the lot collapse into the first one.
            delta = round_quantity(quantity - sum_quantities(b.quantity for b in existing))
            booking = existing[0].model_copy(update={"quantity": quantity, "updated_at": datetime.now()})
            await self.transaction_log.update(booking)
            for duplicate in existing[1:]:
                await self.transaction_log.delete(duplicate.id)
        else:
            delta = quantity
            booking = Reservation(
                item_id=item_id,
                batch_id=batch_id,
                batch_number=candidate.batch_number,
                quantity=quantity,
                reference_id=task_id,
                task_number=task_number,
                user_id=user_id,
            )
            await self.transaction_log.append(booking)
        return BookingResult(
            item_id=item_id, task_id=task_id, quantity=quantity, reservations=[booking], booked_delta=delta
        )

    async def _book_automatically(self, item_id, task_id, task_number, quantity, method, candidates, own, user_id):
        # The task's own bookings occupy their lots too when adding on top of them.
        occupied = [
            BatchCandidate(
                batch_id=c.batch_id,
                quantity=c.quantity,
                reserved_by_others=c.reserved_by_others + c.reserved_for_task,
                expiry_date=c.expiry_date,
                received_date=c.received_date,
                batch_number=c.batch_number,
                warehouse_id=c.warehouse_id,
            )
            for c in candidates
        ]
        plan = allocate(quantity, occupied, reserved_for_task=own.keys(), method=method)
        if not plan.is_complete:
            raise InsufficientStockError(item_id, quantity, plan.allocated)

        written = []
        for line in plan.lines:
            held = own.get(line.batch_id)
            if held:
                booking = held[0].model_copy(
                    update={"quantity": round_quantity(held[0].quantity + line.quantity), "updated_at": datetime.now()}
                )
                await self.transaction_log.update(booking)
            else:
                booking = Reservation(
                    item_id=item_id,
                    batch_id=line.batch_id,
                    batch_number=line.batch_number,
                    quantity=line.quantity,
                    reference_id=task_id,
                    task_number=task_number,
                    reservation_method=method,
                    user_id=user_id,
                )
                await self.transaction_log.append(booking)
            written.append(booking)
        return BookingResult(
            item_id=item_id, task_id=task_id, quantity=quantity, reservations=written, booked_delta=plan.allocated
        )

    async def update_reservation(
        self,
        reservation_id: str,
        new_quantity: float,
        user_id: str | None = None,
        new_batch_id: str | None = None,
    ) -> Reservation | None:
        """
        Change a booking's quantity and optionally move it to another lot.
        A quantity of zero deletes the booking and returns None.
        """
        reservation_id = validate_id(reservation_id, "reservation_id")
        new_quantity = round_quantity(validate_quantity(new_quantity, field="new_quantity"))
        if new_batch_id is not None:
            new_batch_id = validate_id(new_batch_id, "new_batch_id")
        if new_quantity == 0:
            await self.delete_reservation(reservation_id, user_id)
            return None

        booking = await self._get_booking(reservation_id)
        async with self.locks.acquire(booking.item_id):
            booking = await self._get_booking(reservation_id)
            if not booking.is_active:
                raise InventoryValidationError(
                    f"Reservation {reservation_id} is {booking.status.value} and cannot be edited",
                    field="reservation_id",
                )
            target_batch = new_batch_id or booking.batch_id
            updates = {"quantity": new_quantity, "updated_at": datetime.now()}

            if target_batch:
                candidates = await self.get_batch_candidates(booking.item_id, booking.reference_id, fresh=True)
                candidate = next((c for c in candidates if c.batch_id == target_batch), None)
                if candidate is None:
                    raise BatchNotFoundError(target_batch, booking.item_id)
                held_elsewhere = candidate.reserved_for_task
                if target_batch == booking.batch_id:
                    held_elsewhere -= booking.quantity
                available = round_quantity(candidate.effective_quantity - held_elsewhere)
                if new_quantity > available:
                    raise InsufficientStockError(booking.item_id, new_quantity, available, batch_id=target_batch)
                updates.update(batch_id=target_batch, batch_number=candidate.batch_number)
            else:
                item = await self.item_store.get_item(booking.item_id)
                if item is None:
                    raise MaterialNotFoundError(booking.item_id)
                available = round_quantity(item.available_quantity + booking.quantity)
                if new_quantity > available:
                    raise InsufficientStockError(booking.item_id, new_quantity, available)

            updated = booking.model_copy(update=updates)
            await self.transaction_log.update(updated)
            delta = round_quantity(new_quantity - booking.quantity)
            if delta:
                await adjust_booked_quantity(
                    self.item_store, booking.item_id, delta, max_retries=self.config.max_write_retries, user_id=user_id
                )
            self.invalidate_item(booking.item_id)

        logger.info(f"Reservation {reservation_id} updated to {new_quantity}")
        return updated

    async def delete_reservation(self, reservation_id: str, user_id: str | None = None) -> Reservation:
        """Delete a booking and release what it held from the item."""
        reservation_id = validate_id(reservation_id, "reservation_id")
        booking = await self._get_booking(reservation_id)
        async with self.locks.acquire(booking.item_id):
            booking = await self._get_booking(reservation_id)
            await self.transaction_log.delete(reservation_id)
            if booking.is_active and booking.quantity > 0:
                try:
                    await adjust_booked_quantity(
                        self.item_store,
                        booking.item_id,
                        -booking.quantity,
                        max_retries=self.config.max_write_retries,
                        user_id=user_id,
                    )
                except MaterialNotFoundError:
                    logger.warning(f"Item {booking.item_id} of reservation {reservation_id} no longer exists")
            self.invalidate_item(booking.item_id)
        logger.info(f"Reservation {reservation_id} deleted")
        return booking

    async def cancel_task_bookings(
        self, item_id: str, task_id: str, user_id: str | None = None
    ) -> list[Reservation]:
        """Cancel the task's active bookings of an item and release their quantity."""
        item_id = validate_id(item_id, "item_id")
        task_id = validate_id(task_id, "task_id")
        async with self.locks.acquire(item_id):
            if await self.item_store.get_item(item_id) is None:
                raise MaterialNotFoundError(item_id)
            cancelled = []
            for booking in await self._active_bookings(item_id):
                if booking.reference_id != task_id:
                    continue
                booking = booking.model_copy(update={"status": ReservationStatus.CANCELLED, "updated_at": datetime.now()})
                await self.transaction_log.update(booking)
                cancelled.append(booking)
            released = sum_quantities(b.quantity for b in cancelled)
            if cancelled:
                await self.transaction_log.append(
                    BookingCancellation(
                        item_id=item_id,
                        reference_id=task_id,
                        quantity=released,
                        reason="task bookings cancelled",
                        user_id=user_id,
                    )
                )
            if released:
                await adjust_booked_quantity(
                    self.item_store, item_id, -released, max_retries=self.config.max_write_retries, user_id=user_id
                )
            self.invalidate_item(item_id)
        logger.info(f"Cancelled {len(cancelled)} bookings of {item_id} for task {task_id}")
        return cancelled
