import asyncio

import pytest

from models.enums import ReservationMethod, ReservationStatus, TaskReservationState, TransactionType
from reservations.errors import (
    BatchNotFoundError,
    InsufficientStockError,
    InventoryValidationError,
    MaterialNotFoundError,
    ReservationNotFoundError,
    TaskNotFoundError,
)
from reservations.service import ReservationService
from utils.cache import TTLCache


async def bookings(transaction_log, **filters):
    records = await transaction_log.query(type=TransactionType.BOOKING, **filters)
    return [r for r in records if r.is_active]


async def booked(item_store, item_id="flour"):
    return (await item_store.get_item(item_id)).booked_quantity


# --- book_material --- #


@pytest.mark.asyncio
async def test_automatic_booking_follows_fefo(service, transaction_log, item_store):
    result = await service.book_material("flour", 50, "T1", user_id="u1")

    assert [(r.batch_id, r.quantity) for r in result.reservations] == [("B", 30), ("A", 20)]
    assert all(r.task_number == "MO-001" for r in result.reservations)
    assert len(await bookings(transaction_log, reference_id="T1")) == 2
    assert await booked(item_store) == 50


@pytest.mark.asyncio
async def test_automatic_booking_fifo(service):
    result = await service.book_material("flour", 50, "T1", method="fifo")
    assert [(r.batch_id, r.quantity) for r in result.reservations] == [("C", 30), ("A", 20)]
    assert all(r.reservation_method == ReservationMethod.FIFO for r in result.reservations)


@pytest.mark.asyncio
async def test_automatic_shortfall_writes_nothing(service, transaction_log, item_store):
    await service.book_material("flour", 30, "T2", batch_id="A")

    with pytest.raises(InsufficientStockError) as excinfo:
        await service.book_material("flour", 80, "T1")

    assert excinfo.value.requested == 80
    assert excinfo.value.available == 70
    assert await bookings(transaction_log, reference_id="T1") == []
    assert await booked(item_store) == 30


@pytest.mark.asyncio
async def test_automatic_booking_tops_up_existing_lots(service, transaction_log, item_store):
    await service.book_material("flour", 20, "T1")
    result = await service.book_material("flour", 20, "T1")

    assert [(r.batch_id, r.quantity) for r in result.reservations] == [("B", 30), ("A", 10)]
    held = {r.batch_id: r.quantity for r in await bookings(transaction_log, reference_id="T1")}
    assert held == {"B": 30, "A": 10}
    assert await booked(item_store) == 40


@pytest.mark.asyncio
async def test_manual_booking_beyond_effective_quantity_rejected(service, item_store):
    await service.book_material("flour", 30, "T2", batch_id="A")

    with pytest.raises(InsufficientStockError) as excinfo:
        await service.book_material("flour", 20, "T1", batch_id="A")

    assert excinfo.value.batch_id == "A"
    assert excinfo.value.available == 10
    assert await booked(item_store) == 30


@pytest.mark.asyncio
async def test_manual_booking_same_batch_updates_instead_of_duplicating(service, transaction_log, item_store):
    first = await service.book_material("flour", 10, "T1", batch_id="A")
    second = await service.book_material("flour", 15, "T1", batch_id="A")

    records = await bookings(transaction_log, reference_id="T1")
    assert len(records) == 1
    assert records[0].id == first.reservations[0].id == second.reservations[0].id
    assert records[0].quantity == 15
    assert second.booked_delta == 5
    assert await booked(item_store) == 15


@pytest.mark.asyncio
async def test_booking_for_unknown_task_is_allowed(service, transaction_log):
    result = await service.book_material("flour", 5, "CMR-42-abc", batch_id="C")
    assert result.reservations[0].task_number == ""
    assert result.reservations[0].reference_id == "CMR-42-abc"


@pytest.mark.asyncio
async def test_booking_unknown_item_or_batch(service):
    with pytest.raises(MaterialNotFoundError):
        await service.book_material("sugar", 5, "T1")
    with pytest.raises(BatchNotFoundError):
        await service.book_material("flour", 5, "T1", batch_id="Z")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs",
    [
        {"quantity": -5},
        {"quantity": 0},
        {"quantity": "five"},
        {"quantity": 5, "method": "lifo"},
        {"quantity": 5, "task_id": "  "},
    ],
)
async def test_booking_validation_precedes_writes(service, transaction_log, item_store, kwargs):
    args = {"item_id": "flour", "task_id": "T1", **kwargs}
    with pytest.raises(InventoryValidationError):
        await service.book_material(**args)
    assert len(transaction_log) == 0
    assert item_store.save_count == 0


@pytest.mark.asyncio
async def test_concurrent_bookings_never_overbook_a_batch(item_store, batch_store, transaction_log, task_store):
    for store in (item_store, batch_store, transaction_log, task_store):
        store.latency = 0.001
    service = ReservationService(item_store, batch_store, transaction_log, task_store)

    outcomes = await asyncio.gather(
        *(service.book_material("flour", 10, f"T{i}", batch_id="A") for i in range(1, 6)),
        return_exceptions=True,
    )

    failures = [o for o in outcomes if isinstance(o, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientStockError)
    assert sum(r.quantity for r in await bookings(transaction_log, batch_id="A")) == 40
    assert await booked(item_store) == 40


# --- update / delete / cancel --- #


@pytest.mark.asyncio
async def test_update_reservation_within_availability(service, item_store):
    result = await service.book_material("flour", 10, "T1", batch_id="A")
    updated = await service.update_reservation(result.reservations[0].id, 25, user_id="u1")

    assert updated.quantity == 25
    assert updated.updated_at is not None
    assert await booked(item_store) == 25


@pytest.mark.asyncio
async def test_update_reservation_beyond_availability(service, item_store):
    result = await service.book_material("flour", 10, "T1", batch_id="A")
    await service.book_material("flour", 20, "T2", batch_id="A")

    with pytest.raises(InsufficientStockError):
        await service.update_reservation(result.reservations[0].id, 25)
    assert await booked(item_store) == 30


@pytest.mark.asyncio
async def test_update_reservation_to_zero_deletes(service, transaction_log, item_store):
    result = await service.book_material("flour", 10, "T1", batch_id="A")

    assert await service.update_reservation(result.reservations[0].id, 0) is None
    assert await transaction_log.get(result.reservations[0].id) is None
    assert await booked(item_store) == 0


@pytest.mark.asyncio
async def test_update_reservation_moves_batch(service, item_store):
    result = await service.book_material("flour", 10, "T1", batch_id="A")
    moved = await service.update_reservation(result.reservations[0].id, 5, new_batch_id="C")

    assert moved.batch_id == "C"
    assert moved.batch_number == "LOT-C"
    assert await booked(item_store) == 5


@pytest.mark.asyncio
async def test_update_unknown_reservation(service):
    with pytest.raises(ReservationNotFoundError):
        await service.update_reservation("missing", 5)


@pytest.mark.asyncio
async def test_delete_reservation_releases_quantity(service, transaction_log, item_store):
    result = await service.book_material("flour", 12.5, "T1", batch_id="B")
    deleted = await service.delete_reservation(result.reservations[0].id)

    assert deleted.quantity == 12.5
    assert len(transaction_log) == 0
    assert await booked(item_store) == 0
    with pytest.raises(ReservationNotFoundError):
        await service.delete_reservation(result.reservations[0].id)


@pytest.mark.asyncio
async def test_delete_release_floors_at_zero(service, item_store):
    result = await service.book_material("flour", 10, "T1", batch_id="A")
    item = await item_store.get_item("flour")
    await item_store.save_item(item.model_copy(update={"booked_quantity": 4}))

    await service.delete_reservation(result.reservations[0].id)
    assert await booked(item_store) == 0


@pytest.mark.asyncio
async def test_cancel_task_bookings(service, transaction_log, item_store):
    await service.book_material("flour", 50, "T1")
    await service.book_material("flour", 5, "T2", batch_id="C")

    cancelled = await service.cancel_task_bookings("flour", "T1", user_id="u1")

    assert len(cancelled) == 2
    assert all(r.status == ReservationStatus.CANCELLED for r in cancelled)
    assert await bookings(transaction_log, reference_id="T1") == []
    assert len(await bookings(transaction_log, reference_id="T2")) == 1
    audit = await transaction_log.query(type=TransactionType.BOOKING_CANCEL)
    assert [a.quantity for a in audit] == [50]
    assert await booked(item_store) == 5


# --- lot capacity --- #


async def held_on(transaction_log, batch_id):
    return sum(r.quantity for r in await bookings(transaction_log, batch_id=batch_id))


@pytest.mark.asyncio
async def test_manual_booking_sees_outside_stock_decrement(service, batch_store, transaction_log):
    await service.select_batches("T2", "flour")  # caches the lot list
    batch_store.set_quantity("B", 5.0)

    with pytest.raises(InsufficientStockError) as excinfo:
        await service.book_material("flour", 15, "T2", batch_id="B")

    assert excinfo.value.available == 5
    assert await held_on(transaction_log, "B") == 0


@pytest.mark.asyncio
async def test_automatic_booking_sees_outside_stock_decrement(service, batch_store, transaction_log):
    await service.get_batch_candidates("flour", "T1")
    batch_store.set_quantity("B", 5.0)

    result = await service.book_material("flour", 50, "T1")

    assert [(r.batch_id, r.quantity) for r in result.reservations] == [("B", 5), ("A", 40), ("C", 5)]
    assert await held_on(transaction_log, "B") == 5


@pytest.mark.asyncio
async def test_update_reservation_sees_outside_stock_decrement(service, batch_store, transaction_log):
    result = await service.book_material("flour", 10, "T1", batch_id="A")
    await service.select_batches("T1", "flour")
    batch_store.set_quantity("A", 8.0)

    with pytest.raises(InsufficientStockError):
        await service.update_reservation(result.reservations[0].id, 9)

    updated = await service.update_reservation(result.reservations[0].id, 8)
    assert updated.quantity == 8
    assert await held_on(transaction_log, "A") == 8


@pytest.mark.asyncio
async def test_manual_booking_merges_bookings_moved_onto_the_lot(service, transaction_log, item_store):
    on_a = await service.book_material("flour", 10, "T1", batch_id="A")
    await service.book_material("flour", 10, "T1", batch_id="B")
    await service.update_reservation(on_a.reservations[0].id, 10, new_batch_id="B")
    assert len(await bookings(transaction_log, reference_id="T1", batch_id="B")) == 2

    with pytest.raises(InsufficientStockError):
        await service.book_material("flour", 31, "T1", batch_id="B")
    result = await service.book_material("flour", 30, "T1", batch_id="B")

    records = await bookings(transaction_log, reference_id="T1", batch_id="B")
    assert [r.quantity for r in records] == [30]
    assert result.booked_delta == 10
    assert await held_on(transaction_log, "B") == 30
    assert await booked(item_store) == 30


@pytest.mark.asyncio
async def test_automatic_booking_counts_every_own_booking_on_a_lot(service, transaction_log, item_store):
    on_a = await service.book_material("flour", 10, "T1", batch_id="A")
    await service.book_material("flour", 10, "T1", batch_id="B")
    await service.update_reservation(on_a.reservations[0].id, 10, new_batch_id="B")

    result = await service.book_material("flour", 15, "T1")

    assert [(r.batch_id, r.quantity) for r in result.reservations] == [("B", 20), ("A", 5)]
    assert await held_on(transaction_log, "B") == 30
    assert await booked(item_store) == 35


@pytest.mark.asyncio
async def test_repeated_manual_booking_stays_within_lot(service, transaction_log, item_store):
    await service.book_material("flour", 15, "T2", batch_id="A")
    await service.book_material("flour", 10, "T1", batch_id="A")
    await service.book_material("flour", 25, "T1", batch_id="A")

    with pytest.raises(InsufficientStockError):
        await service.book_material("flour", 26, "T1", batch_id="A")

    assert await held_on(transaction_log, "A") == 40
    assert len(await bookings(transaction_log, reference_id="T1")) == 1
    assert await booked(item_store) == 40


# --- reads --- #


@pytest.mark.asyncio
async def test_batch_candidates_split_own_and_other_holdings(service):
    await service.book_material("flour", 10, "T1", batch_id="A")
    await service.book_material("flour", 25, "T2", batch_id="A")

    candidates = {c.batch_id: c for c in await service.get_batch_candidates("flour", "T1")}
    assert candidates["A"].reserved_by_others == 25
    assert candidates["A"].reserved_for_task == 10
    assert candidates["A"].effective_quantity == 15
    assert candidates["B"].effective_quantity == 30


@pytest.mark.asyncio
async def test_select_batches_orders_held_lots_first(service):
    await service.book_material("flour", 5, "T1", batch_id="C")
    selection = await service.select_batches("T1", "flour")

    assert selection.required == 50
    assert [c.batch_id for c in selection.candidates] == ["C", "B", "A"]
    assert selection.current_selection() == {"C": 5}


@pytest.mark.asyncio
async def test_select_batches_by_requirement_id(service):
    selection = await service.select_batches("T1", "req-flour")
    assert selection.material_id == "flour"


@pytest.mark.asyncio
async def test_select_batches_unknown_material_or_task(service):
    with pytest.raises(MaterialNotFoundError):
        await service.select_batches("T1", "sugar")
    with pytest.raises(TaskNotFoundError):
        await service.select_batches("T404", "flour")


@pytest.mark.asyncio
async def test_reservations_grouped_by_task(service):
    await service.book_material("flour", 50, "T1")
    await service.book_material("flour", 5, "T2", batch_id="C")

    groups = {g.task_id: g for g in await service.get_reservations_grouped_by_task("flour")}
    assert groups["T1"].total_quantity == 50
    assert sorted(groups["T1"].batch_ids) == ["A", "B"]
    assert groups["T2"].task_number == "MO-002"


@pytest.mark.asyncio
async def test_task_reservation_status_from_log(service):
    status = await service.task_reservation_status("T1")
    assert status.state == TaskReservationState.NOT_RESERVED

    await service.book_material("flour", 25, "T1")
    assert (await service.task_reservation_status("T1")).state == TaskReservationState.PARTIALLY_RESERVED

    await service.book_material("flour", 25, "T1")
    assert (await service.task_reservation_status("T1")).state == TaskReservationState.FULLY_RESERVED


# --- batch list cache --- #


@pytest.mark.asyncio
async def test_batch_lists_cached_until_mutation(service, batch_store):
    await service.get_batch_candidates("flour", "T1")
    await service.get_batch_candidates("flour", "T2")
    assert batch_store.list_calls == 1

    await service.book_material("flour", 1, "T1", batch_id="A")
    calls_after_booking = batch_store.list_calls
    await service.get_batch_candidates("flour", "T1")
    assert batch_store.list_calls == calls_after_booking + 1


@pytest.mark.asyncio
async def test_batch_lists_expire(item_store, batch_store, transaction_log, task_store, clock):
    cache = TTLCache(ttl_seconds=30, clock=clock)
    service = ReservationService(item_store, batch_store, transaction_log, task_store, cache=cache)

    await service.get_batch_candidates("flour", "T1")
    clock.advance(29)
    await service.get_batch_candidates("flour", "T1")
    assert batch_store.list_calls == 1

    clock.advance(2)
    await service.get_batch_candidates("flour", "T1")
    assert batch_store.list_calls == 2


@pytest.mark.asyncio
async def test_warehouse_filter_is_part_of_cache_key(service, batch_store):
    w2 = await service.get_batch_candidates("flour", "T1", warehouse_id="W2")
    everything = await service.get_batch_candidates("flour", "T1")
    assert [c.batch_id for c in w2] == ["C"]
    assert len(everything) == 3
    assert batch_store.list_calls == 2
