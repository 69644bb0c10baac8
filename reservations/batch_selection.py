"""
Batch (lot) selection for material reservations.

Candidates are ordered first-expired-first-out: lots the task already holds
come first, then ascending expiry date, lots without an expiry date last.
Per-lot selections are capped at the lot's effective quantity; the total
against the requirement is advisory.
"""

import logging
from collections.abc import Collection, Iterable, Mapping
from datetime import date, datetime
from typing import Any

from models.allocation import AllocationLine, AllocationPlan, BatchCandidate, SelectionPreview
from models.enums import ReservationMethod
from utils.quantities import round_quantity, sum_quantities

from .errors import InventoryValidationError
from .validators import validate_quantity

logger = logging.getLogger(__name__)

# Lots without an expiry date sort as the furthest expiry.
FAR_FUTURE_EXPIRY = date(9999, 12, 31)
# Lots without a received date sort as the oldest stock.
EPOCH = datetime(1970, 1, 1)


def _expiry_key(candidate: BatchCandidate) -> date:
    expiry = candidate.expiry_date
    if expiry is None:
        return FAR_FUTURE_EXPIRY
    # Timestamped expiries compare by calendar day.
    return expiry.date() if isinstance(expiry, datetime) else expiry


def _received_key(candidate: BatchCandidate) -> datetime:
    received = candidate.received_date
    if received is None:
        return EPOCH
    return received.replace(tzinfo=None) if received.tzinfo else received


def order_candidates(
    candidates: Iterable[BatchCandidate],
    reserved_for_task: Collection[str] = (),
    show_exhausted: bool = False,
    method: ReservationMethod = ReservationMethod.FEFO,
) -> list[BatchCandidate]:
    """
    Order and filter candidate lots for one material.

    Args:
        candidates: Lots of the material.
        reserved_for_task: Ids of lots the current task already holds. These
            sort first and stay visible even when exhausted.
        show_exhausted: Keep lots with no effective quantity.
        method: FEFO (expiry date) or FIFO (received date) within each group.

    Returns:
        A new list; the sort is stable so equal keys keep their input order.
    """
    held = set(reserved_for_task)
    visible = [
        c
        for c in candidates
        if show_exhausted or c.effective_quantity > 0 or c.batch_id in held
    ]
    date_key = _received_key if method == ReservationMethod.FIFO else _expiry_key
    return sorted(visible, key=lambda c: (c.batch_id not in held, date_key(c)))


def validate_selected_quantity(candidate: BatchCandidate, value: Any, clamp: bool = False) -> float:
    """
    Check a per-lot selection against ``[0, effective_quantity]``.

    Non-numeric input is always rejected. Out-of-range numbers raise, or are
    clamped into range when ``clamp`` is set.
    """
    field = f"selection[{candidate.batch_id}]"
    if clamp:
        try:
            number = validate_quantity(value, field=field)
        except InventoryValidationError:
            if isinstance(value, int | float) and not isinstance(value, bool) and value < 0:
                return 0.0
            raise
        return round_quantity(min(number, candidate.effective_quantity))

    number = validate_quantity(value, field=field)
    limit = round_quantity(candidate.effective_quantity)
    if round_quantity(number) > limit:
        raise InventoryValidationError(
            f"Selected {number} exceeds the {limit} effectively available in batch "
            f"{candidate.batch_number or candidate.batch_id}",
            field=field,
        )
    return round_quantity(number)


def preview_selection(required: float, selections: Mapping[str, float]) -> SelectionPreview:
    """Summarise a manual selection. Partial selections are allowed, just not complete."""
    cleaned = {batch_id: round_quantity(qty) for batch_id, qty in selections.items() if qty}
    return SelectionPreview(
        required=round_quantity(required),
        total_selected=sum_quantities(cleaned.values()),
        selections=cleaned,
    )


def allocate(
    required: float,
    candidates: Iterable[BatchCandidate],
    reserved_for_task: Collection[str] = (),
    method: ReservationMethod = ReservationMethod.FEFO,
) -> AllocationPlan:
    """
    Greedy automatic allocation over the ordered candidate list.

    Takes ``min(remaining, effective_quantity)`` from each lot until the
    requirement is met or the lots run out. A short plan is returned, not raised;
    the caller decides whether a shortfall is acceptable.
    """
    requested = round_quantity(validate_quantity(required, field="required"))
    plan = AllocationPlan(requested=requested, method=method)
    remaining = requested
    for candidate in order_candidates(candidates, reserved_for_task, method=method):
        if remaining <= 0:
            break
        take = round_quantity(min(remaining, candidate.effective_quantity))
        if take <= 0:
            continue
        plan.lines.append(
            AllocationLine(batch_id=candidate.batch_id, quantity=take, batch_number=candidate.batch_number)
        )
        remaining = round_quantity(remaining - take)

    if not plan.is_complete:
        logger.info(f"Allocation short by {plan.shortfall} (requested {requested}, allocated {plan.allocated})")
    return plan
