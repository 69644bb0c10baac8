"""
Task-level reservation status.

The state is re-derived from the task snapshot on every call and never
persisted, so it cannot drift from the underlying records:

1. no requirements                                   -> no_materials
2. completed task with confirmed consumption         -> completed_confirmed
3. per requirement, coverage = min(consumed + reserved, required)
4. nothing covered anywhere                          -> not_reserved
5. ratio = covered / required; >= 0.99 fully, > 0 partially reserved
"""

import logging
from collections.abc import Iterable

from config.config import ReservationConfig
from models.coverage import MaterialCoverage, TaskReservationStatus
from models.enums import TaskReservationState
from models.state import Reservation
from models.task import MaterialRequirement, ProductionTask
from utils.quantities import round_quantity, sum_quantities

from .errors import MaterialNotFoundError
from .requirements import (
    consumed_quantity_for_material,
    required_quantity,
    reserved_quantity_for_material,
)

logger = logging.getLogger(__name__)

STATUS_LABELS: dict[TaskReservationState, tuple[str, str]] = {
    TaskReservationState.NO_MATERIALS: ("No materials", "default"),
    TaskReservationState.NOT_RESERVED: ("Not reserved", "error"),
    TaskReservationState.PARTIALLY_RESERVED: ("Partially reserved", "warning"),
    TaskReservationState.FULLY_RESERVED: ("Fully reserved", "success"),
    TaskReservationState.COMPLETED_CONFIRMED: ("Completed, consumption confirmed", "info"),
}


def _status(state: TaskReservationState, **kwargs) -> TaskReservationStatus:
    label, color = STATUS_LABELS[state]
    return TaskReservationStatus(state=state, label=label, color=color, **kwargs)


def _reserved_for(
    task: ProductionTask, material_id: str, reservations: Iterable[Reservation] | None
) -> float:
    if reservations is None:
        return reserved_quantity_for_material(task.material_batches, material_id)
    return sum_quantities(
        r.quantity
        for r in reservations
        if r.is_active and r.reference_id == task.id and r.item_id == material_id
    )


def _coverage(
    task: ProductionTask,
    requirement: MaterialRequirement,
    reservations: list[Reservation] | None,
    config: ReservationConfig,
) -> MaterialCoverage:
    consumed = consumed_quantity_for_material(task.consumed_materials, requirement.material_id)
    required = required_quantity(
        requirement,
        consumed,
        task.material_consumption_confirmed,
        overrides=task.actual_material_usage,
    )
    return MaterialCoverage(
        material_id=requirement.material_id,
        required=required,
        consumed=consumed,
        reserved=_reserved_for(task, requirement.material_id, reservations),
        tolerance=config.coverage_tolerance,
    )


def calculate_material_coverage(
    task: ProductionTask,
    material_id: str,
    reservations: Iterable[Reservation] | None = None,
    config: ReservationConfig | None = None,
) -> MaterialCoverage:
    """Coverage of a single requirement. Unknown materials raise MaterialNotFoundError."""
    requirement = task.find_requirement(material_id)
    if requirement is None:
        raise MaterialNotFoundError(material_id, context=f"task {task.id}")
    snapshot = list(reservations) if reservations is not None else None
    return _coverage(task, requirement, snapshot, config or ReservationConfig())


def calculate_task_reservation_status(
    task: ProductionTask,
    reservations: Iterable[Reservation] | None = None,
    config: ReservationConfig | None = None,
) -> TaskReservationStatus:
    """
    Derive the task's reservation state.

    Args:
        task: Task snapshot (requirements, consumption, reservation snapshot).
        reservations: Bookings from the transaction log. When given, the active
            ones owned by the task replace the task's own reservation snapshot.
        config: Thresholds; defaults to ReservationConfig().
    """
    config = config or ReservationConfig()
    if not task.materials:
        return _status(TaskReservationState.NO_MATERIALS)

    snapshot = list(reservations) if reservations is not None else None
    materials = [_coverage(task, req, snapshot, config) for req in task.materials]
    total_required = sum_quantities(m.required for m in materials)
    total_covered = sum_quantities(m.covered_clamped for m in materials)
    totals = {"total_required": total_required, "total_covered": total_covered, "materials": materials}

    if task.is_completed and task.material_consumption_confirmed:
        return _status(TaskReservationState.COMPLETED_CONFIRMED, **totals)

    if not any(m.total_coverage > 0 for m in materials):
        return _status(TaskReservationState.NOT_RESERVED, **totals)

    if total_required <= 0:
        # Everything already consumed or planned at zero; nothing left to hold.
        return _status(TaskReservationState.FULLY_RESERVED, **totals)

    ratio = total_covered / total_required
    if ratio >= config.full_coverage_ratio:
        state = TaskReservationState.FULLY_RESERVED
    elif ratio > 0:
        state = TaskReservationState.PARTIALLY_RESERVED
    else:
        state = TaskReservationState.NOT_RESERVED
    logger.debug(f"Task {task.id}: coverage {round_quantity(ratio, 4)} -> {state.value}")
    return _status(state, **totals)
