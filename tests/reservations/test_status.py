import pytest

from config.config import ReservationConfig
from models.enums import ReservationStatus, TaskReservationState, TaskStatus
from models.state import ConsumedMaterial, Reservation
from models.task import MaterialRequirement, ProductionTask, ReservedBatch
from reservations.errors import MaterialNotFoundError
from reservations.status import calculate_material_coverage, calculate_task_reservation_status


def make_task(reserved: float = 0.0, consumed: float = 0.0, **kwargs) -> ProductionTask:
    task = ProductionTask(
        id="T1",
        materials=[MaterialRequirement(material_id="flour", quantity=50.0)],
        **kwargs,
    )
    if reserved:
        task.material_batches["flour"] = [ReservedBatch("A", reserved)]
    if consumed:
        task.consumed_materials.append(ConsumedMaterial(task_id="T1", material_id="flour", quantity=consumed))
    return task


def test_task_without_materials():
    status = calculate_task_reservation_status(ProductionTask(id="T0"))
    assert status.state == TaskReservationState.NO_MATERIALS
    assert status.label
    assert status.color


@pytest.mark.parametrize(
    "covered, expected",
    [
        (0, TaskReservationState.NOT_RESERVED),
        (25, TaskReservationState.PARTIALLY_RESERVED),
        (50, TaskReservationState.FULLY_RESERVED),
    ],
)
def test_status_follows_coverage(covered, expected):
    assert calculate_task_reservation_status(make_task(reserved=covered)).state == expected


def test_consumption_counts_as_coverage():
    task = make_task(reserved=20, consumed=30)
    assert calculate_task_reservation_status(task).state == TaskReservationState.FULLY_RESERVED


def test_ratio_tolerance_absorbs_rounding_noise():
    task = make_task(reserved=49.6)  # 0.992 of the requirement
    assert calculate_task_reservation_status(task).state == TaskReservationState.FULLY_RESERVED
    task = make_task(reserved=49.0)  # 0.98
    assert calculate_task_reservation_status(task).state == TaskReservationState.PARTIALLY_RESERVED


def test_surplus_on_one_material_does_not_cover_another():
    task = ProductionTask(
        id="T1",
        materials=[
            MaterialRequirement(material_id="flour", quantity=10.0),
            MaterialRequirement(material_id="sugar", quantity=10.0),
        ],
        material_batches={"flour": [ReservedBatch("A", 100.0)]},
    )
    status = calculate_task_reservation_status(task)
    assert status.state == TaskReservationState.PARTIALLY_RESERVED
    assert status.total_covered == 10
    assert status.total_required == 20


def test_completed_and_confirmed_overrides_ratio():
    task = make_task(
        reserved=0,
        consumed=20,  # 40% of plan
        status=TaskStatus.COMPLETED.value,
        material_consumption_confirmed=True,
    )
    task.actual_material_usage["flour"] = 50.0
    status = calculate_task_reservation_status(task)
    assert status.state == TaskReservationState.COMPLETED_CONFIRMED


def test_completed_without_confirmation_uses_ratio():
    task = make_task(reserved=20, status=TaskStatus.COMPLETED.value)
    assert calculate_task_reservation_status(task).state == TaskReservationState.PARTIALLY_RESERVED


def test_live_reservations_replace_snapshot():
    task = make_task(reserved=50)
    reservations = [
        Reservation(item_id="flour", batch_id="A", quantity=10, reference_id="T1"),
        Reservation(item_id="flour", batch_id="B", quantity=40, reference_id="T1", status=ReservationStatus.CANCELLED),
        Reservation(item_id="flour", batch_id="B", quantity=40, reference_id="T9"),
    ]
    status = calculate_task_reservation_status(task, reservations)
    assert status.state == TaskReservationState.PARTIALLY_RESERVED
    assert status.total_covered == 10


def test_custom_threshold_from_config():
    task = make_task(reserved=45)  # 0.9
    config = ReservationConfig(full_coverage_ratio=0.9)
    assert calculate_task_reservation_status(task, config=config).state == TaskReservationState.FULLY_RESERVED


def test_status_is_not_cached_between_calls():
    task = make_task(reserved=10)
    assert calculate_task_reservation_status(task).state == TaskReservationState.PARTIALLY_RESERVED
    task.material_batches["flour"].append(ReservedBatch("B", 40))
    assert calculate_task_reservation_status(task).state == TaskReservationState.FULLY_RESERVED


def test_material_coverage():
    coverage = calculate_material_coverage(make_task(reserved=29.9995, consumed=20), "flour")
    assert coverage.required == 50
    assert coverage.total_coverage >= 49.999
    assert coverage.has_full_coverage
    assert coverage.coverage_percent == 100.0

    partial = calculate_material_coverage(make_task(reserved=20), "flour")
    assert not partial.has_full_coverage
    assert partial.coverage_percent == 40.0


def test_material_coverage_unknown_material():
    with pytest.raises(MaterialNotFoundError):
        calculate_material_coverage(make_task(), "sugar")
