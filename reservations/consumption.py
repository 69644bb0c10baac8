"""
Consumption reconciliation.

Consumption is appended to the transaction log as immutable records and never
edits bookings directly: the shrinking requirement (see requirements.py) is
what releases the reservation. Over-consumption against the issued quantity is
reported as a warning and never blocks the write.
"""

import logging
import math
from dataclasses import dataclass

from config.config import ReservationConfig
from connectors.interfaces import ItemStore, TransactionLog
from models.enums import TransactionType
from models.state import ConsumedMaterial
from utils.quantities import sum_quantities

from .errors import MaterialNotFoundError
from .validators import validate_id, validate_positive_quantity, validate_quantity

logger = logging.getLogger(__name__)

DEFAULT_OVERCONSUMPTION_TOLERANCE = 0.001


def is_exceeding_issued(
    consumed: float, issued: float, tolerance: float = DEFAULT_OVERCONSUMPTION_TOLERANCE
) -> bool:
    """True when ``consumed`` exceeds ``issued`` by more than the rounding tolerance (0.1%)."""
    return consumed > issued * (1 + tolerance)


def consumption_excess_percent(
    consumed: float, issued: float, tolerance: float = DEFAULT_OVERCONSUMPTION_TOLERANCE
) -> float:
    if not is_exceeding_issued(consumed, issued, tolerance):
        return 0.0
    if issued <= 0:
        return math.inf
    return (consumed - issued) / issued * 100


@dataclass
class OverConsumptionWarning:
    task_id: str | None
    material_id: str
    consumed: float
    issued: float
    excess_percent: float

    def __str__(self) -> str:
        return (
            f"Material {self.material_id} consumed {self.consumed} against {self.issued} issued "
            f"({self.excess_percent:.2f}% over)"
        )


@dataclass
class ConsumptionResult:
    record: ConsumedMaterial
    warning: OverConsumptionWarning | None = None


class ConsumptionReconciler:
    """Records material usage for production tasks."""

    def __init__(
        self,
        item_store: ItemStore,
        transaction_log: TransactionLog,
        config: ReservationConfig | None = None,
    ):
        self.item_store = item_store
        self.transaction_log = transaction_log
        self.config = config or ReservationConfig()

    async def record_consumption(
        self,
        task_id: str | None,
        material_id: str,
        batch_id: str | None,
        quantity: float,
        unit_price: float = 0.0,
        include_in_costs: bool = True,
        user_id: str | None = None,
        issued_quantity: float | None = None,
    ) -> ConsumptionResult:
        """
        Append a consumption record.

        All input is validated before anything is written. When ``issued_quantity``
        is given, the task's total consumption of the material (this record
        included) is compared against it and a warning is returned if exceeded.

        Raises:
            InventoryValidationError: Bad ids, non-positive quantity or negative price.
            MaterialNotFoundError: The material is not a known inventory item.
        """
        material_id = validate_id(material_id, "material_id")
        task_id = validate_id(task_id, "task_id") if task_id is not None else None
        batch_id = validate_id(batch_id, "batch_id") if batch_id is not None else None
        quantity = validate_positive_quantity(quantity)
        unit_price = validate_quantity(unit_price, field="unit_price")
        if issued_quantity is not None:
            issued_quantity = validate_quantity(issued_quantity, field="issued_quantity")

        if await self.item_store.get_item(material_id) is None:
            raise MaterialNotFoundError(material_id, context="consumption")

        record = ConsumedMaterial(
            task_id=task_id,
            material_id=material_id,
            batch_id=batch_id,
            quantity=quantity,
            unit_price=unit_price,
            include_in_costs=include_in_costs,
            user_id=user_id,
        )
        await self.transaction_log.append(record)
        logger.info(f"Recorded consumption of {quantity} of {material_id} for task {task_id}")

        warning = None
        if issued_quantity is not None:
            consumed = await self.consumed_for_task(task_id, material_id) if task_id else quantity
            warning = self.check_issued(task_id, material_id, consumed, issued_quantity)
        return ConsumptionResult(record=record, warning=warning)

    def check_issued(
        self, task_id: str | None, material_id: str, consumed: float, issued: float
    ) -> OverConsumptionWarning | None:
        tolerance = self.config.overconsumption_tolerance
        if not is_exceeding_issued(consumed, issued, tolerance):
            return None
        warning = OverConsumptionWarning(
            task_id=task_id,
            material_id=material_id,
            consumed=consumed,
            issued=issued,
            excess_percent=consumption_excess_percent(consumed, issued, tolerance),
        )
        logger.warning(f"Over-consumption on task {task_id}: {warning}")
        return warning

    async def consumed_for_task(self, task_id: str, material_id: str | None = None) -> float:
        """Total consumption logged for a task, optionally for one material."""
        records = await self.transaction_log.query(
            type=TransactionType.CONSUMPTION, reference_id=task_id, item_id=material_id
        )
        return sum_quantities(r.quantity for r in records)
