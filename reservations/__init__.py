"""Inventory reservation and batch allocation core"""

from .batch_selection import allocate, order_candidates, preview_selection, validate_selected_quantity
from .cleanup import CleanupJobs
from .consumption import (
    ConsumptionReconciler,
    OverConsumptionWarning,
    consumption_excess_percent,
    is_exceeding_issued,
)
from .errors import (
    BatchNotFoundError,
    ConcurrentModificationError,
    InsufficientStockError,
    InventoryValidationError,
    MaterialNotFoundError,
    ReservationError,
    ReservationNotFoundError,
    TaskNotFoundError,
)
from .recalculation import QuantityRecalculator
from .requirements import (
    consumed_quantity_for_material,
    required_quantity,
    reserved_quantity_for_material,
    resolve_required_quantity,
)
from .service import ReservationService
from .status import calculate_material_coverage, calculate_task_reservation_status


__all__ = [
    # Errors
    "ReservationError",
    "InventoryValidationError",
    "MaterialNotFoundError",
    "BatchNotFoundError",
    "ReservationNotFoundError",
    "TaskNotFoundError",
    "InsufficientStockError",
    "ConcurrentModificationError",
    # Requirements
    "required_quantity",
    "resolve_required_quantity",
    "consumed_quantity_for_material",
    "reserved_quantity_for_material",
    # Batch selection
    "order_candidates",
    "validate_selected_quantity",
    "preview_selection",
    "allocate",
    # Status
    "calculate_task_reservation_status",
    "calculate_material_coverage",
    # Consumption
    "ConsumptionReconciler",
    "OverConsumptionWarning",
    "is_exceeding_issued",
    "consumption_excess_percent",
    # Maintenance
    "QuantityRecalculator",
    "CleanupJobs",
    # Service
    "ReservationService",
]
