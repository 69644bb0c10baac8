"""
Typed exceptions raised by the reservation core.

    ReservationError
    +-- InventoryValidationError   (also a ValueError)
    +-- MaterialNotFoundError      (also a LookupError)
    +-- BatchNotFoundError         (also a LookupError)
    +-- ReservationNotFoundError   (also a LookupError)
    +-- TaskNotFoundError          (also a LookupError)
    +-- InsufficientStockError
    +-- ConcurrentModificationError
"""


class ReservationError(Exception):
    """Base class for every error raised by the reservation core."""

    code: str = "RESERVATION_ERROR"


class InventoryValidationError(ReservationError, ValueError):
    """Input failed validation; raised before any store mutation."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class MaterialNotFoundError(ReservationError, LookupError):
    code = "MATERIAL_NOT_FOUND"

    def __init__(self, material_id: str, context: str | None = None):
        message = f"Material {material_id} not found"
        if context:
            message = f"{message} ({context})"
        super().__init__(message)
        self.material_id = material_id


class BatchNotFoundError(ReservationError, LookupError):
    code = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str, item_id: str | None = None):
        message = f"Batch {batch_id} not found"
        if item_id:
            message = f"{message} for item {item_id}"
        super().__init__(message)
        self.batch_id = batch_id
        self.item_id = item_id


class ReservationNotFoundError(ReservationError, LookupError):
    code = "RESERVATION_NOT_FOUND"

    def __init__(self, reservation_id: str):
        super().__init__(f"Reservation {reservation_id} not found")
        self.reservation_id = reservation_id


class InsufficientStockError(ReservationError):
    """Not enough effectively available stock to satisfy a booking."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, item_id: str, requested: float, available: float, batch_id: str | None = None):
        where = f"batch {batch_id}" if batch_id else f"item {item_id}"
        super().__init__(
            f"Insufficient stock in {where}: requested {requested}, effectively available {available}"
        )
        self.item_id = item_id
        self.batch_id = batch_id
        self.requested = requested
        self.available = available


class ConcurrentModificationError(ReservationError):
    """A version-checked write lost a race with another writer."""

    code = "CONCURRENT_MODIFICATION"

    def __init__(self, record_id: str, expected_version: int, actual_version: int):
        super().__init__(
            f"Record {record_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.record_id = record_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class TaskNotFoundError(ReservationError, LookupError):
    code = "TASK_NOT_FOUND"

    def __init__(self, task_id: str):
        super().__init__(f"Production task {task_id} not found")
        self.task_id = task_id
