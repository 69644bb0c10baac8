"""
Centralized Enum definitions for the project.
"""

from enum import Enum


class TransactionType(str, Enum):
    """Types of records kept in the inventory transaction log"""

    BOOKING = "booking"  # Reservation held against an item/batch for a task
    BOOKING_CANCEL = "booking_cancel"  # Audit entry for a released booking
    CONSUMPTION = "consumption"  # Material consumed by a production task


class ReservationStatus(str, Enum):
    """Possible reservation statuses"""

    ACTIVE = "active"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


class ReservationMethod(str, Enum):
    """Batch ordering used by automatic allocation"""

    FEFO = "expiry"  # First expired, first out
    FIFO = "fifo"  # First received, first out


class TaskStatus(str, Enum):
    """Production task statuses the reservation core cares about"""

    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Status values that count as "completed" for the confirmed-consumption override.
COMPLETED_TASK_STATUSES = frozenset({TaskStatus.COMPLETED.value})


class TaskReservationState(str, Enum):
    """Task-level reservation state derived from its material requirements"""

    NO_MATERIALS = "no_materials"
    NOT_RESERVED = "not_reserved"
    PARTIALLY_RESERVED = "partially_reserved"
    FULLY_RESERVED = "fully_reserved"
    COMPLETED_CONFIRMED = "completed_confirmed"
