"""
Data models for batch selection and allocation.
"""

from dataclasses import dataclass, field
from datetime import date, datetime

from models.enums import ReservationMethod
from models.state import Reservation


@dataclass
class BatchCandidate:
    """A lot offered for allocation, with what other tasks already hold on it."""

    batch_id: str
    quantity: float
    reserved_by_others: float = 0.0
    expiry_date: date | None = None
    received_date: datetime | None = None
    batch_number: str = ""
    warehouse_id: str | None = None
    reserved_for_task: float = 0.0  # what the current task already holds here

    @property
    def effective_quantity(self) -> float:
        """Quantity still free for the current task, never negative."""
        return max(0.0, self.quantity - self.reserved_by_others)


@dataclass
class SelectionPreview:
    """Summary of a (manual) per-batch selection against the requirement."""

    required: float
    total_selected: float
    selections: dict[str, float] = field(default_factory=dict)

    @property
    def shortfall(self) -> float:
        return max(0.0, round(self.required - self.total_selected, 3))

    @property
    def is_complete(self) -> bool:
        return round(self.total_selected, 3) >= round(self.required, 3)


@dataclass
class AllocationLine:
    batch_id: str
    quantity: float
    batch_number: str = ""


@dataclass
class AllocationPlan:
    """Result of automatic allocation over an ordered candidate list."""

    requested: float
    lines: list[AllocationLine] = field(default_factory=list)
    method: ReservationMethod = ReservationMethod.FEFO

    @property
    def allocated(self) -> float:
        return round(sum(line.quantity for line in self.lines), 3)

    @property
    def shortfall(self) -> float:
        return max(0.0, round(self.requested - self.allocated, 3))

    @property
    def is_complete(self) -> bool:
        return self.shortfall == 0


@dataclass
class BatchSelection:
    """Ordered lots offered for one material of a task, with the resolved requirement."""

    task_id: str
    material_id: str
    required: float
    candidates: list[BatchCandidate] = field(default_factory=list)

    @property
    def available(self) -> float:
        return round(sum(c.effective_quantity for c in self.candidates), 3)

    def current_selection(self) -> dict[str, float]:
        """What the task already holds per lot; the starting point of a manual edit."""
        return {c.batch_id: c.reserved_for_task for c in self.candidates if c.reserved_for_task > 0}


@dataclass
class BookingResult:
    item_id: str
    task_id: str
    quantity: float
    reservations: list[Reservation] = field(default_factory=list)
    booked_delta: float = 0.0


@dataclass
class ReservationGroup:
    """Active bookings of one item held by one task."""

    task_id: str
    task_number: str = ""
    reservations: list[Reservation] = field(default_factory=list)

    @property
    def total_quantity(self) -> float:
        return round(sum(r.quantity for r in self.reservations), 3)

    @property
    def batch_ids(self) -> list[str]:
        return [r.batch_id for r in self.reservations if r.batch_id]
