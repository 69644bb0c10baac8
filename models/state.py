"""
Data models for records kept in the inventory transaction log:
reservations (bookings) and consumed materials.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .enums import ReservationMethod, ReservationStatus, TransactionType


class Reservation(BaseModel):
    """Booking held against an item (and optionally a specific batch) for a task"""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: TransactionType = TransactionType.BOOKING
    item_id: str
    batch_id: str | None = None  # None means "auto-allocate"
    batch_number: str = ""
    quantity: float = Field(ge=0)
    reference_id: str | None = None  # owning task id
    task_number: str = ""
    status: ReservationStatus = ReservationStatus.ACTIVE
    reservation_method: ReservationMethod = ReservationMethod.FEFO
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime | None = None
    user_id: str | None = None

    @property
    def material_id(self) -> str:
        """Materials are inventory items; kept for callers that think in requirements."""
        return self.item_id

    @property
    def fulfilled(self) -> bool:
        return self.status == ReservationStatus.FULFILLED

    @property
    def is_active(self) -> bool:
        return self.status == ReservationStatus.ACTIVE


class ConsumedMaterial(BaseModel):
    """Immutable record of material used by a production task"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: TransactionType = TransactionType.CONSUMPTION
    task_id: str | None = None
    material_id: str
    batch_id: str | None = None
    quantity: float = Field(gt=0)
    unit_price: float = Field(default=0.0, ge=0)
    timestamp: datetime = Field(default_factory=datetime.now)
    include_in_costs: bool = True
    user_id: str | None = None

    @property
    def reference_id(self) -> str | None:
        return self.task_id

    @property
    def item_id(self) -> str:
        return self.material_id

    @property
    def total_cost(self) -> float:
        return self.quantity * self.unit_price


class BookingCancellation(BaseModel):
    """Audit entry appended when bookings are released"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: TransactionType = TransactionType.BOOKING_CANCEL
    item_id: str
    reference_id: str | None = None
    quantity: float = Field(ge=0)
    reason: str = ""
    created_at: datetime = Field(default_factory=datetime.now)
    user_id: str | None = None
