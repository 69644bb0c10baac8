"""
Inventory-related data models for the reservation core.
Includes InventoryItem and Batch records as supplied by the item and batch stores.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field


class InventoryItem(BaseModel):
    """
    Stock-keeping record for one material.

    ``quantity`` is the aggregate on-hand total. It should equal the sum of the
    item's batch quantities, but only eventually; the quantity recalculator
    repairs drift. ``version`` is bumped by the item store on every save.
    """

    id: str
    name: str = ""
    unit: str = "pcs"
    quantity: float = 0.0
    booked_quantity: float = Field(default=0.0, ge=0)
    min_stock_level: float | None = None
    max_stock_level: float | None = None
    archived: bool = False
    version: int = 0
    updated_at: datetime | None = None
    updated_by: str | None = None

    @property
    def available_quantity(self) -> float:
        """On-hand quantity not held by any booking, floored at zero."""
        return max(0.0, self.quantity - self.booked_quantity)

    def is_below_minimum(self) -> bool:
        return self.min_stock_level is not None and self.quantity < self.min_stock_level


class Batch(BaseModel):
    """A dated, priced lot of one inventory item."""

    id: str
    item_id: str
    warehouse_id: str | None = None
    batch_number: str = ""
    quantity: float = Field(default=0.0, ge=0)
    unit_price: float = Field(default=0.0, ge=0)
    expiry_date: date | None = None
    received_date: datetime | None = None

    @property
    def display_number(self) -> str:
        return self.batch_number or "No number"

    def is_expired(self, on: date | None = None) -> bool:
        if self.expiry_date is None:
            return False
        return self.expiry_date < (on or date.today())
