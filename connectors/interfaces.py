"""
Module: connectors.interfaces

Collaborator interfaces the reservation core reads from and writes through.
Any backend (document database, SQL, the in-memory stores in this package)
can be plugged in by implementing these protocols.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Protocol, runtime_checkable

from models.enums import TransactionType
from models.inventory import Batch, InventoryItem
from models.state import BookingCancellation, ConsumedMaterial, Reservation
from models.task import ProductionTask

LogRecord = Reservation | ConsumedMaterial | BookingCancellation


@runtime_checkable
class ItemStore(Protocol):
    async def get_item(self, item_id: str) -> InventoryItem | None: ...

    async def list_items(self, include_archived: bool = True) -> list[InventoryItem]: ...

    async def save_item(self, item: InventoryItem, expected_version: int | None = None) -> InventoryItem:
        """
        Persist ``item``. When ``expected_version`` is given and does not match the
        stored version, raise ConcurrentModificationError instead of writing.
        """
        ...


@runtime_checkable
class BatchStore(Protocol):
    async def list_batches(self, item_id: str, warehouse_id: str | None = None) -> list[Batch]: ...

    async def get_batch(self, batch_id: str) -> Batch | None: ...


@runtime_checkable
class TransactionLog(Protocol):
    async def append(self, record: LogRecord) -> LogRecord: ...

    async def get(self, record_id: str) -> LogRecord | None: ...

    async def update(self, record: LogRecord) -> LogRecord: ...

    async def delete(self, record_id: str) -> bool: ...

    async def query(
        self,
        type: TransactionType | None = None,
        reference_id: str | None = None,
        item_id: str | None = None,
        batch_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[LogRecord]: ...


@runtime_checkable
class TaskStore(Protocol):
    async def get_task(self, task_id: str) -> ProductionTask | None: ...

    async def existing_task_ids(self, task_ids: Iterable[str]) -> set[str]:
        """Return the subset of ``task_ids`` that exist. Backends cap the batch size."""
        ...
