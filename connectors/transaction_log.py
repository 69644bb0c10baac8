"""
Module: connectors.transaction_log

Provides an in-memory inventory transaction log holding bookings, booking
cancellations and consumption records.
"""

import asyncio
import logging
from datetime import datetime

from models.enums import TransactionType
from models.state import BookingCancellation, ConsumedMaterial, Reservation

logger = logging.getLogger(__name__)

LogRecord = Reservation | ConsumedMaterial | BookingCancellation


def _record_time(record: LogRecord) -> datetime:
    if isinstance(record, ConsumedMaterial):
        return record.timestamp
    return record.created_at


class InMemoryTransactionLog:
    """
    In-memory transaction log. Consumption and cancellation records are frozen
    models and cannot be updated, only bookings can.
    """

    def __init__(self, records: list[LogRecord] | None = None, latency: float = 0.0):
        self.latency = latency
        self._records: dict[str, LogRecord] = {}
        for record in records or []:
            self._records[record.id] = record.model_copy(deep=True)

    async def append(self, record: LogRecord) -> LogRecord:
        await asyncio.sleep(self.latency)
        if record.id in self._records:
            raise ValueError(f"Record {record.id} already exists in the transaction log")
        self._records[record.id] = record.model_copy(deep=True)
        logger.debug(f"Appended {record.type.value} record {record.id}")
        return record

    async def get(self, record_id: str) -> LogRecord | None:
        await asyncio.sleep(self.latency)
        record = self._records.get(record_id)
        return record.model_copy(deep=True) if record else None

    async def update(self, record: LogRecord) -> LogRecord:
        """Replace a booking. Consumption and cancellation entries are append-only."""
        await asyncio.sleep(self.latency)
        if not isinstance(record, Reservation):
            raise TypeError(f"{type(record).__name__} records are append-only")
        if record.id not in self._records:
            raise KeyError(record.id)
        self._records[record.id] = record.model_copy(deep=True)
        return record

    async def delete(self, record_id: str) -> bool:
        await asyncio.sleep(self.latency)
        return self._records.pop(record_id, None) is not None

    async def query(
        self,
        type: TransactionType | None = None,
        reference_id: str | None = None,
        item_id: str | None = None,
        batch_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[LogRecord]:
        """Filter records; every given criterion must match. Results are in time order."""
        await asyncio.sleep(self.latency)
        results = []
        for record in self._records.values():
            if type is not None and record.type != type:
                continue
            if reference_id is not None and record.reference_id != reference_id:
                continue
            if item_id is not None and record.item_id != item_id:
                continue
            if batch_id is not None and getattr(record, "batch_id", None) != batch_id:
                continue
            ts = _record_time(record)
            if start is not None and ts < start:
                continue
            if end is not None and ts > end:
                continue
            results.append(record.model_copy(deep=True))
        results.sort(key=_record_time)
        return results

    def __len__(self) -> int:
        return len(self._records)
