"""
Module: connectors.batch_store

Provides an in-memory batch (lot) store.
"""

import asyncio

from models.inventory import Batch


class InMemoryBatchStore:
    """
    In-memory batch store. Batch quantities are decremented by consumption in the
    real backend; here ``put``/``set_quantity`` stand in for that.
    """

    def __init__(self, batches: list[Batch] | None = None, latency: float = 0.0):
        self.latency = latency
        self._batches: dict[str, Batch] = {}
        for batch in batches or []:
            self._batches[batch.id] = batch.model_copy(deep=True)
        self.list_calls = 0

    async def list_batches(self, item_id: str, warehouse_id: str | None = None) -> list[Batch]:
        """Get all batches of an item, optionally restricted to one warehouse."""
        await asyncio.sleep(self.latency)
        self.list_calls += 1
        return [
            batch.model_copy(deep=True)
            for batch in self._batches.values()
            if batch.item_id == item_id
            and (warehouse_id is None or batch.warehouse_id == warehouse_id)
        ]

    async def get_batch(self, batch_id: str) -> Batch | None:
        await asyncio.sleep(self.latency)
        batch = self._batches.get(batch_id)
        return batch.model_copy(deep=True) if batch else None

    def put(self, batch: Batch) -> None:
        self._batches[batch.id] = batch.model_copy(deep=True)

    def set_quantity(self, batch_id: str, quantity: float) -> None:
        batch = self._batches[batch_id]
        self._batches[batch_id] = batch.model_copy(update={"quantity": quantity})

    def remove(self, batch_id: str) -> None:
        self._batches.pop(batch_id, None)
