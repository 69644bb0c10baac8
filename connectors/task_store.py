"""
Module: connectors.task_store

Provides an in-memory production task store (read-only for the reservation core).
"""

import asyncio
import copy
from collections.abc import Iterable

from models.task import ProductionTask

MAX_IDS_PER_QUERY = 30


class InMemoryTaskStore:
    """
    In-memory task store. ``existing_task_ids`` enforces the same per-call id cap
    as the document database it stands in for.
    """

    def __init__(
        self,
        tasks: list[ProductionTask] | None = None,
        latency: float = 0.0,
        max_ids_per_query: int = MAX_IDS_PER_QUERY,
    ):
        self.latency = latency
        self.max_ids_per_query = max_ids_per_query
        self._tasks: dict[str, ProductionTask] = {t.id: copy.deepcopy(t) for t in tasks or []}
        self.existence_queries: list[list[str]] = []

    async def get_task(self, task_id: str) -> ProductionTask | None:
        await asyncio.sleep(self.latency)
        task = self._tasks.get(task_id)
        return copy.deepcopy(task) if task else None

    async def existing_task_ids(self, task_ids: Iterable[str]) -> set[str]:
        ids = list(task_ids)
        if len(ids) > self.max_ids_per_query:
            raise ValueError(
                f"At most {self.max_ids_per_query} ids per existence query, got {len(ids)}"
            )
        self.existence_queries.append(ids)
        await asyncio.sleep(self.latency)
        return {task_id for task_id in ids if task_id in self._tasks}

    def put(self, task: ProductionTask) -> None:
        self._tasks[task.id] = copy.deepcopy(task)

    def remove(self, task_id: str) -> None:
        self._tasks.pop(task_id, None)
