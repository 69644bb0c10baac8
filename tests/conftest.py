import sys
from datetime import date, datetime
from pathlib import Path

import pytest

# Ensure project root is on sys.path to allow `import reservations`, `import utils`, etc.
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from config.config import ReservationConfig  # noqa: E402
from connectors.batch_store import InMemoryBatchStore  # noqa: E402
from connectors.item_store import InMemoryItemStore  # noqa: E402
from connectors.task_store import InMemoryTaskStore  # noqa: E402
from connectors.transaction_log import InMemoryTransactionLog  # noqa: E402
from models.inventory import Batch, InventoryItem  # noqa: E402
from models.task import MaterialRequirement, ProductionTask  # noqa: E402
from reservations.service import ReservationService  # noqa: E402


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> ReservationConfig:
    return ReservationConfig()


@pytest.fixture
def flour() -> InventoryItem:
    return InventoryItem(id="flour", name="Wheat flour", unit="kg", quantity=100.0)


@pytest.fixture
def flour_batches() -> list[Batch]:
    """A expires in March, B in January, C never."""
    return [
        Batch(
            id="A",
            item_id="flour",
            warehouse_id="W1",
            batch_number="LOT-A",
            quantity=40.0,
            unit_price=2.0,
            expiry_date=date(2025, 3, 1),
            received_date=datetime(2024, 10, 1),
        ),
        Batch(
            id="B",
            item_id="flour",
            warehouse_id="W1",
            batch_number="LOT-B",
            quantity=30.0,
            unit_price=2.5,
            expiry_date=date(2025, 1, 1),
            received_date=datetime(2024, 11, 1),
        ),
        Batch(
            id="C",
            item_id="flour",
            warehouse_id="W2",
            batch_number="LOT-C",
            quantity=30.0,
            unit_price=1.5,
            expiry_date=None,
            received_date=datetime(2024, 9, 1),
        ),
    ]


@pytest.fixture
def bread_task() -> ProductionTask:
    return ProductionTask(
        id="T1",
        number="MO-001",
        name="Bread",
        materials=[MaterialRequirement(material_id="flour", quantity=50.0, id="req-flour", unit="kg")],
    )


@pytest.fixture
def cake_task() -> ProductionTask:
    return ProductionTask(
        id="T2",
        number="MO-002",
        name="Cake",
        materials=[MaterialRequirement(material_id="flour", quantity=20.0, unit="kg")],
    )


@pytest.fixture
def item_store(flour) -> InMemoryItemStore:
    return InMemoryItemStore([flour])


@pytest.fixture
def batch_store(flour_batches) -> InMemoryBatchStore:
    return InMemoryBatchStore(flour_batches)


@pytest.fixture
def transaction_log() -> InMemoryTransactionLog:
    return InMemoryTransactionLog()


@pytest.fixture
def task_store(bread_task, cake_task) -> InMemoryTaskStore:
    return InMemoryTaskStore([bread_task, cake_task])


@pytest.fixture
def service(item_store, batch_store, transaction_log, task_store, config) -> ReservationService:
    return ReservationService(item_store, batch_store, transaction_log, task_store, config=config)
