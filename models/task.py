"""
Data models for production tasks as seen by the reservation core.
The task store owns these records; the core only reads them.
"""

from dataclasses import dataclass, field

from .enums import COMPLETED_TASK_STATUSES
from .state import ConsumedMaterial


@dataclass
class MaterialRequirement:
    """
    One material line of a production task.
    ``id`` identifies the requirement line; ``material_id`` is the inventory item.
    """

    material_id: str
    quantity: float  # planned quantity
    id: str | None = None
    name: str = ""
    unit: str = "pcs"

    def __post_init__(self):
        # Imported here: the reservations package imports this module.
        from reservations.validators import validate_id, validate_quantity

        self.material_id = validate_id(self.material_id, "material_id")
        if self.id is None:
            self.id = self.material_id
        self.quantity = validate_quantity(self.quantity, field=f"quantity[{self.material_id}]")


@dataclass
class ReservedBatch:
    """Entry of a task's reservation snapshot (material id -> reserved batches)"""

    batch_id: str
    quantity: float
    batch_number: str = ""


@dataclass
class ProductionTask:
    """
    Snapshot of a production task: requirements, usage overrides, consumption
    and the current reservation snapshot.
    """

    id: str
    status: str = "planned"
    number: str = ""
    name: str = ""
    materials: list[MaterialRequirement] = field(default_factory=list)
    # Revised plan values keyed by requirement id (material id accepted as fallback)
    actual_material_usage: dict[str, float] = field(default_factory=dict)
    consumed_materials: list[ConsumedMaterial] = field(default_factory=list)
    material_batches: dict[str, list[ReservedBatch]] = field(default_factory=dict)
    material_consumption_confirmed: bool = False

    @property
    def is_completed(self) -> bool:
        status = getattr(self.status, "value", self.status)
        return status in COMPLETED_TASK_STATUSES

    def find_requirement(self, material_id: str) -> MaterialRequirement | None:
        for requirement in self.materials:
            if requirement.material_id == material_id or requirement.id == material_id:
                return requirement
        return None

    def reserved_batch_ids(self, material_id: str) -> set[str]:
        return {b.batch_id for b in self.material_batches.get(material_id, [])}
