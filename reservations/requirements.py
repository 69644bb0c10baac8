"""
Requirement resolution: how much of a material a task still needs held back.

Both the allocator and the selection validator go through
``resolve_required_quantity`` so they never disagree about the target.
"""

import logging
from collections.abc import Iterable, Mapping

from models.state import ConsumedMaterial
from models.task import MaterialRequirement, ProductionTask, ReservedBatch
from utils.quantities import round_quantity, sum_quantities

from .errors import MaterialNotFoundError
from .validators import validate_quantity

logger = logging.getLogger(__name__)


def planned_quantity(
    requirement: MaterialRequirement, overrides: Mapping[str, float] | None = None
) -> float:
    """Planned quantity, replaced by a revised usage value when one exists."""
    if overrides:
        for key in (requirement.id, requirement.material_id):
            if key in overrides and overrides[key] is not None:
                return validate_quantity(overrides[key], field=f"actual_material_usage[{key}]")
    return validate_quantity(requirement.quantity)


def required_quantity(
    requirement: MaterialRequirement,
    consumed_so_far: float,
    consumption_confirmed: bool,
    overrides: Mapping[str, float] | None = None,
) -> float:
    """
    Quantity that must still be reserved for ``requirement``.

    Until consumption is confirmed the whole (possibly revised) plan must be
    covered. Once confirmed, only the unconsumed remainder is held.
    """
    plan = planned_quantity(requirement, overrides)
    consumed_so_far = validate_quantity(consumed_so_far, field="consumed_so_far")
    if not consumption_confirmed:
        return round_quantity(plan)
    return round_quantity(max(0.0, plan - consumed_so_far))


def consumed_quantity_for_material(
    consumed: Iterable[ConsumedMaterial], material_id: str
) -> float:
    return sum_quantities(c.quantity for c in consumed if c.material_id == material_id)


def reserved_quantity_for_material(
    material_batches: Mapping[str, list[ReservedBatch]], material_id: str
) -> float:
    return sum_quantities(b.quantity for b in material_batches.get(material_id, []))


def resolve_required_quantity(task: ProductionTask, material_id: str) -> float:
    """
    Required quantity of ``material_id`` for ``task``.

    Raises:
        MaterialNotFoundError: The task has no requirement for the material.
    """
    requirement = task.find_requirement(material_id)
    if requirement is None:
        logger.warning(f"Material {material_id} is not a requirement of task {task.id}")
        raise MaterialNotFoundError(material_id, context=f"task {task.id}")
    consumed = consumed_quantity_for_material(task.consumed_materials, requirement.material_id)
    return required_quantity(
        requirement,
        consumed,
        task.material_consumption_confirmed,
        overrides=task.actual_material_usage,
    )
