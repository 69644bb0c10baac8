"""
Read-side views of how well a task's material requirements are covered.
"""

from dataclasses import dataclass, field

from models.enums import TaskReservationState


@dataclass
class MaterialCoverage:
    material_id: str
    required: float
    consumed: float
    reserved: float
    tolerance: float = 0.001

    @property
    def total_coverage(self) -> float:
        return round(self.consumed + self.reserved, 3)

    @property
    def covered_clamped(self) -> float:
        """Coverage counted toward the task ratio; surplus on one material does not offset another."""
        return min(self.total_coverage, self.required)

    @property
    def has_full_coverage(self) -> bool:
        return self.total_coverage >= self.required - self.tolerance

    @property
    def coverage_percent(self) -> float:
        if self.required <= 0:
            return 100.0
        return round(self.total_coverage / self.required * 100, 1)


@dataclass
class TaskReservationStatus:
    """Derived reservation state of one task. Computed on demand, never stored."""

    state: TaskReservationState
    label: str
    color: str
    total_required: float = 0.0
    total_covered: float = 0.0
    materials: list[MaterialCoverage] = field(default_factory=list)

    @property
    def ratio(self) -> float:
        if self.total_required <= 0:
            return 0.0
        return self.total_covered / self.total_required
