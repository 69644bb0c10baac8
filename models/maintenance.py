"""
Result models for maintenance passes (quantity recalculation, cleanup).
"""

from dataclasses import dataclass, field

import numpy as np
import pandas as pd


@dataclass
class ItemRecalculation:
    item_id: str
    old_quantity: float
    new_quantity: float

    @property
    def difference(self) -> float:
        return round(self.new_quantity - self.old_quantity, 3)

    @property
    def drifted(self) -> bool:
        return self.difference != 0


@dataclass
class RecalculationFailure:
    item_id: str
    error: str


@dataclass
class RecalculationReport:
    """
    Outcome of a bulk recalculation. ``cancelled`` means the pass was stopped
    early and ``results``/``failures`` hold only what finished before that.
    """

    results: list[ItemRecalculation] = field(default_factory=list)
    failures: list[RecalculationFailure] = field(default_factory=list)
    cancelled: bool = False
    total_items: int = 0

    @property
    def processed(self) -> int:
        return len(self.results) + len(self.failures)

    @property
    def drifted(self) -> list[ItemRecalculation]:
        return [r for r in self.results if r.drifted]

    def drift_summary(self) -> dict[str, float]:
        """Aggregate drift statistics over the successfully recalculated items."""
        differences = np.array([r.difference for r in self.results], dtype=float)
        if differences.size == 0:
            return {
                "items": 0,
                "drifted_items": 0,
                "total_abs_drift": 0.0,
                "max_abs_drift": 0.0,
                "mean_drift": 0.0,
            }
        abs_diff = np.abs(differences)
        return {
            "items": int(differences.size),
            "drifted_items": int(np.count_nonzero(differences)),
            "total_abs_drift": round(float(abs_diff.sum()), 3),
            "max_abs_drift": round(float(abs_diff.max()), 3),
            "mean_drift": round(float(differences.mean()), 3),
        }

    def to_frame(self) -> pd.DataFrame:
        """One row per item; failed items carry NaN quantities and an error message."""
        rows = [
            {
                "item_id": r.item_id,
                "old_quantity": r.old_quantity,
                "new_quantity": r.new_quantity,
                "difference": r.difference,
                "error": None,
            }
            for r in self.results
        ]
        rows.extend(
            {
                "item_id": f.item_id,
                "old_quantity": np.nan,
                "new_quantity": np.nan,
                "difference": np.nan,
                "error": f.error,
            }
            for f in self.failures
        )
        columns = ["item_id", "old_quantity", "new_quantity", "difference", "error"]
        return pd.DataFrame(rows, columns=columns)


@dataclass
class CleanupResult:
    count: int = 0
    deleted_ids: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
