"""
Configuration classes for the reservation core.
Defines thresholds and tuning knobs for allocation, status evaluation and maintenance jobs.
"""

import os
from dataclasses import dataclass, fields


@dataclass
class ReservationConfig:
    full_coverage_ratio: float = 0.99  # coverage ratio treated as fully reserved
    coverage_tolerance: float = 0.001  # per-material full coverage slack
    overconsumption_tolerance: float = 0.001  # 0.1% above issued is still fine
    micro_reservation_threshold: float = 0.001
    existence_chunk_size: int = 30  # backend limit for "id in set" queries
    quantity_precision: int = 3
    cache_ttl_seconds: float = 30.0
    cache_max_entries: int = 256
    recalculation_concurrency: int = 8
    max_write_retries: int = 3

    def __post_init__(self):
        if not (0 < self.full_coverage_ratio <= 1):
            raise ValueError("full_coverage_ratio must be in (0, 1].")
        if self.existence_chunk_size < 1:
            raise ValueError("existence_chunk_size must be at least 1.")
        if self.recalculation_concurrency < 1:
            raise ValueError("recalculation_concurrency must be at least 1.")

    @classmethod
    def from_env(cls, prefix: str = "RESERVATION_") -> "ReservationConfig":
        """
        Build a config from environment variables, e.g. ``RESERVATION_EXISTENCE_CHUNK_SIZE=10``.
        Unset variables keep their defaults.
        """
        overrides = {}
        for f in fields(cls):
            raw = os.getenv(f"{prefix}{f.name.upper()}")
            if raw is None or raw.strip() == "":
                continue
            try:
                overrides[f.name] = int(raw) if f.type in (int, "int") else float(raw)
            except ValueError as e:
                raise ValueError(f"Invalid value for {prefix}{f.name.upper()}: {raw!r}") from e
        return cls(**overrides)


# Example usage:
# config = ReservationConfig.from_env()
# service = ReservationService(item_store, batch_store, transaction_log, task_store, config=config)
