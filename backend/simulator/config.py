"""Per-run simulation parameters.

Components receive a `SimulationConfig`; only entry points (CLI, Celery
tasks) read `Settings`.
"""

from dataclasses import dataclass, replace

from core.config import Settings


@dataclass(frozen=True)
class SimulationConfig:
    merchant_id: str
    tax_rate: float = 8.25
    refund_percentage: float = 5.0

    def __post_init__(self):
        if not self.merchant_id:
            raise ValueError("merchant_id is required")
        if self.tax_rate < 0:
            raise ValueError(f"tax_rate must be non-negative, got {self.tax_rate}")
        if not 0 <= self.refund_percentage <= 100:
            raise ValueError(f"refund_percentage must be between 0 and 100, got {self.refund_percentage}")

    @classmethod
    def from_settings(cls, settings: Settings, merchant_id: str) -> "SimulationConfig":
        return cls(
            merchant_id=merchant_id,
            tax_rate=settings.tax_rate,
            refund_percentage=settings.refund_percentage,
        )

    def with_refund_percentage(self, refund_percentage: float | None) -> "SimulationConfig":
        if refund_percentage is None:
            return self
        return replace(self, refund_percentage=refund_percentage)
