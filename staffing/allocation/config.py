"""Tunable parameters for the allocation ledger."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum


class SubtractionPolicy(StrEnum):
    """Which bucket an edited allocation's original values are removed from.

    CURRENT_STATE uses the project's lifecycle state at edit time, so a value
    recorded while the project was a draft is only promoted to the approved
    bucket once it is re-edited after approval. RECORDED_STATE uses the state
    the baseline allocation was recorded under, when it is known.
    """

    CURRENT_STATE = "current_state"
    RECORDED_STATE = "recorded_state"


@dataclass(frozen=True)
class LedgerConfig:
    """Configuration for reconciliation and constraint classification."""

    near_limit_threshold: Decimal = Decimal("0.8")
    over_allocation_threshold: Decimal = Decimal("1.0")  # blocking at >= this value
    subtraction_policy: SubtractionPolicy = SubtractionPolicy.CURRENT_STATE

    def __post_init__(self) -> None:
        if self.near_limit_threshold > self.over_allocation_threshold:
            raise ValueError(
                f"near_limit_threshold ({self.near_limit_threshold}) must not exceed "
                f"over_allocation_threshold ({self.over_allocation_threshold})"
            )

    @classmethod
    def from_settings(cls) -> LedgerConfig:
        """Build a LedgerConfig from environment-driven settings."""
        from staffing.config.settings import settings

        return cls(
            near_limit_threshold=Decimal(str(settings.near_limit_threshold)),
            over_allocation_threshold=Decimal(str(settings.over_allocation_threshold)),
            subtraction_policy=settings.subtraction_policy,
        )


DEFAULT_CONFIG = LedgerConfig()
