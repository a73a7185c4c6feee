"""Exception types raised by the advisor.

Input validation errors also subclass ``ValueError`` so callers that only
care about bad input can catch that. Search outcomes (``NoFeasibleHardware``,
``ThroughputUnattainable``) carry the diagnostic data the caller needs to
explain or relax the request.
"""

from typing import TYPE_CHECKING, List, Optional, Sequence

from .constants import GB

if TYPE_CHECKING:
    from .recommender import Evaluation, Recommendation


class HardwareAdvisorError(Exception):
    """Base class for every error raised by hardware_advisor."""


class IncompleteModelSpec(HardwareAdvisorError, ValueError):
    """Raised when architecture fields required by the model family are missing."""

    def __init__(self, family: str, missing_fields: Sequence[str]) -> None:
        self.family = family
        self.missing_fields = list(missing_fields)
        super().__init__(
            f"Model family '{family}' requires: {', '.join(self.missing_fields)}"
        )


class InvalidModelSpec(HardwareAdvisorError, ValueError):
    """Raised when a model description carries impossible values."""


class InvalidWorkload(HardwareAdvisorError, ValueError):
    """Raised when the workload intent is malformed (non-positive sizes, bad target)."""


class InvalidHardwareProfile(HardwareAdvisorError, ValueError):
    """Raised when a hardware profile or catalog is malformed."""


class InvalidConfiguration(HardwareAdvisorError, ValueError):
    """Raised when a configuration combines a device count with the wrong strategy."""


class EmptyCatalog(HardwareAdvisorError):
    """Raised when a recommendation is requested against an empty catalog."""

    def __init__(self) -> None:
        super().__init__("Hardware catalog has no entries")


class NoFeasibleHardware(HardwareAdvisorError):
    """Raised when no hardware/configuration pairing fits in device memory.

    *closest* is the memory-infeasible evaluation with the smallest excess
    demand, kept so the caller can report how far off the best option was.
    """

    def __init__(
        self,
        closest: "Evaluation",
        evaluated: int,
        rejected: Optional[List["Evaluation"]] = None,
    ) -> None:
        self.closest = closest
        self.evaluated = evaluated
        self.rejected = rejected or []
        excess = -closest.fit_margin
        super().__init__(
            f"No feasible hardware among {evaluated} evaluated pairings. "
            f"Closest: {closest.configuration.device_count}x {closest.hardware.id} "
            f"({closest.configuration.precision.value}, "
            f"{closest.configuration.parallelism_strategy.value}) "
            f"exceeds per-device memory by {excess / GB:.2f} GB"
        )


class ThroughputUnattainable(HardwareAdvisorError):
    """Raised when pairings fit in memory but none reaches the throughput target.

    *recommendations* holds the ranked memory-feasible pairings so the caller
    can relax the target and pick one.
    """

    def __init__(
        self,
        target: float,
        recommendations: List["Recommendation"],
        best_throughput: Optional[float],
        rejected: Optional[List["Evaluation"]] = None,
    ) -> None:
        self.target = target
        self.recommendations = recommendations
        self.best_throughput = best_throughput
        self.rejected = rejected or []
        super().__init__(
            f"No memory-feasible pairing reaches {target:g}/s "
            f"(best achievable: {best_throughput or 0.0:.2f}/s across "
            f"{len(recommendations)} memory-feasible pairings)"
        )


class ModelFetchError(HardwareAdvisorError):
    """Raised when a model description cannot be resolved from the Hub."""

    def __init__(self, model_id: str, reason: str) -> None:
        self.model_id = model_id
        super().__init__(f"Failed to fetch model info for '{model_id}': {reason}")
