"""Hardware recommendation engine."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from .constants import GB
from .errors import EmptyCatalog, HardwareAdvisorError, NoFeasibleHardware, ThroughputUnattainable
from .estimator import ResourceEstimator, ThroughputEstimate
from .models import (
    Configuration,
    HardwareCatalog,
    HardwareProfile,
    ModelSpec,
    ResourceEstimate,
    WorkloadIntent,
)
from .search import ConfigurationSearch

logger = logging.getLogger(__name__)


class FeasibilityStatus(str, Enum):
    FEASIBLE = "feasible"
    INSUFFICIENT_MEMORY = "insufficient-memory"
    INSUFFICIENT_THROUGHPUT = "insufficient-throughput"


@dataclass(frozen=True)
class Evaluation:
    """One (hardware, configuration) pairing after estimation.

    Attributes:
        hardware: Hardware profile evaluated
        configuration: Candidate configuration
        estimate: Per-device resource estimate
        throughput: Roofline throughput estimate
        status: Whether the pairing passed the memory and throughput gates
        canonical_index: Position of the configuration in the search order
    """

    hardware: HardwareProfile
    configuration: Configuration
    estimate: ResourceEstimate
    throughput: ThroughputEstimate
    status: FeasibilityStatus
    canonical_index: int

    @property
    def fit_margin(self) -> int:
        """Per-device headroom in bytes; negative when the pairing does not fit."""
        return self.hardware.memory_capacity_bytes - self.estimate.total_memory_bytes

    @property
    def fits_in_memory(self) -> bool:
        return self.fit_margin >= 0

    def rank_key(self):
        """Fewest devices, tightest fit, canonical order, then hardware id."""
        return (
            self.configuration.device_count,
            self.fit_margin,
            self.canonical_index,
            self.hardware.id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hardware_id": self.hardware.id,
            "status": self.status.value,
            "configuration": self.configuration.to_dict(),
            "resource_estimate": self.estimate.to_dict(),
            "memory_capacity_bytes": self.hardware.memory_capacity_bytes,
            "fit_margin": self.fit_margin,
            "estimated_throughput": self.throughput.throughput,
            "compute_bound_throughput": self.throughput.compute_bound_throughput,
            "throughput_unit": self.throughput.unit,
            "bottleneck": self.throughput.bottleneck,
        }


@dataclass(frozen=True)
class Recommendation:
    """A feasible (hardware, configuration) pairing returned to the caller.

    Attributes:
        hardware_id: Catalog id of the device
        configuration: Precision, device count, strategy and per-device batch
        resource_estimate: Per-device memory demand and step compute
        fit_margin: Per-device capacity minus demand, in bytes (never negative)
        estimated_throughput: Roofline tokens/s (samples/s for non-attention models)
        compute_bound_throughput: Rate implied by the step operations at peak
            compute, the figure a throughput target is checked against
        throughput_unit: "tokens" or "samples"
        memory_capacity_bytes: Per-device capacity of the hardware
        bottleneck: What limits throughput: "compute", "memory" or "interconnect"
        total_cost_per_hour: Device cost times device count, when known
    """

    hardware_id: str
    configuration: Configuration
    resource_estimate: ResourceEstimate
    fit_margin: int
    estimated_throughput: Optional[float]
    throughput_unit: str
    memory_capacity_bytes: int
    bottleneck: str
    compute_bound_throughput: Optional[float] = None
    total_cost_per_hour: Optional[float] = None

    @classmethod
    def from_evaluation(cls, evaluation: Evaluation) -> "Recommendation":
        cost = evaluation.hardware.cost_per_hour
        return cls(
            hardware_id=evaluation.hardware.id,
            configuration=evaluation.configuration,
            resource_estimate=evaluation.estimate,
            fit_margin=evaluation.fit_margin,
            estimated_throughput=evaluation.throughput.throughput,
            throughput_unit=evaluation.throughput.unit,
            memory_capacity_bytes=evaluation.hardware.memory_capacity_bytes,
            bottleneck=evaluation.throughput.bottleneck,
            compute_bound_throughput=evaluation.throughput.compute_bound_throughput,
            total_cost_per_hour=(
                cost * evaluation.configuration.device_count if cost is not None else None
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hardware_id": self.hardware_id,
            "configuration": self.configuration.to_dict(),
            "resource_estimate": self.resource_estimate.to_dict(),
            "fit_margin": self.fit_margin,
            "estimated_throughput": self.estimated_throughput,
            "throughput_unit": self.throughput_unit,
            "memory_capacity_bytes": self.memory_capacity_bytes,
            "bottleneck": self.bottleneck,
            "compute_bound_throughput": self.compute_bound_throughput,
            "total_cost_per_hour": self.total_cost_per_hour,
        }


@dataclass
class RecommendationResult:
    """Result of a recommendation query for one model.

    Attributes:
        model_name: Name of the model
        recommendations: Feasible pairings, best first (empty on failure)
        rejected: Pairings that failed the memory or throughput gate
        reasoning: Human-readable explanation of the outcome
        error: Name of the failure when no recommendation could be made
    """

    model_name: str
    recommendations: List[Recommendation]
    rejected: List[Evaluation] = field(default_factory=list)
    reasoning: str = ""
    error: Optional[str] = None

    @property
    def recommended(self) -> Optional[Recommendation]:
        return self.recommendations[0] if self.recommendations else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "model_name": self.model_name,
            "recommended": self.recommended.to_dict() if self.recommended else None,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "rejected": [e.to_dict() for e in self.rejected],
            "reasoning": self.reasoning,
            "error": self.error,
        }


def _describe(configuration: Configuration, hardware_id: str) -> str:
    if configuration.device_count == 1:
        return f"{hardware_id} ({configuration.precision.value})"
    return (
        f"{configuration.device_count}x {hardware_id} "
        f"({configuration.precision.value}, {configuration.parallelism_strategy.value})"
    )


class RecommendationEngine:
    """Recommends hardware configurations for running or training a model.

    Every catalog profile is paired with every configuration from
    :class:`ConfigurationSearch`; pairings that fit in per-device memory (and
    reach the throughput target, when one is set) are ranked by device count,
    then by tightest fit, then by canonical search order.
    """

    def __init__(self, estimator: Optional[ResourceEstimator] = None):
        """Initialize the engine.

        Args:
            estimator: Resource estimator (creates default if None)
        """
        self.estimator = estimator or ResourceEstimator()

    def _evaluate_pair(
        self,
        model: ModelSpec,
        intent: WorkloadIntent,
        hardware: HardwareProfile,
        configuration: Configuration,
        canonical_index: int,
    ) -> Evaluation:
        estimate = self.estimator.estimate(model, intent, configuration)
        throughput = self.estimator.estimate_throughput(model, intent, configuration, hardware, estimate)

        if estimate.total_memory_bytes > hardware.memory_capacity_bytes:
            status = FeasibilityStatus.INSUFFICIENT_MEMORY
        elif (
            intent.target_throughput is not None
            and throughput.compute_bound_throughput < intent.target_throughput
        ):
            status = FeasibilityStatus.INSUFFICIENT_THROUGHPUT
        else:
            status = FeasibilityStatus.FEASIBLE

        return Evaluation(
            hardware=hardware,
            configuration=configuration,
            estimate=estimate,
            throughput=throughput,
            status=status,
            canonical_index=canonical_index,
        )

    def evaluate(
        self,
        model: ModelSpec,
        intent: WorkloadIntent,
        catalog: Union[HardwareCatalog, Iterable[HardwareProfile]],
    ) -> List[Evaluation]:
        """Evaluate every (hardware, configuration) pairing, unranked.

        Raises:
            EmptyCatalog: if the catalog has no entries
        """
        if not isinstance(catalog, HardwareCatalog):
            catalog = HardwareCatalog(catalog)
        if len(catalog) == 0:
            raise EmptyCatalog()

        search = ConfigurationSearch(model, intent)
        evaluations = []
        for hardware in catalog:
            for configuration in search.for_hardware(hardware):
                evaluations.append(
                    self._evaluate_pair(model, intent, hardware, configuration, search.index(configuration))
                )
        logger.debug(
            "Evaluated %d pairings (%d configurations x %d profiles) for %s",
            len(evaluations),
            len(search),
            len(catalog),
            model.name,
        )
        return evaluations

    def recommend(
        self,
        model: ModelSpec,
        intent: WorkloadIntent,
        catalog: Union[HardwareCatalog, Iterable[HardwareProfile]],
    ) -> RecommendationResult:
        """Recommend hardware configurations for a model and workload.

        Selection criteria:
        1. Per-device memory demand must fit per-device capacity
        2. If a throughput target is set, the compute-bound rate must reach it
        3. Rank by fewest devices, then smallest non-negative fit margin,
           then canonical search order (preferred precision first), then
           hardware id

        Args:
            model: Model description
            intent: Workload description
            catalog: Hardware profiles to choose from

        Returns:
            RecommendationResult with ranked recommendations and rejected pairings

        Raises:
            EmptyCatalog: if the catalog has no entries
            NoFeasibleHardware: if no pairing fits in memory
            ThroughputUnattainable: if pairings fit but none reaches the target
        """
        logger.info(
            "Recommending hardware for %s (%s, batch=%d, seq=%d, max_devices=%d)",
            model.name,
            intent.mode.value,
            intent.batch_size,
            intent.sequence_length,
            intent.max_device_count,
        )
        evaluations = self.evaluate(model, intent, catalog)
        evaluations.sort(key=Evaluation.rank_key)

        feasible = [e for e in evaluations if e.status is FeasibilityStatus.FEASIBLE]
        rejected = [e for e in evaluations if e.status is not FeasibilityStatus.FEASIBLE]
        memory_feasible = [e for e in evaluations if e.fits_in_memory]

        if not memory_feasible:
            closest = min(evaluations, key=lambda e: (-e.fit_margin, e.rank_key()))
            logger.info("No feasible hardware for %s", model.name)
            raise NoFeasibleHardware(closest, len(evaluations), rejected)

        if not feasible:
            best = max(e.throughput.compute_bound_throughput for e in memory_feasible)
            logger.info(
                "Throughput target %.2f unattainable for %s (best %.2f)",
                intent.target_throughput,
                model.name,
                best,
            )
            raise ThroughputUnattainable(
                intent.target_throughput,
                [Recommendation.from_evaluation(e) for e in memory_feasible],
                best,
                rejected,
            )

        recommendations = [Recommendation.from_evaluation(e) for e in feasible]
        logger.info(
            "%d feasible pairings for %s, %d rejected", len(recommendations), model.name, len(rejected)
        )
        return RecommendationResult(
            model_name=model.name,
            recommendations=recommendations,
            rejected=rejected,
            reasoning=self._reasoning(model, recommendations, rejected),
        )

    def _reasoning(
        self, model: ModelSpec, recommendations: List[Recommendation], rejected: List[Evaluation]
    ) -> str:
        best = recommendations[0]
        demand = best.resource_estimate.total_memory_bytes
        parts = [
            f"Selected {_describe(best.configuration, best.hardware_id)} for {model.name}.",
            f"Memory per device: {demand / GB:.2f} GB / {best.memory_capacity_bytes / GB:.2f} GB "
            f"({best.fit_margin / GB:.2f} GB headroom).",
            f"Estimated throughput: {best.estimated_throughput:.2f} {best.throughput_unit}/sec "
            f"({best.bottleneck}-bound; {best.compute_bound_throughput:.2f} at peak compute).",
        ]
        if best.total_cost_per_hour is not None:
            parts.append(f"Cost: ${best.total_cost_per_hour:.2f}/hr.")
        if len(recommendations) > 1:
            runner_up = recommendations[1]
            parts.append(f"Next best: {_describe(runner_up.configuration, runner_up.hardware_id)}.")
        memory_rejections = sum(1 for e in rejected if e.status is FeasibilityStatus.INSUFFICIENT_MEMORY)
        throughput_rejections = len(rejected) - memory_rejections
        if rejected:
            parts.append(
                f"Rejected {memory_rejections} pairing(s) for memory and "
                f"{throughput_rejections} for throughput."
            )
        return " ".join(parts)

    def recommend_for_models(
        self,
        models: List[ModelSpec],
        intent: WorkloadIntent,
        catalog: Union[HardwareCatalog, Iterable[HardwareProfile]],
    ) -> List[RecommendationResult]:
        """Recommend hardware for multiple models.

        Search failures for one model (no feasible hardware, unattainable
        throughput) are reported in that model's result instead of aborting
        the rest; input validation errors still propagate.

        Returns:
            List of RecommendationResult, one per model
        """
        if not isinstance(catalog, HardwareCatalog):
            catalog = HardwareCatalog(catalog)
        if len(catalog) == 0:
            raise EmptyCatalog()

        results = []
        for model in models:
            try:
                results.append(self.recommend(model, intent, catalog))
            except (NoFeasibleHardware, ThroughputUnattainable) as e:
                results.append(self.failure_result(model, e))
        return results

    @staticmethod
    def failure_result(model: ModelSpec, error: HardwareAdvisorError) -> RecommendationResult:
        """Wrap a search failure into a result carrying its diagnostics."""
        return RecommendationResult(
            model_name=model.name,
            recommendations=[],
            rejected=list(getattr(error, "rejected", [])),
            reasoning=str(error),
            error=type(error).__name__,
        )
