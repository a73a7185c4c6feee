"""Resource estimation for a model running under a candidate configuration.

The estimator is a pure mapping ``(ModelSpec, WorkloadIntent, Configuration)
-> ResourceEstimate``. Memory is accounted per device after the
configuration's parallelism strategy has been applied:

- data parallel replicates weights, gradients and optimizer state and splits
  the batch;
- tensor parallel shards weights, gradients, optimizer state, activations and
  KV-cache across devices and keeps the full batch on each;
- pipeline parallel gives each device ``ceil(num_layers / device_count)``
  layers and a matching share of the parameters.

Byte counts are rounded up once per memory component (weights, activations,
KV-cache, ...) instead of per tensor. This can undercount by at most a byte
per tensor for int4, which is negligible next to the components themselves.

Throughput follows a simple roofline: a step takes the longer of its compute
time and its memory-streaming time, plus the interconnect time needed by the
parallelism strategy. Throughput targets are checked against the simpler
compute-bound rate, ``items x peak ops/s / estimated_compute_ops``.

References:
- Kaplan et al., "Scaling Laws for Neural Language Models" (2020), 2N FLOPs per token
- Korthikanti et al., "Reducing Activation Recomputation in Large Transformer Models" (2022)
- Roofline analysis: https://jax-ml.github.io/scaling-book/roofline/
"""

import copy
import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

from .constants import (
    ACTIVATION_COEFFICIENTS,
    FORWARD_OPS_PER_PARAMETER,
    INTEGER_COMPUTE_PRECISION,
    KV_TENSORS,
    OPTIMIZER_STATE_BITS,
    OPTIMIZER_STATE_MULTIPLIERS,
    TENSOR_PARALLEL_ALLREDUCES_PER_LAYER,
    TRAINING_COMPUTE_MULTIPLIER,
)
from .errors import InvalidConfiguration
from .models import (
    Configuration,
    HardwareProfile,
    ModelSpec,
    OptimizerKind,
    ParallelismStrategy,
    Precision,
    ResourceEstimate,
    WorkloadIntent,
)


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def _to_bytes(elements, bits: int) -> int:
    """Round an element count up to whole bytes at *bits* per element."""
    if isinstance(elements, int):
        return _ceil_div(elements * bits, 8)
    return math.ceil(elements * bits / 8)


def compute_precision(precision: Precision) -> Precision:
    """Precision activations and gradients are held in for *precision* weights."""
    if precision.is_integer:
        return Precision(INTEGER_COMPUTE_PRECISION)
    return precision


@dataclass(frozen=True)
class ThroughputEstimate:
    """Roofline timing of one step of the workload.

    Attributes:
        throughput: Items processed per second (tokens or samples, see unit)
        unit: "tokens" for attention families, "samples" otherwise
        step_time_s: Seconds per step of ``batch_size`` items
        compute_time_s: Time if compute were the only limit
        memory_time_s: Time to stream weights (and KV-cache) from device memory
        communication_time_s: Interconnect time added by the parallelism strategy
        bottleneck: "compute", "memory" or "interconnect"
        compute_bound_throughput: Items per second implied by the step's
            operations at the devices' peak rate alone; the throughput
            target is checked against this figure
    """

    throughput: float
    unit: str
    step_time_s: float
    compute_time_s: float
    memory_time_s: float
    communication_time_s: float
    bottleneck: str
    compute_bound_throughput: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ResourceEstimator:
    """Estimates per-device memory and compute demand.

    Coefficient tables default to the documented values in
    :mod:`hardware_advisor.constants`; overrides are merged on top so a caller
    can recalibrate a single family or optimizer.
    """

    def __init__(
        self,
        activation_coefficients: Optional[Mapping[str, Mapping[str, float]]] = None,
        optimizer_multipliers: Optional[Mapping[str, float]] = None,
        memory_overhead_fraction: float = 0.0,
        compute_efficiency: float = 1.0,
    ):
        """Initialize the estimator.

        Args:
            activation_coefficients: Per-family, per-mode activation coefficients
                overriding ``ACTIVATION_COEFFICIENTS``
            optimizer_multipliers: Per-optimizer fp32 state elements per parameter
                overriding ``OPTIMIZER_STATE_MULTIPLIERS``
            memory_overhead_fraction: Extra memory reserved for allocator
                fragmentation and runtime buffers, as a fraction of the rest
            compute_efficiency: Fraction of peak device throughput achieved
        """
        if memory_overhead_fraction < 0:
            raise ValueError("memory_overhead_fraction must not be negative")
        if not 0 < compute_efficiency <= 1:
            raise ValueError("compute_efficiency must be in (0, 1]")

        self.activation_coefficients = copy.deepcopy(ACTIVATION_COEFFICIENTS)
        for family, by_mode in (activation_coefficients or {}).items():
            self.activation_coefficients.setdefault(family, {}).update(by_mode)
        self.optimizer_multipliers = dict(OPTIMIZER_STATE_MULTIPLIERS)
        self.optimizer_multipliers.update(optimizer_multipliers or {})
        self.memory_overhead_fraction = memory_overhead_fraction
        self.compute_efficiency = compute_efficiency

    # Whole-model quantities (before sharding)

    def weight_memory_bytes(self, model: ModelSpec, precision: Precision) -> int:
        """Bytes needed to hold every parameter at *precision*."""
        return _to_bytes(model.parameter_count, precision.bits)

    def gradient_memory_bytes(self, model: ModelSpec, precision: Precision) -> int:
        return _to_bytes(model.parameter_count, compute_precision(precision).bits)

    def optimizer_state_memory_bytes(self, model: ModelSpec, optimizer_kind: OptimizerKind) -> int:
        """fp32 optimizer state; independent of the weight precision."""
        multiplier = self.optimizer_multipliers[OptimizerKind(optimizer_kind).value]
        return _to_bytes(multiplier * model.parameter_count, OPTIMIZER_STATE_BITS)

    def estimate_compute_ops(self, model: ModelSpec, intent: WorkloadIntent) -> int:
        """Operations for one step over the whole batch.

        ``2 x active parameters x batch x sequence length`` for the forward
        pass; for non-attention families ``sequence_length`` counts the
        positions each weight is applied at. Training doubles it.
        """
        ops = FORWARD_OPS_PER_PARAMETER * model.active_parameters * intent.batch_size * intent.sequence_length
        if intent.is_training:
            ops *= TRAINING_COMPUTE_MULTIPLIER
        return ops

    # Per-device quantities

    def layers_on_device(self, model: ModelSpec, configuration: Configuration) -> int:
        if model.num_layers is None:
            return 0
        if configuration.parallelism_strategy is ParallelismStrategy.PIPELINE_PARALLEL:
            return _ceil_div(model.num_layers, configuration.device_count)
        return model.num_layers

    def activation_memory_bytes(
        self, model: ModelSpec, intent: WorkloadIntent, configuration: Configuration
    ) -> int:
        coefficient = self.activation_coefficients[model.architecture_family.value][intent.mode.value]
        batch = configuration.batch_size_per_device
        bits = compute_precision(configuration.precision).bits

        if model.has_layer_dimensions:
            layers = self.layers_on_device(model, configuration)
            elements = coefficient * batch * intent.sequence_length * model.hidden_size * layers
            if configuration.parallelism_strategy is ParallelismStrategy.TENSOR_PARALLEL:
                elements /= configuration.device_count
        else:
            elements = coefficient * batch * model.parameter_count
        return _to_bytes(elements, bits)

    def kv_cache_memory_bytes(
        self, model: ModelSpec, intent: WorkloadIntent, configuration: Configuration
    ) -> int:
        """Key/value cache held during autoregressive decoding; zero otherwise."""
        if intent.is_training or not intent.autoregressive:
            return 0
        if not model.architecture_family.requires_attention:
            return 0

        elements = (
            KV_TENSORS
            * self.layers_on_device(model, configuration)
            * model.kv_width
            * intent.sequence_length
            * configuration.batch_size_per_device
        )
        kv_bytes = _to_bytes(elements, configuration.precision.bits)
        if configuration.parallelism_strategy is ParallelismStrategy.TENSOR_PARALLEL:
            kv_bytes = _ceil_div(kv_bytes, configuration.device_count)
        return kv_bytes

    def _parameter_shards(self, configuration: Configuration) -> int:
        if configuration.parallelism_strategy in (
            ParallelismStrategy.TENSOR_PARALLEL,
            ParallelismStrategy.PIPELINE_PARALLEL,
        ):
            return configuration.device_count
        return 1

    def estimate(
        self, model: ModelSpec, intent: WorkloadIntent, configuration: Configuration
    ) -> ResourceEstimate:
        """Estimate per-device memory and whole-step compute.

        Args:
            model: Model description
            intent: Workload description
            configuration: Candidate precision / device count / strategy / batch

        Returns:
            ResourceEstimate whose total is the sum of its components
        """
        precision = configuration.precision
        shards = self._parameter_shards(configuration)

        weights = _ceil_div(self.weight_memory_bytes(model, precision), shards)
        activations = self.activation_memory_bytes(model, intent, configuration)
        kv_cache = self.kv_cache_memory_bytes(model, intent, configuration)

        gradients = 0
        optimizer_state = 0
        if intent.is_training:
            gradients = _ceil_div(self.gradient_memory_bytes(model, precision), shards)
            optimizer_state = _ceil_div(
                self.optimizer_state_memory_bytes(model, intent.optimizer_kind), shards
            )

        subtotal = weights + activations + kv_cache + gradients + optimizer_state
        overhead = math.ceil(subtotal * self.memory_overhead_fraction)

        return ResourceEstimate(
            weight_memory_bytes=weights,
            activation_memory_bytes=activations,
            gradient_memory_bytes=gradients,
            optimizer_state_memory_bytes=optimizer_state,
            kv_cache_memory_bytes=kv_cache,
            overhead_memory_bytes=overhead,
            estimated_compute_ops=self.estimate_compute_ops(model, intent),
        )

    # Throughput

    def communication_bytes(
        self, model: ModelSpec, intent: WorkloadIntent, configuration: Configuration
    ) -> int:
        """Bytes each device exchanges over the interconnect per step."""
        n = configuration.device_count
        strategy = configuration.parallelism_strategy
        if n == 1:
            return 0

        bits = compute_precision(configuration.precision).bits
        passes = TRAINING_COMPUTE_MULTIPLIER if intent.is_training else 1
        ring_factor = 2 * (n - 1) / n

        if strategy is ParallelismStrategy.DATA_PARALLEL:
            if not intent.is_training:
                return 0
            return math.ceil(ring_factor * self.gradient_memory_bytes(model, configuration.precision))

        # Tensor and pipeline parallel are only enumerated for models with layer dimensions
        activation = _to_bytes(
            configuration.batch_size_per_device * intent.sequence_length * model.hidden_size, bits
        )
        if strategy is ParallelismStrategy.TENSOR_PARALLEL:
            per_layer = TENSOR_PARALLEL_ALLREDUCES_PER_LAYER * ring_factor * activation
            return math.ceil(per_layer * model.num_layers * passes)
        return (n - 1) * activation * passes

    def estimate_throughput(
        self,
        model: ModelSpec,
        intent: WorkloadIntent,
        configuration: Configuration,
        hardware: HardwareProfile,
        estimate: Optional[ResourceEstimate] = None,
    ) -> ThroughputEstimate:
        """Estimate achievable throughput of *configuration* on *hardware*.

        Autoregressive inference streams the weights and KV-cache once per
        generated token; other workloads stream the weights once per pass.
        ``compute_bound_throughput`` ignores memory, interconnect and
        ``compute_efficiency``: it is the rate implied by
        ``estimated_compute_ops`` at the devices' peak throughput.
        """
        if estimate is None:
            estimate = self.estimate(model, intent, configuration)
        n = configuration.device_count
        if n > 1 and not hardware.supports_multi_device:
            raise InvalidConfiguration(
                f"{hardware.id} has no interconnect bandwidth; cannot use {n} devices"
            )

        peak_ops_per_second = hardware.throughput_for(configuration.precision) * n
        compute_time = estimate.estimated_compute_ops / (peak_ops_per_second * self.compute_efficiency)

        if not intent.is_training and intent.autoregressive and model.architecture_family.requires_attention:
            streamed = intent.sequence_length * (estimate.weight_memory_bytes + estimate.kv_cache_memory_bytes)
        else:
            passes = TRAINING_COMPUTE_MULTIPLIER if intent.is_training else 1
            streamed = passes * estimate.weight_memory_bytes
        memory_time = streamed / hardware.memory_bandwidth_bytes_per_sec

        communication_time = 0.0
        comm_bytes = self.communication_bytes(model, intent, configuration)
        if comm_bytes:
            communication_time = comm_bytes / hardware.interconnect_bandwidth_bytes_per_sec

        step_time = max(compute_time, memory_time) + communication_time
        if communication_time > max(compute_time, memory_time):
            bottleneck = "interconnect"
        elif compute_time >= memory_time:
            bottleneck = "compute"
        else:
            bottleneck = "memory"

        items = intent.batch_size
        if model.architecture_family.requires_attention:
            items *= intent.sequence_length

        return ThroughputEstimate(
            throughput=items / step_time,
            unit=model.throughput_unit,
            step_time_s=step_time,
            compute_time_s=compute_time,
            memory_time_s=memory_time,
            communication_time_s=communication_time,
            bottleneck=bottleneck,
            compute_bound_throughput=items * peak_ops_per_second / estimate.estimated_compute_ops,
        )
