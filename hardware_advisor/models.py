"""Data models for model descriptions, workloads, hardware and configurations."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from .constants import BITS_PER_ELEMENT, GB, TERA
from .errors import (
    IncompleteModelSpec,
    InvalidConfiguration,
    InvalidHardwareProfile,
    InvalidModelSpec,
    InvalidWorkload,
)

_PRECISION_ALIASES = {
    "float32": "fp32",
    "bf16": "fp16",
    "bfloat16": "fp16",
    "float16": "fp16",
    "half": "fp16",
    "fp16/bf16": "fp16",
    "float": "fp32",
}


class Precision(str, Enum):
    """Numeric precision of stored weights (declaration order is the canonical order)."""

    FP32 = "fp32"
    FP16 = "fp16"
    INT8 = "int8"
    INT4 = "int4"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            key = value.strip().lower()
            key = _PRECISION_ALIASES.get(key, key)
            for member in cls:
                if member.value == key:
                    return member
        return None

    @property
    def bits(self) -> int:
        return BITS_PER_ELEMENT[self.value]

    @property
    def is_integer(self) -> bool:
        return self in (Precision.INT8, Precision.INT4)


class ArchitectureFamily(str, Enum):
    """Closed set of model families; each has its own estimation strategy."""

    DENSE_TRANSFORMER = "dense-transformer"
    MIXTURE_OF_EXPERTS = "mixture-of-experts"
    CONVOLUTIONAL = "convolutional"
    OTHER = "other"

    @property
    def requires_attention(self) -> bool:
        return self in (ArchitectureFamily.DENSE_TRANSFORMER, ArchitectureFamily.MIXTURE_OF_EXPERTS)


class WorkloadMode(str, Enum):
    INFERENCE = "inference"
    TRAINING = "training"


class ParallelismStrategy(str, Enum):
    """How work is split across devices (declaration order is the canonical order)."""

    NONE = "none"
    DATA_PARALLEL = "data-parallel"
    TENSOR_PARALLEL = "tensor-parallel"
    PIPELINE_PARALLEL = "pipeline-parallel"


class OptimizerKind(str, Enum):
    SGD = "sgd"
    MOMENTUM = "momentum"
    ADAM = "adam"


ATTENTION_FIELDS = ("hidden_size", "num_layers", "num_attention_heads")


def _coerce_enum(enum_cls, value, error_cls, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise error_cls(f"Invalid {field_name} '{value}'. Expected one of: {choices}") from None


def _coerce_count(value, error_cls, field_name: str) -> int:
    """Accept ints and integral floats (JSON often yields 7e9); reject the rest."""
    if isinstance(value, bool):
        raise error_cls(f"{field_name} must be an integer, got {value!r}")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        raise error_cls(f"{field_name} must be an integer, got {value!r}")
    return value


def _enum_dict(obj) -> Dict[str, Any]:
    result = {}
    for key, value in asdict(obj).items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, (tuple, list)):
            value = [v.value if isinstance(v, Enum) else v for v in value]
        elif isinstance(value, dict):
            value = {(k.value if isinstance(k, Enum) else k): v for k, v in value.items()}
        result[key] = value
    return result


@dataclass(frozen=True)
class ModelSpec:
    """Normalized description of a model's size and architecture shape.

    Attention dimensions (``hidden_size``, ``num_layers``,
    ``num_attention_heads``) are required for the transformer families and
    optional elsewhere; zero is treated as absent.

    Attributes:
        name: Model identifier, used only for reporting
        parameter_count: Total parameters (all experts included for MoE)
        architecture_family: Selects the activation / KV-cache formulas
        native_precision: Precision the weights are published in
        hidden_size: Model width
        num_layers: Number of transformer (or convolutional) blocks
        num_attention_heads: Query heads per layer
        num_kv_heads: Key/value heads for GQA/MQA, defaults to num_attention_heads
        vocab_size: Vocabulary size (informational)
        max_sequence_length: Longest supported context (informational)
        num_experts: Routed experts per MoE layer
        experts_per_token: Experts activated per token
        active_parameter_count: Parameters touched per token (MoE compute)
    """

    name: str
    parameter_count: int
    architecture_family: ArchitectureFamily = ArchitectureFamily.DENSE_TRANSFORMER
    native_precision: Precision = Precision.FP16
    hidden_size: Optional[int] = None
    num_layers: Optional[int] = None
    num_attention_heads: Optional[int] = None
    num_kv_heads: Optional[int] = None
    vocab_size: Optional[int] = None
    max_sequence_length: Optional[int] = None
    num_experts: Optional[int] = None
    experts_per_token: Optional[int] = None
    active_parameter_count: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(
            self,
            "architecture_family",
            _coerce_enum(ArchitectureFamily, self.architecture_family, InvalidModelSpec, "architecture_family"),
        )
        object.__setattr__(
            self,
            "native_precision",
            _coerce_enum(Precision, self.native_precision, InvalidModelSpec, "native_precision"),
        )

        parameter_count = _coerce_count(self.parameter_count, InvalidModelSpec, "parameter_count")
        if parameter_count <= 0:
            raise InvalidModelSpec(f"parameter_count must be positive, got {parameter_count}")
        object.__setattr__(self, "parameter_count", parameter_count)

        for name in (
            "hidden_size",
            "num_layers",
            "num_attention_heads",
            "num_kv_heads",
            "vocab_size",
            "max_sequence_length",
            "num_experts",
            "experts_per_token",
            "active_parameter_count",
        ):
            value = getattr(self, name)
            if value is None:
                continue
            value = _coerce_count(value, InvalidModelSpec, name)
            if value < 0:
                raise InvalidModelSpec(f"{name} must not be negative, got {value}")
            object.__setattr__(self, name, value or None)

        if self.architecture_family.requires_attention:
            missing = [name for name in ATTENTION_FIELDS if getattr(self, name) is None]
            if missing:
                raise IncompleteModelSpec(self.architecture_family.value, missing)

        if self.num_attention_heads is not None:
            if self.num_kv_heads is None:
                object.__setattr__(self, "num_kv_heads", self.num_attention_heads)
            elif self.num_attention_heads % self.num_kv_heads:
                raise InvalidModelSpec(
                    f"num_kv_heads ({self.num_kv_heads}) must divide "
                    f"num_attention_heads ({self.num_attention_heads})"
                )

        if (
            self.num_experts is not None
            and self.experts_per_token is not None
            and self.experts_per_token > self.num_experts
        ):
            raise InvalidModelSpec(
                f"experts_per_token ({self.experts_per_token}) exceeds num_experts ({self.num_experts})"
            )
        if self.active_parameter_count is not None and self.active_parameter_count > parameter_count:
            raise InvalidModelSpec(
                f"active_parameter_count ({self.active_parameter_count}) exceeds "
                f"parameter_count ({parameter_count})"
            )

    @property
    def active_parameters(self) -> int:
        """Parameters used per token; equals parameter_count for dense models."""
        return self.active_parameter_count or self.parameter_count

    @property
    def has_layer_dimensions(self) -> bool:
        return self.hidden_size is not None and self.num_layers is not None

    @property
    def kv_width(self) -> int:
        """Width of the cached key (or value) vector per token per layer."""
        if self.hidden_size is None or self.num_attention_heads is None:
            return 0
        return self.hidden_size * self.num_kv_heads // self.num_attention_heads

    @property
    def throughput_unit(self) -> str:
        return "tokens" if self.architecture_family.requires_attention else "samples"

    def to_dict(self) -> Dict[str, Any]:
        return _enum_dict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModelSpec":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise InvalidModelSpec(f"Unknown model fields: {', '.join(unknown)}")
        try:
            return cls(**data)
        except TypeError as e:
            raise InvalidModelSpec(f"Invalid model description: {e}") from None


@dataclass(frozen=True)
class WorkloadIntent:
    """What the user wants to run.

    Attributes:
        mode: Inference or training
        batch_size: Global batch size (sequences or samples per step)
        sequence_length: Tokens per sequence (input positions for non-attention models)
        target_throughput: Minimum tokens/s (samples/s) required; None = feasibility only
        max_device_count: Upper bound of the device-count search
        allowed_precisions: Precisions to consider; None means the model's native precision only
        optimizer_kind: Optimizer whose state is accounted for in training
        autoregressive: Whether inference decodes token by token (keeps a KV-cache)
        preferred_precision: Explicitly requested precision, ranked ahead of the others
    """

    mode: WorkloadMode = WorkloadMode.INFERENCE
    batch_size: int = 1
    sequence_length: int = 2048
    target_throughput: Optional[float] = None
    max_device_count: int = 1
    allowed_precisions: Optional[Tuple[Precision, ...]] = None
    optimizer_kind: OptimizerKind = OptimizerKind.ADAM
    autoregressive: bool = True
    preferred_precision: Optional[Precision] = None

    def __post_init__(self):
        object.__setattr__(self, "mode", _coerce_enum(WorkloadMode, self.mode, InvalidWorkload, "mode"))
        object.__setattr__(
            self,
            "optimizer_kind",
            _coerce_enum(OptimizerKind, self.optimizer_kind, InvalidWorkload, "optimizer_kind"),
        )

        for name in ("batch_size", "sequence_length", "max_device_count"):
            value = _coerce_count(getattr(self, name), InvalidWorkload, name)
            if value <= 0:
                raise InvalidWorkload(f"{name} must be positive, got {value}")
            object.__setattr__(self, name, value)

        if self.target_throughput is not None:
            if (
                isinstance(self.target_throughput, bool)
                or not math.isfinite(self.target_throughput)
                or self.target_throughput <= 0
            ):
                raise InvalidWorkload(
                    f"target_throughput must be a positive finite number when set, got {self.target_throughput}"
                )
            object.__setattr__(self, "target_throughput", float(self.target_throughput))

        if self.allowed_precisions is not None:
            if isinstance(self.allowed_precisions, (str, Precision)):
                requested = [self.allowed_precisions]
            else:
                requested = list(self.allowed_precisions)
            if not requested:
                raise InvalidWorkload("allowed_precisions must not be empty")
            coerced = {
                _coerce_enum(Precision, p, InvalidWorkload, "allowed_precisions") for p in requested
            }
            object.__setattr__(self, "allowed_precisions", tuple(p for p in Precision if p in coerced))

        if self.preferred_precision is not None:
            preferred = _coerce_enum(Precision, self.preferred_precision, InvalidWorkload, "preferred_precision")
            if self.allowed_precisions is not None and preferred not in self.allowed_precisions:
                raise InvalidWorkload(
                    f"preferred_precision '{preferred.value}' is not in allowed_precisions"
                )
            object.__setattr__(self, "preferred_precision", preferred)

    @property
    def is_training(self) -> bool:
        return self.mode is WorkloadMode.TRAINING

    def precisions_for(self, model: ModelSpec) -> Tuple[Precision, ...]:
        """Resolve the precision set: explicit list, else the model's native precision."""
        if self.allowed_precisions is not None:
            return self.allowed_precisions
        return (model.native_precision,)

    def to_dict(self) -> Dict[str, Any]:
        return _enum_dict(self)


@dataclass(frozen=True)
class HardwareProfile:
    """Capacity and speed of one kind of compute device.

    Attributes:
        id: Unique catalog key
        memory_capacity_bytes: Per-device addressable fast memory
        compute_throughput: Peak operations/second (half precision unless overridden)
        memory_bandwidth_bytes_per_sec: Per-device memory bandwidth
        interconnect_bandwidth_bytes_per_sec: Device-to-device bandwidth; None
            means the device cannot be used in multi-device configurations
        name: Display name
        cost_per_hour: Price of one device for one hour (optional)
        precision_throughput: Operations/second overrides keyed by precision
    """

    id: str
    memory_capacity_bytes: int
    compute_throughput: float
    memory_bandwidth_bytes_per_sec: float
    interconnect_bandwidth_bytes_per_sec: Optional[float] = None
    name: Optional[str] = None
    cost_per_hour: Optional[float] = None
    precision_throughput: Dict[Precision, float] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id:
            raise InvalidHardwareProfile(f"Hardware id must be a non-empty string, got {self.id!r}")

        object.__setattr__(
            self,
            "memory_capacity_bytes",
            _coerce_count(self.memory_capacity_bytes, InvalidHardwareProfile, "memory_capacity_bytes"),
        )
        for name in (
            "memory_capacity_bytes",
            "compute_throughput",
            "memory_bandwidth_bytes_per_sec",
            "interconnect_bandwidth_bytes_per_sec",
        ):
            value = getattr(self, name)
            if value is None and name == "interconnect_bandwidth_bytes_per_sec":
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise InvalidHardwareProfile(f"{self.id}: {name} must be positive, got {value!r}")
        if self.cost_per_hour is not None and self.cost_per_hour < 0:
            raise InvalidHardwareProfile(f"{self.id}: cost_per_hour must not be negative")

        overrides = {}
        for precision, ops in dict(self.precision_throughput).items():
            precision = _coerce_enum(Precision, precision, InvalidHardwareProfile, "precision_throughput")
            if isinstance(ops, bool) or not isinstance(ops, (int, float)) or ops <= 0:
                raise InvalidHardwareProfile(
                    f"{self.id}: precision_throughput[{precision.value}] must be positive, got {ops!r}"
                )
            overrides[precision] = float(ops)
        object.__setattr__(self, "precision_throughput", overrides)

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @property
    def supports_multi_device(self) -> bool:
        return self.interconnect_bandwidth_bytes_per_sec is not None

    def throughput_for(self, precision: Precision) -> float:
        """Operations/second at *precision*, falling back to compute_throughput."""
        return self.precision_throughput.get(precision, self.compute_throughput)

    def to_dict(self) -> Dict[str, Any]:
        return _enum_dict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HardwareProfile":
        """Build a profile from a JSON mapping.

        Accepts the native byte / ops fields, or human units: ``memory_gb``,
        ``memory_bandwidth_gb_s``, ``interconnect_bandwidth_gb_s``, ``tflops``
        and the per-precision ``tflops_fp16`` / ``tflops_fp32`` / ``tops_int8``
        / ``tops_int4`` keys. ``name`` doubles as the id when no id is given.
        """
        data = dict(data)
        if "id" not in data and "name" in data:
            data["id"] = data["name"]
        if "memory_gb" in data:
            data["memory_capacity_bytes"] = int(round(data.pop("memory_gb") * GB))
        if "memory_bandwidth_gb_s" in data:
            data["memory_bandwidth_bytes_per_sec"] = data.pop("memory_bandwidth_gb_s") * GB
        if "interconnect_bandwidth_gb_s" in data:
            value = data.pop("interconnect_bandwidth_gb_s")
            data["interconnect_bandwidth_bytes_per_sec"] = value * GB if value is not None else None
        if "tflops" in data:
            data["compute_throughput"] = data.pop("tflops") * TERA

        overrides = dict(data.pop("precision_throughput", None) or {})
        for key, precision in (
            ("tflops_fp32", Precision.FP32),
            ("tflops_fp16", Precision.FP16),
            ("tops_int8", Precision.INT8),
            ("tops_int4", Precision.INT4),
        ):
            if key in data:
                value = data.pop(key)
                if value is not None:
                    overrides[precision] = value * TERA
        if "compute_throughput" not in data and Precision.FP16 in overrides:
            data["compute_throughput"] = overrides[Precision.FP16]
        data["precision_throughput"] = overrides

        try:
            return cls(**data)
        except TypeError as e:
            raise InvalidHardwareProfile(f"Invalid hardware description: {e}") from None


class HardwareCatalog:
    """Immutable, ordered snapshot of hardware profiles with unique ids."""

    def __init__(self, profiles: Iterable[HardwareProfile] = ()):
        self._profiles: Tuple[HardwareProfile, ...] = tuple(profiles)
        seen = set()
        for profile in self._profiles:
            if profile.id in seen:
                raise InvalidHardwareProfile(f"Duplicate hardware id '{profile.id}' in catalog")
            seen.add(profile.id)

    def __len__(self) -> int:
        return len(self._profiles)

    def __iter__(self) -> Iterator[HardwareProfile]:
        return iter(self._profiles)

    def __repr__(self) -> str:
        return f"HardwareCatalog({[p.id for p in self._profiles]!r})"

    @property
    def ids(self) -> List[str]:
        return [profile.id for profile in self._profiles]

    def get(self, hardware_id: str) -> Optional[HardwareProfile]:
        for profile in self._profiles:
            if profile.id == hardware_id:
                return profile
        return None

    def extend(self, profiles: Iterable[HardwareProfile]) -> "HardwareCatalog":
        """Return a new catalog with *profiles* appended."""
        return HardwareCatalog(self._profiles + tuple(profiles))

    @classmethod
    def from_dicts(cls, items: Iterable[Mapping[str, Any]]) -> "HardwareCatalog":
        return cls(HardwareProfile.from_dict(item) for item in items)

    def to_dicts(self) -> List[Dict[str, Any]]:
        return [profile.to_dict() for profile in self._profiles]


@dataclass(frozen=True)
class Configuration:
    """One candidate execution setup."""

    precision: Precision
    device_count: int
    parallelism_strategy: ParallelismStrategy
    batch_size_per_device: int

    def __post_init__(self):
        object.__setattr__(
            self, "precision", _coerce_enum(Precision, self.precision, InvalidConfiguration, "precision")
        )
        object.__setattr__(
            self,
            "parallelism_strategy",
            _coerce_enum(ParallelismStrategy, self.parallelism_strategy, InvalidConfiguration, "parallelism_strategy"),
        )
        if self.device_count < 1 or self.batch_size_per_device < 1:
            raise InvalidConfiguration(
                f"device_count and batch_size_per_device must be positive, "
                f"got {self.device_count} and {self.batch_size_per_device}"
            )
        single = self.parallelism_strategy is ParallelismStrategy.NONE
        if single != (self.device_count == 1):
            raise InvalidConfiguration(
                f"Strategy '{self.parallelism_strategy.value}' is invalid with "
                f"{self.device_count} device(s)"
            )

    def to_dict(self) -> Dict[str, Any]:
        return _enum_dict(self)


@dataclass(frozen=True)
class ResourceEstimate:
    """Per-device memory demand and whole-step compute for one configuration."""

    weight_memory_bytes: int
    activation_memory_bytes: int
    gradient_memory_bytes: int
    optimizer_state_memory_bytes: int
    kv_cache_memory_bytes: int
    overhead_memory_bytes: int
    estimated_compute_ops: int

    @property
    def total_memory_bytes(self) -> int:
        return (
            self.weight_memory_bytes
            + self.activation_memory_bytes
            + self.gradient_memory_bytes
            + self.optimizer_state_memory_bytes
            + self.kv_cache_memory_bytes
            + self.overhead_memory_bytes
        )

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["total_memory_bytes"] = self.total_memory_bytes
        return result
