"""Enumeration of candidate execution configurations.

The search space is the explicit, finite product of precisions, device
counts and parallelism strategies for one (model, workload) pair. Its order
is fixed (device count, then precision, then strategy) and is what the
recommendation engine falls back on to break ranking ties.
"""

import logging
from typing import Dict, List, Tuple

from .errors import InvalidWorkload
from .models import (
    Configuration,
    HardwareProfile,
    ModelSpec,
    ParallelismStrategy,
    Precision,
    WorkloadIntent,
)

logger = logging.getLogger(__name__)


def precision_order(model: ModelSpec, intent: WorkloadIntent) -> Tuple[Precision, ...]:
    """Order the allowed precisions for enumeration.

    The explicitly preferred precision comes first, otherwise the model's
    native precision when it is allowed; the remaining precisions follow in
    canonical order (fp32, fp16, int8, int4).
    """
    allowed = intent.precisions_for(model)
    preferred = intent.preferred_precision
    if preferred is None and model.native_precision in allowed:
        preferred = model.native_precision
    if preferred is not None and preferred not in allowed:
        raise InvalidWorkload(
            f"preferred_precision '{preferred.value}' is not among the allowed precisions "
            f"({', '.join(p.value for p in allowed)})"
        )

    ordered = [preferred] if preferred is not None else []
    ordered.extend(p for p in Precision if p in allowed and p != preferred)
    return tuple(ordered)


class ConfigurationSearch:
    """Enumerates configurations for a model and workload.

    Performs no estimation; it only decides which configurations are worth
    estimating and in which order.
    """

    def __init__(self, model: ModelSpec, intent: WorkloadIntent):
        self.model = model
        self.intent = intent
        self.precisions = precision_order(model, intent)
        self._space = self._enumerate()
        self._index: Dict[Configuration, int] = {
            configuration: position for position, configuration in enumerate(self._space)
        }

    def _strategy_allowed(self, strategy: ParallelismStrategy, device_count: int) -> bool:
        model = self.model
        if strategy is ParallelismStrategy.NONE:
            return device_count == 1
        if device_count == 1:
            return False

        if strategy is ParallelismStrategy.DATA_PARALLEL:
            if device_count > self.intent.batch_size:
                logger.debug(
                    "Skipping data-parallel x%d: batch size %d cannot be split",
                    device_count,
                    self.intent.batch_size,
                )
                return False
            return True

        if not model.has_layer_dimensions:
            logger.debug("Skipping %s x%d: model has no layer dimensions", strategy.value, device_count)
            return False

        if strategy is ParallelismStrategy.TENSOR_PARALLEL:
            if model.num_attention_heads is None:
                return False
            if model.num_attention_heads % device_count or model.num_kv_heads % device_count:
                logger.debug(
                    "Skipping tensor-parallel x%d: %d heads / %d kv heads not divisible",
                    device_count,
                    model.num_attention_heads,
                    model.num_kv_heads,
                )
                return False
            return True

        if model.num_layers < device_count:
            logger.debug(
                "Skipping pipeline-parallel x%d: only %d layers", device_count, model.num_layers
            )
            return False
        return True

    def _batch_per_device(self, strategy: ParallelismStrategy, device_count: int) -> int:
        if strategy is ParallelismStrategy.DATA_PARALLEL:
            return -(-self.intent.batch_size // device_count)
        return self.intent.batch_size

    def _enumerate(self) -> List[Configuration]:
        space = []
        for device_count in range(1, self.intent.max_device_count + 1):
            for precision in self.precisions:
                for strategy in ParallelismStrategy:
                    if not self._strategy_allowed(strategy, device_count):
                        continue
                    space.append(
                        Configuration(
                            precision=precision,
                            device_count=device_count,
                            parallelism_strategy=strategy,
                            batch_size_per_device=self._batch_per_device(strategy, device_count),
                        )
                    )
        return space

    def space(self) -> List[Configuration]:
        """All configurations in canonical order."""
        return list(self._space)

    def __len__(self) -> int:
        return len(self._space)

    def index(self, configuration: Configuration) -> int:
        """Canonical position of *configuration* in the search space."""
        return self._index[configuration]

    def for_hardware(self, hardware: HardwareProfile) -> List[Configuration]:
        """Configurations usable on *hardware*.

        Devices without interconnect bandwidth only get single-device
        configurations.
        """
        if hardware.supports_multi_device:
            return list(self._space)
        pruned = [c for c in self._space if c.device_count == 1]
        if len(pruned) < len(self._space):
            logger.debug(
                "%s has no interconnect: pruned %d multi-device configurations",
                hardware.id,
                len(self._space) - len(pruned),
            )
        return pruned
