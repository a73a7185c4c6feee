"""Unit tests for configuration enumeration."""

import pytest

from hardware_advisor.errors import InvalidWorkload
from hardware_advisor.hardware_library import get_hardware_from_library
from hardware_advisor.models import (
    Configuration,
    ModelSpec,
    ParallelismStrategy,
    Precision,
    WorkloadIntent,
)
from hardware_advisor.search import ConfigurationSearch, precision_order


@pytest.fixture
def model():
    return ModelSpec(
        name="test-7b",
        parameter_count=7_000_000_000,
        hidden_size=4096,
        num_layers=32,
        num_attention_heads=32,
    )


def strategies_at(search, device_count):
    return [c.parallelism_strategy for c in search.space() if c.device_count == device_count]


def test_default_search_is_single_native_configuration(model):
    search = ConfigurationSearch(model, WorkloadIntent(batch_size=4))

    assert search.space() == [Configuration(Precision.FP16, 1, ParallelismStrategy.NONE, 4)]
    assert len(search) == 1


def test_native_precision_first(model):
    intent = WorkloadIntent(allowed_precisions=["int8", "fp32", "fp16"])

    assert precision_order(model, intent) == (Precision.FP16, Precision.FP32, Precision.INT8)


def test_preferred_precision_first(model):
    intent = WorkloadIntent(allowed_precisions=["fp32", "fp16", "int8"], preferred_precision="int8")

    assert precision_order(model, intent) == (Precision.INT8, Precision.FP32, Precision.FP16)


def test_native_precision_not_allowed(model):
    intent = WorkloadIntent(allowed_precisions=["int4", "int8"])

    assert precision_order(model, intent) == (Precision.INT8, Precision.INT4)


def test_preferred_precision_must_be_usable(model):
    intent = WorkloadIntent(preferred_precision="int8")

    with pytest.raises(InvalidWorkload):
        precision_order(model, intent)


def test_canonical_order(model):
    """Device count ascending, then precision order, then strategy order."""
    intent = WorkloadIntent(batch_size=4, max_device_count=4, allowed_precisions=["fp16", "int8"])
    search = ConfigurationSearch(model, intent)
    space = search.space()

    keys = [
        (
            c.device_count,
            search.precisions.index(c.precision),
            list(ParallelismStrategy).index(c.parallelism_strategy),
        )
        for c in space
    ]
    assert keys == sorted(keys)
    assert [search.index(c) for c in space] == list(range(len(space)))
    assert space[0] == Configuration(Precision.FP16, 1, ParallelismStrategy.NONE, 4)
    assert space[1] == Configuration(Precision.INT8, 1, ParallelismStrategy.NONE, 4)


def test_strategy_pruning(model):
    intent = WorkloadIntent(batch_size=2, max_device_count=4)
    search = ConfigurationSearch(model, intent)

    assert strategies_at(search, 1) == [ParallelismStrategy.NONE]
    assert strategies_at(search, 2) == [
        ParallelismStrategy.DATA_PARALLEL,
        ParallelismStrategy.TENSOR_PARALLEL,
        ParallelismStrategy.PIPELINE_PARALLEL,
    ]
    # 32 heads do not split 3 ways; batch of 2 does not split 3 or 4 ways
    assert strategies_at(search, 3) == [ParallelismStrategy.PIPELINE_PARALLEL]
    assert strategies_at(search, 4) == [
        ParallelismStrategy.TENSOR_PARALLEL,
        ParallelismStrategy.PIPELINE_PARALLEL,
    ]


def test_tensor_parallel_needs_divisible_kv_heads(model):
    gqa = ModelSpec(**{**model.to_dict(), "num_kv_heads": 4})
    search = ConfigurationSearch(gqa, WorkloadIntent(max_device_count=8))

    assert ParallelismStrategy.TENSOR_PARALLEL in strategies_at(search, 4)
    assert ParallelismStrategy.TENSOR_PARALLEL not in strategies_at(search, 8)


def test_pipeline_parallel_needs_enough_layers():
    shallow = ModelSpec(
        name="shallow", parameter_count=1_000_000, hidden_size=256, num_layers=2, num_attention_heads=4
    )
    search = ConfigurationSearch(shallow, WorkloadIntent(max_device_count=4))

    assert ParallelismStrategy.PIPELINE_PARALLEL in strategies_at(search, 2)
    assert ParallelismStrategy.PIPELINE_PARALLEL not in strategies_at(search, 4)


def test_models_without_dimensions_only_use_data_parallel():
    cnn = ModelSpec(name="cnn", parameter_count=25_000_000, architecture_family="convolutional")
    search = ConfigurationSearch(cnn, WorkloadIntent(batch_size=8, max_device_count=2))

    assert strategies_at(search, 2) == [ParallelismStrategy.DATA_PARALLEL]


def test_data_parallel_splits_batch(model):
    search = ConfigurationSearch(model, WorkloadIntent(batch_size=5, max_device_count=2))
    by_strategy = {c.parallelism_strategy: c for c in search.space() if c.device_count == 2}

    assert by_strategy[ParallelismStrategy.DATA_PARALLEL].batch_size_per_device == 3
    assert by_strategy[ParallelismStrategy.TENSOR_PARALLEL].batch_size_per_device == 5


def test_no_interconnect_means_single_device(model):
    search = ConfigurationSearch(model, WorkloadIntent(batch_size=4, max_device_count=4))
    t4 = get_hardware_from_library("T4")
    h100 = get_hardware_from_library("H100")

    assert all(c.device_count == 1 for c in search.for_hardware(t4))
    assert search.for_hardware(h100) == search.space()
