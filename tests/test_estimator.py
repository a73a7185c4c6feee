"""Unit tests for the resource estimator."""

import pytest

from hardware_advisor.errors import InvalidConfiguration
from hardware_advisor.estimator import ResourceEstimator, compute_precision
from hardware_advisor.models import (
    Configuration,
    HardwareProfile,
    ModelSpec,
    ParallelismStrategy,
    Precision,
    WorkloadIntent,
)


@pytest.fixture
def model():
    """7B-parameter dense transformer."""
    return ModelSpec(
        name="test-7b",
        parameter_count=7_000_000_000,
        hidden_size=4096,
        num_layers=32,
        num_attention_heads=32,
        vocab_size=32000,
    )


@pytest.fixture
def estimator():
    return ResourceEstimator()


@pytest.fixture
def h100():
    return HardwareProfile(
        id="H100",
        memory_capacity_bytes=80_000_000_000,
        compute_throughput=989e12,
        memory_bandwidth_bytes_per_sec=3350e9,
        interconnect_bandwidth_bytes_per_sec=900e9,
    )


def single(precision="fp16", batch=1):
    return Configuration(precision, 1, ParallelismStrategy.NONE, batch)


def test_weight_memory_7b_fp16(estimator, model):
    """7B parameters at 16 bits are 14e9 bytes."""
    assert estimator.weight_memory_bytes(model, Precision.FP16) == 14_000_000_000
    assert estimator.weight_memory_bytes(model, Precision.FP32) == 28_000_000_000
    assert estimator.weight_memory_bytes(model, Precision.INT8) == 7_000_000_000
    assert estimator.weight_memory_bytes(model, Precision.INT4) == 3_500_000_000


def test_int4_rounds_up_to_whole_bytes(estimator):
    model = ModelSpec(name="tiny", parameter_count=7, architecture_family="other")

    assert estimator.weight_memory_bytes(model, Precision.INT4) == 4


def test_inference_estimate_components(estimator, model):
    """Test each component of a single-device fp16 inference estimate."""
    intent = WorkloadIntent(batch_size=1, sequence_length=2048)
    estimate = estimator.estimate(model, intent, single())

    assert estimate.weight_memory_bytes == 14_000_000_000
    # 1 x 1 x 2048 x 4096 x 32 elements at 2 bytes
    assert estimate.activation_memory_bytes == 536_870_912
    # 2 x 32 x 4096 x 2048 x 1 elements at 2 bytes
    assert estimate.kv_cache_memory_bytes == 1_073_741_824
    assert estimate.gradient_memory_bytes == 0
    assert estimate.optimizer_state_memory_bytes == 0
    assert estimate.overhead_memory_bytes == 0
    assert estimate.total_memory_bytes == 15_610_612_736
    assert estimate.estimated_compute_ops == 2 * 7_000_000_000 * 2048


def test_estimate_is_deterministic(estimator, model):
    intent = WorkloadIntent(batch_size=4, sequence_length=1024)

    assert estimator.estimate(model, intent, single(batch=4)) == estimator.estimate(
        model, intent, single(batch=4)
    )


def test_memory_monotonic_in_batch(estimator, model):
    """Total memory never decreases as the batch grows."""
    totals = []
    for batch in (1, 2, 4, 8, 16):
        intent = WorkloadIntent(batch_size=batch, sequence_length=2048)
        totals.append(estimator.estimate(model, intent, single(batch=batch)).total_memory_bytes)

    assert totals == sorted(totals)
    assert totals[-1] > totals[0]


def test_training_needs_more_memory_than_inference(estimator, model):
    inference = WorkloadIntent(mode="inference", batch_size=4, sequence_length=2048)
    training = WorkloadIntent(mode="training", batch_size=4, sequence_length=2048)

    inference_estimate = estimator.estimate(model, inference, single(batch=4))
    training_estimate = estimator.estimate(model, training, single(batch=4))

    assert training_estimate.total_memory_bytes > inference_estimate.total_memory_bytes
    assert training_estimate.kv_cache_memory_bytes == 0
    assert training_estimate.gradient_memory_bytes == 14_000_000_000
    assert training_estimate.estimated_compute_ops == 2 * inference_estimate.estimated_compute_ops


@pytest.mark.parametrize(
    "optimizer, expected",
    [("sgd", 0), ("momentum", 28_000_000_000), ("adam", 56_000_000_000)],
)
def test_optimizer_state(estimator, model, optimizer, expected):
    intent = WorkloadIntent(mode="training", optimizer_kind=optimizer)

    assert estimator.estimate(model, intent, single()).optimizer_state_memory_bytes == expected


def test_integer_precision_keeps_fp16_gradients(estimator, model):
    intent = WorkloadIntent(mode="training", allowed_precisions=["int8"])
    estimate = estimator.estimate(model, intent, single("int8"))

    assert compute_precision(Precision.INT8) is Precision.FP16
    assert estimate.weight_memory_bytes == 7_000_000_000
    assert estimate.gradient_memory_bytes == 14_000_000_000


def test_fp32_training_keeps_two_fp32_moments(estimator, model):
    """Adam holds 8 bytes per parameter whether the weights are fp32 or fp16."""
    intent = WorkloadIntent(mode="training", allowed_precisions=["fp32"])
    fp32 = estimator.estimate(model, intent, single("fp32"))
    fp16 = estimator.estimate(model, WorkloadIntent(mode="training"), single())

    assert fp32.weight_memory_bytes == 28_000_000_000
    assert fp32.gradient_memory_bytes == 28_000_000_000
    assert fp32.optimizer_state_memory_bytes == 56_000_000_000
    assert fp16.optimizer_state_memory_bytes == 56_000_000_000


def test_no_kv_cache_without_autoregressive_decoding(estimator, model):
    intent = WorkloadIntent(autoregressive=False)

    assert estimator.estimate(model, intent, single()).kv_cache_memory_bytes == 0


def test_grouped_query_attention_shrinks_kv_cache(estimator, model):
    gqa = ModelSpec(**{**model.to_dict(), "num_kv_heads": 8})
    intent = WorkloadIntent()

    full = estimator.estimate(model, intent, single()).kv_cache_memory_bytes
    grouped = estimator.estimate(gqa, intent, single()).kv_cache_memory_bytes
    assert grouped * 4 == full


def test_convolutional_activation_scales_with_parameters(estimator):
    model = ModelSpec(name="cnn", parameter_count=25_000_000, architecture_family="convolutional")
    intent = WorkloadIntent(batch_size=4, sequence_length=1)
    estimate = estimator.estimate(model, intent, single(batch=4))

    # inference coefficient 0.1 x batch 4 x 25M parameters at 2 bytes
    assert abs(estimate.activation_memory_bytes - 20_000_000) <= 1
    assert estimate.kv_cache_memory_bytes == 0


def test_mixture_of_experts_compute_uses_active_parameters(estimator):
    model = ModelSpec(
        name="moe",
        parameter_count=40_000_000_000,
        architecture_family="mixture-of-experts",
        hidden_size=4096,
        num_layers=32,
        num_attention_heads=32,
        num_experts=8,
        experts_per_token=2,
        active_parameter_count=10_000_000_000,
    )
    intent = WorkloadIntent(sequence_length=1000)
    estimate = estimator.estimate(model, intent, single())

    assert estimate.weight_memory_bytes == 80_000_000_000
    assert estimate.estimated_compute_ops == 2 * 10_000_000_000 * 1000


def test_tensor_parallel_shards_weights_and_cache(estimator, model):
    intent = WorkloadIntent(mode="inference")
    one = estimator.estimate(model, intent, single())
    two = estimator.estimate(model, intent, Configuration("fp16", 2, ParallelismStrategy.TENSOR_PARALLEL, 1))

    assert two.weight_memory_bytes == one.weight_memory_bytes // 2
    assert two.kv_cache_memory_bytes == one.kv_cache_memory_bytes // 2
    assert two.activation_memory_bytes == one.activation_memory_bytes // 2
    assert two.estimated_compute_ops == one.estimated_compute_ops


def test_pipeline_parallel_holds_a_share_of_layers(estimator, model):
    configuration = Configuration("fp16", 3, ParallelismStrategy.PIPELINE_PARALLEL, 1)
    estimate = estimator.estimate(model, WorkloadIntent(), configuration)

    assert estimator.layers_on_device(model, configuration) == 11
    assert estimate.weight_memory_bytes == 4_666_666_667
    # 2 x 11 layers x 4096 x 2048 x 1 at 2 bytes
    assert estimate.kv_cache_memory_bytes == 369_098_752


def test_data_parallel_replicates_weights(estimator, model):
    intent = WorkloadIntent(mode="training", batch_size=8)
    configuration = Configuration("fp16", 2, ParallelismStrategy.DATA_PARALLEL, 4)
    replicated = estimator.estimate(model, intent, configuration)
    whole = estimator.estimate(model, intent, single(batch=8))

    assert replicated.weight_memory_bytes == whole.weight_memory_bytes
    assert replicated.optimizer_state_memory_bytes == whole.optimizer_state_memory_bytes
    assert replicated.activation_memory_bytes * 2 == whole.activation_memory_bytes


def test_memory_overhead_fraction(model):
    estimator = ResourceEstimator(memory_overhead_fraction=0.1)
    estimate = estimator.estimate(model, WorkloadIntent(), single())

    assert estimate.overhead_memory_bytes == 1_561_061_274
    assert estimate.total_memory_bytes == 15_610_612_736 + 1_561_061_274


def test_coefficient_overrides_are_merged(model):
    estimator = ResourceEstimator(
        activation_coefficients={"dense-transformer": {"inference": 2.0}},
        optimizer_multipliers={"adam": 1.0},
    )

    assert estimator.activation_coefficients["dense-transformer"]["inference"] == 2.0
    assert estimator.activation_coefficients["dense-transformer"]["training"] == 17.0
    assert estimator.optimizer_multipliers["momentum"] == 1.0

    intent = WorkloadIntent(mode="training")
    assert estimator.estimate(model, intent, single()).optimizer_state_memory_bytes == 28_000_000_000


@pytest.mark.parametrize(
    "kwargs",
    [{"memory_overhead_fraction": -0.1}, {"compute_efficiency": 0}, {"compute_efficiency": 1.5}],
)
def test_invalid_estimator_settings(kwargs):
    with pytest.raises(ValueError):
        ResourceEstimator(**kwargs)


def test_autoregressive_decode_is_memory_bound(estimator, model, h100):
    intent = WorkloadIntent(batch_size=1, sequence_length=2048)
    throughput = estimator.estimate_throughput(model, intent, single(), h100)

    assert throughput.bottleneck == "memory"
    assert throughput.unit == "tokens"
    assert throughput.communication_time_s == 0.0
    # 2048 tokens per step over 2048 passes through 15.07 GB at 3350 GB/s
    assert throughput.throughput == pytest.approx(3350e9 / 15_073_741_824)


def test_prefill_is_compute_bound(estimator, model, h100):
    intent = WorkloadIntent(batch_size=1, sequence_length=2048, autoregressive=False)
    throughput = estimator.estimate_throughput(model, intent, single(), h100)

    assert throughput.bottleneck == "compute"
    assert throughput.step_time_s == pytest.approx(2 * 7e9 * 2048 / 989e12)


def test_compute_efficiency_slows_compute_bound_steps(model, h100):
    intent = WorkloadIntent(autoregressive=False)
    full = ResourceEstimator().estimate_throughput(model, intent, single(), h100)
    half = ResourceEstimator(compute_efficiency=0.5).estimate_throughput(model, intent, single(), h100)

    assert half.throughput == pytest.approx(full.throughput / 2)
    assert half.compute_bound_throughput == full.compute_bound_throughput


def test_compute_bound_throughput_ignores_memory(estimator, model, h100):
    """Decoding is memory-bound, but the peak compute rate is still 2048 x 989e12 / ops."""
    throughput = estimator.estimate_throughput(model, WorkloadIntent(), single(), h100)

    assert throughput.bottleneck == "memory"
    assert throughput.compute_bound_throughput == pytest.approx(989e12 / 14e9)
    assert throughput.compute_bound_throughput > throughput.throughput


def test_samples_per_second_for_convolutional_models(estimator, h100):
    model = ModelSpec(name="cnn", parameter_count=25_000_000, architecture_family="convolutional")
    throughput = estimator.estimate_throughput(
        model, WorkloadIntent(batch_size=32, sequence_length=1), single(batch=32), h100
    )

    assert throughput.unit == "samples"
    assert throughput.throughput == pytest.approx(32 / throughput.step_time_s)


def test_multi_device_adds_communication(estimator, model, h100):
    intent = WorkloadIntent(mode="training", batch_size=8)
    configuration = Configuration("fp16", 2, ParallelismStrategy.DATA_PARALLEL, 4)
    throughput = estimator.estimate_throughput(model, intent, configuration, h100)

    # ring all-reduce of 14 GB of gradients across 2 devices
    assert estimator.communication_bytes(model, intent, configuration) == 14_000_000_000
    assert throughput.communication_time_s == pytest.approx(14e9 / 900e9)


def test_multi_device_requires_interconnect(estimator, model):
    device = HardwareProfile(
        id="T4",
        memory_capacity_bytes=16_000_000_000,
        compute_throughput=65e12,
        memory_bandwidth_bytes_per_sec=300e9,
    )
    configuration = Configuration("fp16", 2, ParallelismStrategy.TENSOR_PARALLEL, 1)

    with pytest.raises(InvalidConfiguration):
        estimator.estimate_throughput(model, WorkloadIntent(), configuration, device)
