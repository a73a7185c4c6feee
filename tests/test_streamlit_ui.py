"""Tests for Streamlit UI functionality.

These tests validate the core components and data flow of the Streamlit application
without requiring a full browser/UI test environment.
"""

import json
from io import StringIO

import pandas as pd
import pytest

from hardware_advisor import (
    ModelSpec,
    RecommendationEngine,
    ResourceEstimator,
    WorkloadIntent,
    add_hardware_profiles,
    create_custom_hardware,
    get_hardware_profiles,
)
from hardware_advisor.models import HardwareProfile
from hardware_advisor.report import recommendations_frame, rejections_frame, summary_frame, to_csv


@pytest.fixture
def sample_models():
    """Sample models for testing."""
    return [
        ModelSpec(
            name="test-7b",
            parameter_count=7_000_000_000,
            hidden_size=4096,
            num_layers=32,
            num_attention_heads=32,
            vocab_size=32000,
            max_sequence_length=2048,
        ),
    ]


@pytest.fixture
def sample_hardware():
    """Library picks plus one custom entry, as the Hardware tab builds them."""
    return get_hardware_profiles(["A100-80GB", "H100"]) + [
        create_custom_hardware("custom-24", memory_gb=24, memory_bandwidth_gb_s=500, tflops_fp16=150)
    ]


def sidebar_intent(**overrides):
    """WorkloadIntent built the way the sidebar builds it."""
    settings = dict(
        mode="inference",
        batch_size=1,
        sequence_length=2048,
        target_throughput=None,
        max_device_count=1,
        allowed_precisions=None,
        optimizer_kind="adam",
        autoregressive=True,
        preferred_precision=None,
    )
    settings.update(overrides)
    return WorkloadIntent(**settings)


def test_estimator_configuration():
    """Test that the estimator takes the sidebar settings."""
    estimator = ResourceEstimator(memory_overhead_fraction=0.2, compute_efficiency=0.5)

    assert estimator.memory_overhead_fraction == 0.2
    assert estimator.compute_efficiency == 0.5


def test_recommendations_generation(sample_models, sample_hardware):
    engine = RecommendationEngine()
    results = engine.recommend_for_models(sample_models, sidebar_intent(), sample_hardware)

    assert len(results) == len(sample_models)
    assert results[0].recommended.hardware_id == "custom-24"


def test_overhead_changes_recommendation(sample_models, sample_hardware):
    """A 60% reserve pushes 7B past the 24 GB device."""
    engine = RecommendationEngine(estimator=ResourceEstimator(memory_overhead_fraction=0.6))
    results = engine.recommend_for_models(sample_models, sidebar_intent(), sample_hardware)

    assert results[0].recommended.hardware_id == "A100-80GB"
    assert [e.hardware.id for e in results[0].rejected] == ["custom-24"]


def test_throughput_target_from_sidebar(sample_models, sample_hardware):
    results = RecommendationEngine().recommend_for_models(
        sample_models, sidebar_intent(target_throughput=1e9), sample_hardware
    )

    assert results[0].recommended is None
    assert results[0].error == "ThroughputUnattainable"


def test_export_to_json(sample_models, sample_hardware):
    results = RecommendationEngine().recommend_for_models(sample_models, sidebar_intent(), sample_hardware)
    json_data = json.dumps({"recommendations": [r.to_dict() for r in results]}, indent=2)

    parsed = json.loads(json_data)
    assert parsed["recommendations"][0]["model_name"] == "test-7b"
    assert parsed["recommendations"][0]["recommended"]["hardware_id"] == "custom-24"


def test_export_to_csv(sample_models, sample_hardware):
    results = RecommendationEngine().recommend_for_models(sample_models, sidebar_intent(), sample_hardware)
    df = pd.read_csv(StringIO(to_csv(recommendations_frame(results))))

    assert list(df["Hardware"]) == ["custom-24", "A100-80GB", "H100"]


def test_filter_logic(sample_models, sample_hardware):
    results = RecommendationEngine().recommend_for_models(sample_models, sidebar_intent(), sample_hardware)
    df = recommendations_frame(results)

    filtered = df[df["Hardware"].isin(["H100"]) & df["Bottleneck"].isin(df["Bottleneck"].unique())]
    assert list(filtered["Hardware"]) == ["H100"]


def test_detail_tables(sample_models, sample_hardware):
    results = RecommendationEngine().recommend_for_models(sample_models, sidebar_intent(), sample_hardware)

    assert summary_frame(results).iloc[0]["Recommended"] == "custom-24"
    assert rejections_frame(results[0]).empty


def test_reloading_hardware_json_adds_nothing(sample_hardware):
    """Streamlit reruns the script on every widget change; a second load of the same file is a no-op."""
    uploaded = json.loads(json.dumps([p.to_dict() for p in get_hardware_profiles(["L4", "T4"])]))
    session_hardware = list(sample_hardware)

    for _ in range(2):
        add_hardware_profiles(session_hardware, [HardwareProfile.from_dict(item) for item in uploaded])

    assert [p.id for p in session_hardware] == ["A100-80GB", "H100", "custom-24", "L4", "T4"]


def test_custom_hardware_with_known_id_is_rejected(sample_hardware):
    session_hardware = list(sample_hardware)
    duplicate = create_custom_hardware("custom-24", memory_gb=48, memory_bandwidth_gb_s=900, tflops_fp16=180)

    assert add_hardware_profiles(session_hardware, [duplicate]) == ["custom-24"]
    assert len(session_hardware) == 3
    assert session_hardware[2].memory_capacity_bytes == 24_000_000_000
