#!/usr/bin/env python3
"""Example: Sizing a fine-tuning job from a Hugging Face config.json."""

from pathlib import Path

from hardware_advisor import (
    RecommendationEngine,
    ResourceEstimator,
    ThroughputUnattainable,
    WorkloadIntent,
    get_hardware_profiles,
    load_model_config,
)
from hardware_advisor.report import recommendations_frame, rejections_frame


def main():
    model = load_model_config(Path(__file__).parent / "llama2_7b_config.json")
    print(f"Loaded {model.name}: {model.parameter_count / 1e9:.2f}B parameters")

    intent = WorkloadIntent(
        mode="training",
        batch_size=16,
        sequence_length=2048,
        max_device_count=8,
        optimizer_kind="adam",
        target_throughput=5000,
    )

    # Reserve 10% for allocator fragmentation, assume 40% of peak compute
    engine = RecommendationEngine(
        estimator=ResourceEstimator(memory_overhead_fraction=0.1, compute_efficiency=0.4)
    )

    try:
        result = engine.recommend(model, intent, get_hardware_profiles(["H100", "A100-80GB", "L40"]))
    except ThroughputUnattainable as e:
        print(e)
        return

    print(recommendations_frame(result, top=10).to_string(index=False))
    print(f"\n{len(result.rejected)} rejected pairings, for example:")
    print(rejections_frame(result).head(5).to_string(index=False))


if __name__ == "__main__":
    main()
