#!/usr/bin/env python3
"""Example: Basic hardware recommendation using the Python API."""

from hardware_advisor import (
    ModelSpec,
    NoFeasibleHardware,
    RecommendationEngine,
    WorkloadIntent,
    get_hardware_profiles,
)
from hardware_advisor.constants import GB


def main():
    """Run basic hardware recommendation example."""

    model = ModelSpec(
        name="llama-2-13b",
        parameter_count=13_015_864_320,
        architecture_family="dense-transformer",
        native_precision="fp16",
        hidden_size=5120,
        num_layers=40,
        num_attention_heads=40,
    )

    # Serve 8 concurrent 4k-token sequences; allow int8 and up to 2 devices
    intent = WorkloadIntent(
        mode="inference",
        batch_size=8,
        sequence_length=4096,
        max_device_count=2,
        allowed_precisions=["fp16", "int8"],
    )

    catalog = get_hardware_profiles(["H100", "A100-40GB", "L40", "L4"])

    print("=" * 60)
    print("Hardware Recommendation Example")
    print("=" * 60)

    engine = RecommendationEngine()
    try:
        result = engine.recommend(model, intent, catalog)
    except NoFeasibleHardware as e:
        print(f"No feasible hardware: {e}")
        return

    print(f"\nModel: {result.model_name}")
    for rank, rec in enumerate(result.recommendations[:5], start=1):
        config = rec.configuration
        print(
            f"  {rank}. {config.device_count}x {rec.hardware_id} "
            f"{config.precision.value:>5} {config.parallelism_strategy.value:<17} "
            f"{rec.resource_estimate.total_memory_bytes / GB:7.2f} GB/device, "
            f"{rec.estimated_throughput:10.1f} {rec.throughput_unit}/s"
        )

    print(f"\nReasoning: {result.reasoning}")


if __name__ == "__main__":
    main()
