"""Tabular views of recommendation results (pandas)."""

from io import StringIO
from typing import Iterable, List, Optional, Union

import pandas as pd

from .constants import GB
from .recommender import RecommendationResult

RECOMMENDATION_COLUMNS = [
    "Model",
    "Rank",
    "Hardware",
    "Devices",
    "Precision",
    "Strategy",
    "Batch/Device",
    "Memory (GB)",
    "Capacity (GB)",
    "Headroom (GB)",
    "Throughput",
    "Peak Throughput",
    "Unit",
    "Bottleneck",
    "Cost ($/hr)",
]

REJECTION_COLUMNS = [
    "Model",
    "Hardware",
    "Devices",
    "Precision",
    "Strategy",
    "Status",
    "Memory (GB)",
    "Capacity (GB)",
    "Throughput",
    "Peak Throughput",
]

SUMMARY_COLUMNS = [
    "Model",
    "Recommended",
    "Devices",
    "Precision",
    "Strategy",
    "Throughput",
    "Unit",
    "Cost ($/hr)",
    "Error",
]


def _as_list(
    results: Union[RecommendationResult, Iterable[RecommendationResult]]
) -> List[RecommendationResult]:
    if isinstance(results, RecommendationResult):
        return [results]
    return list(results)


def recommendations_frame(
    results: Union[RecommendationResult, Iterable[RecommendationResult]],
    top: Optional[int] = None,
) -> pd.DataFrame:
    """One row per recommendation, in rank order within each model.

    Args:
        results: One result or several
        top: Keep only the best *top* recommendations per model
    """
    rows = []
    for result in _as_list(results):
        recommendations = result.recommendations[:top] if top else result.recommendations
        for rank, rec in enumerate(recommendations, start=1):
            config = rec.configuration
            rows.append(
                {
                    "Model": result.model_name,
                    "Rank": rank,
                    "Hardware": rec.hardware_id,
                    "Devices": config.device_count,
                    "Precision": config.precision.value,
                    "Strategy": config.parallelism_strategy.value,
                    "Batch/Device": config.batch_size_per_device,
                    "Memory (GB)": round(rec.resource_estimate.total_memory_bytes / GB, 2),
                    "Capacity (GB)": round(rec.memory_capacity_bytes / GB, 2),
                    "Headroom (GB)": round(rec.fit_margin / GB, 2),
                    "Throughput": round(rec.estimated_throughput, 2),
                    "Peak Throughput": round(rec.compute_bound_throughput, 2),
                    "Unit": f"{rec.throughput_unit}/s",
                    "Bottleneck": rec.bottleneck,
                    "Cost ($/hr)": rec.total_cost_per_hour,
                }
            )
    return pd.DataFrame(rows, columns=RECOMMENDATION_COLUMNS)


def rejections_frame(
    results: Union[RecommendationResult, Iterable[RecommendationResult]]
) -> pd.DataFrame:
    """One row per pairing that failed the memory or throughput gate."""
    rows = []
    for result in _as_list(results):
        for evaluation in result.rejected:
            config = evaluation.configuration
            rows.append(
                {
                    "Model": result.model_name,
                    "Hardware": evaluation.hardware.id,
                    "Devices": config.device_count,
                    "Precision": config.precision.value,
                    "Strategy": config.parallelism_strategy.value,
                    "Status": evaluation.status.value,
                    "Memory (GB)": round(evaluation.estimate.total_memory_bytes / GB, 2),
                    "Capacity (GB)": round(evaluation.hardware.memory_capacity_bytes / GB, 2),
                    "Throughput": round(evaluation.throughput.throughput, 2),
                    "Peak Throughput": round(evaluation.throughput.compute_bound_throughput, 2),
                }
            )
    return pd.DataFrame(rows, columns=REJECTION_COLUMNS)


def summary_frame(
    results: Union[RecommendationResult, Iterable[RecommendationResult]]
) -> pd.DataFrame:
    """One row per model with its top recommendation (or the failure)."""
    rows = []
    for result in _as_list(results):
        best = result.recommended
        rows.append(
            {
                "Model": result.model_name,
                "Recommended": best.hardware_id if best else None,
                "Devices": best.configuration.device_count if best else None,
                "Precision": best.configuration.precision.value if best else None,
                "Strategy": best.configuration.parallelism_strategy.value if best else None,
                "Throughput": round(best.estimated_throughput, 2) if best else None,
                "Unit": f"{best.throughput_unit}/s" if best else None,
                "Cost ($/hr)": best.total_cost_per_hour if best else None,
                "Error": result.error,
            }
        )
    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)


def to_csv(frame: pd.DataFrame) -> str:
    """Render a frame as CSV text without the index."""
    buffer = StringIO()
    frame.to_csv(buffer, index=False)
    return buffer.getvalue()
