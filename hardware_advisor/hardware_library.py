"""Preloaded catalog of common accelerators.

Figures are vendor-published peak values (dense, no sparsity) for the SXM /
datacenter variants; prices are indicative on-demand cloud rates. Devices
sold only as single PCIe cards carry their PCIe bandwidth as interconnect.
"""

import json
from pathlib import Path
from typing import Dict, List, Optional, Union

from .constants import GB, TERA
from .models import HardwareCatalog, HardwareProfile, Precision

HARDWARE_LIBRARY: Dict[str, Dict[str, Optional[float]]] = {
    "H200": {
        "name": "NVIDIA H200 141GB",
        "memory_gb": 141.0,
        "memory_bandwidth_gb_s": 4800.0,
        "tflops_fp16": 989.0,
        "tflops_fp32": 494.5,
        "tops_int8": 1979.0,
        "interconnect_bandwidth_gb_s": 900.0,
        "cost_per_hour": 6.30,
    },
    "H100": {
        "name": "NVIDIA H100 80GB",
        "memory_gb": 80.0,
        "memory_bandwidth_gb_s": 3350.0,
        "tflops_fp16": 989.0,
        "tflops_fp32": 494.5,
        "tops_int8": 1979.0,
        "interconnect_bandwidth_gb_s": 900.0,
        "cost_per_hour": 4.76,
    },
    "A100-80GB": {
        "name": "NVIDIA A100 80GB",
        "memory_gb": 80.0,
        "memory_bandwidth_gb_s": 2039.0,
        "tflops_fp16": 312.0,
        "tflops_fp32": 156.0,
        "tops_int8": 624.0,
        "interconnect_bandwidth_gb_s": 600.0,
        "cost_per_hour": 3.67,
    },
    "A100-40GB": {
        "name": "NVIDIA A100 40GB",
        "memory_gb": 40.0,
        "memory_bandwidth_gb_s": 1555.0,
        "tflops_fp16": 312.0,
        "tflops_fp32": 156.0,
        "tops_int8": 624.0,
        "interconnect_bandwidth_gb_s": 600.0,
        "cost_per_hour": 2.93,
    },
    "L40": {
        "name": "NVIDIA L40 48GB",
        "memory_gb": 48.0,
        "memory_bandwidth_gb_s": 864.0,
        "tflops_fp16": 362.0,
        "tflops_fp32": 181.0,
        "tops_int8": 724.0,
        "interconnect_bandwidth_gb_s": 64.0,
        "cost_per_hour": 1.80,
    },
    "L4": {
        "name": "NVIDIA L4 24GB",
        "memory_gb": 24.0,
        "memory_bandwidth_gb_s": 300.0,
        "tflops_fp16": 121.0,
        "tflops_fp32": 60.0,
        "tops_int8": 242.0,
        "interconnect_bandwidth_gb_s": 64.0,
        "cost_per_hour": 0.80,
    },
    "V100": {
        "name": "NVIDIA V100 32GB",
        "memory_gb": 32.0,
        "memory_bandwidth_gb_s": 900.0,
        "tflops_fp16": 125.0,
        "tflops_fp32": 62.5,
        "interconnect_bandwidth_gb_s": 300.0,
        "cost_per_hour": 2.48,
    },
    "T4": {
        "name": "NVIDIA T4 16GB",
        "memory_gb": 16.0,
        "memory_bandwidth_gb_s": 300.0,
        "tflops_fp16": 65.0,
        "tflops_fp32": 8.1,
        "tops_int8": 130.0,
        "tops_int4": 260.0,
        "interconnect_bandwidth_gb_s": None,
        "cost_per_hour": 0.526,
    },
}


def list_available_hardware() -> List[str]:
    """Keys of every device in the library."""
    return list(HARDWARE_LIBRARY.keys())


def get_hardware_from_library(key: str) -> Optional[HardwareProfile]:
    """Look up one device by library key.

    Args:
        key: Library key (e.g. "H100", "A100-80GB")

    Returns:
        HardwareProfile, or None if the key is unknown
    """
    specs = HARDWARE_LIBRARY.get(key)
    if specs is None:
        return None
    return HardwareProfile.from_dict({"id": key, **specs})


def get_hardware_profiles(keys: Optional[List[str]] = None) -> List[HardwareProfile]:
    """Profiles for *keys* (all devices when None), in the given order.

    Raises:
        ValueError: if a key is not in the library
    """
    if keys is None:
        keys = list_available_hardware()

    profiles = []
    for key in keys:
        profile = get_hardware_from_library(key)
        if profile is None:
            raise ValueError(
                f"Hardware '{key}' not found in library. "
                f"Available hardware: {', '.join(list_available_hardware())}"
            )
        profiles.append(profile)
    return profiles


def create_custom_hardware(
    hardware_id: str,
    memory_gb: float,
    memory_bandwidth_gb_s: float,
    tflops_fp16: float,
    tflops_fp32: Optional[float] = None,
    interconnect_bandwidth_gb_s: Optional[float] = None,
    cost_per_hour: Optional[float] = None,
    name: Optional[str] = None,
) -> HardwareProfile:
    """Build a profile from spec-sheet units (GB, GB/s, TFLOPS)."""
    precision_throughput = {Precision.FP16: tflops_fp16 * TERA}
    if tflops_fp32 is not None:
        precision_throughput[Precision.FP32] = tflops_fp32 * TERA
    return HardwareProfile(
        id=hardware_id,
        name=name,
        memory_capacity_bytes=int(round(memory_gb * GB)),
        compute_throughput=tflops_fp16 * TERA,
        memory_bandwidth_bytes_per_sec=memory_bandwidth_gb_s * GB,
        interconnect_bandwidth_bytes_per_sec=(
            interconnect_bandwidth_gb_s * GB if interconnect_bandwidth_gb_s is not None else None
        ),
        cost_per_hour=cost_per_hour,
        precision_throughput=precision_throughput,
    )


def load_catalog(path: Union[str, Path]) -> HardwareCatalog:
    """Load a catalog from a JSON list of hardware descriptions."""
    with open(path, "r") as f:
        data = json.load(f)
    return HardwareCatalog.from_dicts(data)


def add_hardware_profiles(current: List[HardwareProfile], profiles: List[HardwareProfile]) -> List[str]:
    """Append *profiles* to *current* in place, skipping ids already present.

    Returns:
        Ids that were skipped as duplicates
    """
    existing = {profile.id for profile in current}
    skipped = []
    for profile in profiles:
        if profile.id in existing:
            skipped.append(profile.id)
            continue
        current.append(profile)
        existing.add(profile.id)
    return skipped
