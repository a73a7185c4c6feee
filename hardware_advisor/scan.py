"""Detect the local machine and map its GPUs onto the hardware library.

CPU counts come from psutil, GPUs from NVML (the ``nvidia-ml-py`` package).
A machine without an NVIDIA driver reports no GPUs rather than failing.
"""

import logging
import platform
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import psutil
import pynvml

from .hardware_library import HARDWARE_LIBRARY, get_hardware_from_library
from .models import HardwareProfile

logger = logging.getLogger(__name__)

_APPLE_SILICON = {"arm64", "aarch64"}


@dataclass(frozen=True)
class GPUInfo:
    """One NVIDIA device as NVML reports it."""

    index: int
    name: str
    memory_bytes: int


@dataclass(frozen=True)
class SystemInfo:
    """Operating system, CPU and GPU summary of the local machine.

    Attributes:
        os: Lower-case platform name ("linux", "darwin", "windows")
        arch: Machine architecture ("x86_64", "arm64", ...)
        physical_cores: Physical CPU cores; None when psutil cannot tell
        logical_threads: Logical CPUs (hardware threads)
        gpus: Detected NVIDIA devices, in NVML index order
    """

    os: str
    arch: str
    physical_cores: Optional[int]
    logical_threads: Optional[int]
    gpus: List[GPUInfo] = field(default_factory=list)

    @property
    def gpu_count(self) -> int:
        return len(self.gpus)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["gpu_count"] = self.gpu_count
        return data


def _decode(value) -> str:
    # nvidia-ml-py returned bytes before 11.5
    return value.decode("utf-8") if isinstance(value, bytes) else value


def detect_gpus() -> List[GPUInfo]:
    """Query NVML for every visible device; empty when no driver is present."""
    try:
        pynvml.nvmlInit()
    except pynvml.NVMLError as e:
        logger.info("NVML unavailable, no NVIDIA GPUs detected: %s", e)
        return []

    try:
        gpus = []
        for index in range(pynvml.nvmlDeviceGetCount()):
            handle = pynvml.nvmlDeviceGetHandleByIndex(index)
            memory = pynvml.nvmlDeviceGetMemoryInfo(handle)
            gpus.append(
                GPUInfo(
                    index=index,
                    name=_decode(pynvml.nvmlDeviceGetName(handle)),
                    memory_bytes=int(memory.total),
                )
            )
        return gpus
    except pynvml.NVMLError as e:
        logger.warning("NVML device query failed: %s", e)
        return []
    finally:
        pynvml.nvmlShutdown()


def scan_system() -> SystemInfo:
    """Describe the machine this process runs on."""
    os_name = platform.system().lower()
    arch = platform.machine().lower()

    # Apple silicon has no NVML
    if os_name == "darwin" and arch in _APPLE_SILICON:
        gpus = []
    else:
        gpus = detect_gpus()

    info = SystemInfo(
        os=os_name,
        arch=arch,
        physical_cores=psutil.cpu_count(logical=False),
        logical_threads=psutil.cpu_count(logical=True),
        gpus=gpus,
    )
    logger.info(
        "Scanned %s/%s: %s cores, %s threads, %d GPU(s)",
        info.os,
        info.arch,
        info.physical_cores,
        info.logical_threads,
        info.gpu_count,
    )
    return info


def match_library_key(gpu: GPUInfo) -> Optional[str]:
    """Library key whose model appears in the device name, nearest in memory.

    "NVIDIA A100-SXM4-40GB" matches A100-40GB; "Tesla T4" matches T4.
    """
    tokens = set(gpu.name.upper().replace("-", " ").split())
    candidates = [key for key in HARDWARE_LIBRARY if key.split("-")[0].upper() in tokens]
    if not candidates:
        return None
    return min(
        candidates,
        key=lambda key: abs(HARDWARE_LIBRARY[key]["memory_gb"] * 1e9 - gpu.memory_bytes),
    )


def detected_hardware_profiles(info: SystemInfo) -> List[HardwareProfile]:
    """Library profiles for the detected GPUs, one per distinct device type.

    Devices with no library counterpart are logged and left out, since NVML
    does not report compute throughput or bandwidth.
    """
    counts = Counter()
    for gpu in info.gpus:
        key = match_library_key(gpu)
        if key is None:
            logger.warning("No library entry for detected GPU %d (%s); skipping", gpu.index, gpu.name)
            continue
        counts[key] += 1

    profiles = []
    for key, count in counts.items():
        logger.info("Detected %dx %s", count, key)
        profiles.append(get_hardware_from_library(key))
    return profiles
