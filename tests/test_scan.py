"""Unit tests for local machine detection."""

import json
from types import SimpleNamespace

import pytest

from hardware_advisor import scan
from hardware_advisor.cli import main
from hardware_advisor.scan import (
    GPUInfo,
    SystemInfo,
    detect_gpus,
    detected_hardware_profiles,
    match_library_key,
    scan_system,
)

GiB = 1024**3

MODEL_7B = {
    "name": "test-7b",
    "parameter_count": 7_000_000_000,
    "hidden_size": 4096,
    "num_layers": 32,
    "num_attention_heads": 32,
}


class FakeNVMLError(Exception):
    pass


def fake_nvml(devices, init_error=False, query_error=False):
    """Stand-in for the pynvml module serving (name, total bytes) pairs."""
    calls = {"shutdown": 0}

    def init():
        if init_error:
            raise FakeNVMLError("NVML Shared Library Not Found")

    def get_count():
        if query_error:
            raise FakeNVMLError("Unknown Error")
        return len(devices)

    def shutdown():
        calls["shutdown"] += 1

    module = SimpleNamespace(
        NVMLError=FakeNVMLError,
        nvmlInit=init,
        nvmlShutdown=shutdown,
        nvmlDeviceGetCount=get_count,
        nvmlDeviceGetHandleByIndex=lambda index: index,
        nvmlDeviceGetName=lambda handle: devices[handle][0],
        nvmlDeviceGetMemoryInfo=lambda handle: SimpleNamespace(total=devices[handle][1], used=0, free=0),
        calls=calls,
    )
    return module


@pytest.fixture
def two_a100(monkeypatch):
    nvml = fake_nvml([("NVIDIA A100-SXM4-80GB", 80 * GiB), (b"NVIDIA A100-SXM4-80GB", 80 * GiB)])
    monkeypatch.setattr(scan, "pynvml", nvml)
    monkeypatch.setattr(scan.platform, "system", lambda: "Linux")
    monkeypatch.setattr(scan.platform, "machine", lambda: "x86_64")
    monkeypatch.setattr(scan.psutil, "cpu_count", lambda logical=True: 64 if logical else 32)
    return nvml


def test_detect_gpus(two_a100):
    gpus = detect_gpus()

    assert gpus == [
        GPUInfo(index=0, name="NVIDIA A100-SXM4-80GB", memory_bytes=80 * GiB),
        GPUInfo(index=1, name="NVIDIA A100-SXM4-80GB", memory_bytes=80 * GiB),
    ]
    assert two_a100.calls["shutdown"] == 1


def test_detect_gpus_without_driver(monkeypatch):
    monkeypatch.setattr(scan, "pynvml", fake_nvml([], init_error=True))

    assert detect_gpus() == []


def test_detect_gpus_query_failure_still_shuts_down(monkeypatch):
    nvml = fake_nvml([("Tesla T4", 16 * GiB)], query_error=True)
    monkeypatch.setattr(scan, "pynvml", nvml)

    assert detect_gpus() == []
    assert nvml.calls["shutdown"] == 1


def test_scan_system(two_a100):
    info = scan_system()

    assert info.os == "linux"
    assert info.arch == "x86_64"
    assert info.physical_cores == 32
    assert info.logical_threads == 64
    assert info.gpu_count == 2
    data = json.loads(json.dumps(info.to_dict()))
    assert data["gpu_count"] == 2
    assert data["gpus"][0]["name"] == "NVIDIA A100-SXM4-80GB"


def test_scan_system_skips_nvml_on_apple_silicon(monkeypatch):
    def unreachable():
        raise AssertionError("NVML queried on Apple silicon")

    monkeypatch.setattr(scan, "pynvml", SimpleNamespace(nvmlInit=unreachable, NVMLError=FakeNVMLError))
    monkeypatch.setattr(scan.platform, "system", lambda: "Darwin")
    monkeypatch.setattr(scan.platform, "machine", lambda: "arm64")
    monkeypatch.setattr(scan.psutil, "cpu_count", lambda logical=True: 10)

    info = scan_system()
    assert info.os == "darwin"
    assert info.gpus == []


@pytest.mark.parametrize(
    "name, memory_bytes, expected",
    [
        ("NVIDIA A100-SXM4-80GB", 80 * GiB, "A100-80GB"),
        ("NVIDIA A100-PCIE-40GB", 40 * GiB, "A100-40GB"),
        ("NVIDIA H100 80GB HBM3", 80 * GiB, "H100"),
        ("Tesla T4", 15 * GiB, "T4"),
        ("NVIDIA L4", 23 * GiB, "L4"),
        ("NVIDIA GeForce RTX 4090", 24 * GiB, None),
    ],
)
def test_match_library_key(name, memory_bytes, expected):
    assert match_library_key(GPUInfo(0, name, memory_bytes)) == expected


def test_detected_hardware_profiles_one_per_type():
    info = SystemInfo(
        os="linux",
        arch="x86_64",
        physical_cores=16,
        logical_threads=32,
        gpus=[
            GPUInfo(0, "NVIDIA L4", 23 * GiB),
            GPUInfo(1, "NVIDIA L4", 23 * GiB),
            GPUInfo(2, "NVIDIA GeForce RTX 4090", 24 * GiB),
            GPUInfo(3, "Tesla T4", 15 * GiB),
        ],
    )

    assert [p.id for p in detected_hardware_profiles(info)] == ["L4", "T4"]


def test_cli_scan_prints_system(two_a100, capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["--scan"])

    assert exc_info.value.code == 0
    data = json.loads(capsys.readouterr().out)
    assert data["gpu_count"] == 2
    assert data["physical_cores"] == 32


def test_cli_scan_recommends_from_detected_gpus(two_a100, tmp_path, capsys):
    models_file = tmp_path / "models.json"
    models_file.write_text(json.dumps([MODEL_7B]))

    main(["--model", str(models_file), "--scan", "--max-devices", "8"])
    data = json.loads(capsys.readouterr().out)

    assert data["parameters"]["hardware"] == ["A100-80GB"]
    assert data["parameters"]["workload"]["max_device_count"] == 2
    assert data["parameters"]["system"]["gpu_count"] == 2
    assert data["recommendations"][0]["recommended"]["hardware_id"] == "A100-80GB"


def test_cli_scan_without_known_gpus(monkeypatch, tmp_path, capsys):
    monkeypatch.setattr(scan, "pynvml", fake_nvml([], init_error=True))
    monkeypatch.setattr(scan.platform, "system", lambda: "Linux")
    models_file = tmp_path / "models.json"
    models_file.write_text(json.dumps([MODEL_7B]))

    with pytest.raises(SystemExit) as exc_info:
        main(["--model", str(models_file), "--scan"])

    assert exc_info.value.code == 1
    assert "no GPU with a library entry" in capsys.readouterr().err
