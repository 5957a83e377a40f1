"""Pytest configuration and fixtures."""

import os
import tempfile
from pathlib import Path
from unittest.mock import patch

# must happen before anything imports modtune.core.config
os.environ.setdefault("MODTUNE_HOME", tempfile.mkdtemp(prefix="modtune-home-"))

import pytest

from modtune.core import config, hardware
from modtune.core.models import GpuProbe, GpuType, HardwareInfo, ScreenResolution


@pytest.fixture(autouse=True)
def isolated_home(tmp_path):
    """Fresh settings folder per test and a CPU no rule matches on."""
    config._reset_for_tests(tmp_path / "home")
    with patch("modtune.core.hardware._cpu_model", return_value="Generic Test CPU"):
        yield tmp_path / "home"


@pytest.fixture
def game_dir(tmp_path) -> Path:
    path = tmp_path / "game"
    (path / "config").mkdir(parents=True)
    return path


@pytest.fixture
def config_dir(game_dir) -> Path:
    return game_dir / "config"


def make_hardware(
    ram_gb: int = 16,
    cores: int = 8,
    gpu_type: GpuType = GpuType.dedicated,
    gpu_name: str = "NVIDIA GeForce RTX 3060",
    width: int = 1920,
    height: int = 1080,
) -> HardwareInfo:
    return hardware.profile(
        ram_gb,
        cores,
        GpuProbe(type=gpu_type, name=gpu_name),
        ScreenResolution(width=width, height=height),
    )


def probe_returning(info: HardwareInfo):
    async def _probe() -> HardwareInfo:
        return info

    return _probe


@pytest.fixture
def high_end_probe():
    return probe_returning(make_hardware())


@pytest.fixture
def balanced_probe():
    # 8GB / 4 cores / unknown GPU → 20 + 12 + 15 = 47
    return probe_returning(
        make_hardware(ram_gb=8, cores=4, gpu_type=GpuType.unknown, gpu_name="Unknown GPU")
    )


@pytest.fixture
def no_mods():
    return lambda _game: []


@pytest.fixture
def make_probe():
    """make_probe(ram_gb=…, cores=…, gpu_type=…, gpu_name=…) → async probe."""
    return lambda **kwargs: probe_returning(make_hardware(**kwargs))
