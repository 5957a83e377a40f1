# modtune/core/hardware.py
"""
Modtune – hardware profiler
===========================

Turns raw machine facts into a 0–100 suitability score and a tier.

Public helpers
--------------
• score(ram_gb, cpu_cores, gpu_type, width, height) -> int
• recommend_tier(score)                              -> Tier
• detect_hardware()                                  -> HardwareInfo   (async)
• system_facts(hardware)                             -> SystemFacts

The raw probes (`raw_*`) are platform specific and never raise: a failed
probe yields "unknown" / 1920×1080 so a broken `lspci` cannot block a
preset apply.
"""

from __future__ import annotations

import asyncio
import os
import platform
import re
import subprocess
import sys
from pathlib import Path
from typing import Optional

import psutil

from modtune.core.models import (
    GpuProbe,
    GpuType,
    HardwareInfo,
    ScreenResolution,
    SystemFacts,
    Tier,
)

PROBE_TIMEOUT_S = 5.0
DEFAULT_RESOLUTION = ScreenResolution(width=1920, height=1080)

_PIXELS_4K = 3840 * 2160
_PIXELS_1440P = 2560 * 1440


# ──────────────────────────────────────────────
# 1. Scoring (pure)
# ──────────────────────────────────────────────
def _ram_points(ram_gb: float) -> int:
    if ram_gb >= 16:
        return 35
    if ram_gb >= 12:
        return 28
    if ram_gb >= 8:
        return 20
    if ram_gb >= 6:
        return 12
    return 5


def _cpu_points(cores: int) -> int:
    if cores >= 8:
        return 25
    if cores >= 6:
        return 20
    if cores >= 4:
        return 12
    return 5


def _gpu_points(gpu_type: GpuType | str) -> int:
    gpu_type = GpuType(gpu_type)
    if gpu_type is GpuType.dedicated:
        return 30
    if gpu_type is GpuType.integrated:
        return 10
    return 15  # unknown: assume mid-range


def _resolution_penalty(width: int, height: int) -> int:
    pixels = width * height
    if pixels >= _PIXELS_4K:
        return 10
    if pixels >= _PIXELS_1440P:
        return 5
    return 0


def score(
    ram_gb: float,
    cpu_cores: int,
    gpu_type: GpuType | str,
    width: int,
    height: int,
) -> int:
    """Deterministic suitability score, clamped to [0, 100]."""
    base = _ram_points(ram_gb) + _cpu_points(cpu_cores) + _gpu_points(gpu_type)
    penalty = _resolution_penalty(width, height)
    total = max(0, min(100, base - penalty))
    sys.stdout.write(
        f"[hardware] score: RAM={ram_gb}GB cores={cpu_cores} GPU={GpuType(gpu_type).value} "
        f"res={width}x{height} base={base} penalty=-{penalty} total={total}\n"
    )
    return total


def recommend_tier(value: int) -> Tier:
    """<40 low-end, 40–69 balanced, ≥70 high-end."""
    if value >= 70:
        return Tier.high_end
    if value >= 40:
        return Tier.balanced
    return Tier.low_end


# ──────────────────────────────────────────────
# 2. Raw probes
# ──────────────────────────────────────────────
def _run(cmd: list[str]) -> Optional[str]:
    try:
        res = subprocess.run(cmd, capture_output=True, text=True, timeout=PROBE_TIMEOUT_S)
    except (OSError, subprocess.SubprocessError) as exc:
        sys.stderr.write(f"[hardware] probe {cmd[0]} failed: {exc}\n")
        return None
    if res.returncode != 0:
        return None
    return res.stdout


def raw_ram() -> int:
    """Total physical memory in bytes (0 if unknown)."""
    try:
        return int(psutil.virtual_memory().total)
    except Exception as exc:  # psutil raises platform-specific errors
        sys.stderr.write(f"[hardware] RAM probe failed: {exc}\n")
        return 0


def raw_cpu_core_count() -> int:
    """Logical core count, like the OS reports it."""
    try:
        count = psutil.cpu_count(logical=True)
    except Exception:
        count = None
    return count or os.cpu_count() or 1


_MAC_INTEGRATED = re.compile(r"Intel (HD|UHD|Iris)|Apple (M\d)", re.I)
_WIN_INTEGRATED = re.compile(r"Intel (HD|UHD)|AMD Radeon.*Vega|Intel Iris", re.I)
_LINUX_INTEGRATED = re.compile(r"Intel.*Integrated|Intel.*HD|Intel.*UHD", re.I)


def raw_gpu_classify() -> GpuProbe:
    """Classify the primary GPU as integrated / dedicated."""
    system = platform.system()

    if system == "Darwin":
        out = _run(["system_profiler", "SPDisplaysDataType"])
        if out is None:
            return GpuProbe()
        match = re.search(r"Chipset Model:\s*(.+)", out)
        name = match.group(1).strip() if match else "Unknown GPU"
        integrated = bool(_MAC_INTEGRATED.search(out))

    elif system == "Windows":
        out = _run(["wmic", "path", "win32_VideoController", "get", "name"])
        if out is None:
            return GpuProbe()
        lines = [ln.strip() for ln in out.splitlines() if ln.strip() and ln.strip() != "Name"]
        name = lines[0] if lines else "Unknown GPU"
        integrated = bool(_WIN_INTEGRATED.search(name))

    else:
        out = _run(["lspci"])
        if out is None:
            return GpuProbe()
        vga = [ln.strip() for ln in out.splitlines() if re.search(r"vga|3d controller", ln, re.I)]
        if not vga:
            return GpuProbe()
        # "00:02.0 VGA compatible controller: Intel Corporation UHD Graphics 620"
        name = vga[0].split(": ", 1)[-1]
        integrated = bool(_LINUX_INTEGRATED.search("\n".join(vga)))

    return GpuProbe(
        type=GpuType.integrated if integrated else GpuType.dedicated,
        name=name,
    )


def raw_screen_resolution() -> ScreenResolution:
    """Primary display size; 1920×1080 when nothing answers."""
    system = platform.system()
    if system == "Darwin":
        out = _run(["system_profiler", "SPDisplaysDataType"]) or ""
        match = re.search(r"Resolution:\s*(\d+)\s*x\s*(\d+)", out)
    elif system == "Windows":
        out = _run([
            "wmic", "path", "Win32_VideoController", "get",
            "CurrentHorizontalResolution,CurrentVerticalResolution",
        ]) or ""
        match = re.search(r"(\d{3,5})\s+(\d{3,5})", out)
    else:
        out = _run(["xrandr", "--current"]) or ""
        match = re.search(r"current\s+(\d+)\s*x\s*(\d+)", out)

    if not match:
        return DEFAULT_RESOLUTION.model_copy()
    return ScreenResolution(width=int(match.group(1)), height=int(match.group(2)))


# ──────────────────────────────────────────────
# 3. Public entry
# ──────────────────────────────────────────────
def profile(
    total_ram_gb: int,
    cpu_cores: int,
    gpu: GpuProbe,
    resolution: ScreenResolution,
) -> HardwareInfo:
    """Build HardwareInfo from already-collected raw values."""
    value = score(total_ram_gb, cpu_cores, gpu.type, resolution.width, resolution.height)
    return HardwareInfo(
        totalRamGB=total_ram_gb,
        cpuCores=cpu_cores,
        gpuType=gpu.type,
        gpuName=gpu.name,
        screenResolution=resolution,
        score=value,
        recommendedPreset=recommend_tier(value),
    )


async def detect_hardware() -> HardwareInfo:
    """
    Run every probe and score the machine.  Subprocess probes run in
    worker threads so the event loop stays responsive.
    """
    sys.stdout.write("[hardware] starting hardware detection\n")
    total_ram_gb = round(raw_ram() / (1024 ** 3))
    cpu_cores = raw_cpu_core_count()
    gpu, resolution = await asyncio.gather(
        asyncio.to_thread(raw_gpu_classify),
        asyncio.to_thread(raw_screen_resolution),
    )

    info = profile(total_ram_gb, cpu_cores, gpu, resolution)
    sys.stdout.write(
        f"[hardware] {info.totalRamGB}GB RAM, {info.cpuCores} cores, "
        f"{info.gpuName} ({info.gpuType.value}), "
        f"{resolution.width}x{resolution.height} → score {info.score}, "
        f"recommended {info.recommendedPreset.value}\n"
    )
    return info


def _cpu_model() -> str:
    cpuinfo = Path("/proc/cpuinfo")
    if cpuinfo.exists():
        try:
            for line in cpuinfo.read_text(encoding="utf-8", errors="ignore").splitlines():
                if line.lower().startswith("model name"):
                    return line.split(":", 1)[1].strip()
        except OSError:
            pass
    return platform.processor() or "Unknown"


def system_facts(hardware: Optional[HardwareInfo] = None) -> SystemFacts:
    """
    Facts the incompatibility rules match on.  Without a HardwareInfo
    only the cheap, synchronous values are filled in (GPU stays unknown).
    """
    if hardware is None:
        return SystemFacts(
            cpuModel=_cpu_model(),
            cpuArch=platform.machine().lower(),
            cpuCores=raw_cpu_core_count(),
            totalRamGB=round(raw_ram() / (1024 ** 3)),
            os=sys.platform,
        )

    vendor = hardware.gpuName.split(" ")[0] if hardware.gpuName else ""
    return SystemFacts(
        cpuModel=_cpu_model(),
        cpuArch=platform.machine().lower(),
        cpuCores=hardware.cpuCores,
        totalRamGB=hardware.totalRamGB,
        gpuName=hardware.gpuName,
        gpuVendor=vendor or "Unknown",
        gpuType=hardware.gpuType,
        os=sys.platform,
    )
