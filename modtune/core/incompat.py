# modtune/core/incompat.py
"""
Modtune – known incompatibilities
=================================

A static, ordered rule table.  Each rule carries optional predicates:

• hardware pattern  (CPU model regex, CPU arch, GPU vendor/name, RAM bounds…)
• OS list           (`sys.platform` values)
• required mods     (case-insensitive substrings of installed jar names)

A rule matches when *every predicate it declares* holds; a predicate the
rule leaves out is "don't care", never "must be absent".

`evaluate()` walks the table in order and deep-merges each matching
rule's workaround patch into the running config of its target file
(workaround always wins; later rules overwrite earlier ones on the same
keys).  Only critical/high matches surface as user-visible warnings.
"""

from __future__ import annotations

import re
import sys
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from modtune.core.codec import deep_merge
from modtune.core.models import ConfigTree, Impact, Severity, SystemFacts

FROZEN = {"frozen": True}


# ──────────────────────────────────────────────
# 1. Rule structure
# ──────────────────────────────────────────────
class HardwarePattern(BaseModel):
    cpuModel: Optional[str] = None        # regex, case-insensitive
    cpuArch: Optional[str] = None         # exact
    gpuVendor: Optional[str] = None       # substring of vendor or GPU name
    gpuName: Optional[str] = None         # regex, case-insensitive
    minRam: Optional[int] = None
    maxRam: Optional[int] = None

    model_config = FROZEN

    def matches(self, facts: SystemFacts) -> bool:
        if self.cpuModel and not re.search(self.cpuModel, facts.cpuModel, re.I):
            return False
        if self.cpuArch and facts.cpuArch != self.cpuArch:
            return False
        if self.gpuVendor:
            vendor = self.gpuVendor.lower()
            if vendor not in facts.gpuVendor.lower() and vendor not in facts.gpuName.lower():
                return False
        if self.gpuName and not re.search(self.gpuName, facts.gpuName, re.I):
            return False
            return False
        if self.minRam is not None and facts.totalRamGB < self.minRam:
            return False
        if self.maxRam is not None and facts.totalRamGB > self.maxRam:
            return False
        return True


class Conditions(BaseModel):
    mods: Optional[Tuple[str, ...]] = None
    hardware: Optional[HardwarePattern] = None
    os: Optional[Tuple[str, ...]] = None

    model_config = FROZEN

    def matches(self, facts: SystemFacts, installed_mods: Sequence[str]) -> bool:
        if self.os is not None and facts.os not in self.os:
            return False
        if self.mods is not None:
            lowered = [m.lower() for m in installed_mods]
            for required in self.mods:
                needle = required.lower()
                if not any(needle in name for name in lowered):
                    return False
        if self.hardware is not None and not self.hardware.matches(facts):
            return False
        return True


class ConfigPatch(BaseModel):
    file: str
    patch: Dict[str, object]

    model_config = FROZEN


class Incompatibility(BaseModel):
    id: str
    description: str
    conditions: Conditions
    impact: Impact
    severity: Severity
    workaround: Optional[ConfigPatch] = None

    model_config = FROZEN

    @property
    def user_visible(self) -> bool:
        return self.severity in (Severity.critical, Severity.high)


class IncompatibilityReport(BaseModel):
    detected: List[str] = Field(default_factory=list)
    appliedWorkarounds: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    patchedConfigs: Dict[str, ConfigTree] = Field(default_factory=dict)


# ──────────────────────────────────────────────
# 2. The catalog
# ──────────────────────────────────────────────
KNOWN_INCOMPATIBILITIES: Tuple[Incompatibility, ...] = (
    Incompatibility(
        id="intel-13th-14th-gen-instability",
        description=(
            "Intel 13th/14th gen CPUs may crash with aggressive rendering "
            "settings due to known microcode issues"
        ),
        conditions=Conditions(
            hardware=HardwarePattern(cpuModel=r"i[579]-(1[34][0-9]{3}|1[34][0-9]{2}[A-Z]?)"),
        ),
        impact=Impact.crash,
        severity=Severity.critical,
        workaround=ConfigPatch(
            file="sodium-options.json",
            patch={
                "advanced": {
                    "cpu_render_ahead_limit": 2,
                    "allow_direct_memory_access": False,
                },
                "rendering": {
                    "fps_limit": 120,   # cap FPS to reduce CPU stress
                },
            },
        ),
    ),
    Incompatibility(
        id="apple-silicon-opengl-compat",
        description=(
            "Apple Silicon requires specific OpenGL settings due to the "
            "Metal translation layer"
        ),
        conditions=Conditions(
            hardware=HardwarePattern(cpuArch="arm64"),
            os=("darwin",),
        ),
        impact=Impact.visual_glitch,
        severity=Severity.medium,
        workaround=ConfigPatch(
            file="sodium-options.json",
            patch={"advanced": {"use_advanced_staging_buffers": False}},
        ),
    ),
    Incompatibility(
        id="low-vram-render-distance",
        description="Low memory systems may crash with high render distances",
        conditions=Conditions(
            # ≤4GB RAM usually means a shared-memory integrated GPU
            hardware=HardwarePattern(maxRam=4),
        ),
        impact=Impact.crash,
        severity=Severity.high,
        workaround=ConfigPatch(
            file="sodium-options.json",
            patch={
                "rendering": {
                    "render_distance": 6,
                    "simulation_distance": 6,
                },
                "quality": {
                    "clouds_quality": "off",
                    "weather_quality": "fast",
                },
            },
        ),
    ),
    Incompatibility(
        id="amd-particle-culling",
        description="Some AMD drivers have issues with particle culling optimization",
        conditions=Conditions(hardware=HardwarePattern(gpuVendor="AMD")),
        impact=Impact.visual_glitch,
        severity=Severity.low,
        workaround=ConfigPatch(
            file="sodium-options.json",
            patch={"performance": {"use_particle_culling": False}},
        ),
    ),
    Incompatibility(
        id="integrated-graphics-safety",
        description="Integrated graphics should use conservative settings",
        conditions=Conditions(
            hardware=HardwarePattern(
                gpuName=r"(Intel.*HD|Intel.*UHD|Intel.*Iris|AMD.*Vega|AMD.*Radeon.*Graphics)",
            ),
        ),
        impact=Impact.performance_degradation,
        severity=Severity.medium,
        workaround=ConfigPatch(
            file="sodium-options.json",
            patch={
                "rendering": {
                    "render_distance": 8,
                    "v_sync": True,
                },
                "quality": {
                    "graphics_quality": "fast",
                    "leaves_quality": "fast",
                },
            },
        ),
    ),
    Incompatibility(
        id="immediatelyfast-sodium-compat",
        description="ImmediatelyFast may conflict with some Sodium settings",
        conditions=Conditions(mods=("sodium", "immediatelyfast")),
        impact=Impact.visual_glitch,
        severity=Severity.low,
        workaround=ConfigPatch(
            file="immediatelyfast.json",
            patch={"experimental_screen_batching": False},
        ),
    ),
)


# ──────────────────────────────────────────────
# 3. Public API
# ──────────────────────────────────────────────
def evaluate(
    facts: SystemFacts,
    installed_mods: Sequence[str],
    current_configs: Mapping[str, ConfigTree],
    rules: Sequence[Incompatibility] = KNOWN_INCOMPATIBILITIES,
) -> IncompatibilityReport:
    """
    Match every rule against the machine and fold workarounds into a
    copy of *current_configs*.  The input mapping is not mutated.
    """
    report = IncompatibilityReport(patchedConfigs=dict(current_configs))

    sys.stdout.write(
        f"[incompat] checking {len(rules)} rules – CPU {facts.cpuModel}, "
        f"GPU {facts.gpuName}, mods: {', '.join(installed_mods) or '-'}\n"
    )

    for rule in rules:
        if not rule.conditions.matches(facts, installed_mods):
            continue

        sys.stdout.write(f"[incompat] detected: {rule.id}\n")
        report.detected.append(rule.id)

        if rule.workaround is not None:
            target = rule.workaround.file
            current = report.patchedConfigs.get(target, {})
            report.patchedConfigs[target] = deep_merge(current, dict(rule.workaround.patch))
            report.appliedWorkarounds.append(rule.id)

        if rule.user_visible:
            report.warnings.append(f"{rule.description} ({rule.impact.value})")

    sys.stdout.write(
        f"[incompat] {len(report.detected)} issues, "
        f"{len(report.appliedWorkarounds)} workarounds\n"
    )
    return report


def all_ids() -> List[str]:
    return [rule.id for rule in KNOWN_INCOMPATIBILITIES]


def by_id(rule_id: str) -> Optional[Incompatibility]:
    return next((r for r in KNOWN_INCOMPATIBILITIES if r.id == rule_id), None)
