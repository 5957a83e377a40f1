"""Tests for the incompatibility catalog."""

from modtune.core import hardware, incompat, presets
from modtune.core.models import GpuProbe, GpuType, ScreenResolution, SystemFacts, Tier


def _facts(**overrides) -> SystemFacts:
    base = dict(
        cpuModel="Generic Test CPU",
        cpuArch="x86_64",
        cpuCores=8,
        totalRamGB=16,
        gpuName="NVIDIA GeForce RTX 3060",
        gpuVendor="NVIDIA",
        gpuType=GpuType.dedicated,
        os="linux",
    )
    base.update(overrides)
    return SystemFacts(**base)


def _sodium_balanced():
    return {"sodium-options.json": presets.preset_for("sodium-options.json", Tier.balanced)}


def test_clean_machine_matches_nothing():
    report = incompat.evaluate(_facts(), [], _sodium_balanced())
    assert report.detected == []
    assert report.warnings == []
    assert report.patchedConfigs == _sodium_balanced()


def test_intel_raptor_lake_is_critical_and_patched():
    current = _sodium_balanced()
    report = incompat.evaluate(_facts(cpuModel="13th Gen Intel(R) Core(TM) i9-13900K"), [], current)

    assert report.detected == ["intel-13th-14th-gen-instability"]
    assert report.appliedWorkarounds == ["intel-13th-14th-gen-instability"]
    assert len(report.warnings) == 1
    sodium = report.patchedConfigs["sodium-options.json"]
    assert sodium["advanced"]["cpu_render_ahead_limit"] == 2
    assert sodium["advanced"]["allow_direct_memory_access"] is False
    assert sodium["rendering"]["fps_limit"] == 120
    # untouched siblings survive the patch
    assert sodium["rendering"]["render_distance"] == 8
    # input is not mutated
    assert current == _sodium_balanced()


def test_low_severity_matches_are_recorded_but_silent():
    report = incompat.evaluate(
        _facts(gpuName="AMD Radeon RX 6800", gpuVendor="AMD"), [], _sodium_balanced()
    )
    assert report.detected == ["amd-particle-culling"]
    assert report.warnings == []
    assert report.patchedConfigs["sodium-options.json"]["performance"]["use_particle_culling"] is False


def test_os_and_arch_must_both_match():
    mac_arm = incompat.evaluate(_facts(cpuArch="arm64", os="darwin"), [], {})
    linux_arm = incompat.evaluate(_facts(cpuArch="arm64", os="linux"), [], {})
    assert "apple-silicon-opengl-compat" in mac_arm.detected
    assert "apple-silicon-opengl-compat" not in linux_arm.detected


def test_every_required_mod_must_be_present():
    only_sodium = incompat.evaluate(_facts(), ["sodium-fabric-0.5.8"], {})
    both = incompat.evaluate(_facts(), ["Sodium-Fabric-0.5.8", "ImmediatelyFast-1.2"], {})
    assert "immediatelyfast-sodium-compat" not in only_sodium.detected
    assert "immediatelyfast-sodium-compat" in both.detected
    assert both.patchedConfigs["immediatelyfast.json"] == {"experimental_screen_batching": False}


def test_later_rules_win_on_shared_keys():
    # low RAM (render_distance 6) is evaluated before integrated graphics (8)
    facts = _facts(
        totalRamGB=4,
        gpuName="Intel(R) UHD Graphics 620",
        gpuVendor="Intel(R)",
        gpuType=GpuType.integrated,
    )
    report = incompat.evaluate(facts, [], _sodium_balanced())
    assert report.detected == ["low-vram-render-distance", "integrated-graphics-safety"]
    sodium = report.patchedConfigs["sodium-options.json"]
    assert sodium["rendering"]["render_distance"] == 8
    assert sodium["rendering"]["simulation_distance"] == 6
    assert sodium["rendering"]["v_sync"] is True
    # only the high-severity one is user-visible
    assert len(report.warnings) == 1


def test_catalog_lookup_helpers():
    ids = incompat.all_ids()
    assert len(ids) == len(set(ids)) == 6
    assert incompat.by_id("amd-particle-culling").severity.value == "low"
    assert incompat.by_id("does-not-exist") is None


def test_every_hardware_predicate_has_a_populated_fact():
    gpu = GpuProbe(type=GpuType.dedicated, name="NVIDIA GeForce RTX 3060")
    info = hardware.profile(16, 8, gpu, ScreenResolution())
    facts = hardware.system_facts(info).model_dump()
    for field in incompat.HardwarePattern.model_fields:
        if field in ("minRam", "maxRam"):
            continue
        assert facts.get(field), field
