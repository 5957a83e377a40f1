# modtune/core/presets.py
"""
Modtune – preset catalog
========================

Static tier → file → settings tables for the seven managed mod configs.
Nothing here does I/O; lookups return *copies* so callers can merge and
mutate freely without touching the shipped tables.

Key shape is identical across the three tiers of a file; only values
differ.  `.properties` and `.toml` presets must stay flat (the codec
cannot round-trip nested objects in those dialects).
"""

from __future__ import annotations

import copy
from typing import Dict, Tuple

from modtune.core.models import ConfigTree, FileFormat, ManagedFile, Tier

# ──────────────────────────────────────────────
# 1. Sodium (sodium-options.json)
# ──────────────────────────────────────────────
_SODIUM_PERFORMANCE_BASE: ConfigTree = {
    "chunk_builder_threads": 0,            # 0 = auto
    "always_defer_chunk_updates": False,
    "use_block_face_culling": True,
    "use_compact_vertex_format": True,
    "use_fog_occlusion": True,
    "use_entity_culling": True,
    "animate_only_visible_textures": False,
}


def _sodium(quality: ConfigTree, performance: ConfigTree, rendering: ConfigTree,
            render_ahead: int) -> ConfigTree:
    return {
        "quality": quality,
        "performance": {**_SODIUM_PERFORMANCE_BASE, **performance},
        "rendering": {
            "brightness": 50,
            "gui_scale": 0,                # 0 = auto
            "fullscreen": False,
            "v_sync": False,
            **rendering,
        },
        "advanced": {
            "arena_memory_allocator": "async",
            "allow_direct_memory_access": True,
            "enable_memory_tracing": False,
            "use_advanced_staging_buffers": True,
            "cpu_render_ahead_limit": render_ahead,
        },
        "notifications": {
            "hide_donation_button": True,
        },
    }


SODIUM_PRESETS: Dict[Tier, ConfigTree] = {
    Tier.low_end: _sodium(
        quality={
            "graphics_quality": "fast",
            "clouds_quality": "off",
            "weather_quality": "fast",
            "leaves_quality": "fast",
            "enable_vignette": False,
            "enable_fog": False,
        },
        performance={
            "always_defer_chunk_updates": True,
            "animate_only_visible_textures": True,
        },
        rendering={
            "render_distance": 4,
            "simulation_distance": 5,
            "entity_distance": 50,
            "fps_limit": 60,
        },
        render_ahead=1,
    ),
    Tier.balanced: _sodium(
        quality={
            "graphics_quality": "default",
            "clouds_quality": "fast",
            "weather_quality": "fancy",
            "leaves_quality": "fancy",
            "enable_vignette": True,
            "enable_fog": True,
        },
        performance={},
        rendering={
            "render_distance": 8,
            "simulation_distance": 8,
            "entity_distance": 100,
            "fps_limit": 120,
        },
        render_ahead=2,
    ),
    Tier.high_end: _sodium(
        quality={
            "graphics_quality": "fancy",
            "clouds_quality": "fancy",
            "weather_quality": "fancy",
            "leaves_quality": "fancy",
            "enable_vignette": True,
            "enable_fog": True,
        },
        performance={},
        rendering={
            "render_distance": 12,
            "simulation_distance": 12,
            "entity_distance": 150,
            "fps_limit": 240,
        },
        render_ahead=3,
    ),
}

# ──────────────────────────────────────────────
# 2. Flat mixin toggles (same on every tier)
# ──────────────────────────────────────────────
_LITHIUM: ConfigTree = {
    "mixin.ai.pathing": True,
    "mixin.ai.poi": True,
    "mixin.ai.task": True,
    "mixin.block.hopper": True,
    "mixin.chunk.serialization": True,
    "mixin.entity.collisions": True,
    "mixin.gen.cached_generator_settings": True,
    "mixin.world.block_entity_ticking": True,
    "mixin.world.chunk_ticking": True,
    "mixin.world.tick_scheduler": True,
}

_FERRITECORE: ConfigTree = {
    "mixin.blockstatecache": True,
    "mixin.flatten_states": True,
    "mixin.thread_local_random": True,
    "mixin.cache_multipart_models": True,
    "mixin.reduce_blockstate_cache_rebuilds": True,
}

_IMMEDIATELYFAST: ConfigTree = {
    "experimental_screen_batching": True,
    "map_atlas_generation": True,
    "hud_batching": True,
    "fast_buffer_upload": True,
    "font_atlas_resizing": True,
}

LITHIUM_PRESETS: Dict[Tier, ConfigTree] = {t: dict(_LITHIUM) for t in Tier}
FERRITECORE_PRESETS: Dict[Tier, ConfigTree] = {t: dict(_FERRITECORE) for t in Tier}
IMMEDIATELYFAST_PRESETS: Dict[Tier, ConfigTree] = {t: dict(_IMMEDIATELYFAST) for t in Tier}

# ──────────────────────────────────────────────
# 3. EntityCulling (entityculling.json)
# ──────────────────────────────────────────────
ENTITYCULLING_PRESETS: Dict[Tier, ConfigTree] = {
    Tier.low_end: {
        "tracingDistance": 64,
        "debugMode": False,
        "skipMarkerArmorStands": True,
        "tickCulling": True,
        "sleepDelay": 10,
        "hitboxes": False,
        "tracePlayers": True,
    },
    Tier.balanced: {
        "tracingDistance": 96,
        "debugMode": False,
        "skipMarkerArmorStands": True,
        "tickCulling": True,
        "sleepDelay": 5,
        "hitboxes": False,
        "tracePlayers": True,
    },
    Tier.high_end: {
        "tracingDistance": 128,
        "debugMode": False,
        "skipMarkerArmorStands": True,
        "tickCulling": False,
        "sleepDelay": 3,
        "hitboxes": False,
        "tracePlayers": True,
    },
}

# ──────────────────────────────────────────────
# 4. ModernFix (modernfix-mixins.properties)
# ──────────────────────────────────────────────
def _modernfix(dynamic_resources: bool, dedup_models: bool) -> ConfigTree:
    return {
        "mixin.perf.dynamic_resources": dynamic_resources,
        "mixin.perf.deduplicate_baked_models": dedup_models,
        "mixin.perf.faster_texture_loading": True,
        "mixin.perf.cache_model_materials": True,
        "mixin.perf.compact_bit_storage": True,
        "mixin.perf.dynamic_entity_renderers": dynamic_resources,
        "mixin.bugfix.chunk_deadlock": True,
        "mixin.feature.spam_thread_dump": False,
    }


MODERNFIX_PRESETS: Dict[Tier, ConfigTree] = {
    Tier.low_end: _modernfix(dynamic_resources=True, dedup_models=True),
    Tier.balanced: _modernfix(dynamic_resources=True, dedup_models=True),
    Tier.high_end: _modernfix(dynamic_resources=False, dedup_models=False),
}

# ──────────────────────────────────────────────
# 5. Sodium Leaf Culling (sodiumleafculling.json)
# ──────────────────────────────────────────────
SODIUMLEAFCULLING_PRESETS: Dict[Tier, ConfigTree] = {
    Tier.low_end: {"leafCullingMode": "solid_aggressive", "cullDistance": 2},
    Tier.balanced: {"leafCullingMode": "hollow", "cullDistance": 4},
    Tier.high_end: {"leafCullingMode": "check", "cullDistance": 8},
}


# ──────────────────────────────────────────────
# 6. Managed-file table
# ──────────────────────────────────────────────
MANAGED_FILES: Tuple[ManagedFile, ...] = (
    ManagedFile(filename="sodium-options.json", format=FileFormat.json,
                presets=SODIUM_PRESETS),
    ManagedFile(filename="lithium.properties", format=FileFormat.properties,
                presets=LITHIUM_PRESETS),
    ManagedFile(filename="ferritecore-common.toml", format=FileFormat.toml,
                tomlSection="mixin", presets=FERRITECORE_PRESETS),
    ManagedFile(filename="entityculling.json", format=FileFormat.json,
                presets=ENTITYCULLING_PRESETS),
    ManagedFile(filename="immediatelyfast.json", format=FileFormat.json,
                presets=IMMEDIATELYFAST_PRESETS),
    ManagedFile(filename="modernfix-mixins.properties", format=FileFormat.properties,
                presets=MODERNFIX_PRESETS),
    ManagedFile(filename="sodiumleafculling.json", format=FileFormat.json,
                presets=SODIUMLEAFCULLING_PRESETS),
)

_BY_NAME: Dict[str, ManagedFile] = {mf.filename: mf for mf in MANAGED_FILES}


# ──────────────────────────────────────────────
# 7. Lookups
# ──────────────────────────────────────────────
def managed_filenames() -> list[str]:
    return [mf.filename for mf in MANAGED_FILES]


def managed_file(filename: str) -> ManagedFile:
    """Raises KeyError for names outside the catalog."""
    return _BY_NAME[filename]


def preset_for(filename: str, tier: Tier | str) -> ConfigTree:
    """Copy of the preset tree for one file and tier."""
    return copy.deepcopy(managed_file(filename).presets[Tier(tier)])


def presets_for_tier(tier: Tier | str) -> Dict[str, ConfigTree]:
    """filename → preset tree (copies) for every managed file."""
    return {mf.filename: preset_for(mf.filename, tier) for mf in MANAGED_FILES}
