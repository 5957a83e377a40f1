# modtune/core/config.py
"""
Modtune – central configuration helper
======================================

All modules import *only* from this file when they need:
• application constants (name, version, on-disk file names)
• resolved user-specific paths (settings/, default game dir)
• persisted engine settings (default tier, apply options, backup retention)

Keeping everything here means we can later change directory layout,
add portable-mode switches, or expose new settings without touching
dozens of call-sites.

This file does *not* perform any network or heavy I/O.  Directory
creation happens lazily (at import time) and should complete in
milliseconds.
"""

from __future__ import annotations

import json
import os
import platform
import shutil
from pathlib import Path
from typing import Any, Dict

from modtune.core.models import ApplyOptions

# ──────────────────────────────────────────────
# 1. Application constants
# ──────────────────────────────────────────────
APP_NAME: str = "Modtune"
APP_ID: str = "modtune"
APP_VERSION: str = "0.2.0"

# file & directory names
CONFIG_FILE_NAME = "settings.json"
METADATA_FILE_NAME = "launcher_config_metadata.json"   # lives in <game>/config/
BACKUP_DIR_NAME = ".launcher-backups"
MANIFEST_FILE_NAME = "backup-manifest.json"
AUDIT_LOG_FILE_NAME = "audit-log.json"
GAME_CONFIG_SUBDIR = "config"
GAME_MODS_SUBDIR = "mods"

# extensions a snapshot picks up
CONFIG_EXTENSIONS = ("json", "properties", "toml")
MOD_ARCHIVE_EXTENSION = ".jar"

AUDIT_LOG_CAP = 100
METADATA_VERSION = "2.0.0"                  # stamped after every apply


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


DEFAULT_MAX_BACKUPS: int = _env_int("MODTUNE_MAX_BACKUPS", 10)
DEFAULT_MAX_AGE_DAYS: int = _env_int("MODTUNE_MAX_AGE_DAYS", 7)


# ──────────────────────────────────────────────
# 2. Directory resolution helpers
# ──────────────────────────────────────────────
def _home_base() -> Path:
    """Return the root folder for all user data (`~/.modtune/` on Unix,
    `%LOCALAPPDATA%\\Modtune\\` on Windows). Can be overridden with
    the env variable `MODTUNE_HOME`."""
    if env := os.getenv("MODTUNE_HOME"):
        return Path(env).expanduser().resolve()

    if platform.system() == "Windows":
        root = Path(os.getenv("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return (root / "Modtune").resolve()

    # Linux, macOS, everything else
    return (Path.home() / ".modtune").resolve()


def _default_game_dir() -> Path:
    """Game directory whose `config/` folder the engine manages.
    `MODTUNE_GAME_DIR` wins; otherwise `<home>/game`."""
    if env := os.getenv("MODTUNE_GAME_DIR"):
        return Path(env).expanduser().resolve()
    return BASE_DIR / "game"


BASE_DIR: Path = _home_base()
SETTINGS_DIR: Path = BASE_DIR / "settings"
GAME_DIR: Path = _default_game_dir()

# Map for easy iteration / testing
_ALL_DIRS = (SETTINGS_DIR,)


# ──────────────────────────────────────────────
# 3. Bootstrap – ensure folders exist
# ──────────────────────────────────────────────
def ensure_dirs() -> None:
    """Create any missing directories (no error if they exist)."""
    for d in _ALL_DIRS:
        d.mkdir(parents=True, exist_ok=True)


ensure_dirs()  # create on first import


# ──────────────────────────────────────────────
# 4. Engine settings (read / write)
# ──────────────────────────────────────────────
_CONFIG_PATH: Path = SETTINGS_DIR / CONFIG_FILE_NAME
_DEFAULT_SETTINGS: Dict[str, Any] = {
    "gameDir": None,                 # None → GAME_DIR
    "defaultTier": "auto",
    "apply": {
        "preserveUserModifications": True,
        "checkIncompatibilities": True,
        "createBackup": True,
    },
    "retention": {
        "maxBackups": DEFAULT_MAX_BACKUPS,
        "maxAgeDays": DEFAULT_MAX_AGE_DAYS,
    },
}


def _load_raw() -> Dict[str, Any]:
    if _CONFIG_PATH.exists():
        try:
            with _CONFIG_PATH.open(encoding="utf-8") as fh:
                return json.load(fh)
        except (json.JSONDecodeError, OSError):
            # Backup the corrupted file before resetting
            backup = _CONFIG_PATH.with_suffix(".bak")
            shutil.copy2(_CONFIG_PATH, backup)
    return {}


def read_config() -> Dict[str, Any]:
    """Return merged settings (defaults overridden by user values).
    Nested sections are merged one level deep."""
    cfg: Dict[str, Any] = {
        k: (dict(v) if isinstance(v, dict) else v) for k, v in _DEFAULT_SETTINGS.items()
    }
    for key, val in _load_raw().items():
        if isinstance(val, dict) and isinstance(cfg.get(key), dict):
            cfg[key].update(val)
        else:
            cfg[key] = val
    return cfg


def save_config(new_cfg: Dict[str, Any]) -> None:
    """Persist updated settings atomically."""
    tmp = _CONFIG_PATH.with_suffix(".tmp")
    with tmp.open("w", encoding="utf-8") as fh:
        json.dump(new_cfg, fh, indent=2)
    tmp.replace(_CONFIG_PATH)


# ──────────────────────────────────────────────
# 5. Helper utilities (public API)
# ──────────────────────────────────────────────
def game_dir() -> Path:
    """Game directory from settings, falling back to GAME_DIR."""
    configured = read_config().get("gameDir")
    return Path(configured).expanduser() if configured else GAME_DIR


def config_dir_for(game: Path) -> Path:
    """Return the managed config folder of a game directory."""
    return Path(game) / GAME_CONFIG_SUBDIR


def backup_dir_for(config_dir: Path) -> Path:
    """Return the snapshot / manifest folder of a config directory."""
    return Path(config_dir) / BACKUP_DIR_NAME


def retention_limits() -> tuple[int, int]:
    """(maxBackups, maxAgeDays) applied to the manifest on every backup."""
    retention = read_config().get("retention") or {}
    return (
        int(retention.get("maxBackups", DEFAULT_MAX_BACKUPS)),
        int(retention.get("maxAgeDays", DEFAULT_MAX_AGE_DAYS)),
    )


def default_apply_options() -> ApplyOptions:
    """ApplyOptions seeded from the persisted `apply` section."""
    section = read_config().get("apply") or {}
    return ApplyOptions(
        preserve_user_modifications=bool(section.get("preserveUserModifications", True)),
        check_incompatibilities=bool(section.get("checkIncompatibilities", True)),
        create_backup=bool(section.get("createBackup", True)),
    )


def is_portable_mode() -> bool:
    """Engine runs 'portable' if MODTUNE_HOME points inside the
    working directory."""
    return BASE_DIR.is_relative_to(Path.cwd())


# ──────────────────────────────────────────────
# Unit-test helpers
# ──────────────────────────────────────────────
def _reset_for_tests(tmp_path: Path) -> None:  # pragma: no cover
    """Internal helper: redirect BASE_DIR during pytest."""
    global BASE_DIR, SETTINGS_DIR, GAME_DIR, _CONFIG_PATH, _ALL_DIRS
    BASE_DIR = tmp_path
    SETTINGS_DIR = BASE_DIR / "settings"
    GAME_DIR = BASE_DIR / "game"
    _CONFIG_PATH = SETTINGS_DIR / CONFIG_FILE_NAME
    _ALL_DIRS = (SETTINGS_DIR,)
    ensure_dirs()
