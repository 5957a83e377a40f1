# modtune/core/mods/scanner.py
"""
Modtune – installed-mod scanner
===============================

The incompatibility rules match on *which* mods are present, not on
their versions, so a directory listing is all we need:

    <game>/mods/sodium-fabric-0.5.8.jar  →  "sodium-fabric-0.5.8"

Disabled archives (`*.jar.disabled`) and sub-folders are ignored.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import List

from modtune.core import config


def mods_dir_for(game: Path) -> Path:
    return Path(game) / config.GAME_MODS_SUBDIR


def list_installed_mods(game: Path) -> List[str]:
    """Sorted archive names without extension; [] if the folder is missing."""
    folder = mods_dir_for(game)
    if not folder.is_dir():
        return []
    try:
        names = [
            p.stem
            for p in folder.iterdir()
            if p.is_file() and p.suffix.lower() == config.MOD_ARCHIVE_EXTENSION
        ]
    except OSError as exc:
        sys.stderr.write(f"[mods] cannot list {folder}: {exc}\n")
        return []
    return sorted(names)
