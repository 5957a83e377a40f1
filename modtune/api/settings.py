# modtune/api/settings.py
"""
Modtune – engine settings API
=============================

Persists the engine defaults (game directory, default tier, apply
options, backup retention) in `~/.modtune/settings/settings.json` using
the helpers defined in *modtune/core/config.py*.

Routes
------
GET  /api/settings
    -> returns current settings (merged with defaults).

POST /api/settings
    -> body: SettingsUpdate
    -> merges with existing data, saves to disk, returns updated object.

Retention changes only affect manifests created afterwards; an existing
manifest keeps the limits it was written with.
"""

from __future__ import annotations

from typing import Dict, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from modtune.core import config
from modtune.core.models import TierChoice

router = APIRouter(tags=["settings"])


# ──────────────────────────────────────────────
# Data models
# ──────────────────────────────────────────────
class ApplyDefaults(BaseModel):
    preserveUserModifications: bool = True
    checkIncompatibilities: bool = True
    createBackup: bool = True


class Retention(BaseModel):
    maxBackups: int = Field(config.DEFAULT_MAX_BACKUPS, ge=1, le=100)
    maxAgeDays: int = Field(config.DEFAULT_MAX_AGE_DAYS, ge=0, le=365)


class Settings(BaseModel):
    gameDir: Optional[str] = None
    defaultTier: TierChoice = "auto"
    apply: ApplyDefaults = ApplyDefaults()
    retention: Retention = Retention()


class ApplyDefaultsUpdate(BaseModel):
    preserveUserModifications: Optional[bool] = None
    checkIncompatibilities: Optional[bool] = None
    createBackup: Optional[bool] = None


class RetentionUpdate(BaseModel):
    maxBackups: Optional[int] = Field(None, ge=1, le=100)
    maxAgeDays: Optional[int] = Field(None, ge=0, le=365)


class SettingsUpdate(BaseModel):
    gameDir: Optional[str] = None
    defaultTier: Optional[TierChoice] = None
    apply: Optional[ApplyDefaultsUpdate] = None
    retention: Optional[RetentionUpdate] = None


# ──────────────────────────────────────────────
# Helper
# ──────────────────────────────────────────────
def _merge(existing: Dict, update: SettingsUpdate) -> Dict:
    data = existing.copy()
    up = update.model_dump(exclude_unset=True, exclude_none=True)

    for key, val in up.items():
        if isinstance(val, dict) and isinstance(data.get(key), dict):
            data[key] = {**data[key], **val}
        else:
            data[key] = val
    return data


# ──────────────────────────────────────────────
# Routes
# ──────────────────────────────────────────────
@router.get("/settings", response_model=Settings)
async def get_settings():
    """
    Return the currently effective settings (defaults overwritten by user file).
    """
    return Settings(**config.read_config())


@router.post("/settings", response_model=Settings)
async def save_settings(body: SettingsUpdate):
    """
    Validate & persist changes.  Returns the merged settings object.
    """
    merged = _merge(config.read_config(), body)
    try:
        config.save_config(merged)
    except OSError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to save settings: {exc}",
        ) from exc
    return Settings(**merged)
