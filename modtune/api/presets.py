# modtune/api/presets.py
"""
Modtune – preset engine API
===========================

Thin HTTP surface over *modtune/core/orchestrator.py* and
*modtune/core/backup.py*.  Every route accepts an optional `gameDir`;
without it the directory from the engine settings is used.

Routes
------
GET  /api/presets/hardware                    -> HardwareInfo
GET  /api/presets/catalog                     -> managed files, tiers, rule ids
GET  /api/presets/status                      -> metadata + user-modified files
POST /api/presets/apply                       -> PresetApplicationResult
POST /api/presets/dry-run                     -> PresetApplicationResult (dryRun set)
POST /api/presets/rollback                    -> RollbackResult
GET  /api/presets/backups                     -> [BackupEntry] newest first
POST /api/presets/backups                     -> {"backupId": …}
POST /api/presets/backups/{backup_id}/restore -> RollbackResult
GET  /api/presets/audit                       -> [AuditEntry] newest first
POST /api/presets/safe-boot                   -> {"written": […]}
POST /api/presets/user-managed                -> ConfigMetadata
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from modtune.core import backup, config, hardware, incompat, orchestrator, presets
from modtune.core.errors import (
    NoBackupError,
    NotFoundError,
    NotRestorableError,
    PresetApplicationError,
)
from modtune.core.models import (
    ApplyOptions,
    AuditEntry,
    BackupEntry,
    BackupReason,
    ConfigMetadata,
    FileFormat,
    HardwareInfo,
    PresetApplicationResult,
    RollbackResult,
    Tier,
    TierChoice,
)

router = APIRouter(prefix="/presets", tags=["presets"])


# ──────────────────────────────────────────────
# Request / response models
# ──────────────────────────────────────────────
class GameDirRequest(BaseModel):
    gameDir: Optional[str] = None


class ApplyRequest(GameDirRequest):
    tier: Optional[TierChoice] = None          # None → settings.defaultTier
    forceOverwrite: bool = False
    preserveUserModifications: Optional[bool] = None
    checkIncompatibilities: Optional[bool] = None
    createBackup: Optional[bool] = None


class UserManagedRequest(GameDirRequest):
    enabled: bool


class CatalogFile(BaseModel):
    filename: str
    format: FileFormat
    tiers: List[Tier]


class CatalogResponse(BaseModel):
    tiers: List[Tier] = Field(default_factory=lambda: list(Tier))
    files: List[CatalogFile]
    incompatibilities: List[str]


class StatusResponse(BaseModel):
    configDir: str
    metadata: ConfigMetadata
    userModifiedFiles: List[str]


class BackupCreated(BaseModel):
    backupId: str


class SafeBootResponse(BaseModel):
    written: List[str]


# ──────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────
def _game_dir(value: Optional[str]) -> Path:
    return Path(value).expanduser() if value else config.game_dir()


def _config_dir(value: Optional[str]) -> Path:
    return config.config_dir_for(_game_dir(value))


def _options(body: ApplyRequest, dry_run: bool) -> ApplyOptions:
    opts = config.default_apply_options()
    opts.dry_run = dry_run
    opts.force_overwrite = body.forceOverwrite
    if body.preserveUserModifications is not None:
        opts.preserve_user_modifications = body.preserveUserModifications
    if body.checkIncompatibilities is not None:
        opts.check_incompatibilities = body.checkIncompatibilities
    if body.createBackup is not None:
        opts.create_backup = body.createBackup
    return opts


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (NotFoundError, NoBackupError)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, NotRestorableError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(exc))


async def _run_apply(body: ApplyRequest, dry_run: bool) -> PresetApplicationResult:
    tier = body.tier or config.read_config().get("defaultTier") or "auto"
    try:
        return await orchestrator.apply_preset(
            _game_dir(body.gameDir), tier, _options(body, dry_run)
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown preset tier: {tier}",
        ) from exc
    except PresetApplicationError as exc:
        raise _http_error(exc) from exc


# ──────────────────────────────────────────────
# Routes – detection & catalog
# ──────────────────────────────────────────────
@router.get("/hardware", response_model=HardwareInfo)
async def get_hardware():
    return await hardware.detect_hardware()


@router.get("/catalog", response_model=CatalogResponse)
async def get_catalog():
    return CatalogResponse(
        files=[
            CatalogFile(filename=mf.filename, format=mf.format, tiers=list(mf.presets))
            for mf in presets.MANAGED_FILES
        ],
        incompatibilities=incompat.all_ids(),
    )


@router.get("/status", response_model=StatusResponse)
async def get_status(gameDir: Optional[str] = None):
    config_dir = _config_dir(gameDir)
    metadata = orchestrator.load_metadata(config_dir)
    modified = [
        name
        for name in presets.managed_filenames()
        if orchestrator.has_user_modifications(config_dir, name, metadata)
    ]
    return StatusResponse(configDir=str(config_dir), metadata=metadata, userModifiedFiles=modified)


# ──────────────────────────────────────────────
# Routes – apply / rollback
# ──────────────────────────────────────────────
@router.post("/apply", response_model=PresetApplicationResult)
async def apply(body: ApplyRequest):
    return await _run_apply(body, dry_run=False)


@router.post("/dry-run", response_model=PresetApplicationResult)
async def dry_run(body: ApplyRequest):
    """Preview only – nothing under the config directory changes."""
    return await _run_apply(body, dry_run=True)


@router.post("/rollback", response_model=RollbackResult)
async def rollback(body: GameDirRequest):
    try:
        return await orchestrator.rollback_preset(_game_dir(body.gameDir))
    except (NoBackupError, NotFoundError, NotRestorableError) as exc:
        raise _http_error(exc) from exc


@router.post("/user-managed", response_model=ConfigMetadata)
async def user_managed(body: UserManagedRequest):
    try:
        return await orchestrator.set_user_managed(_game_dir(body.gameDir), body.enabled)
    except OSError as exc:
        raise _http_error(exc) from exc


# ──────────────────────────────────────────────
# Routes – backups, audit & recovery
# ──────────────────────────────────────────────
@router.get("/backups", response_model=List[BackupEntry])
async def get_backups(gameDir: Optional[str] = None):
    return await backup.list_backups(_config_dir(gameDir))


@router.post("/backups", response_model=BackupCreated, status_code=status.HTTP_201_CREATED)
async def create_manual_backup(body: GameDirRequest):
    config_dir = _config_dir(body.gameDir)
    try:
        config_dir.mkdir(parents=True, exist_ok=True)
        backup_id = await backup.create_backup(config_dir, BackupReason.manual)
    except OSError as exc:
        raise _http_error(exc) from exc
    return BackupCreated(backupId=backup_id)


@router.post("/backups/{backup_id}/restore", response_model=RollbackResult)
async def restore(backup_id: str, body: Optional[GameDirRequest] = None):
    game = body.gameDir if body else None
    try:
        return await backup.restore_backup(_config_dir(game), backup_id)
    except (NotFoundError, NotRestorableError) as exc:
        raise _http_error(exc) from exc


@router.get("/audit", response_model=List[AuditEntry])
async def get_audit(gameDir: Optional[str] = None, limit: int = Query(20, ge=1, le=100)):
    return await backup.get_audit_log(_config_dir(gameDir), limit)


@router.post("/safe-boot", response_model=SafeBootResponse)
async def safe_boot(body: GameDirRequest):
    try:
        written = await backup.apply_safe_boot_mode(_config_dir(body.gameDir))
    except OSError as exc:
        raise _http_error(exc) from exc
    return SafeBootResponse(written=written)
