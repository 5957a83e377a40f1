# modtune/core/models.py
"""
Modtune – shared data models
============================

All modules (API routers, orchestrator, backup store, dry-run engine)
communicate through **typed** value objects defined here.  Using
Pydantic gives us validation, (de)serialisation, and autocompletion
for free.

Models that are persisted to disk or returned over HTTP keep the
camelCase keys of the on-disk documents, so files written by older
launcher builds load unchanged.

Feel free to extend individual models, but avoid adding business
logic – that belongs in `core/` sub-modules.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

# Generic key/value tree (bool | int | float | str | list | nested dict)
ConfigTree = Dict[str, Any]


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


# ──────────────────────────────────────────────
# 1. Enumerations
# ──────────────────────────────────────────────
class Tier(str, enum.Enum):
    low_end = "low-end"
    balanced = "balanced"
    high_end = "high-end"


TierChoice = Literal["auto", "low-end", "balanced", "high-end"]


class FileFormat(str, enum.Enum):
    json = "json"
    properties = "properties"
    toml = "toml"


class GpuType(str, enum.Enum):
    integrated = "integrated"
    dedicated = "dedicated"
    unknown = "unknown"


class Severity(str, enum.Enum):
    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"


class Impact(str, enum.Enum):
    crash = "crash"
    visual_glitch = "visual-glitch"
    performance_degradation = "performance-degradation"
    data_corruption = "data-corruption"


class BackupReason(str, enum.Enum):
    pre_preset_apply = "pre-preset-apply"
    pre_migration = "pre-migration"
    pre_rollback = "pre-rollback"
    manual = "manual"
    auto = "auto"


class AuditAction(str, enum.Enum):
    preset_applied = "preset-applied"
    migration = "migration"
    rollback = "rollback"
    safe_boot = "safe-boot"
    user_reset = "user-reset"
    backup_created = "backup-created"


class AuditResult(str, enum.Enum):
    success = "success"
    partial = "partial"
    failed = "failed"


class ChangeType(str, enum.Enum):
    create = "create"
    modify = "modify"
    skip = "skip"


class DiffAction(str, enum.Enum):
    add = "add"
    modify = "modify"
    remove = "remove"
    preserve = "preserve"


# ──────────────────────────────────────────────
# 2. Hardware
# ──────────────────────────────────────────────
class ScreenResolution(BaseModel):
    width: int = 1920
    height: int = 1080

    @property
    def pixels(self) -> int:
        return self.width * self.height


class GpuProbe(BaseModel):
    type: GpuType = GpuType.unknown
    name: str = "Unknown GPU"


class HardwareInfo(BaseModel):
    """Derived on every apply, never persisted on its own."""
    totalRamGB: int
    cpuCores: int
    gpuType: GpuType
    gpuName: str
    screenResolution: ScreenResolution
    score: int = Field(ge=0, le=100)
    recommendedPreset: Tier


class SystemFacts(BaseModel):
    """What the incompatibility rules match against."""
    cpuModel: str = "Unknown"
    cpuArch: str = ""
    cpuCores: int = 0
    totalRamGB: int = 0
    gpuName: str = "Unknown"
    gpuVendor: str = "Unknown"
    gpuType: GpuType = GpuType.unknown
    os: str = ""


# ──────────────────────────────────────────────
# 3. Managed files & metadata
# ──────────────────────────────────────────────
class ManagedFile(BaseModel):
    filename: str
    format: FileFormat
    tomlSection: Optional[str] = None
    presets: Dict[Tier, ConfigTree]

    model_config = {"frozen": True}


class ConfigMetadata(BaseModel):
    """Entry stored in <game>/config/launcher_config_metadata.json"""
    version: str = "1.0"
    lastAppliedPreset: Optional[Tier] = None
    lastModified: datetime = Field(default_factory=utcnow)
    hashes: Dict[str, str] = Field(default_factory=dict)
    userManaged: bool = False


# ──────────────────────────────────────────────
# 4. Backups & audit trail
# ──────────────────────────────────────────────
class BackupEntry(BaseModel):
    id: str
    timestamp: datetime
    reason: BackupReason
    files: List[str] = Field(default_factory=list)
    presetApplied: Optional[str] = None
    hardwareScore: Optional[int] = None
    canRestore: bool = False
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("timestamp")
    def _aware(cls, v: datetime) -> datetime:  # pylint: disable=no-self-argument
        # older manifests may hold naive timestamps; they were written in UTC
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)


class BackupManifest(BaseModel):
    version: Literal["1.0"] = "1.0"
    backups: List[BackupEntry] = Field(default_factory=list)
    maxBackups: int = Field(10, ge=1)
    maxAgeDays: int = Field(7, ge=0)

    def find(self, backup_id: str) -> Optional[BackupEntry]:
        return next((b for b in self.backups if b.id == backup_id), None)


class AuditEntry(BaseModel):
    timestamp: datetime = Field(default_factory=utcnow)
    action: AuditAction
    details: Dict[str, Any] = Field(default_factory=dict)
    result: AuditResult
    errors: Optional[List[str]] = None


class AuditLog(BaseModel):
    entries: List[AuditEntry] = Field(default_factory=list)


class RollbackResult(BaseModel):
    success: bool
    restored: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    backupId: str
    preRollbackBackupId: Optional[str] = None


# ──────────────────────────────────────────────
# 5. Dry run
# ──────────────────────────────────────────────
class DiffEntry(BaseModel):
    key: str
    oldValue: Any = None
    newValue: Any = None
    action: DiffAction


class FileChange(BaseModel):
    file: str
    type: ChangeType
    reason: Optional[str] = None
    changedKeys: List[str] = Field(default_factory=list)
    preservedKeys: List[str] = Field(default_factory=list)
    diff: Optional[List[DiffEntry]] = None


class DryRunSummary(BaseModel):
    preset: str = "unknown"
    affectedFiles: int = 0
    skippedFiles: int = 0
    totalChangedKeys: int = 0


class DryRunOptions(BaseModel):
    preserve_user_modifications: bool = True
    validate_before_apply: bool = True
    show_diff: bool = True


class DryRunResult(BaseModel):
    """Ephemeral – never written to disk."""
    success: bool
    changes: List[FileChange] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    summary: DryRunSummary = Field(default_factory=DryRunSummary)

    def change_for(self, filename: str) -> Optional[FileChange]:
        return next((c for c in self.changes if c.file == filename), None)


# ──────────────────────────────────────────────
# 6. Preset application
# ──────────────────────────────────────────────
class ApplyOptions(BaseModel):
    dry_run: bool = False
    force_overwrite: bool = False
    preserve_user_modifications: bool = True
    check_incompatibilities: bool = True
    create_backup: bool = True


class PresetApplicationResult(BaseModel):
    success: bool = True
    preset: str
    appliedFiles: List[str] = Field(default_factory=list)
    skippedFiles: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    backupId: Optional[str] = None
    incompatibilitiesDetected: List[str] = Field(default_factory=list)
    workaroundsApplied: List[str] = Field(default_factory=list)
    dryRun: Optional[DryRunResult] = None
