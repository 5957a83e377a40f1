# modtune/core/backup.py
"""
Modtune – versioned backups, audit trail & safe boot
====================================================

Filesystem layout (per managed config directory)
------------------------------------------------
<config>/.launcher-backups/
    ├─ backup-manifest.json      ← BackupManifest (authoritative)
    ├─ audit-log.json            ← AuditLog, newest 100 entries
    ├─ 2026-10-18T09-41-07-512Z/ ← one snapshot per BackupEntry
    │   ├─ sodium-options.json
    │   └─ ...
    └─ ...

Public coroutines
-----------------
create_backup(dir, reason, metadata, protect) -> backup id
restore_backup(dir, backup_id)        -> RollbackResult
list_backups(dir)                     -> [BackupEntry] newest first
most_recent_backup(dir)               -> BackupEntry | None
log_audit_entry(dir, action, …)       -> None (never raises)
get_audit_log(dir, limit)             -> [AuditEntry] newest first
apply_safe_boot_mode(dir)             -> [filenames written]

Every coroutine that touches the manifest or the audit log runs under
`locks.directory_lock(dir)`.  Restoring always snapshots the current
state first (reason `pre-rollback`), so a bad rollback is itself
reversible.
"""

from __future__ import annotations

import json
import shutil
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from modtune.core import codec, config
from modtune.core.errors import NotFoundError, NotRestorableError
from modtune.core.locks import directory_lock
from modtune.core.models import (
    AuditAction,
    AuditEntry,
    AuditLog,
    AuditResult,
    BackupEntry,
    BackupManifest,
    BackupReason,
    ConfigTree,
    FileFormat,
    RollbackResult,
    utcnow,
)


# ──────────────────────────────────────────────
# 1. Paths & manifest persistence
# ──────────────────────────────────────────────
def backup_root(config_dir: Path) -> Path:
    return config.backup_dir_for(config_dir)


def _manifest_path(config_dir: Path) -> Path:
    return backup_root(config_dir) / config.MANIFEST_FILE_NAME


def _audit_path(config_dir: Path) -> Path:
    return backup_root(config_dir) / config.AUDIT_LOG_FILE_NAME


def _write_json(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    codec.atomic_write(path, json.dumps(payload, indent=2))


def _default_manifest() -> BackupManifest:
    max_backups, max_age_days = config.retention_limits()
    return BackupManifest(maxBackups=max_backups, maxAgeDays=max_age_days)


def load_manifest(config_dir: Path) -> BackupManifest:
    """Return the manifest, or a fresh one if absent / unreadable."""
    path = _manifest_path(config_dir)
    if not path.exists():
        return _default_manifest()
    try:
        return BackupManifest.model_validate_json(path.read_bytes())
    except (ValidationError, OSError) as exc:
        sys.stderr.write(f"[backup] manifest unreadable ({exc}), starting fresh\n")
        return _default_manifest()


def _save_manifest(config_dir: Path, manifest: BackupManifest) -> None:
    _write_json(_manifest_path(config_dir), manifest.model_dump(mode="json"))


# ──────────────────────────────────────────────
# 2. Snapshot helpers
# ──────────────────────────────────────────────
def generate_backup_id(now: datetime, taken: set[str] | None = None) -> str:
    """
    ISO-8601 UTC timestamp (millisecond precision) with `:` and `.`
    replaced by `-`, so string order is chronological order.  A numeric
    suffix keeps ids unique when two backups land in the same millisecond.
    """
    stamp = now.strftime("%Y-%m-%dT%H:%M:%S") + f".{now.microsecond // 1000:03d}Z"
    base = stamp.replace(":", "-").replace(".", "-")
    taken = taken or set()
    candidate, n = base, 0
    while candidate in taken:
        n += 1
        candidate = f"{base}-{n}"
    return candidate


def _config_files(config_dir: Path) -> List[str]:
    try:
        return sorted(
            p.name
            for p in config_dir.iterdir()
            if p.is_file() and p.suffix.lstrip(".").lower() in config.CONFIG_EXTENSIONS
        )
    except OSError as exc:
        sys.stderr.write(f"[backup] cannot list {config_dir}: {exc}\n")
        return []


def prune_backups(
    config_dir: Path,
    manifest: BackupManifest,
    now: Optional[datetime] = None,
    protect: Optional[str] = None,
) -> List[str]:
    """
    Drop entries older than maxAgeDays, then keep only the newest
    maxBackups.  The *protect* id survives both passes and does not
    count toward maxBackups.  Snapshot folders are deleted best-effort;
    the manifest is authoritative.  Mutates *manifest*, returns the pruned ids.
    """
    now = now or utcnow()
    max_age = timedelta(days=manifest.maxAgeDays)

    valid: List[BackupEntry] = []
    to_delete: List[BackupEntry] = []
    for entry in manifest.backups:
        if entry.id != protect and now - entry.timestamp > max_age:
            to_delete.append(entry)
        else:
            valid.append(entry)

    valid.sort(key=lambda e: (e.timestamp, e.id), reverse=True)
    kept = [e for e in valid if e.id == protect]
    rest = [e for e in valid if e.id != protect]
    while len(rest) > manifest.maxBackups:
        to_delete.append(rest.pop())
    valid = sorted(kept + rest, key=lambda e: (e.timestamp, e.id), reverse=True)

    root = backup_root(config_dir)
    for entry in to_delete:
        try:
            shutil.rmtree(root / entry.id)
        except FileNotFoundError:
            pass
        except OSError as exc:
            sys.stderr.write(f"[backup] could not delete snapshot {entry.id}: {exc}\n")
        else:
            sys.stdout.write(f"[backup] pruned old backup {entry.id}\n")

    manifest.backups = valid
    return [e.id for e in to_delete]


# ──────────────────────────────────────────────
# 3. Create / restore / list
# ──────────────────────────────────────────────
async def create_backup(
    config_dir: Path,
    reason: BackupReason | str,
    metadata: Optional[Dict[str, Any]] = None,
    protect: Optional[str] = None,
) -> str:
    """
    Snapshot every json/properties/toml file of *config_dir*.

    Retention limits are re-read from settings on every call, so a
    lowered limit trims the manifest on the next backup.  *protect* names
    a backup that this call must not prune.

    Individual copy failures are logged and skipped.  Raises only if the
    snapshot folder or the manifest cannot be written at all.
    """
    config_dir = Path(config_dir)
    reason = BackupReason(reason)
    async with directory_lock(config_dir):
        sys.stdout.write(f"[backup] creating backup (reason: {reason.value})\n")

        manifest = load_manifest(config_dir)
        manifest.maxBackups, manifest.maxAgeDays = config.retention_limits()
        root = backup_root(config_dir)
        root.mkdir(parents=True, exist_ok=True)

        now = utcnow()
        taken = {b.id for b in manifest.backups}
        taken.update(p.name for p in root.iterdir() if p.is_dir())
        backup_id = generate_backup_id(now, taken)
        snapshot = root / backup_id
        snapshot.mkdir(parents=True)

        copied: List[str] = []
        for name in _config_files(config_dir):
            try:
                shutil.copy2(config_dir / name, snapshot / name)
                copied.append(name)
            except OSError as exc:
                sys.stderr.write(f"[backup] failed to back up {name}: {exc}\n")

        meta = metadata or {}
        entry = BackupEntry(
            id=backup_id,
            timestamp=now,
            reason=reason,
            files=copied,
            presetApplied=meta.get("preset"),
            hardwareScore=meta.get("hardwareScore"),
            canRestore=len(copied) > 0,
            metadata=metadata,
        )
        manifest.backups.append(entry)
        prune_backups(config_dir, manifest, now=now, protect=protect)
        _save_manifest(config_dir, manifest)

        sys.stdout.write(f"[backup] backup created: {backup_id} ({len(copied)} files)\n")

        await log_audit_entry(
            config_dir,
            AuditAction.backup_created,
            {"backupId": backup_id, "filesModified": copied, "reason": reason.value},
            AuditResult.success,
        )
        return backup_id


async def restore_backup(config_dir: Path, backup_id: str) -> RollbackResult:
    """
    Copy a snapshot back over the live files.

    Raises NotFoundError / NotRestorableError before touching anything.
    A partial restore returns success=False with both file lists filled.
    """
    config_dir = Path(config_dir)
    async with directory_lock(config_dir):
        sys.stdout.write(f"[backup] restoring from backup {backup_id}\n")

        manifest = load_manifest(config_dir)
        entry = manifest.find(backup_id)
        if entry is None:
            raise NotFoundError(backup_id)
        if not entry.canRestore:
            raise NotRestorableError(backup_id)

        snapshot = backup_root(config_dir) / backup_id

        # current state first – restoring must itself be undoable
        pre_rollback_id = await create_backup(
            config_dir,
            BackupReason.pre_rollback,
            {"restoring": backup_id},
            protect=backup_id,
        )

        restored: List[str] = []
        failed: List[str] = []
        for name in entry.files:
            source = snapshot / name
            try:
                if not source.is_file():
                    raise FileNotFoundError(f"snapshot copy missing: {source}")
                codec.atomic_copy(source, config_dir / name)
                restored.append(name)
            except OSError as exc:
                sys.stderr.write(f"[backup] failed to restore {name}: {exc}\n")
                failed.append(name)

        result = RollbackResult(
            success=not failed,
            restored=restored,
            failed=failed,
            backupId=backup_id,
            preRollbackBackupId=pre_rollback_id,
        )

        await log_audit_entry(
            config_dir,
            AuditAction.rollback,
            {
                "backupId": backup_id,
                "preRollbackBackupId": pre_rollback_id,
                "filesModified": restored,
            },
            AuditResult.success if not failed else AuditResult.partial,
            errors=[f"Failed to restore: {f}" for f in failed] or None,
        )

        sys.stdout.write(
            f"[backup] restore complete: {len(restored)} restored, {len(failed)} failed\n"
        )
        return result


async def list_backups(config_dir: Path) -> List[BackupEntry]:
    """All manifest entries, newest first."""
    async with directory_lock(config_dir):
        manifest = load_manifest(Path(config_dir))
    return sorted(manifest.backups, key=lambda e: (e.timestamp, e.id), reverse=True)


async def most_recent_backup(config_dir: Path) -> Optional[BackupEntry]:
    backups = await list_backups(config_dir)
    return backups[0] if backups else None


# ──────────────────────────────────────────────
# 4. Audit trail
# ──────────────────────────────────────────────
def _load_audit_log(config_dir: Path) -> AuditLog:
    path = _audit_path(config_dir)
    if not path.exists():
        return AuditLog()
    try:
        return AuditLog.model_validate_json(path.read_bytes())
    except (ValidationError, OSError) as exc:
        sys.stderr.write(f"[backup] audit log unreadable ({exc}), starting fresh\n")
        return AuditLog()


async def log_audit_entry(
    config_dir: Path,
    action: AuditAction | str,
    details: Dict[str, Any],
    result: AuditResult | str,
    errors: Optional[List[str]] = None,
) -> None:
    """
    Append one entry and trim to the newest AUDIT_LOG_CAP.
    Failures are printed, never raised – auditing must not block the
    operation it describes.
    """
    config_dir = Path(config_dir)
    try:
        async with directory_lock(config_dir):
            log = _load_audit_log(config_dir)
            log.entries.append(
                AuditEntry(
                    action=AuditAction(action),
                    details=details,
                    result=AuditResult(result),
                    errors=errors,
                )
            )
            if len(log.entries) > config.AUDIT_LOG_CAP:
                log.entries = log.entries[-config.AUDIT_LOG_CAP:]
            _write_json(_audit_path(config_dir), log.model_dump(mode="json"))
    except Exception as exc:
        sys.stderr.write(f"[backup] failed to log audit entry: {exc}\n")


async def get_audit_log(config_dir: Path, limit: int = 20) -> List[AuditEntry]:
    """Most recent *limit* entries, newest first."""
    async with directory_lock(config_dir):
        log = _load_audit_log(Path(config_dir))
    if limit <= 0:
        return []
    return list(reversed(log.entries[-limit:]))


# ──────────────────────────────────────────────
# 5. Safe boot
# ──────────────────────────────────────────────
SAFE_BOOT_CONFIGS: Dict[str, tuple[FileFormat, Optional[str], ConfigTree]] = {
    "sodium-options.json": (
        FileFormat.json,
        None,
        {
            "quality": {
                "graphics_quality": "fast",
                "clouds_quality": "off",
                "weather_quality": "off",
                "leaves_quality": "fast",
            },
            "rendering": {
                "render_distance": 4,
                "simulation_distance": 5,
                "fps_limit": 60,
                "v_sync": True,
            },
            "advanced": {
                "use_advanced_staging_buffers": False,
                "cpu_render_ahead_limit": 1,
                "allow_direct_memory_access": False,
            },
        },
    ),
    # Lithium's own optimisations are stable; keep the core ones on
    "lithium.properties": (
        FileFormat.properties,
        None,
        {
            "mixin.ai.pathing": True,
            "mixin.entity.collisions": True,
            "mixin.world.chunk_ticking": True,
        },
    ),
    "ferritecore-common.toml": (
        FileFormat.toml,
        "mixin",
        {
            "mixin.blockstatecache": True,
            "mixin.flatten_states": True,
        },
    ),
}


async def apply_safe_boot_mode(config_dir: Path) -> List[str]:
    """
    Last-resort recovery: back up the current state, then overwrite a
    small set of files with conservative hardcoded values.
    Returns the files actually written.
    """
    config_dir = Path(config_dir)
    async with directory_lock(config_dir):
        sys.stdout.write("[backup] applying SAFE BOOT mode\n")
        config_dir.mkdir(parents=True, exist_ok=True)

        backup_id = await create_backup(
            config_dir, BackupReason.pre_rollback, {"reason": "safe-boot"}
        )

        written: List[str] = []
        errors: List[str] = []
        for filename, (fmt, section, tree) in SAFE_BOOT_CONFIGS.items():
            try:
                codec.atomic_write(config_dir / filename, codec.serialize(tree, fmt, section))
                written.append(filename)
            except OSError as exc:
                sys.stderr.write(f"[backup] safe boot failed for {filename}: {exc}\n")
                errors.append(f"{filename}: {exc}")

        await log_audit_entry(
            config_dir,
            AuditAction.safe_boot,
            {"backupId": backup_id, "filesModified": written},
            AuditResult.success if not errors else AuditResult.partial,
            errors=errors or None,
        )
        sys.stdout.write("[backup] safe boot mode applied\n")
        return written
