"""Tests for versioned backups, the audit trail and safe boot."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from modtune.core import backup, codec, config
from modtune.core.errors import NotFoundError, NotRestorableError
from modtune.core.models import (
    AuditAction,
    AuditResult,
    BackupEntry,
    BackupManifest,
    BackupReason,
    FileFormat,
)


def _snapshot_dirs(config_dir):
    root = backup.backup_root(config_dir)
    return sorted(p.name for p in root.iterdir() if p.is_dir())


def test_backup_id_format_is_sortable():
    first = backup.generate_backup_id(datetime(2026, 10, 18, 9, 41, 7, 512000, tzinfo=timezone.utc))
    later = backup.generate_backup_id(datetime(2026, 10, 18, 9, 41, 8, 1000, tzinfo=timezone.utc))
    assert first == "2026-10-18T09-41-07-512Z"
    assert first < later


def test_backup_id_suffix_on_collision():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    base = backup.generate_backup_id(now)
    assert backup.generate_backup_id(now, {base}) == f"{base}-1"
    assert backup.generate_backup_id(now, {base, f"{base}-1"}) == f"{base}-2"


@pytest.mark.asyncio
async def test_create_backup_copies_config_files_only(config_dir):
    (config_dir / "sodium-options.json").write_text("{}", encoding="utf-8")
    (config_dir / "lithium.properties").write_text("a=1\n", encoding="utf-8")
    (config_dir / "notes.txt").write_text("ignored", encoding="utf-8")

    backup_id = await backup.create_backup(config_dir, BackupReason.manual, {"preset": "balanced"})

    entries = await backup.list_backups(config_dir)
    assert [e.id for e in entries] == [backup_id]
    entry = entries[0]
    assert entry.files == ["lithium.properties", "sodium-options.json"]
    assert entry.canRestore is True
    assert entry.presetApplied == "balanced"
    snapshot = backup.backup_root(config_dir) / backup_id
    assert sorted(p.name for p in snapshot.iterdir()) == entry.files

    log = await backup.get_audit_log(config_dir)
    assert log[0].action is AuditAction.backup_created
    assert log[0].details["backupId"] == backup_id


@pytest.mark.asyncio
async def test_empty_directory_backup_is_not_restorable(config_dir):
    backup_id = await backup.create_backup(config_dir, BackupReason.manual)
    entry = await backup.most_recent_backup(config_dir)
    assert entry.id == backup_id
    assert entry.canRestore is False

    with pytest.raises(NotRestorableError):
        await backup.restore_backup(config_dir, backup_id)


@pytest.mark.asyncio
async def test_restore_unknown_backup_raises(config_dir):
    with pytest.raises(NotFoundError):
        await backup.restore_backup(config_dir, "1999-01-01T00-00-00-000Z")


@pytest.mark.asyncio
async def test_twelve_backups_keep_ten(config_dir):
    (config_dir / "sodium-options.json").write_text("{}", encoding="utf-8")
    for _ in range(12):
        await backup.create_backup(config_dir, BackupReason.auto)

    manifest = backup.load_manifest(config_dir)
    assert len(manifest.backups) == 10
    assert len(_snapshot_dirs(config_dir)) == 10
    assert sorted(e.id for e in manifest.backups) == _snapshot_dirs(config_dir)


@pytest.mark.asyncio
async def test_retention_comes_from_settings(config_dir):
    config.save_config({"retention": {"maxBackups": 3, "maxAgeDays": 7}})
    (config_dir / "sodium-options.json").write_text("{}", encoding="utf-8")
    for _ in range(5):
        await backup.create_backup(config_dir, BackupReason.auto)

    manifest = backup.load_manifest(config_dir)
    assert manifest.maxBackups == 3
    assert len(manifest.backups) == 3


def test_prune_drops_expired_entries(config_dir):
    now = datetime(2026, 10, 18, tzinfo=timezone.utc)
    root = backup.backup_root(config_dir)
    old = BackupEntry(id="old", timestamp=now - timedelta(days=8), reason=BackupReason.auto)
    fresh = BackupEntry(id="fresh", timestamp=now - timedelta(days=1), reason=BackupReason.auto)
    for entry in (old, fresh):
        (root / entry.id).mkdir(parents=True)
    manifest = BackupManifest(backups=[old, fresh], maxBackups=10, maxAgeDays=7)

    pruned = backup.prune_backups(config_dir, manifest, now=now)

    assert pruned == ["old"]
    assert [e.id for e in manifest.backups] == ["fresh"]
    assert not (root / "old").exists()
    assert (root / "fresh").exists()


def test_prune_spares_the_protected_entry(config_dir):
    now = datetime(2026, 10, 18, tzinfo=timezone.utc)
    entries = [
        BackupEntry(id=f"b{n}", timestamp=now - timedelta(days=n), reason=BackupReason.auto)
        for n in (9, 3, 2, 1)
    ]
    manifest = BackupManifest(backups=entries, maxBackups=2, maxAgeDays=7)

    pruned = backup.prune_backups(config_dir, manifest, now=now, protect="b9")

    assert pruned == ["b3"]
    assert [e.id for e in manifest.backups] == ["b1", "b2", "b9"]


@pytest.mark.asyncio
async def test_restore_is_itself_reversible(config_dir):
    target = config_dir / "lithium.properties"
    target.write_text("version=1\n", encoding="utf-8")
    first = await backup.create_backup(config_dir, BackupReason.manual)

    target.write_text("version=2\n", encoding="utf-8")
    result = await backup.restore_backup(config_dir, first)

    assert result.success is True
    assert result.restored == ["lithium.properties"]
    assert target.read_text(encoding="utf-8") == "version=1\n"

    # the pre-rollback snapshot holds what the restore overwrote
    snapshot = backup.backup_root(config_dir) / result.preRollbackBackupId / "lithium.properties"
    assert snapshot.read_text(encoding="utf-8") == "version=2\n"
    pre = backup.load_manifest(config_dir).find(result.preRollbackBackupId)
    assert pre.reason is BackupReason.pre_rollback

    undo = await backup.restore_backup(config_dir, result.preRollbackBackupId)
    assert undo.success is True
    assert target.read_text(encoding="utf-8") == "version=2\n"

    log = await backup.get_audit_log(config_dir)
    assert log[0].action is AuditAction.rollback
    assert log[0].result is AuditResult.success


def _age_entry(config_dir, backup_id, days):
    manifest = backup.load_manifest(config_dir)
    entry = manifest.find(backup_id)
    entry.timestamp = entry.timestamp - timedelta(days=days)
    backup._save_manifest(config_dir, manifest)


@pytest.mark.asyncio
async def test_restoring_an_expired_backup_keeps_it_until_copied(config_dir):
    target = config_dir / "lithium.properties"
    target.write_text("version=1\n", encoding="utf-8")
    old = await backup.create_backup(config_dir, BackupReason.manual)
    _age_entry(config_dir, old, 8)
    target.write_text("version=2\n", encoding="utf-8")

    result = await backup.restore_backup(config_dir, old)

    assert result.success is True
    assert result.restored == ["lithium.properties"]
    assert target.read_text(encoding="utf-8") == "version=1\n"
    assert old in _snapshot_dirs(config_dir)


@pytest.mark.asyncio
async def test_restoring_the_oldest_backup_at_capacity(config_dir):
    target = config_dir / "lithium.properties"
    ids = []
    for n in range(config.DEFAULT_MAX_BACKUPS):
        target.write_text(f"version={n}\n", encoding="utf-8")
        ids.append(await backup.create_backup(config_dir, BackupReason.auto))

    result = await backup.restore_backup(config_dir, ids[0])

    assert result.success is True
    assert target.read_text(encoding="utf-8") == "version=0\n"
    manifest = backup.load_manifest(config_dir)
    assert manifest.find(ids[0]) is not None
    assert manifest.find(result.preRollbackBackupId) is not None

    # the next regular backup prunes back to the limit
    await backup.create_backup(config_dir, BackupReason.auto)
    manifest = backup.load_manifest(config_dir)
    assert len(manifest.backups) == config.DEFAULT_MAX_BACKUPS
    assert manifest.find(ids[0]) is None


@pytest.mark.asyncio
async def test_lowered_retention_applies_to_existing_manifest(config_dir):
    (config_dir / "sodium-options.json").write_text("{}", encoding="utf-8")
    for _ in range(5):
        await backup.create_backup(config_dir, BackupReason.auto)
    assert len(backup.load_manifest(config_dir).backups) == 5

    config.save_config({"retention": {"maxBackups": 2, "maxAgeDays": 7}})
    await backup.create_backup(config_dir, BackupReason.auto)

    manifest = backup.load_manifest(config_dir)
    assert manifest.maxBackups == 2
    assert len(manifest.backups) == 2
    assert len(_snapshot_dirs(config_dir)) == 2

@pytest.mark.asyncio
async def test_partial_restore_reports_both_lists(config_dir):
    (config_dir / "a.json").write_text("{}", encoding="utf-8")
    (config_dir / "b.json").write_text("{}", encoding="utf-8")
    backup_id = await backup.create_backup(config_dir, BackupReason.manual)
    (backup.backup_root(config_dir) / backup_id / "b.json").unlink()

    result = await backup.restore_backup(config_dir, backup_id)

    assert result.success is False
    assert result.restored == ["a.json"]
    assert result.failed == ["b.json"]
    log = await backup.get_audit_log(config_dir, limit=1)
    assert log[0].result is AuditResult.partial


@pytest.mark.asyncio
async def test_audit_log_is_capped(config_dir):
    for i in range(config.AUDIT_LOG_CAP + 5):
        await backup.log_audit_entry(config_dir, AuditAction.migration, {"n": i}, AuditResult.success)

    entries = await backup.get_audit_log(config_dir, limit=500)
    assert len(entries) == config.AUDIT_LOG_CAP
    assert entries[0].details["n"] == config.AUDIT_LOG_CAP + 4
    assert entries[-1].details["n"] == 5
    assert [e.details["n"] for e in await backup.get_audit_log(config_dir, limit=2)] == [104, 103]


@pytest.mark.asyncio
async def test_audit_failure_is_swallowed(config_dir):
    # a directory where the audit file should be makes the write fail
    backup.backup_root(config_dir).mkdir(parents=True)
    (backup.backup_root(config_dir) / config.AUDIT_LOG_FILE_NAME).mkdir()

    await backup.log_audit_entry(config_dir, AuditAction.migration, {}, AuditResult.success)


@pytest.mark.asyncio
async def test_concurrent_backups_do_not_lose_manifest_entries(config_dir):
    (config_dir / "sodium-options.json").write_text("{}", encoding="utf-8")
    ids = await asyncio.gather(
        *(backup.create_backup(config_dir, BackupReason.auto) for _ in range(5))
    )
    manifest = backup.load_manifest(config_dir)
    assert len(set(ids)) == 5
    assert sorted(e.id for e in manifest.backups) == sorted(ids)


@pytest.mark.asyncio
async def test_safe_boot_backs_up_then_writes_conservative_configs(config_dir):
    sodium = config_dir / "sodium-options.json"
    sodium.write_text('{"rendering": {"render_distance": 32}}', encoding="utf-8")

    written = await backup.apply_safe_boot_mode(config_dir)

    assert written == ["sodium-options.json", "lithium.properties", "ferritecore-common.toml"]
    tree = codec.load_file(sodium, FileFormat.json)
    assert tree["rendering"]["render_distance"] == 4
    assert tree["advanced"]["use_advanced_staging_buffers"] is False
    toml_text = (config_dir / "ferritecore-common.toml").read_text(encoding="utf-8")
    assert "[mixin]" in toml_text

    entry = await backup.most_recent_backup(config_dir)
    assert entry.reason is BackupReason.pre_rollback
    assert entry.metadata == {"reason": "safe-boot"}
    snapshot = backup.backup_root(config_dir) / entry.id / "sodium-options.json"
    assert "32" in snapshot.read_text(encoding="utf-8")

    log = await backup.get_audit_log(config_dir, limit=1)
    assert log[0].action is AuditAction.safe_boot
    assert log[0].result is AuditResult.success
