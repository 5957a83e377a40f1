# modtune/core/orchestrator.py
"""
Modtune – preset orchestrator
=============================

Drives one preset application end to end for a game directory:

    metadata → tier → incompatibilities → user edits → (dry run)
             → backup → per-file merge/validate/write → metadata → audit

Public helpers
--------------
• apply_preset(game_dir, tier, options, on_progress)  -> PresetApplicationResult
• rollback_preset(game_dir)                           -> RollbackResult
• set_user_managed(game_dir, enabled)                 -> ConfigMetadata
• load_metadata(config_dir) / save_metadata(config_dir, metadata)
• has_user_modifications(config_dir, filename, metadata) -> bool

Per-file failures end up in `result.errors` and never stop sibling files.
Anything else that escapes is caught once at the top, safe-boot configs
are written, and a PresetApplicationError is raised to the caller.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from modtune.core import backup, codec, config, dryrun, hardware, incompat, presets
from modtune.core.errors import NoBackupError, PresetApplicationError, RoundTripValidationError
from modtune.core.locks import directory_lock
from modtune.core.mods.scanner import list_installed_mods
from modtune.core.models import (
    ApplyOptions,
    AuditAction,
    AuditResult,
    BackupReason,
    ConfigMetadata,
    ConfigTree,
    DryRunOptions,
    HardwareInfo,
    ManagedFile,
    PresetApplicationResult,
    RollbackResult,
    Tier,
    TierChoice,
    utcnow,
)

ProgressCallback = Callable[[str, int], None]
HardwareProbe = Callable[[], Awaitable[HardwareInfo]]
ModLister = Callable[[Path], Sequence[str]]


# ──────────────────────────────────────────────
# 1. Metadata
# ──────────────────────────────────────────────
def metadata_path(config_dir: Path) -> Path:
    return Path(config_dir) / config.METADATA_FILE_NAME


def load_metadata(config_dir: Path) -> ConfigMetadata:
    """Stored metadata, or defaults if the file is absent or corrupt."""
    path = metadata_path(config_dir)
    if not path.exists():
        return ConfigMetadata()
    try:
        return ConfigMetadata.model_validate_json(path.read_bytes())
    except (ValidationError, OSError) as exc:
        sys.stderr.write(f"[preset] metadata unreadable ({exc}), using defaults\n")
        return ConfigMetadata()


def save_metadata(config_dir: Path, metadata: ConfigMetadata) -> None:
    codec.atomic_write(metadata_path(config_dir), metadata.model_dump_json(indent=2))


def has_user_modifications(config_dir: Path, filename: str, metadata: ConfigMetadata) -> bool:
    """
    True when we wrote this file before (a hash is on record) and its
    bytes changed since.  Files we never wrote are not "user-modified".
    """
    expected = metadata.hashes.get(filename)
    if expected is None:
        return False
    actual = codec.hash_file(Path(config_dir) / filename)
    return actual is not None and actual != expected


# ──────────────────────────────────────────────
# 2. Small helpers
# ──────────────────────────────────────────────
def _notify(on_progress: Optional[ProgressCallback], task: str, percent: int) -> None:
    if on_progress is None:
        return
    try:
        on_progress(task, percent)
    except Exception as exc:
        sys.stderr.write(f"[preset] progress callback failed: {exc}\n")


def _fold_workarounds(preset_trees: Dict[str, ConfigTree], rule_ids: Sequence[str]) -> None:
    for rule_id in rule_ids:
        rule = incompat.by_id(rule_id)
        if rule is None or rule.workaround is None:
            continue
        target = rule.workaround.file
        preset_trees[target] = codec.deep_merge(
            preset_trees.get(target, {}), dict(rule.workaround.patch)
        )
        sys.stdout.write(f"[preset] applied workaround {rule_id} to {target}\n")


def _apply_single(
    config_dir: Path,
    managed: ManagedFile,
    preset_tree: ConfigTree,
    preserve_existing: bool,
) -> Optional[str]:
    """
    Merge, validate and write one file.  Returns the written text, or
    None when the file already holds the merged values and is left as is.
    """
    path = config_dir / managed.filename
    current = codec.load_file(path, managed.format)
    merged = codec.deep_merge(current, preset_tree, preserve_existing=preserve_existing)
    if path.exists() and codec.trees_equal(merged, current):
        return None
    rendered = codec.serialize(merged, managed.format, managed.tomlSection)
    if not codec.round_trip_valid(merged, rendered, managed.format):
        raise RoundTripValidationError(managed.filename)
    codec.atomic_write(path, rendered)
    return rendered


# ──────────────────────────────────────────────
# 3. Apply
# ──────────────────────────────────────────────
async def apply_preset(
    game_dir: Path,
    tier: TierChoice | Tier = "auto",
    options: Optional[ApplyOptions] = None,
    on_progress: Optional[ProgressCallback] = None,
    hardware_probe: Optional[HardwareProbe] = None,
    mod_lister: Optional[ModLister] = None,
) -> PresetApplicationResult:
    """
    Apply a tier preset (or the hardware recommendation for "auto") to
    every managed file of `<game_dir>/config`.

    Raises ValueError for an unknown tier name, PresetApplicationError
    when the run blew up and safe boot was attempted.
    """
    requested = tier.value if isinstance(tier, Tier) else str(tier)
    if requested != "auto":
        Tier(requested)

    opts = options or config.default_apply_options()
    game_dir = Path(game_dir)
    config_dir = config.config_dir_for(game_dir)

    sys.stdout.write(f"[preset] applying preset '{requested}' to {config_dir}\n")
    _notify(on_progress, "Configuring optimisations...", 90)

    async with directory_lock(config_dir):
        try:
            config_dir.mkdir(parents=True, exist_ok=True)
            return await _apply_locked(
                game_dir,
                config_dir,
                requested,
                opts,
                on_progress,
                hardware_probe or hardware.detect_hardware,
                mod_lister or list_installed_mods,
            )
        except Exception as exc:
            sys.stderr.write(f"[preset] critical error during preset application: {exc}\n")
            recovered = False
            try:
                sys.stdout.write("[preset] attempting safe boot recovery\n")
                await backup.apply_safe_boot_mode(config_dir)
                recovered = True
            except Exception as boot_exc:
                sys.stderr.write(f"[preset] safe boot recovery failed: {boot_exc}\n")
            raise PresetApplicationError(
                f"Failed to apply performance preset: {exc}", recovered=recovered
            ) from exc


async def _apply_locked(
    game_dir: Path,
    config_dir: Path,
    requested: str,
    opts: ApplyOptions,
    on_progress: Optional[ProgressCallback],
    probe: HardwareProbe,
    lister: ModLister,
) -> PresetApplicationResult:
    result = PresetApplicationResult(preset=requested)
    metadata = load_metadata(config_dir)

    if metadata.userManaged and not opts.force_overwrite:
        sys.stdout.write("[preset] user-managed mode enabled, skipping preset application\n")
        result.skippedFiles = presets.managed_filenames()
        return result

    # tier – the probe runs in both branches for diagnostics
    hw = await probe()
    if requested == "auto":
        resolved = hw.recommendedPreset
        sys.stdout.write(f"[preset] auto-detected preset: {resolved.value} (score {hw.score})\n")
    else:
        resolved = Tier(requested)
        sys.stdout.write(
            f"[preset] using selected preset {resolved.value} (reference score {hw.score})\n"
        )
    result.preset = resolved.value

    preset_trees = presets.presets_for_tier(resolved)

    if opts.check_incompatibilities:
        _notify(on_progress, "Checking incompatibilities...", 91)
        installed = list(lister(game_dir))
        merged_view: Dict[str, ConfigTree] = {
            mf.filename: codec.deep_merge(
                codec.load_file(config_dir / mf.filename, mf.format),
                preset_trees[mf.filename],
                preserve_existing=True,
            )
            for mf in presets.MANAGED_FILES
        }
        report = incompat.evaluate(hardware.system_facts(hw), installed, merged_view)
        result.incompatibilitiesDetected = list(report.detected)
        result.workaroundsApplied = list(report.appliedWorkarounds)
        result.warnings.extend(report.warnings)
        _fold_workarounds(preset_trees, report.appliedWorkarounds)

    _notify(on_progress, "Checking for user modifications...", 92)
    flagged: Dict[str, List[str]] = {}
    for mf in presets.MANAGED_FILES:
        if has_user_modifications(config_dir, mf.filename, metadata):
            flagged[mf.filename] = [dryrun.WHOLE_FILE]
            sys.stdout.write(f"[preset] user modifications detected in {mf.filename}\n")

    if opts.dry_run:
        sys.stdout.write("[preset] running in DRY RUN mode\n")
        preview = dryrun.simulate(
            config_dir,
            preset_trees,
            flagged,
            DryRunOptions(preserve_user_modifications=opts.preserve_user_modifications),
            preset_label=resolved.value,
        )
        sys.stdout.write(dryrun.format_result(preview) + "\n")
        result.success = preview.success
        result.warnings.extend(preview.warnings)
        result.errors.extend(preview.errors)
        result.dryRun = preview
        return result

    if opts.create_backup:
        _notify(on_progress, "Creating backup...", 93)
        try:
            result.backupId = await backup.create_backup(
                config_dir,
                BackupReason.pre_preset_apply,
                {
                    "preset": resolved.value,
                    "hardwareScore": hw.score,
                    "hardware": hw.model_dump(mode="json"),
                },
            )
        except Exception as exc:
            sys.stderr.write(f"[preset] failed to create backup: {exc}\n")
            result.warnings.append("Failed to create backup")

    _notify(on_progress, "Applying optimisations...", 94)
    written: Dict[str, str] = {}
    for mf in presets.MANAGED_FILES:
        preserve = mf.filename in flagged and opts.preserve_user_modifications
        try:
            rendered = _apply_single(config_dir, mf, preset_trees[mf.filename], preserve)
        except (RoundTripValidationError, OSError) as exc:
            sys.stderr.write(f"[preset] failed to apply {mf.filename}: {exc}\n")
            result.errors.append(f"{mf.filename}: {exc}")
            result.success = False
            continue
        if rendered is None:
            result.skippedFiles.append(mf.filename)
            sys.stdout.write(f"[preset] {mf.filename} already up to date\n")
            continue
        written[mf.filename] = rendered
        result.appliedFiles.append(mf.filename)
        sys.stdout.write(f"[preset] applied {mf.filename} ({resolved.value})\n")

    metadata.version = config.METADATA_VERSION
    metadata.lastAppliedPreset = resolved
    metadata.lastModified = utcnow()
    for filename, content in written.items():
        metadata.hashes[filename] = codec.content_hash(content)
    try:
        save_metadata(config_dir, metadata)
    except OSError as exc:
        sys.stderr.write(f"[preset] failed to update metadata: {exc}\n")

    await backup.log_audit_entry(
        config_dir,
        AuditAction.preset_applied,
        {
            "preset": resolved.value,
            "filesModified": result.appliedFiles,
            "backupId": result.backupId,
            "hardwareScore": hw.score,
        },
        AuditResult.success if result.success else AuditResult.partial,
        errors=result.errors or None,
    )

    sys.stdout.write(
        f"[preset] preset application complete: {len(result.appliedFiles)} applied, "
        f"{len(result.errors)} errors\n"
    )
    _notify(on_progress, "Optimisations applied", 95)
    return result


# ──────────────────────────────────────────────
# 4. Rollback & management mode
# ──────────────────────────────────────────────
async def rollback_preset(game_dir: Path) -> RollbackResult:
    """Restore the newest backup of any reason; NoBackupError if none."""
    config_dir = config.config_dir_for(Path(game_dir))
    async with directory_lock(config_dir):
        latest = await backup.most_recent_backup(config_dir)
        if latest is None:
            raise NoBackupError()
        sys.stdout.write(f"[preset] rolling back to backup {latest.id}\n")
        return await backup.restore_backup(config_dir, latest.id)


async def set_user_managed(game_dir: Path, enabled: bool) -> ConfigMetadata:
    """
    Opt the directory in or out of automatic management.  Switching back
    to automatic management is recorded as a `user-reset` audit entry.
    """
    config_dir = config.config_dir_for(Path(game_dir))
    config_dir.mkdir(parents=True, exist_ok=True)
    async with directory_lock(config_dir):
        metadata = load_metadata(config_dir)
        was_enabled = metadata.userManaged
        metadata.userManaged = enabled
        metadata.lastModified = utcnow()
        save_metadata(config_dir, metadata)
        sys.stdout.write(f"[preset] user-managed mode {'on' if enabled else 'off'}\n")

        if was_enabled and not enabled:
            await backup.log_audit_entry(
                config_dir,
                AuditAction.user_reset,
                {"userManaged": False},
                AuditResult.success,
            )
        return metadata


# ──────────────────────────────────────────────
# 5. Quick CLI for debugging
# ──────────────────────────────────────────────
if __name__ == "__main__":  # pragma: no cover
    import argparse
    import asyncio

    p = argparse.ArgumentParser(description="Apply a performance preset manually")
    p.add_argument("game_dir", nargs="?", default=None)
    p.add_argument("--tier", default="auto", choices=["auto", *(t.value for t in Tier)])
    p.add_argument("--dry-run", action="store_true")
    p.add_argument("--rollback", action="store_true")
    args = p.parse_args()

    target = Path(args.game_dir) if args.game_dir else config.game_dir()
    if args.rollback:
        print(asyncio.run(rollback_preset(target)).model_dump_json(indent=2))
    else:
        run_opts = config.default_apply_options()
        run_opts.dry_run = args.dry_run
        outcome = asyncio.run(apply_preset(target, args.tier, run_opts))
        print(outcome.model_dump_json(indent=2, exclude={"dryRun"}))
