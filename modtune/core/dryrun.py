# modtune/core/dryrun.py
"""
Modtune – dry-run engine
========================

Answers "what would applying this preset change?" without writing a
single byte.  For every target file the current tree is loaded (empty if
absent) and every *leaf* path of the preset tree is classified:

    flagged user-modified        → preserve
    absent in current            → add
    present, different value     → modify
    present, equal value         → (no entry)

Files with no changed key are `skip`, otherwise `create` (file absent)
or `modify`.

User-modified keys are dot-joined leaf paths, or a prefix of one.  The
whole-file marker `"*"` means "every key the file already has", which is
exactly what `deep_merge(..., preserve_existing=True)` keeps during a
real apply.
"""

from __future__ import annotations

import copy
import sys
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from modtune.core import codec, presets
from modtune.core.models import (
    ChangeType,
    ConfigTree,
    DiffAction,
    DiffEntry,
    DryRunOptions,
    DryRunResult,
    DryRunSummary,
    FileChange,
    FileFormat,
)

WHOLE_FILE = "*"

_MISSING = object()


# ──────────────────────────────────────────────
# 1. Tree helpers
# ──────────────────────────────────────────────
def iter_leaves(tree: ConfigTree, prefix: Tuple[str, ...] = ()) -> Iterator[Tuple[Tuple[str, ...], Any]]:
    """Yield (path, value) for every non-dict value; lists are leaves."""
    for key, value in tree.items():
        path = prefix + (key,)
        if isinstance(value, dict):
            yield from iter_leaves(value, path)
        else:
            yield path, value


def get_path(tree: Optional[ConfigTree], path: Sequence[str]) -> Any:
    current: Any = tree
    for part in path:
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def set_path(tree: ConfigTree, path: Sequence[str], value: Any) -> None:
    current = tree
    for part in path[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[path[-1]] = copy.deepcopy(value)


def _is_flagged(path: Tuple[str, ...], flagged: Sequence[str], current: Optional[ConfigTree]) -> bool:
    if WHOLE_FILE in flagged:
        # mirrors deep_merge(preserve_existing=True): top-level key decides
        return current is not None and path[0] in current
    dotted = ".".join(path)
    return any(dotted == f or dotted.startswith(f + ".") for f in flagged)


def _format_of(filename: str) -> Tuple[FileFormat, Optional[str]]:
    try:
        mf = presets.managed_file(filename)
        return mf.format, mf.tomlSection
    except KeyError:
        return codec.format_for_path(filename), None


def calculate_diff(
    current: Optional[ConfigTree],
    preset: ConfigTree,
    user_modified_keys: Sequence[str] = (),
) -> Tuple[ConfigTree, List[DiffEntry], List[str], List[str]]:
    """Return (merged, diff, changed_keys, preserved_keys)."""
    merged: ConfigTree = copy.deepcopy(current) if current else {}
    diff: List[DiffEntry] = []
    changed: List[str] = []
    preserved: List[str] = []

    for path, preset_value in iter_leaves(preset):
        key = ".".join(path)
        current_value = get_path(current, path)
        old = None if current_value is _MISSING else current_value

        if _is_flagged(path, user_modified_keys, current):
            preserved.append(key)
            diff.append(DiffEntry(key=key, oldValue=old, newValue=preset_value,
                                  action=DiffAction.preserve))
            continue

        if current_value is _MISSING:
            action = DiffAction.add
        elif not codec.trees_equal(current_value, preset_value):
            action = DiffAction.modify
        else:
            continue

        set_path(merged, path, preset_value)
        changed.append(key)
        diff.append(DiffEntry(key=key, oldValue=old, newValue=preset_value, action=action))

    return merged, diff, changed, preserved


# ──────────────────────────────────────────────
# 2. Simulation
# ──────────────────────────────────────────────
def simulate(
    config_dir: Path,
    preset_configs: Mapping[str, ConfigTree],
    user_modified_keys: Mapping[str, Sequence[str]],
    options: Optional[DryRunOptions] = None,
    preset_label: str = "unknown",
) -> DryRunResult:
    """
    Preview a preset application.  Reads only; never writes, never
    touches mtimes.
    """
    opts = options or DryRunOptions()
    config_dir = Path(config_dir)

    changes: List[FileChange] = []
    warnings: List[str] = []
    errors: List[str] = []
    total_changed = 0

    for filename, preset_tree in preset_configs.items():
        path = config_dir / filename
        fmt, section = _format_of(filename)
        try:
            exists = path.exists()
            current = codec.load_file(path, fmt) if exists else None
            flagged: Sequence[str] = (
                user_modified_keys.get(filename, ()) if opts.preserve_user_modifications else ()
            )

            merged, diff, changed, preserved = calculate_diff(current, preset_tree, flagged)

            if opts.validate_before_apply and changed:
                rendered = codec.serialize(merged, fmt, section)
                if not codec.round_trip_valid(merged, rendered, fmt):
                    errors.append(f"{filename}: round-trip validation would fail")

            if not changed:
                change = FileChange(
                    file=filename,
                    type=ChangeType.skip,
                    reason="No changes needed",
                    preservedKeys=preserved,
                )
            else:
                change = FileChange(
                    file=filename,
                    type=ChangeType.modify if exists else ChangeType.create,
                    changedKeys=changed,
                    preservedKeys=preserved,
                )
                total_changed += len(changed)
            change.diff = diff if opts.show_diff else None
            changes.append(change)

            if preserved:
                warnings.append(f"{filename}: {len(preserved)} user-modified keys preserved")

        except OSError as exc:
            sys.stderr.write(f"[dry-run] cannot inspect {filename}: {exc}\n")
            errors.append(f"{filename}: {exc}")

    return DryRunResult(
        success=not errors,
        changes=changes,
        warnings=warnings,
        errors=errors,
        summary=DryRunSummary(
            preset=preset_label,
            affectedFiles=sum(1 for c in changes if c.type is not ChangeType.skip),
            skippedFiles=sum(1 for c in changes if c.type is ChangeType.skip),
            totalChangedKeys=total_changed,
        ),
    )


def format_result(result: DryRunResult) -> str:
    """Plain-text report for logs and the CLI."""
    lines: List[str] = [
        "=== DRY RUN RESULT ===",
        f"Status: {'SUCCESS' if result.success else 'FAILED'}",
        f"Preset: {result.summary.preset}",
        f"Files affected: {result.summary.affectedFiles}",
        f"Files skipped: {result.summary.skippedFiles}",
        f"Total keys changed: {result.summary.totalChangedKeys}",
        "",
    ]

    if result.warnings:
        lines.append("Warnings:")
        lines.extend(f"  ! {w}" for w in result.warnings)
        lines.append("")

    if result.errors:
        lines.append("Errors:")
        lines.extend(f"  x {e}" for e in result.errors)
        lines.append("")

    markers: Dict[ChangeType, str] = {
        ChangeType.create: "+",
        ChangeType.modify: "~",
        ChangeType.skip: "=",
    }
    lines.append("Changes:")
    for change in result.changes:
        lines.append(f"  {markers[change.type]} {change.file} ({change.type.value})")
        if change.changedKeys:
            lines.append(f"      Changed: {', '.join(change.changedKeys)}")
        if change.preservedKeys:
            lines.append(f"      Preserved: {', '.join(change.preservedKeys)}")

    return "\n".join(lines)
