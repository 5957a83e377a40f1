"""Tests for the dry-run engine."""

import json
import os

import pytest

from modtune.core import dryrun
from modtune.core.models import ChangeType, DiffAction, DryRunOptions


def _write(path, tree):
    path.write_text(json.dumps(tree), encoding="utf-8")


def test_new_key_in_empty_file_is_a_modify(config_dir):
    _write(config_dir / "test.json", {})
    result = dryrun.simulate(config_dir, {"test.json": {"newKey": "value"}}, {})

    change = result.change_for("test.json")
    assert result.success is True
    assert change.type is ChangeType.modify
    assert "newKey" in change.changedKeys
    assert change.diff[0].action is DiffAction.add


def test_absent_file_is_a_create(config_dir):
    result = dryrun.simulate(config_dir, {"test.json": {"newKey": "value"}}, {})
    assert result.change_for("test.json").type is ChangeType.create
    assert result.summary.affectedFiles == 1


def test_changed_value_without_preserve(config_dir):
    _write(config_dir / "test.json", {"existingKey": "old"})
    result = dryrun.simulate(
        config_dir,
        {"test.json": {"existingKey": "new"}},
        {"test.json": ["existingKey"]},
        DryRunOptions(preserve_user_modifications=False),
    )
    change = result.change_for("test.json")
    assert change.changedKeys == ["existingKey"]
    assert change.diff[0].oldValue == "old"
    assert change.diff[0].newValue == "new"
    assert change.diff[0].action is DiffAction.modify


def test_flagged_key_is_preserved(config_dir):
    _write(config_dir / "test.json", {"existingKey": "old"})
    result = dryrun.simulate(
        config_dir,
        {"test.json": {"existingKey": "new"}},
        {"test.json": ["existingKey"]},
    )
    change = result.change_for("test.json")
    assert change.preservedKeys == ["existingKey"]
    assert change.changedKeys == []
    assert change.type is ChangeType.skip
    assert result.warnings == ["test.json: 1 user-modified keys preserved"]


def test_equal_values_are_skipped(config_dir):
    _write(config_dir / "test.json", {"a": {"b": 1, "c": [1, 2]}})
    result = dryrun.simulate(config_dir, {"test.json": {"a": {"b": 1, "c": [1, 2]}}}, {})
    change = result.change_for("test.json")
    assert change.type is ChangeType.skip
    assert change.changedKeys == []
    assert result.summary.skippedFiles == 1
    assert result.summary.totalChangedKeys == 0


def test_only_leaves_produce_entries_and_prefix_flags_cover_subtrees(config_dir):
    _write(config_dir / "sodium-options.json", {"rendering": {"render_distance": 32}})
    result = dryrun.simulate(
        config_dir,
        {"sodium-options.json": {
            "rendering": {"render_distance": 8, "fps_limit": 120},
            "quality": {"enable_fog": True},
        }},
        {"sodium-options.json": ["rendering"]},
    )
    change = result.change_for("sodium-options.json")
    assert change.preservedKeys == ["rendering.render_distance", "rendering.fps_limit"]
    assert change.changedKeys == ["quality.enable_fog"]


def test_whole_file_flag_matches_preserving_merge(config_dir):
    _write(config_dir / "sodium-options.json", {"rendering": {"render_distance": 32}})
    result = dryrun.simulate(
        config_dir,
        {"sodium-options.json": {
            "rendering": {"render_distance": 8},
            "quality": {"enable_fog": True},
        }},
        {"sodium-options.json": [dryrun.WHOLE_FILE]},
    )
    change = result.change_for("sodium-options.json")
    # top-level key already in the file is kept, absent ones are still added
    assert change.preservedKeys == ["rendering.render_distance"]
    assert change.changedKeys == ["quality.enable_fog"]


def test_properties_files_use_their_codec(config_dir):
    (config_dir / "lithium.properties").write_text(
        "mixin.ai.pathing=true\nmixin.ai.poi=false\n", encoding="utf-8"
    )
    result = dryrun.simulate(
        config_dir,
        {"lithium.properties": {"mixin.ai.pathing": True, "mixin.ai.poi": True}},
        {},
    )
    assert result.change_for("lithium.properties").changedKeys == ["mixin.ai.poi"]


def test_show_diff_false_omits_diff(config_dir):
    result = dryrun.simulate(
        config_dir, {"test.json": {"k": 1}}, {}, DryRunOptions(show_diff=False)
    )
    assert result.change_for("test.json").diff is None


def test_validation_flags_values_a_flat_format_cannot_hold(config_dir):
    result = dryrun.simulate(config_dir, {"lithium.properties": {"list": [1, 2]}}, {})
    assert result.success is False
    assert result.errors == ["lithium.properties: round-trip validation would fail"]

    skipped = dryrun.simulate(
        config_dir,
        {"lithium.properties": {"list": [1, 2]}},
        {},
        DryRunOptions(validate_before_apply=False),
    )
    assert skipped.success is True


def test_unreadable_file_is_a_per_file_error(config_dir):
    (config_dir / "broken.json").mkdir()
    result = dryrun.simulate(
        config_dir, {"broken.json": {"a": 1}, "ok.json": {"b": 2}}, {}
    )
    assert result.success is False
    assert len(result.errors) == 1
    assert result.errors[0].startswith("broken.json")
    assert result.change_for("ok.json").type is ChangeType.create


def test_dry_run_never_touches_disk(config_dir):
    path = config_dir / "test.json"
    _write(path, {"existingKey": "old", "other": 1})
    os.utime(path, (1_000_000_000, 1_000_000_000))
    before = (path.read_bytes(), path.stat().st_mtime_ns)
    listing = sorted(p.name for p in config_dir.iterdir())

    dryrun.simulate(
        config_dir,
        {"test.json": {"existingKey": "new", "added": True}, "fresh.json": {"x": 1}},
        {},
    )

    assert (path.read_bytes(), path.stat().st_mtime_ns) == before
    assert sorted(p.name for p in config_dir.iterdir()) == listing


def test_format_result_mentions_every_file(config_dir):
    _write(config_dir / "same.json", {"a": 1})
    result = dryrun.simulate(
        config_dir, {"same.json": {"a": 1}, "new.json": {"b": 2}}, {}, preset_label="balanced"
    )
    text = dryrun.format_result(result)
    assert "Preset: balanced" in text
    assert "= same.json (skip)" in text
    assert "+ new.json (create)" in text
    assert "Changed: b" in text


@pytest.mark.parametrize("flagged", [[], ["a"], [dryrun.WHOLE_FILE]])
def test_calculate_diff_merged_tree_matches_reported_changes(flagged):
    current = {"a": 1, "b": {"c": 2}}
    preset = {"a": 10, "b": {"c": 20, "d": 30}, "e": 40}
    merged, _diff, changed, preserved = dryrun.calculate_diff(current, preset, flagged)
    for key in changed:
        path = key.split(".")
        assert dryrun.get_path(merged, path) == dryrun.get_path(preset, path)
    for key in preserved:
        path = key.split(".")
        assert dryrun.get_path(merged, path) == dryrun.get_path(current, path)
    assert not set(changed) & set(preserved)
