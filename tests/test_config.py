"""Tests for the settings helpers."""

import json

from modtune.core import config


def test_defaults_without_settings_file():
    cfg = config.read_config()
    assert cfg["defaultTier"] == "auto"
    assert cfg["retention"] == {
        "maxBackups": config.DEFAULT_MAX_BACKUPS,
        "maxAgeDays": config.DEFAULT_MAX_AGE_DAYS,
    }


def test_nested_sections_merge_one_level_deep():
    config.save_config({"apply": {"createBackup": False}, "gameDir": "/games/mc"})
    cfg = config.read_config()
    assert cfg["apply"] == {
        "preserveUserModifications": True,
        "checkIncompatibilities": True,
        "createBackup": False,
    }
    assert str(config.game_dir()) == "/games/mc"


def test_default_apply_options_follow_settings():
    config.save_config({"apply": {"checkIncompatibilities": False}})
    opts = config.default_apply_options()
    assert opts.check_incompatibilities is False
    assert opts.create_backup is True
    assert opts.dry_run is False


def test_retention_limits():
    config.save_config({"retention": {"maxBackups": 4, "maxAgeDays": 2}})
    assert config.retention_limits() == (4, 2)


def test_corrupt_settings_are_backed_up_and_ignored(isolated_home):
    path = isolated_home / "settings" / config.CONFIG_FILE_NAME
    path.write_text("{broken", encoding="utf-8")
    assert config.read_config()["defaultTier"] == "auto"
    assert path.with_suffix(".bak").read_text(encoding="utf-8") == "{broken"


def test_save_is_atomic_json(isolated_home):
    config.save_config({"defaultTier": "balanced"})
    path = isolated_home / "settings" / config.CONFIG_FILE_NAME
    assert json.loads(path.read_text(encoding="utf-8")) == {"defaultTier": "balanced"}
    assert not path.with_suffix(".tmp").exists()


def test_game_paths():
    game = config.GAME_DIR
    assert config.config_dir_for(game) == game / "config"
    assert config.backup_dir_for(game / "config") == game / "config" / ".launcher-backups"
