"""Tests for configuration loading and validation.

Tests cover:
- Loading a valid config file and section defaults
- Missing file, malformed YAML and schema errors
- Schema version check
- Singleton behavior and default fallback
- validate_config_file messages
"""

from pathlib import Path

import pytest

from tradeflow.config import (
    get_config,
    load_config,
    reset_config,
    validate_config_file,
)
from tradeflow.config_schema import BUNDLED_SCHEMA_DIR, AppConfig, TeamConfig
from tradeflow.core.errors import ConfigLoadError, ConfigValidationError

# ---------------------------------------------------------------------------
# load_config
# ---------------------------------------------------------------------------


def test_load_valid_config(config_file: Path):
    """Sections present in the file override defaults; others keep them."""
    config = load_config(config_file)

    assert config.schema_version == 1
    assert config.team.default_slot_limit == 3
    assert config.team.slot_limits == {"supplier": 8}
    assert config.validation.orphan_policy == "warn"
    assert config.schemas.path == str(BUNDLED_SCHEMA_DIR)
    assert config.templates.default == "deployment.json"


def test_load_empty_file_uses_defaults(temp_config_dir: Path):
    """An empty config.yaml is a valid all-defaults config."""
    path = temp_config_dir / "config.yaml"
    path.write_text("")

    config = load_config(path)

    assert config == AppConfig()


def test_load_missing_file_raises(tmp_path: Path):
    with pytest.raises(ConfigLoadError, match="not found"):
        load_config(tmp_path / "missing.yaml")


def test_load_malformed_yaml_raises(temp_config_dir: Path):
    path = temp_config_dir / "config.yaml"
    path.write_text("team: [unclosed\n")

    with pytest.raises(ConfigLoadError, match="Failed to parse YAML"):
        load_config(path)


def test_load_non_mapping_raises(temp_config_dir: Path):
    path = temp_config_dir / "config.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ConfigLoadError, match="must be a YAML mapping"):
        load_config(path)


def test_invalid_orphan_policy_reports_field(temp_config_dir: Path):
    """Validation errors name the offending field."""
    path = temp_config_dir / "config.yaml"
    path.write_text("validation:\n  orphan_policy: ignore\n")

    with pytest.raises(ConfigValidationError) as exc_info:
        load_config(path)

    assert "validation.orphan_policy" in str(exc_info.value)


def test_newer_schema_version_rejected(temp_config_dir: Path):
    path = temp_config_dir / "config.yaml"
    path.write_text("schema_version: 99\n")

    with pytest.raises(ConfigValidationError, match="newer than supported"):
        load_config(path)


def test_schema_path_traversal_rejected(temp_config_dir: Path):
    path = temp_config_dir / "config.yaml"
    path.write_text("schemas:\n  path: ../../etc\n")

    with pytest.raises(ConfigValidationError, match="path traversal"):
        load_config(path)


def test_default_template_must_be_file_name(temp_config_dir: Path):
    path = temp_config_dir / "config.yaml"
    path.write_text("templates:\n  default: sub/deployment.json\n")

    with pytest.raises(ConfigValidationError, match="file name"):
        load_config(path)


# ---------------------------------------------------------------------------
# TeamConfig
# ---------------------------------------------------------------------------


def test_slot_limits_are_case_insensitive():
    team = TeamConfig(default_slot_limit=4, slot_limits={"Supplier": 9})

    assert team.limit_for("supplier") == 9
    assert team.limit_for("SUPPLIER") == 9
    assert team.limit_for("manager") == 4


def test_slot_limit_out_of_range_rejected():
    with pytest.raises(ValueError, match="between 1 and 20"):
        TeamConfig(slot_limits={"manager": 50})


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------


def test_get_config_reads_env_path(set_config_env: None):
    config = get_config()

    assert config.validation.orphan_policy == "warn"
    assert get_config() is config


def test_get_config_falls_back_to_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """No env override and no default file: built-in defaults."""
    monkeypatch.delenv("TRADEFLOW_CONFIG_PATH", raising=False)
    monkeypatch.chdir(tmp_path)

    assert get_config() == AppConfig()


def test_get_config_explicit_missing_path_raises(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """An env override that points nowhere is an error, not a silent default."""
    monkeypatch.setenv("TRADEFLOW_CONFIG_PATH", str(tmp_path / "nope.yaml"))

    with pytest.raises(ConfigLoadError):
        get_config()


def test_reset_config_reloads(config_file: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("TRADEFLOW_CONFIG_PATH", str(config_file))
    first = get_config()

    config_file.write_text("validation:\n  orphan_policy: fail\n")
    assert get_config() is first

    reset_config()
    assert get_config().validation.orphan_policy == "fail"


# ---------------------------------------------------------------------------
# validate_config_file
# ---------------------------------------------------------------------------


def test_validate_config_file_valid(config_file: Path):
    is_valid, message = validate_config_file(config_file)

    assert is_valid
    assert "orphan policy: warn" in message


def test_validate_config_file_invalid(temp_config_dir: Path):
    path = temp_config_dir / "config.yaml"
    path.write_text("team:\n  default_slot_limit: 0\n")

    is_valid, message = validate_config_file(path)

    assert not is_valid
    assert message.startswith("Validation error")
