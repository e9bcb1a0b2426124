"""
Tests for configuration loading — envplan.yml parsing and validation.
"""

import textwrap
from pathlib import Path

import pytest

from src.core.config.loader import (
    ADAPTIVE_ENV_VAR,
    ConfigError,
    adaptive_from_env,
    find_project_file,
    load_config,
)
from src.core.models.config import DEFAULT_PROBE_URL, ProvisionConfig


@pytest.fixture
def valid_config_yml(tmp_path: Path) -> Path:
    """Create a valid envplan.yml in a temp directory."""
    content = textwrap.dedent("""\
        name: analytics
        env_dir: envs/main
        manifest: deps/requirements.in
        critical_packages:
          - torch
          - scikit-learn
        parallelism: 3
        min_disk_gb: 5
        signatures_file: rules.yml
    """)
    path = tmp_path / "envplan.yml"
    path.write_text(content)
    return path


class TestLoadConfig:
    """Tests for load_config."""

    def test_valid_config(self, valid_config_yml: Path):
        config = load_config(valid_config_yml)
        assert config.name == "analytics"
        assert config.critical_packages == ["torch", "scikit-learn"]
        assert config.parallelism == 3
        assert config.min_disk_gb == 5.0

    def test_paths_resolved_against_config_dir(self, valid_config_yml: Path):
        config = load_config(valid_config_yml)
        root = valid_config_yml.parent.resolve()
        assert config.root == root
        assert config.env_path == root / "envs" / "main"
        assert config.manifest_path == root / "deps" / "requirements.in"
        assert config.signatures_path == root / "rules.yml"
        assert config.lock_marker_path == root / "envs" / "main.lock"

    def test_absolute_paths_kept(self, tmp_path: Path):
        target = tmp_path / "elsewhere" / ".venv"
        path = tmp_path / "envplan.yml"
        path.write_text(f"env_dir: {target}\n")
        assert load_config(path).env_path == target

    def test_wrapped_under_envplan_key(self, tmp_path: Path):
        path = tmp_path / "envplan.yml"
        path.write_text("envplan:\n  name: wrapped\n  parallelism: 2\n")
        config = load_config(path)
        assert config.name == "wrapped"
        assert config.parallelism == 2

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        path = tmp_path / "envplan.yml"
        path.write_text("")
        config = load_config(path)
        assert config.env_dir == ".venv"
        assert config.root == tmp_path.resolve()

    def test_no_file_gives_defaults(self, tmp_path: Path):
        config = load_config(start_dir=tmp_path)
        assert config.root == tmp_path.resolve()
        assert config.network_probe_url == DEFAULT_PROBE_URL
        assert config.interpreter_series == ["3.11", "3.12", "3.13"]

    def test_search_walks_up(self, valid_config_yml: Path):
        nested = valid_config_yml.parent / "a" / "b"
        nested.mkdir(parents=True)
        assert load_config(start_dir=nested).name == "analytics"


class TestConfigErrors:
    def test_explicit_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "envplan.yml"
        path.write_text("name: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "envplan.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    @pytest.mark.parametrize("value", [0, 9, -2])
    def test_parallelism_out_of_range(self, tmp_path: Path, value):
        path = tmp_path / "envplan.yml"
        path.write_text(f"parallelism: {value}\n")
        with pytest.raises(ConfigError, match="parallelism"):
            load_config(path)

    def test_wrong_type(self, tmp_path: Path):
        path = tmp_path / "envplan.yml"
        path.write_text("min_disk_gb: lots\n")
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(path)


class TestFindProjectFile:
    def test_found_in_start_dir(self, valid_config_yml: Path):
        assert find_project_file(valid_config_yml.parent) == valid_config_yml.resolve()

    def test_not_found(self, tmp_path: Path):
        assert find_project_file(tmp_path) is None


class TestDefaults:
    def test_no_signatures_file(self):
        assert ProvisionConfig().signatures_path is None

    def test_parallelism_unset(self):
        assert ProvisionConfig().parallelism is None


class TestAdaptiveFromEnv:
    @pytest.mark.parametrize("value,expected", [
        ("1", True),
        ("true", True),
        ("ON", True),
        ("0", False),
        ("", False),
        ("nope", False),
    ])
    def test_values(self, monkeypatch, value, expected):
        monkeypatch.setenv(ADAPTIVE_ENV_VAR, value)
        assert adaptive_from_env() is expected

    def test_unset(self, monkeypatch):
        monkeypatch.delenv(ADAPTIVE_ENV_VAR, raising=False)
        assert adaptive_from_env() is False
