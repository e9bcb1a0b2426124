"""
Tests for CLI commands — provision, reconcile, verify, profile, history.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from src.core.config.loader import ADAPTIVE_ENV_VAR
from src.core.models.host import Arch, HostProfile, OsFamily
from src.core.services import host_profile
from src.main import cli

MANIFEST = "numpy\nrequests>=2\nnumpy==1.26.4\n"


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> Path:
    """A project directory with a small manifest, used as cwd."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv(ADAPTIVE_ENV_VAR, raising=False)
    (tmp_path / "requirements.in").write_text(MANIFEST)
    return tmp_path


def _invoke(*args: str):
    return CliRunner().invoke(cli, list(args))


def _json(result) -> dict:
    return json.loads(result.stdout)


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        result = _invoke("--help")
        assert result.exit_code == 0
        for command in ("provision", "profile", "reconcile", "verify", "history"):
            assert command in result.output

    def test_version(self):
        result = _invoke("--version")
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_missing_explicit_config(self, project: Path):
        result = _invoke("--config", str(project / "nope.yml"), "provision", "--mock")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_invalid_config(self, project: Path):
        (project / "envplan.yml").write_text("parallelism: 12\n")
        result = _invoke("provision", "--mock", "--dry-run")
        assert result.exit_code == 1


class TestProvisionCommand:
    def test_dry_run_json(self, project: Path):
        result = _invoke("provision", "--mock", "--dry-run", "--json")

        assert result.exit_code == 0
        data = _json(result)
        assert data["status"] == "dry-run"
        assert data["plan"]["target_interpreter"] == "3.13.9"
        assert data["plan"]["env_action"] == "create"
        assert "result" not in data

    def test_dry_run_text(self, project: Path):
        result = _invoke("provision", "--mock", "--dry-run")
        assert result.exit_code == 0
        assert "Plan: Python" in result.output

    def test_dry_run_changes_nothing(self, project: Path):
        _invoke("provision", "--mock", "--dry-run")
        assert (project / "requirements.in").read_text() == MANIFEST
        assert not (project / ".state").exists()

    def test_parallelism_flag(self, project: Path, monkeypatch):
        monkeypatch.setattr(host_profile, "collect", lambda *a, **k: HostProfile(
            os_family=OsFamily.LINUX, arch=Arch.X86_64, cpu_cores=8, available_memory_gb=16.0,
        ))
        result = _invoke("provision", "--mock", "--dry-run", "--json", "-j", "3")
        assert _json(result)["plan"]["parallelism"] == 3

    def test_mock_run(self, project: Path):
        result = _invoke("provision", "--mock")

        assert result.exit_code == 0, result.output
        assert "done" in result.output
        assert (project / ".state" / "audit.ndjson").is_file()

    def test_mock_run_json(self, project: Path):
        result = _invoke("provision", "--mock", "--json")

        assert result.exit_code == 0
        data = _json(result)
        assert data["status"] == "ok"
        assert data["result"]["success"] is True
        assert data["result"]["states"][-1] == "done"
        assert sorted(data["result"]["installed"]) == ["numpy", "requests"]

    def test_reconciled_manifest_written_with_backup(self, project: Path):
        _invoke("provision", "--mock")

        text = (project / "requirements.in").read_text()
        assert text.count("numpy") == 1
        assert "numpy==1.26.4" in text
        assert len(list(project.glob("requirements.in.bak.*"))) == 1

    def test_bad_manifest(self, project: Path):
        (project / "requirements.in").write_text("numpy\n-r base.txt\n")
        result = _invoke("provision", "--mock")
        assert result.exit_code == 1
        assert "pip options" in result.output

    def test_missing_manifest_uses_default(self, project: Path):
        (project / "requirements.in").unlink()
        result = _invoke("provision", "--mock", "--dry-run", "--json")
        data = _json(result)
        assert data["reconcile"]["created"] is True
        assert len(data["plan"]["packages"]) > 20


class TestReconcileCommand:
    def test_preview_does_not_write(self, project: Path):
        result = _invoke("reconcile")
        assert result.exit_code == 0
        assert "--write" in result.output
        assert (project / "requirements.in").read_text() == MANIFEST

    def test_write_creates_backup(self, project: Path):
        result = _invoke("reconcile", "--write", "--json")

        assert result.exit_code == 0
        data = _json(result)
        assert data["changed"] is True
        assert data["backup"] is not None
        assert Path(data["backup"]).read_text() == MANIFEST

    def test_second_write_is_a_no_op(self, project: Path):
        _invoke("reconcile", "--write")
        result = _invoke("reconcile", "--write", "--json")
        data = _json(result)
        assert data["changed"] is False
        assert len(list(project.glob("requirements.in.bak.*"))) == 1


class TestVerifyCommand:
    def test_no_environment(self, project: Path):
        result = _invoke("verify", "--mock", "--json")
        assert result.exit_code == 7
        data = _json(result)
        assert data["result"]["failed_step"] == "verify"

    def test_text_failure(self, project: Path):
        result = _invoke("verify", "--mock")
        assert result.exit_code == 7

    def test_text_config_error(self, project: Path):
        (project / "envplan.yml").write_text("parallelism: 12\n")
        result = _invoke("verify", "--mock")
        assert result.exit_code == 1
        assert "❌" in result.output


class TestProfileCommand:
    def test_json(self, project: Path):
        result = _invoke("profile", "--json")

        assert result.exit_code == 0
        data = _json(result)
        assert data["profile"]["cpu_cores"] >= 1
        assert data["profile"]["os_family"] in ("linux", "macos", "windows")
        assert data["recommendation"]["enabled"] is False

    def test_adaptive(self, project: Path):
        result = _invoke("profile", "--adaptive", "--json")
        assert _json(result)["recommendation"]["enabled"] is True

    def test_adaptive_from_environment(self, project: Path, monkeypatch):
        monkeypatch.setenv(ADAPTIVE_ENV_VAR, "1")
        result = _invoke("profile", "--json")
        assert _json(result)["recommendation"]["enabled"] is True

    def test_text(self, project: Path):
        result = _invoke("profile")
        assert result.exit_code == 0
        assert "Host profile" in result.output


class TestHistoryCommand:
    def test_empty(self, project: Path):
        result = _invoke("history")
        assert result.exit_code == 0
        assert "No runs recorded" in result.output

    def test_after_runs(self, project: Path):
        _invoke("provision", "--mock")
        _invoke("verify", "--mock")

        result = _invoke("history", "--json")

        data = _json(result)
        assert data["total"] == 2
        assert [e["operation_type"] for e in data["entries"]] == ["provision", "verify"]
        assert data["entries"][0]["status"] == "ok"
