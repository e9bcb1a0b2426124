"""
Tests for persistence — manifest file, run ledger and environment lock.
"""

import json
import re
from pathlib import Path

import pytest

from src.core.errors import LockError, ManifestError
from src.core.models.manifest import DependencyEntry, Manifest
from src.core.persistence.audit import AuditEntry, AuditWriter
from src.core.persistence.env_lock import acquire_env_lock
from src.core.persistence.manifest_file import (
    atomic_write_text,
    backup_file,
    load_manifest,
    parse_line,
    parse_lock,
    parse_manifest,
    save_manifest,
    write_text_with_backup,
)


class TestParseLine:
    def test_plain_name(self):
        entry = parse_line("requests", 3)
        assert entry.name == "requests"
        assert entry.version_spec == ""
        assert entry.source_line == 3

    def test_spec_and_comment(self):
        entry = parse_line("pandas>=2.0.0  # Data manipulation (QA requirement)")
        assert entry.version_spec == ">=2.0.0"
        assert entry.comment == "Data manipulation (QA requirement)"

    def test_extras(self):
        entry = parse_line("ray[default,tune]==2.9.0")
        assert entry.extras == ("default", "tune")
        assert entry.requirement() == "ray[default,tune]==2.9.0"

    @pytest.mark.parametrize("line", ["", "   ", "# Machine Learning", "  # indented"])
    def test_blank_and_comment_lines(self, line):
        assert parse_line(line) is None

    @pytest.mark.parametrize("line,message", [
        ("-r other.txt", "pip options"),
        ("--index-url https://example.org/simple", "pip options"),
        ("pkg @ https://example.org/pkg.whl", "URL"),
        ('pywin32; sys_platform == "win32"', "markers"),
        ("!!!", "invalid requirement"),
    ])
    def test_rejected(self, line, message):
        with pytest.raises(ManifestError, match=message):
            parse_line(line, 7)

    def test_error_names_line(self):
        with pytest.raises(ManifestError, match="line 7"):
            parse_line("-e .", 7)


class TestParseManifest:
    def test_order_and_line_numbers(self):
        text = "# header\nnumpy\n\npandas>=2\n"
        m = parse_manifest(text)
        assert m.names() == ["numpy", "pandas"]
        assert [e.source_line for e in m.entries] == [2, 4]

    def test_duplicates_kept(self):
        m = parse_manifest("numpy\nNumPy==1.26.4\n")
        assert len(m.entries) == 2

    def test_lock_skips_options_and_via_comments(self):
        text = (
            "--index-url https://pypi.org/simple\n"
            "numpy==1.26.4\n"
            "    # via pandas\n"
            "pandas==2.2.3\n"
        )
        lock = parse_lock(text)
        assert [(e.key, e.pinned_version) for e in lock.entries] == [("numpy", "1.26.4"), ("pandas", "2.2.3")]

    def test_load_missing(self, tmp_path: Path):
        with pytest.raises(ManifestError, match="not found"):
            load_manifest(tmp_path / "requirements.in")

    def test_load_prefixes_path(self, tmp_path: Path):
        path = tmp_path / "requirements.in"
        path.write_text("numpy\n-r base.txt\n")
        with pytest.raises(ManifestError, match="requirements.in: line 2"):
            load_manifest(path)


class TestEntry:
    def test_bare_version_becomes_pin(self):
        entry = DependencyEntry(name="numpy", version_spec="1.26.4")
        assert entry.version_spec == "==1.26.4"
        assert entry.is_pinned
        assert entry.pinned_version == "1.26.4"

    @pytest.mark.parametrize("spec", ["", ">=1", "==1.*", ">=1,<2"])
    def test_not_pinned(self, spec):
        assert not DependencyEntry(name="numpy", version_spec=spec).is_pinned

    def test_key_is_canonical(self):
        assert DependencyEntry(name="Scikit_Learn").key == "scikit-learn"

    def test_invalid_spec(self):
        with pytest.raises(ValueError):
            DependencyEntry(name="numpy", version_spec=">>1")


class TestWriting:
    def test_atomic_write_creates_parents(self, tmp_path: Path):
        path = tmp_path / "a" / "b" / "requirements.in"
        atomic_write_text(path, "numpy\n")
        assert path.read_text() == "numpy\n"
        assert list(path.parent.glob("*.tmp")) == []

    def test_backup_name(self, tmp_path: Path):
        path = tmp_path / "requirements.in"
        path.write_text("numpy\n")
        backup = backup_file(path)
        assert re.fullmatch(r"requirements\.in\.bak\.\d{8}_\d{6}", backup.name)
        assert backup.read_text() == "numpy\n"

    def test_backup_names_never_collide(self, tmp_path: Path):
        path = tmp_path / "requirements.in"
        path.write_text("numpy\n")
        first = backup_file(path)
        second = backup_file(path)
        assert first != second
        assert first.exists() and second.exists()

    def test_no_backup_for_missing_file(self, tmp_path: Path):
        assert backup_file(tmp_path / "requirements.in") is None

    def test_rewrite_backs_up_previous(self, tmp_path: Path):
        path = tmp_path / "requirements.in"
        path.write_text("numpy\n")

        result = write_text_with_backup(path, "numpy==1.26.4\n")

        assert result.changed
        assert result.backup.read_text() == "numpy\n"
        assert path.read_text() == "numpy==1.26.4\n"

    def test_unchanged_content_not_touched(self, tmp_path: Path):
        path = tmp_path / "requirements.in"
        path.write_text("numpy\n")

        result = write_text_with_backup(path, "numpy\n")

        assert not result.changed
        assert result.backup is None
        assert list(tmp_path.iterdir()) == [path]

    def test_save_manifest_renders_comments(self, tmp_path: Path):
        path = tmp_path / "requirements.in"
        m = Manifest(entries=[
            DependencyEntry(name="plotly", version_spec="==5.15.0", comment="pinned"),
            DependencyEntry(name="requests"),
        ])
        save_manifest(m, path)
        assert path.read_text() == "plotly==5.15.0  # pinned\nrequests\n"
        assert parse_manifest(path.read_text()).names() == ["plotly", "requests"]


class TestAuditWriter:
    """Tests for the append-only run ledger."""

    def test_write_and_read(self, tmp_state_dir: Path):
        writer = AuditWriter(state_dir=tmp_state_dir)
        writer.write(AuditEntry(operation_id="op-1", operation_type="provision", status="ok"))
        writer.write(AuditEntry(operation_id="op-2", operation_type="verify", status="failed", exit_code=7))

        entries = writer.read_all()
        assert [e.operation_id for e in entries] == ["op-1", "op-2"]
        assert entries[1].exit_code == 7
        assert writer.entry_count() == 2

    def test_one_json_object_per_line(self, tmp_state_dir: Path):
        writer = AuditWriter(state_dir=tmp_state_dir)
        writer.write(AuditEntry(operation_id="op-1", target_interpreter="3.12"))
        lines = writer.path.read_text().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["target_interpreter"] == "3.12"

    def test_read_recent(self, tmp_state_dir: Path):
        writer = AuditWriter(state_dir=tmp_state_dir)
        for i in range(5):
            writer.write(AuditEntry(operation_id=f"op-{i}"))
        assert [e.operation_id for e in writer.read_recent(2)] == ["op-3", "op-4"]
        assert writer.read_recent(0) == []

    def test_corrupt_line_skipped(self, tmp_state_dir: Path):
        writer = AuditWriter(state_dir=tmp_state_dir)
        writer.write(AuditEntry(operation_id="good"))
        with writer.path.open("a") as f:
            f.write("not json {{{\n")
        assert [e.operation_id for e in writer.read_all()] == ["good"]

    def test_missing_ledger(self, tmp_path: Path):
        writer = AuditWriter(path=tmp_path / "none.ndjson")
        assert writer.read_all() == []
        assert writer.entry_count() == 0

    def test_unwritable_ledger_does_not_raise(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        writer = AuditWriter(path=blocker / "audit.ndjson")
        writer.write(AuditEntry(operation_id="op-1"))
        assert writer.read_all() == []


class TestEnvLock:
    def test_second_acquire_fails(self, tmp_path: Path):
        path = tmp_path / ".venv.lock"
        with acquire_env_lock(path) as lock:
            assert lock.held
            with pytest.raises(LockError, match="locked by another run"):
                acquire_env_lock(path)

    def test_released_lock_can_be_retaken(self, tmp_path: Path):
        path = tmp_path / ".venv.lock"
        lock = acquire_env_lock(path)
        lock.release()
        assert not lock.held
        lock.release()
        with acquire_env_lock(path) as again:
            assert again.held

    def test_records_pid(self, tmp_path: Path):
        import os

        path = tmp_path / ".venv.lock"
        with acquire_env_lock(path):
            assert path.read_text().strip() == f"pid={os.getpid()}"
