"""
ProvisionConfig — project settings loaded from envplan.yml.

Path fields are stored as written in the file and resolved against
``root`` (the config file's directory, or the working directory when
running without a config file).
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from src.core.models.plan import MAX_PARALLELISM, MIN_PARALLELISM

DEFAULT_PROBE_URL = "https://pypi.org/simple/"
DEFAULT_INTERPRETER_SERIES = ["3.11", "3.12", "3.13"]


class ProvisionConfig(BaseModel):
    """Settings for one managed environment."""

    name: str = "envplan"
    root: Path = Field(default_factory=Path.cwd)

    env_dir: str = ".venv"
    manifest: str = "requirements.in"
    lock_file: str = "requirements.txt"
    freeze_file: str = "requirements.lock.txt"
    cache_dir: str = ".pip-cache"
    wheel_dir: str = ".wheels"
    state_dir: str = ".state"

    # Distribution names whose import is probed during verification.
    # Empty means "the default data-science set, where declared".
    critical_packages: list[str] = Field(default_factory=list)

    parallelism: int | None = None
    min_disk_gb: float = Field(default=2.0, ge=0)
    network_probe_url: str = DEFAULT_PROBE_URL
    network_timeout_seconds: float = Field(default=5.0, gt=0)

    signatures_file: str | None = None
    signatures_prepend: bool = False
    interpreter_series: list[str] = Field(
        default_factory=lambda: list(DEFAULT_INTERPRETER_SERIES)
    )

    @field_validator("parallelism")
    @classmethod
    def _check_parallelism(cls, value: int | None) -> int | None:
        if value is not None and not MIN_PARALLELISM <= value <= MAX_PARALLELISM:
            raise ValueError(
                f"parallelism must be between {MIN_PARALLELISM} and {MAX_PARALLELISM}"
            )
        return value

    def _resolve(self, value: str) -> Path:
        path = Path(value).expanduser()
        return path if path.is_absolute() else self.root / path

    # ── Resolved paths ──────────────────────────────────────────

    @property
    def env_path(self) -> Path:
        return self._resolve(self.env_dir)

    @property
    def manifest_path(self) -> Path:
        return self._resolve(self.manifest)

    @property
    def lock_path(self) -> Path:
        return self._resolve(self.lock_file)

    @property
    def freeze_path(self) -> Path:
        return self._resolve(self.freeze_file)

    @property
    def cache_path(self) -> Path:
        return self._resolve(self.cache_dir)

    @property
    def wheel_path(self) -> Path:
        return self._resolve(self.wheel_dir)

    @property
    def state_path(self) -> Path:
        return self._resolve(self.state_dir)

    @property
    def signatures_path(self) -> Path | None:
        if not self.signatures_file:
            return None
        return self._resolve(self.signatures_file)

    @property
    def lock_marker_path(self) -> Path:
        """Advisory lock file guarding the environment directory."""
        env = self.env_path
        return env.with_name(env.name + ".lock")
