"""
Signature loader — built-in catalog plus an optional user YAML file.

The user file is a YAML list of signature mappings (or a mapping with a
``signatures:`` key). Its entries go after the built-ins unless the
config asks for them to be prepended. Since the first matching
signature wins, order is policy.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from src.core.config.loader import ConfigError
from src.core.data import DataRegistry, get_registry
from src.core.models.config import ProvisionConfig
from src.core.models.signature import IncompatibilitySignature

logger = logging.getLogger(__name__)


def load_signature_file(path: Path) -> list[IncompatibilitySignature]:
    """Parse a user signature file.

    Raises:
        ConfigError: If the file is unreadable, malformed, or an entry is invalid.
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read signature file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return []
    if isinstance(data, dict):
        data = data.get("signatures", [])
    if not isinstance(data, list):
        raise ConfigError(f"Expected a list of signatures in {path}, got {type(data).__name__}")

    result = []
    for i, item in enumerate(data):
        try:
            result.append(IncompatibilitySignature.model_validate(item))
        except Exception as e:
            raise ConfigError(f"Invalid signature #{i + 1} in {path}: {e}") from e
    return result


def load_signatures(
    config: ProvisionConfig,
    registry: DataRegistry | None = None,
) -> list[IncompatibilitySignature]:
    """All signatures for this run, in match order."""
    builtin = list((registry or get_registry()).signatures)

    path = config.signatures_path
    if path is None:
        return builtin
    if not path.is_file():
        raise ConfigError(f"Signature file not found: {path}")

    extra = load_signature_file(path)
    logger.info("Loaded %d user signature(s) from %s", len(extra), path)

    seen = {s.id for s in extra}
    dupes = [s.id for s in builtin if s.id in seen]
    if dupes:
        logger.warning("User signatures reuse built-in ids: %s", ", ".join(dupes))

    return extra + builtin if config.signatures_prepend else builtin + extra
