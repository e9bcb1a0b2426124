"""
Profile use case — host facts and the interpreter the rules recommend.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from src.core.config.loader import ConfigError, adaptive_from_env, load_config
from src.core.config.signatures import load_signatures
from src.core.models.config import ProvisionConfig
from src.core.models.host import HostProfile
from src.core.models.signature import IncompatibilitySignature
from src.core.services import host_profile
from src.core.services.compatibility import matching_signatures, pinned_versions


@dataclass
class Recommendation:
    """What the compatibility rules say about this host."""

    enabled: bool = False
    interpreter: str | None = None
    signature_id: str | None = None
    reason: str = ""
    package_pins: dict[str, str] = field(default_factory=dict)
    matched: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "interpreter": self.interpreter,
            "signature_id": self.signature_id,
            "reason": self.reason,
            "package_pins": dict(self.package_pins),
            "matched": list(self.matched),
        }


def recommend_for(
    profile: HostProfile,
    signatures: list[IncompatibilitySignature],
) -> Recommendation:
    """Apply the rules to a profile. The first matching signature decides."""
    matched = matching_signatures(profile, signatures)
    rec = Recommendation(
        enabled=True,
        matched=[s.id for s in matched],
        package_pins=pinned_versions(profile, signatures),
    )
    if matched:
        first = matched[0]
        rec.interpreter = first.recommended_interpreter
        rec.signature_id = first.id
        rec.reason = first.reason
    return rec


def recommendation(
    config: ProvisionConfig,
    profile: HostProfile,
    adaptive: bool | None,
) -> Recommendation:
    """The rules' recommendation, or a disabled one when rules are off.

    ``adaptive=None`` defers to the ENVPLAN_ADAPTIVE environment variable.

    Raises:
        ConfigError: If the user signature file is missing or invalid.
    """
    if adaptive is None:
        adaptive = adaptive_from_env()
    if not adaptive:
        return Recommendation()
    return recommend_for(profile, load_signatures(config))


@dataclass
class ProfileResult:
    """Host profile plus recommendation."""

    profile: HostProfile | None = None
    recommendation: Recommendation = field(default_factory=Recommendation)
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "profile": self.profile.model_dump(mode="json") if self.profile else None,
            "recommendation": self.recommendation.to_dict(),
        }


def get_profile(
    config_path: Path | None = None,
    adaptive: bool | None = None,
    profile: HostProfile | None = None,
) -> ProfileResult:
    """Collect the host profile and, when enabled, the rules' recommendation."""
    result = ProfileResult()
    try:
        config = load_config(config_path)
        result.profile = profile or host_profile.collect(config.env_path)
        result.recommendation = recommendation(config, result.profile, adaptive)
    except ConfigError as e:
        result.error = str(e)
    return result
