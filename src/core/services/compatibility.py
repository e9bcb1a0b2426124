"""
Compatibility rule engine — host profile + signatures → interpreter override.

Signatures are scanned linearly in declaration order. When several match
the same host, the FIRST one wins, not the most specific one. Put narrow
rules before broad ones.
"""

from __future__ import annotations

import logging

from src.core.models.host import HostProfile
from src.core.models.signature import IncompatibilitySignature
from src.core.services.versions import in_range

logger = logging.getLogger(__name__)


def matches(profile: HostProfile, signature: IncompatibilitySignature) -> bool:
    """Whether ``signature`` describes this host."""
    if profile.os_family != signature.os_family:
        return False
    if profile.arch != signature.arch:
        return False
    low, high = signature.os_version_range
    return in_range(profile.os_version, low, high)


def matching_signatures(
    profile: HostProfile,
    signatures: list[IncompatibilitySignature],
) -> list[IncompatibilitySignature]:
    """All signatures matching the host, in declaration order."""
    return [s for s in signatures if matches(profile, s)]


def recommend(
    profile: HostProfile,
    signatures: list[IncompatibilitySignature],
) -> str | None:
    """Recommended interpreter version for this host, or None.

    Returns the ``recommended_interpreter`` of the first matching
    signature. None means "no override": the planner picks.
    """
    for signature in signatures:
        if matches(profile, signature):
            logger.info(
                "Signature '%s' matches host (%s): recommending Python %s",
                signature.id, signature.reason or "no reason given",
                signature.recommended_interpreter,
            )
            return signature.recommended_interpreter
    logger.debug("No signature matches %s", profile.summary())
    return None


def pinned_versions(
    profile: HostProfile,
    signatures: list[IncompatibilitySignature],
) -> dict[str, str]:
    """Package pins from every matching signature; earlier signatures win."""
    pins: dict[str, str] = {}
    for signature in matching_signatures(profile, signatures):
        for name, version in signature.package_pins.items():
            pins.setdefault(name, version)
    return pins
