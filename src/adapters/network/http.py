"""
HTTP probe — is the package index reachable right now?

A single HEAD request with a finite timeout. Used at PREFLIGHT only;
its failures are reported, never retried.
"""

from __future__ import annotations

import logging
import time
import urllib.error
import urllib.request

from src.adapters.base import NetworkProbe
from src.core.models.receipt import ErrorKind, Receipt

logger = logging.getLogger(__name__)

USER_AGENT = "envplan/0.1"


class HttpProbe(NetworkProbe):
    """HEAD request via urllib."""

    @property
    def name(self) -> str:
        return "http"

    def is_available(self) -> bool:
        return True

    def reachable(self, url: str, timeout: float) -> Receipt:
        start = time.monotonic()
        try:
            req = urllib.request.Request(url, method="HEAD", headers={"User-Agent": USER_AGENT})
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                elapsed = int((time.monotonic() - start) * 1000)
                return Receipt.success(
                    self.name, "reachable", f"{url} answered {resp.getcode()}",
                    target=url, duration_ms=elapsed,
                    metadata={"status": resp.getcode(), "latency_ms": elapsed},
                )
        except urllib.error.HTTPError as e:
            # The server answered; only a server-side error counts as unreachable
            elapsed = int((time.monotonic() - start) * 1000)
            if e.code < 500:
                return Receipt.success(
                    self.name, "reachable", f"{url} answered {e.code}",
                    target=url, duration_ms=elapsed,
                    metadata={"status": e.code, "latency_ms": elapsed},
                )
            error = f"{url} answered {e.code}"
        except (urllib.error.URLError, TimeoutError, OSError, ValueError) as e:
            error = f"{url} unreachable: {str(e)[:200]}"

        elapsed = int((time.monotonic() - start) * 1000)
        logger.warning("Network probe failed: %s", error)
        return Receipt.failure(
            self.name, "reachable", error,
            kind=ErrorKind.TRANSIENT, target=url, duration_ms=elapsed,
        )
