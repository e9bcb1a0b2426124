"""
Adapter registry — one adapter per role, real or mock.

The registry is the single point of adapter management. The engine
never constructs adapters itself; it asks the registry for the
interpreter manager, resolver, liveness checker, filesystem and network
probe. ``default()`` wires the real toolchain from a ProvisionConfig,
``mock()`` wires in-memory doubles sharing one MockHost.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, TypeVar

from src.adapters.base import (
    Adapter,
    DependencyResolver,
    Filesystem,
    InterpreterManager,
    LivenessChecker,
    NetworkProbe,
)
from src.core.models.config import ProvisionConfig

if TYPE_CHECKING:
    from src.adapters.mock import MockHost

logger = logging.getLogger(__name__)

A = TypeVar("A", bound=Adapter)

ROLES = ("interpreter", "resolver", "liveness", "filesystem", "network")


class AdapterRegistry:
    """Holds the adapter for each role.

    Features:
        - Register/unregister adapters by role
        - Typed accessors used by the engine
        - Query adapter availability
    """

    def __init__(self, mock_mode: bool = False):
        self._adapters: dict[str, Adapter] = {}
        self._mock_mode = mock_mode

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    def register(self, adapter: Adapter) -> None:
        """Register an adapter in its role's slot."""
        role = adapter.role
        if role not in ROLES:
            raise ValueError(f"Unknown adapter role {role!r} for {adapter!r}")
        if role in self._adapters:
            logger.warning("Overwriting %s adapter: %s", role, self._adapters[role].name)
        self._adapters[role] = adapter
        logger.debug("Registered %s adapter: %s", role, adapter.name)

    def unregister(self, role: str) -> None:
        """Remove the adapter for a role."""
        self._adapters.pop(role, None)

    def get(self, role: str) -> Adapter | None:
        """Look up an adapter by role."""
        return self._adapters.get(role)

    def list_adapters(self) -> list[str]:
        """List all registered roles."""
        return list(self._adapters.keys())

    def _require(self, role: str, kind: type[A]) -> A:
        adapter = self._adapters.get(role)
        if adapter is None:
            raise LookupError(f"No {role} adapter registered")
        if not isinstance(adapter, kind):
            raise TypeError(f"{role} adapter {adapter!r} is not a {kind.__name__}")
        return adapter

    @property
    def interpreter(self) -> InterpreterManager:
        return self._require("interpreter", InterpreterManager)

    @property
    def resolver(self) -> DependencyResolver:
        return self._require("resolver", DependencyResolver)

    @property
    def liveness(self) -> LivenessChecker:
        return self._require("liveness", LivenessChecker)

    @property
    def filesystem(self) -> Filesystem:
        return self._require("filesystem", Filesystem)

    @property
    def network(self) -> NetworkProbe:
        return self._require("network", NetworkProbe)

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Get availability status of all registered adapters."""
        status = {}
        for role, adapter in self._adapters.items():
            try:
                available = adapter.is_available()
            except Exception:
                available = False
            status[role] = {
                "name": adapter.name,
                "available": available,
                "type": adapter.__class__.__name__,
            }
        return status

    # ── Factories ───────────────────────────────────────────────

    @classmethod
    def default(cls, config: ProvisionConfig) -> AdapterRegistry:
        """The real toolchain: pyenv, pip-tools, import probes, local disk, HTTP."""
        from src.adapters.languages.pip_tools import PipToolsResolver
        from src.adapters.languages.pyenv import PyenvInterpreterManager
        from src.adapters.languages.python import PythonImportProbe
        from src.adapters.network.http import HttpProbe
        from src.adapters.shell.filesystem import LocalFilesystem

        registry = cls()
        registry.register(PyenvInterpreterManager())
        registry.register(PipToolsResolver(cache_dir=config.cache_path, wheel_dir=config.wheel_path))
        registry.register(PythonImportProbe())
        registry.register(LocalFilesystem())
        registry.register(HttpProbe())
        return registry

    @classmethod
    def mock(cls, host: MockHost | None = None) -> AdapterRegistry:
        """In-memory doubles sharing one MockHost."""
        from src.adapters.mock import (
            MockFilesystem,
            MockHost,
            MockInterpreterManager,
            MockLivenessChecker,
            MockNetworkProbe,
            MockResolver,
        )

        host = host or MockHost()
        registry = cls(mock_mode=True)
        registry.register(MockInterpreterManager(host))
        registry.register(MockResolver(host))
        registry.register(MockLivenessChecker(host))
        registry.register(MockFilesystem(host))
        registry.register(MockNetworkProbe(host))
        return registry
