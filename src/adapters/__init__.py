"""Adapters — tool bindings for interpreters, resolvers, disk and network.

Public re-exports for convenient access.
"""

from src.adapters.base import (
    Adapter,
    CompileResult,
    DependencyResolver,
    Filesystem,
    InterpreterManager,
    LivenessChecker,
    NetworkProbe,
)
from src.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "CompileResult",
    "DependencyResolver",
    "Filesystem",
    "InterpreterManager",
    "LivenessChecker",
    "NetworkProbe",
]
