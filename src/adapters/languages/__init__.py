"""Language adapters — pyenv interpreters, pip-tools resolution, import probes."""

from src.adapters.languages.pip_tools import PipToolsResolver
from src.adapters.languages.pyenv import PyenvInterpreterManager
from src.adapters.languages.python import PythonImportProbe

__all__ = ["PipToolsResolver", "PyenvInterpreterManager", "PythonImportProbe"]
