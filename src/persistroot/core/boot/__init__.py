"""Contexto de execução e tipos de resultado de um boot."""

from .context import BootContext  # noqa: F401
from .types import EntryState, UnitKind, UnitResult, UnitStatus  # noqa: F401
