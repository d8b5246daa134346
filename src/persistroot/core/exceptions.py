"""
persistroot: Canonical Exceptions (v1)

Exceções tipadas levantadas pelo Mounter e pelo Reconciler.

Objetivo:
- Permitir que cada etapa levante falhas semânticas com dados estruturados
- Facilitar o mapeamento determinístico para ErrorPayload
- Evitar OSError/RuntimeError genéricos no caminho crítico do boot
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .errors import (
    DURABLE_PATH_MISSING,
    DURABLE_STORE_UNAVAILABLE,
    LINK_OR_MOUNT_FAILURE,
    ErrorPayload,
)


@dataclass(frozen=True)
class PersistException(Exception):
    """Base class para exceções internas do persistroot.

    Importante:
    - Sempre carregar dados estruturados em `details`
    - Mensagem deve ser curta e humana
    """

    message: str
    details: Dict[str, Any]
    hint: Optional[str] = None

    code = "PERSIST_ERROR"

    def __str__(self) -> str:  # pragma: no cover
        return self.message

    def to_payload(self, *, fatal: bool) -> ErrorPayload:
        return ErrorPayload(
            type=self.code,
            message=self.message,
            details=dict(self.details),
            hint=self.hint,
            fatal=fatal,
        )


@dataclass(frozen=True)
class DurableStoreUnavailable(PersistException):
    """Store durável não montado ou não legível."""

    code = DURABLE_STORE_UNAVAILABLE


@dataclass(frozen=True)
class DurablePathMissing(PersistException):
    """Caminho durável não existe ou tem tipo diferente do declarado."""

    code = DURABLE_PATH_MISSING


@dataclass(frozen=True)
class LinkOrMountSyscallFailure(PersistException):
    """symlink, mount, umount, chown ou chmod falhou."""

    code = LINK_OR_MOUNT_FAILURE
