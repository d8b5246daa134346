"""
persistroot: Canonical Error Structures (v1)

Este módulo define o padrão canônico de erros do persistroot.
Falhas de boot são artefatos operacionais e fazem parte do contrato do
sistema: o operador precisa saber exatamente qual store ou caminho
impediu o boot para restaurá-lo (por exemplo, a partir de mídia de backup).

Todo erro é:

- explícito
- serializável
- associado a uma entrada ou store específico
- acionável (hint para o operador)
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional


# ---------------------------------------------------------------------------
# Payload canônico
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ErrorPayload:
    """
    Payload canônico de erro do persistroot.

    Campos:
    - type: código estável do erro (não é texto livre)
    - message: mensagem curta, humana e objetiva
    - details: dados estruturados (entrada, caminho, comando, errno)
    - hint: ação sugerida ao operador
    - fatal: indica se o erro bloqueia o boot (unidade obrigatória)
    """

    type: str
    message: str
    details: Dict[str, Any]
    hint: Optional[str] = None
    fatal: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Retorna representação serializável do erro."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Catálogo canônico de tipos de erro (v1)
# ---------------------------------------------------------------------------

DURABLE_STORE_UNAVAILABLE = "DURABLE_STORE_UNAVAILABLE"
DURABLE_PATH_MISSING = "DURABLE_PATH_MISSING"
EPHEMERAL_PATH_CONFLICT = "EPHEMERAL_PATH_CONFLICT"
LINK_OR_MOUNT_FAILURE = "LINK_OR_MOUNT_FAILURE"

ENGINE_EXECUTION_ERROR = "ENGINE_EXECUTION_ERROR"


# ---------------------------------------------------------------------------
# Helpers de fábrica
# ---------------------------------------------------------------------------

def ephemeral_path_conflict(
    *,
    entry_id: str,
    ephemeral_path: str,
    found: str,
    resolution: str,
) -> ErrorPayload:
    return ErrorPayload(
        type=EPHEMERAL_PATH_CONFLICT,
        message="Conteúdo divergente no caminho efêmero foi substituído",
        details={
            "entry_id": entry_id,
            "ephemeral_path": ephemeral_path,
            "found": found,
            "resolution": resolution,
        },
        hint=None,
        fatal=False,
    )


def engine_execution_error(
    *,
    unit_id: Optional[str] = None,
    exc_type: Optional[str] = None,
    exc_message: Optional[str] = None,
    fatal: bool = False,
) -> ErrorPayload:
    return ErrorPayload(
        type=ENGINE_EXECUTION_ERROR,
        message="Falha inesperada durante o boot",
        details={
            "unit_id": unit_id,
            "exc_type": exc_type,
            "exc_message": exc_message,
        },
        hint="Verifique o manifest do boot e o journal. Nenhum fallback é aplicado automaticamente.",
        fatal=fatal,
    )
