# src/persistroot/core/boot/types.py
"""
Tipos canônicos de resultado do boot.

Este módulo define as estruturas e enums que padronizam a comunicação
entre Mounter, Reconciler, Engine e o manifest de rastreabilidade.

Componentes principais:
    - UnitKind   → store durável ou entrada da tabela
    - UnitStatus → estado final de uma unidade (APPLIED, SKIPPED, FAILED)
    - EntryState → estados da máquina de estados de uma entrada
    - UnitResult → resultado imutável de uma unidade

Invariantes:
    - Enums possuem valores textuais canônicos (serializáveis)
    - UnitResult é imutável

Limites explícitos:
    - Nenhuma lógica de execução vive neste módulo
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class UnitKind(str, Enum):
    """Tipo da unidade processada durante o boot."""
    STORE = "store"
    ENTRY = "entry"


class UnitStatus(str, Enum):
    """
    Estados finais de uma unidade.

    - APPLIED: store montado / entrada reconciliada (inclusive no-op idempotente)
    - SKIPPED: unidade opcional não aplicada; o boot continua com um warning
    - FAILED: unidade obrigatória não aplicada; o boot é interrompido
    """
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


class EntryState(str, Enum):
    """
    Máquina de estados de uma entrada:

        UNAPPLIED → VERIFYING → (LINKING | MOUNTING) → APPLIED
                    VERIFYING → FAILED (obrigatória) | SKIPPED (opcional)
                    APPLIED → VERIFYING (reinvocação; no-op se já correta)
    """
    UNAPPLIED = "unapplied"
    VERIFYING = "verifying"
    LINKING = "linking"
    MOUNTING = "mounting"
    APPLIED = "applied"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class UnitResult:
    """
    Resultado imutável do processamento de um store ou de uma entrada.

    Campos:
        - unit_id: mountpoint do store ou caminho efêmero da entrada
        - kind: STORE ou ENTRY
        - status: estado final
        - summary: resumo textual
        - required: se a unidade é neededForBoot
        - changed: se o filesystem foi alterado (False em no-op idempotente)
        - warnings: avisos não fatais
        - error: ErrorPayload serializado, quando houver falha
        - details: dados adicionais (ex.: conflitos resolvidos)
    """
    unit_id: str
    kind: UnitKind
    status: UnitStatus
    summary: str
    required: bool = False
    changed: bool = False
    warnings: List[str] = field(default_factory=list)
    error: Optional[Dict[str, Any]] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "kind": self.kind.value,
            "status": self.status.value,
            "summary": self.summary,
            "required": self.required,
            "changed": self.changed,
            "warnings": list(self.warnings),
            "error": None if self.error is None else dict(self.error),
            "details": dict(self.details),
        }
