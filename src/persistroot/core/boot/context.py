# src/persistroot/core/boot/context.py
"""
Contexto de execução de um boot.

Este módulo define o `BootContext`, a estrutura passada explicitamente ao
Mounter, ao Reconciler e ao Engine durante uma execução.

O BootContext é o único meio de:
    - acessar a configuração efetiva (carregada uma vez no início do processo)
    - registrar eventos de log estruturados
    - coletar warnings não fatais por unidade (store ou entrada)

Princípios fundamentais:
    - Isolamento por execução (cada boot possui seu próprio contexto)
    - Ausência de estado global compartilhado

Invariantes:
    - Eventos sempre incluem `run_id` e `unit_id`
    - Warnings são agrupados por `unit_id`

Limites explícitos:
    - Não monta nem reconcilia nada
    - Não persiste dados automaticamente
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List

logger = logging.getLogger("persistroot")

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


@dataclass
class BootContext:
    """
    Contexto compartilhado de uma execução de boot.

    Decisões arquiteturais:
        - Eventos são estruturados (dicts), não texto livre
        - Cada evento também é espelhado no logger `persistroot`, para que a
          CLI e o journal mostrem o progresso em tempo real

    Invariantes:
        - Cada execução possui um BootContext único
        - Warnings são associados explicitamente a uma unidade
    """
    run_id: str
    created_at: datetime
    config: Dict[str, Any]
    meta: Dict[str, Any] = field(default_factory=dict)

    events: List[Dict[str, Any]] = field(default_factory=list, init=False)
    warnings: Dict[str, List[str]] = field(default_factory=dict, init=False)

    # -----------------------------
    # Logging & warnings
    # -----------------------------
    def log(self, *, unit_id: str, level: str, message: str, **extra: Any) -> None:
        event = {
            "run_id": self.run_id,
            "unit_id": unit_id,
            "level": level,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        event.update(extra)
        self.events.append(event)
        logger.log(_LEVELS.get(level, logging.INFO), "%s: %s", unit_id, message)

    def add_warning(self, *, unit_id: str, message: str) -> None:
        if unit_id not in self.warnings:
            self.warnings[unit_id] = []
        self.warnings[unit_id].append(message)
        self.log(unit_id=unit_id, level="WARNING", message=message)

    def warnings_for(self, unit_id: str) -> List[str]:
        return list(self.warnings.get(unit_id, []))
