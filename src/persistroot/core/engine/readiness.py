# src/persistroot/core/engine/readiness.py
"""
Marcador de prontidão.

O marcador é o único booleano exposto a estágios posteriores do boot
("a reconciliação terminou?"). Ele só existe quando a última execução
concluiu todas as entradas obrigatórias.
"""

from __future__ import annotations

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Sequence

DEFAULT_READY_MARKER = "/run/persistroot/ready"


def write_ready_marker(path: Path, *, run_id: str, ts: datetime, skipped: Sequence[str] = ()) -> None:
    """Grava o marcador de forma atômica (arquivo temporário + rename)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    body = {
        "ready": True,
        "run_id": run_id,
        "ts": ts.isoformat(),
        "skipped": list(skipped),
    }
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(json.dumps(body, indent=2, sort_keys=True), encoding="utf-8")
    os.replace(tmp, path)


def clear_ready_marker(path: Path) -> bool:
    """Remove um marcador antigo; retorna True se havia algo para remover."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def is_ready(path: Path) -> bool:
    """
    Indica se a reconciliação terminou.

    Um marcador ilegível ou sem `"ready": true` conta como não pronto.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return False
    return isinstance(data, dict) and data.get("ready") is True
