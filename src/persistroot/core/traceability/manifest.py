# src/persistroot/core/traceability/manifest.py
"""
Manifest de boot: rastreabilidade forense de cada execução.

O Manifest consolida, de forma determinística e auditável:
    - metadados da execução (run_id, início, versão, prontidão final)
    - hashes das entradas (configuração efetiva e tabela resolvida)
    - fases executadas (mount, reconcile) com duração
    - resultado de cada store e de cada entrada
    - Event Log ordenado de eventos explícitos

Quando um boot cai em modo de recuperação, o manifest salvo é o que o
operador lê para descobrir qual caminho durável precisa ser restaurado.

Princípios fundamentais:
    - Nenhum evento é emitido implicitamente
    - A ordem do Event Log reflete a ordem de chamada
    - O Manifest é serializável e reconstruível (round-trip JSON)

Decisões arquiteturais:
    - UTC é o timezone canônico para todos os timestamps
    - Stores e entradas são indexados por unit_id (mountpoint / caminho efêmero)

Limites explícitos:
    - Não monta nem reconcilia
    - Não decide políticas de falha
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


def _ensure_tzaware_utc(dt: datetime) -> datetime:
    """Normaliza um timestamp para timezone-aware em UTC (naive é assumido UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: datetime) -> str:
    return _ensure_tzaware_utc(dt).isoformat()


def _ms_between(start: datetime, end: datetime) -> int:
    s = _ensure_tzaware_utc(start)
    e = _ensure_tzaware_utc(end)
    return max(0, int((e - s).total_seconds() * 1000))


_SECTIONS = {"store": "stores", "entry": "entries"}


@dataclass
class BootManifest:
    """
    Registro forense de uma execução de boot.

    Campos principais:
        - run: metadados da execução (run_id, started_at, version, ready)
        - inputs: hashes da configuração e da tabela
        - phases: estado de cada fase (mount, reconcile)
        - stores: resultado por mountpoint
        - entries: resultado por caminho efêmero
        - events: Event Log ordenado

    Invariantes:
        - `events` é sempre uma lista ordenada
        - A estrutura completa é serializável
    """

    run: Dict[str, Any]
    inputs: Dict[str, Any]
    phases: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    stores: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    entries: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Cópia serializável e independente do estado interno."""
        return {
            "run": dict(self.run),
            "inputs": dict(self.inputs),
            "phases": {k: dict(v) for k, v in self.phases.items()},
            "stores": {k: dict(v) for k, v in self.stores.items()},
            "entries": {k: dict(v) for k, v in self.entries.items()},
            "events": [dict(e) for e in self.events],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BootManifest":
        """Reconstrói um Manifest; campos ausentes viram estruturas vazias."""
        return cls(
            run=dict(data.get("run", {})),
            inputs=dict(data.get("inputs", {})),
            phases={k: dict(v) for k, v in (data.get("phases", {}) or {}).items()},
            stores={k: dict(v) for k, v in (data.get("stores", {}) or {}).items()},
            entries={k: dict(v) for k, v in (data.get("entries", {}) or {}).items()},
            events=[dict(e) for e in (data.get("events", []) or [])],
        )


def create_manifest(
    *,
    run_id: str,
    started_at: datetime,
    version: str,
    config_hash: str,
    table_hash: str,
) -> BootManifest:
    """
    Cria o Manifest inicial de uma execução.

    Esta função **não emite eventos implicitamente**: o Event Log inicia
    vazio e `run.ready` inicia como False até `set_ready` ser chamado.
    """
    return BootManifest(
        run={
            "run_id": run_id,
            "started_at": _iso(started_at),
            "version": version,
            "ready": False,
        },
        inputs={
            "config_hash": config_hash,
            "table_hash": table_hash,
        },
    )


def add_event(
    manifest: BootManifest,
    *,
    event_type: str,
    ts: datetime,
    unit_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    """Adiciona um evento explícito ao final do Event Log."""
    event: Dict[str, Any] = {"type": event_type, "ts": _iso(ts)}
    if unit_id is not None:
        event["unit_id"] = unit_id
    if payload:
        event["payload"] = dict(payload)
    manifest.events.append(event)


def phase_started(manifest: BootManifest, *, phase: str, ts: datetime) -> None:
    manifest.phases[phase] = {"status": "running", "started_at": _iso(ts)}
    add_event(manifest, event_type="phase_started", ts=ts, payload={"phase": phase})


def phase_finished(manifest: BootManifest, *, phase: str, ts: datetime, ok: bool) -> None:
    p = manifest.phases.setdefault(phase, {})
    started_iso = p.get("started_at")
    started_dt = datetime.fromisoformat(started_iso) if started_iso else ts
    status = "ok" if ok else "failed"
    p.update(
        {
            "status": status,
            "finished_at": _iso(ts),
            "duration_ms": _ms_between(started_dt, ts),
        }
    )
    add_event(manifest, event_type="phase_finished", ts=ts, payload={"phase": phase, "status": status})


def record_unit(manifest: BootManifest, *, result: Dict[str, Any], ts: datetime) -> None:
    """
    Registra o resultado de um store ou de uma entrada.

    Args:
        manifest (BootManifest): Manifest a ser atualizado.
        result (Dict[str, Any]): `UnitResult.to_dict()`.
        ts (datetime): Momento do registro.

    Raises:
        ValueError: Se `result.kind` não for "store" nem "entry".
    """
    kind = result.get("kind")
    if kind not in _SECTIONS:
        raise ValueError(f"unknown unit kind: {kind!r}")

    section = getattr(manifest, _SECTIONS[kind])
    unit_id = result["unit_id"]
    section[unit_id] = dict(result, recorded_at=_iso(ts))

    payload: Dict[str, Any] = {"kind": kind, "status": result.get("status")}
    if result.get("error"):
        payload["error_type"] = result["error"].get("type")
    add_event(manifest, event_type=f"unit_{result.get('status')}", ts=ts, unit_id=unit_id, payload=payload)


def set_ready(manifest: BootManifest, *, ready: bool, ts: datetime) -> None:
    manifest.run["ready"] = bool(ready)
    manifest.run["finished_at"] = _iso(ts)
    add_event(manifest, event_type="boot_ready" if ready else "boot_blocked", ts=ts)


def save_manifest(manifest: BootManifest, path: Path) -> None:
    """Persiste o Manifest em JSON determinístico (chaves ordenadas)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(manifest.to_dict(), ensure_ascii=False, indent=2, sort_keys=True), encoding="utf-8")


def load_manifest(path: Path) -> BootManifest:
    """
    Carrega um Manifest persistido.

    Raises:
        FileNotFoundError: Se o arquivo não existir.
        json.JSONDecodeError: Em caso de JSON inválido.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    return BootManifest.from_dict(data)
