# src/persistroot/core/engine/engine.py
"""
Engine de boot do persistroot.

Orquestra uma execução completa sobre um root efêmero recém-criado:

    1. remove um marcador de prontidão antigo
    2. valida a ordenação (aninhamento, duplicatas)
    3. monta os stores duráveis (DurableStoreMounter)
    4. reconcilia a tabela (Reconciler), apenas se todo store obrigatório
       estiver montado
    5. grava o marcador de prontidão, apenas se o boot estiver pronto
    6. persiste o manifest de rastreabilidade, quando configurado

Falhas de unidades nunca escapam como exceção: chegam aqui já convertidas
em ErrorPayload dentro de cada UnitResult. Exceções que escapam do Engine
indicam erro estrutural (tabela inválida, planejamento impossível).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from persistroot import __version__
from persistroot.core.boot.context import BootContext
from persistroot.core.config.hashing import compute_config_hash
from persistroot.core.fs.host import HostFilesystem
from persistroot.core.table.types import MountTable
from persistroot.core.traceability.manifest import (
    BootManifest,
    create_manifest,
    phase_finished,
    phase_started,
    record_unit,
    save_manifest,
    set_ready,
)

from .mounter import DurableStoreMounter, MountReport
from .planner import plan_entries, plan_stores
from .readiness import clear_ready_marker, write_ready_marker
from .reconciler import ReconcileReport, Reconciler

PathLike = Union[str, Path]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class BootResult:
    """Resultado agregado de um boot."""

    ready: bool
    mount: MountReport
    reconcile: Optional[ReconcileReport]
    manifest: BootManifest


class BootEngine:
    """Engine canônico do persistroot (mounter + reconciler)."""

    def __init__(
        self,
        *,
        table: MountTable,
        ctx: BootContext,
        fs: HostFilesystem,
        ready_marker: Optional[PathLike] = None,
        manifest_path: Optional[PathLike] = None,
    ):
        self.table = table
        self.ctx = ctx
        self.fs = fs
        self.ready_marker = Path(ready_marker) if ready_marker else None
        self.manifest_path = Path(manifest_path) if manifest_path else None

    def run(self) -> BootResult:
        manifest = create_manifest(
            run_id=self.ctx.run_id,
            started_at=self.ctx.created_at,
            version=__version__,
            config_hash=compute_config_hash(self.ctx.config or {}),
            table_hash=compute_config_hash(self.table.to_dict()),
        )

        if self.ready_marker is not None and clear_ready_marker(self.ready_marker):
            self.ctx.log(unit_id="engine", level="DEBUG", message=f"removed stale marker {self.ready_marker}")

        # Erros estruturais de ordenação aparecem antes de qualquer montagem.
        plan_stores(self.table.stores)
        plan_entries(self.table.entries)

        phase_started(manifest, phase="mount", ts=_now())
        mount = DurableStoreMounter(stores=self.table.stores, ctx=self.ctx, fs=self.fs).run()
        for r in mount.stores.values():
            record_unit(manifest, result=r.to_dict(), ts=_now())
        phase_finished(manifest, phase="mount", ts=_now(), ok=mount.ok)

        reconcile: Optional[ReconcileReport] = None
        if mount.ok:
            phase_started(manifest, phase="reconcile", ts=_now())
            reconcile = Reconciler(
                entries=self.table.entries,
                ctx=self.ctx,
                fs=self.fs,
                unavailable=mount.unavailable,
            ).run()
            for r in reconcile.entries.values():
                record_unit(manifest, result=r.to_dict(), ts=_now())
            phase_finished(manifest, phase="reconcile", ts=_now(), ok=reconcile.ok)
        else:
            self.ctx.log(
                unit_id="engine",
                level="ERROR",
                message="required durable store unavailable; reconciliation not started",
            )

        ready = mount.ok and reconcile is not None and reconcile.ok
        finished = _now()
        set_ready(manifest, ready=ready, ts=finished)

        if ready and self.ready_marker is not None:
            try:
                write_ready_marker(
                    self.ready_marker,
                    run_id=self.ctx.run_id,
                    ts=finished,
                    skipped=reconcile.skipped if reconcile else (),
                )
            except OSError as e:
                ready = False
                set_ready(manifest, ready=False, ts=_now())
                self.ctx.log(unit_id="engine", level="ERROR", message=f"could not write ready marker: {e}")

        if ready:
            self.ctx.log(unit_id="engine", level="INFO", message="persistent state reconciled")
        else:
            self.ctx.log(unit_id="engine", level="ERROR", message="boot is not ready")

        if self.manifest_path is not None:
            save_manifest(manifest, self.manifest_path)

        return BootResult(ready=ready, mount=mount, reconcile=reconcile, manifest=manifest)
