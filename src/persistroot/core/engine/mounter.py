# src/persistroot/core/engine/mounter.py
"""
Durable Store Mounter.

Garante que todo store durável marcado `needed_for_boot` esteja montado e
legível antes da reconciliação; os demais são montados de forma oportunista.

Políticas:
    - Stores são montados em ordem de aninhamento (`plan_stores`)
    - Store já montado é um no-op (a execução é idempotente)
    - Store aninhado sob um store indisponível não é tentado: a montagem
      cairia no root efêmero
    - Falha de store obrigatório é fatal: o Mounter para imediatamente e o
      relatório sinaliza que a reconciliação não pode começar
    - Falha de store opcional gera warning e a execução continua

Limites explícitos:
    - Não reconcilia entradas
    - Não desmonta stores em caso de falha (o root efêmero é descartado no
      próximo boot)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from persistroot.core.boot.context import BootContext
from persistroot.core.boot.types import UnitKind, UnitResult, UnitStatus
from persistroot.core.errors import ErrorPayload, engine_execution_error
from persistroot.core.exceptions import DurableStoreUnavailable
from persistroot.core.fs.host import HostFilesystem
from persistroot.core.table.types import DurableStore, is_strictly_under

from .planner import plan_stores


@dataclass(frozen=True)
class MountReport:
    """Resultado agregado da montagem de stores."""

    stores: Dict[str, UnitResult] = field(default_factory=dict)
    ok: bool = True
    unavailable: Tuple[str, ...] = ()


class DurableStoreMounter:
    """Monta stores duráveis em ordem de dependência."""

    def __init__(self, *, stores: Sequence[DurableStore], ctx: BootContext, fs: HostFilesystem):
        self.stores: List[DurableStore] = list(stores)
        self.ctx = ctx
        self.fs = fs

    def _unavailable(self, store: DurableStore, reason: str) -> DurableStoreUnavailable:
        return DurableStoreUnavailable(
            message=f"Store durável indisponível: {store.id}",
            details={
                "store_id": store.id,
                "mountpoint": store.mountpoint,
                "reason": reason,
            },
            hint="Verifique o pool/dataset (zpool status, zfs list) e a chave de criptografia antes de reiniciar.",
        )

    def _mount_one(self, store: DurableStore) -> bool:
        """Monta `store`; retorna False quando ele já estava montado."""
        mp = store.mountpoint

        if self.fs.is_mounted(mp):
            self.ctx.log(unit_id=mp, level="INFO", message="already mounted", store_id=store.id)
            changed = False
        else:
            try:
                os.makedirs(mp, exist_ok=True)
                if store.load_key and not self.fs.zfs_key_loaded(store.key_dataset):
                    self.ctx.log(unit_id=mp, level="INFO", message="loading key", dataset=store.key_dataset)
                    self.fs.zfs_load_key(store.key_dataset)
                self.fs.mount(store.id, mp, fstype=store.fstype, options=store.options)
            except OSError as e:
                raise self._unavailable(store, str(e)) from e
            changed = True

        if not os.access(mp, os.R_OK | os.X_OK):
            raise self._unavailable(store, "mountpoint is not readable")

        return changed

    def run(self) -> MountReport:
        ordered = plan_stores(self.stores)

        results: Dict[str, UnitResult] = {}
        unavailable: List[str] = []
        ok = True

        for i, store in enumerate(ordered):
            uid = store.mountpoint
            self.ctx.log(unit_id=uid, level="INFO", message="mounting durable store", store_id=store.id)

            error: ErrorPayload
            try:
                parent = next((mp for mp in unavailable if is_strictly_under(uid, mp)), None)
                if parent is not None:
                    raise self._unavailable(store, f"parent store at {parent} is not mounted")
                changed = self._mount_one(store)

            except DurableStoreUnavailable as e:
                error = e.to_payload(fatal=store.needed_for_boot)

            except Exception as e:
                error = engine_execution_error(
                    unit_id=uid,
                    exc_type=e.__class__.__name__,
                    exc_message=str(e),
                    fatal=store.needed_for_boot,
                )

            else:
                results[uid] = UnitResult(
                    unit_id=uid,
                    kind=UnitKind.STORE,
                    status=UnitStatus.APPLIED,
                    summary="mounted" if changed else "already mounted",
                    required=store.needed_for_boot,
                    changed=changed,
                    details={"store_id": store.id},
                )
                continue

            unavailable.append(uid)
            reason = error.details.get("reason") or error.message

            if store.needed_for_boot:
                self.ctx.log(unit_id=uid, level="ERROR", message=f"required store failed: {reason}", store_id=store.id)
                results[uid] = UnitResult(
                    unit_id=uid,
                    kind=UnitKind.STORE,
                    status=UnitStatus.FAILED,
                    summary=error.message,
                    required=True,
                    error=error.to_dict(),
                    details={"store_id": store.id},
                )
                ok = False
                unavailable.extend(s.mountpoint for s in ordered[i + 1:])
                break

            self.ctx.add_warning(unit_id=uid, message=f"optional store not mounted: {reason}")
            results[uid] = UnitResult(
                unit_id=uid,
                kind=UnitKind.STORE,
                status=UnitStatus.SKIPPED,
                summary=error.message,
                required=False,
                warnings=self.ctx.warnings_for(uid),
                error=error.to_dict(),
                details={"store_id": store.id},
            )

        return MountReport(stores=results, ok=ok, unavailable=tuple(unavailable))
