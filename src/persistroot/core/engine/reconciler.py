# src/persistroot/core/engine/reconciler.py
"""
Reconciler da tabela de persistência.

Aplica a tabela de forma determinística e idempotente, depois que os
stores duráveis estão disponíveis. Para cada entrada:

    1. Verifica que o caminho durável existe com o tipo esperado
    2. Garante o diretório pai do caminho efêmero (recursivamente)
    3. Se o caminho efêmero já resolve para o durável, nada é alterado;
       caso contrário, conteúdo divergente é removido (montagens são
       desmontadas antes, nunca se remove através de uma montagem)
    4. Cria o symlink `ephemeral -> durable` ou o bind mount
    5. Impõe dono e permissões ao caminho durável

Políticas:
    - Falha de entrada obrigatória aborta as entradas restantes (fail-fast);
      o estado parcialmente reconciliado é o fallback seguro, pois o root
      efêmero é descartado no próximo boot
    - Falha de entrada opcional gera warning e a entrada fica SKIPPED
    - Conflito no caminho efêmero é resolvido automaticamente e registrado

Invariantes:
    - Duas execuções seguidas sem mudança de estado produzem o mesmo
      filesystem e a segunda não altera nada
    - Entradas aninhadas são aplicadas depois de seus prefixos

Limites explícitos:
    - Não monta stores duráveis
    - Não cria conteúdo no store durável (provisionamento é fora de banda)
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from persistroot.core.boot.context import BootContext
from persistroot.core.boot.types import EntryState, UnitKind, UnitResult, UnitStatus
from persistroot.core.errors import ErrorPayload, engine_execution_error, ephemeral_path_conflict
from persistroot.core.exceptions import (
    DurablePathMissing,
    DurableStoreUnavailable,
    LinkOrMountSyscallFailure,
    PersistException,
)
from persistroot.core.fs.attrs import enforce_attributes
from persistroot.core.fs.host import HostFilesystem
from persistroot.core.table.types import LinkMode, MountTableEntry, PathKind, is_under

from .planner import plan_entries

# Limite de montagens empilhadas removidas em um único caminho efêmero.
_MAX_STACKED_UNMOUNTS = 16


@dataclass(frozen=True)
class ReconcileReport:
    """Resultado agregado da reconciliação."""

    entries: Dict[str, UnitResult] = field(default_factory=dict)
    ok: bool = True
    skipped: Tuple[str, ...] = ()
    aborted_at: Optional[str] = None


def _kind_of(path: str) -> Optional[str]:
    if os.path.isdir(path):
        return PathKind.DIRECTORY.value
    if os.path.exists(path):
        return PathKind.FILE.value
    return None


class Reconciler:
    """Converge o root efêmero para a tabela declarada."""

    def __init__(
        self,
        *,
        entries: Sequence[MountTableEntry],
        ctx: BootContext,
        fs: HostFilesystem,
        unavailable: Sequence[str] = (),
    ):
        self.entries: List[MountTableEntry] = list(entries)
        self.ctx = ctx
        self.fs = fs
        self.unavailable: Tuple[str, ...] = tuple(unavailable)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _state(self, entry: MountTableEntry, state: EntryState, message: str = "") -> None:
        self.ctx.log(
            unit_id=entry.entry_id,
            level="DEBUG",
            message=message or state.value,
            state=state.value,
        )

    def _syscall(self, entry: MountTableEntry, operation: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except OSError as e:
            raise LinkOrMountSyscallFailure(
                message=f"{operation} failed for {entry.entry_id}",
                details={
                    "entry_id": entry.entry_id,
                    "operation": operation,
                    "reason": str(e),
                },
                hint="Verifique permissões, pontos de montagem ocupados e o log do kernel (dmesg).",
            ) from e

    # ------------------------------------------------------------------
    # Passos
    # ------------------------------------------------------------------
    def _verify(self, entry: MountTableEntry) -> str:
        durable = entry.durable_path

        for mp in self.unavailable:
            if is_under(durable, mp):
                raise DurableStoreUnavailable(
                    message=f"Store durável de {durable} não está montado",
                    details={"entry_id": entry.entry_id, "mountpoint": mp, "reason": "store not mounted"},
                    hint="Verifique o pool/dataset (zpool status, zfs list) e a chave de criptografia antes de reiniciar.",
                )

        actual = _kind_of(durable)
        if actual is None or (entry.kind is not PathKind.ANY and actual != entry.kind.value):
            raise DurablePathMissing(
                message=f"Caminho durável ausente ou com tipo inesperado: {durable}",
                details={
                    "entry_id": entry.entry_id,
                    "durable_path": durable,
                    "expected_kind": entry.kind.value,
                    "actual_kind": actual,
                },
                hint="Restaure o caminho no store durável (ex.: a partir de backup) ou remova a entrada da tabela.",
            )
        return actual

    def _is_applied(self, entry: MountTableEntry) -> bool:
        eph = entry.ephemeral_path
        targets = {entry.durable_path, os.path.realpath(entry.durable_path)}

        if entry.link_mode is LinkMode.SYMLINK:
            return os.path.islink(eph) and os.path.normpath(os.readlink(eph)) in targets

        return self.fs.is_bind_of(eph, entry.durable_path)

    def _unmount_below(self, entry: MountTableEntry) -> Optional[str]:
        """Desmonta tudo que estiver montado estritamente sob o caminho efêmero."""
        first: Optional[str] = None
        for _ in range(_MAX_STACKED_UNMOUNTS):
            below = self.fs.mounts_under(entry.ephemeral_path)
            if not below:
                return first
            first = first or below[-1]
            for mp in below:
                self._syscall(entry, "umount", self.fs.unmount, mp)
        raise LinkOrMountSyscallFailure(
            message=f"mounts left under {entry.ephemeral_path}",
            details={"entry_id": entry.entry_id, "operation": "umount", "reason": "stacked mounts"},
        )

    def _clear_conflict(self, entry: MountTableEntry, durable_kind: str) -> Optional[str]:
        """Remove o que estiver no caminho efêmero; retorna a descrição do que foi encontrado."""
        eph = entry.ephemeral_path
        found: Optional[str] = None

        unmounts = 0
        while self.fs.is_mounted(eph):
            if unmounts >= _MAX_STACKED_UNMOUNTS:
                raise LinkOrMountSyscallFailure(
                    message=f"too many stacked mounts on {eph}",
                    details={"entry_id": entry.entry_id, "operation": "umount", "reason": "stacked mounts"},
                )
            found = found or f"mount of {self.fs.mounted_source(eph) or 'unknown source'}"
            self._unmount_below(entry)
            self._syscall(entry, "umount", self.fs.unmount, eph)
            unmounts += 1

        if not os.path.lexists(eph):
            return found

        reuse_as_target = entry.link_mode is LinkMode.BIND

        if os.path.islink(eph):
            found = found or f"symlink to {os.readlink(eph)}"
            self._syscall(entry, "unlink", os.unlink, eph)
        elif os.path.isdir(eph):
            if reuse_as_target and durable_kind == PathKind.DIRECTORY.value:
                return found
            below = self._unmount_below(entry)
            found = found or (f"directory with mount on {below}" if below else "directory")
            self._syscall(entry, "rmtree", shutil.rmtree, eph)
        else:
            if reuse_as_target and durable_kind == PathKind.FILE.value:
                return found
            found = found or "file"
            self._syscall(entry, "unlink", os.unlink, eph)

        return found

    def _create_bind_target(self, entry: MountTableEntry, durable_kind: str) -> None:
        eph = entry.ephemeral_path
        if os.path.lexists(eph):
            return
        if durable_kind == PathKind.DIRECTORY.value:
            self._syscall(entry, "mkdir", os.mkdir, eph)
        else:
            self._syscall(entry, "touch", lambda p: open(p, "a").close(), eph)

    def _apply(self, entry: MountTableEntry, durable_kind: str) -> None:
        if entry.link_mode is LinkMode.SYMLINK:
            self._state(entry, EntryState.LINKING)
            self._syscall(entry, "symlink", os.symlink, entry.durable_path, entry.ephemeral_path)
        else:
            self._state(entry, EntryState.MOUNTING)
            self._create_bind_target(entry, durable_kind)
            self._syscall(entry, "bind mount", self.fs.bind_mount, entry.durable_path, entry.ephemeral_path)

    def _enforce_attrs(self, entry: MountTableEntry) -> bool:
        return self._syscall(
            entry,
            "chown/chmod",
            lambda p: enforce_attributes(
                self.fs,
                p,
                uid=entry.owner_uid,
                gid=entry.owner_gid,
                permissions=entry.permissions,
                recursive=entry.recursive,
            ),
            entry.durable_path,
        )

    # ------------------------------------------------------------------
    # Execução
    # ------------------------------------------------------------------
    def _reconcile_one(self, entry: MountTableEntry) -> Tuple[bool, Optional[ErrorPayload]]:
        """Aplica uma entrada; retorna (changed, conflito resolvido)."""
        self._state(entry, EntryState.VERIFYING)
        durable_kind = self._verify(entry)

        self._syscall(entry, "mkdir parents", lambda p: os.makedirs(p, exist_ok=True), entry.ephemeral_parent)

        conflict: Optional[ErrorPayload] = None
        if self._is_applied(entry):
            self.ctx.log(unit_id=entry.entry_id, level="DEBUG", message="already applied")
            changed = False
        else:
            found = self._clear_conflict(entry, durable_kind)
            if found is not None:
                conflict = ephemeral_path_conflict(
                    entry_id=entry.entry_id,
                    ephemeral_path=entry.ephemeral_path,
                    found=found,
                    resolution="removed and recreated",
                )
                self.ctx.add_warning(unit_id=entry.entry_id, message=f"replaced conflicting {found}")
            self._apply(entry, durable_kind)
            changed = True

        changed = self._enforce_attrs(entry) or changed
        return changed, conflict

    def run(self) -> ReconcileReport:
        ordered = plan_entries(self.entries)

        results: Dict[str, UnitResult] = {}
        skipped: List[str] = []

        for entry in ordered:
            uid = entry.entry_id
            required = entry.needed_for_boot

            error: ErrorPayload
            try:
                changed, conflict = self._reconcile_one(entry)

            except PersistException as e:
                error = e.to_payload(fatal=required)

            except Exception as e:
                error = engine_execution_error(
                    unit_id=uid,
                    exc_type=e.__class__.__name__,
                    exc_message=str(e),
                    fatal=required,
                )

            else:
                self._state(entry, EntryState.APPLIED)
                details: Dict[str, Any] = {"link_mode": entry.link_mode.value, "durable_path": entry.durable_path}
                if conflict is not None:
                    details["conflict"] = conflict.to_dict()
                results[uid] = UnitResult(
                    unit_id=uid,
                    kind=UnitKind.ENTRY,
                    status=UnitStatus.APPLIED,
                    summary="applied" if changed else "already applied",
                    required=required,
                    changed=changed,
                    warnings=self.ctx.warnings_for(uid),
                    details=details,
                )
                continue

            if required:
                self._state(entry, EntryState.FAILED, f"required entry failed: {error.message}")
                self.ctx.log(unit_id=uid, level="ERROR", message=error.message, error=error.to_dict())
                results[uid] = UnitResult(
                    unit_id=uid,
                    kind=UnitKind.ENTRY,
                    status=UnitStatus.FAILED,
                    summary=error.message,
                    required=True,
                    warnings=self.ctx.warnings_for(uid),
                    error=error.to_dict(),
                )
                return ReconcileReport(entries=results, ok=False, skipped=tuple(skipped), aborted_at=uid)

            self._state(entry, EntryState.SKIPPED)
            self.ctx.add_warning(unit_id=uid, message=f"skipped: {error.message}")
            skipped.append(uid)
            results[uid] = UnitResult(
                unit_id=uid,
                kind=UnitKind.ENTRY,
                status=UnitStatus.SKIPPED,
                summary=error.message,
                required=False,
                warnings=self.ctx.warnings_for(uid),
                error=error.to_dict(),
            )

        return ReconcileReport(entries=results, ok=True, skipped=tuple(skipped))
