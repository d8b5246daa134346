# src/persistroot/provision/seed.py
"""
Semeadura do store durável.

Copia, a partir de uma árvore de origem (backup, mídia de instalação),
o conteúdo de cada caminho durável ainda ausente, e depois impõe dono e
permissões declarados na tabela. É executada pelo operador antes do
primeiro boot ou ao restaurar uma máquina; o Reconciler nunca a chama.

Mapeamento de caminhos:
    origem  = <source_root>/<durable_path relativo a durable_root>
    destino = <install_root>/<durable_path>

Com `durable_root="/persist"` e `install_root="/mnt"`, a entrada cujo
durável é `/persist/etc/ssh` é copiada de `<source_root>/etc/ssh` para
`/mnt/persist/etc/ssh`.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import posixpath
import shutil
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence

from persistroot.core.fs.attrs import enforce_attributes
from persistroot.core.fs.host import HostFilesystem
from persistroot.core.table.types import MountTableEntry

log = logging.getLogger(__name__)

DEFAULT_EXCLUDE = ("lost+found", "*bak", "*~*")


class SeedAction(str, Enum):
    COPIED = "copied"
    PRESENT = "present"
    NO_SOURCE = "no_source"
    OUTSIDE_ROOT = "outside_root"


@dataclass(frozen=True)
class SeedResult:
    entry_id: str
    source: Optional[str]
    destination: str
    action: SeedAction
    attrs_changed: bool = False


def _excluded(name: str, patterns: Sequence[str]) -> bool:
    return any(fnmatch.fnmatch(name, p) for p in patterns)


def _ignore(patterns: Sequence[str]) -> Callable[[str, List[str]], List[str]]:
    def ignore(_directory: str, names: List[str]) -> List[str]:
        return [n for n in names if _excluded(n, patterns)]

    return ignore


def _copy(source: str, destination: str, patterns: Sequence[str]) -> None:
    os.makedirs(os.path.dirname(destination), exist_ok=True)
    if os.path.isdir(source) and not os.path.islink(source):
        shutil.copytree(source, destination, symlinks=True, ignore=_ignore(patterns), dirs_exist_ok=True)
    else:
        shutil.copy2(source, destination, follow_symlinks=False)


def seed_durable_paths(
    entries: Iterable[MountTableEntry],
    source_root: str,
    *,
    durable_root: str = "/",
    install_root: str = "/",
    exclude: Sequence[str] = DEFAULT_EXCLUDE,
    overwrite: bool = False,
    fs: Optional[HostFilesystem] = None,
) -> List[SeedResult]:
    """
    Semeia os caminhos duráveis das entradas.

    Args:
        entries: Entradas da tabela.
        source_root: Raiz da árvore de origem.
        durable_root: Prefixo removido do caminho durável para achar a origem.
        install_root: Prefixo adicionado ao caminho durável no destino.
        exclude: Padrões fnmatch ignorados (por nome de arquivo).
        overwrite: Copiar mesmo quando o destino já existe.
        fs: Primitivas de host para chown/chmod.

    Returns:
        List[SeedResult]: Um resultado por entrada, na ordem recebida.

    Raises:
        OSError: Falha de cópia ou de atributos.
    """
    fs = fs or HostFilesystem()
    results: List[SeedResult] = []

    for entry in entries:
        destination = os.path.join(install_root, entry.durable_path.lstrip("/"))

        rel = posixpath.relpath(entry.durable_path, durable_root)
        if rel == ".." or rel.startswith("../"):
            log.info("%s: durable path outside %s, skipped", entry.entry_id, durable_root)
            results.append(SeedResult(entry.entry_id, None, destination, SeedAction.OUTSIDE_ROOT))
            continue
        source = os.path.normpath(os.path.join(source_root, rel))

        if os.path.lexists(destination) and not overwrite:
            action = SeedAction.PRESENT
        elif not os.path.lexists(source) or _excluded(os.path.basename(source), exclude):
            log.warning("%s: no seed source at %s", entry.entry_id, source)
            results.append(SeedResult(entry.entry_id, source, destination, SeedAction.NO_SOURCE))
            continue
        else:
            log.info("%s: copying %s -> %s", entry.entry_id, source, destination)
            _copy(source, destination, exclude)
            action = SeedAction.COPIED

        changed = enforce_attributes(
            fs,
            destination,
            uid=entry.owner_uid,
            gid=entry.owner_gid,
            permissions=entry.permissions,
            recursive=entry.recursive,
        )
        results.append(SeedResult(entry.entry_id, source, destination, action, attrs_changed=changed))

    return results
