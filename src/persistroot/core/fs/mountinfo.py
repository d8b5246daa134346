"""
Leitura de `/proc/self/mountinfo`.

O Reconciler precisa saber se um caminho efêmero já é um bind mount do
caminho durável correto (idempotência). O kernel não registra a origem
de um bind mount diretamente: a linha do bind carrega apenas o dispositivo
e a raiz *dentro* do filesystem. Para saber se um bind serve um caminho
durável, compara-se esse par com o par `(dispositivo, raiz)` da montagem
que contém o caminho durável.

Formato de cada linha (proc(5)):

    36 35 98:0 /mnt1 /mnt2 rw,noatime master:1 - ext3 /dev/root rw,errors=continue
    (1)(2)(3)   (4)   (5)      (6)      (7)   (8) (9)    (10)         (11)
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from persistroot.core.table.types import is_under

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


def _unescape(field: str) -> str:
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), field)


@dataclass(frozen=True)
class MountRecord:
    mount_id: int
    parent_id: int
    device: str
    root: str
    mount_point: str
    fstype: str
    source: str


def parse_mountinfo(text: str) -> List[MountRecord]:
    records: List[MountRecord] = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 10 or "-" not in parts[6:]:
            continue
        sep = parts.index("-", 6)
        if len(parts) < sep + 3:
            continue
        records.append(
            MountRecord(
                mount_id=int(parts[0]),
                parent_id=int(parts[1]),
                device=parts[2],
                root=_unescape(parts[3]),
                mount_point=_unescape(parts[4]),
                fstype=parts[sep + 1],
                source=_unescape(parts[sep + 2]),
            )
        )
    return records


def read_mountinfo(path: str = "/proc/self/mountinfo") -> List[MountRecord]:
    return parse_mountinfo(Path(path).read_text(encoding="utf-8"))


def find_mount(records: List[MountRecord], mount_point: str) -> Optional[MountRecord]:
    """Montagem visível em `mount_point` (a última empilhada)."""
    found: Optional[MountRecord] = None
    for rec in records:
        if rec.mount_point == mount_point:
            found = rec
    return found


def containing_mount(records: List[MountRecord], path: str) -> Optional[MountRecord]:
    """Montagem visível que contém `path` (ponto de montagem mais longo)."""
    best: Optional[MountRecord] = None
    for rec in records:
        if not is_under(path, rec.mount_point):
            continue
        if best is None or len(rec.mount_point) >= len(best.mount_point):
            best = rec
    return best


def _root_of(records: List[MountRecord], path: str) -> Optional[Tuple[str, str]]:
    """(dispositivo, raiz interna) sob a qual `path` é servido."""
    rec = containing_mount(records, path)
    if rec is None:
        return None
    rel = path[len(rec.mount_point):].lstrip("/") if rec.mount_point != "/" else path.lstrip("/")
    return rec.device, posixpath.normpath(posixpath.join(rec.root, rel)) if rel else rec.root


def is_bind_of(records: List[MountRecord], target: str, source: str) -> bool:
    """
    True se a montagem visível em `target` expõe o mesmo conteúdo que `source`.

    Compara `(dispositivo, raiz)` da montagem em `target` com o par que serve
    `source` hoje, então binds aninhados sob outros binds não confundem a
    comparação.
    """
    rec = find_mount(records, target)
    if rec is None:
        return False
    return _root_of(records, source) == (rec.device, rec.root)


def mounts_under(records: List[MountRecord], path: str) -> List[str]:
    """Pontos de montagem estritamente sob `path`, os mais profundos primeiro."""
    found = dict.fromkeys(rec.mount_point for rec in records if rec.mount_point != path and is_under(rec.mount_point, path))
    return sorted(found, key=lambda mp: mp.count("/"), reverse=True)


def bind_source(records: List[MountRecord], target: str) -> Optional[str]:
    """
    Caminho de origem do bind mount visível em `target`, ou None.

    Entre as montagens do mesmo dispositivo, a de raiz mais curta é a
    montagem primária; binds que também expõem essa raiz são ignorados.
    """
    rec = find_mount(records, target)
    if rec is None:
        return None

    best: Optional[MountRecord] = None
    for cand in records:
        if cand is rec or cand.device != rec.device or cand.mount_point == target:
            continue
        if is_under(cand.mount_point, target) or not is_under(rec.root, cand.root):
            continue
        if best is None or len(cand.root) < len(best.root):
            best = cand

    if best is None:
        return None

    rel = rec.root[len(best.root):].lstrip("/") if best.root != "/" else rec.root.lstrip("/")
    return posixpath.normpath(posixpath.join(best.mount_point, rel)) if rel else best.mount_point
