# src/persistroot/core/table/types.py
"""
Tipos canônicos da tabela de persistência.

Este módulo define as estruturas imutáveis que descrevem o estado
desejado de uma máquina com root efêmero:

    - DurableStore    → filesystem/dataset durável que sobrevive ao reboot
    - MountTableEntry → regra "caminho efêmero resolve para caminho durável"
    - MountTable      → conjunto validado de stores e entradas

Princípios fundamentais:
    - A tabela é escrita uma vez (declarativamente) e é imutável em runtime
    - O efeito de uma regra (symlink ou bind mount) é recriado a cada boot
    - Tipos são serializáveis para o manifest

Invariantes:
    - Todos os caminhos são absolutos e normalizados
    - `link_mode` (symlink/bind) e `permissions` (bits de permissão) são
      campos distintos

Limites explícitos:
    - Não toca o filesystem
    - Não valida a configuração bruta (ver `schema.py`)
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class LinkMode(str, Enum):
    """
    Forma de materializar um caminho durável no root efêmero.

    - SYMLINK: link simbólico `ephemeral -> durable`; adequado para
      arquivos ou diretórios que só precisam aparecer em um caminho fixo
    - BIND: bind mount de `durable` sobre `ephemeral`; preserva semântica
      nativa de permissões, dono e hard links (diretórios de serviços)
    """
    SYMLINK = "symlink"
    BIND = "bind"


class PathKind(str, Enum):
    """Tipo esperado do caminho durável."""
    FILE = "file"
    DIRECTORY = "directory"
    ANY = "any"


def is_under(path: str, root: str) -> bool:
    """True se `path` é igual a `root` ou está aninhado sob ele."""
    if root == "/":
        return True
    return path == root or path.startswith(root.rstrip("/") + "/")


def is_strictly_under(path: str, root: str) -> bool:
    return path != root and is_under(path, root)


@dataclass(frozen=True)
class DurableStore:
    """
    Filesystem/dataset durável montado antes da reconciliação.

    Campos:
        - id: identificador estável (ex.: nome do dataset `rpool/safe/persist`)
        - mountpoint: caminho absoluto onde o store é montado
        - needed_for_boot: se True, falha de montagem é fatal para o boot
        - fstype: tipo passado a `mount -t` (datasets ZFS com mountpoint=legacy)
        - options: opções de montagem (`-o`)
        - load_key: carregar a chave (`zfs load-key`) antes de montar
        - encryption_root: dataset dono da chave, quando não é o próprio store
    """
    id: str
    mountpoint: str
    needed_for_boot: bool = False
    fstype: str = "zfs"
    options: Tuple[str, ...] = ()
    load_key: bool = False
    encryption_root: Optional[str] = None

    @property
    def key_dataset(self) -> str:
        return self.encryption_root or self.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "mountpoint": self.mountpoint,
            "needed_for_boot": self.needed_for_boot,
            "fstype": self.fstype,
            "options": list(self.options),
            "load_key": self.load_key,
            "encryption_root": self.encryption_root,
        }


@dataclass(frozen=True)
class MountTableEntry:
    """
    Uma regra declarada de reconciliação.

    Campos:
        - ephemeral_path: caminho no root volátil
        - durable_path: caminho no store durável
        - link_mode: SYMLINK ou BIND
        - needed_for_boot: se True, falha é fatal e aborta a reconciliação
        - kind: tipo esperado do caminho durável (file/directory/any)
        - owner_uid / owner_gid: dono imposto ao caminho durável (None = manter)
        - permissions: bits de permissão impostos ao caminho durável (None = manter)
        - recursive: aplicar dono/permissões a toda a árvore durável
    """
    ephemeral_path: str
    durable_path: str
    link_mode: LinkMode = LinkMode.SYMLINK
    needed_for_boot: bool = False
    kind: PathKind = PathKind.ANY
    owner_uid: Optional[int] = None
    owner_gid: Optional[int] = None
    permissions: Optional[int] = None
    recursive: bool = False

    @property
    def entry_id(self) -> str:
        return self.ephemeral_path

    @property
    def ephemeral_parent(self) -> str:
        return posixpath.dirname(self.ephemeral_path)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ephemeral_path": self.ephemeral_path,
            "durable_path": self.durable_path,
            "link_mode": self.link_mode.value,
            "needed_for_boot": self.needed_for_boot,
            "kind": self.kind.value,
            "owner_uid": self.owner_uid,
            "owner_gid": self.owner_gid,
            "permissions": None if self.permissions is None else oct(self.permissions),
            "recursive": self.recursive,
        }


@dataclass(frozen=True)
class MountTable:
    """Stores e entradas validados, na ordem declarada."""
    stores: List[DurableStore] = field(default_factory=list)
    entries: List[MountTableEntry] = field(default_factory=list)

    def store_for(self, path: str) -> Optional[DurableStore]:
        """Store mais profundo cujo mountpoint contém `path`."""
        best: Optional[DurableStore] = None
        for store in self.stores:
            if is_under(path, store.mountpoint):
                if best is None or len(store.mountpoint) > len(best.mountpoint):
                    best = store
        return best

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stores": [s.to_dict() for s in self.stores],
            "entries": [e.to_dict() for e in self.entries],
        }
