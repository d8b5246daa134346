# src/persistroot/core/fs/attrs.py
"""
Imposição de dono e permissões sobre caminhos duráveis.

Usado pelo Reconciler a cada boot e pela semeadura fora de banda.

Regras:
    - Só altera o que difere do estado atual (idempotente)
    - `None` em uid, gid ou permissões significa "manter"
    - Symlinks nunca recebem chmod; chown não segue o link
    - Diretórios recebem o bit de execução onde houver leitura
      (0640 vira 0750), como o `X` do chmod
"""

from __future__ import annotations

import os
import stat
from typing import Optional

from .host import HostFilesystem


def directory_mode(mode: int) -> int:
    return mode | ((mode & 0o444) >> 2)


def _enforce_one(
    fs: HostFilesystem,
    path: str,
    uid: Optional[int],
    gid: Optional[int],
    permissions: Optional[int],
) -> bool:
    st = os.lstat(path)
    changed = False

    want_uid = uid if uid is not None else st.st_uid
    want_gid = gid if gid is not None else st.st_gid
    if (want_uid, want_gid) != (st.st_uid, st.st_gid):
        fs.chown(path, uid, gid)
        changed = True

    if permissions is not None and not stat.S_ISLNK(st.st_mode):
        want = directory_mode(permissions) if stat.S_ISDIR(st.st_mode) else permissions
        if stat.S_IMODE(st.st_mode) != want:
            fs.chmod(path, want)
            changed = True

    return changed


def enforce_attributes(
    fs: HostFilesystem,
    path: str,
    *,
    uid: Optional[int] = None,
    gid: Optional[int] = None,
    permissions: Optional[int] = None,
    recursive: bool = False,
) -> bool:
    """
    Impõe dono e permissões em `path` (e, se `recursive`, em toda a árvore).

    Returns:
        bool: True se algum atributo foi alterado.

    Raises:
        OSError: Falha de stat, chown ou chmod.
    """
    if uid is None and gid is None and permissions is None:
        return False

    changed = _enforce_one(fs, path, uid, gid, permissions)
    if recursive and os.path.isdir(path) and not os.path.islink(path):
        for root, dirs, files in os.walk(path):
            for name in dirs + files:
                changed = _enforce_one(fs, os.path.join(root, name), uid, gid, permissions) or changed
    return changed
