"""
Primitivas de filesystem do host.

`HostFilesystem` concentra as operações que exigem privilégio ou que
dependem do estado de montagens do kernel. Mounter e Reconciler recebem
uma instância explicitamente, o que permite substituí-la em testes por
uma implementação que apenas registra chamadas.

Operações de symlink, remoção e criação de diretórios ficam no próprio
Reconciler (os/shutil), pois funcionam sem privilégio.
"""

from __future__ import annotations

import os
from typing import Callable, List, Optional, Sequence

from .commands import run_command
from .mountinfo import MountRecord, bind_source, find_mount, is_bind_of, mounts_under, read_mountinfo

Runner = Callable[[Sequence[str]], str]


class HostFilesystem:
    """Montagens, chaves ZFS e atributos de arquivo no host real."""

    def __init__(
        self,
        *,
        mountinfo_path: str = "/proc/self/mountinfo",
        runner: Runner = run_command,
    ) -> None:
        self.mountinfo_path = mountinfo_path
        self.runner = runner

    # -----------------------------
    # Estado de montagens
    # -----------------------------
    def mounts(self) -> List[MountRecord]:
        return read_mountinfo(self.mountinfo_path)

    def is_mounted(self, path: str) -> bool:
        return find_mount(self.mounts(), path) is not None

    def mounted_source(self, path: str) -> Optional[str]:
        return bind_source(self.mounts(), path)

    def is_bind_of(self, target: str, source: str) -> bool:
        return is_bind_of(self.mounts(), target, os.path.realpath(source))

    def mounts_under(self, path: str) -> List[str]:
        return mounts_under(self.mounts(), path)

    # -----------------------------
    # Montagem
    # -----------------------------
    def mount(self, source: str, target: str, *, fstype: str, options: Sequence[str] = ()) -> None:
        argv = ["mount", "-t", fstype]
        if options:
            argv += ["-o", ",".join(options)]
        argv += [source, target]
        self.runner(argv)

    def bind_mount(self, source: str, target: str) -> None:
        self.runner(["mount", "--bind", source, target])

    def unmount(self, target: str) -> None:
        self.runner(["umount", target])

    # -----------------------------
    # ZFS nativo
    # -----------------------------
    def zfs_key_loaded(self, dataset: str) -> bool:
        out = self.runner(["zfs", "get", "-H", "-o", "value", "keystatus", dataset])
        # "-" para datasets sem criptografia
        return out.strip() in {"available", "-"}

    def zfs_load_key(self, dataset: str) -> None:
        self.runner(["zfs", "load-key", dataset])

    # -----------------------------
    # Atributos
    # -----------------------------
    def chown(self, path: str, uid: Optional[int], gid: Optional[int]) -> None:
        os.chown(path, -1 if uid is None else uid, -1 if gid is None else gid, follow_symlinks=False)

    def chmod(self, path: str, mode: int) -> None:
        os.chmod(path, mode)
