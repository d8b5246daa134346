# tests/conftest.py
"""
Fixtures compartilhados para testes do persistroot.

Este módulo define fixtures reutilizáveis que fornecem:
- configurações mínimas e determinísticas
- contexto de execução controlado (BootContext)
- um host falso (`FakeHostFilesystem`) que registra montagens sem privilégio
- um "root" isolado em `tmp_path` com store durável e root efêmero

Decisões arquiteturais:
    - Symlinks, diretórios e arquivos são reais (dentro de tmp_path)
    - mount, umount, zfs e chown são simulados pelo host falso, pois exigem root
    - chmod é real, para que a imposição de permissões seja observável
    - Imports do core são realizados de forma lazy para melhorar a clareza
      de erros durante falhas

Invariantes:
    - Nenhuma fixture toca caminhos fora de tmp_path
    - Nenhuma fixture exige privilégios de root
"""

import os
from datetime import datetime, timezone

import pytest


# =====================================================
# Config fixtures
# =====================================================

@pytest.fixture
def project_like_config_defaults_yaml() -> str:
    """
    YAML de configuração base semelhante ao uso real (stores + entradas).

    Returns:
        str: Conteúdo YAML representando configuração padrão (defaults).
    """
    return """\
stores:
  - id: rpool/safe/persist
    mountpoint: /persist
    needed_for_boot: true
entries:
  - ephemeral_path: /etc/machine-id
    durable_path: /persist/etc/machine-id
    kind: file
engine:
  ready_marker: /run/persistroot/ready
  manifest_path: /run/persistroot/manifest.json
"""


@pytest.fixture
def project_like_config_local_yaml() -> str:
    """
    YAML de overrides locais: troca o marcador e substitui a lista de entradas.

    Returns:
        str: Conteúdo YAML representando configuração local de override.
    """
    return """\
engine:
  ready_marker: /run/local-ready
entries:
  - ephemeral_path: /var/lib/bluetooth
    durable_path: /persist/var/lib/bluetooth
    link_mode: bind
"""


@pytest.fixture
def dummy_config() -> dict:
    return {
        "stores": [],
        "entries": [],
        "engine": {"ready_marker": None, "manifest_path": None},
    }


@pytest.fixture
def dummy_ctx(dummy_config):
    """
    BootContext determinístico para testes.

    `run_id` e `created_at` são fixos; o timestamp é timezone-aware (UTC).
    """
    from persistroot.core.boot.context import BootContext

    return BootContext(
        run_id="run-test-001",
        created_at=datetime(2026, 1, 16, 0, 0, 0, tzinfo=timezone.utc),
        config=dummy_config,
        meta={"source": "pytest"},
    )


# =====================================================
# Host falso
# =====================================================

class FakeHostFilesystem:
    """
    Implementação duck-typed de `HostFilesystem` para testes.

    - `mounts` guarda {mountpoint: source}; montar empilha sobre o anterior
    - `bind_mount` não altera o conteúdo visível do alvo, apenas registra
    - `fail` mapeia nome de operação -> conjunto de alvos que devem falhar
    - `calls` registra (operação, argumentos) na ordem de chamada
    """

    def __init__(self):
        self.mounts = {}
        self.stacked = {}
        self.loaded_keys = set()
        self.fail = {}
        self.calls = []

    def _maybe_fail(self, op, target):
        from persistroot.core.fs.commands import CommandFailedError

        if target in self.fail.get(op, set()):
            raise CommandFailedError([op, target], 32, f"{op} failed on {target}")

    def is_mounted(self, path):
        return path in self.mounts

    def mounted_source(self, path):
        return self.mounts.get(path)

    def is_bind_of(self, target, source):
        return self.mounts.get(target) == source

    def mounts_under(self, path):
        prefix = path.rstrip("/") + "/"
        below = [mp for mp in self.mounts if mp.startswith(prefix)]
        return sorted(below, key=lambda mp: mp.count("/"), reverse=True)

    def mount(self, source, target, *, fstype, options=()):
        self.calls.append(("mount", source, target, fstype, tuple(options)))
        self._maybe_fail("mount", target)
        self._push(target, source)

    def bind_mount(self, source, target):
        self.calls.append(("bind_mount", source, target))
        self._maybe_fail("bind_mount", target)
        self._push(target, source)

    def unmount(self, target):
        self.calls.append(("unmount", target))
        self._maybe_fail("unmount", target)
        below = self.stacked.get(target) or []
        if below:
            self.mounts[target] = below.pop()
        else:
            self.mounts.pop(target, None)

    def zfs_key_loaded(self, dataset):
        return dataset in self.loaded_keys

    def zfs_load_key(self, dataset):
        self.calls.append(("zfs_load_key", dataset))
        self._maybe_fail("zfs_load_key", dataset)
        self.loaded_keys.add(dataset)

    def chown(self, path, uid, gid):
        self.calls.append(("chown", path, uid, gid))
        self._maybe_fail("chown", path)

    def chmod(self, path, mode):
        self.calls.append(("chmod", path, mode))
        self._maybe_fail("chmod", path)
        os.chmod(path, mode)

    def _push(self, target, source):
        if target in self.mounts:
            self.stacked.setdefault(target, []).append(self.mounts[target])
        self.mounts[target] = source

    def ops(self, name):
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def fake_fs():
    return FakeHostFilesystem()


@pytest.fixture
def sandbox(tmp_path):
    """
    Layout isolado de uma máquina com root efêmero.

    Returns:
        dict: caminhos `root` (efêmero), `persist` (store durável) e `run`.
    """
    root = tmp_path / "root"
    persist = tmp_path / "persist"
    run = tmp_path / "run"
    for p in (root, persist, run):
        p.mkdir()
    return {"root": str(root), "persist": str(persist), "run": str(run)}


@pytest.fixture
def make_entry():
    """Factory de `MountTableEntry` com defaults de teste."""
    from persistroot.core.table.types import LinkMode, MountTableEntry, PathKind

    def _make(ephemeral, durable, **kw):
        kw.setdefault("link_mode", LinkMode.SYMLINK)
        kw.setdefault("kind", PathKind.ANY)
        return MountTableEntry(ephemeral_path=str(ephemeral), durable_path=str(durable), **kw)

    return _make
