# tests/core/engine/test_reconciler.py
"""
Testes do Reconciler.

Symlinks, diretórios e arquivos são reais (sob tmp_path); bind mounts são
registrados pelo host falso. Cada teste monta um "root efêmero" e um
"store durável" isolados via fixture `sandbox`.

Os testes asseguram que:
- o cenário básico (entrada obrigatória presente, opcional ausente) converge
- uma segunda execução sem mudança de estado não altera nada
- conteúdo divergente no caminho efêmero é substituído e registrado
- bind mounts são idempotentes e nunca removem através de uma montagem
- dono e permissões são impostos ao caminho durável
"""

import os
import stat

import pytest

try:
    from persistroot.core.boot.types import UnitStatus
    from persistroot.core.engine.reconciler import Reconciler
    from persistroot.core.errors import (
        DURABLE_PATH_MISSING,
        DURABLE_STORE_UNAVAILABLE,
        EPHEMERAL_PATH_CONFLICT,
        LINK_OR_MOUNT_FAILURE,
    )
    from persistroot.core.table.types import LinkMode, PathKind
except Exception as e:  # noqa: BLE001
    Reconciler = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(f"Missing reconciler (src/persistroot/core/engine/reconciler.py). Import error: {_IMPORT_ERR}")


def _p(base, rel):
    return os.path.join(base, rel)


def _write(path, content=""):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)


def _run(entries, ctx, fs, **kw):
    return Reconciler(entries=entries, ctx=ctx, fs=fs, **kw).run()


def test_machine_id_applied_and_missing_bluetooth_skipped(sandbox, dummy_ctx, fake_fs, make_entry):
    """
    Cenário de referência.

    Dado:
        - /etc/machine-id (obrigatória, symlink) com durável presente
        - /var/lib/bluetooth (opcional, bind mount) com durável ausente

    Esperado:
        - /etc/machine-id vira symlink para o durável
        - /var/lib/bluetooth é SKIPPED com exatamente um warning
        - a reconciliação reporta sucesso
    """
    _require_imports()
    root, persist = sandbox["root"], sandbox["persist"]
    _write(_p(persist, "etc/machine-id"), "0123456789abcdef\n")

    entries = [
        make_entry(_p(root, "etc/machine-id"), _p(persist, "etc/machine-id"), needed_for_boot=True, kind=PathKind.FILE),
        make_entry(
            _p(root, "var/lib/bluetooth"),
            _p(persist, "var/lib/bluetooth"),
            link_mode=LinkMode.BIND,
            needed_for_boot=False,
        ),
    ]

    report = _run(entries, dummy_ctx, fake_fs)

    eph = _p(root, "etc/machine-id")
    assert os.path.islink(eph)
    assert os.readlink(eph) == _p(persist, "etc/machine-id")
    with open(eph, encoding="utf-8") as f:
        assert f.read() == "0123456789abcdef\n"

    assert report.ok is True
    assert report.entries[eph].status is UnitStatus.APPLIED
    bt = _p(root, "var/lib/bluetooth")
    assert report.entries[bt].status is UnitStatus.SKIPPED
    assert report.entries[bt].error["type"] == DURABLE_PATH_MISSING
    assert report.skipped == (bt,)
    assert dummy_ctx.warnings_for(bt) == report.entries[bt].warnings
    assert len(report.entries[bt].warnings) == 1
    assert not os.path.lexists(bt)
    assert fake_fs.ops("bind_mount") == []


def test_second_run_changes_nothing(sandbox, dummy_ctx, fake_fs, make_entry):
    _require_imports()
    root, persist = sandbox["root"], sandbox["persist"]
    _write(_p(persist, "etc/machine-id"), "id\n")
    os.makedirs(_p(persist, "var/lib/bluetooth"))
    os.makedirs(_p(persist, "etc/nixos"))

    entries = [
        make_entry(_p(root, "etc/machine-id"), _p(persist, "etc/machine-id"), needed_for_boot=True),
        make_entry(_p(root, "etc/nixos"), _p(persist, "etc/nixos"), needed_for_boot=True),
        make_entry(
            _p(root, "var/lib/bluetooth"),
            _p(persist, "var/lib/bluetooth"),
            link_mode=LinkMode.BIND,
            owner_uid=os.getuid(),
            owner_gid=os.getgid(),
            permissions=0o700,
        ),
    ]

    first = _run(entries, dummy_ctx, fake_fs)
    assert first.ok is True
    assert all(r.changed for r in first.entries.values())
    snapshot = sorted(os.listdir(_p(root, "etc")))
    calls = list(fake_fs.calls)

    second = _run(entries, dummy_ctx, fake_fs)

    assert second.ok is True
    assert all(r.status is UnitStatus.APPLIED and not r.changed for r in second.entries.values())
    assert all(r.error is None for r in second.entries.values())
    assert fake_fs.calls == calls
    assert sorted(os.listdir(_p(root, "etc"))) == snapshot


def test_required_failure_aborts_remaining_entries(sandbox, dummy_ctx, fake_fs, make_entry):
    """
    Verifica a política fail-fast para entradas obrigatórias.

    Invariantes:
        - a entrada que falha recebe FAILED com erro fatal
        - nenhuma entrada posterior é processada
        - o que já foi aplicado permanece (sem rollback)
    """
    _require_imports()
    root, persist = sandbox["root"], sandbox["persist"]
    _write(_p(persist, "etc/hostid"), "x")
    _write(_p(persist, "etc/machine-id-later"), "y")

    entries = [
        make_entry(_p(root, "etc/hostid"), _p(persist, "etc/hostid"), needed_for_boot=True),
        make_entry(_p(root, "etc/users"), _p(persist, "etc/users"), needed_for_boot=True),
        make_entry(_p(root, "etc/machine-id"), _p(persist, "etc/machine-id-later"), needed_for_boot=True),
    ]

    report = _run(entries, dummy_ctx, fake_fs)

    failed = _p(root, "etc/users")
    assert report.ok is False
    assert report.aborted_at == failed
    assert report.entries[failed].status is UnitStatus.FAILED
    assert report.entries[failed].error["type"] == DURABLE_PATH_MISSING
    assert report.entries[failed].error["fatal"] is True
    assert report.entries[failed].error["details"]["durable_path"] == _p(persist, "etc/users")
    assert _p(root, "etc/machine-id") not in report.entries
    assert not os.path.lexists(_p(root, "etc/machine-id"))
    assert os.path.islink(_p(root, "etc/hostid"))


def test_wrong_kind_is_durable_path_missing(sandbox, dummy_ctx, fake_fs, make_entry):
    _require_imports()
    root, persist = sandbox["root"], sandbox["persist"]
    os.makedirs(_p(persist, "etc/machine-id"))

    entry = make_entry(_p(root, "etc/machine-id"), _p(persist, "etc/machine-id"), needed_for_boot=True, kind=PathKind.FILE)
    report = _run([entry], dummy_ctx, fake_fs)

    details = report.entries[entry.entry_id].error["details"]
    assert details["expected_kind"] == "file"
    assert details["actual_kind"] == "directory"


def test_unavailable_store_fails_entry(sandbox, dummy_ctx, fake_fs, make_entry):
    _require_imports()
    root, persist = sandbox["root"], sandbox["persist"]
    _write(_p(persist, "etc/machine-id"), "id")

    entry = make_entry(_p(root, "etc/machine-id"), _p(persist, "etc/machine-id"), needed_for_boot=True)
    report = _run([entry], dummy_ctx, fake_fs, unavailable=[persist])

    assert report.ok is False
    assert report.entries[entry.entry_id].error["type"] == DURABLE_STORE_UNAVAILABLE
    assert not os.path.lexists(entry.ephemeral_path)


def test_conflicting_file_is_replaced(sandbox, dummy_ctx, fake_fs, make_entry):
    """
    Verifica que um arquivo regular no caminho efêmero (ex.: machine-id gerado
    pelo systemd antes da reconciliação) é substituído pelo symlink e que o
    conflito é registrado sem ser fatal.
    """
    _require_imports()
    root, persist = sandbox["root"], sandbox["persist"]
    _write(_p(persist, "etc/machine-id"), "durable\n")
    _write(_p(root, "etc/machine-id"), "freshly generated\n")

    entry = make_entry(_p(root, "etc/machine-id"), _p(persist, "etc/machine-id"), needed_for_boot=True)
    report = _run([entry], dummy_ctx, fake_fs)

    result = report.entries[entry.entry_id]
    assert result.status is UnitStatus.APPLIED
    assert result.details["conflict"]["type"] == EPHEMERAL_PATH_CONFLICT
    assert result.details["conflict"]["details"]["found"] == "file"
    assert result.details["conflict"]["fatal"] is False
    assert len(result.warnings) == 1
    assert os.readlink(entry.ephemeral_path) == entry.durable_path


def test_symlink_to_wrong_target_is_replaced(sandbox, dummy_ctx, fake_fs, make_entry):
    _require_imports()
    root, persist = sandbox["root"], sandbox["persist"]
    os.makedirs(_p(persist, "etc/nixos"))
    os.makedirs(_p(root, "etc"))
    os.symlink("/nowhere", _p(root, "etc/nixos"))

    entry = make_entry(_p(root, "etc/nixos"), _p(persist, "etc/nixos"))
    report = _run([entry], dummy_ctx, fake_fs)

    assert os.readlink(entry.ephemeral_path) == entry.durable_path
    assert report.entries[entry.entry_id].details["conflict"]["details"]["found"] == "symlink to /nowhere"


def test_conflicting_directory_is_removed_for_symlink(sandbox, dummy_ctx, fake_fs, make_entry):
    _require_imports()
    root, persist = sandbox["root"], sandbox["persist"]
    os.makedirs(_p(persist, "etc/tailscale"))
    _write(_p(root, "etc/tailscale/stale.conf"), "stale")

    entry = make_entry(_p(root, "etc/tailscale"), _p(persist, "etc/tailscale"), needed_for_boot=False)
    report = _run([entry], dummy_ctx, fake_fs)

    assert os.path.islink(entry.ephemeral_path)
    assert not os.path.exists(_p(persist, "etc/tailscale/stale.conf"))
    assert report.entries[entry.entry_id].details["conflict"]["details"]["found"] == "directory"


def test_bind_mount_creates_target_and_mounts(sandbox, dummy_ctx, fake_fs, make_entry):
    _require_imports()
    root, persist = sandbox["root"], sandbox["persist"]
    os.makedirs(_p(persist, "var/lib/bluetooth"))

    entry = make_entry(_p(root, "var/lib/bluetooth"), _p(persist, "var/lib/bluetooth"), link_mode=LinkMode.BIND)
    report = _run([entry], dummy_ctx, fake_fs)

    assert report.entries[entry.entry_id].status is UnitStatus.APPLIED
    assert os.path.isdir(entry.ephemeral_path) and not os.path.islink(entry.ephemeral_path)
    assert fake_fs.ops("bind_mount") == [("bind_mount", entry.durable_path, entry.ephemeral_path)]


def test_bind_mount_file_target_is_created_as_file(sandbox, dummy_ctx, fake_fs, make_entry):
    _require_imports()
    root, persist = sandbox["root"], sandbox["persist"]
    _write(_p(persist, "var/lib/tailscale/tailscaled.state"), "{}")

    entry = make_entry(
        _p(root, "var/lib/tailscale/tailscaled.state"),
        _p(persist, "var/lib/tailscale/tailscaled.state"),
        link_mode=LinkMode.BIND,
    )
    _run([entry], dummy_ctx, fake_fs)

    assert os.path.isfile(entry.ephemeral_path)


def test_bind_reuses_existing_directory_without_conflict(sandbox, dummy_ctx, fake_fs, make_entry):
    _require_imports()
    root, persist = sandbox["root"], sandbox["persist"]
    os.makedirs(_p(persist, "var/lib/acme"))
    os.makedirs(_p(root, "var/lib/acme"))

    entry = make_entry(_p(root, "var/lib/acme"), _p(persist, "var/lib/acme"), link_mode=LinkMode.BIND)
    report = _run([entry], dummy_ctx, fake_fs)

    assert "conflict" not in report.entries[entry.entry_id].details
    assert len(fake_fs.ops("bind_mount")) == 1


def test_wrong_bind_mount_is_unmounted_before_rebinding(sandbox, dummy_ctx, fake_fs, make_entry):
    """
    Verifica que uma montagem divergente é desmontada antes de qualquer
    remoção: nunca se apaga conteúdo através de uma montagem.
    """
    _require_imports()
    root, persist = sandbox["root"], sandbox["persist"]
    os.makedirs(_p(persist, "var/lib/acme"))
    os.makedirs(_p(root, "var/lib/acme"))
    fake_fs.mounts[_p(root, "var/lib/acme")] = "/somewhere/else"

    entry = make_entry(_p(root, "var/lib/acme"), _p(persist, "var/lib/acme"), link_mode=LinkMode.BIND)
    report = _run([entry], dummy_ctx, fake_fs)

    ops = [c[0] for c in fake_fs.calls]
    assert ops.index("unmount") < ops.index("bind_mount")
    assert fake_fs.mounted_source(entry.ephemeral_path) == entry.durable_path
    assert report.entries[entry.entry_id].details["conflict"]["details"]["found"] == "mount of /somewhere/else"


def test_optional_syscall_failure_is_skipped(sandbox, dummy_ctx, fake_fs, make_entry):
    _require_imports()
    root, persist = sandbox["root"], sandbox["persist"]
    os.makedirs(_p(persist, "var/lib/bluetooth"))
    _write(_p(persist, "etc/machine-id"), "id")
    fake_fs.fail["bind_mount"] = {_p(root, "var/lib/bluetooth")}

    entries = [
        make_entry(_p(root, "var/lib/bluetooth"), _p(persist, "var/lib/bluetooth"), link_mode=LinkMode.BIND),
        make_entry(_p(root, "etc/machine-id"), _p(persist, "etc/machine-id"), needed_for_boot=True),
    ]
    report = _run(entries, dummy_ctx, fake_fs)

    bt = report.entries[_p(root, "var/lib/bluetooth")]
    assert report.ok is True
    assert bt.status is UnitStatus.SKIPPED
    assert bt.error["type"] == LINK_OR_MOUNT_FAILURE
    assert bt.error["details"]["operation"] == "bind mount"
    assert report.entries[_p(root, "etc/machine-id")].status is UnitStatus.APPLIED


def test_required_syscall_failure_is_fatal(sandbox, dummy_ctx, fake_fs, make_entry):
    _require_imports()
    root, persist = sandbox["root"], sandbox["persist"]
    os.makedirs(_p(persist, "var/lib/acme"))
    fake_fs.fail["bind_mount"] = {_p(root, "var/lib/acme")}

    entry = make_entry(_p(root, "var/lib/acme"), _p(persist, "var/lib/acme"), link_mode=LinkMode.BIND, needed_for_boot=True)
    report = _run([entry], dummy_ctx, fake_fs)

    assert report.ok is False
    assert report.entries[entry.entry_id].error["fatal"] is True


def test_nested_entries_applied_after_parent(sandbox, dummy_ctx, fake_fs, make_entry):
    _require_imports()
    root, persist = sandbox["root"], sandbox["persist"]
    os.makedirs(_p(persist, "var/lib"))
    _write(_p(persist, "state/secret_key"), "k")

    entries = [
        make_entry(_p(root, "var/lib/NetworkManager/secret_key"), _p(persist, "state/secret_key")),
        make_entry(_p(root, "var/lib"), _p(persist, "var/lib"), link_mode=LinkMode.BIND),
    ]
    report = _run(entries, dummy_ctx, fake_fs)

    assert list(report.entries) == [_p(root, "var/lib"), _p(root, "var/lib/NetworkManager/secret_key")]
    assert os.path.islink(_p(root, "var/lib/NetworkManager/secret_key"))


def test_permissions_enforced_on_durable_path_only(sandbox, dummy_ctx, fake_fs, make_entry):
    _require_imports()
    root, persist = sandbox["root"], sandbox["persist"]
    durable = _p(persist, "etc/users/alice")
    _write(durable, "hash")
    os.chmod(durable, 0o644)

    entry = make_entry(
        _p(root, "etc/users/alice"),
        durable,
        owner_uid=os.getuid(),
        owner_gid=os.getgid(),
        permissions=0o640,
    )
    report = _run([entry], dummy_ctx, fake_fs)

    assert report.entries[entry.entry_id].status is UnitStatus.APPLIED
    assert stat.S_IMODE(os.stat(durable).st_mode) == 0o640
    assert all(c[1] == durable for c in fake_fs.ops("chmod"))
    assert fake_fs.ops("chown") == []


@pytest.mark.skipif(not hasattr(os, "geteuid") or os.geteuid() != 0, reason="requires root to chown")
def test_ownership_enforced_with_real_host(sandbox, dummy_ctx, make_entry):
    _require_imports()
    from persistroot.core.fs.host import HostFilesystem

    root, persist = sandbox["root"], sandbox["persist"]
    durable = _p(persist, "etc/ssh/ssh_host_ed25519_key")
    _write(durable, "key")

    entry = make_entry(_p(root, "etc/ssh/ssh_host_ed25519_key"), durable, owner_uid=1, owner_gid=1, permissions=0o600)
    report = _run([entry], dummy_ctx, HostFilesystem())

    st = os.stat(durable)
    assert report.entries[entry.entry_id].status is UnitStatus.APPLIED
    assert (st.st_uid, st.st_gid) == (1, 1)
    assert stat.S_IMODE(st.st_mode) == 0o600


def test_nested_binds_already_applied_with_real_mountinfo(sandbox, dummy_ctx, make_entry, tmp_path):
    """
    Verifica, com o `HostFilesystem` real lendo um mountinfo, que um bind
    aninhado sob outro bind é reconhecido como aplicado: nenhum comando é
    executado e nada muda.
    """
    _require_imports()
    from persistroot.core.fs.host import HostFilesystem

    root, persist = os.path.realpath(sandbox["root"]), os.path.realpath(sandbox["persist"])
    os.makedirs(_p(persist, "var/lib/bluetooth"))
    os.makedirs(_p(root, "var/lib/bluetooth"))

    mountinfo = tmp_path / "mountinfo"
    mountinfo.write_text(
        "22 1 0:21 / / rw,relatime shared:1 - tmpfs none rw\n"
        f"40 22 0:45 / {persist} rw,noatime shared:20 - zfs rpool/safe/persist rw,xattr\n"
        f"57 22 0:45 /var/lib {root}/var/lib rw,noatime shared:20 - zfs rpool/safe/persist rw,xattr\n"
        f"58 57 0:45 /var/lib/bluetooth {root}/var/lib/bluetooth rw,noatime shared:20 - zfs rpool/safe/persist rw\n",
        encoding="utf-8",
    )
    calls = []
    host = HostFilesystem(mountinfo_path=str(mountinfo), runner=lambda argv: calls.append(list(argv)) or "")

    entries = [
        make_entry(_p(root, "var/lib"), _p(persist, "var/lib"), link_mode=LinkMode.BIND),
        make_entry(_p(root, "var/lib/bluetooth"), _p(persist, "var/lib/bluetooth"), link_mode=LinkMode.BIND),
    ]
    report = _run(entries, dummy_ctx, host)

    assert calls == []
    assert all(r.status is UnitStatus.APPLIED and not r.changed for r in report.entries.values())
    assert dummy_ctx.warnings_for(entries[1].entry_id) == []


def test_submount_is_unmounted_before_directory_removal(sandbox, dummy_ctx, fake_fs, make_entry):
    _require_imports()
    root, persist = sandbox["root"], sandbox["persist"]
    os.makedirs(_p(persist, "etc/tailscale"))
    sub = _p(root, "etc/tailscale/sub")
    _write(_p(sub, "state"), "live")
    fake_fs.mounts[sub] = _p(persist, "etc/tailscale/sub")

    entry = make_entry(_p(root, "etc/tailscale"), _p(persist, "etc/tailscale"), needed_for_boot=False)
    report = _run([entry], dummy_ctx, fake_fs)

    assert fake_fs.ops("unmount") == [("unmount", sub)]
    assert sub not in fake_fs.mounts
    assert os.readlink(entry.ephemeral_path) == entry.durable_path
    assert report.entries[entry.entry_id].details["conflict"]["details"]["found"] == f"directory with mount on {sub}"


def test_submount_that_cannot_be_unmounted_blocks_removal(sandbox, dummy_ctx, fake_fs, make_entry):
    """
    Verifica que, se a montagem sob o caminho efêmero não sai, o diretório
    não é removido e a entrada opcional fica SKIPPED.
    """
    _require_imports()
    root, persist = sandbox["root"], sandbox["persist"]
    os.makedirs(_p(persist, "etc/tailscale"))
    sub = _p(root, "etc/tailscale/sub")
    _write(_p(sub, "state"), "live")
    fake_fs.mounts[sub] = _p(persist, "etc/tailscale/sub")
    fake_fs.fail["unmount"] = {sub}

    entry = make_entry(_p(root, "etc/tailscale"), _p(persist, "etc/tailscale"), needed_for_boot=False)
    report = _run([entry], dummy_ctx, fake_fs)

    result = report.entries[entry.entry_id]
    assert result.status is UnitStatus.SKIPPED
    assert result.error["type"] == LINK_OR_MOUNT_FAILURE
    assert os.path.isfile(_p(sub, "state"))
    assert not os.path.islink(entry.ephemeral_path)
