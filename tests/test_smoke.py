# tests/test_smoke.py
"""
Testes de sanidade estrutural (smoke tests) do persistroot.

Garantem que o pacote importa e que a tabela de persistência distribuída
em `config/` é válida e planejável, sem tocar o host.

Limites explícitos:
    - Não testa montagem nem reconciliação
    - Não depende de privilégios ou de filesystem fora do repositório
"""

from pathlib import Path

DEFAULTS = Path(__file__).resolve().parents[1] / "config" / "persistroot.defaults.yaml"


def test_smoke():
    import persistroot

    assert persistroot.__version__


def test_shipped_table_is_valid_and_plannable():
    from persistroot.core.config import load_config
    from persistroot.core.engine import plan_entries, plan_stores
    from persistroot.core.table import build_mount_table

    table = build_mount_table(load_config(defaults_path=str(DEFAULTS)))

    stores = {s.mountpoint: s for s in plan_stores(table.stores)}
    entries = {e.ephemeral_path: e for e in plan_entries(table.entries)}

    assert stores["/persist"].needed_for_boot is True
    assert stores["/home"].needed_for_boot is False
    # herdado do store /persist
    assert entries["/etc/machine-id"].needed_for_boot is True
    assert entries["/var/lib/bluetooth"].needed_for_boot is False
    assert entries["/etc/users"].permissions == 0o640
