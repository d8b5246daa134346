"""
Schema canônico da tabela de persistência (v1).

Valida as seções `stores` e `entries` da configuração efetiva e
materializa uma `MountTable` imutável.

Esta implementação evita dependências externas (ex.: Pydantic) para manter
o binário de boot leve e sem imports pesados no initrd.

Exemplo (YAML):

    stores:
      - id: rpool/safe/persist
        mountpoint: /persist
        needed_for_boot: true
        load_key: true
    entries:
      - ephemeral_path: /etc/machine-id
        durable_path: /persist/etc/machine-id
        link_mode: symlink
        kind: file
      - ephemeral_path: /var/lib/bluetooth
        durable_path: /persist/var/lib/bluetooth
        link_mode: bind
        needed_for_boot: false
        permissions: "0700"
"""

from __future__ import annotations

import posixpath
from dataclasses import replace
from typing import Any, Dict, List, Optional, Set

from .errors import DuplicatePathError, TableValidationError
from .types import DurableStore, LinkMode, MountTable, MountTableEntry, PathKind, is_strictly_under

_ALLOWED_LINK_MODES = {m.value for m in LinkMode}
_ALLOWED_KINDS = {k.value for k in PathKind}


def _is_non_empty_str(x: Any) -> bool:
    return isinstance(x, str) and bool(x.strip())


def _expect(cond: bool, msg: str) -> None:
    if not cond:
        raise TableValidationError(msg)


def _abs_path(value: Any, where: str) -> str:
    _expect(_is_non_empty_str(value), f"{where} is required")
    _expect(value.startswith("/"), f"{where} must be an absolute path: {value}")
    norm = posixpath.normpath(value)
    # normpath preserva '//' inicial (POSIX); colapsa para um único '/'
    if norm.startswith("//"):
        norm = "/" + norm.lstrip("/")
    return norm


def _optional_bool(value: Any, where: str) -> Optional[bool]:
    if value is None:
        return None
    _expect(isinstance(value, bool), f"{where} must be boolean")
    return value


def _optional_id(value: Any, where: str) -> Optional[int]:
    if value is None:
        return None
    _expect(isinstance(value, int) and not isinstance(value, bool), f"{where} must be an integer")
    _expect(value >= 0, f"{where} must be non-negative")
    return value


def parse_permissions(value: Any, where: str = "permissions") -> Optional[int]:
    """Aceita int (ex.: 0o640 vindo do YAML) ou string octal ("0640", "640", "0o640")."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise TableValidationError(f"{where} must be an octal string or integer")
    if isinstance(value, int):
        bits = value
    elif isinstance(value, str):
        raw = value.strip().lower()
        if raw.startswith("0o"):
            raw = raw[2:]
        try:
            bits = int(raw, 8)
        except ValueError:
            raise TableValidationError(f"{where} is not a valid octal mode: {value!r}") from None
    else:
        raise TableValidationError(f"{where} must be an octal string or integer")
    _expect(0 <= bits <= 0o7777, f"{where} out of range: {value!r}")
    return bits


def _parse_store(raw: Any, i: int) -> DurableStore:
    where = f"stores[{i}]"
    _expect(isinstance(raw, dict), f"{where} must be a mapping")

    sid = raw.get("id")
    _expect(_is_non_empty_str(sid), f"{where}.id is required")

    options = raw.get("options") or []
    _expect(isinstance(options, list), f"{where}.options must be a list")
    _expect(all(_is_non_empty_str(o) for o in options), f"{where}.options must contain strings")

    fstype = raw.get("fstype", "zfs")
    _expect(_is_non_empty_str(fstype), f"{where}.fstype must be a non-empty string")

    encryption_root = raw.get("encryption_root")
    _expect(
        encryption_root is None or _is_non_empty_str(encryption_root),
        f"{where}.encryption_root must be a non-empty string",
    )

    return DurableStore(
        id=sid.strip(),
        mountpoint=_abs_path(raw.get("mountpoint"), f"{where}.mountpoint"),
        needed_for_boot=bool(_optional_bool(raw.get("needed_for_boot"), f"{where}.needed_for_boot")),
        fstype=fstype,
        options=tuple(options),
        load_key=bool(_optional_bool(raw.get("load_key"), f"{where}.load_key")),
        encryption_root=encryption_root,
    )


def _parse_entry(raw: Any, i: int) -> Dict[str, Any]:
    where = f"entries[{i}]"
    _expect(isinstance(raw, dict), f"{where} must be a mapping")

    link_mode = raw.get("link_mode", LinkMode.SYMLINK.value)
    _expect(link_mode in _ALLOWED_LINK_MODES, f"{where}.link_mode must be one of {sorted(_ALLOWED_LINK_MODES)}")

    kind = raw.get("kind", PathKind.ANY.value)
    _expect(kind in _ALLOWED_KINDS, f"{where}.kind must be one of {sorted(_ALLOWED_KINDS)}")

    ephemeral = _abs_path(raw.get("ephemeral_path"), f"{where}.ephemeral_path")
    durable = _abs_path(raw.get("durable_path"), f"{where}.durable_path")
    _expect(ephemeral != "/", f"{where}.ephemeral_path cannot be the root directory")
    _expect(ephemeral != durable, f"{where}: ephemeral_path and durable_path are the same: {ephemeral}")

    recursive = _optional_bool(raw.get("recursive"), f"{where}.recursive")

    return {
        "ephemeral_path": ephemeral,
        "durable_path": durable,
        "link_mode": LinkMode(link_mode),
        # None = herdar do store dono (ver build_mount_table)
        "needed_for_boot": _optional_bool(raw.get("needed_for_boot"), f"{where}.needed_for_boot"),
        "kind": PathKind(kind),
        "owner_uid": _optional_id(raw.get("owner_uid"), f"{where}.owner_uid"),
        "owner_gid": _optional_id(raw.get("owner_gid"), f"{where}.owner_gid"),
        "permissions": parse_permissions(raw.get("permissions"), f"{where}.permissions"),
        "recursive": bool(recursive),
    }


def _promote_required_stores(stores: List[DurableStore], required_ids: Set[str]) -> List[DurableStore]:
    # Um store obrigatório exige que seus ancestrais também estejam montados.
    required_mps = {s.mountpoint for s in stores if s.id in required_ids or s.needed_for_boot}
    changed = True
    while changed:
        changed = False
        for s in stores:
            if s.mountpoint in required_mps:
                continue
            if any(is_strictly_under(mp, s.mountpoint) for mp in required_mps):
                required_mps.add(s.mountpoint)
                changed = True

    return [
        s if s.needed_for_boot or s.mountpoint not in required_mps else replace(s, needed_for_boot=True)
        for s in stores
    ]


def build_mount_table(config: Any) -> MountTable:
    """Valida a configuração e materializa a `MountTable`.

    neededForBoot é propagado nos dois sentidos:
        - entrada sem `needed_for_boot` explícito herda o valor do store dono
        - store que contém uma entrada obrigatória é promovido a obrigatório

    Raises:
        TableValidationError: estrutura inválida.
        DuplicatePathError: ids, mountpoints ou caminhos efêmeros repetidos.
    """
    _expect(isinstance(config, dict), "config must be a mapping/dict")

    raw_stores = config.get("stores") or []
    _expect(isinstance(raw_stores, list), "stores must be a list")
    raw_entries = config.get("entries") or []
    _expect(isinstance(raw_entries, list), "entries must be a list")

    stores: List[DurableStore] = []
    seen_ids: Set[str] = set()
    seen_mps: Set[str] = set()
    for i, raw in enumerate(raw_stores):
        store = _parse_store(raw, i)
        if store.id in seen_ids:
            raise DuplicatePathError(f"duplicate store id: {store.id}")
        if store.mountpoint in seen_mps:
            raise DuplicatePathError(f"duplicate store mountpoint: {store.mountpoint}")
        seen_ids.add(store.id)
        seen_mps.add(store.mountpoint)
        stores.append(store)

    provisional = MountTable(stores=stores, entries=[])

    entries: List[MountTableEntry] = []
    seen_ephemeral: Set[str] = set()
    required_store_ids: Set[str] = set()
    for i, raw in enumerate(raw_entries):
        fields = _parse_entry(raw, i)
        if fields["ephemeral_path"] in seen_ephemeral:
            raise DuplicatePathError(f"duplicate ephemeral_path: {fields['ephemeral_path']}")
        seen_ephemeral.add(fields["ephemeral_path"])

        owner = provisional.store_for(fields["durable_path"])
        if fields["needed_for_boot"] is None:
            fields["needed_for_boot"] = bool(owner and owner.needed_for_boot)
        if fields["needed_for_boot"] and owner is not None:
            required_store_ids.add(owner.id)

        entries.append(MountTableEntry(**fields))

    return MountTable(
        stores=_promote_required_stores(stores, required_store_ids),
        entries=entries,
    )
