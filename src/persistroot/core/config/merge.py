# src/persistroot/core/config/merge.py
"""
Deep-merge da configuração base com os overrides do host.

Política:
    - dict → merge recursivo por chave
    - list → substituída por inteiro; `entries` e `stores` nunca são
      mescladas item a item, o override declara a lista completa
    - escalar → substituído
    - `None` no base aceita qualquer tipo (ex.: `owner_uid: null`)
    - conflito de tipos → `ConfigTypeConflictError` com o caminho da chave
"""

from __future__ import annotations

from copy import deepcopy
from typing import Any, Dict

from .errors import ConfigTypeConflictError


def _merge_value(base: Any, override: Any, key_path: str) -> Any:
    if isinstance(base, dict) and isinstance(override, dict):
        merged = dict(base)
        for key, value in override.items():
            child = f"{key_path}.{key}" if key_path else str(key)
            merged[key] = _merge_value(base[key], value, child) if key in base else deepcopy(value)
        return merged

    if base is not None and not isinstance(override, list) and type(base) is not type(override):
        raise ConfigTypeConflictError(
            f"Conflito de tipo em '{key_path}': {type(base).__name__} vs {type(override).__name__}"
        )

    return deepcopy(override)


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Retorna uma nova configuração com `override` aplicado sobre `base`.

    Nenhum dos inputs é mutado; o mesmo par sempre produz o mesmo resultado.

    Raises:
        ConfigTypeConflictError: Raiz não-dict ou tipos incompatíveis.
    """
    if not isinstance(base, dict) or not isinstance(override, dict):
        raise ConfigTypeConflictError(
            f"Deep-merge requer dicts no nível raiz, recebido: "
            f"{type(base).__name__} vs {type(override).__name__}"
        )
    return deepcopy(_merge_value(base, override, ""))
