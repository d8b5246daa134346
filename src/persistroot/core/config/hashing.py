# src/persistroot/core/config/hashing.py
"""
Hashing canônico de configuração.

O hash identifica estruturalmente a configuração efetiva usada em um boot
e é gravado no manifest, permitindo responder "qual tabela estava em vigor
quando /etc/machine-id sumiu?" sem depender do arquivo original.

Política:
    - JSON canônico (chaves ordenadas, separadores compactos, UTF-8)
    - SHA-256, saída hexadecimal de 64 caracteres
"""

import hashlib
import json
from typing import Any, Dict


def compute_config_hash(config: Dict[str, Any]) -> str:
    """
    Gera um hash determinístico da configuração efetiva.

    Args:
        config (Dict[str, Any]): Configuração resolvida.

    Returns:
        str: Hash SHA-256 hexadecimal.

    Raises:
        TypeError: Se o objeto fornecido não for um dicionário.
    """

    if not isinstance(config, dict):
        raise TypeError(
            f"Config para hashing deve ser dict, recebido: {type(config).__name__}"
        )

    canonical_json = json.dumps(
        config,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )

    return hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()
