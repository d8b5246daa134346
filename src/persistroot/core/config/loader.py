# src/persistroot/core/config/loader.py
"""
Loader canônico de configuração do persistroot.

A tabela de persistência é lida uma única vez, no início do processo de
boot, e passada explicitamente ao Mounter e ao Reconciler.

Camadas (da menor para a maior prioridade):
    1. arquivo base (obrigatório), versionado junto da configuração
       declarativa da máquina
    2. arquivo local (opcional), específico do host; declarado mas ausente
       é ignorado, pois o mesmo comando de boot serve máquinas sem override

Limites explícitos:
    - Não valida a semântica da tabela (ver `core.table.schema`)
    - Não toca o filesystem além da leitura dos arquivos
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TextIO

import yaml  # PyYAML

from .errors import (
    ConfigNotFoundError,
    InvalidConfigRootTypeError,
    InvalidConfigSyntaxError,
    UnsupportedConfigFormatError,
)
from .merge import deep_merge

log = logging.getLogger(__name__)

_PARSERS: Dict[str, Callable[[TextIO], Any]] = {
    ".yaml": yaml.safe_load,
    ".yml": yaml.safe_load,
    ".json": json.load,
}


def _load_file(path: Path) -> Dict[str, Any]:
    """
    Lê um arquivo de tabela (YAML ou JSON) e exige um mapa no nível raiz.

    Arquivo vazio equivale a `{}`.

    Raises:
        ConfigNotFoundError: Arquivo inexistente.
        UnsupportedConfigFormatError: Extensão fora de .yaml/.yml/.json.
        InvalidConfigSyntaxError: Erro do parser.
        InvalidConfigRootTypeError: Raiz diferente de dict.
    """
    if not path.is_file():
        raise ConfigNotFoundError(f"Arquivo de configuração não encontrado: {path}")

    parser = _PARSERS.get(path.suffix.lower())
    if parser is None:
        raise UnsupportedConfigFormatError(f"Formato não suportado: {path.suffix or '<sem extensão>'} ({path})")

    try:
        with path.open("r", encoding="utf-8") as f:
            data = parser(f)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise InvalidConfigSyntaxError(f"{path}: {e}") from e

    data = {} if data is None else data
    if not isinstance(data, dict):
        raise InvalidConfigRootTypeError(f"{path}: raiz deve ser um mapa, recebido {type(data).__name__}")

    return data


def load_config(
    *,
    defaults_path: str,
    local_path: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Resolve a configuração efetiva da máquina.

    Args:
        defaults_path (str): Arquivo base.
        local_path (Optional[str]): Overrides do host (prioridade sobre o base).

    Returns:
        Dict[str, Any]: Configuração final, novo dicionário.

    Raises:
        ConfigError: Qualquer subclasse, ver `_load_file` e `deep_merge`.
    """
    effective = _load_file(Path(defaults_path))
    log.debug("loaded base config %s", defaults_path)

    if local_path is None:
        return effective

    local_file = Path(local_path)
    if not local_file.exists():
        log.debug("local override %s not present, using base only", local_path)
        return effective

    log.debug("merging local override %s", local_path)
    return deep_merge(effective, _load_file(local_file))
