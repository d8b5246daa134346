# src/persistroot/core/config/__init__.py
"""
Camada de configuração do persistroot.

Responsabilidades do pacote:
    - Carregamento de arquivos de configuração (base + overrides locais)
    - Resolução da configuração final via deep-merge determinístico
    - Geração de hash canônico para o manifest de boot

Invariantes:
    - A configuração final é um dicionário puro (dict)
    - Conflitos estruturais são tratados como erro
"""

from .errors import (  # noqa: F401
    ConfigError,
    ConfigNotFoundError,
    ConfigTypeConflictError,
    InvalidConfigRootTypeError,
    InvalidConfigSyntaxError,
    UnsupportedConfigFormatError,
)
from .hashing import compute_config_hash  # noqa: F401
from .loader import load_config  # noqa: F401
from .merge import deep_merge  # noqa: F401
