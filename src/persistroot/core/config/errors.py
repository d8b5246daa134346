# src/persistroot/core/config/errors.py
"""
Exceções canônicas da camada de configuração do persistroot.

Este módulo define a hierarquia oficial de exceções utilizadas durante
o carregamento, validação estrutural e resolução da configuração que
descreve stores duráveis e a tabela de persistência.

As exceções aqui definidas representam **violações estruturais
explícitas** da configuração, e não falhas de montagem ou de
reconciliação em tempo de boot.

Princípios fundamentais:
    - Exceções são tipadas e semânticas
    - Erros estruturais são tratados como falhas fatais
    - Mensagens apontam o arquivo ou a chave problemática

Invariantes:
    - Todas as exceções de configuração herdam de `ConfigError`
    - Nenhuma exceção representa falha de syscall ou de store

Limites explícitos:
    - Não realiza fallback ou recovery
    - Não depende de Engine, Mounter ou Reconciler
"""


class ConfigError(Exception):
    """
    Exceção base para erros relacionados à configuração do persistroot.

    Todas as exceções levantadas durante carregamento e resolução de
    configuração devem herdar desta classe, permitindo à CLI distinguir
    erro de configuração (exit code 2) de falha de boot (exit code 1).
    """


class ConfigNotFoundError(ConfigError):
    """
    Exceção levantada quando o arquivo de configuração base não existe.

    Decisões arquiteturais:
        - O arquivo base é obrigatório
        - Sem ele não existe tabela de persistência a aplicar

    Limites explícitos:
        - Não tenta inferir ou criar uma configuração vazia
    """


class UnsupportedConfigFormatError(ConfigError):
    """
    Exceção levantada quando o formato do arquivo não é suportado.

    Formatos suportados:
        - YAML (.yaml, .yml)
        - JSON (.json)
    """


class InvalidConfigSyntaxError(ConfigError):
    """YAML ou JSON malformado; a mensagem inclui o arquivo e o erro do parser."""


class InvalidConfigRootTypeError(ConfigError):
    """
    Exceção levantada quando o conteúdo raiz da configuração
    não é um dicionário (`dict`).

    Listas ou escalares no root são inválidos: as seções `stores`,
    `entries` e `engine` são sempre chaves de um mapa.
    """


class ConfigTypeConflictError(ConfigError):
    """
    Exceção levantada quando ocorre conflito de tipos durante o deep-merge.

    Exemplo de conflito:
        - base:     {"engine": {"ready_marker": "/run/persistroot.ready"}}
        - override: {"engine": "off"}

    Invariantes:
        - Nenhum merge parcial é produzido em caso de conflito
    """
