"""Erros canônicos do domínio da tabela de persistência.

A tabela é a entrada crítica do boot: falhas de validação são detectadas
antes de qualquer montagem e produzem erros explícitos e estáveis.
"""


class TableError(Exception):
    """Erro base do domínio da tabela."""


class TableValidationError(TableError):
    """Tabela não é estruturalmente válida."""


class DuplicatePathError(TableValidationError):
    """Dois stores ou duas entradas declaram o mesmo caminho."""


class NestedUnderSymlinkError(TableValidationError):
    """Entrada aninhada sob o caminho efêmero de uma entrada symlink."""
