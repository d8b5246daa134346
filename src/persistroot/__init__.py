# src/persistroot/__init__.py
"""
persistroot: reconciliador de estado persistente para roots efêmeros.

Em máquinas cujo root é um tmpfs (ou um dataset revertido a um snapshot
vazio a cada boot), todo estado que precisa sobreviver ao reboot vive em
stores duráveis. A cada boot o persistroot recria, de forma idempotente,
os symlinks e bind mounts que fazem os caminhos efêmeros resolverem para
esse estado durável.

Arquitetura em alto nível:
    - core.config       → carregamento, merge e hashing de configuração
    - core.table        → tabela de persistência (stores e entradas)
    - core.boot         → contexto de execução e tipos de resultado
    - core.engine       → planejamento, montagem, reconciliação e prontidão
    - core.fs           → primitivas do host (mount, mountinfo, zfs)
    - core.traceability → Manifest e Event Log de cada boot
    - report            → relatório Markdown de status
    - provision         → semeadura fora de banda do store durável
    - cli               → comando `persistroot`

Limites explícitos:
    - Não cria nem destrói pools/datasets
    - Não faz backup nem sincroniza o store durável
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
