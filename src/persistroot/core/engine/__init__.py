# src/persistroot/core/engine/__init__.py
"""
Engine do persistroot.

Componentes principais:
    - planner    → ordenação determinística por aninhamento de caminhos
    - mounter    → montagem dos stores duráveis (neededForBoot primeiro)
    - reconciler → symlinks e bind mounts da tabela, com fail-fast
    - readiness  → marcador de prontidão exposto a estágios posteriores
    - engine     → orquestração de um boot completo

Invariantes:
    - A reconciliação só começa com todo store obrigatório montado
    - Uma entrada só é aplicada depois das entradas que a contêm
    - Cada entrada é processada no máximo uma vez por execução
"""

from .engine import BootEngine, BootResult  # noqa: F401
from .mounter import DurableStoreMounter, MountReport  # noqa: F401
from .planner import plan_entries, plan_stores  # noqa: F401
from .readiness import clear_ready_marker, is_ready, write_ready_marker  # noqa: F401
from .reconciler import ReconcileReport, Reconciler  # noqa: F401
