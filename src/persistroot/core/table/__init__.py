"""persistroot: tabela de persistência (core).

Componentes canônicos:
 - tipos imutáveis (DurableStore, MountTableEntry, MountTable)
 - validação estrutural e propagação de neededForBoot
"""

from .errors import (  # noqa: F401
    DuplicatePathError,
    NestedUnderSymlinkError,
    TableError,
    TableValidationError,
)
from .schema import build_mount_table, parse_permissions  # noqa: F401
from .types import (  # noqa: F401
    DurableStore,
    LinkMode,
    MountTable,
    MountTableEntry,
    PathKind,
    is_strictly_under,
    is_under,
)
