# src/persistroot/core/engine/planner.py
"""
Planejador de ordem de aplicação (stores e entradas).

Este módulo produz a ordem linear em que stores duráveis são montados e
entradas da tabela são reconciliadas, a partir do aninhamento de caminhos:

    - um store é montado depois de qualquer store cujo mountpoint é
      prefixo do seu (montar /persist/home antes de /persist esconderia o
      primeiro sob o segundo)
    - uma entrada é aplicada depois de qualquer entrada cujo caminho
      efêmero é prefixo do seu (o diretório pai precisa existir na forma
      correta antes de receber filhos)

Princípios fundamentais:
    - Entrada fora de ordem é **reordenada automaticamente**, nunca executada
      na ordem errada
    - A ordenação é determinística para a mesma entrada
    - Empates preservam a ordem de declaração do operador

Decisões arquiteturais:
    - Ordenação topológica determinística (Kahn modificado)
    - Prefixo estrito é uma ordem parcial: ciclos são impossíveis por
      construção, mas duplicatas são rejeitadas
    - Entrada aninhada sob uma entrada SYMLINK é rejeitada: seria criada
      através do link, dentro do store durável

Limites explícitos:
    - Não toca o filesystem
    - Não decide políticas de falha
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Sequence, Set, TypeVar

from persistroot.core.table.errors import DuplicatePathError, NestedUnderSymlinkError
from persistroot.core.table.types import DurableStore, LinkMode, MountTableEntry, is_strictly_under

T = TypeVar("T")


def _nested_order(items: Sequence[T], path_of: Callable[[T], str], label: str) -> List[T]:
    """
    Ordena itens de forma que prefixos venham antes de caminhos aninhados.

    Empates são resolvidos pelo índice de declaração, o que torna a saída
    idêntica à entrada sempre que a entrada já estiver corretamente ordenada.

    Raises:
        DuplicatePathError: Se dois itens declararem o mesmo caminho.
    """
    paths = [path_of(it) for it in items]
    seen: Dict[str, int] = {}
    for idx, p in enumerate(paths):
        if p in seen:
            raise DuplicatePathError(f"Duplicate {label}: {p}")
        seen[p] = idx

    incoming_count: Dict[int, int] = {i: 0 for i in range(len(items))}
    outgoing: Dict[int, Set[int]] = {i: set() for i in range(len(items))}

    for child, cp in enumerate(paths):
        for parent, pp in enumerate(paths):
            if is_strictly_under(cp, pp):
                outgoing[parent].add(child)
                incoming_count[child] += 1

    ready: List[int] = sorted(i for i, c in incoming_count.items() if c == 0)
    order: List[int] = []

    while ready:
        idx = ready.pop(0)  # menor índice de declaração
        order.append(idx)
        for child in sorted(outgoing[idx]):
            incoming_count[child] -= 1
            if incoming_count[child] == 0:
                ready.append(child)
                ready.sort()

    return [items[i] for i in order]


def plan_stores(stores: Iterable[DurableStore]) -> List[DurableStore]:
    """
    Produz a ordem de montagem dos stores duráveis.

    Args:
        stores (Iterable[DurableStore]): Stores na ordem declarada.

    Returns:
        List[DurableStore]: Stores com ancestrais antes de descendentes.

    Raises:
        DuplicatePathError: Se dois stores compartilharem mountpoint.
    """
    return _nested_order(list(stores), lambda s: s.mountpoint, "store mountpoint")


def plan_entries(entries: Iterable[MountTableEntry]) -> List[MountTableEntry]:
    """
    Produz a ordem de reconciliação das entradas da tabela.

    Invariantes:
        - Para todo A, B com A.ephemeral_path prefixo de B.ephemeral_path,
          A aparece antes de B
        - Toda entrada aparece exatamente uma vez

    Args:
        entries (Iterable[MountTableEntry]): Entradas na ordem declarada.

    Returns:
        List[MountTableEntry]: Entradas em ordem segura de aplicação.

    Raises:
        DuplicatePathError: Se duas entradas declararem o mesmo caminho efêmero.
        NestedUnderSymlinkError: Se uma entrada estiver aninhada sob uma entrada symlink.
    """
    entry_list = list(entries)
    ordered = _nested_order(entry_list, lambda e: e.ephemeral_path, "ephemeral_path")

    for e in ordered:
        for other in entry_list:
            if other.link_mode is LinkMode.SYMLINK and is_strictly_under(e.ephemeral_path, other.ephemeral_path):
                raise NestedUnderSymlinkError(
                    f"Entry '{e.ephemeral_path}' is nested under symlink entry '{other.ephemeral_path}'"
                )

    return ordered
