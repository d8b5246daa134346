"""Configuração de logging compartilhada pela CLI."""

from __future__ import annotations

import logging


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Inicializa o root logger uma única vez.

    O formato é curto, adequado ao journal do boot, onde cada linha já
    recebe timestamp do host. `force=True` reconfigura (testes).
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
