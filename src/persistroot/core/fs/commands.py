"""Execução de comandos externos (mount, umount, zfs).

Toda chamada passa por `run_command`, que nunca usa shell e converte
saída não-zero em `CommandFailedError` com argv, código e stderr.
"""

from __future__ import annotations

import subprocess
from typing import List, Sequence


class CommandFailedError(OSError):
    """Comando externo terminou com código diferente de zero."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "") -> None:
        self.argv: List[str] = list(argv)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(f"{' '.join(self.argv)} exited with {returncode}{detail}")


def run_command(argv: Sequence[str]) -> str:
    """Executa `argv` e retorna stdout; levanta CommandFailedError em falha."""
    try:
        proc = subprocess.run(list(argv), capture_output=True, text=True, check=False)
    except FileNotFoundError as e:
        raise CommandFailedError(argv, 127, str(e)) from e

    if proc.returncode != 0:
        raise CommandFailedError(argv, proc.returncode, proc.stderr)
    return proc.stdout
