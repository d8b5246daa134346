"""
Pacote de rastreabilidade do persistroot: Manifest de boot.

API pública exposta:
    - BootManifest    → estrutura canônica do Manifest
    - create_manifest → criação explícita do Manifest
    - add_event       → registro explícito de eventos no Event Log
    - phase_started / phase_finished → marcação das fases mount e reconcile
    - record_unit     → resultado de um store ou entrada
    - set_ready       → prontidão final exposta a estágios posteriores
    - save_manifest / load_manifest → persistência JSON
"""

from .manifest import (
    BootManifest,
    add_event,
    create_manifest,
    load_manifest,
    phase_finished,
    phase_started,
    record_unit,
    save_manifest,
    set_ready,
)

__all__ = [
    "BootManifest",
    "add_event",
    "create_manifest",
    "load_manifest",
    "phase_finished",
    "phase_started",
    "record_unit",
    "save_manifest",
    "set_ready",
]
