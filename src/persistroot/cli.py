# src/persistroot/cli.py
"""
Comando `persistroot`.

Subcomandos:
    apply   → monta stores e reconcilia a tabela (unidade de boot)
    plan    → mostra a ordem de montagem e de reconciliação, sem tocar o host
    status  → relatório Markdown a partir do manifest do último boot
    ready   → código de saída 0 se a reconciliação terminou
    seed    → semeia o store durável a partir de uma árvore de origem

Códigos de saída:
    0 → sucesso / boot pronto
    1 → unidade obrigatória falhou / boot não pronto
    2 → configuração ou tabela inválida
"""

from __future__ import annotations

import argparse
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

from persistroot import __version__
from persistroot.core.boot.context import BootContext
from persistroot.core.config import ConfigError, load_config
from persistroot.core.engine import BootEngine, is_ready, plan_entries, plan_stores
from persistroot.core.engine.readiness import DEFAULT_READY_MARKER
from persistroot.core.fs.host import HostFilesystem
from persistroot.core.logging import configure_logging
from persistroot.core.table import MountTable, TableError, build_mount_table
from persistroot.core.traceability import load_manifest
from persistroot.provision import DEFAULT_EXCLUDE, SeedAction, seed_durable_paths
from persistroot.report.report_md import generate_report_md

log = logging.getLogger(__name__)

DEFAULT_MANIFEST_PATH = "/run/persistroot/manifest.json"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="persistroot", description="Reconcile persistent state onto an ephemeral root")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_config_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", required=True, help="Persistence table (YAML or JSON)")
        p.add_argument("--local", default=None, help="Optional host-specific overrides")

    apply = subparsers.add_parser("apply", help="Mount durable stores and reconcile the table")
    add_config_args(apply)
    apply.add_argument("--ready-marker", default=None, help="Readiness marker path (defaults to config)")
    apply.add_argument("--manifest", default=None, help="Manifest output path (defaults to config)")
    apply.add_argument(
        "--mountinfo",
        default="/proc/self/mountinfo",
        help="mountinfo file used to inspect current mounts",
    )

    plan = subparsers.add_parser("plan", help="Print mount and reconcile order")
    add_config_args(plan)

    status = subparsers.add_parser("status", help="Render the last boot manifest as Markdown")
    status.add_argument("--manifest", default=DEFAULT_MANIFEST_PATH, help="Manifest written by apply")

    ready = subparsers.add_parser("ready", help="Exit 0 when reconciliation has completed")
    ready.add_argument("--marker", default=DEFAULT_READY_MARKER, help="Readiness marker path")

    seed = subparsers.add_parser("seed", help="Copy missing durable paths from a source tree")
    add_config_args(seed)
    seed.add_argument("--source", required=True, help="Source tree laid out like the durable store")
    seed.add_argument("--durable-root", default="/", help="Prefix stripped from durable paths to find the source")
    seed.add_argument("--install-root", default="/", help="Prefix prepended to durable paths on the target")
    seed.add_argument("--overwrite", action="store_true", help="Copy even when the destination exists")

    return parser.parse_args(list(argv))


def _load_table(args: argparse.Namespace) -> Tuple[Dict[str, Any], MountTable]:
    config = load_config(defaults_path=args.config, local_path=args.local)
    return config, build_mount_table(config)


def _engine_setting(config: Dict[str, Any], key: str, override: Optional[str], default: str) -> str:
    if override:
        return override
    engine_cfg = (config or {}).get("engine", {}) or {}
    return engine_cfg.get(key) or default


def _cmd_apply(args: argparse.Namespace, config: Dict[str, Any], table: MountTable) -> int:
    ctx = BootContext(
        run_id=uuid.uuid4().hex,
        created_at=datetime.now(timezone.utc),
        config=config,
        meta={"config_path": args.config, "local_path": args.local},
    )
    engine = BootEngine(
        table=table,
        ctx=ctx,
        fs=HostFilesystem(mountinfo_path=args.mountinfo),
        ready_marker=_engine_setting(config, "ready_marker", args.ready_marker, DEFAULT_READY_MARKER),
        manifest_path=_engine_setting(config, "manifest_path", args.manifest, DEFAULT_MANIFEST_PATH),
    )
    result = engine.run()

    if not result.ready:
        return EXIT_FAILED
    skipped = result.reconcile.skipped if result.reconcile else ()
    log.info("ready (%d entries, %d skipped)", len(table.entries), len(skipped))
    return EXIT_OK


def _cmd_plan(table: MountTable) -> int:
    print("stores:")
    for store in plan_stores(table.stores):
        flag = "required" if store.needed_for_boot else "optional"
        print(f"  {store.mountpoint}  <- {store.id} ({store.fstype}, {flag})")
    print("entries:")
    for entry in plan_entries(table.entries):
        flag = "required" if entry.needed_for_boot else "optional"
        print(f"  {entry.ephemeral_path}  -> {entry.durable_path} ({entry.link_mode.value}, {flag})")
    return EXIT_OK


def _cmd_status(args: argparse.Namespace) -> int:
    try:
        manifest = load_manifest(Path(args.manifest))
    except FileNotFoundError:
        log.error("no manifest at %s", args.manifest)
        return EXIT_FAILED
    print(generate_report_md(manifest.to_dict()))
    return EXIT_OK if manifest.run.get("ready") else EXIT_FAILED


def _cmd_seed(args: argparse.Namespace, config: Dict[str, Any], table: MountTable) -> int:
    seed_cfg = (config or {}).get("seed", {}) or {}
    exclude = seed_cfg.get("exclude") or list(DEFAULT_EXCLUDE)
    results = seed_durable_paths(
        table.entries,
        args.source,
        durable_root=args.durable_root,
        install_root=args.install_root,
        exclude=exclude,
        overwrite=args.overwrite,
    )
    for r in results:
        print(f"{r.action.value:<12} {r.destination}")

    missing_required = [
        e.entry_id
        for e, r in zip(table.entries, results)
        if e.needed_for_boot and r.action is SeedAction.NO_SOURCE
    ]
    if missing_required:
        log.error("required entries without seed source: %s", ", ".join(missing_required))
        return EXIT_FAILED
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Ponto de entrada da CLI; retorna o código de saída."""
    args = _parse_args(list(argv) if argv is not None else sys.argv[1:])
    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    if args.command == "ready":
        return EXIT_OK if is_ready(Path(args.marker)) else EXIT_FAILED
    if args.command == "status":
        return _cmd_status(args)

    try:
        config, table = _load_table(args)
        if args.command == "plan":
            return _cmd_plan(table)
        if args.command == "apply":
            return _cmd_apply(args, config, table)
        if args.command == "seed":
            return _cmd_seed(args, config, table)
    except (ConfigError, TableError):
        log.exception("invalid configuration")
        return EXIT_CONFIG
    except OSError:
        log.exception("fatal error during %s", args.command)
        return EXIT_FAILED

    raise ValueError(f"Unsupported command: {args.command}")
