"""
src/persistroot/report/report_md.py

Gerador canônico do relatório de boot em Markdown.

Regras:
- O relatório é derivado EXCLUSIVAMENTE do Manifest (dict).
- Não infere, não recalcula, não inspeciona o filesystem.
- Mesmo Manifest => mesmo relatório (ordenação estável).

Estrutura mínima obrigatória:
# Boot Report

## Summary
## Durable Stores
## Entries
## Warnings
## Errors
## Traceability
## Execution Metadata
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Tuple


REQUIRED_SECTIONS: List[str] = [
    "# Boot Report",
    "## Summary",
    "## Durable Stores",
    "## Entries",
    "## Warnings",
    "## Errors",
    "## Traceability",
    "## Execution Metadata",
]


def _sorted_items(d: Any) -> List[Tuple[str, Any]]:
    if not isinstance(d, dict):
        return []
    return sorted(d.items(), key=lambda kv: kv[0])


def _as_pretty_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, indent=2)


def _require_manifest(manifest: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(manifest, dict) or not manifest:
        raise ValueError("Manifest is required to generate the boot report")
    return manifest


def _section(manifest: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = manifest.get(key)
    return value if isinstance(value, dict) else {}


def _unit_table(units: Dict[str, Any], header: str) -> List[str]:
    lines = [f"| {header} | Status | Required | Changed | Summary |", "|---|---|---|---|---|"]
    for unit_id, unit in _sorted_items(units):
        if not isinstance(unit, dict):
            continue
        lines.append(
            "| `{}` | `{}` | {} | {} | {} |".format(
                unit_id,
                unit.get("status", "unknown"),
                "yes" if unit.get("required") else "no",
                "yes" if unit.get("changed") else "no",
                unit.get("summary") or "",
            )
        )
    return lines


def generate_report_md(manifest: Dict[str, Any]) -> str:
    """Gera o relatório completo a partir do Manifest de um boot."""
    manifest = _require_manifest(manifest)

    run = _section(manifest, "run")
    inputs = _section(manifest, "inputs")
    phases = _section(manifest, "phases")
    stores = _section(manifest, "stores")
    entries = _section(manifest, "entries")
    events = manifest.get("events") if isinstance(manifest.get("events"), list) else []

    lines: List[str] = []

    lines.append("# Boot Report\n")

    # Summary
    lines.append("## Summary")
    lines.append(f"- **Run ID**: `{run.get('run_id', '<unknown>')}`")
    lines.append(f"- **Started At (UTC)**: `{run.get('started_at', '<unknown>')}`")
    lines.append(f"- **persistroot Version**: `{run.get('version', '<unknown>')}`")
    lines.append(f"- **Ready**: `{'yes' if run.get('ready') else 'no'}`")
    for phase, info in _sorted_items(phases):
        if isinstance(info, dict):
            lines.append(f"- **Phase {phase}**: `{info.get('status', 'unknown')}` ({info.get('duration_ms', '?')} ms)")
    if "reconcile" not in phases:
        lines.append("- Reconciliation was not started.")
    lines.append("")

    # Durable Stores
    lines.append("## Durable Stores")
    if stores:
        lines.extend(_unit_table(stores, "Mountpoint"))
    else:
        lines.append("No durable stores recorded in the Manifest.")
    lines.append("")

    # Entries
    lines.append("## Entries")
    if entries:
        lines.extend(_unit_table(entries, "Ephemeral Path"))
    else:
        lines.append("No entries recorded in the Manifest.")
    lines.append("")

    # Warnings
    lines.append("## Warnings")
    warned = False
    for section in (stores, entries):
        for unit_id, unit in _sorted_items(section):
            for w in (unit.get("warnings") or []) if isinstance(unit, dict) else []:
                lines.append(f"- `{unit_id}`: {w}")
                warned = True
    if not warned:
        lines.append("No warnings.")
    lines.append("")

    # Errors
    lines.append("## Errors")
    failed = False
    for section in (stores, entries):
        for unit_id, unit in _sorted_items(section):
            error = unit.get("error") if isinstance(unit, dict) else None
            if not isinstance(error, dict):
                continue
            failed = True
            fatal = " (fatal)" if error.get("fatal") else ""
            lines.append(f"### `{unit_id}`: `{error.get('type', 'UNKNOWN')}`{fatal}")
            lines.append(error.get("message") or "")
            if error.get("hint"):
                lines.append(f"\n> {error['hint']}")
            if error.get("details"):
                lines.append("```json")
                lines.append(_as_pretty_json(error["details"]))
                lines.append("```")
    if not failed:
        lines.append("No errors.")
    lines.append("")

    # Traceability
    lines.append("## Traceability")
    lines.append("- Source of truth: boot `Manifest` only.")
    lines.append(f"- Events recorded: `{len(events)}`\n")

    # Execution Metadata
    lines.append("## Execution Metadata")
    lines.append("### run")
    lines.append("```json")
    lines.append(_as_pretty_json(run))
    lines.append("```")
    lines.append("### inputs")
    lines.append("```json")
    lines.append(_as_pretty_json(inputs))
    lines.append("```")

    content = "\n".join(lines)

    for sec in REQUIRED_SECTIONS:
        if sec not in content:
            raise RuntimeError(f"Report generation failed: missing required section: {sec}")

    return content
