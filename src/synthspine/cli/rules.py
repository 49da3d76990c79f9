"""
CLI: ``synthspine rules`` - rule directory commands.
"""

from __future__ import annotations

from pathlib import Path

import typer

from synthspine.cli.utils import console, fail, print_json, print_table
from synthspine.core.durations import format_duration
from synthspine.core.errors import RuleConfigError
from synthspine.rules.models import BuildGuid, ExtractGuid, Resolution
from synthspine.rules.snapshot import load_rules_dir

app = typer.Typer(no_args_is_help=True)


def _resolution(resolution: Resolution) -> str:
    if isinstance(resolution, BuildGuid):
        return f"build {resolution.domain}/{resolution.type}"
    if isinstance(resolution, ExtractGuid):
        return f"extract {resolution.attribute}"
    return f"lookup {resolution.category}"


@app.command("validate")
def validate_rules(
    directory: Path = typer.Argument(..., help="Directory of rule YAML files"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Load and validate a rule directory."""
    try:
        snapshot = load_rules_dir(directory)
    except RuleConfigError as e:
        raise fail(e) from e

    entity_rows = [
        {
            "type": d.key,
            "rules": len(d.rules),
            "goldenTags": list(d.golden_tags),
            "derived": [v.name for v in d.derived_values],
            "expiration": format_duration(d.entity_expiration_ms),
            "alertable": d.alertable,
        }
        for d in snapshot.definitions
    ]
    relationship_rows = [
        {
            "name": r.name,
            "type": r.relationship_type,
            "source": _resolution(r.source),
            "target": _resolution(r.target),
            "expires": format_duration(r.ttl_ms),
        }
        for r in snapshot.relationship_rules
    ]

    if json_out:
        print_json(
            {
                "version": snapshot.version,
                "entityTypes": entity_rows,
                "relationshipRules": relationship_rows,
            }
        )
        return

    print_table(entity_rows, title="Entity types")
    print_table(relationship_rows, title="Relationship rules")
    console.print(f"[green]OK[/green] snapshot version [bold]{snapshot.version}[/bold]")
