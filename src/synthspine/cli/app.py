"""
Root Typer application for the synthspine CLI.
"""

from __future__ import annotations

from collections import Counter
from pathlib import Path

import typer

from synthspine import __version__
from synthspine.cli.rules import app as rules_app
from synthspine.cli.utils import fail, print_json, print_kv, print_table, read_events
from synthspine.core.errors import RuleConfigError
from synthspine.core.guid import generate_guid
from synthspine.core.timestamps import ManualClock, to_iso8601
from synthspine.engine.engine import SynthesisEngine
from synthspine.engine.sink import CollectingSink
from synthspine.observability.logging import configure_logging, log_step
from synthspine.rules.snapshot import load_rules_dir

app = typer.Typer(
    name="synthspine",
    help="synthspine - entity synthesis and relationship engine.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"synthspine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str = typer.Option("WARNING", "--log-level", envvar="SYNTH_LOG_LEVEL", help="Log level."),
    log_format: str = typer.Option("console", "--log-format", envvar="SYNTH_LOG_FORMAT", help="json or console."),
) -> None:
    """synthspine CLI - validate rules, replay events, compute GUIDs."""
    configure_logging(level=log_level.upper(), format=log_format.lower(), force=True)  # type: ignore[arg-type]


app.add_typer(rules_app, name="rules", help="Rule definitions.")


# ── process ──────────────────────────────────────────────────────────────


@app.command("process")
def process_events(
    rules_dir: Path = typer.Argument(..., help="Directory of rule YAML files"),
    events_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON-lines events"),
    json_out: bool = typer.Option(False, "--json"),
    sweep_at: int | None = typer.Option(  # noqa: UP007
        None, "--sweep-at", help="Run an expiration sweep at this epoch-ms time afterwards"
    ),
    show_metrics: bool = typer.Option(False, "--metrics", help="Also print the engine metrics (Prometheus text)"),
) -> None:
    """Replay events through an in-memory engine and print the resulting graph."""
    try:
        snapshot = load_rules_dir(rules_dir)
    except RuleConfigError as e:
        raise fail(e) from e

    # replay: dedup windows follow event time
    clock = ManualClock()
    sink = CollectingSink()
    engine = SynthesisEngine.in_memory(snapshot, sink=sink, clock=clock)

    skipped: Counter[str] = Counter()
    rejected: Counter[str] = Counter()
    with log_step("cli.process", level="debug", rules_version=snapshot.version) as step:
        processed = 0
        for event in read_events(events_file):
            clock.set(max(clock.now, event.timestamp))
            result = engine.process(event)
            processed += 1
            skipped.update(s.reason for s in result.skipped)
            rejected.update(r.status for r in result.rejected)
        step["events"] = processed

        report = engine.sweep(sweep_at) if sweep_at is not None else None

    entities = [r.to_dict() for r in engine.entity_records(sweep_at if sweep_at is not None else clock.now)]
    relationships = [r.to_dict() for r in engine.relationship_records()]
    summary = {
        "events": processed,
        "entities": len(entities),
        "relationships": len(relationships),
        "skipped": dict(skipped),
        "rejected": dict(rejected),
    }
    if report is not None:
        summary["sweep"] = report.to_dict()

    if json_out:
        payload = {
            "version": snapshot.version,
            "entities": entities,
            "relationships": relationships,
            "summary": summary,
        }
        if show_metrics:
            payload["metrics"] = engine.metrics.export_prometheus()
        print_json(payload)
        return

    print_table(
        [
            {
                "guid": e["guid"],
                "type": f"{e['domain']}/{e['type']}",
                "name": e["name"],
                "tags": e["tags"],
                "derived": e["derived"],
                "expires": to_iso8601(e["expiresAt"]) or "NEVER",
            }
            for e in entities
        ],
        title="Entities",
    )
    print_table(
        [
            {
                "type": r["relationshipType"],
                "source": r["sourceGuid"],
                "target": r["targetGuid"],
                "state": r["state"],
                "expires": to_iso8601(r["expiresAt"]),
            }
            for r in relationships
        ],
        title="Relationships",
    )
    print_kv(summary, title="Summary")
    if show_metrics:
        typer.echo(engine.metrics.export_prometheus(), nl=False)


# ── guid ─────────────────────────────────────────────────────────────────


@app.command("guid")
def guid_command(
    account: str = typer.Argument(..., help="Account id"),
    domain: str = typer.Argument(..., help="Entity domain"),
    entity_type: str = typer.Argument(..., metavar="TYPE", help="Entity type"),
    identifier: str = typer.Argument(..., help="Entity identifier"),
    no_encode: bool = typer.Option(False, "--no-encode", help="Keep the raw identifier in the GUID"),
) -> None:
    """Print the GUID of an entity."""
    typer.echo(generate_guid(account, domain, entity_type, identifier, encode_identifier=not no_encode))


def run() -> None:
    """Console-script entry point."""
    app()
