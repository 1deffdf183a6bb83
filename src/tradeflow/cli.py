"""Command-line interface for Tradeflow.

Provides commands for configuration validation, inspecting merged
category schemas, rendering deployments, and the API server.

Usage:
    python -m tradeflow validate-config
    python -m tradeflow list-categories
    python -m tradeflow merge Electrician Plumber
    python -m tradeflow check Electrician Plumber
    python -m tradeflow render Electrician Plumber --context client.yaml
    python -m tradeflow serve
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
import yaml
from rich.console import Console
from rich.table import Table

from tradeflow.config import validate_config_file
from tradeflow.core.errors import TradeflowError
from tradeflow.core.logging import configure_logging

if TYPE_CHECKING:
    from tradeflow.config_schema import AppConfig
    from tradeflow.engine.deployment import DeploymentEngine
    from tradeflow.merge.merged import MergedConfig

console = Console()


def _load_config() -> AppConfig:
    """Load config, printing an actionable message and exiting 1 on failure."""
    from tradeflow.config import get_config
    from tradeflow.core.errors import ConfigLoadError, ConfigValidationError

    try:
        return get_config()
    except (ConfigLoadError, ConfigValidationError) as e:
        console.print(
            f"[red]Config error:[/red] {e}\n\n"
            "Fix config/config.yaml or run [cyan]validate-config[/cyan] for details."
        )
        sys.exit(1)


def _init_engine() -> DeploymentEngine:
    """Load config and build the engine."""
    from tradeflow.engine.deployment import DeploymentEngine

    return DeploymentEngine(_load_config())


def _fail(error: TradeflowError) -> None:
    console.print(f"[red]✗ {type(error).__name__}:[/red] {error}")
    sys.exit(1)


@click.group()
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
def cli(debug: bool) -> None:
    """Tradeflow - merge business-category schemas into deployable configs."""
    log_level = "DEBUG" if debug else "WARNING"
    # serve reapplies the logging config section
    configure_logging(log_level=log_level, json_output=False)


@cli.command("validate-config")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file (default: config/config.yaml)",
)
def validate_config(config_path: Path | None) -> None:
    """Validate the configuration file.

    Checks that config.yaml exists and passes Pydantic schema validation.
    Reports specific errors for invalid fields.
    """
    if config_path:
        console.print(f"Validating config: [cyan]{config_path}[/cyan]")
    else:
        console.print("Validating config: [cyan]config/config.yaml[/cyan]")

    is_valid, message = validate_config_file(config_path)

    if is_valid:
        console.print(f"\n[green]✓[/green] {message}")
        sys.exit(0)
    else:
        console.print(f"\n[red]✗[/red] {message}")
        sys.exit(1)


@cli.command("list-categories")
def list_categories() -> None:
    """List selectable business categories."""
    engine = _init_engine()
    try:
        entries = engine.loader.available()
    except TradeflowError as e:
        _fail(e)

    table = Table(title="Business categories")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Aliases")
    for entry in entries:
        table.add_row(entry.category, entry.display_name, entry.version, ", ".join(entry.aliases))
    console.print(table)


@cli.command("merge")
@click.argument("categories", nargs=-1, required=True)
def merge(categories: tuple[str, ...]) -> None:
    """Show the merged configuration for CATEGORIES."""
    engine = _init_engine()
    try:
        merged = engine.merge(list(categories))
    except TradeflowError as e:
        _fail(e)

    _print_merged(merged)


@cli.command("check")
@click.argument("categories", nargs=-1, required=True)
def check(categories: tuple[str, ...]) -> None:
    """Check that the merged layers of CATEGORIES agree (exit 1 on orphans)."""
    engine = _init_engine()
    try:
        report = engine.check(list(categories))
    except TradeflowError as e:
        _fail(e)

    for name in report.override_orphans:
        console.print(f"[yellow]![/yellow] Behavior override '{name}' matches no label")

    if report.passed:
        console.print(f"[green]✓[/green] {' + '.join(categories)}: layers are consistent")
        sys.exit(0)

    for name in report.classification_orphans:
        console.print(f"[red]✗[/red] Classification category '{name}' has no top-level label")
    for name in report.label_orphans:
        console.print(f"[red]✗[/red] Label '{name}' has no classification category")
    sys.exit(1)


@cli.command("render")
@click.argument("categories", nargs=-1, required=True)
@click.option(
    "--context",
    "context_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="YAML or JSON file with the runtime context (business, team, folder_ids)",
)
@click.option(
    "--template",
    "template_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Template file (default: the configured default template)",
)
@click.option(
    "--output",
    "-o",
    "output_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the document here instead of stdout",
)
def render(
    categories: tuple[str, ...],
    context_path: Path,
    template_path: Path | None,
    output_path: Path | None,
) -> None:
    """Render the deployable document for CATEGORIES."""
    from tradeflow.render.injector import Template

    engine = _init_engine()
    context = _read_context(context_path)

    try:
        template = Template.from_file(template_path) if template_path else None
        deployable = engine.build(list(categories), context, template=template)
    except TradeflowError as e:
        _fail(e)

    text = json.dumps(deployable.document, indent=2, ensure_ascii=False)
    if output_path:
        output_path.write_text(text + "\n", encoding="utf-8")
        console.print(
            f"[green]✓[/green] Wrote {output_path} "
            f"({len(deployable.tokens_used)} tokens from {deployable.template_name})"
        )
    else:
        click.echo(text)


@cli.command("serve")
@click.option(
    "--host",
    default="127.0.0.1",
    help="Host to bind to (default: localhost only for security)",
)
@click.option(
    "--port",
    default=8000,
    type=int,
    help="Port to bind to",
)
def serve(host: str, port: int) -> None:
    """Start the deployment API server."""
    import uvicorn

    from tradeflow.web.app import create_app

    if host == "0.0.0.0":  # noqa: S104
        console.print(
            "[yellow]Warning:[/yellow] Binding to 0.0.0.0 exposes the server to the network.\n"
            "This app has no authentication. Use 127.0.0.1 for local-only access."
        )

    config = _load_config()
    configure_logging(log_level=config.logging.level, json_output=config.logging.json_output)

    app = create_app()
    console.print(f"Starting server on [cyan]http://{host}:{port}[/cyan]")
    uvicorn.run(app, host=host, port=port, log_level=config.logging.level.lower())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _read_context(path: Path) -> dict[str, Any]:
    """Read a runtime context file (YAML is a superset of JSON)."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        console.print(f"[red]✗ Cannot parse {path}:[/red] {e}")
        sys.exit(1)

    if not isinstance(data, dict):
        console.print(f"[red]✗ {path} must contain a mapping[/red]")
        sys.exit(1)
    return data


def _print_merged(merged: MergedConfig) -> None:
    classification = merged.classification
    behavior = merged.behavior

    console.print(f"[bold]{' + '.join(merged.display_names)}[/bold]")
    console.print(
        f"Confidence threshold: [cyan]{classification.confidence_threshold:.2f}[/cyan]  "
        f"Tone: [cyan]{behavior.voice.tone}[/cyan]  "
        f"Formality: [cyan]{behavior.voice.formality}[/cyan]  "
        f"Pricing: [cyan]{'allowed' if behavior.voice.allow_pricing else 'never'}[/cyan]"
    )

    labels = Table(title="Labels")
    labels.add_column("Label", style="cyan")
    labels.add_column("Critical")
    labels.add_column("Children")
    for label in merged.labels.labels:
        labels.add_row(
            label.name,
            "yes" if label.critical else "",
            ", ".join(child.name for child in label.children),
        )
    console.print(labels)

    escalation = Table(title="Escalation")
    escalation.add_column("Category", style="cyan")
    escalation.add_column("Urgency")
    escalation.add_column("Minutes", justify="right")
    escalation.add_column("Notify")
    for category, rule in classification.escalation_rules.items():
        escalation.add_row(
            category, rule.urgency, str(rule.response_time_minutes), ", ".join(rule.notify)
        )
    console.print(escalation)


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
