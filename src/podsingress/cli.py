"""podsingress CLI - Command line interface."""

from __future__ import annotations

import json
import logging
import sys

import click
import structlog
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from podsingress.ingress.errors import PodsIngressError

console = Console()
err_console = Console(stderr=True)


def _configure_logging(log_level: str) -> None:
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def resolve_log_level(cfg, verbose: bool = False, log_level: str | None = None) -> str:
    """Pick the log level: --verbose, then --log-level, then LOG_LEVEL."""
    if verbose:
        return "debug"
    return log_level or cfg.log_level


def _load_config(port: int | None = None):
    from podsingress.core.config import clear_config, get_config

    ctx = click.get_current_context()
    options = ctx.find_root().obj or {}

    clear_config()
    try:
        cfg = get_config(options.get("config_file"))
    except ValidationError as e:
        for error in e.errors():
            err_console.print(f"[red]Configuration error:[/red] {error['msg']}")
        sys.exit(1)
    except (FileNotFoundError, ValueError) as e:
        err_console.print(f"[red]Failed to load config: {e}[/red]")
        sys.exit(1)

    log_level = resolve_log_level(cfg, options.get("verbose", False), options.get("log_level"))
    _configure_logging(log_level)

    update: dict = {"log_level": log_level}
    if port is not None:
        update["port"] = port
    return cfg.model_copy(update=update)


@click.group()
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to YAML, TOML or JSON config file",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Log level (default: LOG_LEVEL or warning, use --verbose for debug)",
)
@click.pass_context
def main(ctx, config_file: str | None, verbose: bool, log_level: str | None):
    """podsingress - nginx configuration for routable pods.

    Examples:

        podsingress render --cache snapshot.yaml

        podsingress render --cache snapshot.yaml --output nginx.conf

        podsingress --config ingress.yaml config show
    """
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file
    ctx.obj["verbose"] = verbose
    ctx.obj["log_level"] = log_level.lower() if log_level else None


@main.command()
@click.option(
    "--cache",
    "-c",
    "cache_file",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="Cache snapshot (YAML, JSON or TOML)",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="Write the configuration here instead of stdout",
)
@click.option("--port", "-p", type=click.IntRange(1, 65535), default=None, help="Override PORT")
def render(cache_file: str, output: str | None, port: int | None):
    """Generate nginx.conf from a cache snapshot.

    The document is written as-is; reloading nginx is left to the caller.
    """
    from podsingress.ingress.cache import load_cache_from_file
    from podsingress.ingress.render import generate_config

    cfg = _load_config(port)

    try:
        cache = load_cache_from_file(cache_file)
        text = generate_config(cache, cfg)
    except PodsIngressError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if output is None:
        click.echo(text, nl=False)
        return

    with open(output, "w", encoding="utf-8") as f:
        f.write(text)
    err_console.print(f"[green]Wrote[/green] {output}")


@main.command()
@click.option(
    "--cache",
    "-c",
    "cache_file",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="Cache snapshot (YAML, JSON or TOML)",
)
def model(cache_file: str):
    """Print the aggregated routing model as JSON."""
    from podsingress.ingress.aggregator import aggregate
    from podsingress.ingress.cache import load_cache_from_file

    cfg = _load_config()

    try:
        cache = load_cache_from_file(cache_file)
        routing = aggregate(cache, api_key_field=cfg.api_key_secret_data_field)
    except PodsIngressError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    click.echo(json.dumps(routing.to_dict(), indent=2))


@main.command()
def version():
    """Show version information."""
    from podsingress import __version__

    console.print(f"[bold]Version:[/bold] {__version__}")
    console.print(f"[bold]Python:[/bold] {sys.version}")


@main.group()
def config():
    """View and validate configuration settings.

    Settings come from environment variables (PORT, API_KEY_SECRET_LOCATION,
    HOSTS_ANNOTATION, PATHS_ANNOTATION, ROUTABLE_LABEL_SELECTOR,
    API_KEY_HEADER, LOG_LEVEL), a .env file, or a file passed with --config.

    Examples:

        podsingress config show

        podsingress config validate
    """
    pass


@config.command("show")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def config_show(json_output: bool):
    """Show current configuration settings."""
    cfg = _load_config()
    display = cfg.to_display_dict()

    if json_output:
        click.echo(json.dumps(display, indent=2))
        return

    table = Table(title="Ingress Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for key, value in display.items():
        table.add_row(key, str(value))
    console.print(table)


@config.command("validate")
def config_validate():
    """Validate current configuration."""
    from podsingress.core.validation import parse_label_selector

    cfg = _load_config()

    warnings = []
    if not parse_label_selector(cfg.routable_label_selector):
        warnings.append("routable label selector is empty, every pod will be routable")
    if cfg.port < 1024:
        warnings.append(f"port {cfg.port} is privileged, nginx needs to start as root")

    for warning in warnings:
        console.print(f"  [yellow]![/yellow] {warning}")

    if warnings:
        console.print("[green]OK - Configuration is valid (with warnings)[/green]")
    else:
        console.print("[green]OK - Configuration is valid[/green]")


if __name__ == "__main__":
    main()
