"""Start command for pingme.

Runs the daemon in the foreground.
"""

from dataclasses import replace

import click

from pingme.core.config import load_config
from pingme.core.tmux import is_installed
from pingme.daemon.logs import configure_logging
from pingme.daemon.server import run_server


@click.command()
@click.option("--port", type=int, default=None, help="Override the configured daemon port.")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default=None,
    help="Override the configured log level.",
)
def start(port: int | None, log_level: str | None) -> None:
    """Start the pingme daemon.

    Listens on 127.0.0.1 for hook events, CLI requests and provider
    webhooks. Logs go to stderr and ~/.pingme/daemon.log.

    Examples:

        pingme start

        pingme start --port 7400 --log-level debug
    """
    try:
        config = load_config()
    except ValueError as e:
        click.echo(f"Invalid pingme config: {e}", err=True)
        raise SystemExit(1)

    if port is not None:
        config = replace(config, daemon=replace(config.daemon, port=port))
    if log_level is not None:
        config = replace(config, daemon=replace(config.daemon, log_level=log_level))

    if not is_installed():
        click.echo("Warning: tmux not found; instructions cannot be delivered.", err=True)

    configure_logging(config.daemon.log_level, config.daemon.log_file)
    run_server(config)
