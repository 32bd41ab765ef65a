"""Call command for pingme."""

import click

from pingme.core.config import load_config
from pingme.daemon.client import DaemonUnavailable, daemon_request


@click.command()
@click.argument("reason", required=False)
def call(reason: str | None) -> None:
    """Trigger an outbound call now.

    REASON is read out at the start of the call (default: "manual trigger").
    """
    body = {"reason": reason} if reason else {}
    try:
        result = daemon_request(load_config(), "POST", "/call", json=body)
    except DaemonUnavailable as e:
        click.echo(str(e), err=True)
        raise SystemExit(1)

    if not result.get("success"):
        click.echo(result.get("error", "Call failed"), err=True)
        raise SystemExit(1)
    click.echo(result.get("message", "Call triggered"))
