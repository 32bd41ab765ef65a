"""Name command for pingme."""

from urllib.parse import quote

import click

from pingme.core.config import load_config
from pingme.daemon.client import DaemonUnavailable, daemon_request


@click.command()
@click.argument("pane")
@click.argument("name")
def name(pane: str, name: str) -> None:
    """Give the session in a tmux pane a friendly name.

    PANE is the tmux pane address (e.g. "main:0.1" or "%3").

    NAME is what you will call the session on the phone.

    Examples:

        pingme name main:0.1 backend
    """
    try:
        daemon_request(
            load_config(), "POST", f"/sessions/{quote(pane, safe='')}/name", json={"name": name}
        )
    except DaemonUnavailable as e:
        click.echo(str(e), err=True)
        raise SystemExit(1)
    click.echo(f"Named {pane} \"{name}\"")
