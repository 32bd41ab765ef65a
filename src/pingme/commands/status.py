"""Status command for pingme.

Shows tracked sessions, the active call and recent calls.
"""

import click
import orjson

from pingme.core.config import load_config
from pingme.core.format import humanize_age
from pingme.daemon.client import DaemonUnavailable, daemon_request


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Print the raw status as JSON.")
def status(as_json: bool) -> None:
    """Show daemon status.

    Examples:

        pingme status

        pingme status --json
    """
    try:
        result = daemon_request(load_config(), "GET", "/status")
    except DaemonUnavailable as e:
        click.echo(str(e), err=True)
        raise SystemExit(1)

    if as_json:
        click.echo(orjson.dumps(result, option=orjson.OPT_INDENT_2).decode())
        return

    click.echo(f"uptime: {humanize_age(result.get('uptime_seconds', 0) * 1000)}")

    active = result.get("active_call")
    if active:
        click.echo(f"call: active ({active.get('bolna_execution_id')})")
    else:
        click.echo("call: none")

    queued = result.get("queued_instructions", 0)
    if queued:
        click.echo(f"queued instructions: {queued}")

    sessions = result.get("sessions", [])
    if not sessions:
        click.echo("No sessions")
        return

    click.echo("")
    for s in sessions:
        marker = "*" if s.get("can_receive_input") else " "
        click.echo(
            f"{marker} {s['name']:<20} {s['status']:<11} {s['last_activity']:>7}  {s['tmux_pane']}"
        )
        pending = s.get("pending_action")
        if pending:
            click.echo(f"    {pending.get('summary', '')}")
