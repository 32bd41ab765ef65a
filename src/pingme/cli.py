"""CLI entry point for pingme.

Usage:
    pingme start              # Run the daemon in the foreground
    pingme status             # Show sessions and call state
    pingme call "reason"      # Trigger an outbound call now
    pingme name <pane> <name> # Rename the session in a tmux pane
"""

import click

from pingme.commands.call import call
from pingme.commands.name import name
from pingme.commands.start import start
from pingme.commands.status import status


@click.group()
@click.version_option(package_name="pingme")
def main() -> None:
    """pingme - Get a phone call when your coding agent needs you.

    A local daemon watches agent sessions through hook events and calls
    you when one stops, asks a question or needs permission.
    """


# Register commands
main.add_command(start)
main.add_command(status)
main.add_command(call)
main.add_command(name)
