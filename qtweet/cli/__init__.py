"""QTweet CLI — command line interface."""

import click
from qtweet import __version__
from .shared import console


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="qtweet")
@click.pass_context
def cli(ctx):
    """QTweet — relay Twitter accounts into chat channels"""
    if ctx.invoked_subcommand is None:
        _show_help()


def _show_help():
    """Show all available commands."""
    console.print(f"[bold]QTweet v{__version__}[/bold] — relay Twitter accounts into chat channels\n")

    commands = [
        ("start", "Start relaying the stream"),
        ("format PATH", "Show how a raw post JSON file would be relayed"),
        ("subs", "List configured subscriptions"),
    ]
    for name, desc in commands:
        console.print(f"    [bold]qtweet {name:14s}[/bold] {desc}")
    console.print()
    console.print("[dim]Run 'qtweet <command> --help' for details on a specific command.[/dim]")


# Import all command modules (registers commands onto cli group)
from . import cmd_start  # noqa: E402, F401
from . import cmd_format  # noqa: E402, F401
from . import cmd_subs  # noqa: E402, F401
