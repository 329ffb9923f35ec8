"""Subscription listing command."""

import click
from rich.table import Table

from . import cli
from .shared import console


@cli.command()
@click.option("--file", "path", default=None, help="Subscription file (default: from settings)")
def subs(path):
    """List configured subscriptions."""
    from qtweet.config import QTweetSettings
    from qtweet.flags import describe_flags
    from qtweet.subscriptions import JsonSubscriptionStore

    path = path or QTweetSettings().subscriptions_file
    try:
        store = JsonSubscriptionStore(path)
    except ValueError as e:
        raise click.ClickException(str(e))

    entries = store.list_subscriptions()
    if not entries:
        console.print(f"[yellow]No subscriptions in {path}[/yellow]")
        return

    table = Table(title=f"Subscriptions ({path})")
    table.add_column("Author")
    table.add_column("Channel")
    table.add_column("DM")
    table.add_column("Flags")
    for author_id, sub in entries:
        handle = store.get_activity(author_id).get("screen_name")
        author = f"@{handle} ({author_id})" if handle else author_id
        table.add_row(author, sub.channel_id, "yes" if sub.is_direct else "no", describe_flags(sub.flags))
    console.print(table)
