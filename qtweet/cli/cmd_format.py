"""Format command — preview a raw post as it would be relayed."""

import asyncio
import json

import click
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import cli
from .shared import console


async def _format(raw: dict, quoted: bool, unfurl: bool, trigger: str):
    from qtweet.formatter import format_post
    from qtweet.models import Post
    from qtweet.preview import LinkPreviewResolver

    post = Post.from_dict(raw)
    resolver = LinkPreviewResolver() if unfurl else None
    try:
        return await format_post(post, quoted=quoted, unfurler=resolver, trigger=trigger)
    finally:
        if resolver:
            await resolver.close()


@cli.command(name="format")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--quoted", is_flag=True, help="Format as a nested quoted post")
@click.option("--unfurl", is_flag=True, help="Fetch link previews (network)")
@click.option("--trigger", default="qtweet", show_default=True, help="Ping hashtag")
def format_cmd(path, quoted, unfurl, trigger):
    """Show the display record for a raw post JSON file."""
    from qtweet.errors import QTweetError, classify_error

    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON in {path}: {e}")

    try:
        formatted = asyncio.run(_format(raw, quoted, unfurl, trigger))
    except QTweetError as e:
        raise click.ClickException(classify_error(e))

    record = formatted.record
    table = Table(show_header=False, box=None)
    table.add_row("[bold]Author[/bold]", escape(record.author_name))
    table.add_row("[bold]Link[/bold]", record.author_url)
    table.add_row("[bold]Color[/bold]", f"#{record.color:06x}")
    table.add_row("[bold]Thumbnail[/bold]", record.thumbnail_url or "-")
    table.add_row("[bold]Image[/bold]", record.image_url or "-")
    table.add_row("[bold]Files[/bold]", "\n".join(record.file_urls) if record.file_urls else "-")
    table.add_row("[bold]Ping[/bold]", "yes" if formatted.metadata.ping_requested else "no")
    console.print(table)
    console.print(Panel(escape(record.description) or "[dim](empty)[/dim]", title="Body", expand=False))
