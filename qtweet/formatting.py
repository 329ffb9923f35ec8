"""Display record to Telegram HTML.

Telegram supports a limited HTML subset:
  <b>bold</b>, <i>italic</i>, <a href="url">link</a>, ...

Post bodies are plain text with markdown-style links
([@Name](url), [#tag](url), [Link to video](url)). Only those links are
converted; everything else is HTML-escaped so post text like
snake_case or *stars* comes through verbatim.
"""

import re
import html as _html

from bs4 import BeautifulSoup

from .models import DisplayRecord

MESSAGE_LIMIT = 4096
CAPTION_LIMIT = 1024

_LINK_RE = re.compile(r'\[([^\]]+)\]\(([^)\s]+)\)')


def _escape(text: str) -> str:
    """Escape HTML special characters in plain text segments."""
    return _html.escape(text, quote=False)


def markdown_links_to_html(text: str) -> str:
    """Convert [text](url) links to <a> tags, escaping everything else."""
    if not text:
        return text

    parts = []
    last_end = 0
    for match in _LINK_RE.finditer(text):
        if match.start() > last_end:
            parts.append(_escape(text[last_end:match.start()]))
        label, url = match.group(1), match.group(2)
        parts.append(f'<a href="{_html.escape(url, quote=True)}">{_escape(label)}</a>')
        last_end = match.end()
    if last_end < len(text):
        parts.append(_escape(text[last_end:]))
    return ''.join(parts)


def render_record_html(record: DisplayRecord) -> str:
    """Render the author line and body of a display record.

    Colour and thumbnail have no Telegram equivalent and are dropped.
    """
    author = f'<b><a href="{_html.escape(record.author_url, quote=True)}">{_escape(record.author_name)}</a></b>'
    body = markdown_links_to_html(record.description.strip())
    return f"{author}\n\n{body}" if body else author


def html_to_text(html: str) -> str:
    """Strip tags from rendered HTML, keeping link labels and unescaping entities."""
    return BeautifulSoup(html, "html.parser").get_text()


def split_message(text: str, max_length: int = MESSAGE_LIMIT) -> list[str]:
    """Cut text into chunks of at most max_length characters.

    Each cut lands on the last newline inside the limit, else the last
    space, else exactly at the limit. Whitespace at the start of the
    next chunk is dropped.
    """
    chunks = []
    while len(text) > max_length:
        cut = text.rfind("\n", 0, max_length)
        if cut <= 0:
            cut = text.rfind(" ", 0, max_length)
        if cut <= 0:
            cut = max_length
        chunks.append(text[:cut])
        text = text[cut:].lstrip()
    if text or not chunks:
        chunks.append(text)
    return chunks
