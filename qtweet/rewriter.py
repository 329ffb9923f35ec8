"""Post text rewriting — entity spans to markdown.

Rewrites a post's flat text using its entity annotations:
- Leading @-reply run is stripped
- Other mentions become [@Name](profile link)
- t.co links are replaced by their expanded destination
- Hashtags become links to the hashtag search page

Entity spans are measured in code points over the NFC-normalized
original text. All replacements are collected first and applied in
one ordered pass with a running offset, so every span can keep
referring to the original text.
"""

import logging
import unicodedata
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from .errors import EnrichmentFailure, ValidationError
from .models import Entities, FormattedText, Hashtag, Mention, TextMetadata, UrlEntity
from .preview import LinkPreview, best_preview_image

logger = logging.getLogger("qtweet.rewriter")

PROFILE_URL = "https://twitter.com/{screen_name}"
HASHTAG_URL = "https://twitter.com/hashtag/{tag}?src=hash"

# The stream source appends a short link to attached media; media is
# rendered separately so everything from here on is dropped.
SHORT_LINK_MARKER = "https://t.co/"

_HTML_ENTITIES = (("&amp;", "&"), ("&gt;", ">"), ("&lt;", "<"))


class Unfurler(Protocol):
    async def unfurl(self, url: str) -> LinkPreview: ...


@dataclass(frozen=True)
class TextChange:
    """Replace code points [start, end) of the original text with new_text."""
    start: int
    end: int
    new_text: str


# ============================================================
# CHANGE APPLICATION
# ============================================================

def apply_changes(text: str, changes: Iterable[TextChange]) -> str:
    """Apply replacement spans to text.

    Changes are applied in ascending start order (stable, so ties keep
    their input order). Each span is shifted by the length drift of the
    replacements already applied and clamped to the current text bounds.

    Args:
        text: Original text (any normalization form)
        changes: Spans over the NFC code points of text

    Returns:
        Rewritten text
    """
    code_points = list(unicodedata.normalize("NFC", text))
    offset = 0
    for change in sorted(changes, key=lambda c: c.start):
        new = list(unicodedata.normalize("NFC", change.new_text))
        lo = min(max(change.start + offset, 0), len(code_points))
        hi = min(max(change.end + offset, lo), len(code_points))
        code_points[lo:hi] = new
        offset += len(new) - (hi - lo)
    return "".join(code_points)


def unescape_html(text: str) -> str:
    """Undo the stream's HTML escaping of &, < and >."""
    for escaped, plain in _HTML_ENTITIES:
        text = text.replace(escaped, plain)
    return text


def truncate_short_link(text: str) -> str:
    """Cut text at the first auto-appended short link, if any."""
    idx = text.find(SHORT_LINK_MARKER)
    if idx > -1:
        return text[:idx]
    return text


# ============================================================
# ENTITY → CHANGE CONVERSION
# ============================================================

def mention_changes(mentions: Iterable[Mention]) -> list[TextChange]:
    """Strip the leading run of @-replies, link every other mention.

    A mention belongs to the reply run while it starts exactly where the
    previous one (plus its trailing space) ended, beginning at index 0.
    The first mention outside the run ends it for good.
    """
    changes = []
    in_replies = True
    reply_index = 0
    for mention in mentions:
        if not mention.screen_name or mention.indices is None:
            continue
        start, end = mention.indices
        if in_replies and start == reply_index:
            # +1 eats the separating space
            changes.append(TextChange(start, end + 1, ""))
            reply_index = end + 1
        else:
            in_replies = False
            name = mention.name or mention.screen_name
            url = PROFILE_URL.format(screen_name=mention.screen_name)
            changes.append(TextChange(start, end, f"[@{name}]({url})"))
    return changes


def url_changes(urls: Iterable[UrlEntity]) -> list[TextChange]:
    """Replace shortened links by their expanded destination.

    Raises:
        ValidationError: If any URL entity lacks its span or expanded URL
    """
    changes = []
    for url in urls:
        if not url.expanded_url or url.indices is None:
            raise ValidationError(f"Malformed URL entity: {url!r}")
        start, end = url.indices
        changes.append(TextChange(start, end, url.expanded_url))
    return changes


def hashtag_changes(hashtags: Iterable[Hashtag], trigger: str = "qtweet") -> tuple[list[TextChange], bool]:
    """Link hashtags to their search page.

    Returns:
        Tuple of (changes, ping_requested)
        - ping_requested is True if any hashtag equals trigger, ignoring case
    """
    changes = []
    ping = False
    for hashtag in hashtags:
        if not hashtag.text or hashtag.indices is None:
            continue
        start, end = hashtag.indices
        url = HASHTAG_URL.format(tag=hashtag.text)
        changes.append(TextChange(start, end, f"[#{hashtag.text}]({url})"))
        if hashtag.text.lower() == trigger.lower():
            ping = True
    return changes, ping


async def _find_preview(urls: tuple[UrlEntity, ...], unfurler: Unfurler) -> Optional[str]:
    """Unfurl the first linked page and pick its social preview image."""
    if not urls:
        return None
    url = urls[0].expanded_url
    try:
        return best_preview_image(await unfurler.unfurl(url))
    except EnrichmentFailure as e:
        logger.debug(f"No preview for {url}: {e}")
        return None


# ============================================================
# PIPELINE
# ============================================================

async def format_text(
    text: str,
    entities: Optional[Entities],
    *,
    is_text_post: bool = False,
    unfurler: Optional[Unfurler] = None,
    trigger: str = "qtweet",
) -> FormattedText:
    """Rewrite post text with its entities.

    Args:
        text: Original post text
        entities: Entity annotations over text (None leaves text untouched)
        is_text_post: Post has no media — enables link preview lookup
        unfurler: Optional link preview resolver
        trigger: Hashtag that requests a ping

    Returns:
        FormattedText with rewritten text and metadata

    Raises:
        ValidationError: If a URL entity is malformed
    """
    if entities is None:
        return FormattedText(text, TextMetadata())

    changes = mention_changes(entities.user_mentions)
    changes += url_changes(entities.urls)

    preview = None
    if is_text_post and unfurler is not None:
        preview = await _find_preview(entities.urls, unfurler)

    tag_changes, ping = hashtag_changes(entities.hashtags, trigger)
    changes += tag_changes

    rewritten = apply_changes(text, changes)
    rewritten = truncate_short_link(unescape_html(rewritten))
    return FormattedText(rewritten, TextMetadata(ping_requested=ping, preview_image_url=preview))
