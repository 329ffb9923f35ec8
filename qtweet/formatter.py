"""Post formatter — raw post to delivery-ready display record.

Resolves the long-form variant, inherits media from retweeted posts,
rewrites the text and picks the attachment layout:
- text:   optional link preview image
- video:  short clips as a file, long ones as thumbnail + link
- images: one inline, several as separate files
"""

import logging
from typing import Optional

from .errors import AttachmentResolutionFailure, ValidationError
from .models import DisplayRecord, FormattedPost, Post, VideoInfo, VideoVariant
from .rewriter import Unfurler, format_text

logger = logging.getLogger("qtweet.formatter")

COLORS = {
    "text": 0x69B2D6,
    "video": 0x67D67D,
    "image": 0xD667CF,
    "images": 0x53A38D,
}

STATUS_URL = "https://twitter.com/{screen_name}/status/{id}"

VIDEO_MAX_BITRATE = 1_000_000
SHORT_CLIP_MILLIS = 20_000


def parse_color(value: Optional[str]) -> Optional[int]:
    """Parse a profile hex colour ('1DA1F2'), None if absent or invalid."""
    if not value:
        return None
    try:
        return int(value.lstrip("#"), 16)
    except ValueError:
        return None


def strip_query(url: str) -> str:
    """Drop the query string, unless the '?' belongs to an earlier path segment."""
    param_idx = url.rfind("?")
    if param_idx != -1 and param_idx > url.rfind("/"):
        return url[:param_idx]
    return url


def select_video_variant(info: Optional[VideoInfo]) -> VideoVariant:
    """Pick the mp4 encoding to relay.

    Only video/mp4 variants under VIDEO_MAX_BITRATE qualify; the highest
    bitrate among them wins (first one on ties). Feed order is not a
    quality order, so the last qualifying variant is deliberately not
    preferred.

    Returns:
        The chosen variant with its query string stripped

    Raises:
        AttachmentResolutionFailure: If no variant qualifies
    """
    best = None
    for variant in (info.variants if info else ()):
        if variant.content_type != "video/mp4" or variant.bitrate is None:
            continue
        if variant.bitrate >= VIDEO_MAX_BITRATE:
            continue
        if best is None or variant.bitrate > best.bitrate:
            best = variant
    if best is None:
        raise AttachmentResolutionFailure(f"No usable video variant in {info!r}")
    return VideoVariant(strip_query(best.url), best.content_type, best.bitrate)


async def format_post(
    post: Post,
    *,
    quoted: bool = False,
    unfurler: Optional[Unfurler] = None,
    trigger: str = "qtweet",
) -> FormattedPost:
    """Format a post for delivery.

    Args:
        post: Parsed post
        quoted: Post is the nested quote of another post ("[QUOTED]" prefix)
        unfurler: Optional link preview resolver, used for text posts
        trigger: Hashtag that requests a ping

    Returns:
        FormattedPost with the display record and text metadata

    Raises:
        ValidationError: If the post has no author or a malformed URL entity
    """
    user = post.user
    if user is None:
        raise ValidationError(f"Post {post.id} has no author")

    text = post.text
    entities = post.entities
    extended_entities = post.extended_entities
    # Posts over the short-form limit carry their real content here
    if post.extended is not None:
        text = post.extended.text or text
        entities = post.extended.entities
        extended_entities = post.extended.extended_entities

    post_id = post.id
    target_screen_name = user.screen_name
    if post.retweeted is not None:
        # Retweets carry no media of their own
        extended_entities = extended_entities or post.retweeted.extended_entities
        post_id = post.retweeted.id or post_id
        if post.retweeted.user and post.retweeted.user.screen_name:
            target_screen_name = post.retweeted.user.screen_name

    is_text_post = not post.has_media
    formatted = await format_text(
        text,
        entities,
        is_text_post=is_text_post,
        unfurler=unfurler,
        trigger=trigger,
    )
    description = formatted.text
    color = parse_color(user.link_color)
    image_url = None
    file_urls = None
    media = extended_entities.media if extended_entities else ()

    if is_text_post or not media:
        image_url = formatted.metadata.preview_image_url
        color = color or COLORS["text"]
    elif media[0].is_video:
        first = media[0]
        try:
            variant = select_video_variant(first.video_info)
        except AttachmentResolutionFailure as e:
            logger.warning(f"Video post {post.id} has no valid url: {e}")
        else:
            duration = first.video_info.duration_millis if first.video_info else None
            is_short = duration is not None and duration < SHORT_CLIP_MILLIS
            if is_short or variant.bitrate == 0:
                file_urls = (variant.url,)
            else:
                image_url = first.media_url
                description = f"{description}\n[Link to video]({variant.url})"
        color = color or COLORS["video"]
    else:
        urls = tuple(m.media_url for m in media if m.media_url)
        if len(urls) == 1:
            image_url = urls[0]
        elif urls:
            file_urls = urls
        color = color or COLORS["image"]

    prefix = "[QUOTED] " if quoted else ""
    record = DisplayRecord(
        author_name=f"{prefix}{user.name} (@{user.screen_name})",
        author_url=STATUS_URL.format(screen_name=target_screen_name, id=post_id),
        thumbnail_url=user.avatar_url,
        color=color,
        description=description,
        image_url=image_url,
        file_urls=file_urls,
    )
    return FormattedPost(record, formatted.metadata)
