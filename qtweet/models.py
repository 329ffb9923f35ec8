"""Data records shared by the filter, formatter, session and delivery layers.

Raw stream JSON is parsed once into frozen dataclasses. Entity index
spans always refer to the original (pre-rewrite) text and are measured
in code points.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .errors import ValidationError


def _indices(value: Any) -> Optional[tuple[int, int]]:
    """Parse an entity span, None when absent or malformed."""
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return None
    start, end = value
    if not isinstance(start, int) or not isinstance(end, int) or isinstance(start, bool):
        return None
    return start, end


def _id(raw: Mapping, key: str = "id") -> Optional[str]:
    """Prefer the string form of an id (ids exceed 53 bits)."""
    value = raw.get(f"{key}_str")
    if value:
        return str(value)
    value = raw.get(key)
    return str(value) if value is not None else None


def _mapping(value: Any) -> Optional[Mapping]:
    return value if isinstance(value, Mapping) else None


# ============================================================
# ENTITIES
# ============================================================

@dataclass(frozen=True)
class Mention:
    screen_name: Optional[str]
    name: Optional[str]
    indices: Optional[tuple[int, int]]

    @classmethod
    def from_dict(cls, raw: Mapping) -> "Mention":
        return cls(raw.get("screen_name"), raw.get("name"), _indices(raw.get("indices")))


@dataclass(frozen=True)
class UrlEntity:
    expanded_url: Optional[str]
    indices: Optional[tuple[int, int]]

    @classmethod
    def from_dict(cls, raw: Mapping) -> "UrlEntity":
        return cls(raw.get("expanded_url"), _indices(raw.get("indices")))


@dataclass(frozen=True)
class Hashtag:
    text: Optional[str]
    indices: Optional[tuple[int, int]]

    @classmethod
    def from_dict(cls, raw: Mapping) -> "Hashtag":
        return cls(raw.get("text"), _indices(raw.get("indices")))


@dataclass(frozen=True)
class VideoVariant:
    url: str
    content_type: Optional[str]
    bitrate: Optional[int]


@dataclass(frozen=True)
class VideoInfo:
    duration_millis: Optional[int]
    variants: tuple[VideoVariant, ...] = ()

    @classmethod
    def from_dict(cls, raw: Mapping) -> "VideoInfo":
        variants = []
        for v in raw.get("variants") or []:
            if isinstance(v, Mapping) and v.get("url"):
                variants.append(VideoVariant(v["url"], v.get("content_type"), v.get("bitrate")))
        return cls(raw.get("duration_millis"), tuple(variants))


@dataclass(frozen=True)
class Media:
    type: str                   # 'photo', 'video', 'animated_gif'
    media_url: Optional[str]
    video_info: Optional[VideoInfo] = None

    @property
    def is_video(self) -> bool:
        return self.type in ("video", "animated_gif")

    @classmethod
    def from_dict(cls, raw: Mapping) -> "Media":
        video = _mapping(raw.get("video_info"))
        return cls(
            type=raw.get("type") or "photo",
            media_url=raw.get("media_url_https") or raw.get("media_url"),
            video_info=VideoInfo.from_dict(video) if video else None,
        )


@dataclass(frozen=True)
class Entities:
    user_mentions: tuple[Mention, ...] = ()
    urls: tuple[UrlEntity, ...] = ()
    hashtags: tuple[Hashtag, ...] = ()
    media: tuple[Media, ...] = ()

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["Entities"]:
        raw = _mapping(raw)
        if raw is None:
            return None

        def items(key, build):
            return tuple(build(x) for x in (raw.get(key) or []) if isinstance(x, Mapping))

        return cls(
            user_mentions=items("user_mentions", Mention.from_dict),
            urls=items("urls", UrlEntity.from_dict),
            hashtags=items("hashtags", Hashtag.from_dict),
            media=items("media", Media.from_dict),
        )


def _has_media(entities: Optional[Entities]) -> bool:
    return entities is not None and len(entities.media) > 0


# ============================================================
# POSTS
# ============================================================

@dataclass(frozen=True)
class Author:
    id: str
    name: str
    screen_name: str
    avatar_url: Optional[str] = None
    link_color: Optional[str] = None   # hex without '#', e.g. '1DA1F2'

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["Author"]:
        raw = _mapping(raw)
        if raw is None:
            return None
        author_id = _id(raw)
        if author_id is None:
            return None
        return cls(
            id=author_id,
            name=raw.get("name") or raw.get("screen_name") or "",
            screen_name=raw.get("screen_name") or "",
            avatar_url=raw.get("profile_image_url_https"),
            link_color=raw.get("profile_link_color"),
        )


@dataclass(frozen=True)
class ExtendedVariant:
    """Long-form representation of posts over the short-form length limit."""
    text: str
    entities: Optional[Entities]
    extended_entities: Optional[Entities]


@dataclass(frozen=True)
class Post:
    id: Optional[str]
    user: Optional[Author]
    text: str
    entities: Optional[Entities] = None
    extended_entities: Optional[Entities] = None
    extended: Optional[ExtendedVariant] = None
    quoted: Optional["Post"] = None
    retweeted: Optional["Post"] = None
    is_quote: bool = False
    in_reply_to_user_id: Optional[str] = None

    @property
    def is_retweet(self) -> bool:
        return self.retweeted is not None

    @property
    def has_media(self) -> bool:
        """True if any media is attached, False for text posts."""
        return (
            _has_media(self.extended_entities)
            or (self.extended is not None and _has_media(self.extended.extended_entities))
            or (self.retweeted is not None and _has_media(self.retweeted.extended_entities))
        )

    @property
    def is_self_reply(self) -> bool:
        """Thread continuation: a reply to the author's own post."""
        return self.user is not None and self.in_reply_to_user_id == self.user.id

    @classmethod
    def from_dict(cls, raw: Any) -> "Post":
        """Parse a raw stream item.

        Raises:
            ValidationError: If raw is not an object
        """
        if not isinstance(raw, Mapping):
            raise ValidationError(f"Expected a post object, got {type(raw).__name__}")

        extended = None
        ext = _mapping(raw.get("extended_tweet"))
        if ext is not None:
            extended = ExtendedVariant(
                text=ext.get("full_text") or ext.get("text") or "",
                entities=Entities.from_dict(ext.get("entities")),
                extended_entities=Entities.from_dict(ext.get("extended_entities")),
            )

        quoted = _mapping(raw.get("quoted_status"))
        retweeted = _mapping(raw.get("retweeted_status"))

        return cls(
            id=_id(raw),
            user=Author.from_dict(raw.get("user")),
            text=raw.get("full_text") or raw.get("text") or "",
            entities=Entities.from_dict(raw.get("entities")),
            extended_entities=Entities.from_dict(raw.get("extended_entities")),
            extended=extended,
            quoted=cls.from_dict(quoted) if quoted is not None else None,
            retweeted=cls.from_dict(retweeted) if retweeted is not None else None,
            is_quote=bool(raw.get("is_quote_status")),
            in_reply_to_user_id=_id(raw, "in_reply_to_user_id"),
        )


# ============================================================
# SUBSCRIPTIONS / TARGETS
# ============================================================

@dataclass(frozen=True)
class Subscription:
    channel_id: str
    flags: Mapping[str, bool] = field(default_factory=dict)
    is_direct: bool = False


@dataclass(frozen=True)
class Target:
    flags: Mapping[str, bool]
    destination: Any


# ============================================================
# FORMATTER OUTPUT
# ============================================================

@dataclass(frozen=True)
class TextMetadata:
    ping_requested: bool = False
    preview_image_url: Optional[str] = None


@dataclass(frozen=True)
class FormattedText:
    text: str
    metadata: TextMetadata = field(default_factory=TextMetadata)


@dataclass(frozen=True)
class DisplayRecord:
    """Delivery-ready representation of a post."""
    author_name: str
    author_url: str
    thumbnail_url: Optional[str]
    color: int
    description: str
    image_url: Optional[str] = None
    file_urls: Optional[tuple[str, ...]] = None


@dataclass(frozen=True)
class FormattedPost:
    record: DisplayRecord
    metadata: TextMetadata
