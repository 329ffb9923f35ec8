"""Subscription filter — which destinations get a post.

The subscription store is an external collaborator; this module only
reads from it. JsonSubscriptionStore is the file-backed store used by
the host process.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol, Union

from .flags import is_set, parse_flags
from .models import Author, Post, Subscription, Target

logger = logging.getLogger("qtweet.subscriptions")


class SubscriptionStore(Protocol):
    async def get_followed_author_ids(self) -> list[str]: ...

    async def get_subscriptions_for(self, author_id: str) -> list[Subscription]: ...

    async def record_activity(self, author: Author) -> None: ...


class DestinationResolver(Protocol):
    def resolve_destination(self, channel_id: str, is_direct: bool): ...


# ============================================================
# FILTERING
# ============================================================

def is_valid(post: Optional[Post]) -> bool:
    """A post needs an author, and quote posts need a quoted post with an author."""
    if post is None or post.user is None:
        return False
    if post.is_quote and (post.quoted is None or post.quoted.user is None):
        return False
    return True


def flags_filter(flags, post: Post) -> bool:
    """Decide whether a post should go out under these subscription flags."""
    if is_set(flags, "notext") and not post.has_media:
        return False
    if not is_set(flags, "retweet") and post.is_retweet:
        return False
    if is_set(flags, "noquote") and post.is_quote:
        return False
    return True


async def get_targets(
    post: Post,
    store: SubscriptionStore,
    resolver: DestinationResolver,
) -> list[Target]:
    """Resolve the destinations interested in a post.

    Invalid posts, authors nobody follows, and replies to anyone but
    the author themself (threads are fine) yield no targets.

    Returns:
        Targets in subscription order
    """
    if not is_valid(post):
        logger.debug(f"Ignoring invalid post {post.id if post else None}")
        return []

    subs = await store.get_subscriptions_for(post.user.id)
    if not subs:
        return []
    if post.in_reply_to_user_id and not post.is_self_reply:
        logger.debug(f"Ignoring reply {post.id} from @{post.user.screen_name}")
        return []

    targets = []
    for sub in subs:
        if flags_filter(sub.flags, post):
            destination = resolver.resolve_destination(sub.channel_id, sub.is_direct)
            targets.append(Target(flags=sub.flags, destination=destination))
    return targets


# ============================================================
# FILE-BACKED STORE
# ============================================================

class JsonSubscriptionStore:
    """Subscriptions read from a JSON file.

    File format — a list of records:
        [
          {"author_id": "783214", "screen_name": "twitter",
           "channel_id": "-1001234567890", "flags": ["retweet", "ping"],
           "is_direct": false}
        ]

    Activity (last seen time, current handle) is kept in memory only.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._subs: dict[str, list[Subscription]] = {}
        self._activity: dict[str, dict] = {}
        self.reload()

    def reload(self):
        """(Re)read the subscription file. A missing file means no subscriptions.

        Raises:
            ValueError: If the file is not a JSON list of records
        """
        self._subs = {}
        if not self.path.exists():
            logger.warning(f"Subscription file not found: {self.path}")
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid subscription file {self.path}: {e}") from e
        if not isinstance(data, list):
            raise ValueError(f"Subscription file {self.path} must contain a list")

        for i, record in enumerate(data):
            if not isinstance(record, dict):
                raise ValueError(f"subscriptions[{i}] must be an object")
            author_id = record.get("author_id")
            channel_id = record.get("channel_id")
            if not author_id or not channel_id:
                raise ValueError(f"subscriptions[{i}] needs author_id and channel_id")
            sub = Subscription(
                channel_id=str(channel_id),
                flags=parse_flags(record.get("flags")),
                is_direct=bool(record.get("is_direct", False)),
            )
            self._subs.setdefault(str(author_id), []).append(sub)
            if record.get("screen_name"):
                self._activity.setdefault(str(author_id), {})["screen_name"] = record["screen_name"]

        logger.info(f"Loaded {sum(len(s) for s in self._subs.values())} subscription(s) "
                    f"for {len(self._subs)} author(s) from {self.path}")

    async def get_followed_author_ids(self) -> list[str]:
        return list(self._subs)

    async def get_subscriptions_for(self, author_id: str) -> list[Subscription]:
        return list(self._subs.get(author_id, []))

    async def record_activity(self, author: Author) -> None:
        entry = self._activity.setdefault(author.id, {})
        entry["screen_name"] = author.screen_name
        entry["last_seen"] = datetime.now(timezone.utc)

    def get_activity(self, author_id: str) -> dict:
        return dict(self._activity.get(author_id, {}))

    def list_subscriptions(self) -> list[tuple[str, Subscription]]:
        """All (author_id, subscription) pairs, in file order per author."""
        return [(author_id, sub) for author_id, subs in self._subs.items() for sub in subs]
