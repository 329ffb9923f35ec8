"""Pytest configuration and shared fixtures."""

import pytest

from qtweet.config import QTweetSettings
from qtweet.delivery import Destination
from qtweet.models import Subscription


# ── Raw post builders ───────────────────────────────────────

def make_user(id=1, screen_name="alice", name="Alice", **extra) -> dict:
    user = {
        "id": id,
        "id_str": str(id),
        "name": name,
        "screen_name": screen_name,
        "profile_image_url_https": f"https://pbs.twimg.com/profile_images/{screen_name}.jpg",
    }
    user.update(extra)
    return user


def make_tweet(text="hello world", id="100", user=None, entities=None, **extra) -> dict:
    tweet = {
        "id_str": id,
        "text": text,
        "user": user or make_user(),
        "entities": entities or {"user_mentions": [], "urls": [], "hashtags": []},
        "is_quote_status": False,
    }
    tweet.update(extra)
    return tweet


def make_photo(url: str) -> dict:
    return {"type": "photo", "media_url_https": url}


def make_video(duration=60000, variants=None, type="video", thumb="https://pbs.twimg.com/thumb.jpg") -> dict:
    return {
        "type": type,
        "media_url_https": thumb,
        "video_info": {"duration_millis": duration, "variants": variants or []},
    }


# ── Fake collaborators ──────────────────────────────────────

class FakeHandle:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.fired = True
        self.callback()


class FakeTimer:
    """Stands in for loop.call_later; timers only fire when told to."""

    def __init__(self):
        self.handles: list[FakeHandle] = []

    def __call__(self, delay, callback):
        handle = FakeHandle(delay, callback)
        self.handles.append(handle)
        return handle

    def pending(self, callback_name=None) -> list[FakeHandle]:
        return [
            h for h in self.handles
            if not (h.cancelled or h.fired) and (callback_name is None or h.callback.__name__ == callback_name)
        ]


class FakeConnection:
    def __init__(self, ids, handlers):
        self.follow = ids
        self.handlers = handlers
        self.connected = True

    def disconnect(self):
        self.connected = False


class FakeSource:
    def __init__(self):
        self.connections: list[FakeConnection] = []

    def connect(self, ids, handlers):
        conn = FakeConnection(ids, handlers)
        self.connections.append(conn)
        return conn


class FakeStore:
    def __init__(self, subs: dict[str, list[Subscription]] | None = None):
        self.subs = subs or {}
        self.activity = []

    async def get_followed_author_ids(self):
        return list(self.subs)

    async def get_subscriptions_for(self, author_id):
        return list(self.subs.get(author_id, []))

    async def record_activity(self, author):
        self.activity.append(author.id)


class FakeDelivery:
    def __init__(self, failing: set | None = None):
        self.sent = []
        self.failing = failing or set()

    def resolve_destination(self, channel_id, is_direct):
        return Destination(chat_id=channel_id, is_direct=is_direct)

    async def send_embed(self, destination, record):
        if destination.chat_id in self.failing:
            raise RuntimeError("chat unavailable")
        self.sent.append(("embed", destination.chat_id, record))

    async def send_plain_message(self, destination, text):
        self.sent.append(("message", destination.chat_id, text))


@pytest.fixture
def settings():
    return QTweetSettings(
        _env_file=None,
        backoff_min_ms=2000,
        backoff_max_ms=16000,
        rate_limit_cooldown_ms=30000,
        watchdog_timeout_ms=90000,
    )


@pytest.fixture
def timer():
    return FakeTimer()


@pytest.fixture
def source():
    return FakeSource()
