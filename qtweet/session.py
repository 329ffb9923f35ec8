"""Stream session manager — keeps one live stream connection up.

Lifecycle:
    ABSENT ──create()──▶ CONNECTING ──on_start──▶ LIVE
      ▲                      ▲                     │
      │                      └── reconnect timer ◀─┤ on_error / on_end
      │                      └── watchdog fires ◀──┘ (no data in time)
      └──────────── destroy() (shutdown)

Reconnect delays come from an exponential Backoff that resets on every
successful start. Rate-limit errors wait a fixed cooldown instead and
leave the backoff alone. At most one reconnect timer and one watchdog
timer are pending at any time; each is cancelled when superseded.

All transitions run on the event loop thread, so no locking is needed.
Each incoming post is dispatched as its own task: a slow post (link
preview fetch, delivery) never holds up the stream.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Coroutine, Optional, Protocol

from .backoff import Backoff
from .config import QTweetSettings
from .delivery import DeliveryChannel
from .errors import RateLimited, StreamError, ValidationError, classify_error
from .flags import is_set
from .formatter import format_post
from .models import Post, Target
from .rewriter import Unfurler
from .stream import StreamConnection, StreamHandlers
from .subscriptions import SubscriptionStore, get_targets

logger = logging.getLogger("qtweet.session")


class SessionState(Enum):
    ABSENT = "absent"
    CONNECTING = "connecting"
    LIVE = "live"


class StreamSource(Protocol):
    def connect(self, ids: list[str], handlers: StreamHandlers) -> StreamConnection: ...


# call_later(delay_seconds, callback) -> handle with .cancel()
CallLater = Callable[[float, Callable[[], None]], Any]


class StreamSessionManager:
    """Owns the stream connection and routes its posts to subscribers.

    Usage:
        manager = StreamSessionManager(source, store, delivery, settings=settings)
        await manager.create()
        ...
        await manager.close()
    """

    def __init__(
        self,
        source: StreamSource,
        store: SubscriptionStore,
        delivery: DeliveryChannel,
        *,
        backoff: Optional[Backoff] = None,
        settings: Optional[QTweetSettings] = None,
        unfurler: Optional[Unfurler] = None,
        call_later: Optional[CallLater] = None,
    ):
        """Initialize the manager.

        Args:
            source: Stream client that opens connections
            store: Subscription store
            delivery: Delivery channel for formatted posts
            backoff: Reconnect delay generator (default from settings)
            settings: Timing and formatting settings
            unfurler: Optional link preview resolver
            call_later: Timer factory, defaults to the running loop's call_later
        """
        settings = settings or QTweetSettings()
        self.source = source
        self.store = store
        self.delivery = delivery
        self.backoff = backoff or Backoff(
            mode="exponential",
            start_value=settings.backoff_min_ms,
            max_value=settings.backoff_max_ms,
        )
        self.unfurler = unfurler
        self.rate_limit_cooldown_ms = settings.rate_limit_cooldown_ms
        self.watchdog_timeout_ms = settings.watchdog_timeout_ms
        self.ping_hashtag = settings.ping_hashtag
        self.ping_text = settings.ping_text

        self.state = SessionState.ABSENT
        self._connection: Optional[StreamConnection] = None
        self._watchdog = None
        self._reconnect = None
        self._call_later = call_later
        self._tasks: set[asyncio.Task] = set()

    # ============================================================
    # TIMERS / TASKS
    # ============================================================

    def _schedule(self, delay_ms: int, callback: Callable[[], None]):
        call_later = self._call_later or asyncio.get_running_loop().call_later
        return call_later(delay_ms / 1000, callback)

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Stream task failed: {classify_error(exc)}", exc_info=exc)

    def _arm_watchdog(self):
        self._clear_watchdog()
        self._watchdog = self._schedule(self.watchdog_timeout_ms, self._watchdog_fired)

    def _clear_watchdog(self):
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

    def _cancel_reconnect(self):
        if self._reconnect is not None:
            self._reconnect.cancel()
            self._reconnect = None

    def _schedule_reconnect(self, delay_ms: int):
        # A new reconnect supersedes any pending one
        self._cancel_reconnect()
        self._reconnect = self._schedule(delay_ms, self._reconnect_fired)

    def _reconnect_fired(self):
        self._reconnect = None
        self._spawn(self._recreate())

    def _watchdog_fired(self):
        self._watchdog = None
        logger.warning(
            f"No stream activity for {self.watchdog_timeout_ms}ms, recreating the stream"
        )
        self.destroy()
        self._spawn(self._recreate())

    async def _recreate(self):
        """create(), falling back to a backoff-delayed retry if it fails."""
        try:
            await self.create()
        except Exception as e:
            delay = self.backoff.value()
            self.backoff.increment()
            self.state = SessionState.CONNECTING
            logger.error(f"Stream creation failed ({classify_error(e)}). Retrying in {delay}ms", exc_info=True)
            self._schedule_reconnect(delay)

    def _close_connection(self):
        if self._connection is not None:
            self._connection.disconnect()
            self._connection = None

    def _mark_disconnected(self):
        self._clear_watchdog()
        self._close_connection()
        self.state = SessionState.CONNECTING

    # ============================================================
    # LIFECYCLE
    # ============================================================

    @property
    def connected(self) -> bool:
        return self._connection is not None and self._connection.connected

    async def create(self):
        """(Re)open the stream for every followed author.

        Any previous connection is closed first; with nobody to follow no
        connection is opened and the manager stays ABSENT.
        """
        self._cancel_reconnect()
        ids = await self.store.get_followed_author_ids()
        self._clear_watchdog()
        self._close_connection()
        if not ids:
            logger.info("No followed authors, not opening a stream")
            self.state = SessionState.ABSENT
            return
        self.state = SessionState.CONNECTING
        logger.info(f"Opening stream for {len(ids)} author(s)")
        self._connection = self.source.connect(list(ids), self)

    def destroy(self):
        """Tear the connection down. The manager can be create()d again."""
        self._clear_watchdog()
        self._cancel_reconnect()
        self._close_connection()
        self.state = SessionState.ABSENT

    async def close(self):
        """Shutdown: destroy and wait for in-flight posts."""
        self.destroy()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ============================================================
    # STREAM EVENTS
    # ============================================================

    def on_start(self):
        logger.info("Stream successfully started")
        self.state = SessionState.LIVE
        self.backoff.reset()
        self._arm_watchdog()

    def on_heartbeat(self):
        if self.state is SessionState.LIVE:
            self._arm_watchdog()

    def on_data(self, raw: dict):
        self._arm_watchdog()
        self._spawn(self.dispatch(raw))

    def on_error(self, error: StreamError):
        self._mark_disconnected()
        if isinstance(error, RateLimited):
            delay = self.rate_limit_cooldown_ms
        else:
            delay = self.backoff.value()
            self.backoff.increment()
        logger.warning(
            f"Stream error ({error.status}: {error.status_text}) at {error.url}. "
            f"Reconnecting in {delay}ms"
        )
        self._schedule_reconnect(delay)

    def on_end(self):
        self._mark_disconnected()
        delay = self.backoff.value()
        logger.warning(f"Disconnected from the stream. Reconnecting in {delay}ms...")
        self._schedule_reconnect(delay)
        self.backoff.increment()

    # ============================================================
    # POST DISPATCH
    # ============================================================

    async def dispatch(self, raw: dict):
        """Filter, format and deliver one raw post."""
        try:
            post = Post.from_dict(raw)
        except ValidationError as e:
            logger.warning(classify_error(e))
            return

        targets = await get_targets(post, self.store, self.delivery)
        if not targets:
            return
        await self.deliver(post, targets)
        await self.store.record_activity(post.user)

    async def deliver(self, post: Post, targets: list[Target]):
        """Format a post and send it (and its quoted post) to each target.

        Delivery to one target failing does not stop the others.
        """
        try:
            formatted = await format_post(post, unfurler=self.unfurler, trigger=self.ping_hashtag)
        except ValidationError as e:
            logger.warning(f"Post {post.id}: {classify_error(e)}")
            return

        for target in targets:
            try:
                if formatted.metadata.ping_requested and is_set(target.flags, "ping"):
                    logger.info(f"Pinging {target.destination}")
                    await self.delivery.send_plain_message(target.destination, self.ping_text)
                await self.delivery.send_embed(target.destination, formatted.record)
            except Exception as e:
                logger.error(f"Delivery of {post.id} to {target.destination} failed: {classify_error(e)}")

        if not (post.is_quote and post.quoted is not None):
            return
        try:
            quoted = await format_post(
                post.quoted, quoted=True, unfurler=self.unfurler, trigger=self.ping_hashtag,
            )
        except ValidationError as e:
            logger.warning(f"Quoted post of {post.id}: {classify_error(e)}")
            return
        for target in targets:
            if is_set(target.flags, "noquote"):
                continue
            try:
                await self.delivery.send_embed(target.destination, quoted.record)
            except Exception as e:
                logger.error(f"Delivery of quoted {post.quoted.id} to {target.destination} failed: {classify_error(e)}")
