"""QTweet exception hierarchy and error classification."""

import asyncio
from typing import Optional

import httpx


# ════════════════════════════════════════════════════════
# Exception hierarchy — post-level failures stay inside the
# formatter/filter, stream-level failures drive reconnection.
# ════════════════════════════════════════════════════════

RATE_LIMIT_STATUSES = (420, 429)


class QTweetError(Exception):
    """Base class for all QTweet errors."""
    pass


class ValidationError(QTweetError):
    """Malformed post or entity — the single post is skipped."""
    pass


class EnrichmentFailure(QTweetError):
    """Link preview could not be fetched — degrade to no preview."""
    pass


class AttachmentResolutionFailure(QTweetError):
    """No usable video variant — the post goes out without the attachment."""
    pass


class StreamError(QTweetError):
    """Connection-level stream failure."""

    def __init__(self, url: str, status: Optional[int] = None, status_text: str = ""):
        self.url = url
        self.status = status
        self.status_text = status_text
        super().__init__(f"{status}: {status_text} at {url}")

    @classmethod
    def from_response(cls, url: str, status: Optional[int], status_text: str = "") -> "StreamError":
        """Build the right error type for a stream status code."""
        if status in RATE_LIMIT_STATUSES:
            return RateLimited(url, status, status_text)
        return cls(url, status, status_text)


class RateLimited(StreamError):
    """420/429 — reconnect after a fixed cooldown, backoff untouched."""
    pass


def classify_error(e: Exception) -> str:
    """Classify any exception into a short operator-facing message.

    Used for log lines and CLI output; never raises.
    """
    if isinstance(e, RateLimited):
        return f"Rate limited by the stream API (HTTP {e.status})."
    if isinstance(e, StreamError):
        if e.status in (401, 403):
            return "Stream authentication failed. Check the bearer token."
        if e.status is None:
            return f"Stream connection lost ({e.status_text or 'no status'})."
        if 500 <= e.status < 600:
            return f"Stream API is having server issues (HTTP {e.status})."
        return f"Stream API returned HTTP {e.status}: {e.status_text}"
    if isinstance(e, ValidationError):
        return f"Malformed post skipped: {e}"
    if isinstance(e, EnrichmentFailure):
        return f"Link preview unavailable: {e}"
    if isinstance(e, AttachmentResolutionFailure):
        return f"Attachment unavailable: {e}"

    # httpx errors from the stream client, the unfurler or the delivery layer
    if isinstance(e, httpx.HTTPStatusError):
        code = e.response.status_code
        if code in RATE_LIMIT_STATUSES:
            return f"Rate limited (HTTP {code})."
        return f"Remote returned HTTP {code}."
    if isinstance(e, httpx.ConnectError):
        return "Cannot connect to remote host."
    if isinstance(e, (httpx.ReadTimeout, httpx.WriteTimeout, httpx.PoolTimeout, httpx.ConnectTimeout)):
        return "Request timed out."

    if isinstance(e, asyncio.TimeoutError):
        return "Request timed out."

    type_name = type(e).__name__
    return f"Something went wrong ({type_name}). Check logs for details."
