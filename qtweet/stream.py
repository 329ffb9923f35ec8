"""Twitter filtered-stream client.

Opens one long-lived HTTP connection following a set of author ids and
reports what happens on it through a handler object:

    on_start()      connection accepted (HTTP 200)
    on_data(raw)    one post, as decoded JSON
    on_heartbeat()  keep-alive newline
    on_error(err)   StreamError — rejected, or the connection broke
    on_end()        server closed the stream cleanly

Handlers are plain (non-async) callables invoked from the stream task;
they must not block. disconnect() cancels the task without calling any
handler.
"""

import asyncio
import json
import logging
from typing import Any, Optional, Protocol

import httpx

from .errors import StreamError, classify_error

logger = logging.getLogger("qtweet.stream")


class StreamHandlers(Protocol):
    def on_start(self) -> None: ...

    def on_data(self, raw: dict) -> None: ...

    def on_heartbeat(self) -> None: ...

    def on_error(self, error: StreamError) -> None: ...

    def on_end(self) -> None: ...


def get_api_error(response: Any) -> tuple[Optional[int], Optional[str]]:
    """First (code, message) of an API error payload, (None, None) if there is none."""
    if not isinstance(response, dict):
        return None, None
    errors = response.get("errors")
    if not isinstance(errors, list) or not errors or not isinstance(errors[0], dict):
        return None, None
    first = errors[0]
    return first.get("code"), first.get("message") or first.get("msg")


class StreamConnection:
    """Handle to one running stream connection."""

    def __init__(self, task: asyncio.Task, follow: list[str]):
        self._task = task
        self.follow = follow

    @property
    def connected(self) -> bool:
        return not self._task.done()

    def disconnect(self):
        """Stop the stream. No handler is called."""
        if not self._task.done():
            self._task.cancel()


class TwitterStream:
    """Stream source backed by httpx.

    Usage:
        source = TwitterStream(url, token)
        conn = source.connect(["783214"], manager)
        ...
        conn.disconnect()
        await source.close()
    """

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self._token = token
        self._owns_client = client is None
        # No read timeout: silence is handled by the session watchdog
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, read=None),
            headers={"User-Agent": "QTweetBot/1.0"},
        )

    def connect(self, ids: list[str], handlers: StreamHandlers) -> StreamConnection:
        """Start streaming posts from the given author ids."""
        follow = [str(i) for i in ids]
        task = asyncio.create_task(self._run(follow, handlers))
        return StreamConnection(task, follow)

    async def close(self):
        if self._owns_client:
            await self._client.aclose()

    async def _run(self, follow: list[str], handlers: StreamHandlers):
        headers = {}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        try:
            async with self._client.stream(
                "POST",
                self.url,
                data={"follow": ",".join(follow)},
                headers=headers,
            ) as response:
                if response.status_code != 200:
                    await response.aread()
                    try:
                        payload = response.json()
                    except ValueError:
                        payload = None
                    _, message = get_api_error(payload)
                    handlers.on_error(StreamError.from_response(
                        self.url, response.status_code, message or response.reason_phrase,
                    ))
                    return

                handlers.on_start()
                async for line in response.aiter_lines():
                    self._handle_line(line, handlers)
        except asyncio.CancelledError:
            raise
        except httpx.HTTPError as e:
            error = StreamError(self.url, None, f"{type(e).__name__}: {e}")
            logger.debug(classify_error(error))
            handlers.on_error(error)
            return

        handlers.on_end()

    def _handle_line(self, line: str, handlers: StreamHandlers):
        if not line.strip():
            handlers.on_heartbeat()
            return
        try:
            item = json.loads(line)
        except json.JSONDecodeError:
            logger.warning(f"Undecodable stream line: {line[:200]!r}")
            return
        # Limit notices, deletes and friends carry no post id
        if not isinstance(item, dict) or "id_str" not in item:
            logger.debug(f"Skipping stream notice: {line[:200]}")
            handlers.on_heartbeat()
            return
        handlers.on_data(item)
