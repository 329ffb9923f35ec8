"""Delivery channels — hand display records to chat destinations."""

import logging
from dataclasses import dataclass
from typing import Protocol, Union

from telegram import Bot, InputMediaPhoto, InputMediaVideo
from telegram.error import BadRequest

from .formatting import CAPTION_LIMIT, html_to_text, render_record_html, split_message
from .models import DisplayRecord

logger = logging.getLogger("qtweet.delivery")

_VIDEO_EXTENSIONS = (".mp4", ".mov", ".webm")
_MEDIA_GROUP_MAX = 10


@dataclass(frozen=True)
class Destination:
    chat_id: Union[int, str]
    is_direct: bool = False


class DeliveryChannel(Protocol):
    def resolve_destination(self, channel_id: str, is_direct: bool) -> Destination: ...

    async def send_embed(self, destination: Destination, record: DisplayRecord) -> None: ...

    async def send_plain_message(self, destination: Destination, text: str) -> None: ...


def _is_video(url: str) -> bool:
    return url.lower().endswith(_VIDEO_EXTENSIONS)


def _plain_text(record: DisplayRecord) -> str:
    """Fallback rendering when Telegram rejects the HTML."""
    return f"{record.author_name}\n{record.author_url}\n\n{record.description}".strip()


class TelegramDelivery:
    """Delivers display records through a Telegram bot.

    Usage:
        delivery = TelegramDelivery(Bot(token))
        dest = delivery.resolve_destination("-1001234567890", False)
        await delivery.send_embed(dest, record)
    """

    def __init__(self, bot: Bot):
        self._bot = bot

    def resolve_destination(self, channel_id: str, is_direct: bool) -> Destination:
        """Map a stored channel id to a chat id (numeric ids become ints, @names stay)."""
        chat_id: Union[int, str] = channel_id
        try:
            chat_id = int(channel_id)
        except (TypeError, ValueError):
            pass
        return Destination(chat_id=chat_id, is_direct=is_direct)

    async def send_plain_message(self, destination: Destination, text: str) -> None:
        await self._bot.send_message(chat_id=destination.chat_id, text=text)

    async def send_embed(self, destination: Destination, record: DisplayRecord) -> None:
        """Send a display record.

        Layout:
        - image_url: photo with the rendered text as caption
        - file_urls: one video/photo, or a media group for several
        - neither: a text message
        Captions over the platform limit go out as a separate message.
        """
        html = render_record_html(record)
        chat_id = destination.chat_id

        if record.file_urls:
            await self._send_files(chat_id, record, html)
            return

        if record.image_url:
            caption = html if len(html) <= CAPTION_LIMIT else None
            try:
                await self._bot.send_photo(
                    chat_id=chat_id,
                    photo=record.image_url,
                    caption=caption,
                    parse_mode="HTML" if caption else None,
                )
            except BadRequest as e:
                logger.warning(f"Photo send failed for {chat_id} ({e}), falling back to text")
                await self._send_text(chat_id, html, record)
                return
            if caption is None:
                await self._send_text(chat_id, html, record)
            return

        await self._send_text(chat_id, html, record)

    async def _send_files(self, chat_id, record: DisplayRecord, html: str):
        files = list(record.file_urls)[:_MEDIA_GROUP_MAX]
        if len(record.file_urls) > _MEDIA_GROUP_MAX:
            logger.warning(f"Dropping {len(record.file_urls) - _MEDIA_GROUP_MAX} file(s) over the media group limit")
        caption = html if len(html) <= CAPTION_LIMIT else None
        parse_mode = "HTML" if caption else None

        try:
            if len(files) == 1:
                url = files[0]
                if _is_video(url):
                    await self._bot.send_video(chat_id=chat_id, video=url, caption=caption, parse_mode=parse_mode)
                else:
                    await self._bot.send_document(chat_id=chat_id, document=url, caption=caption, parse_mode=parse_mode)
            else:
                media = []
                for i, url in enumerate(files):
                    kind = InputMediaVideo if _is_video(url) else InputMediaPhoto
                    if i == 0:
                        media.append(kind(media=url, caption=caption, parse_mode=parse_mode))
                    else:
                        media.append(kind(media=url))
                await self._bot.send_media_group(chat_id=chat_id, media=media)
        except BadRequest as e:
            logger.warning(f"File send failed for {chat_id} ({e}), sending links as text")
            links = "\n".join(files)
            await self._send_text(chat_id, f"{html}\n\n{links}", record)
            return

        if caption is None:
            await self._send_text(chat_id, html, record)

    async def _send_text(self, chat_id, html: str, record: DisplayRecord):
        """Send HTML text, splitting long messages.

        If Telegram rejects a chunk's HTML, that chunk and the ones after it
        go out as plain text; chunks already delivered are not repeated.
        """
        chunks = split_message(html)
        for i, chunk in enumerate(chunks):
            try:
                await self._bot.send_message(chat_id=chat_id, text=chunk, parse_mode="HTML")
            except BadRequest as e:
                logger.warning(f"HTML rejected for {chat_id} ({e}), sending the rest as plain text")
                if i == 0:
                    rest = split_message(_plain_text(record))
                else:
                    rest = [text for text in (html_to_text(c).strip() for c in chunks[i:]) if text]
                for plain in rest:
                    await self._bot.send_message(chat_id=chat_id, text=plain)
                return
