"""QTweet — Main entry point."""

import asyncio
import logging
import os

from telegram import Bot

from .config import load_settings
from .delivery import TelegramDelivery
from .preview import LinkPreviewResolver
from .session import StreamSessionManager
from .stream import TwitterStream
from .subscriptions import JsonSubscriptionStore

_log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_log_file = os.path.expanduser("~/qtweet.log")

logger = logging.getLogger("qtweet")


def setup_logging(debug: bool = False):
    """Log to stderr and ~/qtweet.log."""
    logging.basicConfig(
        level=logging.INFO,
        format=_log_format,
        handlers=[
            logging.StreamHandler(),                          # stderr (console)
            logging.FileHandler(_log_file, encoding="utf-8"), # ~/qtweet.log
        ],
    )
    if debug:
        logger.setLevel(logging.DEBUG)


async def run():
    """Main run loop."""
    settings = load_settings()
    if settings.debug:
        logger.setLevel(logging.DEBUG)
    if not settings.telegram_bot_token:
        logger.critical("Cannot start without a Telegram bot token (QTWEET_TELEGRAM_BOT_TOKEN).")
        return

    store = JsonSubscriptionStore(settings.subscriptions_file)
    bot = Bot(settings.telegram_bot_token)
    source = TwitterStream(settings.stream_url, settings.twitter_bearer_token)
    unfurler = LinkPreviewResolver(timeout=settings.unfurl_timeout) if settings.unfurl_previews else None
    manager = StreamSessionManager(
        source,
        store,
        TelegramDelivery(bot),
        settings=settings,
        unfurler=unfurler,
    )

    try:
        await bot.initialize()
        await manager.create()
        logger.info("QTweet is running. Press Ctrl+C to stop.")
        while True:
            await asyncio.sleep(1)
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    except Exception as e:
        logger.critical(f"Fatal error: {type(e).__name__}: {e}", exc_info=True)
    finally:
        await manager.close()
        await source.close()
        if unfurler:
            await unfurler.close()
        await bot.shutdown()
        logger.info("QTweet stopped.")


def main():
    """Entry point."""
    setup_logging()
    asyncio.run(run())


if __name__ == "__main__":
    main()
