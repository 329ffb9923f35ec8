"""Link preview resolver — fetch a page and read its social preview image."""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from bs4 import BeautifulSoup

from .errors import EnrichmentFailure

logger = logging.getLogger("qtweet.preview")

_CARD_KEYS = ("twitter:image", "twitter:image:src")
_OG_KEYS = ("og:image", "og:image:url", "og:image:secure_url")


@dataclass(frozen=True)
class LinkPreview:
    og_image: Optional[str] = None
    card_image: Optional[str] = None


def _meta_content(soup: BeautifulSoup, keys: tuple[str, ...]) -> Optional[str]:
    """First non-empty <meta> content matching any key by property or name."""
    for key in keys:
        for attr in ("property", "name"):
            tag = soup.find("meta", attrs={attr: key})
            if tag and tag.get("content"):
                return tag["content"].strip()
    return None


def parse_preview(html: str) -> LinkPreview:
    """Extract Open Graph and Twitter card images from an HTML page."""
    soup = BeautifulSoup(html, "html.parser")
    return LinkPreview(
        og_image=_meta_content(soup, _OG_KEYS),
        card_image=_meta_content(soup, _CARD_KEYS),
    )


def best_preview_image(preview: Optional[LinkPreview]) -> Optional[str]:
    """Pick the preview image to embed.

    Card image wins over Open Graph. Protocol-relative URLs are upgraded
    to https; anything else that isn't http(s) is not a usable preview.
    """
    if preview is None:
        return None
    url = preview.card_image or preview.og_image
    if not url:
        return None
    if url.startswith("//"):
        return "https:" + url
    if not url.startswith("http"):
        return None
    return url


class LinkPreviewResolver:
    """Unfurls links with httpx.

    Usage:
        resolver = LinkPreviewResolver(timeout=10)
        preview = await resolver.unfurl("https://example.com/article")
        await resolver.close()
    """

    def __init__(self, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={
                "User-Agent": "Mozilla/5.0 (compatible; QTweetBot/1.0)",
                "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
            },
        )

    async def unfurl(self, url: str) -> LinkPreview:
        """Fetch url and read its preview metadata.

        Raises:
            EnrichmentFailure: On any fetch or content failure
        """
        if not url or not url.startswith(("http://", "https://")):
            raise EnrichmentFailure(f"Not an http(s) URL: {url!r}")
        try:
            response = await self._client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise EnrichmentFailure(f"Fetch failed for {url!r}: {type(e).__name__}") from e

        if response.status_code >= 400:
            raise EnrichmentFailure(f"HTTP {response.status_code} for {url}")

        content_type = response.headers.get("content-type", "")
        if "html" not in content_type:
            raise EnrichmentFailure(f"Unsupported content type for {url}: {content_type}")

        try:
            preview = parse_preview(response.text)
        except (LookupError, ValueError) as e:
            # Unknown charsets and undecodable bodies
            raise EnrichmentFailure(f"Unreadable page at {url}: {e}") from e
        logger.debug(f"Unfurled {url}: {preview}")
        return preview

    async def close(self):
        if self._owns_client:
            await self._client.aclose()
