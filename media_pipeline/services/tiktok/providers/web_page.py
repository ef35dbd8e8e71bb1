"""
Public page scraping provider
Fallback slideshow source, parses the JSON state embedded in the post page
"""

import json
import logging
import re
from typing import Any, Callable, List, Mapping, Optional

import aiohttp

from media_pipeline.models import SlideshowImage
from media_pipeline.services.tiktok import SlideshowProvider
from media_pipeline.services.tiktok.api import BROWSER_USER_AGENT

logger = logging.getLogger(__name__)

DEFAULT_WIDTH = 1080
DEFAULT_HEIGHT = 1920

PAGE_TIMEOUT = aiohttp.ClientTimeout(total=10)

PAGE_HEADERS = {
    'User-Agent': BROWSER_USER_AGENT,
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.9',
    'Referer': 'https://www.tiktok.com/',
}

# Embedded state blocks, tried in order. re.S because some pages pretty-print the JSON
STATE_PATTERNS = (
    ("universal_data", re.compile(
        r'<script id="__UNIVERSAL_DATA_FOR_REHYDRATION__" type="application/json">(.*?)</script>', re.S)),
    ("sigi_state", re.compile(
        r'<script id="SIGI_STATE" type="application/json">(.*?)</script>', re.S)),
    ("next_data", re.compile(
        r'<script type="application/json" id="__NEXT_DATA__">(.*?)</script>', re.S)),
)


def _default_scope_item(state: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    return (state.get('__DEFAULT_SCOPE__') or {}).get('webapp.video-detail', {}).get('itemInfo', {}).get('itemStruct')


def _item_module_item(state: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    item_module = state.get('ItemModule') or {}
    if not isinstance(item_module, Mapping) or not item_module:
        return None
    return next(iter(item_module.values()))


def _next_data_item(state: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    return (state.get('props') or {}).get('pageProps', {}).get('itemInfo', {}).get('itemStruct')


# Page render variants, tried in order
ITEM_LOCATORS: tuple[tuple[str, Callable[[Mapping[str, Any]], Optional[Mapping[str, Any]]]], ...] = (
    ("default_scope", _default_scope_item),
    ("item_module", _item_module_item),
    ("next_data", _next_data_item),
)


def _to_image(descriptor: Any) -> Optional[SlideshowImage]:
    if not isinstance(descriptor, Mapping):
        return None
    image_url = descriptor.get('imageURL') or {}
    url_list = image_url.get('urlList') if isinstance(image_url, Mapping) else None
    url = (url_list[0] if url_list else None) or (image_url.get('url') if isinstance(image_url, Mapping) else None) or descriptor.get('url')
    if not url:
        return None
    return SlideshowImage(
        url=url,
        width=descriptor.get('imageWidth') or DEFAULT_WIDTH,
        height=descriptor.get('imageHeight') or DEFAULT_HEIGHT,
    )


def images_from_state(state: Mapping[str, Any]) -> Optional[List[SlideshowImage]]:
    """
    Locate the item's image post inside a parsed page state.

    Returns:
        Images in display order, or None if no locator finds an image post
    """
    for name, locate in ITEM_LOCATORS:
        try:
            item = locate(state)
        except AttributeError:
            # A level of the path is not an object in this render variant
            continue
        if not isinstance(item, Mapping):
            continue
        image_post = item.get('imagePost')
        images = image_post.get('images') if isinstance(image_post, Mapping) else None
        if isinstance(images, list):
            logger.debug(f"[WEB] Image post found via {name}")
            return [image for image in map(_to_image, images) if image]
    return None


def parse_page_images(html: str) -> List[SlideshowImage]:
    """Try every known state block, first one with an image post wins."""
    for name, pattern in STATE_PATTERNS:
        match = pattern.search(html)
        if not match:
            continue
        try:
            state = json.loads(match.group(1))
        except json.JSONDecodeError:
            logger.debug(f"[WEB] Failed to parse {name} block, trying next...")
            continue
        if not isinstance(state, Mapping):
            continue
        images = images_from_state(state)
        if images is not None:
            logger.info(f"[WEB] Found {len(images)} image(s) in {name} block")
            return images
    return []


class WebPageProvider(SlideshowProvider):
    """Provider scraping the public post page"""

    PROVIDER_NAME = "TIKTOK_WEB"
    REQUIRES_API_KEY = False
    DEFAULT_PRIORITY = 10

    def __init__(self, api_client=None):
        super().__init__("TikTok-Web-Page", api_client)

    async def get_images(self, url: str, session: aiohttp.ClientSession) -> List[SlideshowImage]:
        logger.info(f"[{self.name}] Fetching page HTML: {url}")
        async with session.get(url, headers=PAGE_HEADERS, timeout=PAGE_TIMEOUT) as response:
            logger.info(f"[{self.name}] Response status: {response.status}")
            response.raise_for_status()
            html = await response.text()

        return parse_page_images(html)
