"""
TikTok API wrapper provider
Primary slideshow source, reads the image list from the downloader result
"""

import logging
from typing import Any, List, Mapping, Optional

import aiohttp

from media_pipeline.models import SlideshowImage
from media_pipeline.services.tiktok import SlideshowProvider
from media_pipeline.services.tiktok.api import TikTokApiClient

logger = logging.getLogger(__name__)

# The API does not report per-image geometry in this mode
PLACEHOLDER_SIZE = 1440


def _image_url(entry: Any) -> Optional[str]:
    if isinstance(entry, str):
        return entry or None
    if isinstance(entry, Mapping):
        return entry.get('url') or None
    return None


def images_from_result(result: Mapping[str, Any]) -> List[str]:
    """
    Pull image URLs out of a downloader result.

    The result schema depends on the API version that answered, two shapes
    are checked in order:
        1. an image-typed result with an ``images`` list
        2. an ``image`` list
    """
    images = result.get('images')
    if result.get('type', 'image') == 'image' and isinstance(images, list) and images:
        urls = [_image_url(entry) for entry in images]
        return [url for url in urls if url]

    image = result.get('image')
    if isinstance(image, list) and image:
        urls = [_image_url(entry) for entry in image]
        return [url for url in urls if url]

    return []


class TikWmProvider(SlideshowProvider):
    """Provider using the TikTok API wrapper's downloader"""

    PROVIDER_NAME = "TIKWM"
    REQUIRES_API_KEY = False
    DEFAULT_PRIORITY = 90

    def __init__(self, api_client: Optional[TikTokApiClient] = None):
        super().__init__("TikTok-API-Downloader", api_client)

    async def get_images(self, url: str, session: aiohttp.ClientSession) -> List[SlideshowImage]:
        if self.api_client is None:
            logger.warning(f"[{self.name}] No API client configured")
            return []

        logger.info(f"[{self.name}] Fetching slideshow images from API: {url}")
        result = await self.api_client.downloader(url)

        urls = images_from_result(result)
        logger.info(f"[{self.name}] Found {len(urls)} image(s)")
        return [SlideshowImage(url=image_url, width=PLACEHOLDER_SIZE, height=PLACEHOLDER_SIZE) for image_url in urls]
