"""
TikTok API wrapper client.

Talks to a tikwm-compatible downloader API (the public endpoint, or the
RapidAPI host when an API key is configured) for post details and
videos-by-audio lookups, and to TikTok's web search endpoints for
cookie-authenticated keyword search.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

logger = logging.getLogger(__name__)

PUBLIC_BASE_URL = "https://www.tikwm.com/api"
SEARCH_BASE_URL = "https://www.tiktok.com/api/search"

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

API_TIMEOUT = aiohttp.ClientTimeout(total=20)

# search type -> (endpoint path, list key, entry key)
SEARCH_ENDPOINTS = {
    "video": ("general/full", "data", "item"),
    "user": ("user/full", "user_list", "user_info"),
    "live": ("live/full", "data", "live_info"),
}

SEARCH_PAGE_SIZE = 20


class TikTokApiError(Exception):
    """Upstream API rejected the request or answered with something unusable."""


@dataclass(frozen=True)
class MusicVideo:
    """A video that uses a given audio track."""
    id: str
    unique_id: str


class TikTokApiClient:
    """
    Async client for the TikTok API wrapper.

    Args:
        session: Shared aiohttp session
        api_key: Optional RapidAPI key, switches to the RapidAPI host
        api_host: RapidAPI host name
    """

    def __init__(self, session: aiohttp.ClientSession, api_key: Optional[str] = None,
                 api_host: str = 'tiktok-video-no-watermark2.p.rapidapi.com'):
        self.session = session
        self.api_key = api_key
        self.api_host = api_host
        self.name = "TikTok-API"

    @property
    def base_url(self) -> str:
        if self.api_key:
            return f"https://{self.api_host}"
        return PUBLIC_BASE_URL

    def _headers(self) -> dict[str, str]:
        if self.api_key:
            return {
                'x-rapidapi-key': self.api_key,
                'x-rapidapi-host': self.api_host,
            }
        return {'User-Agent': BROWSER_USER_AGENT}

    async def _get_data(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        """GET an API endpoint and return its `data` object."""
        endpoint = f"{self.base_url}{path}"
        logger.info(f"[{self.name}] GET {endpoint} params={params}")

        async with self.session.get(endpoint, params=params, headers=self._headers(), timeout=API_TIMEOUT) as response:
            body = await response.text()
            logger.debug(f"[{self.name}] Response status: {response.status}, {len(body)} bytes")
            if response.status != 200:
                raise TikTokApiError(f"API returned status {response.status}")

        try:
            payload = json.loads(body)
        except json.JSONDecodeError as e:
            raise TikTokApiError(f"Invalid JSON from API: {e}") from e

        if not isinstance(payload, dict) or payload.get('code') != 0:
            message = payload.get('msg') if isinstance(payload, dict) else None
            raise TikTokApiError(message or "API returned an error")

        data = payload.get('data')
        if not isinstance(data, dict):
            raise TikTokApiError("No 'data' field in response")
        return data

    async def downloader(self, url: str) -> dict[str, Any]:
        """
        Fetch post details (play URLs, images for slideshows).

        Returns:
            The API result object; its shape varies between API versions
        """
        return await self._get_data("/", {'url': url, 'hd': 1})

    async def videos_by_music(self, music_id: str, count: int = 5) -> list[MusicVideo]:
        """
        List videos that use the given audio track.

        Args:
            music_id: Numeric audio-track id
            count: Number of candidates to request

        Returns:
            Candidates in API order, entries without id or author are skipped
        """
        data = await self._get_data("/music/posts", {'music_id': music_id, 'count': count, 'cursor': 0})

        videos = []
        for entry in data.get('videos') or []:
            if not isinstance(entry, dict):
                continue
            author = entry.get('author') or {}
            video_id = entry.get('video_id') or entry.get('id')
            unique_id = author.get('unique_id') or author.get('uniqueId')
            if video_id and unique_id:
                videos.append(MusicVideo(id=str(video_id), unique_id=str(unique_id)))

        logger.info(f"[{self.name}] Found {len(videos)} video(s) for music {music_id}")
        return videos

    async def search(self, keyword: str, search_type: str, cookie: str, page: int = 1) -> list[dict[str, Any]]:
        """
        Keyword search on TikTok's web API using a browser session cookie.

        Raises:
            TikTokApiError: "Invalid cookie!" for a malformed cookie,
                "Empty response" when TikTok answers with no body
                (expired or rejected session)
        """
        if search_type not in SEARCH_ENDPOINTS:
            raise TikTokApiError(f"Unsupported search type: {search_type}")
        if '=' not in cookie:
            raise TikTokApiError("Invalid cookie!")

        path, list_key, entry_key = SEARCH_ENDPOINTS[search_type]
        params = {
            'keyword': keyword,
            'offset': max(page - 1, 0) * SEARCH_PAGE_SIZE,
            'count': SEARCH_PAGE_SIZE,
        }
        headers = {
            'User-Agent': BROWSER_USER_AGENT,
            'Cookie': cookie,
            'Referer': 'https://www.tiktok.com/',
        }

        logger.info(f"[{self.name}] Keyword search '{keyword}' (type: {search_type}, page: {page})")
        async with self.session.get(f"{SEARCH_BASE_URL}/{path}/", params=params, headers=headers,
                                    timeout=API_TIMEOUT) as response:
            body = await response.text()

        if not body.strip():
            raise TikTokApiError("Empty response")

        try:
            payload = json.loads(body)
        except json.JSONDecodeError as e:
            raise TikTokApiError("Empty response") from e
        if not isinstance(payload, dict):
            raise TikTokApiError("Empty response")

        status_code = payload.get('status_code', 0)
        if status_code != 0:
            raise TikTokApiError(payload.get('status_msg') or f"Search failed with status {status_code}")

        results = []
        for entry in payload.get(list_key) or []:
            if isinstance(entry, dict) and isinstance(entry.get(entry_key), dict):
                results.append(entry[entry_key])
        return results
