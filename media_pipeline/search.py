"""
Profile search, keyword search and profile statistics.

Profile listings and stats come from yt-dlp. Keyword search goes through
TikTok's web search and needs a browser session cookie (TIKTOK_COOKIE).
"""

import logging
import random
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional
from urllib.parse import quote

from media_pipeline.assembler import feed_item, profile_stats
from media_pipeline.config import MIN_COOKIE_LENGTH, Settings
from media_pipeline.downloader import TempWorkspace
from media_pipeline.errors import ExtractionError, NotFoundError, UpstreamAuthError, ValidationError
from media_pipeline.extractor import YtDlp
from media_pipeline.models import DownloadArtifact
from media_pipeline.services.tiktok.api import TikTokApiClient, TikTokApiError
from media_pipeline.urls import build_video_url, ensure_username

logger = logging.getLogger(__name__)

MAX_KEYWORD_RESULTS = 15

MISSING_COOKIE_MESSAGE = (
    "TikTok cookie is not configured. Set TIKTOK_COOKIE to the cookie of a "
    "logged-in TikTok browser session."
)
SHORT_COOKIE_MESSAGE = (
    "The TikTok cookie looks invalid (too short). Make sure you copied the "
    "complete cookie from your browser."
)
EXPIRED_COOKIE_MESSAGE = (
    "The TikTok cookie is invalid or has expired. Please:\n"
    "1. Open TikTok in your browser and log in\n"
    "2. Press F12 → Application → Cookies → tiktok.com\n"
    "3. Copy the WHOLE cookie (all cookies together, not only sessionid)\n"
    "4. Update TIKTOK_COOKIE with the new value"
)
INVALID_COOKIE_MESSAGE = (
    "Invalid TikTok cookie. Make sure you copy the right cookie from your "
    "browser (F12 → Application → Cookies)."
)
KEYWORD_ONLY_MESSAGE = (
    "To search videos use the @username format (e.g. @tiktok). "
    "Keyword search is available at /api/tiktok/search/keyword."
)

# Upstream error text -> client message
UPSTREAM_AUTH_MESSAGES = {
    "Empty response": EXPIRED_COOKIE_MESSAGE,
    "Invalid cookie!": INVALID_COOKIE_MESSAGE,
}


def _header_value(value: Any) -> str:
    return str(value) if value is not None else ''


class SearchService:
    """
    Search endpoints.

    Args:
        settings: Service settings (cookie, temp dir)
        extractor: yt-dlp wrapper
        api_client: TikTok API client for keyword search
    """

    def __init__(self, settings: Settings, extractor: YtDlp, api_client: TikTokApiClient):
        self.settings = settings
        self.extractor = extractor
        self.api_client = api_client

    def _cookie(self) -> str:
        cookie = self.settings.tiktok_cookie
        if not cookie:
            raise UpstreamAuthError(MISSING_COOKIE_MESSAGE)
        if len(cookie) < MIN_COOKIE_LENGTH:
            raise UpstreamAuthError(SHORT_COOKIE_MESSAGE)
        return cookie

    async def search(self, query: str, limit: int = 15) -> dict[str, Any]:
        """
        List the latest videos of a profile.

        Args:
            query: "@username"
            limit: Maximum number of videos (1-20)

        Raises:
            ValidationError: Plain keyword query or invalid handle
            ExtractionError: Profile could not be listed
        """
        term = query.strip()
        if not term.startswith('@'):
            raise ValidationError(KEYWORD_ONLY_MESSAGE)
        username = ensure_username(term)

        logger.info(f"[SEARCH] Listing {limit} video(s) of @{username}")
        try:
            documents = await self.extractor.fetch_feed(f"https://www.tiktok.com/@{username}", limit)
        except ExtractionError as e:
            raise ExtractionError(
                f"Could not fetch videos of @{username}. Check that the user exists.",
                diagnostics=e.diagnostics,
                exit_code=e.exit_code,
            ) from e

        results = [feed_item(document, username) for document in documents]
        logger.info(f"[SEARCH] ✓ {len(results)} video(s) for @{username}")
        return {"results": results, "query": query, "totalResults": len(results)}

    async def _search_upstream(self, keyword: str, search_type: str, page: int) -> list[dict[str, Any]]:
        cookie = self._cookie()
        try:
            return await self.api_client.search(keyword, search_type, cookie, page=page)
        except TikTokApiError as e:
            message = str(e)
            logger.error(f"[SEARCH] ✗ Keyword search failed: {message}")
            raise UpstreamAuthError(UPSTREAM_AUTH_MESSAGES.get(message, message), status=400) from e

    async def keyword_search(self, keyword: str, search_type: str = "video", page: int = 1) -> dict[str, Any]:
        """
        Cookie-authenticated keyword search.

        Raises:
            UpstreamAuthError: 500 if the cookie is missing or too short,
                400 if TikTok rejects it
        """
        logger.info(f"[SEARCH] Keyword search '{keyword}' (type: {search_type}, page: {page})")
        results = (await self._search_upstream(keyword, search_type, page))[:MAX_KEYWORD_RESULTS]
        logger.info(f"[SEARCH] ✓ {len(results)} result(s) for '{keyword}'")
        return {
            "status": "success",
            "keyword": keyword,
            "type": search_type,
            "page": page,
            "totalResults": len(results),
            "results": results,
        }

    @asynccontextmanager
    async def search_and_pick(self, keyword: str,
                              rng: Optional[random.Random] = None) -> AsyncIterator[DownloadArtifact]:
        """
        Search videos by keyword, download a random hit.

        Yields:
            DownloadArtifact whose headers describe the chosen video
        """
        if not keyword or not keyword.strip():
            raise ValidationError("A keyword is required")

        videos = [
            video for video in await self._search_upstream(keyword, "video", 1)
            if video.get('id') and (video.get('author') or {}).get('uniqueId')
        ]
        if not videos:
            raise NotFoundError(f'No videos found for "{keyword}"')

        index = (rng or random).randrange(len(videos))
        chosen = videos[index]
        author = chosen['author']
        video_url = build_video_url(author['uniqueId'], str(chosen['id']))
        logger.info(f"[SEARCH] Picked #{index + 1} of {len(videos)}: {video_url}")

        metadata = await self.extractor.fetch_metadata(video_url)

        workspace = TempWorkspace(self.settings.ensure_temp_dir())
        try:
            output = workspace.new_path("search", ".mp4")
            await self.extractor.download_video(video_url, output)

            safe_keyword = ''.join(c if c.isascii() and c.isalnum() else '_' for c in keyword)
            headers = {
                'X-TikTok-Video-ID': _header_value(metadata.get('id') or chosen['id']),
                'X-TikTok-Author': _header_value(metadata.get('uploader') or author.get('nickname')),
                'X-TikTok-Username': _header_value(metadata.get('uploader_id') or author['uniqueId']),
                'X-TikTok-Description': quote(metadata.get('description') or chosen.get('desc') or '', safe=''),
                'X-TikTok-Likes': _header_value(metadata.get('like_count') or 0),
                'X-TikTok-Views': _header_value(metadata.get('view_count') or 0),
                'X-TikTok-Comments': _header_value(metadata.get('comment_count') or 0),
                'X-TikTok-Shares': _header_value(metadata.get('repost_count') or 0),
                'X-TikTok-Duration': _header_value(metadata.get('duration') or 0),
                'X-TikTok-Upload-Date': _header_value(metadata.get('upload_date')),
                'X-TikTok-URL': video_url,
                'X-TikTok-Search-Keyword': quote(keyword, safe=''),
                'X-TikTok-Search-Total-Results': str(len(videos)),
                'X-TikTok-Search-Selected-Index': str(index + 1),
            }
            yield DownloadArtifact(
                path=output,
                content_type="video/mp4",
                filename=f"tiktok_{safe_keyword}_{chosen['id']}.mp4",
                headers=headers,
            )
        finally:
            workspace.cleanup()

    async def user_stats(self, username: str) -> dict[str, Any]:
        """Profile stats derived from the user's most recent item."""
        username = ensure_username(username)
        logger.info(f"[SEARCH] Stats for @{username}")

        documents = await self.extractor.fetch_feed(f"https://www.tiktok.com/@{username}", 1)
        if not documents:
            raise NotFoundError(f"No videos found for @{username}")
        return profile_stats(username, documents[0])


__all__ = ['SearchService', 'MAX_KEYWORD_RESULTS']
