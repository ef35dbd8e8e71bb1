"""
TikTok URL helpers: validation, normalization, short-link expansion and
identifier extraction.
"""

import asyncio
import logging
import re
from typing import Iterable, Optional
from urllib.parse import urlparse

import aiohttp

from media_pipeline.config import DEFAULT_SHORT_LINK_HOSTS
from media_pipeline.errors import InvalidRequestError, NotFoundError, ValidationError
from media_pipeline.models import NormalizedUrl

logger = logging.getLogger(__name__)

MIN_MUSIC_ID_LENGTH = 15

# Tried in order, first match wins
MUSIC_ID_PATTERNS = (
    re.compile(r'share_music_id=(\d+)'),
    re.compile(r'/music/[^/]*-(\d{15,})'),
    re.compile(r'/music/.*?(\d{15,})'),
)

USERNAME_PATTERN = re.compile(r'^[a-zA-Z0-9._-]+$')

TIKTOK_HOST = 'tiktok.com'

SHORT_LINK_TIMEOUT = aiohttp.ClientTimeout(total=10)


def is_tiktok_url(url: str) -> bool:
    """Return True for http(s) URLs on tiktok.com or one of its subdomains."""
    if not url or not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    if parsed.scheme not in ('http', 'https'):
        return False
    host = (parsed.hostname or '').lower()
    return host == TIKTOK_HOST or host.endswith('.' + TIKTOK_HOST)


def ensure_tiktok_url(url: Optional[str]) -> str:
    """
    Validate an incoming URL.

    Raises:
        ValidationError: If the URL is empty or not a TikTok URL
    """
    if not url:
        raise ValidationError("URL is required")
    if not is_tiktok_url(url):
        raise ValidationError("Please enter a valid TikTok URL")
    return url.strip()


def normalize(raw_url: str) -> str:
    """
    Strip query/fragment and rewrite /photo/ to /video/.

    yt-dlp only understands /video/ paths, slideshow posts are reachable
    through the same id.
    """
    clean = raw_url.split('?', 1)[0].split('#', 1)[0]
    return clean.replace('/photo/', '/video/')


def is_short_link(url: str, short_link_hosts: Iterable[str] = DEFAULT_SHORT_LINK_HOSTS) -> bool:
    try:
        host = (urlparse(url).hostname or '').lower()
    except ValueError:
        return False
    return host in set(short_link_hosts)


async def expand_short_link(
    url: str,
    session: aiohttp.ClientSession,
    short_link_hosts: Iterable[str] = DEFAULT_SHORT_LINK_HOSTS,
) -> str:
    """
    Follow redirects of vm./vt. short links to the final URL.

    Only headers are fetched. On network errors the original URL is returned
    so later steps can still try (and fail with a clearer error).

    Args:
        url: URL as sent by the client
        session: Shared HTTP session
        short_link_hosts: Hosts treated as short-link domains

    Returns:
        Expanded URL, or the input unchanged
    """
    if not is_short_link(url, short_link_hosts):
        return url

    try:
        async with session.head(url, allow_redirects=True, timeout=SHORT_LINK_TIMEOUT) as response:
            expanded = str(response.url)
        logger.info(f"[URL] Expanded short URL: {url} -> {expanded}")
        return expanded
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.warning(f"[URL] Could not expand short URL {url}: {type(e).__name__}: {e}")
        return url


async def resolve_url(
    raw_url: str,
    session: aiohttp.ClientSession,
    short_link_hosts: Iterable[str] = DEFAULT_SHORT_LINK_HOSTS,
) -> NormalizedUrl:
    """Expand (if needed) and normalize a client URL."""
    expanded = await expand_short_link(raw_url, session, short_link_hosts)
    return NormalizedUrl(
        canonical_url=normalize(expanded),
        was_short_link=expanded != raw_url,
        expanded_url=expanded,
    )


def extract_music_id(url: str) -> str:
    """
    Extract the numeric audio-track id from a /music/ URL.

    Raises:
        InvalidRequestError: If no id of at least 15 digits is present
    """
    music_id = ''
    for pattern in MUSIC_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            music_id = match.group(1)
            break

    if len(music_id) < MIN_MUSIC_ID_LENGTH:
        raise InvalidRequestError(
            "Could not extract the audio id from this URL. Check that the URL is valid."
        )
    return music_id


def build_video_url(unique_id: str, video_id: str) -> str:
    return f"https://www.tiktok.com/@{unique_id}/video/{video_id}"


def ensure_username(username: Optional[str]) -> str:
    """
    Strip a leading @ and validate a TikTok handle.

    Raises:
        ValidationError: If the handle contains unsupported characters
    """
    name = (username or '').strip()
    if name.startswith('@'):
        name = name[1:]
    if not name or not USERNAME_PATTERN.match(name):
        raise ValidationError(
            "Invalid username. Only letters, numbers, dots, hyphens and underscores are allowed."
        )
    return name


async def redirect_music_url(url: str, api_client, count: int = 5) -> str:
    """
    Swap an audio-track URL for the first video that uses the track.

    yt-dlp cannot process a bare /music/ page, so the post behind it is
    looked up through the TikTok API wrapper instead.

    Args:
        url: Expanded /music/ URL
        api_client: Client exposing videos_by_music(music_id, count)
        count: Number of candidates to request

    Returns:
        Canonical video URL of the first candidate

    Raises:
        InvalidRequestError: If the URL has no usable audio id
        NotFoundError: If no video uses the track
    """
    music_id = extract_music_id(url)
    logger.info(f"[URL] Looking up videos for music id {music_id}")

    candidates = await api_client.videos_by_music(music_id, count=count)
    if not candidates:
        raise NotFoundError("No videos found using this audio")

    first = candidates[0]
    video_url = build_video_url(first.unique_id, first.id)
    logger.info(f"[URL] ✓ Music URL redirected to {video_url}")
    return video_url
