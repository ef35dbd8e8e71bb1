"""
In-memory stand-ins for the external collaborators (yt-dlp, HTTP, TikTok API).
"""

from pathlib import Path
from typing import Any, Callable, Optional

import aiohttp

from media_pipeline.errors import ExtractionError
from media_pipeline.models import SlideshowImage
from media_pipeline.services.tiktok.api import MusicVideo, TikTokApiError


class FakeExtractor:
    """
    Records calls and writes small placeholder files instead of running yt-dlp.

    Args:
        metadata: URL -> metadata document, or an exception to raise
        feed: Documents returned by fetch_feed
        fail_downloads: Raise ExtractionError from every download call
        batch_outputs: Number of files download_batch produces (default: one per URL)
    """

    def __init__(self, metadata: Optional[dict] = None, feed: Optional[list] = None,
                 fail_downloads: bool = False, batch_outputs: Optional[int] = None):
        self.metadata = metadata or {}
        self.feed = feed or []
        self.fail_downloads = fail_downloads
        self.batch_outputs = batch_outputs
        self.calls: list[tuple] = []

    def _check_download(self):
        if self.fail_downloads:
            raise ExtractionError("Failed to download video", diagnostics="ERROR: boom", exit_code=1)

    async def fetch_metadata(self, url: str) -> dict[str, Any]:
        self.calls.append(('fetch_metadata', url))
        value = self.metadata.get(url)
        if value is None:
            raise ExtractionError("Failed to extract metadata", diagnostics=f"no fixture for {url}")
        if isinstance(value, Exception):
            raise value
        return value

    async def fetch_feed(self, url: str, limit: int) -> list[dict[str, Any]]:
        self.calls.append(('fetch_feed', url, limit))
        return self.feed[:limit]

    async def download_video(self, url: str, output: Path) -> Path:
        self.calls.append(('download_video', url, output))
        self._check_download()
        output.write_bytes(b'video:' + url.encode())
        return output

    async def download_slideshow_video(self, url: str, output: Path) -> Path:
        self.calls.append(('download_slideshow_video', url, output))
        self._check_download()
        output.write_bytes(b'slideshow:' + url.encode())
        return output

    async def download_audio(self, url: str, output_stem: Path) -> Path:
        self.calls.append(('download_audio', url, output_stem))
        self._check_download()
        output = output_stem.with_name(output_stem.name + '.mp3')
        output.write_bytes(b'audio:' + url.encode())
        return output

    async def download_batch(self, batch_file: Path, output_pattern: str) -> None:
        urls = batch_file.read_text(encoding='utf-8').split()
        self.calls.append(('download_batch', urls, output_pattern))
        self._check_download()
        count = len(urls) if self.batch_outputs is None else self.batch_outputs
        for i in range(1, count + 1):
            Path(output_pattern.replace('%(autonumber)s', f'{i:05d}')).write_bytes(f'batch-{i}'.encode())

    async def download_feed(self, url: str, count: int, output_pattern: str) -> None:
        self.calls.append(('download_feed', url, count, output_pattern))
        self._check_download()
        for i in range(1, count + 1):
            Path(output_pattern.replace('%(autonumber)s', f'{i:05d}')).write_bytes(f'feed-{i}'.encode())

    def called(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]


class FakeImageService:
    """Slideshow resolver returning a fixed image list."""

    def __init__(self, images: Optional[list[SlideshowImage]] = None):
        self.images = images or []
        self.providers: list = []
        self.calls: list[str] = []

    async def resolve_images(self, url: str, session) -> list[SlideshowImage]:
        self.calls.append(url)
        return list(self.images)


class FakeApiClient:
    """TikTok API client with canned answers."""

    def __init__(self, music_videos: Optional[list[MusicVideo]] = None,
                 search_results: Optional[list[dict]] = None,
                 search_error: Optional[str] = None,
                 downloader_result: Optional[dict] = None):
        self.music_videos = music_videos or []
        self.search_results = search_results or []
        self.search_error = search_error
        self.downloader_result = downloader_result or {}
        self.calls: list[tuple] = []

    async def videos_by_music(self, music_id: str, count: int = 5) -> list[MusicVideo]:
        self.calls.append(('videos_by_music', music_id, count))
        return list(self.music_videos)

    async def search(self, keyword: str, search_type: str, cookie: str, page: int = 1) -> list[dict]:
        self.calls.append(('search', keyword, search_type, page))
        if self.search_error:
            raise TikTokApiError(self.search_error)
        return list(self.search_results)

    async def downloader(self, url: str) -> dict:
        self.calls.append(('downloader', url))
        return self.downloader_result


class FakeContent:
    def __init__(self, body: bytes):
        self.body = body

    async def iter_chunked(self, size: int):
        for i in range(0, len(self.body), size):
            yield self.body[i:i + size]


class FakeResponse:
    """Minimal aiohttp response: status, headers, url, text() and content."""

    def __init__(self, body: bytes = b'', status: int = 200, headers: Optional[dict] = None,
                 url: str = '', error: Optional[Exception] = None):
        self.body = body
        self.status = status
        self.headers = headers or {}
        self.url = url
        self.error = error
        self.content = FakeContent(body)

    async def __aenter__(self):
        if self.error:
            raise self.error
        return self

    async def __aexit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status >= 400:
            raise aiohttp.ClientError(f"HTTP {self.status}")

    async def text(self) -> str:
        return self.body.decode('utf-8')


class FakeSession:
    """
    Routes get/head calls to canned responses.

    Args:
        responses: URL -> FakeResponse, or a callable(url) -> FakeResponse
    """

    def __init__(self, responses: Optional[dict] = None,
                 fallback: Optional[Callable[[str], FakeResponse]] = None):
        self.responses = responses or {}
        self.fallback = fallback
        self.requests: list[tuple[str, str]] = []

    def _respond(self, method: str, url: str) -> FakeResponse:
        self.requests.append((method, url))
        if url in self.responses:
            return self.responses[url]
        if self.fallback:
            return self.fallback(url)
        return FakeResponse(status=404, url=url)

    def get(self, url, **kwargs) -> FakeResponse:
        return self._respond('GET', url)

    def head(self, url, **kwargs) -> FakeResponse:
        return self._respond('HEAD', url)
