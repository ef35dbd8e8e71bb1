"""
Batch orchestration: metadata for many URLs, and one-shot ZIP downloads.

The metadata batch calls yt-dlp once per URL so every failure stays isolated.
The download batch hands the whole list to a single yt-dlp invocation, a
systemic failure of that call aborts the whole batch.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Sequence

import aiofiles
import aiohttp

from media_pipeline.assembler import summarize
from media_pipeline.config import Settings
from media_pipeline.downloader import TempWorkspace, build_zip, unique_name
from media_pipeline.errors import MediaError, NotFoundError, ValidationError
from media_pipeline.extractor import YtDlp
from media_pipeline.models import BatchItem, BatchResult, DownloadArtifact
from media_pipeline.urls import ensure_tiktok_url, ensure_username, resolve_url

logger = logging.getLogger(__name__)

MAX_DOWNLOAD_BATCH = 20
MAX_METADATA_BATCH = 50
LATEST_VIDEO_COUNT = 5


def check_url_list(urls: Any, limit: int) -> list[str]:
    """
    Validate a batch URL list before any external call.

    Raises:
        ValidationError: Not a list, empty, non-string or non-TikTok entries, or over limit
    """
    if not isinstance(urls, list) or not urls:
        raise ValidationError("Please provide an array of URLs")
    if not all(isinstance(url, str) for url in urls):
        raise ValidationError("Every URL must be a string")
    if len(urls) > limit:
        raise ValidationError(f"Maximum {limit} URLs allowed per batch")
    checked = []
    for url in urls:
        try:
            checked.append(ensure_tiktok_url(url))
        except ValidationError:
            raise ValidationError(f"Invalid TikTok URL in batch: {url[:100]}") from None
    return checked


class BatchOrchestrator:
    """
    Runs the batch endpoints.

    Args:
        settings: Service settings (temp dir, short link hosts)
        extractor: yt-dlp wrapper
        session: Shared HTTP session used to expand short links
    """

    def __init__(self, settings: Settings, extractor: YtDlp, session: aiohttp.ClientSession):
        self.settings = settings
        self.extractor = extractor
        self.session = session

    async def _target(self, url: str) -> str:
        resolved = await resolve_url(url, self.session, self.settings.short_link_hosts)
        return resolved.canonical_url

    async def metadata_batch(self, urls: Any) -> BatchResult:
        """
        Fetch metadata for up to 50 URLs, one at a time.

        Returns:
            BatchResult with one item per input URL, in input order
        """
        urls = check_url_list(urls, MAX_METADATA_BATCH)
        logger.info(f"[BATCH] Metadata batch of {len(urls)} URL(s)")

        result = BatchResult()
        for i, url in enumerate(urls, 1):
            try:
                metadata = await self.extractor.fetch_metadata(await self._target(url))
                result.results.append(BatchItem(success=True, url=url, data=summarize(metadata)))
                logger.info(f"[BATCH] ✓ {i}/{len(urls)}: {url}")
            except MediaError as e:
                logger.warning(f"[BATCH] ✗ {i}/{len(urls)}: {url}: {e.message}")
                result.results.append(BatchItem(success=False, url=url, error=e.message))

        logger.info(f"[BATCH] Done: {result.successful} ok, {result.failed} failed")
        return result

    @asynccontextmanager
    async def download_batch(self, urls: Any) -> AsyncIterator[DownloadArtifact]:
        """
        Download up to 20 videos with one yt-dlp call and yield them as a ZIP.

        Raises:
            ValidationError: Bad URL list
            ExtractionError: The batch invocation failed
            NotFoundError: yt-dlp produced no files
        """
        urls = check_url_list(urls, MAX_DOWNLOAD_BATCH)
        logger.info(f"[BATCH] Download batch of {len(urls)} URL(s)")

        workspace = TempWorkspace(self.settings.ensure_temp_dir())
        try:
            prefix = unique_name("batch")
            list_file = workspace.track(workspace.root / f"{prefix}-urls.txt")
            targets = [await self._target(url) for url in urls]
            async with aiofiles.open(list_file, 'w', encoding='utf-8') as f:
                await f.write('\n'.join(targets) + '\n')

            pattern = str(workspace.root / f"{prefix}-%(autonumber)s.mp4")
            await self.extractor.download_batch(list_file, pattern)

            artifact = await self._archive(
                workspace, f"{prefix}-*.mp4", f"tiktok-batch-{len(urls)}-videos.zip", exclude=list_file)
            yield artifact
        finally:
            workspace.cleanup()

    @asynccontextmanager
    async def download_latest(self, username: str, count: int = LATEST_VIDEO_COUNT) -> AsyncIterator[DownloadArtifact]:
        """Download the latest videos of a profile as a ZIP."""
        username = ensure_username(username)
        logger.info(f"[BATCH] Latest {count} video(s) of @{username}")

        workspace = TempWorkspace(self.settings.ensure_temp_dir())
        try:
            prefix = unique_name(f"latest-{username}")
            pattern = str(workspace.root / f"{prefix}-%(autonumber)s.mp4")
            await self.extractor.download_feed(f"https://www.tiktok.com/@{username}", count, pattern)

            yield await self._archive(workspace, f"{prefix}-*.mp4", f"tiktok-{username}-latest-{count}.zip")
        finally:
            workspace.cleanup()

    async def _archive(self, workspace: TempWorkspace, glob_pattern: str, filename: str,
                       exclude=None) -> DownloadArtifact:
        files = sorted(path for path in workspace.root.glob(glob_pattern) if path != exclude)
        for path in files:
            workspace.track(path)

        if not files:
            raise NotFoundError("No videos could be downloaded")

        logger.info(f"[BATCH] Archiving {len(files)} video(s)")
        members: Sequence[tuple] = [(path, f"video-{i}.mp4") for i, path in enumerate(files, 1)]
        archive = workspace.new_path("batch-archive", ".zip")
        await asyncio.to_thread(build_zip, archive, members)
        return DownloadArtifact(path=archive, content_type="application/zip", filename=filename)


__all__ = [
    'BatchOrchestrator',
    'check_url_list',
    'MAX_DOWNLOAD_BATCH',
    'MAX_METADATA_BATCH',
]
