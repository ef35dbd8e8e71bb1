"""
Download orchestration.

Turns a (requested kind, content type) pair into a file on disk that the
HTTP layer can stream. Every file created for a request lives in a
TempWorkspace and is removed when the download context exits, whether the
stream finished, failed or the client went away.
"""

import asyncio
import logging
import secrets
import time
import zipfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Sequence

import aiofiles
import aiohttp

from media_pipeline.classifier import classify
from media_pipeline.config import Settings
from media_pipeline.errors import ExtractionError, MediaError, NotFoundError, ValidationError
from media_pipeline.extractor import YtDlp
from media_pipeline.models import ContentType, DownloadArtifact, SlideshowImage
from media_pipeline.services import BaseService
from media_pipeline.services.tiktok.api import BROWSER_USER_AGENT
from media_pipeline.urls import ensure_tiktok_url, redirect_music_url, resolve_url

logger = logging.getLogger(__name__)

DOWNLOAD_KINDS = ("video", "audio", "image")

IMAGE_TIMEOUT = aiohttp.ClientTimeout(total=30)
IMAGE_CHUNK_SIZE = 64 * 1024
DEFAULT_IMAGE_CONTENT_TYPE = "image/jpeg"

IMAGE_HEADERS = {
    'User-Agent': BROWSER_USER_AGENT,
    'Referer': 'https://www.tiktok.com/',
}


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def unique_name(prefix: str) -> str:
    """Request-unique file stem: <prefix>-<ms timestamp>-<random hex>."""
    return f"{prefix}-{timestamp_ms()}-{secrets.token_hex(4)}"


class TempWorkspace:
    """
    Tracks temp files created for one request.

    Args:
        root: Directory the files are created in
    """

    def __init__(self, root: Path):
        self.root = root
        self.paths: list[Path] = []

    def new_path(self, prefix: str, suffix: str = "") -> Path:
        path = self.root / f"{unique_name(prefix)}{suffix}"
        self.paths.append(path)
        return path

    def track(self, path: Path) -> Path:
        self.paths.append(path)
        return path

    def cleanup(self) -> None:
        """Delete every tracked file. Failures are logged, never raised."""
        for path in self.paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"[CLEANUP] ✗ Could not delete {path}: {type(e).__name__}: {e}")
        logger.debug(f"[CLEANUP] Removed {len(self.paths)} temp path(s)")
        self.paths.clear()


def build_zip(archive: Path, members: Sequence[tuple[Path, str]]) -> Path:
    """
    Write members into a ZIP archive with maximum compression.

    Args:
        archive: Output archive path
        members: (file on disk, name inside the archive) pairs, in archive order
    """
    with zipfile.ZipFile(archive, 'w', compression=zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
        for path, arcname in members:
            zf.write(path, arcname=arcname)
    return archive


async def fetch_image(session: aiohttp.ClientSession, url: str, dest: Path) -> str:
    """
    Download one image to disk.

    Returns:
        Content type reported by the image host (image/jpeg if missing)

    Raises:
        MediaError: If the image host fails
    """
    try:
        async with session.get(url, headers=IMAGE_HEADERS, timeout=IMAGE_TIMEOUT) as response:
            response.raise_for_status()
            content_type = response.headers.get('Content-Type') or DEFAULT_IMAGE_CONTENT_TYPE
            async with aiofiles.open(dest, 'wb') as f:
                async for chunk in response.content.iter_chunked(IMAGE_CHUNK_SIZE):
                    await f.write(chunk)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.error(f"[DOWNLOAD] ✗ Image fetch failed for {url[:100]}: {type(e).__name__}: {e}")
        raise MediaError("Failed to download image") from e
    return content_type.split(';', 1)[0].strip()


class DownloadOrchestrator:
    """
    Produces download artifacts for the /download endpoint.

    Args:
        settings: Service settings (temp dir, short link hosts)
        extractor: yt-dlp wrapper
        image_service: Slideshow image resolver
        session: Shared HTTP session
        api_client: TikTok API client used to redirect /music/ URLs
    """

    def __init__(self, settings: Settings, extractor: YtDlp, image_service: BaseService,
                 session: aiohttp.ClientSession, api_client=None):
        self.settings = settings
        self.extractor = extractor
        self.image_service = image_service
        self.session = session
        self.api_client = api_client

    @asynccontextmanager
    async def download(self, kind: str, url: Optional[str],
                       image_index: Optional[int] = None) -> AsyncIterator[DownloadArtifact]:
        """
        Produce the requested file and delete it (and every helper file) on exit.

        Args:
            kind: "video", "audio" or "image"
            url: TikTok URL as sent by the client
            image_index: Zero-based image to fetch (image kind only)

        Yields:
            DownloadArtifact ready to stream

        Raises:
            ValidationError: Unknown kind or bad URL
            NotFoundError: No images, or index outside the image list
            ExtractionError: yt-dlp failed
        """
        if kind not in DOWNLOAD_KINDS:
            raise ValidationError("Invalid download type. Use video, audio or image.")
        url = ensure_tiktok_url(url)

        workspace = TempWorkspace(self.settings.ensure_temp_dir())
        try:
            artifact = await self._produce(kind, url, image_index, workspace)
            logger.info(f"[DOWNLOAD] ✓ Ready: {artifact.filename} ({artifact.content_type})")
            yield artifact
        finally:
            workspace.cleanup()

    async def _produce(self, kind: str, url: str, image_index: Optional[int],
                       workspace: TempWorkspace) -> DownloadArtifact:
        resolved = await resolve_url(url, self.session, self.settings.short_link_hosts)
        target = resolved.canonical_url
        if '/music/' in resolved.expanded_url and self.api_client is not None:
            target = await redirect_music_url(resolved.expanded_url, self.api_client)

        logger.info(f"[DOWNLOAD] Kind: {kind}, URL: {target}")

        if kind == "audio":
            return await self._audio(target, workspace)
        if kind == "image":
            return await self._images(target, image_index, workspace)

        try:
            metadata = await self.extractor.fetch_metadata(target)
        except ExtractionError as e:
            # The URL path alone still tells a /photo/ post from a video
            logger.warning(f"[DOWNLOAD] Metadata unavailable, classifying by URL: {e.message}")
            metadata = {}
        content_type = classify(resolved.expanded_url, metadata)
        logger.info(f"[DOWNLOAD] Content type: {content_type.value}")
        if content_type is ContentType.SLIDESHOW:
            return await self._slideshow_video(target, workspace)
        return await self._video(target, content_type, workspace)

    async def _video(self, url: str, content_type: ContentType, workspace: TempWorkspace) -> DownloadArtifact:
        output = workspace.new_path("video", ".mp4")
        await self.extractor.download_video(url, output)
        return DownloadArtifact(
            path=output,
            content_type="video/mp4",
            filename=f"tiktok-{content_type.value}-{timestamp_ms()}.mp4",
        )

    async def _slideshow_video(self, url: str, workspace: TempWorkspace) -> DownloadArtifact:
        output = workspace.new_path("slideshow", ".mp4")
        await self.extractor.download_slideshow_video(url, output)
        return DownloadArtifact(
            path=output,
            content_type="video/mp4",
            filename=f"tiktok-slideshow-video-{timestamp_ms()}.mp4",
        )

    async def _audio(self, url: str, workspace: TempWorkspace) -> DownloadArtifact:
        stem = workspace.new_path("audio")
        # yt-dlp may leave the pre-conversion file next to the mp3
        for leftover in ('.m4a', '.mp4', '.webm'):
            workspace.track(stem.with_name(stem.name + leftover))
        output = workspace.track(await self.extractor.download_audio(url, stem))
        return DownloadArtifact(
            path=output,
            content_type="audio/mpeg",
            filename=f"tiktok-audio-{timestamp_ms()}.mp3",
        )

    async def _resolve_images(self, url: str) -> list[SlideshowImage]:
        images = await self.image_service.resolve_images(url, self.session)
        if not images:
            raise NotFoundError("No images found for this post")
        return images

    async def _images(self, url: str, image_index: Optional[int], workspace: TempWorkspace) -> DownloadArtifact:
        images = await self._resolve_images(url)

        if image_index is not None:
            if not 0 <= image_index < len(images):
                raise NotFoundError(f"Image index {image_index} is out of range, this post has {len(images)} image(s)")
            dest = workspace.new_path("image", ".jpg")
            content_type = await fetch_image(self.session, images[image_index].url, dest)
            return DownloadArtifact(
                path=dest,
                content_type=content_type,
                filename=f"tiktok-slideshow-image-{image_index + 1}.jpg",
            )

        logger.info(f"[DOWNLOAD] Fetching {len(images)} image(s) for archive")
        members = []
        for i, image in enumerate(images):
            dest = workspace.new_path(f"image-{i + 1}", ".jpg")
            await fetch_image(self.session, image.url, dest)
            members.append((dest, f"image-{i + 1}.jpg"))

        archive = workspace.new_path("images", ".zip")
        await asyncio.to_thread(build_zip, archive, members)
        return DownloadArtifact(
            path=archive,
            content_type="application/zip",
            filename="tiktok-slideshow-images.zip",
        )


__all__ = [
    'DOWNLOAD_KINDS',
    'DownloadOrchestrator',
    'TempWorkspace',
    'build_zip',
    'fetch_image',
    'unique_name',
]
