"""
Info pipeline handlers.

A POST /api/tiktok/info request runs through:

    ExpandUrlHandler -> AudioRedirectHandler -> FetchMetadataHandler
    -> ClassifyHandler -> ResolveImagesHandler -> AssembleHandler

Handlers talk to each other only through ctx.data.
"""

import logging
from dataclasses import dataclass

import aiohttp

from pipeline import MediaPipeline, PipelineContext, PipelineHandler
from media_pipeline.assembler import assemble
from media_pipeline.classifier import classify
from media_pipeline.config import Settings
from media_pipeline.extractor import YtDlp
from media_pipeline.models import ContentType
from media_pipeline.services import BaseService
from media_pipeline.services.tiktok.api import TikTokApiClient
from media_pipeline.urls import ensure_tiktok_url, redirect_music_url, resolve_url

logger = logging.getLogger(__name__)


@dataclass
class MediaToolkit:
    """Collaborators shared by the info handlers."""
    settings: Settings
    session: aiohttp.ClientSession
    extractor: YtDlp
    api_client: TikTokApiClient
    image_service: BaseService


class ExpandUrlHandler(PipelineHandler):
    """Validate, expand short links and normalize."""

    def __init__(self, toolkit: MediaToolkit):
        super().__init__("ExpandUrlHandler")
        self.toolkit = toolkit

    async def process(self, ctx: PipelineContext) -> None:
        url = ensure_tiktok_url(ctx.request_url)
        resolved = await resolve_url(url, self.toolkit.session, self.toolkit.settings.short_link_hosts)
        logger.info(f"[INFO] Canonical URL: {resolved.canonical_url} (short link: {resolved.was_short_link})")

        ctx.data['expanded_url'] = resolved.expanded_url
        ctx.data['url'] = resolved.canonical_url


class AudioRedirectHandler(PipelineHandler):
    """Replace a /music/ URL with the first video that uses the track."""

    def __init__(self, toolkit: MediaToolkit):
        super().__init__("AudioRedirectHandler")
        self.toolkit = toolkit

    async def should_process(self, ctx: PipelineContext) -> bool:
        return '/music/' in ctx.data.get('expanded_url', '')

    async def process(self, ctx: PipelineContext) -> None:
        ctx.data['url'] = await redirect_music_url(ctx.data['expanded_url'], self.toolkit.api_client)


class FetchMetadataHandler(PipelineHandler):

    def __init__(self, toolkit: MediaToolkit):
        super().__init__("FetchMetadataHandler")
        self.toolkit = toolkit

    async def process(self, ctx: PipelineContext) -> None:
        ctx.data['metadata'] = await self.toolkit.extractor.fetch_metadata(ctx.url)


class ClassifyHandler(PipelineHandler):
    """Classify on the caller's URL, before /photo/ was rewritten."""

    async def process(self, ctx: PipelineContext) -> None:
        content_type = classify(ctx.data['expanded_url'], ctx.data['metadata'])
        logger.info(f"[INFO] Content type: {content_type.value}")
        ctx.data['content_type'] = content_type


class ResolveImagesHandler(PipelineHandler):

    def __init__(self, toolkit: MediaToolkit):
        super().__init__("ResolveImagesHandler")
        self.toolkit = toolkit

    async def should_process(self, ctx: PipelineContext) -> bool:
        return ctx.data.get('content_type') is ContentType.SLIDESHOW

    async def process(self, ctx: PipelineContext) -> None:
        # Empty is a valid outcome here, only an explicit image download 404s
        ctx.data['images'] = await self.toolkit.image_service.resolve_images(ctx.url, self.toolkit.session)


class AssembleHandler(PipelineHandler):

    async def process(self, ctx: PipelineContext) -> None:
        ctx.data['response'] = assemble(
            ctx.data['metadata'],
            ctx.data['content_type'],
            ctx.data.get('images', []),
            ctx.url,
        )


def build_info_pipeline(toolkit: MediaToolkit) -> MediaPipeline:
    """Wire the info handlers in order."""
    pipeline = MediaPipeline()
    pipeline.add_handler(ExpandUrlHandler(toolkit))
    pipeline.add_handler(AudioRedirectHandler(toolkit))
    pipeline.add_handler(FetchMetadataHandler(toolkit))
    pipeline.add_handler(ClassifyHandler())
    pipeline.add_handler(ResolveImagesHandler(toolkit))
    pipeline.add_handler(AssembleHandler())
    return pipeline


async def get_info(pipeline: MediaPipeline, url: str) -> dict:
    """Run the info pipeline and return the NormalizedMedia response."""
    ctx = await pipeline.run(url)
    return ctx.data['response']


__all__ = [
    'MediaToolkit',
    'ExpandUrlHandler',
    'AudioRedirectHandler',
    'FetchMetadataHandler',
    'ClassifyHandler',
    'ResolveImagesHandler',
    'AssembleHandler',
    'build_info_pipeline',
    'get_info',
]
