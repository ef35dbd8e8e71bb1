#!/usr/bin/env python3
"""
TikTok media service - HTTP API for TikTok metadata and downloads
Serves post info, video/audio/slideshow downloads, batch archives, search and chat
"""

import logging
from typing import Optional

import aiohttp
from aiohttp import web
from dotenv import load_dotenv

from chat_pipeline import ChatHistory, ChatHub
from media_pipeline.batch import BatchOrchestrator
from media_pipeline.config import Settings
from media_pipeline.downloader import DownloadOrchestrator
from media_pipeline.extractor import YtDlp
from media_pipeline.handler import MediaToolkit, build_info_pipeline
from media_pipeline.search import SearchService
from media_pipeline.services import BaseService
from media_pipeline.services.tiktok import TikTokService
from media_pipeline.services.tiktok.api import TikTokApiClient
from routes import (
    BATCH_KEY,
    CHAT_HUB_KEY,
    DOWNLOADER_KEY,
    INFO_PIPELINE_KEY,
    SEARCH_KEY,
    error_middleware,
    routes,
)

logger = logging.getLogger(__name__)

LOG_LEVEL_MAP = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
    'CRITICAL': logging.CRITICAL
}

SETTINGS_KEY = web.AppKey("settings", Settings)
SESSION_KEY = web.AppKey("session", aiohttp.ClientSession)

CHAT_HISTORY_SIZE = 100


def configure_logging(level_name: str) -> None:
    """Configure root logging once, level from LOG_LEVEL."""
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=LOG_LEVEL_MAP.get(level_name.upper(), logging.INFO)
    )

    # Suppress verbose logging from external libraries
    logging.getLogger('aiohttp.access').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)


async def handle_root(request: web.Request) -> web.Response:
    """Root endpoint - simple status check."""
    return web.Response(text="TikTok media service is running!\nAPI available under /api/tiktok/.", status=200)


async def handle_health(request: web.Request) -> web.Response:
    """Health check endpoint - detailed status."""
    settings = request.app[SETTINGS_KEY]
    image_service = request.app[DOWNLOADER_KEY].image_service
    health_data = {
        "status": "healthy",
        "service": "tiktok-media-service",
        "extractor": settings.ytdlp_binary,
        "keyword_search": bool(settings.tiktok_cookie),
        "image_providers": [provider.name for provider in image_service.providers],
    }
    return web.json_response(health_data, status=200)


def create_app(
    settings: Optional[Settings] = None,
    *,
    extractor: Optional[YtDlp] = None,
    api_client: Optional[TikTokApiClient] = None,
    image_service: Optional[BaseService] = None,
) -> web.Application:
    """
    Build the aiohttp application.

    Collaborators that need the shared HTTP session are created on startup.
    Passing them in replaces the real ones (tests use this).

    Args:
        settings: Service settings (default: from environment)
        extractor: yt-dlp wrapper
        api_client: TikTok API client
        image_service: Slideshow image resolver

    Returns:
        Configured web.Application
    """
    settings = settings or Settings.from_env()
    extractor = extractor or YtDlp(settings.ytdlp_binary, timeout=settings.extractor_timeout)

    app = web.Application(middlewares=[error_middleware])
    app[SETTINGS_KEY] = settings
    app[CHAT_HUB_KEY] = ChatHub(ChatHistory(max_messages=CHAT_HISTORY_SIZE))

    async def media_context(app: web.Application):
        logger.info("[MAIN] Starting media services...")
        settings.ensure_temp_dir()

        async with aiohttp.ClientSession() as session:
            client = api_client or TikTokApiClient(session, settings.tikwm_api_key, settings.tikwm_api_host)
            images = image_service or TikTokService.from_env(client)

            toolkit = MediaToolkit(
                settings=settings,
                session=session,
                extractor=extractor,
                api_client=client,
                image_service=images,
            )
            app[SESSION_KEY] = session
            app[INFO_PIPELINE_KEY] = build_info_pipeline(toolkit)
            app[DOWNLOADER_KEY] = DownloadOrchestrator(settings, extractor, images, session, client)
            app[BATCH_KEY] = BatchOrchestrator(settings, extractor, session)
            app[SEARCH_KEY] = SearchService(settings, extractor, client)

            logger.info(f"[MAIN] ✓ Media services ready ({len(images.providers)} image provider(s))")
            yield
            logger.info("[MAIN] Media services shutting down...")

    app.cleanup_ctx.append(media_context)
    app.add_routes(routes)

    if settings.enable_health_check:
        app.router.add_get('/', handle_root)
        app.router.add_get('/health', handle_health)
        logger.info("[MAIN] Health check endpoints enabled")
    else:
        logger.info("[MAIN] Health check endpoints disabled (set ENABLE_HEALTH_CHECK=true to enable)")

    return app


def main() -> None:
    """Main entry point - load .env, configure logging, serve."""
    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    logger.info(f"Starting TikTok media service on http://{settings.host}:{settings.port}")
    web.run_app(create_app(settings), host=settings.host, port=settings.port, print=None)


if __name__ == '__main__':
    main()
