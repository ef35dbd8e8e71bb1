"""
HTTP routes for the TikTok media service.

Handlers stay thin: they parse the request, call into media_pipeline and
shape the response. Errors are turned into JSON by error_middleware.
"""

import json
import logging
from typing import Any

import aiofiles
import aiofiles.os
from aiohttp import web

from chat_pipeline import ChatHub
from media_pipeline.batch import BatchOrchestrator
from media_pipeline.downloader import DownloadOrchestrator
from media_pipeline.errors import MediaError, ValidationError
from media_pipeline.handler import get_info
from media_pipeline.models import DownloadArtifact
from media_pipeline.schemas import (
    ChatMessageRequest,
    InfoRequest,
    KeywordSearchRequest,
    SearchRequest,
    UrlListRequest,
    parse_body,
)
from media_pipeline.search import SearchService
from pipeline import MediaPipeline

logger = logging.getLogger(__name__)

INFO_PIPELINE_KEY = web.AppKey("info_pipeline", MediaPipeline)
DOWNLOADER_KEY = web.AppKey("downloader", DownloadOrchestrator)
BATCH_KEY = web.AppKey("batch", BatchOrchestrator)
SEARCH_KEY = web.AppKey("search", SearchService)
CHAT_HUB_KEY = web.AppKey("chat_hub", ChatHub)

STREAM_CHUNK_SIZE = 64 * 1024

DEFAULT_ERROR_MESSAGE = "Internal server error"

routes = web.RouteTableDef()


def error_message(message: str):
    """Attach the generic 500 message a route shows for unexpected errors."""
    def decorator(handler):
        handler.error_message = message
        return handler
    return decorator


@web.middleware
async def error_middleware(request: web.Request, handler):
    """
    Map exceptions to JSON error bodies.

    MediaError -> its status and message. Anything unexpected -> 500 with the
    route's generic message, details stay in the logs.
    """
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except MediaError as e:
        level = logging.ERROR if e.status >= 500 else logging.WARNING
        logger.log(level, f"[HTTP] ✗ {request.method} {request.path} -> {e.status}: {e.message}")
        diagnostics = getattr(e, 'diagnostics', '')
        if diagnostics:
            logger.debug(f"[HTTP] Diagnostics: {diagnostics}")
        return web.json_response({"message": e.message}, status=e.status)
    except Exception as e:
        logger.error(f"[HTTP] ✗ {request.method} {request.path}: {type(e).__name__}: {e}", exc_info=True)
        message = getattr(handler, 'error_message', DEFAULT_ERROR_MESSAGE)
        return web.json_response({"message": message}, status=500)


async def read_json(request: web.Request) -> Any:
    try:
        return await request.json()
    except json.JSONDecodeError as e:
        raise ValidationError("Request body must be valid JSON") from e


async def stream_file(request: web.Request, artifact: DownloadArtifact) -> web.StreamResponse:
    """
    Stream an artifact to the client as an attachment.

    A client that disconnects mid-stream is logged, the caller's download
    context still removes the temp files.
    """
    response = web.StreamResponse(headers=artifact.headers)
    response.content_type = artifact.content_type
    response.headers['Content-Disposition'] = f'attachment; filename="{artifact.filename}"'
    response.content_length = (await aiofiles.os.stat(artifact.path)).st_size

    await response.prepare(request)
    sent = 0
    try:
        async with aiofiles.open(artifact.path, 'rb') as f:
            while True:
                chunk = await f.read(STREAM_CHUNK_SIZE)
                if not chunk:
                    break
                await response.write(chunk)
                sent += len(chunk)
        await response.write_eof()
    except ConnectionResetError:
        logger.warning(f"[HTTP] Client disconnected after {sent} bytes of {artifact.filename}")
        return response

    logger.info(f"[HTTP] ✓ Streamed {artifact.filename} ({sent} bytes)")
    return response


@routes.post('/api/tiktok/info')
@error_message("Failed to process TikTok URL")
async def tiktok_info(request: web.Request) -> web.Response:
    body = parse_body(InfoRequest, await read_json(request))
    result = await get_info(request.app[INFO_PIPELINE_KEY], body.url)
    return web.json_response(result)


@routes.get('/api/tiktok/download/{type}')
@error_message("Failed to download content")
async def tiktok_download(request: web.Request) -> web.StreamResponse:
    kind = request.match_info['type']
    url = request.query.get('url')

    image_index = None
    raw_index = request.query.get('imageIndex')
    if raw_index not in (None, ''):
        try:
            image_index = int(raw_index)
        except ValueError:
            raise ValidationError("imageIndex must be an integer")

    async with request.app[DOWNLOADER_KEY].download(kind, url, image_index) as artifact:
        return await stream_file(request, artifact)


@routes.post('/api/tiktok/batch')
@error_message("Failed to download videos")
async def tiktok_batch(request: web.Request) -> web.StreamResponse:
    body = parse_body(UrlListRequest, await read_json(request))
    async with request.app[BATCH_KEY].download_batch(body.urls) as artifact:
        return await stream_file(request, artifact)


@routes.post('/api/tiktok/metadata/batch')
@error_message("Failed to process metadata")
async def tiktok_metadata_batch(request: web.Request) -> web.Response:
    body = parse_body(UrlListRequest, await read_json(request))
    result = await request.app[BATCH_KEY].metadata_batch(body.urls)
    return web.json_response(result.to_dict())


@routes.post('/api/tiktok/search')
@error_message("Search failed")
async def tiktok_search(request: web.Request) -> web.Response:
    body = parse_body(SearchRequest, await read_json(request))
    return web.json_response(await request.app[SEARCH_KEY].search(body.query, body.limit))


@routes.post('/api/tiktok/search/keyword')
@error_message("Search failed")
async def tiktok_keyword_search(request: web.Request) -> web.Response:
    body = parse_body(KeywordSearchRequest, await read_json(request))
    result = await request.app[SEARCH_KEY].keyword_search(body.keyword, body.type, body.page)
    return web.json_response(result)


@routes.get('/api/tiktok/search/{username}')
@error_message("Failed to download user videos")
async def tiktok_latest_videos(request: web.Request) -> web.StreamResponse:
    async with request.app[BATCH_KEY].download_latest(request.match_info['username']) as artifact:
        return await stream_file(request, artifact)


@routes.get('/api/tiktok/searchkeyword/{keyword}')
@error_message("Failed to search and download video")
async def tiktok_search_and_download(request: web.Request) -> web.StreamResponse:
    async with request.app[SEARCH_KEY].search_and_pick(request.match_info['keyword']) as artifact:
        return await stream_file(request, artifact)


@routes.get('/api/tiktok/hashtag/{tag}')
async def tiktok_hashtag(request: web.Request) -> web.Response:
    tag = request.match_info['tag'].lstrip('#')
    logger.info(f"[HTTP] Hashtag request for #{tag}, not supported")
    return web.json_response({
        "message": "Hashtag search and download is currently not available",
        "reason": "TikTok blocks this feature for automated tools",
        "alternatives": {
            "byUser": "Download a user's latest videos with GET /api/tiktok/search/{username}",
            "byUrls": "Download specific videos with POST /api/tiktok/batch and an array of URLs",
            "singleVideo": "For a single video use GET /api/tiktok/download/video?url=",
        },
    }, status=501)


@routes.get('/api/tiktok/user/{username}/stats')
@error_message("Failed to get user stats")
async def tiktok_user_stats(request: web.Request) -> web.Response:
    return web.json_response(await request.app[SEARCH_KEY].user_stats(request.match_info['username']))


@routes.get('/api/chat/messages')
@error_message("Failed to fetch messages")
async def chat_messages(request: web.Request) -> web.Response:
    return web.json_response(request.app[CHAT_HUB_KEY].history.get_history())


@routes.post('/api/chat/messages')
@error_message("Failed to send message")
async def chat_post_message(request: web.Request) -> web.Response:
    body = parse_body(ChatMessageRequest, await read_json(request))
    stored = await request.app[CHAT_HUB_KEY].post_message(body.username, body.age, body.message)
    return web.json_response(stored)


@routes.get('/ws')
async def chat_socket(request: web.Request) -> web.WebSocketResponse:
    return await request.app[CHAT_HUB_KEY].handle_socket(request)
