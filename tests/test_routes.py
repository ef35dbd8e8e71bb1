import zipfile
from dataclasses import replace
from io import BytesIO

import pytest

from media_pipeline.models import SlideshowImage
from server import create_app
from tests.conftest import PHOTO_URL, VIDEO_URL
from tests.fakes import FakeApiClient, FakeExtractor, FakeImageService


@pytest.fixture
def extractor(video_metadata):
    return FakeExtractor(metadata={VIDEO_URL: video_metadata}, feed=[video_metadata])


@pytest.fixture
async def client(aiohttp_client, settings, extractor):
    app = create_app(
        settings,
        extractor=extractor,
        api_client=FakeApiClient(),
        image_service=FakeImageService([SlideshowImage("https://img/1.jpg", 1440, 1440)]),
    )
    return await aiohttp_client(app)


async def test_health(client):
    resp = await client.get('/health')
    assert resp.status == 200
    assert (await resp.json())["status"] == "healthy"


async def test_info(client):
    resp = await client.post('/api/tiktok/info', json={"url": VIDEO_URL})
    assert resp.status == 200
    body = await resp.json()
    assert body["contentType"] == "video"
    assert body["hashtags"] == ["running", "sunset"]


@pytest.mark.parametrize("payload, message", [
    ({"url": "https://example.com/video"}, "Please enter a valid TikTok URL"),
    ({}, "URL is required"),
])
async def test_info_validation(client, payload, message):
    resp = await client.post('/api/tiktok/info', json=payload)
    assert resp.status == 400
    assert await resp.json() == {"message": message}


async def test_info_rejects_broken_json(client):
    resp = await client.post('/api/tiktok/info', data=b'{"url":', headers={"Content-Type": "application/json"})
    assert resp.status == 400


async def test_info_extraction_failure(client):
    resp = await client.post('/api/tiktok/info', json={"url": "https://www.tiktok.com/@a/video/404"})
    assert resp.status == 500
    assert await resp.json() == {"message": "Failed to extract metadata"}


async def test_unexpected_errors_use_route_message(client, extractor):
    extractor.metadata[VIDEO_URL] = RuntimeError("kaboom")
    resp = await client.post('/api/tiktok/info', json={"url": VIDEO_URL})
    assert resp.status == 500
    assert await resp.json() == {"message": "Failed to process TikTok URL"}


async def test_download_video_streams_attachment(client):
    resp = await client.get('/api/tiktok/download/video', params={"url": VIDEO_URL})
    assert resp.status == 200
    assert resp.headers['Content-Type'] == "video/mp4"
    assert resp.headers['Content-Disposition'].startswith('attachment; filename="tiktok-video-')
    assert await resp.read() == b"video:" + VIDEO_URL.encode()


@pytest.mark.parametrize("index", ["5", "-1"])
async def test_download_image_index_out_of_range(client, index):
    resp = await client.get('/api/tiktok/download/image', params={"url": PHOTO_URL, "imageIndex": index})
    assert resp.status == 404


@pytest.mark.parametrize("path, params", [
    ('/api/tiktok/download/gif', {"url": VIDEO_URL}),
    ('/api/tiktok/download/image', {"url": PHOTO_URL, "imageIndex": "two"}),
    ('/api/tiktok/download/video', {}),
])
async def test_download_bad_requests(client, path, params):
    resp = await client.get(path, params=params)
    assert resp.status == 400
    assert "message" in await resp.json()


async def test_batch_limits(client, extractor):
    resp = await client.post('/api/tiktok/batch', json={"urls": [VIDEO_URL] * 21})
    assert resp.status == 400
    resp = await client.post('/api/tiktok/metadata/batch', json={"urls": [VIDEO_URL] * 51})
    assert resp.status == 400
    assert extractor.calls == []


@pytest.mark.parametrize("path", ['/api/tiktok/batch', '/api/tiktok/metadata/batch'])
async def test_batch_rejects_non_tiktok_urls(client, extractor, path):
    resp = await client.post(path, json={"urls": [VIDEO_URL, "--exec=id"]})
    assert resp.status == 400
    assert "Invalid TikTok URL" in (await resp.json())["message"]
    assert extractor.calls == []


async def test_batch_zip(client):
    resp = await client.post('/api/tiktok/batch', json={"urls": [VIDEO_URL, VIDEO_URL]})
    assert resp.status == 200
    assert resp.headers['Content-Type'] == "application/zip"
    with zipfile.ZipFile(BytesIO(await resp.read())) as zf:
        assert zf.namelist() == ["video-1.mp4", "video-2.mp4"]


async def test_metadata_batch(client):
    resp = await client.post('/api/tiktok/metadata/batch', json={"urls": [VIDEO_URL, "https://www.tiktok.com/@a/video/404"]})
    assert resp.status == 200
    body = await resp.json()
    assert (body["total"], body["successful"], body["failed"]) == (2, 1, 1)


async def test_search(client):
    resp = await client.post('/api/tiktok/search', json={"query": "@creator", "limit": 5})
    assert resp.status == 200
    assert (await resp.json())["totalResults"] == 1

    resp = await client.post('/api/tiktok/search', json={"query": "cats"})
    assert resp.status == 400

    resp = await client.post('/api/tiktok/search', json={"query": "@creator", "limit": 50})
    assert resp.status == 400


async def test_keyword_search_without_cookie(aiohttp_client, settings, extractor):
    app = create_app(replace(settings, tiktok_cookie=None), extractor=extractor,
                     api_client=FakeApiClient(), image_service=FakeImageService())
    client = await aiohttp_client(app)

    resp = await client.post('/api/tiktok/search/keyword', json={"keyword": "cats"})
    assert resp.status == 500
    assert "TIKTOK_COOKIE" in (await resp.json())["message"]

    resp = await client.post('/api/tiktok/search/keyword', json={"keyword": "cats", "type": "sound"})
    assert resp.status == 400


async def test_hashtag_not_supported(client):
    resp = await client.get('/api/tiktok/hashtag/funny')
    assert resp.status == 501
    assert "alternatives" in await resp.json()


async def test_user_stats(client):
    resp = await client.get('/api/tiktok/user/@creator/stats')
    assert resp.status == 200
    assert (await resp.json())["username"] == "creator"

    resp = await client.get('/api/tiktok/user/bad name/stats')
    assert resp.status == 400


async def test_chat_messages(client):
    resp = await client.post('/api/chat/messages', json={"username": "ana", "age": 30, "message": "hola"})
    assert resp.status == 200
    stored = await resp.json()

    resp = await client.get('/api/chat/messages')
    assert await resp.json() == [stored]

    resp = await client.post('/api/chat/messages', json={"username": "ana", "message": "no age"})
    assert resp.status == 400


async def test_chat_websocket(client):
    ws = await client.ws_connect('/ws')
    assert await ws.receive_json() == {"type": "user_count", "count": 0}

    await ws.send_json({"type": "join", "username": "ana", "age": 30})
    assert await ws.receive_json() == {"type": "user_count", "count": 1}

    await ws.send_json({"type": "message", "username": "ana", "age": 30, "message": "hi"})
    message = await ws.receive_json()
    assert message["type"] == "new_message"
    assert message["message"]["message"] == "hi"
    await ws.close()


async def test_download_streams_files_larger_than_one_chunk(aiohttp_client, settings, video_metadata):
    payload = bytes(range(256)) * 1000

    class LargeVideoExtractor(FakeExtractor):
        async def download_video(self, url, output):
            output.write_bytes(payload)
            return output

    app = create_app(settings, extractor=LargeVideoExtractor(metadata={VIDEO_URL: video_metadata}),
                     api_client=FakeApiClient(), image_service=FakeImageService())
    client = await aiohttp_client(app)

    resp = await client.get('/api/tiktok/download/video', params={"url": VIDEO_URL})
    assert resp.status == 200
    assert int(resp.headers['Content-Length']) == len(payload)
    assert await resp.read() == payload
