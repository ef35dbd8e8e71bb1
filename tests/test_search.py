import random
from dataclasses import replace
from urllib.parse import unquote

import pytest

from media_pipeline.errors import ExtractionError, NotFoundError, UpstreamAuthError, ValidationError
from media_pipeline.search import EXPIRED_COOKIE_MESSAGE, MAX_KEYWORD_RESULTS, SearchService
from tests.fakes import FakeApiClient, FakeExtractor


def search_hit(n):
    return {"id": str(n), "desc": f"video {n}", "author": {"uniqueId": f"user{n}", "nickname": f"User {n}"}}


async def test_search_lists_profile_videos(settings, video_metadata):
    extractor = FakeExtractor(feed=[video_metadata, dict(video_metadata, id="2")])
    result = await SearchService(settings, extractor, FakeApiClient()).search("@creator", 15)

    assert result["query"] == "@creator"
    assert result["totalResults"] == 2
    assert result["results"][0]["username"] == "creator"
    assert result["results"][0]["duration"] == "1:15"
    assert extractor.calls == [('fetch_feed', "https://www.tiktok.com/@creator", 15)]


async def test_plain_keyword_search_is_rejected(settings):
    extractor = FakeExtractor()
    with pytest.raises(ValidationError, match="@username"):
        await SearchService(settings, extractor, FakeApiClient()).search("funny cats")
    assert extractor.calls == []


async def test_search_reports_missing_profile(settings):
    class FailingFeed(FakeExtractor):
        async def fetch_feed(self, url, limit):
            raise ExtractionError("Failed to fetch profile feed", diagnostics="404")

    with pytest.raises(ExtractionError, match="@ghost"):
        await SearchService(settings, FailingFeed(), FakeApiClient()).search("@ghost")


async def test_keyword_search_caps_results(settings):
    client = FakeApiClient(search_results=[{"id": str(n)} for n in range(30)])
    result = await SearchService(settings, FakeExtractor(), client).keyword_search("cats", "user", 2)

    assert result["status"] == "success"
    assert result["totalResults"] == MAX_KEYWORD_RESULTS
    assert len(result["results"]) == MAX_KEYWORD_RESULTS
    assert (result["keyword"], result["type"], result["page"]) == ("cats", "user", 2)
    assert client.calls == [('search', "cats", "user", 2)]


@pytest.mark.parametrize("cookie", [None, "", "sessionid=short"])
async def test_keyword_search_requires_a_real_cookie(settings, cookie):
    client = FakeApiClient()
    service = SearchService(replace(settings, tiktok_cookie=cookie), FakeExtractor(), client)
    with pytest.raises(UpstreamAuthError) as info:
        await service.keyword_search("cats")
    assert info.value.status == 500
    assert client.calls == []


async def test_expired_cookie_is_a_client_error(settings):
    service = SearchService(settings, FakeExtractor(), FakeApiClient(search_error="Empty response"))
    with pytest.raises(UpstreamAuthError) as info:
        await service.keyword_search("cats")
    assert info.value.status == 400
    assert info.value.message == EXPIRED_COOKIE_MESSAGE


async def test_search_and_pick_downloads_a_random_hit(settings, video_metadata):
    hits = [search_hit(n) for n in range(1, 4)]
    chosen_url = "https://www.tiktok.com/@user2/video/2"
    extractor = FakeExtractor(metadata={chosen_url: video_metadata})
    service = SearchService(settings, extractor, FakeApiClient(search_results=hits))

    rng = random.Random()
    rng.randrange = lambda n: 1

    async with service.search_and_pick("funny cats", rng=rng) as artifact:
        assert artifact.filename == "tiktok_funny_cats_2.mp4"
        assert artifact.headers['X-TikTok-URL'] == chosen_url
        assert artifact.headers['X-TikTok-Search-Selected-Index'] == "2"
        assert artifact.headers['X-TikTok-Search-Total-Results'] == "3"
        assert artifact.headers['X-TikTok-Likes'] == "300"
        assert unquote(artifact.headers['X-TikTok-Description']) == video_metadata["description"]
        assert artifact.path.exists()

    assert list(settings.temp_dir.iterdir()) == []


async def test_search_and_pick_without_hits(settings):
    service = SearchService(settings, FakeExtractor(), FakeApiClient(search_results=[]))
    with pytest.raises(NotFoundError):
        async with service.search_and_pick("nothing"):
            pass


async def test_user_stats(settings, video_metadata):
    extractor = FakeExtractor(feed=[video_metadata])
    stats = await SearchService(settings, extractor, FakeApiClient()).user_stats("@creator")

    assert stats["username"] == "creator"
    assert stats["latestVideo"]["likes"] == 300
    assert extractor.calls == [('fetch_feed', "https://www.tiktok.com/@creator", 1)]


async def test_user_stats_without_videos(settings):
    with pytest.raises(NotFoundError):
        await SearchService(settings, FakeExtractor(feed=[]), FakeApiClient()).user_stats("creator")
