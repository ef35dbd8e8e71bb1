import zipfile

import pytest

from media_pipeline.batch import BatchOrchestrator, check_url_list
from media_pipeline.errors import ExtractionError, NotFoundError, ValidationError
from tests.fakes import FakeExtractor, FakeResponse, FakeSession


def url(n):
    return f"https://www.tiktok.com/@user/video/{n}"


def make_batch(settings, extractor, session=None):
    return BatchOrchestrator(settings, extractor, session or FakeSession())


def temp_files_left(settings):
    return list(settings.temp_dir.iterdir()) if settings.temp_dir.exists() else []


@pytest.mark.parametrize("urls", [
    None,
    "https://www.tiktok.com/@a/video/1",
    [],
    [1, 2],
    [url(1), "--exec=id"],
    [url(1), "http://169.254.169.254/latest/meta-data"],
    [""],
])
def test_check_url_list_rejects_bad_shapes(urls):
    with pytest.raises(ValidationError):
        check_url_list(urls, 20)


async def test_metadata_batch_captures_failures_in_order(settings, video_metadata):
    urls = [url(n) for n in range(6)]
    failing = {urls[1], urls[4]}
    extractor = FakeExtractor(metadata={
        u: ExtractionError("Failed to extract metadata") if u in failing else dict(video_metadata, id=u[-1])
        for u in urls
    })

    result = await make_batch(settings, extractor).metadata_batch(urls)

    assert (result.total, result.successful, result.failed) == (6, 4, 2)
    assert [item.url for item in result.results] == urls
    assert [item.success for item in result.results] == [True, False, True, True, False, True]
    body = result.to_dict()
    assert body["results"][1] == {"success": False, "url": urls[1], "error": "Failed to extract metadata"}
    assert body["results"][0]["data"]["id"] == "0"


async def test_metadata_batch_limit_checked_before_any_call(settings):
    extractor = FakeExtractor()
    with pytest.raises(ValidationError):
        await make_batch(settings, extractor).metadata_batch([url(n) for n in range(51)])
    assert extractor.calls == []


async def test_download_batch_limit_checked_before_any_call(settings):
    extractor = FakeExtractor()
    with pytest.raises(ValidationError):
        async with make_batch(settings, extractor).download_batch([url(n) for n in range(21)]):
            pass
    assert extractor.calls == []


async def test_download_batch_uses_one_invocation(settings):
    extractor = FakeExtractor()
    urls = [url(n) + "?lang=en" for n in range(3)]

    async with make_batch(settings, extractor).download_batch(urls) as artifact:
        assert artifact.filename == "tiktok-batch-3-videos.zip"
        with zipfile.ZipFile(artifact.path) as zf:
            assert zf.namelist() == ["video-1.mp4", "video-2.mp4", "video-3.mp4"]
            assert zf.read("video-2.mp4") == b"batch-2"

    calls = extractor.called('download_batch')
    assert len(calls) == 1
    assert calls[0][1] == [url(n) for n in range(3)]
    assert list(settings.temp_dir.iterdir()) == []


async def test_download_batch_systemic_failure_aborts(settings):
    extractor = FakeExtractor(fail_downloads=True)
    with pytest.raises(ExtractionError):
        async with make_batch(settings, extractor).download_batch([url(1), url(2)]):
            pass
    assert list(settings.temp_dir.iterdir()) == []


async def test_download_batch_without_outputs(settings):
    extractor = FakeExtractor(batch_outputs=0)
    with pytest.raises(NotFoundError):
        async with make_batch(settings, extractor).download_batch([url(1)]):
            pass
    assert list(settings.temp_dir.iterdir()) == []


async def test_download_latest(settings):
    extractor = FakeExtractor()
    async with make_batch(settings, extractor).download_latest("@someone") as artifact:
        assert artifact.filename == "tiktok-someone-latest-5.zip"
        with zipfile.ZipFile(artifact.path) as zf:
            assert len(zf.namelist()) == 5

    assert extractor.called('download_feed')[0][1:3] == ("https://www.tiktok.com/@someone", 5)
    assert list(settings.temp_dir.iterdir()) == []


@pytest.mark.parametrize("bad", ["--exec=id", "http://169.254.169.254/latest/meta-data", "https://nottiktok.com/@a/video/1"])
async def test_metadata_batch_rejects_foreign_urls_before_any_call(settings, bad):
    extractor = FakeExtractor()
    with pytest.raises(ValidationError, match="Invalid TikTok URL"):
        await make_batch(settings, extractor).metadata_batch([url(1), bad])
    assert extractor.calls == []


@pytest.mark.parametrize("bad", ["--exec=id", "http://169.254.169.254/latest/meta-data"])
async def test_download_batch_rejects_foreign_urls_before_any_call(settings, bad):
    extractor = FakeExtractor()
    with pytest.raises(ValidationError, match="Invalid TikTok URL"):
        async with make_batch(settings, extractor).download_batch([bad, url(1)]):
            pass
    assert extractor.calls == []
    assert temp_files_left(settings) == []


async def test_metadata_batch_expands_short_links(settings, video_metadata):
    short = "https://vm.tiktok.com/ZMabc/"
    session = FakeSession({short: FakeResponse(url=url(7) + "?_r=1")})
    extractor = FakeExtractor(metadata={url(7): video_metadata})

    result = await make_batch(settings, extractor, session).metadata_batch([short, "https://vt.tiktok.com/ZSgone/"])

    assert extractor.called('fetch_metadata') == [('fetch_metadata', url(7)), ('fetch_metadata', "https://vt.tiktok.com/ZSgone/")]
    assert [item.url for item in result.results] == [short, "https://vt.tiktok.com/ZSgone/"]
    assert (result.successful, result.failed) == (1, 1)


async def test_download_batch_writes_expanded_urls(settings):
    short = "https://vm.tiktok.com/ZMabc/"
    session = FakeSession({short: FakeResponse(url=url(7))})
    extractor = FakeExtractor()

    async with make_batch(settings, extractor, session).download_batch([short, url(8)]):
        pass

    assert extractor.called('download_batch')[0][1] == [url(7), url(8)]

