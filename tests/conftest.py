import pytest

from media_pipeline.config import Settings


VIDEO_URL = "https://www.tiktok.com/@creator/video/7234567890123456789"
PHOTO_URL = "https://www.tiktok.com/@creator/photo/7234567890123456789"


@pytest.fixture
def settings(tmp_path):
    return Settings(temp_dir=tmp_path / "temp", tiktok_cookie="sessionid=" + "a" * 60)


@pytest.fixture
def video_metadata():
    return {
        "id": "7234567890123456789",
        "title": "Sunset run #running #sunset",
        "description": "Sunset run #running #sunset",
        "duration": 75,
        "width": 1080,
        "height": 1920,
        "thumbnail": "https://p16.tiktokcdn.com/thumb.jpg",
        "uploader": "creator",
        "creator": "Creator Name",
        "view_count": 1200,
        "like_count": 300,
        "comment_count": 12,
        "repost_count": 4,
        "upload_date": "20230615",
        "formats": [
            {"format_id": "download_addr-0", "ext": "mp4"},
            {"format_id": "play_addr-0", "ext": "mp4"},
        ],
    }


@pytest.fixture
def slideshow_metadata():
    return {
        "id": "7234567890123456789",
        "title": "Photo dump",
        "formats": [{"format_id": "audio", "ext": "mp3"}],
    }
