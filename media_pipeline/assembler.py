"""
Maps raw yt-dlp metadata into the stable API response shape.

The metadata document is untrusted and partial. Each output field is
described by a Fallback rule: an ordered list of sources (metadata keys or
callables) where the first truthy value wins, an optional transform and a
default, so no missing value ever reaches the client.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Mapping, Optional, Sequence, Union
from urllib.parse import quote

from media_pipeline.models import ContentType, SlideshowImage

PLACEHOLDER_THUMBNAIL = "https://picsum.photos/seed/tiktok/1280/720"
UNKNOWN_DATE = "Unknown"

HASHTAG_PATTERN = re.compile(r'#(\w+)')
UPLOAD_DATE_PATTERN = re.compile(r'^\d{8}$')

Source = Union[str, Callable[[Mapping[str, Any]], Any]]


@dataclass(frozen=True)
class Fallback:
    """Ordered sources for one output field."""
    sources: tuple[Source, ...]
    default: Any
    transform: Optional[Callable[[Any], Any]] = None

    def resolve(self, metadata: Mapping[str, Any]) -> Any:
        for source in self.sources:
            value = source(metadata) if callable(source) else metadata.get(source)
            if value:
                return self.transform(value) if self.transform else value
        return self.default


def format_duration(seconds: Any) -> str:
    if not seconds:
        return "00:00"
    seconds = float(seconds)
    return f"{int(seconds // 60)}:{int(seconds % 60):02d}"


def format_file_size(size: Any) -> str:
    if not size:
        return "N/A"
    return f"{size / 1024 / 1024:.2f} MB"


def _approx_audio_size(metadata: Mapping[str, Any]) -> Optional[float]:
    approx = metadata.get('filesize_approx')
    if isinstance(approx, (int, float)):
        return approx * 0.1
    return None


def extract_hashtags(text: Optional[str]) -> list[str]:
    """
    Return hashtags in first-occurrence order, without the leading '#'.

    Duplicates are kept.
    """
    if not text:
        return []
    return HASHTAG_PATTERN.findall(text)


def _parse_upload_date(upload_date: Any) -> Optional[date]:
    if not isinstance(upload_date, str) or not UPLOAD_DATE_PATTERN.match(upload_date):
        return None
    try:
        return datetime.strptime(upload_date, '%Y%m%d').date()
    except ValueError:
        return None


def _parse_timestamp(timestamp: Any) -> Optional[date]:
    if not timestamp or isinstance(timestamp, bool):
        return None
    try:
        return datetime.fromtimestamp(float(timestamp), tz=timezone.utc).date()
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def parse_upload_date(upload_date: Any, timestamp: Any) -> Optional[date]:
    """Prefer a YYYYMMDD string, then a Unix timestamp in seconds."""
    return _parse_upload_date(upload_date) or _parse_timestamp(timestamp)


def format_upload_date(upload_date: Any, timestamp: Any) -> str:
    """Human readable upload date, e.g. 'June 15, 2023', or 'Unknown'."""
    parsed = parse_upload_date(upload_date, timestamp)
    if parsed is None:
        return UNKNOWN_DATE
    return f"{parsed:%B} {parsed.day}, {parsed.year}"


def _download_link(kind: str, canonical_url: str) -> str:
    # Same escaping as encodeURIComponent on the front-end
    return f"/api/tiktok/download/{kind}?url=" + quote(canonical_url, safe="!~*'()")


TITLE = Fallback(('title', 'description'), "TikTok Content")
DESCRIPTION = Fallback(('description', 'title'), "No description available")
VIDEO_ID = Fallback(('id', 'display_id'), "unknown")

TECHNICAL_FIELDS: dict[str, Fallback] = {
    "duration": Fallback(('duration',), "00:00", format_duration),
    "videoSize": Fallback(('filesize', 'filesize_approx'), "N/A", format_file_size),
    "audioSize": Fallback(('audio_filesize', _approx_audio_size), "N/A", format_file_size),
    "format": Fallback(('ext',), "MP4", lambda ext: str(ext).upper()),
    "codec": Fallback(('vcodec',), "H.264"),
    "fps": Fallback(('fps',), 30),
    "bitrate": Fallback(('tbr',), "N/A", lambda tbr: f"{round(tbr)} kbps"),
    "width": Fallback(('width',), 1080),
    "height": Fallback(('height',), 1920),
    "audioCodec": Fallback(('acodec',), "AAC"),
    "audioChannels": Fallback(('audio_channels',), 2),
    "audioSampleRate": Fallback(('asr',), "44.1 kHz", lambda asr: f"{asr / 1000:.1f} kHz"),
}

CREATOR_FIELDS: dict[str, Fallback] = {
    "username": Fallback(('uploader_id', 'uploader'), "Unknown"),
    "nickname": Fallback(('uploader', 'creator'), "TikTok User"),
    "avatar": Fallback(('uploader_url', 'channel_url'), ""),
    "verified": Fallback(('uploader_verified',), False, bool),
}

STATS_FIELDS: dict[str, Fallback] = {
    "views": Fallback(('view_count',), 0),
    "likes": Fallback(('like_count',), 0),
    "comments": Fallback(('comment_count',), 0),
    "shares": Fallback(('repost_count',), 0),
    "favorites": Fallback(('bookmark_count',), 0),
}

AUDIO_FIELDS: dict[str, Fallback] = {
    "title": Fallback(('track', 'alt_title'), "Original Sound"),
    "author": Fallback(('artist', 'uploader'), "Unknown Artist"),
}


def _resolve_all(rules: Mapping[str, Fallback], metadata: Mapping[str, Any]) -> dict[str, Any]:
    return {name: rule.resolve(metadata) for name, rule in rules.items()}


def assemble(
    metadata: Mapping[str, Any],
    content_type: ContentType,
    images: Sequence[SlideshowImage],
    canonical_url: str,
) -> dict[str, Any]:
    """
    Build the NormalizedMedia response.

    Args:
        metadata: Raw yt-dlp document
        content_type: Classified content type
        images: Slideshow images in display order (empty for other posts)
        canonical_url: Normalized URL the download links point at

    Returns:
        JSON-serializable response dictionary
    """
    technical = _resolve_all(TECHNICAL_FIELDS, metadata)
    technical["resolution"] = f"{technical['width']}x{technical['height']}"

    thumbnail = Fallback(
        ('thumbnail', lambda _: images[0].url if images else None),
        PLACEHOLDER_THUMBNAIL,
    ).resolve(metadata)

    return {
        "contentType": content_type.value,
        "videoUrl": _download_link("video", canonical_url),
        "audioUrl": _download_link("audio", canonical_url),
        "thumbnail": thumbnail,
        "title": TITLE.resolve(metadata),
        "description": DESCRIPTION.resolve(metadata),
        "images": [image.to_dict() for image in images],
        "metadata": technical,
        "creator": _resolve_all(CREATOR_FIELDS, metadata),
        "stats": _resolve_all(STATS_FIELDS, metadata),
        "audio": _resolve_all(AUDIO_FIELDS, metadata),
        "hashtags": extract_hashtags(metadata.get('description') or metadata.get('title') or ''),
        "uploadDate": format_upload_date(metadata.get('upload_date'), metadata.get('timestamp')),
        "videoId": VIDEO_ID.resolve(metadata),
    }


def summarize(metadata: Mapping[str, Any]) -> dict[str, Any]:
    """Compact per-item shape used by the metadata batch."""
    return {
        "id": metadata.get('id') or "",
        "title": TITLE.resolve(metadata),
        "description": metadata.get('description') or "",
        "creator": Fallback(('uploader', 'creator'), "Unknown").resolve(metadata),
        "views": metadata.get('view_count') or 0,
        "likes": metadata.get('like_count') or 0,
        "comments": metadata.get('comment_count') or 0,
        "shares": metadata.get('repost_count') or 0,
        "duration": metadata.get('duration') or 0,
        "uploadDate": metadata.get('upload_date') or "",
        "thumbnail": metadata.get('thumbnail') or "",
        "music": {
            "title": metadata.get('track') or "",
            "author": metadata.get('artist') or "",
        },
    }


def feed_item(metadata: Mapping[str, Any], username: str) -> dict[str, Any]:
    """One video entry of a profile search result."""
    video_id = metadata.get('id') or ""
    return {
        "id": video_id,
        "type": "video",
        "url": metadata.get('webpage_url') or metadata.get('url') or f"https://www.tiktok.com/@{username}/video/{video_id}",
        "thumbnail": metadata.get('thumbnail') or "",
        "title": TITLE.resolve(metadata),
        "description": metadata.get('description') or metadata.get('title') or "",
        "username": username,
        "nickname": metadata.get('uploader') or username,
        "avatar": "",
        "verified": False,
        "views": metadata.get('view_count') or 0,
        "likes": metadata.get('like_count') or 0,
        "comments": metadata.get('comment_count') or 0,
        "shares": metadata.get('repost_count') or 0,
        "duration": format_duration(metadata.get('duration')),
        "uploadDate": format_upload_date(metadata.get('upload_date'), None),
    }


def profile_stats(username: str, metadata: Mapping[str, Any]) -> dict[str, Any]:
    """Profile statistics derived from the most recent item of a user."""
    return {
        "username": username,
        "nickname": Fallback(('uploader', 'creator'), username).resolve(metadata),
        "verified": bool(metadata.get('uploader_verified')),
        "followerCount": metadata.get('channel_follower_count') or 0,
        "videoCount": metadata.get('playlist_count') or 0,
        "totalViews": metadata.get('view_count') or 0,
        "bio": metadata.get('description') or "",
        "avatar": metadata.get('thumbnail') or "",
        "latestVideo": {
            "id": metadata.get('id') or "",
            "title": metadata.get('title') or metadata.get('description') or "",
            "views": metadata.get('view_count') or 0,
            "likes": metadata.get('like_count') or 0,
            "comments": metadata.get('comment_count') or 0,
            "uploadDate": metadata.get('upload_date') or "",
        },
    }
