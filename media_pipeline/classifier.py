"""
Content-type detection.

yt-dlp represents a slideshow post as a single audio-only format because the
post has no video track, so slideshows are detected by the absence of video
data rather than by a positive signal.
"""

from typing import Any, Mapping

from media_pipeline.models import ContentType


def _is_audio_only_format(fmt: Any) -> bool:
    if not isinstance(fmt, Mapping):
        return False
    format_id = str(fmt.get('format_id') or '')
    return format_id == 'audio' or format_id.startswith('audio')


def is_slideshow_metadata(metadata: Mapping[str, Any]) -> bool:
    """True when the format list holds exactly one audio-only entry."""
    formats = metadata.get('formats')
    if not isinstance(formats, list) or len(formats) != 1:
        return False
    return _is_audio_only_format(formats[0])


def classify(original_url: str, metadata: Mapping[str, Any]) -> ContentType:
    """
    Decide what kind of post a URL points at.

    Rules, first match wins:
        1. /music/ in the URL -> audio
        2. /photo/ in the URL, or a single audio-only format -> slideshow
        3. extractor reports an audio item -> audio
        4. otherwise -> video

    Args:
        original_url: URL before /photo/ -> /video/ normalization
        metadata: yt-dlp metadata document (may be partial)
    """
    if '/music/' in original_url:
        return ContentType.AUDIO
    if '/photo/' in original_url or is_slideshow_metadata(metadata):
        return ContentType.SLIDESHOW
    if metadata.get('_type') == 'audio':
        return ContentType.AUDIO
    return ContentType.VIDEO
