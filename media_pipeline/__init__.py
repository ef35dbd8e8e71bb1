"""
TikTok media pipeline.

URL normalization, yt-dlp orchestration, content classification, slideshow
image resolution, response assembly and download/batch/search orchestration.
"""

from media_pipeline.config import Settings
from media_pipeline.errors import (
    ExtractionError,
    InvalidRequestError,
    MediaError,
    NotFoundError,
    UpstreamAuthError,
    ValidationError,
)
from media_pipeline.models import ContentType, DownloadArtifact, SlideshowImage

__all__ = [
    'Settings',
    'MediaError',
    'ValidationError',
    'InvalidRequestError',
    'NotFoundError',
    'ExtractionError',
    'UpstreamAuthError',
    'ContentType',
    'DownloadArtifact',
    'SlideshowImage',
]
