"""
Request-scoped data types shared across the media pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class ContentType(str, Enum):
    """What a TikTok post turned out to be."""
    VIDEO = "video"
    AUDIO = "audio"
    SLIDESHOW = "slideshow"


@dataclass(frozen=True)
class NormalizedUrl:
    """Result of expanding and normalizing an incoming URL."""
    canonical_url: str
    was_short_link: bool
    expanded_url: str


@dataclass(frozen=True)
class SlideshowImage:
    """One image of a slideshow post. List order is the display order."""
    url: str
    width: int
    height: int

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of one external process invocation."""
    stdout: str
    stderr: str
    exit_code: int


@dataclass(frozen=True)
class DownloadArtifact:
    """A finished file ready to be streamed to the client."""
    path: Path
    content_type: str
    filename: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class BatchItem:
    success: bool
    url: str
    data: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        item: dict[str, Any] = {"success": self.success, "url": self.url}
        if self.success:
            item["data"] = self.data
        else:
            item["error"] = self.error
        return item


@dataclass
class BatchResult:
    """Aggregated result of a metadata batch. Results keep input order."""
    results: list[BatchItem] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for item in self.results if item.success)

    @property
    def failed(self) -> int:
        return self.total - self.successful

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "results": [item.to_dict() for item in self.results],
        }
