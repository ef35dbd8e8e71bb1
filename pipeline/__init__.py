"""
Request pipeline.

An info request is resolved by a chain of handlers sharing one context:
each step reads what earlier steps left in `ctx.data` and adds its own
result. A step may end the run early with `ctx.stop()`.

Usage:
    from pipeline import MediaPipeline

    pipeline = (
        MediaPipeline()
        .add_handler(ExpandUrlHandler(toolkit))
        .add_handler(FetchMetadataHandler(toolkit))
    )
    ctx = await pipeline.run("https://www.tiktok.com/@user/video/123")
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class PipelineContext:
    """
    State carried from one handler to the next.

    Attributes:
        request_url: URL exactly as the client sent it
        should_continue: Cleared by stop(); no further handler runs
        data: Results published by handlers, keyed by name
    """
    request_url: str
    should_continue: bool = True
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def url(self) -> str:
        """The URL later handlers should work on (may be substituted)."""
        return self.data.get('url', self.request_url)

    def stop(self) -> None:
        self.should_continue = False


class PipelineHandler(ABC):
    """One step of a MediaPipeline."""

    def __init__(self, name: Optional[str] = None):
        self.name = name or type(self).__name__

    @abstractmethod
    async def process(self, ctx: PipelineContext) -> None:
        """Do this step's work, publishing results into ctx.data."""

    async def should_process(self, ctx: PipelineContext) -> bool:
        """Return False to skip this step for the given context."""
        return True


class MediaPipeline:
    """
    Runs handlers in insertion order.

    An exception from a handler is logged and propagated unchanged; the
    handlers after it do not run.
    """

    def __init__(self):
        self.handlers: list[PipelineHandler] = []

    def add_handler(self, handler: PipelineHandler) -> "MediaPipeline":
        """Append a step. Returns the pipeline so calls can be chained."""
        self.handlers.append(handler)
        logger.debug(f"[PIPELINE] Registered {handler.name}")
        return self

    async def run(self, request_url: str) -> PipelineContext:
        """
        Resolve one request.

        Args:
            request_url: URL as sent by the client

        Returns:
            The final context, whether every step ran or one stopped early
        """
        ctx = PipelineContext(request_url=request_url)
        total = len(self.handlers)
        logger.info(f"[PIPELINE] ▶ {request_url}")

        for step, handler in enumerate(self.handlers, 1):
            if not ctx.should_continue:
                logger.info(f"[PIPELINE] Stopped early, {total - step + 1} step(s) left unrun")
                break

            if not await handler.should_process(ctx):
                logger.debug(f"[PIPELINE] [{step}/{total}] {handler.name} not applicable")
                continue

            logger.info(f"[PIPELINE] [{step}/{total}] {handler.name}")
            try:
                await handler.process(ctx)
            except Exception as e:
                logger.error(f"[PIPELINE] ✗ {handler.name} raised {type(e).__name__}: {e}")
                raise

        logger.info(f"[PIPELINE] ✓ Done: {request_url}")
        return ctx


__all__ = [
    'PipelineContext',
    'PipelineHandler',
    'MediaPipeline',
]
