"""
TikTok Service
Resolves slideshow images for TikTok posts
"""

from typing import Optional

from media_pipeline.services import BaseService, BaseProvider
from media_pipeline.services.tiktok.api import TikTokApiClient


class SlideshowProvider(BaseProvider):
    """Base class for TikTok slideshow image providers."""

    def __init__(self, name: str, api_client: Optional[TikTokApiClient] = None):
        super().__init__(name)
        self.api_client = api_client


class TikTokService(BaseService):
    """Service for resolving TikTok slideshow images."""

    SERVICE_NAME = "TIKTOK"
    PROVIDER_BASE_CLASS = SlideshowProvider

    def __init__(self, api_client: Optional[TikTokApiClient] = None, providers=None):
        self.api_client = api_client
        super().__init__(providers)

    def create_provider(self, provider_class, api_key):
        return provider_class(api_client=self.api_client)

    @classmethod
    def from_env(cls, api_client: TikTokApiClient) -> "TikTokService":
        """Create the service and load its providers."""
        service = cls(api_client)
        service.providers = service.load_providers_from_env()
        return service


__all__ = ['SlideshowProvider', 'TikTokService']
