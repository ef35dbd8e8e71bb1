"""
Slideshow image services.

A service owns a `providers/` package next to its module. Every provider
class found there is instantiated at startup and tried in priority order
until one of them yields images.
"""

import os
import importlib
import inspect
import logging
from typing import List, Type, Optional
from pathlib import Path

import aiohttp

from media_pipeline.models import SlideshowImage

logger = logging.getLogger(__name__)


def _env_priority(env_var: str, default: int) -> int:
    raw = os.getenv(env_var)
    if not raw:
        return default
    try:
        return max(0, min(100, int(raw)))
    except ValueError:
        logger.warning(f"[SERVICE] {env_var}={raw!r} is not a number, keeping {default}")
        return default


class BaseProvider:
    """One way of turning a post URL into slideshow images."""

    # Prefix for env overrides, e.g. TIKWM -> TIKWM_PRIORITY / TIKWM_API_KEY
    PROVIDER_NAME = None

    REQUIRES_API_KEY = True

    # 0-100, higher runs earlier
    DEFAULT_PRIORITY = 50

    def __init__(self, name: str):
        self.name = name
        self.priority = self.DEFAULT_PRIORITY

    async def get_images(self, url: str, session: aiohttp.ClientSession) -> List[SlideshowImage]:
        """
        Return the images of a post in display order.

        Args:
            url: Normalized TikTok post URL
            session: Shared HTTP session

        Returns:
            Ordered images; an empty list means this provider found nothing
        """
        raise NotImplementedError(f"{type(self).__name__} does not implement get_images()")

    def __str__(self) -> str:
        return self.name


class BaseService:
    """Holds a priority-ordered provider chain for one platform."""

    SERVICE_NAME = None
    PROVIDER_BASE_CLASS = BaseProvider

    def __init__(self, providers: Optional[List[BaseProvider]] = None):
        self.providers = providers or []

    def _providers_package(self) -> Optional[str]:
        module = inspect.getmodule(type(self))
        if module is None or not module.__file__:
            return None
        if not (Path(module.__file__).parent / "providers").is_dir():
            logger.warning(f"[SERVICE:{self.SERVICE_NAME}] Missing providers package next to {module.__name__}")
            return None
        return f"{module.__name__}.providers"

    def discover_providers(self) -> List[Type[BaseProvider]]:
        """Import every public module under providers/ and collect its provider classes."""
        package = self._providers_package()
        if package is None:
            return []

        package_dir = Path(importlib.import_module(package).__file__).parent
        found = []
        # Sorted so that equal priorities keep a stable order
        for source in sorted(package_dir.glob("*.py")):
            if source.stem.startswith("_"):
                continue
            try:
                module = importlib.import_module(f"{package}.{source.stem}")
            except Exception as e:
                logger.error(f"[SERVICE:{self.SERVICE_NAME}] ✗ Import of provider module {source.stem} failed: {e}")
                continue
            found.extend(
                cls for _, cls in inspect.getmembers(module, inspect.isclass)
                if cls.__module__ == module.__name__
                and issubclass(cls, self.PROVIDER_BASE_CLASS)
                and cls is not self.PROVIDER_BASE_CLASS
            )
        return found

    def create_provider(self, provider_class: Type[BaseProvider], api_key: Optional[str]) -> BaseProvider:
        """Instantiate a discovered provider. Services override this to inject dependencies."""
        return provider_class(api_key) if api_key else provider_class()

    def load_providers_from_env(self) -> List[BaseProvider]:
        """
        Instantiate discovered providers, honouring env overrides.

        `{PROVIDER_NAME}_API_KEY` gates providers that need credentials and
        `{PROVIDER_NAME}_PRIORITY` replaces DEFAULT_PRIORITY.

        Returns:
            Providers sorted highest priority first
        """
        loaded = []
        for provider_class in self.discover_providers():
            prefix = provider_class.PROVIDER_NAME
            if not prefix:
                logger.warning(f"[SERVICE:{self.SERVICE_NAME}] {provider_class.__name__} has no PROVIDER_NAME, ignored")
                continue

            api_key = os.getenv(f"{prefix}_API_KEY")
            if provider_class.REQUIRES_API_KEY and not api_key:
                logger.debug(f"[SERVICE:{self.SERVICE_NAME}] {provider_class.__name__} disabled, {prefix}_API_KEY is empty")
                continue

            try:
                provider = self.create_provider(provider_class, api_key)
            except Exception as e:
                logger.error(f"[SERVICE:{self.SERVICE_NAME}] ✗ Could not create {provider_class.__name__}: {e}")
                continue

            provider.priority = _env_priority(f"{prefix}_PRIORITY", provider.priority)
            loaded.append(provider)
            logger.info(f"[SERVICE:{self.SERVICE_NAME}] ✓ {provider.name} ready (priority {provider.priority})")

        if not loaded:
            logger.warning(f"[SERVICE:{self.SERVICE_NAME}] No slideshow providers available")
        return sorted(loaded, key=lambda p: p.priority, reverse=True)

    async def resolve_images(self, url: str, session: aiohttp.ClientSession) -> List[SlideshowImage]:
        """
        Try providers in priority order until one returns images.

        Never raises: provider failures are logged and the next provider is
        tried. Later providers are not called once one yields an image.

        Args:
            url: TikTok post URL
            session: Shared HTTP session

        Returns:
            Images in display order, or an empty list if all providers fail
        """
        tag = f"[SERVICE:{self.SERVICE_NAME}]"
        total = len(self.providers)
        logger.info(f"{tag} Resolving slideshow images for {url} ({total} provider(s))")

        for position, provider in enumerate(self.providers, 1):
            logger.info(f"{tag} Trying {position}/{total}: {provider.name}")
            try:
                images = await provider.get_images(url, session)
            except Exception as e:
                logger.error(f"{tag} ✗ {provider.name} failed: {type(e).__name__}: {e}")
                continue

            if images:
                logger.info(f"{tag} ✓ {provider.name} returned {len(images)} image(s)")
                return list(images)
            logger.warning(f"{tag} ✗ {provider.name} returned nothing")

        logger.error(f"{tag} ✗ No provider could resolve images")
        return []


__all__ = ['BaseProvider', 'BaseService']
