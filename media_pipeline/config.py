"""
Runtime settings for the media service.

Values come from the environment (a .env file is loaded by server.py before
this module reads anything).
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_SHORT_LINK_HOSTS = ("vm.tiktok.com", "vt.tiktok.com")

# Keyword search needs a full browser cookie string, a bare sessionid is not enough
MIN_COOKIE_LENGTH = 50


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid value for {name}: {value}, using default {default}")
        return default


def _env_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Invalid value for {name}: {value}, running without a timeout")
        return None


@dataclass(frozen=True)
class Settings:
    """
    Service configuration.

    Attributes:
        host: Interface the HTTP server binds to
        port: HTTP port
        log_level: Root logging level name
        temp_dir: Writable directory for downloads and archives
        ytdlp_binary: Name or path of the yt-dlp executable
        extractor_timeout: Seconds before a yt-dlp call is killed (None = wait forever)
        tiktok_cookie: Browser session cookie for keyword search
        tikwm_api_key: Optional RapidAPI key for the TikTok API wrapper
        tikwm_api_host: RapidAPI host used when a key is set
        short_link_hosts: Hosts whose links are expanded by following redirects
        enable_health_check: Register GET / and GET /health
    """
    host: str = "0.0.0.0"
    port: int = 5000
    log_level: str = "INFO"
    temp_dir: Path = field(default_factory=lambda: Path.cwd() / "temp")
    ytdlp_binary: str = "yt-dlp"
    extractor_timeout: Optional[float] = None
    tiktok_cookie: Optional[str] = None
    tikwm_api_key: Optional[str] = None
    tikwm_api_host: str = "tiktok-video-no-watermark2.p.rapidapi.com"
    short_link_hosts: tuple[str, ...] = DEFAULT_SHORT_LINK_HOSTS
    enable_health_check: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        hosts_env = os.getenv('SHORT_LINK_HOSTS')
        if hosts_env:
            short_link_hosts = tuple(h.strip().lower() for h in hosts_env.split(',') if h.strip())
        else:
            short_link_hosts = DEFAULT_SHORT_LINK_HOSTS

        temp_dir = Path(os.getenv('TEMP_DIR', 'temp')).expanduser()
        if not temp_dir.is_absolute():
            temp_dir = Path.cwd() / temp_dir

        return cls(
            host=os.getenv('HOST', '0.0.0.0'),
            port=_env_int('PORT', 5000),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
            temp_dir=temp_dir,
            ytdlp_binary=os.getenv('YTDLP_BINARY', 'yt-dlp'),
            extractor_timeout=_env_float('EXTRACTOR_TIMEOUT'),
            tiktok_cookie=os.getenv('TIKTOK_COOKIE') or None,
            tikwm_api_key=os.getenv('TIKWM_API_KEY') or None,
            tikwm_api_host=os.getenv('TIKWM_API_HOST', 'tiktok-video-no-watermark2.p.rapidapi.com'),
            short_link_hosts=short_link_hosts,
            enable_health_check=os.getenv('ENABLE_HEALTH_CHECK', 'true').lower() == 'true',
        )

    def ensure_temp_dir(self) -> Path:
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        return self.temp_dir
