"""
pagemirror - Configuration
Process-wide settings, read-only once a request is being served
"""

import os
from typing import Optional
from dataclasses import dataclass


DEFAULT_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)

COOKIE_STORE_MODES = ('file', 'memory', 'none')


@dataclass
class MirrorConfig:
    """
    pagemirror configuration object.
    """
    # Path of the proxy endpoint, also used to build the proxy prefix
    endpoint: str = "/proxy"

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False
    log_level: str = "INFO"

    # Outbound request settings (seconds)
    timeout: float = 30.0
    connect_timeout: float = 10.0
    max_redirects: int = 10

    # Browser identity
    user_agent: str = DEFAULT_USER_AGENT
    accept: str = 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8'
    accept_language: str = 'en-US,en;q=0.9'

    # TLS certificate and hostname verification
    verify_tls: bool = True

    # Cookie jar for one fetch: 'file', 'memory' or 'none'
    cookie_store: str = "file"

    def __post_init__(self):
        """Validate values that would otherwise fail deep inside a request"""
        if self.cookie_store not in COOKIE_STORE_MODES:
            raise ValueError(
                f"cookie_store must be one of {', '.join(COOKIE_STORE_MODES)}, "
                f"got {self.cookie_store!r}"
            )
        if self.max_redirects < 0:
            raise ValueError("max_redirects must not be negative")
        if self.timeout <= 0 or self.connect_timeout <= 0:
            raise ValueError("timeouts must be positive")
        if not self.endpoint.startswith('/'):
            self.endpoint = '/' + self.endpoint


# Global configuration instance
_config: Optional[MirrorConfig] = None


def get_config() -> MirrorConfig:
    """Get the global configuration instance"""
    global _config
    if _config is None:
        _config = MirrorConfig()
    return _config


def set_config(config: MirrorConfig) -> None:
    """Set the global configuration instance"""
    global _config
    _config = config


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes', 'on')


def load_config_from_env() -> MirrorConfig:
    """Load configuration from MIRROR_* environment variables"""
    return MirrorConfig(
        endpoint=os.getenv("MIRROR_ENDPOINT", "/proxy"),
        host=os.getenv("MIRROR_HOST", "0.0.0.0"),
        port=int(os.getenv("MIRROR_PORT", "8080")),
        debug=_env_bool("MIRROR_DEBUG", "false"),
        log_level=os.getenv("MIRROR_LOG_LEVEL", "INFO").upper(),
        timeout=float(os.getenv("MIRROR_TIMEOUT", "30")),
        connect_timeout=float(os.getenv("MIRROR_CONNECT_TIMEOUT", "10")),
        max_redirects=int(os.getenv("MIRROR_MAX_REDIRECTS", "10")),
        user_agent=os.getenv("MIRROR_USER_AGENT", DEFAULT_USER_AGENT),
        accept_language=os.getenv("MIRROR_ACCEPT_LANGUAGE", 'en-US,en;q=0.9'),
        verify_tls=_env_bool("MIRROR_VERIFY_TLS", "true"),
        cookie_store=os.getenv("MIRROR_COOKIE_STORE", "file").lower(),
    )
