"""
pagemirror - Fetch Client
Outbound request to the target with browser-like headers, a per-fetch cookie
jar carried across redirects, TLS verification and a hard timeout
"""

import logging
import os
import ssl
import tempfile
import warnings
from contextlib import contextmanager
from dataclasses import dataclass
from http.cookiejar import CookieJar, DefaultCookiePolicy, MozillaCookieJar
from typing import Dict, Iterator, Optional
from urllib.parse import urlsplit

import httpx

from .config import MirrorConfig, get_config
from .errors import ResourceAcquisitionWarning
from .utils import get_base_url, get_charset


logger = logging.getLogger(__name__)

# Accepted by the validator, but httpx only speaks HTTP
UNFETCHABLE_SCHEMES = ('ftp', 'ftps')


@dataclass(frozen=True)
class FetchOutcome:
    """Result of one outbound fetch, never mutated after creation"""
    final_url: str
    raw_body: bytes = b''
    status_code: int = 0
    content_type: Optional[str] = None
    transport_error: Optional[str] = None
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.transport_error is None and 200 <= self.status_code < 400

    @property
    def charset(self) -> Optional[str]:
        return get_charset(self.content_type)


def _refuse_all_jar() -> CookieJar:
    return CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))


@contextmanager
def scoped_cookie_jar(config: Optional[MirrorConfig] = None) -> Iterator[CookieJar]:
    """
    Yield a cookie jar owned by exactly one fetch.

    In 'file' mode a fresh temp file is reserved for the fetch and named as
    the jar's file. Cookies live in the jar itself; the file is removed when
    the fetch ends. When the temp file cannot be created the fetch goes on
    without cookie persistence.
    """
    config = config or get_config()
    path = None

    if config.cookie_store == 'file':
        try:
            fd, path = tempfile.mkstemp(prefix='pagemirror-cookies-', suffix='.txt')
            os.close(fd)
            jar = MozillaCookieJar(path)
        except OSError as e:
            message = f"Cookie store unavailable, continuing without cookies: {e}"
            logger.warning(message)
            warnings.warn(message, ResourceAcquisitionWarning, stacklevel=3)
            path = None
            jar = _refuse_all_jar()
    elif config.cookie_store == 'memory':
        jar = CookieJar()
    else:
        jar = _refuse_all_jar()

    try:
        yield jar
    finally:
        if path is not None:
            try:
                os.unlink(path)
            except FileNotFoundError:
                pass
        jar.clear()


def build_ssl_context() -> ssl.SSLContext:
    """TLS 1.2+ with certificate and hostname verification"""
    context = ssl.create_default_context()
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    return context


def build_request_headers(url: str, config: Optional[MirrorConfig] = None) -> Dict[str, str]:
    """Build headers for the upstream request"""
    config = config or get_config()
    origin = get_base_url(url)

    return {
        'User-Agent': config.user_agent,
        'Accept': config.accept,
        'Accept-Language': config.accept_language,
        'Accept-Encoding': 'gzip, deflate, br',
        'DNT': '1',
        'Upgrade-Insecure-Requests': '1',
        'Origin': origin,
        'Referer': origin + '/',
    }


class FetchClient:
    """
    Performs the outbound GET for a target URL.

    A new httpx client and cookie jar are created for every fetch, so no
    state is shared between concurrent requests.
    """

    def __init__(self, config: Optional[MirrorConfig] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        self.config = config or get_config()
        self.transport = transport
        if not self.config.verify_tls:
            logger.warning("TLS certificate verification is disabled by configuration")

    def _client(self, jar: CookieJar) -> httpx.Client:
        config = self.config
        kwargs = {
            'timeout': httpx.Timeout(config.timeout, connect=config.connect_timeout),
            'follow_redirects': True,
            'max_redirects': config.max_redirects,
            'cookies': jar,
        }
        if self.transport is not None:
            kwargs['transport'] = self.transport
        else:
            kwargs['verify'] = build_ssl_context() if config.verify_tls else False
        return httpx.Client(**kwargs)

    def fetch(self, url: str) -> FetchOutcome:
        """
        Fetch a target URL.

        Args:
            url: A validated absolute URL

        Returns:
            FetchOutcome; transport failures are reported in it, not raised
        """
        scheme = urlsplit(url).scheme.lower()
        if scheme in UNFETCHABLE_SCHEMES:
            logger.warning("Refusing %s target %s", scheme, url)
            return FetchOutcome(
                final_url=url,
                transport_error=f"Unsupported protocol {scheme}://: only http and https targets can be fetched",
            )

        headers = build_request_headers(url, self.config)
        logger.info("Fetching %s", url)

        with scoped_cookie_jar(self.config) as jar:
            try:
                with self._client(jar) as client:
                    response = client.get(url, headers=headers)
                    for hop in response.history:
                        logger.debug("Redirect %s -> %s", hop.status_code, hop.headers.get('location'))
            except httpx.TimeoutException as e:
                logger.warning("Timeout fetching %s: %s", url, e)
                return FetchOutcome(final_url=url, transport_error=f"Request timed out: {e}",
                                    timed_out=True)
            except httpx.TooManyRedirects:
                logger.warning("Too many redirects fetching %s", url)
                return FetchOutcome(
                    final_url=url,
                    transport_error=f"Maximum ({self.config.max_redirects}) redirects followed",
                )
            except (httpx.RequestError, httpx.InvalidURL) as e:
                logger.warning("Transport error fetching %s: %s", url, e)
                return FetchOutcome(final_url=url, transport_error=str(e) or type(e).__name__)

        final_url = str(response.url)
        logger.info("Fetched %s -> %s (%s, %d bytes)", url, final_url,
                    response.status_code, len(response.content))

        return FetchOutcome(
            final_url=final_url,
            raw_body=response.content,
            status_code=response.status_code,
            content_type=response.headers.get('content-type'),
        )
