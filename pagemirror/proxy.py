"""
pagemirror - Proxy core
validate -> fetch -> rewrite -> envelope, one request at a time
"""

import base64
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from .config import MirrorConfig, get_config
from .context import RewriteContext
from .envelope import ProxyResponseEnvelope, build_envelope, error_envelope
from .errors import EmptyInput, InvalidUrlFormat, TransportError
from .fetcher import FetchClient, FetchOutcome
from .rewriter import ContentRewriter
from .url_resolver import RequestContext
from .utils import (
    decode_body, extract_title, get_mime_type, is_binary_content,
    is_css_content, is_html_content, is_javascript_content
)
from .validator import normalize_target_url


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawResponse:
    """A proxied body served directly, for subresource requests"""
    body: bytes
    status_code: int
    content_type: Optional[str]


class MirrorProxy:
    """
    The single entry point used by the HTTP layer.

    Every call is independent: a fresh fetch, cookie jar and rewrite context
    per request.
    """

    def __init__(self, config: Optional[MirrorConfig] = None,
                 fetcher: Optional[FetchClient] = None):
        self.config = config or get_config()
        self.fetcher = fetcher or FetchClient(self.config)

    def handle(self, raw_url: Optional[str], proxy_prefix: str,
               request: Optional[RequestContext] = None) -> Tuple[ProxyResponseEnvelope, int]:
        """
        Fetch a target and build the JSON envelope.

        Args:
            raw_url: The URL as supplied by the user
            proxy_prefix: Absolute proxy address ending in '?url='
            request: Scheme and host of the inbound request

        Returns:
            (envelope, http_status)
        """
        try:
            target = normalize_target_url(raw_url or '')
        except InvalidUrlFormat as e:
            logger.info("Rejected URL %r", e.attempted_url)
            return error_envelope(e, e.attempted_url)
        except EmptyInput as e:
            return error_envelope(e)

        outcome = self.fetcher.fetch(target)
        if outcome.transport_error is not None:
            return build_envelope(outcome)

        content, title, encoding = self.render(outcome, proxy_prefix, request)
        return build_envelope(outcome, content, title, encoding)

    def render(self, outcome: FetchOutcome, proxy_prefix: str,
               request: Optional[RequestContext] = None) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        """
        Turn a fetched body into envelope content.

        HTML is rewritten, other text passes through decoded, and binary
        bodies pass through base64 encoded.

        Returns:
            (content, title, content_encoding)
        """
        if not outcome.raw_body:
            return ('' if outcome.ok else None), None, None

        content_type = outcome.content_type

        if is_html_content(content_type):
            html = decode_body(outcome.raw_body, content_type)
            ctx = RewriteContext(outcome.final_url, proxy_prefix, request)
            return ContentRewriter(ctx).rewrite_html(html), extract_title(html), None

        if is_binary_content(content_type):
            return base64.b64encode(outcome.raw_body).decode('ascii'), None, 'base64'

        return decode_body(outcome.raw_body, content_type), None, None

    def fetch_raw(self, raw_url: Optional[str], proxy_prefix: str,
                  request: Optional[RequestContext] = None) -> RawResponse:
        """
        Fetch a target and return its body for direct use by the browser.

        HTML, CSS and JavaScript get the passes that apply to them; anything
        else is returned byte for byte.

        Raises:
            EmptyInput, InvalidUrlFormat: bad input
            TransportError: no response from the target
        """
        target = normalize_target_url(raw_url or '')
        outcome = self.fetcher.fetch(target)
        if outcome.transport_error is not None:
            raise TransportError(outcome.transport_error, timed_out=outcome.timed_out)

        content_type = outcome.content_type
        ctx = RewriteContext(outcome.final_url, proxy_prefix, request)
        rewriter = ContentRewriter(ctx)

        if is_html_content(content_type):
            text = rewriter.rewrite_html(decode_body(outcome.raw_body, content_type))
        elif is_css_content(content_type):
            text = rewriter.rewrite_css(decode_body(outcome.raw_body, content_type))
        elif is_javascript_content(content_type):
            text = rewriter.rewrite_js(decode_body(outcome.raw_body, content_type))
        else:
            return RawResponse(outcome.raw_body, outcome.status_code, content_type)

        return RawResponse(
            body=text.encode('utf-8'),
            status_code=outcome.status_code,
            content_type=f"{get_mime_type(content_type)}; charset=utf-8",
        )
