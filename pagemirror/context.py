"""
pagemirror - Rewrite context
Per-request state shared by every rewrite pass
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import quote, unquote

from .url_resolver import RequestContext, is_absolute, resolve, should_skip_url


# Values that look like unexpanded template or script expressions
TEMPLATE_MARKERS = ('{{', '${', '<%', '{%')

Replacer = Callable[[re.Match, 'RewriteContext'], Optional[str]]


@dataclass(frozen=True)
class RewriteContext:
    """
    Base URL and proxy prefix for one request.

    Attributes:
        base_url: The final URL of the fetched document
        proxy_prefix: Absolute address of the proxy endpoint ending in '?url='
        request: Inbound scheme and host, used to repair a relative base
    """
    base_url: str
    proxy_prefix: str
    request: Optional[RequestContext] = None

    def is_proxied(self, url: str) -> bool:
        return url.startswith(self.proxy_prefix)

    def proxify(self, absolute_url: str) -> str:
        """Proxy form of an absolute URL"""
        return f"{self.proxy_prefix}{quote(absolute_url, safe='')}"

    def unproxify(self, url: str) -> str:
        """Absolute URL carried by a proxy form, or the value unchanged"""
        if not self.is_proxied(url):
            return url
        return unquote(url[len(self.proxy_prefix):])

    def resolve(self, url: str) -> str:
        return resolve(url, self.base_url, self.request)

    def rewrite_url(self, url: str) -> Optional[str]:
        """
        Rewrite a reference to go through the proxy.

        Args:
            url: The reference as found in the document, already unescaped

        Returns:
            The proxy URL, or None when the reference must be left untouched
            (absolute, fragment-only, data:, mailto:, tel:, templated)
        """
        if url is None:
            return None
        url = url.strip()
        if should_skip_url(url) or self.is_proxied(url):
            return None
        if any(marker in url for marker in TEMPLATE_MARKERS):
            return None

        absolute = self.resolve(url)
        if not is_absolute(absolute):
            # Resolution failed
            return None
        return self.proxify(absolute)


def substitute(pattern: re.Pattern, text: str, replacer: Replacer,
               ctx: RewriteContext) -> str:
    """
    Apply a replacer to every match of a pattern.

    The replacer returns the replacement text, or None to keep the match as
    it is.
    """
    def _replace(match: re.Match) -> str:
        replacement = replacer(match, ctx)
        return match.group(0) if replacement is None else replacement

    return pattern.sub(_replace, text)


def splice(match: re.Match, group: str, value: str) -> str:
    """The whole match with one named group replaced by value"""
    start = match.start(group) - match.start(0)
    end = match.end(group) - match.start(0)
    whole = match.group(0)
    return whole[:start] + value + whole[end:]
