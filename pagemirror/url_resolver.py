"""
pagemirror - URL Resolver
Resolves references found in fetched pages against the page's final URL
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import urlsplit


logger = logging.getLogger(__name__)

# scheme ":" per RFC 3986, which also covers data:, mailto: and tel:
ABSOLUTE_URL_REGEX = re.compile(r'^[a-zA-Z][a-zA-Z0-9+.\-]*:')

SKIP_PREFIXES = ('#', '//', 'data:', 'mailto:', 'tel:', 'javascript:', 'about:', 'blob:')


@dataclass(frozen=True)
class RequestContext:
    """Scheme and host of the inbound request, used to repair a base without them"""
    scheme: str = 'https'
    host: str = ''


def is_absolute(url: str) -> bool:
    """Check if a reference carries its own scheme"""
    return bool(url) and bool(ABSOLUTE_URL_REGEX.match(url))


def should_skip_url(url: str) -> bool:
    """
    Check if a reference must be left untouched by the rewrite passes.

    Args:
        url: The reference as found in the document

    Returns:
        True for empty, fragment-only, scheme-relative or absolute references
    """
    if not url:
        return True
    lowered = url.lower()
    return lowered.startswith(SKIP_PREFIXES) or is_absolute(url)


def _split_reference(reference: str) -> Tuple[str, str]:
    """Split a reference into its path and its '?query#fragment' tail"""
    cut = len(reference)
    for marker in ('?', '#'):
        index = reference.find(marker)
        if index != -1:
            cut = min(cut, index)
    return reference[:cut], reference[cut:]


def _strip_query_and_fragment(url: str) -> str:
    return _split_reference(url)[0]


def _directory_of(path: str) -> str:
    if path == '/' or path.endswith('/'):
        directory = path
    else:
        directory = path.rsplit('/', 1)[0] if '/' in path else ''

    if directory in ('', '.', '\\'):
        return '/'
    if not directory.startswith('/'):
        directory = '/' + directory
    if not directory.endswith('/'):
        directory += '/'
    return directory


def normalize_path(path: str) -> str:
    """
    Remove dot segments and redundant slashes from an absolute path.

    '..' never climbs above the root; extra ones are dropped.
    """
    segments = []
    for segment in path.split('/'):
        if segment in ('', '.'):
            continue
        if segment == '..':
            if segments:
                segments.pop()
            continue
        segments.append(segment)

    normalized = '/' + '/'.join(segments)
    last = path.rsplit('/', 1)[-1]
    if segments and (path.endswith('/') or last in ('.', '..')):
        normalized += '/'
    return normalized


def _base_parts(base: str, request: Optional[RequestContext]) -> Optional[Tuple[str, str, str]]:
    """Return (scheme, netloc, path) of the base, repairing it from the request"""
    parsed = urlsplit(base)
    scheme, netloc, path = parsed.scheme, parsed.netloc, parsed.path

    if scheme and netloc:
        return scheme, netloc, path

    if request is None or not request.host:
        return None

    if not netloc:
        if base.startswith('//'):
            return None
        # A host-less base is treated as a path on the inbound request's host
        path = parsed.path if parsed.path.startswith('/') else '/' + parsed.path
        netloc = request.host
    return scheme or request.scheme or 'https', netloc, path


def resolve(reference: str, base: str, request: Optional[RequestContext] = None) -> str:
    """
    Resolve a possibly relative reference against a base URL.

    Args:
        reference: The reference found in the document (href, src, ...)
        base: The absolute URL the reference is relative to
        request: Scheme and host to repair a base that lacks them

    Returns:
        A best-effort absolute URL; the reference itself when it cannot be
        resolved. Never raises.
    """
    try:
        if not reference:
            return base

        if is_absolute(reference):
            return reference

        if reference.startswith('#') or reference.startswith('?'):
            return _strip_query_and_fragment(base) + reference

        if reference.startswith('//'):
            scheme = urlsplit(base).scheme or (request.scheme if request else '')
            if not scheme:
                return reference
            return f"{scheme}:{reference}"

        parts = _base_parts(base, request)
        if parts is None:
            logger.debug("Cannot resolve %r against %r", reference, base)
            return reference
        scheme, netloc, base_path = parts

        ref_path, tail = _split_reference(reference)
        if ref_path.startswith('/'):
            path = ref_path
        else:
            path = _directory_of(base_path) + ref_path

        return f"{scheme}://{netloc}{normalize_path(path)}{tail}"
    except ValueError:
        logger.debug("Malformed URL while resolving %r against %r", reference, base)
        return reference
