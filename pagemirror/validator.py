"""
pagemirror - Target URL Validator
"""

import ipaddress
import re
from urllib.parse import urlsplit

from .errors import EmptyInput, InvalidUrlFormat


ALLOWED_SCHEMES = ('http', 'https', 'ftp', 'ftps')

SCHEME_REGEX = re.compile(r'^(?:f|ht)tps?://', re.IGNORECASE)

# RFC 3986 reserved and unreserved characters plus '%' for escapes
URL_CHARS_REGEX = re.compile(r"^[A-Za-z0-9\-._~:/?#\[\]@!$&'()*+,;=%]+$")

PERCENT_REGEX = re.compile(r'%(?![0-9A-Fa-f]{2})')

HOST_LABEL_REGEX = re.compile(r'^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$')


def _is_valid_host(hostname: str, netloc: str) -> bool:
    if not hostname:
        return False

    if '[' in netloc:
        try:
            ipaddress.IPv6Address(hostname)
        except ValueError:
            return False
        return True

    if len(hostname) > 253:
        return False

    labels = hostname.rstrip('.').split('.')
    return all(HOST_LABEL_REGEX.match(label) for label in labels)


def is_valid_url(url: str) -> bool:
    """
    Check if a URL is syntactically valid for fetching.

    Args:
        url: URL to validate

    Returns:
        True if valid, False otherwise
    """
    if not url or not URL_CHARS_REGEX.match(url) or PERCENT_REGEX.search(url):
        return False

    try:
        result = urlsplit(url)
        # Accessing .port validates it
        result.port
    except ValueError:
        return False

    if result.scheme.lower() not in ALLOWED_SCHEMES or not result.netloc:
        return False

    return _is_valid_host(result.hostname or '', result.netloc)


def normalize_target_url(raw: str) -> str:
    """
    Normalize a user supplied URL by trimming it and defaulting to https.

    Args:
        raw: The URL as typed by the user, possibly without a scheme

    Returns:
        The absolute URL to fetch

    Raises:
        EmptyInput: nothing left after trimming
        InvalidUrlFormat: the normalized URL is not well formed
    """
    url = (raw or '').strip()
    if not url:
        raise EmptyInput()

    if not SCHEME_REGEX.match(url):
        url = 'https://' + url

    if not is_valid_url(url):
        raise InvalidUrlFormat(url)

    return url
