"""
pagemirror - Utility Functions
"""

import re
from typing import Optional
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, UnicodeDammit


CHARSET_REGEX = re.compile(r'charset\s*=\s*["\']?([\w.:-]+)', re.IGNORECASE)


def get_base_url(url: str) -> str:
    """
    Get the base URL (scheme + netloc) from a full URL.

    Args:
        url: Full URL

    Returns:
        Base URL (e.g., https://example.com)
    """
    parsed = urlsplit(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def get_mime_type(content_type: Optional[str]) -> Optional[str]:
    """Media type without parameters, lowercased"""
    if not content_type:
        return None
    return content_type.split(';', 1)[0].strip().lower() or None


def get_charset(content_type: Optional[str]) -> Optional[str]:
    """Charset parameter of a Content-Type header, if any"""
    if not content_type:
        return None
    match = CHARSET_REGEX.search(content_type)
    return match.group(1).lower() if match else None


def is_html_content(content_type: Optional[str]) -> bool:
    """Check if content type is HTML."""
    mime = get_mime_type(content_type)
    return mime in ('text/html', 'application/xhtml+xml')


def is_css_content(content_type: Optional[str]) -> bool:
    """Check if content type is CSS."""
    return get_mime_type(content_type) == 'text/css'


def is_javascript_content(content_type: Optional[str]) -> bool:
    """Check if content type is JavaScript."""
    js_types = ['javascript', 'ecmascript']
    mime = get_mime_type(content_type) or ''
    return any(t in mime for t in js_types)


def is_binary_content(content_type: Optional[str]) -> bool:
    """Check if content type is binary."""
    text_types = ['text/', 'application/json', 'application/javascript', 'application/xml',
                  'application/xhtml+xml', 'application/ecmascript', '+json', '+xml']
    mime = get_mime_type(content_type)
    if not mime:
        return True
    return not any(t in mime for t in text_types)


def decode_body(body: bytes, content_type: Optional[str] = None) -> str:
    """
    Decode a fetched text body.

    The charset declared in the Content-Type header wins; otherwise the
    encoding is sniffed from a BOM, a <meta charset> declaration or the
    bytes themselves.
    """
    if not body:
        return ''

    declared = get_charset(content_type)
    dammit = UnicodeDammit(
        body,
        known_definite_encodings=[declared] if declared else [],
        is_html=is_html_content(content_type),
    )
    if dammit.unicode_markup is not None:
        return dammit.unicode_markup
    return body.decode('utf-8', errors='replace')


def extract_title(html: str) -> Optional[str]:
    """Text of the document's <title>, whitespace collapsed"""
    if not html:
        return None
    soup = BeautifulSoup(html, 'html.parser')
    title = soup.find('title')
    if title is None:
        return None
    text = ' '.join(title.get_text().split())
    return text or None
