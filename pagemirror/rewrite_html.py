"""
pagemirror - HTML Rewriter
Base tag normalization, CSP/SRI stripping and URL attribute rewriting.
Works on the raw markup with patterns; script bodies are never touched here.
"""

import re
from html import escape, unescape
from typing import Callable, Optional

from .context import RewriteContext, substitute


# Attributes that contain URLs
URL_ATTRIBUTES = {
    'src', 'href', 'action', 'data-src', 'poster', 'background', 'data-url',
    'data-href', 'formaction', 'cite', 'longdesc', 'icon', 'manifest',
    'xlink:href'
}

# Attributes that contain srcset
SRCSET_ATTRIBUTES = {'srcset', 'imagesrcset', 'data-srcset'}

# Attributes that would block modified resources from loading
FORBIDDEN_ATTRIBUTES = {'integrity', 'nonce'}

# Markup fragments shared by the patterns below: the inside of a tag,
# honouring quoted attribute values that contain '>'
_TAG_BODY = r'''(?:"[^"]*"|'[^']*'|[^'">])*'''

TAG_REGEX = re.compile(r'<(?P<name>[a-zA-Z][a-zA-Z0-9:._-]*)(?P<attrs>' + _TAG_BODY + r')>')

ATTR_REGEX = re.compile(
    r'''(?P<lead>\s+)(?P<name>[^\s"'>/=]+)'''
    r'''(?:(?P<eq>\s*=\s*)(?P<value>"[^"]*"|'[^']*'|[^\s"'>]+))?'''
)

SCRIPT_BLOCK_REGEX = re.compile(
    r'(?P<open><script\b' + _TAG_BODY + r'>)(?P<body>.*?)(?P<close></script\s*>)',
    re.IGNORECASE | re.DOTALL
)

STYLE_BLOCK_REGEX = re.compile(
    r'(?P<open><style\b' + _TAG_BODY + r'>)(?P<body>.*?)(?P<close></style\s*>)',
    re.IGNORECASE | re.DOTALL
)

BASE_TAG_REGEX = re.compile(r'<base\b' + _TAG_BODY + r'>', re.IGNORECASE)

HEAD_OPEN_REGEX = re.compile(r'<head\b' + _TAG_BODY + r'>', re.IGNORECASE)

META_TAG_REGEX = re.compile(r'<meta\b' + _TAG_BODY + r'>', re.IGNORECASE)

CSP_EQUIV_REGEX = re.compile(
    r'''http-equiv\s*=\s*["']?\s*content-security-policy''', re.IGNORECASE
)

REFRESH_EQUIV_REGEX = re.compile(r'''http-equiv\s*=\s*["']?\s*refresh''', re.IGNORECASE)

REFRESH_URL_REGEX = re.compile(r'''(?P<head>url\s*=\s*)(?P<q>['"]?)(?P<url>[^'"]+)(?P=q)''', re.IGNORECASE)

LINK_INTEGRITY_REGEX = re.compile(
    r'''(?P<tag><link\b[^>]*?)\s+integrity\s*=\s*(?:"[^"]*"?|'[^']*'?|[^\s>]*)''',
    re.IGNORECASE
)


def map_outside_scripts(html: str, fn: Callable[[str], str]) -> str:
    """
    Apply fn to the markup outside <script> bodies.

    Opening script tags are passed to fn on their own so their attributes
    are still processed; bodies and closing tags are kept verbatim.
    """
    parts = []
    pos = 0
    for match in SCRIPT_BLOCK_REGEX.finditer(html):
        parts.append(fn(html[pos:match.start()]))
        parts.append(fn(match.group('open')))
        parts.append(match.group('body'))
        parts.append(match.group('close'))
        pos = match.end()
    parts.append(fn(html[pos:]))
    return ''.join(parts)


def _map_style_attributes(markup: str, fn: Callable[[str], str]) -> str:
    def replace_tag(tag_match):
        def replace_attr(attr_match):
            raw = attr_match.group('value')
            if raw is None or attr_match.group('name').lower() != 'style':
                return attr_match.group(0)
            quote = raw[0] if raw[:1] in ('"', "'") else ''
            inner = raw[1:-1] if quote else raw
            return (f"{attr_match.group('lead')}{attr_match.group('name')}"
                    f"{attr_match.group('eq')}{quote}{fn(inner)}{quote}")

        attrs = tag_match.group('attrs')
        new_attrs = ATTR_REGEX.sub(replace_attr, attrs)
        if new_attrs == attrs:
            return tag_match.group(0)
        return f"<{tag_match.group('name')}{new_attrs}>"

    return TAG_REGEX.sub(replace_tag, markup)


def map_styles(html: str, fn: Callable[[str], str]) -> str:
    """
    Apply fn to CSS embedded in markup: <style> bodies and style attributes.

    Attribute values are passed still HTML-escaped. Script bodies and plain
    text are left alone.
    """
    def fragment(markup: str) -> str:
        parts = []
        pos = 0
        for match in STYLE_BLOCK_REGEX.finditer(markup):
            parts.append(_map_style_attributes(markup[pos:match.start()], fn))
            parts.append(_map_style_attributes(match.group('open'), fn))
            parts.append(fn(match.group('body')))
            parts.append(match.group('close'))
            pos = match.end()
        parts.append(_map_style_attributes(markup[pos:], fn))
        return ''.join(parts)

    return map_outside_scripts(html, fragment)


def _unquote_attr(raw: str) -> tuple:
    """Split an attribute value token into (quote, unescaped value)"""
    if raw[:1] in ('"', "'"):
        return raw[0], unescape(raw[1:-1])
    return '', unescape(raw)


class HTMLRewriter:
    """
    Pattern based HTML rewriter.
    """

    def __init__(self, ctx: RewriteContext):
        self.ctx = ctx

    # ---- pass 1 ----

    def normalize_base_tag(self, html: str) -> str:
        """
        Point the document's <base> at the final URL.

        Replaces the href of the first <base> tag, or injects one right after
        <head>, or prepends one when the document has no <head>.
        """
        href = escape(self.ctx.base_url, quote=True)
        existing = BASE_TAG_REGEX.search(html)

        if existing:
            tag = existing.group(0)
            new_tag = self._set_href(tag, href)
            return html[:existing.start()] + new_tag + html[existing.end():]

        base_tag = f'<base href="{href}">'
        head = HEAD_OPEN_REGEX.search(html)
        if head:
            return html[:head.end()] + base_tag + html[head.end():]
        return base_tag + html

    @staticmethod
    def _set_href(tag: str, href: str) -> str:
        replaced = []

        def replace_attr(match):
            if match.group('name').lower() != 'href' or replaced:
                return match.group(0)
            replaced.append(True)
            return f'{match.group("lead")}href="{href}"'

        inner = ATTR_REGEX.sub(replace_attr, tag[len('<base'):-1])
        if not replaced:
            inner = f' href="{href}"' + inner
        return '<base' + inner + '>'

    # ---- pass 2 ----

    def strip_security(self, html: str) -> str:
        """Remove CSP meta tags and integrity/nonce attributes"""
        return map_outside_scripts(html, self._strip_fragment)

    def _strip_fragment(self, fragment: str) -> str:
        fragment = META_TAG_REGEX.sub(
            lambda m: '' if CSP_EQUIV_REGEX.search(m.group(0)) else m.group(0),
            fragment
        )
        fragment = substitute(TAG_REGEX, fragment, self._strip_tag, self.ctx)

        # <link> tags whose integrity value is unterminated
        count = 1
        while count:
            fragment, count = LINK_INTEGRITY_REGEX.subn(r'\g<tag>', fragment)
        return fragment

    @staticmethod
    def _strip_tag(match, ctx) -> Optional[str]:
        attrs = match.group('attrs')
        stripped = ATTR_REGEX.sub(
            lambda m: '' if m.group('name').lower() in FORBIDDEN_ATTRIBUTES else m.group(0),
            attrs
        )
        if stripped == attrs:
            return None
        return f"<{match.group('name')}{stripped}>"

    # ---- pass 4 ----

    def rewrite_attributes(self, html: str) -> str:
        """Rewrite URL-bearing attributes to their proxied form"""
        return map_outside_scripts(
            html, lambda fragment: substitute(TAG_REGEX, fragment, self._rewrite_tag, self.ctx)
        )

    def _rewrite_tag(self, match, ctx) -> Optional[str]:
        tag_name = match.group('name').lower()
        if tag_name == 'base':
            return None

        attrs = match.group('attrs')
        is_refresh = tag_name == 'meta' and REFRESH_EQUIV_REGEX.search(attrs)

        def replace_attr(attr_match):
            if attr_match.group('value') is None:
                return attr_match.group(0)
            name = attr_match.group('name').lower()
            quote, value = _unquote_attr(attr_match.group('value'))

            if name in URL_ATTRIBUTES or (name == 'data' and tag_name == 'object'):
                new_value = ctx.rewrite_url(value)
            elif name in SRCSET_ATTRIBUTES:
                new_value = self.wrap_srcset(value)
            elif name == 'content' and is_refresh:
                new_value = self._rewrite_refresh(value)
            else:
                new_value = None

            if new_value is None:
                return attr_match.group(0)
            quote = quote or '"'
            return (f"{attr_match.group('lead')}{attr_match.group('name')}"
                    f"{attr_match.group('eq')}{quote}{escape(new_value, quote=True)}{quote}")

        new_attrs = ATTR_REGEX.sub(replace_attr, attrs)
        if new_attrs == attrs:
            return None
        return f"<{match.group('name')}{new_attrs}>"

    def _rewrite_refresh(self, content: str) -> Optional[str]:
        match = REFRESH_URL_REGEX.search(content)
        if not match:
            return None
        new_url = self.ctx.rewrite_url(match.group('url'))
        if new_url is None:
            return None
        return content[:match.start('url')] + new_url + content[match.end('url'):]

    def wrap_srcset(self, srcset: str) -> Optional[str]:
        """
        Rewrite every candidate URL of a srcset value.

        Descriptors ('2x', '640w') are kept. Values carrying data: URLs are
        left alone since their commas make the candidate list ambiguous.

        Returns:
            The rewritten value, or None when nothing changed
        """
        if not srcset or 'data:' in srcset.lower():
            return None

        parts = []
        changed = False
        for candidate in srcset.split(','):
            candidate = candidate.strip()
            if not candidate:
                continue

            src_parts = candidate.split()
            rewritten = self.ctx.rewrite_url(src_parts[0])
            if rewritten is not None:
                src_parts[0] = rewritten
                changed = True
            parts.append(' '.join(src_parts))

        return ', '.join(parts) if changed else None
