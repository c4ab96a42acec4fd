"""
pagemirror - JavaScript Rewriter
Best-effort rewriting of string literal URLs in inline scripts.

Only plain string literals are touched. Anything that looks like an
expression (concatenation, template placeholders, escapes) is left as it is.
"""

import re
from typing import Callable, Optional

from .context import RewriteContext, splice, substitute
from .rewrite_html import SCRIPT_BLOCK_REGEX


# A single or double quoted literal without escapes or line breaks
_STRING = r'''(?P<q>['"])(?P<url>(?:(?!(?P=q))[^\\\r\n])*)(?P=q)'''

# The literal is not the left operand of a concatenation
_NOT_CONCAT = r'(?!\s*\+)'

_HTTP_METHOD = r'(?i:GET|POST|PUT|DELETE|PATCH|HEAD|OPTIONS)'

# Common dynamic-fetch and navigation idioms
URL_PATTERNS = [
    re.compile(r'\bfetch\s*\(\s*' + _STRING + _NOT_CONCAT),
    re.compile(r'''\.open\s*\(\s*(?P<mq>['"])''' + _HTTP_METHOD + r'(?P=mq)\s*,\s*' + _STRING + _NOT_CONCAT),
    re.compile(r'\blocation(?:\.href)?\s*=(?!=)\s*' + _STRING + _NOT_CONCAT),
    re.compile(r'\blocation\.(?:assign|replace)\s*\(\s*' + _STRING + _NOT_CONCAT),
    re.compile(r'\bwindow\.open\s*\(\s*' + _STRING + _NOT_CONCAT),
    re.compile(r'''\.setAttribute\s*\(\s*(?P<aq>['"])(?:src|href)(?P=aq)\s*,\s*''' + _STRING + _NOT_CONCAT),
]

# import x from '...', import {a} from '...', import '...', export {a} from '...'
IMPORT_REGEX = re.compile(
    r'''\b(?:import|export)\s*(?:[\w$*{}\s,]+?\s*from\s*)?''' + _STRING
)

DYNAMIC_IMPORT_REGEX = re.compile(r'\bimport\s*\(\s*' + _STRING + r'\s*\)')

SERVICE_WORKER_REGEX = re.compile(
    r'\b(?:window\.|self\.)?navigator\s*\.\s*serviceWorker\s*\.\s*register\s*\('
)

# Takes the place of navigator.serviceWorker.register and keeps the call's
# arguments; callers chaining .then/.catch still get a promise
SERVICE_WORKER_STUB = (
    "(function(url){console.log('[pagemirror] service worker registration blocked:', url);"
    "return Promise.reject(new Error('Service workers are disabled in proxied pages'));})("
)

TYPE_ATTR_REGEX = re.compile(r'''(?<![\w-])type\s*=\s*["']?\s*([^"'\s>]+)''', re.IGNORECASE)

MODULE_SPECIFIER_PREFIXES = ('./', '../', '/')


def is_javascript_type(open_tag: str) -> bool:
    """Check if a <script> opening tag declares (or defaults to) JavaScript"""
    match = TYPE_ATTR_REGEX.search(open_tag)
    if not match:
        return True
    script_type = match.group(1).lower()
    return ('javascript' in script_type or 'ecmascript' in script_type
            or script_type in ('module', 'text/jscript'))


def js_string_escape(value: str, quote: str) -> str:
    """Escape a value for a JS string literal delimited by quote"""
    return (value.replace('\\', '\\\\')
                 .replace(quote, '\\' + quote)
                 .replace('\n', '\\n')
                 .replace('\r', '\\r')
                 .replace('</', '<\\/'))


def map_script_bodies(html: str, fn: Callable[[str], str]) -> str:
    """Apply fn to the body of every JavaScript <script> element"""
    def replace_block(match):
        if not is_javascript_type(match.group('open')):
            return match.group(0)
        body = match.group('body')
        new_body = fn(body)
        if new_body == body:
            return match.group(0)
        return match.group('open') + new_body + match.group('close')

    return SCRIPT_BLOCK_REGEX.sub(replace_block, html)


class JSRewriter:
    """
    JavaScript rewriter for inline scripts and proxied script files.
    """

    def __init__(self, ctx: RewriteContext):
        self.ctx = ctx

    # ---- pass 3 ----

    def neutralize_service_workers(self, js: str) -> str:
        """Replace service worker registrations with a logging stub"""
        return SERVICE_WORKER_REGEX.sub(lambda m: SERVICE_WORKER_STUB, js)

    # ---- pass 6 ----

    def rewrite_urls(self, js: str) -> str:
        """Rewrite string literal URLs passed to fetch, XHR, location and friends"""
        if not js:
            return js
        for pattern in URL_PATTERNS:
            js = substitute(pattern, js, self._replace_literal, self.ctx)
        return js

    # ---- pass 7 ----

    def rewrite_imports(self, js: str) -> str:
        """Rewrite relative ES module specifiers"""
        if not js or ('import' not in js and 'export' not in js):
            return js
        js = substitute(IMPORT_REGEX, js, self._replace_specifier, self.ctx)
        return substitute(DYNAMIC_IMPORT_REGEX, js, self._replace_specifier, self.ctx)

    def rewrite(self, js: str) -> str:
        """
        Passes for a proxied script file.

        Module specifiers resolve against the script's own URL, so they are
        rewritten; fetch/location literals resolve against the embedding
        document, which is unknown here, so they are not.
        """
        js = self.neutralize_service_workers(js)
        return self.rewrite_imports(js)

    @staticmethod
    def _replace_literal(match, ctx) -> Optional[str]:
        rewritten = ctx.rewrite_url(match.group('url'))
        if rewritten is None:
            return None
        return splice(match, 'url', js_string_escape(rewritten, match.group('q')))

    @staticmethod
    def _replace_specifier(match, ctx) -> Optional[str]:
        specifier = match.group('url')
        if not specifier.startswith(MODULE_SPECIFIER_PREFIXES) or specifier.startswith('//'):
            return None
        return JSRewriter._replace_literal(match, ctx)
