"""
pagemirror - CSS Rewriter
Rewrites url() references and @import strings in stylesheets, <style>
blocks and style attributes
"""

import re
from html import unescape
from typing import Optional

from .context import RewriteContext, splice, substitute


class CSSRewriter:
    """
    CSS rewriter that transforms URLs in CSS content.
    """

    # Quotes may be HTML entities when the CSS sits in a style attribute
    URL_REGEX = re.compile(
        r'''url\(\s*(?P<q>&quot;|&#0*39;|&#x0*27;|&apos;|['"]?)(?P<url>[^'")]*?)(?P=q)\s*\)''',
        re.IGNORECASE
    )

    # @import "path" and @import 'path'; the url() form is covered above
    IMPORT_REGEX = re.compile(r'''@import\s+(?P<q>['"])(?P<url>[^'"]+)(?P=q)''', re.IGNORECASE)

    def __init__(self, ctx: RewriteContext):
        self.ctx = ctx

    def rewrite(self, css: str) -> str:
        """
        Rewrite CSS content, transforming relative URLs to the proxy form.

        Args:
            css: The CSS string (or markup containing CSS) to rewrite

        Returns:
            The rewritten CSS string
        """
        if not css or ('url(' not in css.lower() and '@import' not in css.lower()):
            return css

        css = substitute(self.URL_REGEX, css, self._replace_url, self.ctx)
        return substitute(self.IMPORT_REGEX, css, self._replace_url, self.ctx)

    @staticmethod
    def _replace_url(match, ctx) -> Optional[str]:
        rewritten = ctx.rewrite_url(unescape(match.group('url')))
        if rewritten is None:
            return None
        return splice(match, 'url', rewritten)
