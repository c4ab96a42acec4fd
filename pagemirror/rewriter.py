"""
pagemirror - Content Rewriting Module
Runs the rewrite passes over fetched HTML, CSS and JavaScript in a fixed order.
"""

import logging
from typing import Callable, List, Tuple

from .context import RewriteContext
from .rewrite_css import CSSRewriter
from .rewrite_html import HTMLRewriter, map_styles
from .rewrite_js import JSRewriter, map_script_bodies


logger = logging.getLogger(__name__)

Pass = Tuple[str, Callable[[str], str]]


class ContentRewriter:
    """Handles content rewriting for proxied content."""

    def __init__(self, ctx: RewriteContext):
        self.ctx = ctx
        self.html = HTMLRewriter(ctx)
        self.css = CSSRewriter(ctx)
        self.js = JSRewriter(ctx)

    def html_passes(self) -> List[Pass]:
        """The HTML passes, in the order they must run"""
        return [
            ('base tag', self.html.normalize_base_tag),
            ('security attributes', self.html.strip_security),
            ('service workers', lambda html: map_script_bodies(html, self.js.neutralize_service_workers)),
            ('url attributes', self.html.rewrite_attributes),
            ('css urls', lambda html: map_styles(html, self.css.rewrite)),
            ('inline script urls', lambda html: map_script_bodies(html, self.js.rewrite_urls)),
            ('module imports', lambda html: map_script_bodies(html, self.js.rewrite_imports)),
        ]

    def _apply(self, passes: List[Pass], content: str) -> str:
        for name, rewrite_pass in passes:
            try:
                content = rewrite_pass(content)
            except Exception:
                # A failing pass is skipped; the page is still served
                logger.exception("Rewrite pass %r failed for %s", name, self.ctx.base_url)
        return content

    def rewrite_html(self, html: str) -> str:
        """
        Rewrite all references in an HTML document.

        Args:
            html: Decoded HTML content

        Returns:
            HTML with a <base> pointing at the final URL and relative
            references routed through the proxy
        """
        return self._apply(self.html_passes(), html)

    def rewrite_css(self, css: str) -> str:
        """Rewrite a stylesheet served through the proxy"""
        return self._apply([('css urls', self.css.rewrite)], css)

    def rewrite_js(self, js: str) -> str:
        """Rewrite a script served through the proxy"""
        return self._apply([('script', self.js.rewrite)], js)
