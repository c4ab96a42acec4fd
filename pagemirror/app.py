"""
pagemirror - Main Application
Flask app exposing the fetch-and-rewrite endpoint and the thin client page
"""

import logging
from typing import Optional

from flask import Flask, Response, jsonify, render_template, request
from flask_cors import CORS

from .config import MirrorConfig, get_config, set_config
from .envelope import error_envelope, serialize_envelope
from .errors import ProxyError
from .proxy import MirrorProxy
from .url_resolver import RequestContext


logger = logging.getLogger(__name__)

# Sec-Fetch-Dest values for which the browser wants the resource itself
RAW_DESTINATIONS = {
    'audio', 'document', 'embed', 'font', 'frame', 'iframe', 'image',
    'manifest', 'object', 'script', 'style', 'track', 'video', 'worker',
}


def _first(value: str) -> str:
    return value.split(',')[0].strip()


def request_context(flask_request) -> RequestContext:
    """Scheme and host the client used to reach us, honouring reverse proxies"""
    forwarded_proto = flask_request.headers.get('X-Forwarded-Proto', flask_request.scheme)
    forwarded_host = flask_request.headers.get('X-Forwarded-Host', flask_request.host)
    return RequestContext(scheme=_first(forwarded_proto), host=_first(forwarded_host))


def wants_raw(flask_request) -> bool:
    """Decide between the JSON envelope and the bare body"""
    response_format = flask_request.args.get('format', '').lower()
    if response_format == 'json':
        return False
    if response_format == 'raw':
        return True
    return flask_request.headers.get('Sec-Fetch-Dest', '').lower() in RAW_DESTINATIONS


def json_response(envelope, http_status: int) -> Response:
    body, status = serialize_envelope(envelope, http_status)
    return Response(body, status=status, content_type='application/json; charset=utf-8')


def create_app(config: Optional[MirrorConfig] = None,
               proxy: Optional[MirrorProxy] = None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config: Optional MirrorConfig instance
        proxy: Optional MirrorProxy, mainly to inject a fetch transport in tests

    Returns:
        Configured Flask application
    """
    app = Flask(__name__,
                static_folder='static',
                template_folder='templates')

    CORS(app, resources={r"/*": {"origins": "*"}})

    if config:
        set_config(config)
    config = get_config()

    app.config['MIRROR_CONFIG'] = config
    app.config['MIRROR_PROXY'] = proxy or MirrorProxy(config)

    @app.route('/')
    def index():
        """Serve the thin client page"""
        return render_template('index.html', config=config)

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok'})

    @app.route(config.endpoint, methods=['GET'])
    def proxy_endpoint():
        """
        Fetch ?url=... and answer with the JSON envelope, or with the
        rewritten body when the browser asks for a subresource.
        """
        mirror: MirrorProxy = app.config['MIRROR_PROXY']
        raw_url = request.args.get('url', '')
        ctx = request_context(request)
        prefix = f"{ctx.scheme}://{ctx.host}{request.script_root}{config.endpoint}?url="

        if not wants_raw(request):
            envelope, http_status = mirror.handle(raw_url, prefix, ctx)
            return json_response(envelope, http_status)

        try:
            raw = mirror.fetch_raw(raw_url, prefix, ctx)
        except ProxyError as e:
            return json_response(*error_envelope(e, getattr(e, 'attempted_url', '')))

        return Response(
            raw.body,
            status=raw.status_code,
            content_type=raw.content_type or 'application/octet-stream',
        )

    # ============== Error Handlers ==============

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'success': False, 'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'success': False, 'error': 'Only GET is supported'}), 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error("Unhandled error: %s", e)
        return jsonify({'success': False, 'error': 'Internal proxy error'}), 500

    return app
