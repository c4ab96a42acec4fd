"""
pagemirror - Response Envelope Builder
Maps fetch and rewrite outcomes to the JSON result returned to the client
"""

import json
import logging
from dataclasses import dataclass
from html import escape
from typing import Any, Dict, Optional, Tuple

from .errors import EncodingError, ProxyError, TransportError, UpstreamError
from .fetcher import FetchOutcome


logger = logging.getLogger(__name__)

CONNECTIVITY_MESSAGE = (
    "Failed to fetch content. Could not connect to the server, the URL may be "
    "invalid, or the target server is not responding."
)


@dataclass
class ProxyResponseEnvelope:
    """Output contract of the proxy endpoint"""
    success: bool
    content: Optional[str] = None
    status_code: int = 0
    final_url: str = ''
    raw_final_url: str = ''
    error: Optional[str] = None
    content_type: Optional[str] = None
    title: Optional[str] = None
    content_encoding: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'success': self.success,
            'content': self.content,
            'statusCode': self.status_code,
            'finalUrl': self.final_url,
            'rawFinalUrl': self.raw_final_url,
        }
        if self.error is not None:
            data['error'] = self.error
        if self.content_type is not None:
            data['contentType'] = self.content_type
        if self.title is not None:
            data['title'] = self.title
        if self.content_encoding is not None:
            data['contentEncoding'] = self.content_encoding
        return data


def describe_status(status_code: int) -> str:
    """
    Human readable failure description for a target status code.

    Args:
        status_code: The target's HTTP status, 0 when there was no response

    Returns:
        The error message shown to the user
    """
    if status_code == 0:
        return CONNECTIVITY_MESSAGE

    message = f"Failed to fetch content. The remote server responded with status: {status_code}."
    if status_code == 403:
        message += " Access Forbidden. The target site may be blocking direct access or proxy attempts."
    elif status_code == 404:
        message += " Not Found. The requested resource was not found on the target server."
    elif status_code >= 500:
        message += " The target server encountered an internal error."
    elif status_code >= 400:
        message += (" There was an issue with the request to the target server"
                    " (e.g., bad request, unauthorized).")
    return message


def build_envelope(outcome: FetchOutcome, content: Optional[str] = None,
                   title: Optional[str] = None,
                   content_encoding: Optional[str] = None) -> Tuple[ProxyResponseEnvelope, int]:
    """
    Build the envelope and the proxy's own HTTP status for a fetch outcome.

    Args:
        outcome: Result of the outbound fetch
        content: Rewritten or passthrough body, already in its final form
        title: Document title, HTML only
        content_encoding: 'base64' when content carries a binary body

    Returns:
        (envelope, http_status)
    """
    final_url = outcome.final_url or ''
    envelope = ProxyResponseEnvelope(
        success=False,
        status_code=outcome.status_code,
        final_url=escape(final_url, quote=True),
        raw_final_url=final_url,
        content_type=outcome.content_type,
    )

    if outcome.transport_error is not None:
        error = TransportError(f"{CONNECTIVITY_MESSAGE} Details: {outcome.transport_error}",
                               timed_out=outcome.timed_out)
        envelope.error = error.message
        envelope.content_type = None
        return envelope, error.http_status

    envelope.content = content
    envelope.title = title
    envelope.content_encoding = content_encoding if content is not None else None

    if outcome.ok:
        envelope.success = True
        return envelope, 200

    error = UpstreamError(describe_status(outcome.status_code), outcome.status_code)
    envelope.error = error.message
    return envelope, error.http_status


def error_envelope(error: ProxyError, final_url: str = '') -> Tuple[ProxyResponseEnvelope, int]:
    """Envelope for a failure raised before anything was fetched"""
    envelope = ProxyResponseEnvelope(
        success=False,
        error=error.message,
        final_url=escape(final_url, quote=True),
        raw_final_url=final_url,
    )
    return envelope, error.http_status


def _fallback_body(reason: str) -> bytes:
    error = EncodingError(f"The response could not be encoded: {reason}")
    return json.dumps({
        'success': False,
        'content': None,
        'statusCode': error.http_status,
        'finalUrl': '',
        'rawFinalUrl': '',
        'error': error.message,
    }).encode('utf-8')


def serialize_envelope(envelope: ProxyResponseEnvelope, http_status: int) -> Tuple[bytes, int]:
    """
    Encode an envelope as UTF-8 JSON.

    Falls back to a minimal error envelope with status 500 when the content
    cannot be encoded (e.g. lone surrogates from a broken body).
    """
    try:
        body = json.dumps(envelope.to_dict(), ensure_ascii=False).encode('utf-8')
    except (TypeError, ValueError) as e:
        # UnicodeEncodeError is a ValueError
        logger.error("Could not serialize envelope for %s: %s", envelope.raw_final_url, e)
        return _fallback_body(type(e).__name__), EncodingError.http_status
    return body, http_status
