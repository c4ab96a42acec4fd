"""
pagemirror - Error taxonomy
"""

from typing import Optional


class ProxyError(Exception):
    """Base class for failures that end up in a response envelope"""

    http_status = 500

    def __init__(self, message: str, http_status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if http_status is not None:
            self.http_status = http_status


class EmptyInput(ProxyError):
    """No target URL was supplied"""

    http_status = 400

    def __init__(self, message: str = "URL cannot be empty."):
        super().__init__(message)


class InvalidUrlFormat(ProxyError):
    """The target URL failed syntax validation after scheme defaulting"""

    http_status = 400

    def __init__(self, attempted_url: str):
        super().__init__(f"Invalid URL format: {attempted_url}")
        self.attempted_url = attempted_url


class TransportError(ProxyError):
    """DNS, connect, TLS or timeout failure before any HTTP response"""

    http_status = 502

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message, 503 if timed_out else None)
        self.timed_out = timed_out


class UpstreamError(ProxyError):
    """The target answered with a 4xx or 5xx status"""

    def __init__(self, message: str, status_code: int):
        http_status = 502 if status_code == 0 or status_code >= 500 else status_code
        super().__init__(message, http_status)
        self.status_code = status_code


class EncodingError(ProxyError):
    """The response envelope could not be serialized"""

    http_status = 500


class ResourceAcquisitionWarning(RuntimeWarning):
    """A scoped resource (the cookie store) could not be created"""
