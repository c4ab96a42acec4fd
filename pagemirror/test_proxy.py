import base64

import pytest

from pagemirror.config import MirrorConfig
from pagemirror.errors import EmptyInput, InvalidUrlFormat, TransportError
from pagemirror.fetcher import FetchOutcome
from pagemirror.proxy import MirrorProxy


PREFIX = "http://mirror.local/proxy?url="


class StubFetcher:
    """Returns a canned outcome and remembers what was asked for"""

    def __init__(self, **outcome):
        self.outcome = outcome
        self.requested = []

    def fetch(self, url):
        self.requested.append(url)
        fields = {"final_url": url}
        fields.update(self.outcome)
        return FetchOutcome(**fields)


def make_proxy(**outcome):
    fetcher = StubFetcher(**outcome)
    return MirrorProxy(MirrorConfig(cookie_store="memory"), fetcher), fetcher


def test_schemeless_input_is_fetched_over_https():
    proxy, fetcher = make_proxy(status_code=200, content_type="text/plain", raw_body=b"hi")

    envelope, status = proxy.handle("example.com", PREFIX)

    assert fetcher.requested == ["https://example.com"]
    assert status == 200
    assert envelope.content == "hi"


def test_html_is_rewritten_and_titled():
    body = b"<html><head><title> Example \n Page </title></head><body><a href='/x'>l</a></body></html>"
    proxy, _ = make_proxy(final_url="https://ex.com/p", status_code=200,
                          content_type="text/html; charset=utf-8", raw_body=body)

    envelope, status = proxy.handle("https://ex.com/start", PREFIX)

    assert status == 200
    assert envelope.success
    assert envelope.raw_final_url == "https://ex.com/p"
    assert envelope.title == "Example Page"
    assert '<base href="https://ex.com/p">' in envelope.content
    assert PREFIX + "https%3A%2F%2Fex.com%2Fx" in envelope.content


def test_declared_charset_is_honoured():
    proxy, _ = make_proxy(status_code=200, content_type="text/plain; charset=iso-8859-1",
                          raw_body="café".encode("iso-8859-1"))

    envelope, _ = proxy.handle("https://ex.com/", PREFIX)

    assert envelope.content == "café"


def test_binary_body_is_base64_encoded():
    png = b"\x89PNG\r\n\x1a\n\x00\x00"
    proxy, _ = make_proxy(status_code=200, content_type="image/png", raw_body=png)

    envelope, status = proxy.handle("https://ex.com/logo.png", PREFIX)

    assert status == 200
    assert envelope.content_encoding == "base64"
    assert base64.b64decode(envelope.content) == png
    assert envelope.title is None


def test_empty_success_body():
    proxy, _ = make_proxy(status_code=204)

    envelope, status = proxy.handle("https://ex.com/", PREFIX)

    assert status == 200
    assert envelope.success
    assert envelope.content == ""


def test_upstream_error_without_body():
    proxy, _ = make_proxy(status_code=403)

    envelope, status = proxy.handle("https://ex.com/", PREFIX)

    assert status == 403
    assert envelope.content is None
    assert "Access Forbidden" in envelope.error


def test_transport_error_envelope():
    proxy, _ = make_proxy(transport_error="Name or service not known")

    envelope, status = proxy.handle("https://nowhere.invalid/", PREFIX)

    assert status == 502
    assert not envelope.success
    assert envelope.content is None


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_empty_input_is_rejected_before_fetch(raw):
    proxy, fetcher = make_proxy(status_code=200)

    envelope, status = proxy.handle(raw, PREFIX)

    assert status == 400
    assert envelope.error == "URL cannot be empty."
    assert fetcher.requested == []


def test_invalid_input_is_rejected_before_fetch():
    proxy, fetcher = make_proxy(status_code=200)

    envelope, status = proxy.handle("exa mple.com", PREFIX)

    assert status == 400
    assert envelope.raw_final_url == "https://exa mple.com"
    assert fetcher.requested == []


def test_fetch_raw_passes_binary_through():
    png = b"\x89PNG\r\n\x1a\n"
    proxy, _ = make_proxy(status_code=200, content_type="image/png", raw_body=png)

    raw = proxy.fetch_raw("https://ex.com/a.png", PREFIX)

    assert raw.body == png
    assert raw.content_type == "image/png"
    assert raw.status_code == 200


def test_fetch_raw_rewrites_stylesheets():
    proxy, _ = make_proxy(final_url="https://ex.com/css/site.css", status_code=200,
                          content_type="text/css", raw_body=b"a{background:url(bg.png)}")

    raw = proxy.fetch_raw("https://ex.com/css/site.css", PREFIX)

    assert raw.content_type == "text/css; charset=utf-8"
    assert raw.body == ("a{background:url(" + PREFIX + "https%3A%2F%2Fex.com%2Fcss%2Fbg.png)}").encode()


def test_fetch_raw_keeps_upstream_status():
    proxy, _ = make_proxy(status_code=404, content_type="text/html", raw_body=b"<p>missing</p>")

    raw = proxy.fetch_raw("https://ex.com/missing", PREFIX)

    assert raw.status_code == 404
    assert b'<base href="https://ex.com/missing">' in raw.body


def test_fetch_raw_errors():
    proxy, _ = make_proxy(transport_error="timed out", timed_out=True)

    with pytest.raises(TransportError) as exc:
        proxy.fetch_raw("https://slow.example/", PREFIX)
    assert exc.value.http_status == 503

    with pytest.raises(EmptyInput):
        proxy.fetch_raw("", PREFIX)

    with pytest.raises(InvalidUrlFormat):
        proxy.fetch_raw("https://exa mple.com", PREFIX)
