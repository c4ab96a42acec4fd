import json

from pagemirror.envelope import (
    CONNECTIVITY_MESSAGE, ProxyResponseEnvelope, build_envelope, describe_status,
    error_envelope, serialize_envelope
)
from pagemirror.errors import EmptyInput, InvalidUrlFormat
from pagemirror.fetcher import FetchOutcome


def test_success_envelope():
    outcome = FetchOutcome(final_url="https://ex.com/p?a=1&b=2", raw_body=b"<p>", status_code=200,
                           content_type="text/html")

    envelope, status = build_envelope(outcome, "<p>", title="Home")

    assert status == 200
    data = envelope.to_dict()
    assert data["success"] is True
    assert data["content"] == "<p>"
    assert data["statusCode"] == 200
    assert data["finalUrl"] == "https://ex.com/p?a=1&amp;b=2"
    assert data["rawFinalUrl"] == "https://ex.com/p?a=1&b=2"
    assert data["contentType"] == "text/html"
    assert data["title"] == "Home"
    assert "error" not in data
    assert "contentEncoding" not in data


def test_not_found_keeps_error_body():
    outcome = FetchOutcome(final_url="https://ex.com/missing", raw_body=b"<h1>gone</h1>",
                           status_code=404, content_type="text/html")

    envelope, status = build_envelope(outcome, "<h1>gone</h1>")

    assert status == 404
    assert envelope.success is False
    assert envelope.status_code == 404
    assert "Not Found" in envelope.error
    assert envelope.content == "<h1>gone</h1>"


def test_server_error_maps_to_bad_gateway():
    outcome = FetchOutcome(final_url="https://ex.com/", status_code=503)

    envelope, status = build_envelope(outcome)

    assert status == 502
    assert envelope.status_code == 503
    assert "internal error" in envelope.error


def test_transport_failure():
    outcome = FetchOutcome(final_url="https://nowhere.invalid/",
                           transport_error="[Errno -2] Name or service not known")

    envelope, status = build_envelope(outcome)

    assert status == 502
    assert envelope.success is False
    assert envelope.status_code == 0
    assert envelope.error.startswith(CONNECTIVITY_MESSAGE)
    assert "Name or service not known" in envelope.error
    assert "contentType" not in envelope.to_dict()


def test_timeout_maps_to_service_unavailable():
    outcome = FetchOutcome(final_url="https://slow.example/", transport_error="Request timed out: read",
                           timed_out=True)

    _, status = build_envelope(outcome)

    assert status == 503


def test_describe_status():
    assert "Access Forbidden" in describe_status(403)
    assert "Not Found" in describe_status(404)
    assert "internal error" in describe_status(500)
    assert "bad request, unauthorized" in describe_status(401)
    assert describe_status(0) == CONNECTIVITY_MESSAGE
    assert "status: 418" in describe_status(418)


def test_error_envelopes():
    envelope, status = error_envelope(EmptyInput())
    assert status == 400
    assert envelope.to_dict() == {
        "success": False,
        "content": None,
        "statusCode": 0,
        "finalUrl": "",
        "rawFinalUrl": "",
        "error": "URL cannot be empty.",
    }

    error = InvalidUrlFormat("https://a b")
    envelope, status = error_envelope(error, error.attempted_url)
    assert status == 400
    assert envelope.raw_final_url == "https://a b"
    assert envelope.error == "Invalid URL format: https://a b"


def test_base64_marker_only_with_content():
    outcome = FetchOutcome(final_url="https://ex.com/a.png", raw_body=b"\x89PNG", status_code=200,
                           content_type="image/png")

    envelope, _ = build_envelope(outcome, "iVBORw==", content_encoding="base64")
    assert envelope.to_dict()["contentEncoding"] == "base64"

    envelope, _ = build_envelope(outcome, None, content_encoding="base64")
    assert "contentEncoding" not in envelope.to_dict()


def test_serialize_envelope():
    envelope = ProxyResponseEnvelope(success=True, content="héllo", status_code=200,
                                     final_url="https://ex.com/", raw_final_url="https://ex.com/")

    body, status = serialize_envelope(envelope, 200)

    assert status == 200
    assert "héllo".encode("utf-8") in body
    assert json.loads(body.decode("utf-8"))["content"] == "héllo"


def test_serialize_envelope_falls_back_on_unencodable_content():
    envelope = ProxyResponseEnvelope(success=True, content="bad \udcff surrogate", status_code=200,
                                     final_url="https://ex.com/", raw_final_url="https://ex.com/")

    body, status = serialize_envelope(envelope, 200)

    assert status == 500
    data = json.loads(body)
    assert data["success"] is False
    assert data["statusCode"] == 500
    assert "could not be encoded" in data["error"]
