import json

import httpx
import pytest

from doc_resizer.client import DocsClient, RemoteError


def make_client(handler) -> DocsClient:
    return DocsClient("token-123", base_url="https://docs.test/v1", transport=httpx.MockTransport(handler))


def test_batch_update_sends_requests_and_pads_replies():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"replies": [{}, {"insertInlineImage": {"objectId": "kix.new"}}]})

    with make_client(handler) as client:
        replies = client.batch_update("abc", [{"a": 1}, {"b": 2}, {"c": 3}])
    assert seen["url"] == "https://docs.test/v1/documents/abc:batchUpdate"
    assert seen["auth"] == "Bearer token-123"
    assert seen["body"] == {"requests": [{"a": 1}, {"b": 2}, {"c": 3}]}
    assert replies == [{}, {"insertInlineImage": {"objectId": "kix.new"}}, {}]


@pytest.mark.parametrize(
    ("status", "body", "code", "transient"),
    [
        (500, {"error": {"code": 500, "message": "Internal error encountered.", "status": "INTERNAL"}}, "INTERNAL", True),
        (503, {"error": {"code": 503, "message": "The service is currently unavailable.", "status": "UNAVAILABLE"}}, "UNAVAILABLE", True),
        (400, {"error": {"code": 400, "message": "Invalid requests[0].insertInlineImage", "status": "INVALID_ARGUMENT"}}, "INVALID_ARGUMENT", False),
        (404, {"error": {"code": 404, "message": "Requested entity was not found.", "status": "NOT_FOUND"}}, "NOT_FOUND", False),
        (429, {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}}, "QUOTA", False),
        (403, None, "PERMISSION_DENIED", False),
        (502, None, "HTTP_502", True),
    ],
)
def test_errors_are_classified(status, body, code, transient):
    def handler(request: httpx.Request) -> httpx.Response:
        if body is None:
            return httpx.Response(status, text="nope")
        return httpx.Response(status, json=body)

    with make_client(handler) as client:
        with pytest.raises(RemoteError) as exc:
            client.batch_update("abc", [{}])
    assert exc.value.code == code
    assert exc.value.transient is transient
    assert exc.value.status == status


def test_internal_error_message_is_transient_even_on_400():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"message": "Internal error encountered.", "status": "FAILED_PRECONDITION"}})

    with make_client(handler) as client:
        with pytest.raises(RemoteError) as exc:
            client.get_document("abc")
    assert exc.value.transient is True


def test_timeout_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with make_client(handler) as client:
        with pytest.raises(RemoteError) as exc:
            client.get_document("abc")
    assert exc.value.code == "TIMEOUT"
    assert exc.value.transient is True


def test_network_error_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with make_client(handler) as client:
        with pytest.raises(RemoteError) as exc:
            client.get_document("abc")
    assert exc.value.code == "NETWORK"
    assert exc.value.transient is True


def test_other_http_errors_are_permanent():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.DecodingError("bad gzip", request=request)

    with make_client(handler) as client:
        with pytest.raises(RemoteError) as exc:
            client.batch_update("abc", [{}])
    assert exc.value.code == "HTTP_ERROR"
    assert exc.value.transient is False


def test_access_token_required():
    with pytest.raises(ValueError):
        DocsClient("")
