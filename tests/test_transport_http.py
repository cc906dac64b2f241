import json

import pytest
import requests

from telentir_core.transport import (
    HTTPTransport, TransportPermanentError, TransportTransientError,
)


def make_response(status, body=None, reason="", content_type="application/json"):
    res = requests.Response()
    res.status_code = status
    res.reason = reason
    if body is None:
        res._content = b""
    elif isinstance(body, (bytes, str)):
        res._content = body.encode() if isinstance(body, str) else body
    else:
        res._content = json.dumps(body).encode()
    res.headers["content-type"] = content_type
    return res


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response

    def close(self):
        self.closed = True


def test_request_sends_bearer_and_drops_empty_query():
    session = FakeSession(make_response(200, {"ok": True}))
    transport = HTTPTransport("https://api.example.com/", "secret", timeout=5, session=session)

    assert transport.request("GET", "/objects", query={"limit": 10, "cursor": None}) == {"ok": True}

    method, url, kwargs = session.calls[0]
    assert (method, url) == ("GET", "https://api.example.com/objects")
    assert kwargs["headers"]["Authorization"] == "Bearer secret"
    assert kwargs["params"] == {"limit": "10"}
    assert kwargs["timeout"] == 5


def test_resolve_url():
    transport = HTTPTransport("https://api.example.com", "k", session=FakeSession())
    assert transport.resolve_url("keys/1") == "https://api.example.com/keys/1"
    assert transport.resolve_url("https://other.example.com/x") == "https://other.example.com/x"


def test_empty_bodies_decode_to_none():
    session = FakeSession(make_response(204))
    assert HTTPTransport(api_key="k", session=session).request("DELETE", "/keys/1") is None


def test_client_error_is_permanent(caplog):
    session = FakeSession(make_response(404, {"message": "no such key"}, reason="Not Found"))
    transport = HTTPTransport(api_key="k", session=session)

    with pytest.raises(TransportPermanentError) as exc:
        transport.request("GET", "/keys/missing")

    assert exc.value.status == 404
    assert str(exc.value) == "no such key"
    assert exc.value.body == {"message": "no such key"}
    assert "HTTP RES" in caplog.text


def test_server_error_is_transient():
    session = FakeSession(make_response(503, "try later", reason="Service Unavailable", content_type="text/plain"))
    with pytest.raises(TransportTransientError) as exc:
        HTTPTransport(api_key="k", session=session).request("GET", "/root")
    assert exc.value.status == 503
    assert str(exc.value) == "try later"


def test_connection_failure_is_transient():
    session = FakeSession(error=requests.ConnectionError("refused"))
    with pytest.raises(TransportTransientError):
        HTTPTransport(api_key="k", session=session).request("GET", "/server")


def test_invalid_json_is_permanent():
    session = FakeSession(make_response(200, "<html>", content_type="text/html"))
    with pytest.raises(TransportPermanentError):
        HTTPTransport(api_key="k", session=session).request("GET", "/server")


def test_close_closes_session():
    session = FakeSession()
    HTTPTransport(api_key="k", session=session).close()
    assert session.closed
