"""
TailClient tests - response parsing and error mapping over a mocked session.
"""

import json
import threading
import time

import pytest
import requests
from unittest.mock import MagicMock

from livetail.core.codec import GenericKey, encode_cursor
from livetail.core.errors import (
    DecodeFailure,
    InvalidCursor,
    TransportFailure,
    UnsupportedCategory,
)
from livetail.feed.client import TailClient


def make_response(status=200, body=None, text=None):
    """Build a real requests.Response without touching the network."""
    response = requests.Response()
    response.status_code = status
    if text is None:
        text = json.dumps(body) if body is not None else ""
    response._content = text.encode("utf-8")
    response.encoding = "utf-8"
    return response


@pytest.fixture
def session():
    mock = MagicMock(spec=requests.Session)
    mock.headers = {}
    return mock


@pytest.fixture
def client(session):
    return TailClient("http://tail.local/", timeout=3, session=session)


C1 = encode_cursor(GenericKey.of(1))
C2 = encode_cursor(GenericKey.of(2))


class TestBootstrap:

    def test_cursor(self, client, session):
        session.get.return_value = make_response(body={"cursor": C1, "empty": False})

        result = client.bootstrap("federal")

        assert result.cursor == C1
        assert result.empty is False
        session.get.assert_called_once_with("http://tail.local/bootstrap/federal", params=None, timeout=3)

    def test_empty(self, client, session):
        session.get.return_value = make_response(body={"cursor": None, "empty": True})
        result = client.bootstrap("federal")
        assert result.cursor is None and result.empty is True

    def test_empty_body_is_decode_failure(self, client, session):
        session.get.return_value = make_response(text="")
        with pytest.raises(DecodeFailure):
            client.bootstrap("federal")


class TestTail:

    def test_items_and_cursor(self, client, session):
        session.get.return_value = make_response(body={
            "items": [{"id": C2, "category": "federal", "fields": {"city": "Reno"}}],
            "nextCursor": C2,
            "count": 1,
            "serverTime": "2026-10-19T12:00:00.123456Z",
        })

        result = client.tail("federal", C1, 50)

        assert [e.key for e in result.items] == [GenericKey.of(2)]
        assert result.items[0].fields["city"] == "Reno"
        assert result.next_cursor == C2
        assert result.count == 1
        assert result.server_time.utcoffset().total_seconds() == 0
        session.get.assert_called_once_with(
            "http://tail.local/live/federal", params={"after": C1, "limit": 50}, timeout=3
        )

    def test_empty_body_is_empty_batch(self, client, session):
        session.get.return_value = make_response(status=200, text="")
        result = client.tail("federal", C1)
        assert result.items == ()
        assert result.next_cursor == C1

    @pytest.mark.parametrize("text", [
        "{not json",
        "[]",
        json.dumps({"nextCursor": C2}),
        json.dumps({"items": "nope", "serverTime": "2026-10-19T12:00:00Z"}),
        json.dumps({"items": [{"category": "federal"}], "serverTime": "2026-10-19T12:00:00Z"}),
        json.dumps({"items": [{"id": "garbage", "category": "f"}], "serverTime": "2026-10-19T12:00:00Z"}),
        json.dumps({"items": [42], "serverTime": "2026-10-19T12:00:00Z"}),
        json.dumps({"items": [], "nextCursor": 7, "serverTime": "2026-10-19T12:00:00Z"}),
        json.dumps({"items": []}),
        json.dumps({"items": [], "serverTime": "yesterday"}),
    ])
    def test_garbled_bodies(self, client, session, text):
        session.get.return_value = make_response(text=text)
        with pytest.raises(DecodeFailure):
            client.tail("federal", C1)


class TestErrorMapping:

    def test_network_error(self, client, session):
        session.get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(TransportFailure, match="refused"):
            client.tail("federal", C1)

    def test_timeout(self, client, session):
        session.get.side_effect = requests.Timeout("slow")
        with pytest.raises(TransportFailure):
            client.bootstrap("federal")

    def test_server_error_status(self, client, session):
        session.get.return_value = make_response(status=500, body={"error": "internal_error"})
        with pytest.raises(TransportFailure) as exc_info:
            client.tail("federal", C1)
        assert exc_info.value.status_code == 500
        assert not isinstance(exc_info.value, DecodeFailure)

    def test_invalid_cursor(self, client, session):
        session.get.return_value = make_response(status=400, body={"error": "invalid_cursor", "detail": "x"})
        with pytest.raises(InvalidCursor) as exc_info:
            client.tail("federal", "not-a-key")
        assert exc_info.value.cursor == "not-a-key"

    def test_unsupported_category(self, client, session):
        session.get.return_value = make_response(status=400, body={"error": "unsupported_category", "detail": "x"})
        with pytest.raises(UnsupportedCategory) as exc_info:
            client.bootstrap("unknown")
        assert exc_info.value.category == "unknown"

    def test_unlabelled_400(self, client, session):
        session.get.return_value = make_response(status=400, text="bad request")
        with pytest.raises(TransportFailure):
            client.tail("federal", C1)

    def test_close_closes_session(self, client, session):
        client.close()
        session.close.assert_called_once()


class TestAbortInFlight:
    """close() aborts a request blocked on another thread over a real socket."""

    def test_close_aborts_blocked_tail(self, slow_server):
        client = TailClient(slow_server.base_url, timeout=10)
        outcome = []

        def tail():
            try:
                outcome.append(client.tail("federal", C1))
            except Exception as e:
                outcome.append(e)

        worker = threading.Thread(target=tail, daemon=True)
        worker.start()
        assert slow_server.live_requested.wait(3)

        started = time.monotonic()
        client.close()
        worker.join(3)

        assert not worker.is_alive()
        assert time.monotonic() - started < 1.0
        assert isinstance(outcome[0], TransportFailure)

    def test_close_without_request_in_flight(self, slow_server):
        client = TailClient(slow_server.base_url, timeout=10)
        assert client.bootstrap("federal").cursor is not None
        client.close()
