"""
HTTP client for the live tail API (bootstrap + tail), built on requests.

Every failure surfaces as one of the typed errors from livetail.core.errors:
UnsupportedCategory / InvalidCursor for caller errors reported by the server,
TransportFailure for network problems and non-success responses, and
DecodeFailure for bodies that are not the expected JSON.
"""

import json
import socket
import threading
import weakref
from datetime import datetime
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool

from ..core.config import HTTP_TIMEOUT_SEC
from ..core.errors import DecodeFailure, InvalidCursor, TransportFailure, UnsupportedCategory
from ..core.schema import BootstrapResult, Event, TailResult


class AbortableAdapter(HTTPAdapter):
    """
    Transport adapter that remembers which pooled connections are checked out,
    so a request blocked on another thread can be aborted by shutting down
    its socket. requests itself only closes idle pooled connections.
    """

    def __init__(self, *args, **kwargs):
        self._active = weakref.WeakSet()
        self._active_lock = threading.Lock()
        super().__init__(*args, **kwargs)

    def init_poolmanager(self, *args, **kwargs):
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = {
            "http": self._tracking_pool(HTTPConnectionPool),
            "https": self._tracking_pool(HTTPSConnectionPool),
        }

    def _tracking_pool(self, base):
        adapter = self

        class TrackingPool(base):
            def _get_conn(self, timeout=None):
                conn = super()._get_conn(timeout)
                with adapter._active_lock:
                    adapter._active.add(conn)
                return conn

            def _put_conn(self, conn):
                if conn is not None:
                    with adapter._active_lock:
                        adapter._active.discard(conn)
                super()._put_conn(conn)

        return TrackingPool

    def abort(self) -> int:
        """Shut down the socket of every checked-out connection; returns how many."""
        with self._active_lock:
            connections = list(self._active)

        aborted = 0
        for conn in connections:
            sock = getattr(conn, "sock", None)
            if sock is None:
                continue
            try:
                sock.shutdown(socket.SHUT_RDWR)
                aborted += 1
            except OSError:
                # Already closed by the peer or by urllib3
                continue
        return aborted


def _parse_server_time(value: Any) -> datetime:
    if not isinstance(value, str):
        raise DecodeFailure(f"serverTime missing or not a string: {value!r}")
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise DecodeFailure(f"serverTime not ISO-8601: {value!r}") from e


class TailClient:
    """
    Thin client for one tail server.

    Args:
        base_url: server root, e.g. "http://localhost:8000"
        timeout: per-request timeout in seconds
        session: optional requests.Session (tests inject a mock). Only a
            session created here can have its in-flight request aborted.
    """

    def __init__(self, base_url: str, timeout: float = HTTP_TIMEOUT_SEC,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._adapter: Optional[AbortableAdapter] = None
        if session is None:
            session = requests.Session()
            self._adapter = AbortableAdapter()
            session.mount("http://", self._adapter)
            session.mount("https://", self._adapter)
        self.session = session
        self.session.headers.update({"Cache-Control": "no-cache", "Accept": "application/json"})

    def close(self):
        """
        Abort any request in flight on another thread (it fails with
        TransportFailure right away) and close pooled connections.
        """
        if self._adapter is not None:
            self._adapter.abort()
        self.session.close()

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None,
             category: str = "", cursor: Optional[str] = None) -> Optional[Dict[str, Any]]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportFailure(f"GET {path} failed: {e}") from e

        if response.status_code == 400:
            self._raise_caller_error(response, path, category, cursor)

        if not response.ok:
            raise TransportFailure(f"GET {path} returned {response.status_code}", response.status_code)

        # Some proxies answer 304/204 with an empty body
        text = response.text
        if not text or not text.strip():
            return None

        try:
            body = json.loads(text)
        except ValueError as e:
            raise DecodeFailure(f"GET {path} returned invalid JSON: {e}") from e

        if not isinstance(body, dict):
            raise DecodeFailure(f"GET {path} returned {type(body).__name__}, expected object")
        return body

    @staticmethod
    def _raise_caller_error(response, path: str, category: str, cursor: Optional[str]):
        try:
            error = response.json().get("error")
        except (ValueError, AttributeError):
            error = None

        if error == "unsupported_category":
            raise UnsupportedCategory(category)
        if error == "invalid_cursor":
            raise InvalidCursor(cursor, "rejected by server")
        raise TransportFailure(f"GET {path} returned 400", 400)

    def bootstrap(self, category: str) -> BootstrapResult:
        """Ask the server for the newest cursor of a category."""
        body = self._get(f"/bootstrap/{category}", category=category)
        if body is None:
            raise DecodeFailure(f"Empty bootstrap response for {category}")

        cursor = body.get("cursor")
        if cursor is not None and not isinstance(cursor, str):
            raise DecodeFailure(f"Bootstrap cursor is not a string: {cursor!r}")
        empty = bool(body.get("empty", cursor is None))
        return BootstrapResult(cursor=cursor, empty=empty and cursor is None)

    def tail(self, category: str, cursor: Optional[str], limit: Optional[int] = None) -> TailResult:
        """Fetch the next batch strictly after `cursor`."""
        params: Dict[str, Any] = {}
        if cursor:
            params["after"] = cursor
        if limit is not None:
            params["limit"] = limit

        body = self._get(f"/live/{category}", params, category=category, cursor=cursor)
        if body is None:
            return TailResult(items=(), next_cursor=cursor, count=0, server_time=datetime.now().astimezone())

        raw_items = body.get("items")
        if not isinstance(raw_items, list):
            raise DecodeFailure("Tail response has no 'items' list")

        try:
            items = tuple(Event.from_dict(item) for item in raw_items)
        except (KeyError, TypeError, ValueError, AttributeError, InvalidCursor) as e:
            raise DecodeFailure(f"Malformed event in tail response: {e}") from e

        next_cursor = body.get("nextCursor")
        if next_cursor is not None and not isinstance(next_cursor, str):
            raise DecodeFailure(f"nextCursor is not a string: {next_cursor!r}")

        return TailResult(
            items=items,
            next_cursor=next_cursor,
            count=len(items),
            server_time=_parse_server_time(body.get("serverTime")),
        )
