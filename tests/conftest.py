"""
Shared fixtures: a real HTTP tail server whose /live endpoint hangs until
released, for exercising cancellation over actual sockets.
"""

import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from livetail.core.codec import GenericKey, encode_cursor

SLOW_BOOTSTRAP_CURSOR = encode_cursor(GenericKey.of(0))


class SlowTailServer:
    def __init__(self):
        self.release = threading.Event()
        self.live_requested = threading.Event()
        self.httpd = ThreadingHTTPServer(("127.0.0.1", 0), self._handler())
        self.httpd.daemon_threads = True
        self.thread = threading.Thread(target=self.httpd.serve_forever, daemon=True)

    @property
    def base_url(self):
        host, port = self.httpd.server_address[:2]
        return f"http://{host}:{port}"

    def _handler(self):
        server = self

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self):
                if self.path.startswith("/bootstrap/"):
                    self._reply({"cursor": SLOW_BOOTSTRAP_CURSOR, "empty": False})
                    return
                server.live_requested.set()
                server.release.wait(10)
                self._reply({"items": [], "nextCursor": SLOW_BOOTSTRAP_CURSOR,
                             "count": 0, "serverTime": "2026-10-19T12:00:00Z"})

            def _reply(self, body):
                payload = json.dumps(body).encode("utf-8")
                try:
                    self.send_response(200)
                    self.send_header("Content-Type", "application/json")
                    self.send_header("Content-Length", str(len(payload)))
                    self.end_headers()
                    self.wfile.write(payload)
                except OSError:
                    pass  # client went away

            def log_message(self, format, *args):
                pass

        return Handler

    def start(self):
        self.thread.start()

    def close(self):
        self.release.set()
        self.httpd.shutdown()
        self.httpd.server_close()


@pytest.fixture
def slow_server():
    server = SlowTailServer()
    server.start()
    yield server
    server.close()
