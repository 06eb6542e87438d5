"""
Pytest configuration and fixtures for IntelBoard tests.
"""

import json
import threading
import time
from collections import Counter
from dataclasses import replace
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict
from urllib.parse import urlsplit

import pytest

from intelboard.app import create_app
from intelboard.cache import CacheStore
from intelboard.config import FeatureFlags, load_config


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> CacheStore:
    """Cache store driven by the fake clock."""
    return CacheStore(clock=clock)


class Route:
    """Canned response served by the local upstream server."""

    def __init__(
        self,
        body: Any = b'',
        status: int = 200,
        content_type: str = 'application/json',
        delay: float = 0,
        dribble: float = 0,
    ):
        if isinstance(body, (dict, list)):
            body = json.dumps(body)
        if isinstance(body, str):
            body = body.encode('utf-8')
        self.body = body
        self.status = status
        self.content_type = content_type
        self.delay = delay
        self.dribble = dribble


class UpstreamServer:
    """Threaded HTTP server standing in for a third-party API."""

    def __init__(self):
        self.routes: Dict[str, Route] = {}
        self.hits: Counter = Counter()
        self.requests = []
        server = self

        class Handler(BaseHTTPRequestHandler):
            def log_message(self, format, *args):
                pass

            def _serve(self):
                path = urlsplit(self.path).path
                length = int(self.headers.get('Content-Length') or 0)
                body = self.rfile.read(length) if length else b''
                server.hits[path] += 1
                server.requests.append({
                    'method': self.command,
                    'path': self.path,
                    'headers': dict(self.headers),
                    'body': body,
                })

                route = server.routes.get(path)
                if route is None:
                    self.send_response(404)
                    self.send_header('Content-Length', '0')
                    self.end_headers()
                    return

                if route.delay:
                    time.sleep(route.delay)

                try:
                    self.send_response(route.status)
                    self.send_header('Content-Type', route.content_type)
                    self.send_header('Content-Length', str(len(route.body)))
                    self.end_headers()
                    if route.dribble:
                        for i in range(len(route.body)):
                            self.wfile.write(route.body[i:i + 1])
                            self.wfile.flush()
                            time.sleep(route.dribble)
                    else:
                        self.wfile.write(route.body)
                except (BrokenPipeError, ConnectionResetError):
                    # Client gave up (timeout tests)
                    pass

            do_GET = _serve
            do_POST = _serve
            do_PUT = _serve
            do_DELETE = _serve

        self._httpd = ThreadingHTTPServer(('127.0.0.1', 0), Handler)
        self._httpd.daemon_threads = True
        self.url = f'http://127.0.0.1:{self._httpd.server_address[1]}'
        self._thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._httpd.shutdown()
        self._httpd.server_close()


@pytest.fixture
def upstream():
    """Local upstream API server; register canned responses in ``routes``."""
    server = UpstreamServer()
    server.start()
    yield server
    server.stop()


ALL_FLAGS_ON = FeatureFlags(
    intel_sources=True,
    adsb=True,
    satellites=True,
    spectrum=True,
    shodan=True,
    wigle=True,
    seismic=True,
    rf_prop=True,
    aurora=True,
)


@pytest.fixture
def app_config():
    """Configuration with every intel panel enabled."""
    return replace(load_config(), features=ALL_FLAGS_ON)


@pytest.fixture
def app(app_config, cache):
    app = create_app(config=app_config, cache=cache, start_sweeper=False)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
