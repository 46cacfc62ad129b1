#!/usr/bin/env python3
"""
Deregistration HTTP endpoint

This module provides:
- deregister: tear down the registration and acknowledge with "ok"
- create_server / start_server: a ThreadingHTTPServer exposing /deregister
"""

import json
import logging
import threading
import urllib.parse
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from .registration import Destroyable

logger = logging.getLogger(__name__)

DEREGISTER_PATH = "/deregister"


def deregister(lifecycle: Destroyable) -> str:
    """Remove this instance from the registry ahead of shutdown."""
    logger.info("deregister from registry start")
    lifecycle.destroy()
    logger.info("deregister from registry success")
    return "ok"


def _make_handler(lifecycle: Destroyable):
    """Create a handler class bound to the given lifecycle object."""

    routes = {
        DEREGISTER_PATH: lambda: deregister(lifecycle),
    }

    class DeregisterHTTPHandler(BaseHTTPRequestHandler):

        def log_message(self, format, *args):
            logger.debug("%s - %s", self.address_string(), format % args)

        def _text_response(self, text: str, status: int = 200, head: bool = False):
            body = text.encode()
            self.send_response(status)
            self.send_header("Content-Type", "text/plain; charset=utf-8")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            if not head:
                self.wfile.write(body)

        def _json_response(self, data: Any, status: int = 200, head: bool = False):
            body = json.dumps(data).encode()
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            if not head:
                self.wfile.write(body)

        def _dispatch(self, head: bool = False):
            path = urllib.parse.urlparse(self.path).path.rstrip("/")
            route = routes.get(path)
            if route is None:
                self._json_response({"error": "not found"}, status=404, head=head)
                return
            try:
                result = route()
            except Exception:
                logger.exception("Unhandled error serving %s %s", self.command, path)
                self.send_error(500)
                return
            self._text_response(result, head=head)

        def do_GET(self):
            self._dispatch()

        def do_POST(self):
            self._dispatch()

        def do_PUT(self):
            self._dispatch()

        def do_DELETE(self):
            self._dispatch()

        def do_PATCH(self):
            self._dispatch()

        def do_HEAD(self):
            self._dispatch(head=True)

    return DeregisterHTTPHandler


def create_server(
    lifecycle: Destroyable,
    host: str = "0.0.0.0",
    port: int = 8080,
) -> ThreadingHTTPServer:
    """Build (but do not start) the server exposing /deregister."""
    return ThreadingHTTPServer((host, port), _make_handler(lifecycle))


def start_server(
    lifecycle: Destroyable,
    host: str = "0.0.0.0",
    port: int = 8080,
) -> ThreadingHTTPServer:
    """Start the server in a daemon thread and return it."""
    server = create_server(lifecycle, host=host, port=port)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server
