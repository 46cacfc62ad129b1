#!/usr/bin/env python3
"""
In-process Service Registry

This module provides:
- InMemoryRegistry: a dict-backed registry holding the live registrations
- RegistryHTTPHandler: HTTP request handler for register/deregister/query
- start_registry_server: launches a ThreadingHTTPServer in a daemon thread
- ServiceRegistryClient: thin HTTP client matching the API shape
"""

import http.client
import json
import logging
import threading
import time
import urllib.parse
import urllib.request
import urllib.error
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, asdict, fields


logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Raised when a write against the registry fails."""


@dataclass
class ServiceInfo:
    """Service information dataclass"""
    service_id: str
    host: str
    port: int
    service_type: str
    registered_at: Optional[float] = None
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if self.registered_at is None:
            self.registered_at = time.time()
        if self.metadata is None:
            self.metadata = {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serialisable dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ServiceInfo':
        """Create from dictionary. Unknown keys are ignored."""
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in data.items() if k in known}
        if data.get('registered_at') is not None:
            data['registered_at'] = float(data['registered_at'])
        data['port'] = int(data['port'])
        for name in ('service_id', 'host', 'service_type'):
            if not isinstance(data.get(name), str):
                raise ValueError(f"{name} must be a string")
        if data.get('metadata') is not None and not isinstance(data['metadata'], dict):
            raise ValueError("metadata must be an object")
        return cls(**data)


# ---------------------------------------------------------------------------
# In-memory registry
# ---------------------------------------------------------------------------

class InMemoryRegistry:
    """Thread-safe, dict-backed service registry."""

    def __init__(self):
        self._lock = threading.Lock()
        self._services: Dict[str, ServiceInfo] = {}
        self._types: Dict[str, set[str]] = {}  # type -> set of service_ids

    def register_service(self, service_info: ServiceInfo) -> bool:
        with self._lock:
            sid = service_info.service_id
            previous = self._services.get(sid)
            if previous is not None and previous.service_type != service_info.service_type:
                self._types.get(previous.service_type, set()).discard(sid)
            self._services[sid] = service_info
            self._types.setdefault(service_info.service_type, set()).add(sid)
        logger.info("Registered %s at %s:%s", sid, service_info.host, service_info.port)
        return True

    def deregister_service(self, service_id: str) -> bool:
        with self._lock:
            info = self._services.pop(service_id, None)
            if info is None:
                return False
            type_set = self._types.get(info.service_type)
            if type_set:
                type_set.discard(service_id)
        logger.info("Deregistered %s", service_id)
        return True

    def get_service(self, service_id: str) -> Optional[ServiceInfo]:
        with self._lock:
            return self._services.get(service_id)

    def list_services(self, service_type: Optional[str] = None) -> List[ServiceInfo]:
        with self._lock:
            if service_type:
                ids = self._types.get(service_type, set())
            else:
                ids = self._services.keys()
            return [self._services[sid] for sid in sorted(ids) if sid in self._services]

    def get_service_count(self, service_type: Optional[str] = None) -> int:
        with self._lock:
            if service_type:
                return len(self._types.get(service_type, set()))
            return len(self._services)


# ---------------------------------------------------------------------------
# HTTP handler (served by `graceful registry serve`)
# ---------------------------------------------------------------------------

def _make_handler(registry: InMemoryRegistry):
    """Create a handler class bound to the given registry instance."""

    class RegistryHTTPHandler(BaseHTTPRequestHandler):

        def log_message(self, format, *args):
            logger.debug("%s - %s", self.address_string(), format % args)

        def _json_response(self, data: Any, status: int = 200):
            body = json.dumps(data).encode()
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def _read_json(self) -> Any:
            length = int(self.headers.get("Content-Length") or 0)
            raw = self.rfile.read(length) if length else b""
            return json.loads(raw.decode() or "null")

        def do_GET(self):
            parsed = urllib.parse.urlparse(self.path)
            path = parsed.path.rstrip("/")
            qs = urllib.parse.parse_qs(parsed.query)

            if path == "/services":
                stype = qs.get("type", [None])[0]
                services = registry.list_services(service_type=stype)
                self._json_response([s.to_dict() for s in services])

            elif path == "/services/count":
                stype = qs.get("type", [None])[0]
                count = registry.get_service_count(service_type=stype)
                self._json_response({"count": count})

            elif path.startswith("/services/"):
                service_id = urllib.parse.unquote(path[len("/services/"):])
                info = registry.get_service(service_id)
                if info:
                    self._json_response(info.to_dict())
                else:
                    self._json_response({"error": "not found"}, status=404)

            else:
                self._json_response({"error": "not found"}, status=404)

        def do_POST(self):
            path = urllib.parse.urlparse(self.path).path.rstrip("/")
            if path != "/services":
                self._json_response({"error": "not found"}, status=404)
                return
            try:
                info = ServiceInfo.from_dict(self._read_json())
            except (ValueError, TypeError, KeyError, AttributeError) as exc:
                self._json_response({"error": f"invalid service: {exc}"}, status=400)
                return
            registry.register_service(info)
            self._json_response(info.to_dict(), status=201)

        def do_DELETE(self):
            path = urllib.parse.urlparse(self.path).path.rstrip("/")
            if not path.startswith("/services/"):
                self._json_response({"error": "not found"}, status=404)
                return
            service_id = urllib.parse.unquote(path[len("/services/"):])
            if registry.deregister_service(service_id):
                self._json_response({"deregistered": service_id})
            else:
                self._json_response({"error": "not found"}, status=404)

    return RegistryHTTPHandler


def start_registry_server(
    registry: InMemoryRegistry,
    host: str = "0.0.0.0",
    port: int = 8471,
) -> ThreadingHTTPServer:
    """Start a ThreadingHTTPServer in a daemon thread and return the server."""
    handler = _make_handler(registry)
    server = ThreadingHTTPServer((host, port), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server


# ---------------------------------------------------------------------------
# HTTP client (used by the registration lifecycle and the CLI)
# ---------------------------------------------------------------------------

class ServiceRegistryClient:
    """Thin HTTP client for the registry HTTP API."""

    def __init__(self, host: str = "localhost", port: int = 8471, timeout: float = 10):
        self._base = f"http://{host}:{port}"
        self._timeout = timeout
        self._opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))

    def _request(self, path: str, method: str = "GET", payload: Any = None) -> Any:
        url = f"{self._base}{path}"
        data = None
        headers = {}
        if payload is not None:
            data = json.dumps(payload).encode()
            headers["Content-Type"] = "application/json"
        req = urllib.request.Request(url, data=data, headers=headers, method=method)
        with self._opener.open(req, timeout=self._timeout) as resp:
            return json.loads(resp.read().decode())

    def _get(self, path: str) -> Any:
        return self._request(path)

    # -- writes --------------------------------------------------------------

    def register_service(self, service_info: ServiceInfo) -> ServiceInfo:
        """Register *service_info*. Raises RegistryError on failure."""
        try:
            data = self._request("/services", method="POST", payload=service_info.to_dict())
            return ServiceInfo.from_dict(data)
        except urllib.error.HTTPError as exc:
            raise RegistryError(
                f"registry rejected {service_info.service_id}: HTTP {exc.code}"
            ) from exc
        except (urllib.error.URLError, OSError) as exc:
            raise RegistryError(f"registry at {self._base} unreachable: {exc}") from exc
        except (ValueError, TypeError, KeyError, http.client.HTTPException) as exc:
            raise RegistryError(f"registry at {self._base} sent a bad reply: {exc}") from exc

    def deregister_service(self, service_id: str) -> bool:
        """Remove *service_id*. Returns False if the registry did not know it.

        Raises RegistryError when the registry cannot be reached or answers
        with anything other than 200/404.
        """
        path = f"/services/{urllib.parse.quote(service_id, safe='')}"
        try:
            self._request(path, method="DELETE")
        except urllib.error.HTTPError as exc:
            if exc.code == 404:
                logger.warning("Registry had no entry for %s", service_id)
                return False
            raise RegistryError(
                f"registry failed to deregister {service_id}: HTTP {exc.code}"
            ) from exc
        except (urllib.error.URLError, OSError) as exc:
            raise RegistryError(f"registry at {self._base} unreachable: {exc}") from exc
        except (ValueError, TypeError, KeyError, http.client.HTTPException) as exc:
            raise RegistryError(f"registry at {self._base} sent a bad reply: {exc}") from exc
        return True

    # -- reads ---------------------------------------------------------------

    def get_service(self, service_id: str) -> Optional[ServiceInfo]:
        try:
            data = self._get(f"/services/{urllib.parse.quote(service_id, safe='')}")
            if "error" in data:
                return None
            return ServiceInfo.from_dict(data)
        except (urllib.error.URLError, OSError, ValueError, http.client.HTTPException):
            return None

    def list_services(self, service_type: Optional[str] = None) -> List[ServiceInfo]:
        params = {}
        if service_type:
            params["type"] = service_type
        qs = urllib.parse.urlencode(params)
        path = f"/services?{qs}" if qs else "/services"
        try:
            data = self._get(path)
            return [ServiceInfo.from_dict(d) for d in data]
        except (urllib.error.URLError, OSError, ValueError, http.client.HTTPException):
            return []

    def get_service_count(self, service_type: Optional[str] = None) -> int:
        params = {}
        if service_type:
            params["type"] = service_type
        qs = urllib.parse.urlencode(params)
        path = f"/services/count?{qs}" if qs else "/services/count"
        try:
            data = self._get(path)
            return data.get("count", 0)
        except (urllib.error.URLError, OSError, ValueError, http.client.HTTPException):
            return 0
