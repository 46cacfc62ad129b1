"""Pytest fixtures for graceful tests."""

import socket
import urllib.error
import urllib.request

import pytest

from graceful.registry import InMemoryRegistry, ServiceRegistryClient, start_registry_server


class RecordingLifecycle:
    """Lifecycle stand-in that counts destroy() calls and can be made to fail."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.destroy_calls = 0

    def destroy(self) -> None:
        self.destroy_calls += 1
        if self.error is not None:
            raise self.error


def http_request(url: str, method: str = "GET", data: bytes | None = None):
    """Issue a request and return (status, headers, body) without raising on 4xx/5xx."""
    opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))
    req = urllib.request.Request(url, data=data, method=method)
    try:
        with opener.open(req, timeout=5) as resp:
            return resp.status, resp.headers, resp.read().decode()
    except urllib.error.HTTPError as exc:
        return exc.code, exc.headers, exc.read().decode()


@pytest.fixture
def free_port() -> int:
    """A port nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def registry() -> InMemoryRegistry:
    return InMemoryRegistry()


@pytest.fixture
def registry_server(registry):
    server = start_registry_server(registry, host="127.0.0.1", port=0)
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def registry_client(registry_server) -> ServiceRegistryClient:
    return ServiceRegistryClient(host="127.0.0.1", port=registry_server.server_address[1])
