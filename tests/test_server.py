"""Tests for the /deregister handler and its HTTP server."""

import logging

import pytest

from graceful.server import deregister, start_server

from conftest import RecordingLifecycle, http_request


@pytest.fixture
def lifecycle():
    return RecordingLifecycle()


@pytest.fixture
def base_url(lifecycle):
    server = start_server(lifecycle, host="127.0.0.1", port=0)
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


class TestDeregisterHandler:

    def test_returns_ok_and_destroys_once(self, lifecycle):
        assert deregister(lifecycle) == "ok"
        assert lifecycle.destroy_calls == 1

    def test_logs_start_and_success(self, lifecycle, caplog):
        caplog.set_level(logging.INFO, logger="graceful.server")
        deregister(lifecycle)
        messages = [r.getMessage() for r in caplog.records if r.name == "graceful.server"]
        assert messages == ["deregister from registry start", "deregister from registry success"]

    def test_destroy_failure_propagates(self, caplog):
        caplog.set_level(logging.INFO, logger="graceful.server")
        failing = RecordingLifecycle(error=RuntimeError("registry down"))
        with pytest.raises(RuntimeError, match="registry down"):
            deregister(failing)
        assert failing.destroy_calls == 1
        messages = [r.getMessage() for r in caplog.records if r.name == "graceful.server"]
        assert "deregister from registry success" not in messages


class TestDeregisterEndpoint:

    def test_get_returns_ok(self, base_url, lifecycle):
        status, headers, body = http_request(f"{base_url}/deregister")
        assert status == 200
        assert body == "ok"
        assert headers["Content-Type"].startswith("text/plain")
        assert lifecycle.destroy_calls == 1

    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "PATCH"])
    def test_any_method_is_accepted(self, base_url, lifecycle, method):
        status, _, body = http_request(f"{base_url}/deregister", method=method)
        assert status == 200
        assert body == "ok"
        assert lifecycle.destroy_calls == 1

    def test_head_sends_no_body(self, base_url, lifecycle):
        status, headers, body = http_request(f"{base_url}/deregister", method="HEAD")
        assert status == 200
        assert body == ""
        assert headers["Content-Length"] == "2"
        assert lifecycle.destroy_calls == 1

    def test_trailing_slash_and_query_are_ignored(self, base_url, lifecycle):
        status, _, body = http_request(f"{base_url}/deregister/?force=1")
        assert (status, body) == (200, "ok")
        assert lifecycle.destroy_calls == 1

    def test_unknown_path_is_404(self, base_url, lifecycle):
        status, _, body = http_request(f"{base_url}/register")
        assert status == 404
        assert "not found" in body
        assert lifecycle.destroy_calls == 0


def test_failing_destroy_returns_500():
    failing = RecordingLifecycle(error=RuntimeError("boom"))
    server = start_server(failing, host="127.0.0.1", port=0)
    try:
        status, _, body = http_request(f"http://127.0.0.1:{server.server_address[1]}/deregister")
    finally:
        server.shutdown()
        server.server_close()
    assert status == 500
    assert body != "ok"
    assert failing.destroy_calls == 1
