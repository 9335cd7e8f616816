"""
Status API Tests
================

FastAPI status endpoints and lifespan wiring, plus the CLI argument parser.
"""

import asyncio
import time

import pytest
from fastapi.testclient import TestClient

from framecast.config import Settings
from framecast.main import create_app, create_source, parse_args, run_headless
from framecast.server import ConnectionAcceptor
from framecast.sources import PatternSource
from framecast.stream import FrameCache

from .conftest import TINY_JPEG


@pytest.fixture
def settings():
    return Settings.model_validate({
        "server": {"host": "127.0.0.1", "port": 0},
        "source": {"backend": "none"},
    })


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


class TestStatusApi:
    """Endpoints."""

    def test_root(self, client):
        body = client.get("/").json()
        assert body["service"] == "framecast"
        assert body["status"] == "running"
        assert body["stream_port"] > 0
        assert body["boundary"] == "--boundary"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready_requires_a_frame(self, client):
        response = client.get("/ready")
        assert response.status_code == 503
        assert response.json()["frame_available"] is False

        client.app.state.cache.publish(TINY_JPEG)

        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_metrics(self, client):
        client.app.state.cache.publish(TINY_JPEG)
        body = client.get("/metrics").json()
        assert body["server"]["running"] is True
        assert body["cache"]["version"] == 1
        assert body["source"] is None

    def test_clients_empty(self, client):
        assert client.get("/clients").json() == {"clients": []}

    def test_server_stopped_on_shutdown(self, settings):
        app = create_app(settings)
        with TestClient(app):
            server = app.state.server
            assert server.is_running
        assert not server.is_running


class TestFactories:
    """Component construction from settings."""

    def test_pattern_source(self):
        settings = Settings.model_validate({
            "source": {"backend": "pattern", "width": 320, "height": 240, "min_interval_ms": 50},
        })
        source = create_source(settings, FrameCache())
        assert isinstance(source, PatternSource)
        assert (source.width, source.height) == (320, 240)
        assert source.min_interval == pytest.approx(0.05)

    def test_no_source(self, settings):
        assert create_source(settings, FrameCache()) is None

    def test_parse_args(self):
        args = parse_args(["--port", "9999", "--source", "pattern", "--no-api"])
        assert args.port == 9999
        assert args.source == "pattern"
        assert args.no_api is True
        assert args.config is None


@pytest.fixture
def failing_accept(monkeypatch):
    """Make every accept on the streaming listener fail fatally."""

    async def _accept(self):
        raise OSError(24, "Too many open files")

    monkeypatch.setattr(ConnectionAcceptor, "_accept", _accept)


class TestFatalServerError:
    """A dead streaming server takes the whole service down."""

    def test_source_stopped_and_health_fails(self, settings, failing_accept):
        settings.source.backend = "pattern"
        settings.source.width, settings.source.height = 64, 48
        errors = []
        app = create_app(settings, on_fatal=errors.append)

        with TestClient(app) as client:
            deadline = time.monotonic() + 5.0
            while not errors and time.monotonic() < deadline:
                time.sleep(0.01)

            assert len(errors) == 1
            assert isinstance(errors[0], OSError)
            assert not app.state.server.is_running
            assert not app.state.source.is_running

            response = client.get("/health")
            assert response.status_code == 503
            assert response.json()["status"] == "unhealthy"

    def test_clean_shutdown_does_not_signal(self, settings):
        errors = []
        app = create_app(settings, on_fatal=errors.append)
        with TestClient(app) as client:
            assert client.get("/health").status_code == 200
        assert errors == []
        assert app.state.fatal_error is None

    @pytest.mark.asyncio
    async def test_headless_exits_nonzero(self, settings, failing_accept):
        exit_code = await asyncio.wait_for(run_headless(settings), timeout=5.0)
        assert exit_code == 1
