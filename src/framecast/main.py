"""
framecast Main Application
==========================

Process entry point and FastAPI status service.

The Motion-JPEG stream itself is served by StreamingServer on its own TCP
port (no HTTP parsing); the FastAPI app only reports on it. The app's
lifespan owns the frame cache, the frame source and the streaming server.

Endpoints:
    GET  /          - Service information
    GET  /health    - Liveness probe (is process alive?)
    GET  /ready     - Readiness probe (server running + frame available?)
    GET  /metrics   - Cache, server and source metrics
    GET  /clients   - Per-client delivery metrics

Usage:
    framecast --config framecast.yaml
    framecast --port 8888 --source pattern --no-api
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from framecast import FramecastError
from framecast.config import Settings, load_config, setup_logging
from framecast.server import StreamingServer
from framecast.sources import (
    CameraSource,
    FrameProcessor,
    FrameSource,
    PatternSource,
    ScreenSource,
)
from framecast.stream import FrameCache


logger = logging.getLogger(__name__)


# =============================================================================
# Component Factories
# =============================================================================

def create_source(settings: Settings, cache: FrameCache) -> Optional[FrameSource]:
    """
    Create the frame source selected in config.

    Returns None for backend 'none' (frames are published externally).
    """
    cfg = settings.source
    common = dict(
        processor=FrameProcessor(mirror=cfg.mirror, scale=cfg.scale),
        jpeg_quality=cfg.jpeg_quality,
        min_interval=cfg.min_interval_ms / 1000.0,
    )

    if cfg.backend == "camera":
        logger.info(f"Using CameraSource: device={cfg.device}, {cfg.width}x{cfg.height}")
        return CameraSource(cache, device=cfg.device, width=cfg.width, height=cfg.height, **common)
    elif cfg.backend == "screen":
        logger.info(f"Using ScreenSource: monitor={cfg.monitor}")
        return ScreenSource(cache, monitor=cfg.monitor, **common)
    elif cfg.backend == "pattern":
        logger.info(f"Using PatternSource: {cfg.width}x{cfg.height} @ {cfg.pattern_fps} fps")
        return PatternSource(
            cache,
            width=cfg.width or 640,
            height=cfg.height or 480,
            fps=cfg.pattern_fps,
            **common,
        )
    elif cfg.backend == "none":
        logger.info("No frame source configured, waiting for external publishers")
        return None
    else:
        raise ValueError(f"Unknown frame source backend: {cfg.backend}")


def create_server(settings: Settings, cache: FrameCache) -> StreamingServer:
    """Create the streaming server from config."""
    return StreamingServer(
        cache,
        host=settings.server.host,
        backlog=settings.server.backlog,
        boundary=settings.stream.boundary,
        poll_interval=settings.stream.poll_interval_ms / 1000.0,
        write_timeout=settings.stream.write_timeout_seconds,
        shutdown_timeout=settings.stream.shutdown_timeout_seconds,
    )


# =============================================================================
# FastAPI Application
# =============================================================================

def _terminate_process(error: BaseException) -> None:
    """Ask the serving process to shut down (uvicorn handles SIGTERM gracefully)."""
    os.kill(os.getpid(), signal.SIGTERM)


def create_app(
    settings: Settings,
    on_fatal: Callable[[BaseException], None] = _terminate_process,
) -> FastAPI:
    """
    Build the status API.

    Components live on ``app.state`` (cache, source, server, settings,
    startup_time, fatal_error) for the lifetime of the app.

    If the streaming server stops on a fatal error, the frame source is
    stopped, ``/health`` turns unhealthy and ``on_fatal`` is called with the
    error; by default that terminates the process.
    """

    async def watch_server(app: FastAPI, server: StreamingServer, source: Optional[FrameSource]) -> None:
        await server.wait_stopped()
        if server.fatal_error is None:
            return

        logger.error(f"Streaming server failed, shutting down: {server.fatal_error!r}")
        app.state.fatal_error = server.fatal_error
        if source is not None:
            source.stop()
        on_fatal(server.fatal_error)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Start source + server on startup, tear both down on shutdown."""
        app.state.startup_time = time.time()
        app.state.fatal_error = None
        logger.info(f"Starting {settings.app.name} {settings.app.version}")

        cache = FrameCache()
        server = create_server(settings, cache)
        source = create_source(settings, cache)
        app.state.cache = cache
        app.state.server = server
        app.state.source = source

        await server.start(settings.server.port)
        if source is not None:
            try:
                source.start()
            except Exception:
                await server.stop()
                raise

        watcher = asyncio.create_task(watch_server(app, server, source), name="server_watcher")
        logger.info("All components started")

        yield

        logger.info("Shutting down gracefully...")
        watcher.cancel()
        if source is not None:
            source.stop()
        await server.stop()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="framecast",
        description="Motion-JPEG distribution server status",
        version=settings.app.version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.startup_time = time.time()
    app.state.fatal_error = None

    @app.get("/")
    async def root(request: Request) -> JSONResponse:
        """Service information endpoint."""
        server: StreamingServer = request.app.state.server
        return JSONResponse({
            "service": settings.app.name,
            "version": settings.app.version,
            "status": "running" if server.is_running else "stopped",
            "stream_port": server.port,
            "boundary": settings.stream.boundary,
            "source_backend": settings.source.backend,
        })

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        """
        Liveness probe - is the process alive?

        Returns 200 while the service is running, 503 once the streaming
        server has stopped on a fatal error.
        """
        uptime = round(time.time() - request.app.state.startup_time, 1)
        fatal_error = request.app.state.fatal_error
        if fatal_error is not None:
            return JSONResponse(
                {"status": "unhealthy", "error": repr(fatal_error), "uptime_seconds": uptime},
                status_code=503,
            )
        return JSONResponse({
            "status": "healthy",
            "uptime_seconds": uptime,
        })

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        """
        Readiness probe - can clients receive frames?

        Returns 200 if the server is accepting and a frame has been published.
        Returns 503 otherwise.
        """
        server: StreamingServer = request.app.state.server
        cache: FrameCache = request.app.state.cache

        body = {
            "server_running": server.is_running,
            "frame_available": not cache.is_empty,
            "clients": server.client_count,
        }
        if server.is_running and not cache.is_empty:
            return JSONResponse({"status": "ready", **body})
        return JSONResponse({"status": "not_ready", **body}, status_code=503)

    @app.get("/metrics")
    async def metrics(request: Request) -> JSONResponse:
        """Detailed metrics for observability."""
        server: StreamingServer = request.app.state.server
        cache: FrameCache = request.app.state.cache
        source = request.app.state.source

        return JSONResponse({
            "uptime_seconds": round(time.time() - request.app.state.startup_time, 1),
            "server": server.metrics(),
            "cache": cache.metrics(),
            "source": source.metrics() if source is not None else None,
        })

    @app.get("/clients")
    async def clients(request: Request) -> JSONResponse:
        """Per-client delivery metrics."""
        server: StreamingServer = request.app.state.server
        return JSONResponse({"clients": server.client_metrics()})

    return app


# =============================================================================
# Headless Mode
# =============================================================================

async def run_headless(settings: Settings) -> int:
    """
    Run source + server without the status API until SIGINT/SIGTERM.

    Returns:
        Process exit code (1 if the server stopped on a fatal error).
    """
    cache = FrameCache()
    server = create_server(settings, cache)
    source = create_source(settings, cache)

    await server.start(settings.server.port)
    if source is not None:
        try:
            source.start()
        except Exception:
            await server.stop()
            raise

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform / not the main thread
            pass

    waiters = [
        asyncio.create_task(stop_requested.wait(), name="stop_signal"),
        asyncio.create_task(server.wait_stopped(), name="server_stopped"),
    ]
    await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    for waiter in waiters:
        waiter.cancel()
    for sig in installed:
        loop.remove_signal_handler(sig)

    if stop_requested.is_set():
        logger.info("Received stop signal, initiating graceful shutdown...")

    if source is not None:
        source.stop()
    await server.stop()

    return 1 if server.fatal_error is not None else 0


# =============================================================================
# Main Entry Point
# =============================================================================

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="framecast",
        description="Stream live JPEG frames to TCP clients as Motion-JPEG",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to YAML config file")
    parser.add_argument("--port", type=int, default=None, help="MJPEG listen port")
    parser.add_argument(
        "--source",
        choices=["camera", "screen", "pattern", "none"],
        default=None,
        help="Frame source backend",
    )
    parser.add_argument("--no-api", action="store_true", help="Do not serve the HTTP status API")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    settings = load_config(args.config)
    if args.port is not None:
        settings.server.port = args.port
    if args.source is not None:
        settings.source.backend = args.source
    if args.no_api:
        settings.api.enabled = False
    setup_logging(settings)

    try:
        if not settings.api.enabled:
            return asyncio.run(run_headless(settings))

        import uvicorn

        app = create_app(settings)
        uvicorn.run(
            app,
            host=settings.api.host,
            port=settings.api.port,
            log_level=settings.logging.level.lower(),
        )
        return 1 if app.state.fatal_error is not None else 0
    except (OSError, FramecastError) as e:
        logger.error(f"Failed to start: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
