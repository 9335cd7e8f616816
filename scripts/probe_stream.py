#!/usr/bin/env python3
"""
Stream Probe Script
===================

Standalone client that watches a running framecast server.

This script:
    1. Connects to the MJPEG port and checks the handshake
    2. Parses multipart parts for a configurable duration
    3. Logs reception stats every few seconds
    4. Reports a final summary (exit code 1 if no frame arrived)

Usage:
    python scripts/probe_stream.py --port 8888 --duration 30
    python scripts/probe_stream.py --host camera.local --boundary=--boundary
"""

import argparse
import asyncio
import logging
import os
import sys
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from framecast.stream import DEFAULT_BOUNDARY, ProtocolError, read_handshake, read_part


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run_probe(
    host: str,
    port: int,
    boundary: str,
    duration: float,
    report_interval: float,
) -> dict:
    """
    Connect and count frames until the duration elapses or the stream ends.

    Returns:
        Final stats dict
    """
    logger.info("=" * 60)
    logger.info(f"Probing {host}:{port} for {duration:.0f}s (boundary={boundary!r})")
    logger.info("=" * 60)

    reader, writer = await asyncio.open_connection(host, port)
    headers = await read_handshake(reader)
    logger.info(f"Handshake: {headers[':status']} / {headers.get('content-type')}")

    frames = 0
    total_bytes = 0
    start_time = time.time()
    last_report_time = start_time
    last_frame_count = 0
    ended = None

    try:
        while True:
            remaining = duration - (time.time() - start_time)
            if remaining <= 0:
                logger.info(f"Probe duration ({duration:.0f}s) reached")
                break

            try:
                part = await asyncio.wait_for(read_part(reader, boundary), timeout=remaining)
            except asyncio.TimeoutError:
                continue
            except (asyncio.IncompleteReadError, ConnectionError) as e:
                ended = f"connection closed: {e!r}"
                logger.warning(f"Stream ended: {e!r}")
                break
            except ProtocolError as e:
                ended = f"protocol error: {e}"
                logger.error(f"Protocol error: {e}")
                break

            frames += 1
            total_bytes += len(part.data)

            time_since_report = time.time() - last_report_time
            if time_since_report >= report_interval:
                fps = (frames - last_frame_count) / time_since_report
                logger.info("-" * 40)
                logger.info(f"  Frames received: {frames}")
                logger.info(f"  Current FPS: {fps:.1f}")
                logger.info(f"  Last frame size: {part.content_length} bytes")
                last_report_time = time.time()
                last_frame_count = frames

    except KeyboardInterrupt:
        logger.info("Probe interrupted by user")
    finally:
        writer.close()

    total_time = time.time() - start_time
    avg_fps = frames / total_time if total_time > 0 else 0

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    logger.info(f"Frames received: {frames}")
    logger.info(f"Bytes received: {total_bytes}")
    logger.info(f"Average FPS: {avg_fps:.1f}")
    if ended:
        logger.info(f"Ended early: {ended}")
    logger.info("=" * 60)

    return {
        "duration": total_time,
        "frames_received": frames,
        "bytes_received": total_bytes,
        "avg_fps": avg_fps,
        "ended": ended,
    }


def main():
    parser = argparse.ArgumentParser(description="Watch a framecast MJPEG stream")
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Server host")
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("FRAMECAST_PORT", 8888)),
        help="MJPEG port (default: 8888)",
    )
    parser.add_argument("--boundary", type=str, default=DEFAULT_BOUNDARY, help="Boundary token")
    parser.add_argument("--duration", type=float, default=30, help="Probe duration in seconds")
    parser.add_argument("--report-interval", type=float, default=5, help="Seconds between reports")

    args = parser.parse_args()

    result = asyncio.run(run_probe(
        host=args.host,
        port=args.port,
        boundary=args.boundary,
        duration=args.duration,
        report_interval=args.report_interval,
    ))

    sys.exit(0 if result["frames_received"] > 0 else 1)


if __name__ == "__main__":
    main()
