"""
framecast Configuration
=======================

This module handles configuration loading for the streaming server.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. framecast.yaml / config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    FRAMECAST_HOST             -> server.host
    FRAMECAST_PORT             -> server.port
    FRAMECAST_BACKLOG          -> server.backlog
    FRAMECAST_BOUNDARY         -> stream.boundary
    FRAMECAST_POLL_INTERVAL_MS -> stream.poll_interval_ms
    FRAMECAST_SOURCE           -> source.backend
    FRAMECAST_CAMERA_DEVICE    -> source.device
    FRAMECAST_API_ENABLED      -> api.enabled
    FRAMECAST_API_PORT         -> api.port
    FRAMECAST_LOG_LEVEL        -> logging.level

Example:
    from framecast.config import load_config, setup_logging

    settings = load_config()
    setup_logging(settings)
    print(settings.server.port)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from framecast.sources.processing import MirrorMode
from framecast.stream.mjpeg import DEFAULT_BOUNDARY, validate_boundary


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class AppConfig(BaseModel):
    """Service identification."""

    name: str = Field(default="framecast", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class ServerConfig(BaseModel):
    """MJPEG TCP listener configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8888, ge=0, le=65535, description="Bind port (0 = ephemeral)")
    backlog: int = Field(default=100, ge=1, description="Listen backlog")


class StreamConfig(BaseModel):
    """Per-client streaming behavior."""

    boundary: str = Field(
        default=DEFAULT_BOUNDARY,
        description="Multipart boundary token, written verbatim as the delimiter line",
    )
    poll_interval_ms: float = Field(
        default=10.0,
        gt=0,
        description="Delay between cache polls when no new frame is available",
    )
    write_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Maximum time a single chunk may wait on transport backpressure",
    )
    shutdown_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Time allowed for sessions to exit during stop",
    )

    @field_validator("boundary")
    @classmethod
    def check_boundary(cls, v: str) -> str:
        return validate_boundary(v)


class SourceConfig(BaseModel):
    """Frame source configuration."""

    backend: str = Field(
        default="camera",
        description="Frame source: 'camera', 'screen', 'pattern' or 'none'",
    )
    device: int = Field(default=0, ge=0, description="Camera device index")
    width: int = Field(default=1280, ge=0, description="Capture width (0 = device default)")
    height: int = Field(default=720, ge=0, description="Capture height (0 = device default)")
    monitor: int = Field(default=1, ge=0, description="Monitor index for screen capture")
    mirror: MirrorMode = Field(default=MirrorMode.HORIZONTAL, description="Mirroring after capture")
    scale: float = Field(default=1.0, gt=0, le=4.0, description="Resize factor after capture")
    jpeg_quality: int = Field(default=80, ge=1, le=100, description="JPEG quality")
    min_interval_ms: float = Field(
        default=25.0,
        ge=0,
        description="Minimum time between published frames",
    )
    pattern_fps: float = Field(default=30.0, gt=0, le=240, description="Test pattern frame rate")

    @field_validator("backend")
    @classmethod
    def check_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in ("camera", "screen", "pattern", "none"):
            raise ValueError(f"Unknown frame source backend: {v}")
        return v


class ApiConfig(BaseModel):
    """Status API configuration."""

    enabled: bool = Field(default=True, description="Serve the HTTP status API")
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8889, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for framecast.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    app: AppConfig = Field(default_factory=AppConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to a YAML file. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("framecast.yaml"),
            Path("framecast.yml"),
            Path("config.yaml"),
            Path("/etc/framecast/framecast.yaml"),
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.info("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Listener
    if env_host := os.environ.get("FRAMECAST_HOST"):
        config_data.setdefault("server", {})["host"] = env_host
    if env_port := os.environ.get("FRAMECAST_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    if env_backlog := os.environ.get("FRAMECAST_BACKLOG"):
        config_data.setdefault("server", {})["backlog"] = int(env_backlog)

    # Streaming
    if env_boundary := os.environ.get("FRAMECAST_BOUNDARY"):
        config_data.setdefault("stream", {})["boundary"] = env_boundary
    if env_poll := os.environ.get("FRAMECAST_POLL_INTERVAL_MS"):
        config_data.setdefault("stream", {})["poll_interval_ms"] = float(env_poll)

    # Source
    if env_source := os.environ.get("FRAMECAST_SOURCE"):
        config_data.setdefault("source", {})["backend"] = env_source
    if env_device := os.environ.get("FRAMECAST_CAMERA_DEVICE"):
        config_data.setdefault("source", {})["device"] = int(env_device)

    # Status API
    if env_api := os.environ.get("FRAMECAST_API_ENABLED"):
        config_data.setdefault("api", {})["enabled"] = env_api.lower() in ("1", "true", "yes", "on")
    if env_api_port := os.environ.get("FRAMECAST_API_PORT"):
        config_data.setdefault("api", {})["port"] = int(env_api_port)

    # Logging
    if env_log := os.environ.get("FRAMECAST_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
