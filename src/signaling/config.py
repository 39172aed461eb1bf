"""Configuration schema for the signaling relay.

Defines Pydantic models for loading and validating relay configuration
from YAML files and environment variables.
"""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from src.signaling.sdp import DEFAULT_ALLOWED_KINDS, DEFAULT_DENIED_EXTENSIONS
from src.signaling.transport.websocket_protocol import IceServer


class WebSocketConfig(BaseModel):
    """WebSocket transport configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host address")  # noqa: S104
    port: int = Field(default=8080, ge=1024, le=65535, description="Bind port")
    max_size: int = Field(
        default=2**20, ge=1024, description="Maximum inbound message size in bytes"
    )
    static_page: Path | None = Field(
        default=None,
        description="HTML file served to plain HTTP (non-upgrade) requests",
    )


class TransportConfig(BaseModel):
    """Transport layer configuration."""

    websocket: WebSocketConfig = Field(default_factory=WebSocketConfig)


class SdpPolicyConfig(BaseModel):
    """Offer inspection policy."""

    allowed_media_kinds: list[str] = Field(
        default_factory=lambda: sorted(DEFAULT_ALLOWED_KINDS),
        description="Media kinds allowed in relayed offers",
    )
    denied_extensions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DENIED_EXTENSIONS),
        description="RTP header extension URIs stripped from relayed offers",
    )

    @field_validator("allowed_media_kinds")
    @classmethod
    def validate_media_kinds(cls, v: list[str]) -> list[str]:
        """Validate that media kinds are non-empty single tokens."""
        if not v:
            raise ValueError("allowed_media_kinds must not be empty")
        for kind in v:
            if not kind or " " in kind:
                raise ValueError(f"Invalid media kind: '{kind}'")
        return v

    @field_validator("denied_extensions")
    @classmethod
    def validate_denied_extensions(cls, v: list[str]) -> list[str]:
        """Validate that extension identifiers look like URIs."""
        for uri in v:
            if ":" not in uri or any(c.isspace() for c in uri):
                raise ValueError(f"Denied extension must be a URI, got '{uri}'")
        return v


class ProtocolConfig(BaseModel):
    """Signaling protocol options."""

    error_replies: bool = Field(
        default=False,
        description=(
            "Reply with {type: 'error'} on routing misses, invalid messages and "
            "duplicate ids instead of dropping silently"
        ),
    )


class HealthConfig(BaseModel):
    """Health check HTTP server configuration."""

    enabled: bool = Field(default=True, description="Enable health check endpoints")
    host: str = Field(default="127.0.0.1", description="Bind host address")
    port: int | None = Field(
        default=None,
        ge=1024,
        le=65535,
        description="Bind port (defaults to WebSocket port + 1)",
    )


def _default_ice_servers() -> list[IceServer]:
    return [IceServer(urls="stun:stun.l.google.com:19302")]


class RelayConfig(BaseModel):
    """Root relay configuration."""

    transport: TransportConfig = Field(default_factory=TransportConfig)
    ice_servers: list[IceServer] = Field(
        default_factory=_default_ice_servers,
        description="ICE servers announced to clients after hello",
    )
    sdp: SdpPolicyConfig = Field(default_factory=SdpPolicyConfig)
    protocol: ProtocolConfig = Field(default_factory=ProtocolConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)

    # Operational settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    graceful_shutdown_timeout_s: int = Field(
        default=10,
        ge=1,
        description="Graceful shutdown timeout in seconds",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate logging level name."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got '{v}'")
        return v.upper()

    @property
    def health_port(self) -> int:
        """Port of the health check server."""
        return self.health.port or self.transport.websocket.port + 1

    @classmethod
    def from_yaml(cls, path: Path) -> "RelayConfig":
        """Load configuration from YAML file with environment variable overrides.

        Args:
            path: Path to YAML configuration file

        Returns:
            Loaded configuration

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        import os

        import yaml  # type: ignore[import-untyped]

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration root must be a mapping: {path}")

        # Apply environment variable overrides
        websocket_overrides = {
            "host": os.getenv("SIGNALING_HOST"),
            "port": os.getenv("SIGNALING_PORT"),
            "static_page": os.getenv("SIGNALING_STATIC_PAGE"),
        }
        for key, value in websocket_overrides.items():
            if value:
                data.setdefault("transport", {}).setdefault("websocket", {})[key] = value

        if log_level := os.getenv("LOG_LEVEL"):
            data["log_level"] = log_level

        return cls.model_validate(data)

    @classmethod
    def from_yaml_with_defaults(cls, path: Path | None = None) -> "RelayConfig":
        """Load configuration from YAML or use defaults if file doesn't exist.

        Args:
            path: Optional path to YAML configuration file

        Returns:
            Loaded configuration or defaults
        """
        if path is not None and path.exists():
            return cls.from_yaml(path)

        # Return defaults
        return cls()
