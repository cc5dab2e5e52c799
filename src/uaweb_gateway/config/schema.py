"""Configuration schema for the UA Web Gateway.

Sections map one to one onto the top-level YAML keys. Every section
rejects unknown keys.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# =============================================================================
# ENUMERATIONS
# =============================================================================


class LogFormat(str, Enum):
    """Log output format."""

    CONSOLE = "console"
    JSON = "json"


# =============================================================================
# GATEWAY IDENTITY
# =============================================================================


class GatewayInfo(BaseModel):
    """Instance name and logging defaults."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=64, description="Gateway instance name")
    description: str = Field(default="", max_length=500)
    log_level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    log_format: LogFormat = Field(default=LogFormat.CONSOLE, description="Log output format")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


# =============================================================================
# OPC UA CLIENT CONFIGURATION
# =============================================================================


class ClientConfig(BaseModel):
    """OPC UA client session settings."""

    model_config = ConfigDict(extra="forbid")

    application_name: str = Field(
        default="UA Web Gateway",
        min_length=1,
        description="Application name presented to servers",
    )
    application_uri: str = Field(
        default="urn:uaweb-gateway:client",
        description="Application URI; must match the client certificate",
    )
    discovery_timeout_s: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for endpoint discovery requests",
    )
    request_timeout_s: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for service requests on a session",
    )
    session_timeout_ms: int = Field(
        default=60000,
        ge=1000,
        description="Requested session timeout",
    )
    max_browse_depth: int = Field(
        default=1000,
        ge=1,
        description="Step bound for type hierarchy walks",
    )


class ClientSecurityConfig(BaseModel):
    """Credentials and client certificate for secured endpoints."""

    model_config = ConfigDict(extra="forbid")

    username: str | None = Field(default=None, description="User name for UserName tokens")
    password: str | None = Field(default=None, description="Password for UserName tokens")
    cert_path: str = Field(
        default="./certs/client_cert.der",
        description="Client application certificate (DER)",
    )
    key_path: str = Field(
        default="./certs/client_key.pem",
        description="Client private key (PEM)",
    )
    auto_generate: bool = Field(
        default=True,
        description="Generate a self-signed certificate when missing or expired",
    )

    @model_validator(mode="after")
    def validate_credentials(self) -> ClientSecurityConfig:
        if self.password and not self.username:
            raise ValueError("security.password requires security.username")
        return self


# =============================================================================
# PUBLISHER CONFIGURATION
# =============================================================================


class MqttConfig(BaseModel):
    """Settings shared by every MQTT broker connection."""

    model_config = ConfigDict(extra="forbid")

    client_id_prefix: str = Field(
        default="uaweb-gateway",
        min_length=1,
        max_length=32,
        description="Prefix of generated MQTT client ids",
    )
    qos: int = Field(default=0, ge=0, le=2, description="Publish QoS level")
    retain: bool = Field(default=False, description="Publish with the retain flag")
    keepalive_s: int = Field(default=60, ge=5, description="MQTT keepalive interval")
    connect_timeout_s: float = Field(
        default=5.0,
        gt=0,
        description="How long to wait for the first CONNACK",
    )
    username: str | None = Field(default=None)
    password: str | None = Field(default=None)
    tls: bool = Field(default=False, description="Connect with TLS")


# =============================================================================
# API CONFIGURATION
# =============================================================================


class ApiConfig(BaseModel):
    """HTTP and WebSocket API settings."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(default=True)
    host: str = Field(default="0.0.0.0", description="Bind address")  # noqa: S104
    port: int = Field(default=8080, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=list, description="Allowed CORS origins")
    docs: bool = Field(default=True, description="Serve OpenAPI docs under /api/docs")


# =============================================================================
# ROOT CONFIGURATION
# =============================================================================


class GatewayConfig(BaseModel):
    """Root configuration model for the UA Web Gateway."""

    model_config = ConfigDict(extra="forbid")

    schema_version: str = Field(
        default="1.0.0",
        description="Configuration schema version",
    )
    gateway: GatewayInfo
    client: ClientConfig = Field(default_factory=ClientConfig)
    security: ClientSecurityConfig = Field(default_factory=ClientSecurityConfig)
    mqtt: MqttConfig = Field(default_factory=MqttConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
