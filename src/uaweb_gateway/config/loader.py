"""Configuration loading and validation for the UA Web Gateway.

A configuration is one YAML file, optionally layered with a second file
whose mappings are merged over it. String values may reference the
environment as ``${VAR}`` or ``${VAR:-default}``.
"""

from __future__ import annotations

import os
import re
from typing import TYPE_CHECKING, Any, cast

if TYPE_CHECKING:
    from pathlib import Path

import structlog
import yaml
from pydantic import ValidationError

from uaweb_gateway.config.schema import GatewayConfig, GatewayInfo

logger = structlog.get_logger(__name__)

_ENV_REFERENCE = re.compile(r"\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<default>[^}]*))?\}")


class ConfigurationError(Exception):
    """A configuration file could not be read, parsed or validated.

    ``errors`` holds the pydantic error dicts when validation failed.
    """

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Parse ``path`` as a YAML mapping. An empty file is an empty mapping."""
    if not path.is_file():
        reason = "not found" if not path.exists() else "is not a file"
        raise ConfigurationError(f"Configuration file {reason}: {path}")

    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if document is None:
        return {}
    if isinstance(document, dict):
        return document
    raise ConfigurationError(
        f"Configuration must be a YAML mapping, got {type(document).__name__}"
    )


def _resolve_reference(match: re.Match[str]) -> str:
    name, default = match.group("name", "default")
    if name in os.environ:
        return os.environ[name]
    # Unset without a default: leave the reference visible to validation
    return match.group(0) if default is None else default


def _expand(value: Any) -> Any:
    if isinstance(value, str):
        return _ENV_REFERENCE.sub(_resolve_reference, value)
    if isinstance(value, dict):
        return {key: _expand(item) for key, item in value.items()}
    if isinstance(value, list):
        return list(map(_expand, value))
    return value


def expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Expand environment references in every string of a configuration tree."""
    return cast("dict[str, Any]", _expand(config))


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Overlay ``override`` on ``base`` without mutating either.

    Nested mappings merge key by key; any other value, lists included,
    replaces what ``base`` had.
    """
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = merge_configs(current, value)
        merged[key] = value
    return merged


def _describe(errors: list[dict[str, Any]]) -> str:
    lines = ["Configuration validation failed:"]
    lines.extend(
        f"  - {'.'.join(map(str, error['loc']))}: {error['msg']}" for error in errors
    )
    return "\n".join(lines)


def load_config(
    config_path: Path,
    *,
    override_path: Path | None = None,
    expand_env: bool = True,
) -> GatewayConfig:
    """Read, layer, expand and validate the gateway configuration.

    Raises:
        ConfigurationError: With every validation error collected in ``errors``.
    """
    sources = [config_path] if override_path is None else [config_path, override_path]
    raw: dict[str, Any] = {}
    for source in sources:
        logger.info("Loading configuration", path=str(source))
        raw = merge_configs(raw, load_yaml_file(source))

    if expand_env:
        raw = expand_env_vars(raw)

    try:
        config = GatewayConfig.model_validate(raw)
    except ValidationError as e:
        errors = cast("list[dict[str, Any]]", e.errors())
        raise ConfigurationError(_describe(errors), errors=errors) from e

    logger.info(
        "Configuration loaded",
        gateway_name=config.gateway.name,
        api_enabled=config.api.enabled,
        api_port=config.api.port,
        mqtt_qos=config.mqtt.qos,
    )
    return config


def validate_config_file(config_path: Path) -> list[str]:
    """Problems found in a configuration file; empty when it loads cleanly."""
    try:
        load_config(config_path)
    except ConfigurationError as e:
        return [str(e)]
    return []


def generate_example_config() -> str:
    """Example YAML built from the schema defaults with a few sample values."""
    example = GatewayConfig(
        gateway=GatewayInfo(name="uaweb-gateway-01", description="Example OPC UA web gateway"),
    ).model_dump(mode="json")

    example["client"]["application_uri"] = "urn:example:uaweb-gateway"
    example["security"].update(
        username="${UAWEB_OPCUA_USER:-}",
        password="${UAWEB_OPCUA_PASSWORD:-}",
    )
    example["mqtt"]["qos"] = 1
    example["api"]["cors_origins"] = ["http://localhost:3000"]

    return yaml.safe_dump(example, default_flow_style=False, sort_keys=False, allow_unicode=True)
