"""Configuration types with environment variable support.

All settings can be configured via environment variables with the TUNNELGATE_ prefix.
Example: TUNNELGATE_REQUEUE_INTERVAL=30 requeues every reconcile after 30 seconds.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONTROLLER_NAME = "adamland.xyz/cloudflare-gateway-controller"


def load_config_from_file(path: str | Path) -> dict[str, Any]:
    """Load configuration from a YAML or TOML file.

    Args:
        path: Path to the configuration file (.yaml, .yml, or .toml)

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config file has encoding errors, invalid syntax, or unsupported format
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"Config file encoding error in {path}: {e}") from e

    try:
        if path.suffix in (".yaml", ".yml"):
            return yaml.safe_load(content) or {}
        elif path.suffix == ".toml":
            return tomllib.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {path}: {e}") from e


def flatten_config(config: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in config.items():
        full_key = f"{prefix}_{key}" if prefix else key
        if isinstance(value, dict):
            result.update(flatten_config(value, full_key))
        else:
            result[full_key] = value
    return result


class ControllerConfig(BaseSettings):
    """Controller configuration.

    All settings can be overridden via environment variables:
    - TUNNELGATE_CONTROLLER_NAME: Controller identity gateway classes must reference
    - TUNNELGATE_REQUEUE_INTERVAL: Fixed requeue delay in seconds
    - TUNNELGATE_API_TIMEOUT: Deadline for each provider API call in seconds
    - etc.
    """

    model_config = SettingsConfigDict(
        env_prefix="TUNNELGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    controller_name: str = Field(
        default=DEFAULT_CONTROLLER_NAME,
        description="Controller identity that gateway classes reference to be owned.",
    )
    requeue_interval: float = Field(
        default=60.0,
        gt=0,
        description="Fixed delay in seconds before a reconcile is repeated.",
    )
    api_base_url: str = Field(
        default="https://api.cloudflare.com/client/v4",
        description="Root URL of the tunnel provider API.",
    )
    api_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Deadline in seconds for each provider API call.",
    )
    secret_length: int = Field(
        default=32,
        ge=32,
        description="Number of symbols in a generated tunnel secret.",
    )
    default_secret_namespace: str = Field(
        default="default",
        description="Namespace of the credential secret when a class does not name one.",
    )
    cloudflared_image: str = Field(
        default="cloudflare/cloudflared:latest",
        description="Container image that serves a tunnel.",
    )
    metrics_port: int = Field(
        default=2000,
        description="Metrics and readiness port exposed by the tunnel workload.",
    )
    prune_rules: bool = Field(
        default=True,
        description="Remove ingress rules whose originating route is gone.",
    )
    delete_tunnel_on_gateway_delete: bool = Field(
        default=True,
        description="Delete the remote tunnel when its gateway is deleted.",
    )
    log_level: str = Field(
        default="info",
        description="Log level: debug, info, warning or error.",
    )

    @classmethod
    def from_file(cls, path: str | Path) -> ControllerConfig:
        """Build a config from a file, letting the file override environment values."""
        overrides = flatten_config(load_config_from_file(path))
        return cls(**overrides)

    def to_display_dict(self) -> dict[str, Any]:
        """Export current configuration as a flat dictionary for display."""
        return {
            "controller_name": self.controller_name,
            "requeue_interval": self.requeue_interval,
            "api_base_url": self.api_base_url,
            "api_timeout": self.api_timeout,
            "secret_length": self.secret_length,
            "default_secret_namespace": self.default_secret_namespace,
            "cloudflared_image": self.cloudflared_image,
            "metrics_port": self.metrics_port,
            "prune_rules": self.prune_rules,
            "delete_tunnel_on_gateway_delete": self.delete_tunnel_on_gateway_delete,
            "log_level": self.log_level,
        }

