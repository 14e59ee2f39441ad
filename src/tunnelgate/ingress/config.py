"""Tunnel configuration file model.

The config file is what cloudflared reads on start-up. It is persisted as
JSON (valid YAML) inside a config map and mounted into the tunnel workload:

    {"tunnel": "6ff42ae2-...", "credentials-file": "/etc/cloudflared/creds/creds.json",
     "ingress": [{"hostname": "api.example.com", "service": "http://api.apps.svc.cluster.local:80"},
                 {"service": "http_status:404"}]}

Encoding is deterministic: keys are always emitted in the same order and
without insignificant whitespace, so two equal configs encode to identical
bytes and a reconcile can skip writes that would change nothing.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from tunnelgate.core.exceptions import ArtifactValidationError
from tunnelgate.ingress.rules import CATCH_ALL_RULE, DEFAULT_BACKEND, IngressRule

CONFIG_DIR = "/etc/cloudflared/config"
CREDENTIALS_DIR = "/etc/cloudflared/creds"
CONFIG_FILE_NAME = "config.yaml"
CREDENTIALS_FILE_NAME = "creds.json"
CONFIG_FILE_PATH = f"{CONFIG_DIR}/{CONFIG_FILE_NAME}"
CREDENTIALS_FILE_PATH = f"{CREDENTIALS_DIR}/{CREDENTIALS_FILE_NAME}"


@dataclass(frozen=True)
class TunnelConfigFile:
    """A tunnel's identity plus its ordered ingress rules.

    Always build instances with new_tunnel_config_file() or from_json(),
    which enforce the invariants.
    """

    tunnel_id: str
    ingress: tuple[IngressRule, ...]
    credentials_file: str = CREDENTIALS_FILE_PATH

    def validate(self) -> None:
        if not self.tunnel_id:
            raise ArtifactValidationError(
                ArtifactValidationError.EMPTY_TUNNEL_ID, "tunnel id is empty"
            )
        if not self.ingress:
            raise ArtifactValidationError(
                ArtifactValidationError.EMPTY_RULE_SET, "ingress is empty"
            )
        if not self.ingress[-1].is_catch_all:
            raise ArtifactValidationError(
                ArtifactValidationError.MISSING_CATCH_ALL,
                "last ingress rule must be a catch-all with no hostname "
                f"e.g. `- service: {DEFAULT_BACKEND}`",
            )
        if sum(1 for rule in self.ingress if rule.is_catch_all) > 1:
            raise ArtifactValidationError(
                ArtifactValidationError.MULTIPLE_CATCH_ALL,
                "only one ingress rule may omit its hostname",
            )

    @property
    def hostnames(self) -> set[str]:
        return {rule.hostname for rule in self.ingress}

    def to_dict(self) -> dict[str, Any]:
        return {
            "tunnel": self.tunnel_id,
            "credentials-file": self.credentials_file,
            "ingress": [rule.to_dict() for rule in self.ingress],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_json(cls, content: str) -> TunnelConfigFile:
        """Decode and validate a persisted config file.

        Raises:
            ArtifactValidationError: If the content is not a valid config file.
        """
        try:
            data = json.loads(content)
        except (json.JSONDecodeError, TypeError) as e:
            raise ArtifactValidationError(
                ArtifactValidationError.MALFORMED, f"config file is not valid JSON: {e}"
            ) from e
        if not isinstance(data, dict) or not isinstance(data.get("ingress", []), list):
            raise ArtifactValidationError(
                ArtifactValidationError.MALFORMED, "config file has an unexpected shape"
            )
        for index, item in enumerate(data.get("ingress", [])):
            if (
                not isinstance(item, dict)
                or not isinstance(item.get("hostname") or "", str)
                or not isinstance(item.get("service", ""), str)
            ):
                raise ArtifactValidationError(
                    ArtifactValidationError.MALFORMED,
                    f"ingress entry {index} must be a mapping of string hostname and service",
                )

        config = cls(
            tunnel_id=data.get("tunnel") or "",
            ingress=tuple(IngressRule.from_dict(item) for item in data.get("ingress", [])),
            credentials_file=data.get("credentials-file") or CREDENTIALS_FILE_PATH,
        )
        config.validate()
        return config


def new_tunnel_config_file(
    tunnel_id: str,
    rules: Sequence[IngressRule],
    credentials_file: str = CREDENTIALS_FILE_PATH,
) -> TunnelConfigFile:
    """Build a validated config file.

    If the supplied rules do not end in a catch-all, the default 404 backend
    is appended.

    Raises:
        ArtifactValidationError: EmptyTunnelId, EmptyRuleSet, or MultipleCatchAll.
    """
    ingress = tuple(rules)
    if ingress and not ingress[-1].is_catch_all:
        ingress = (*ingress, CATCH_ALL_RULE)

    config = TunnelConfigFile(
        tunnel_id=tunnel_id,
        ingress=ingress,
        credentials_file=credentials_file,
    )
    config.validate()
    return config


def default_tunnel_config_file(tunnel_id: str) -> TunnelConfigFile:
    """Build the initial config for a new tunnel: only the 404 catch-all."""
    return new_tunnel_config_file(tunnel_id, [CATCH_ALL_RULE])
