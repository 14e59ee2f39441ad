"""Builders for the config map, secret and deployment that serve one tunnel.

Every object is named after its gateway, labelled with it, and carries an
owner reference to it so the cluster garbage collector removes them when
the gateway is deleted.
"""

from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING, Any

from tunnelgate.cluster.objects import GATEWAY_API_GROUP, GATEWAY_API_VERSION, Gateway
from tunnelgate.ingress.config import (
    CONFIG_DIR,
    CONFIG_FILE_NAME,
    CONFIG_FILE_PATH,
    CREDENTIALS_DIR,
    CREDENTIALS_FILE_NAME,
)

if TYPE_CHECKING:
    from tunnelgate.tunnels.credentials import TunnelCredentials

GATEWAY_LABEL = "app.kubernetes.io/deploymentName"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY = "tunnelgate"
RULE_OWNERS_ANNOTATION = "tunnelgate.io/rule-owners"
CONFIG_HASH_ANNOTATION = "tunnelgate.io/config-hash"
MANIFEST_HASH_ANNOTATION = "tunnelgate.io/manifest-hash"

# Selects every config map this controller manages.
CONFIG_MAP_SELECTOR = f"{MANAGED_BY_LABEL}={MANAGED_BY}"


def config_map_name(gateway_name: str) -> str:
    return f"{gateway_name}-config"


def secret_name(gateway_name: str) -> str:
    return f"{gateway_name}-secret"


def deployment_name(gateway_name: str) -> str:
    return gateway_name


def _labels(gateway: Gateway) -> dict[str, str]:
    return {GATEWAY_LABEL: gateway.name, MANAGED_BY_LABEL: MANAGED_BY}


def _metadata(gateway: Gateway, name: str, **extra: Any) -> dict[str, Any]:
    meta: dict[str, Any] = {
        "name": name,
        "namespace": gateway.namespace,
        "labels": _labels(gateway),
        "ownerReferences": [
            {
                "apiVersion": f"{GATEWAY_API_GROUP}/{GATEWAY_API_VERSION}",
                "kind": "Gateway",
                "name": gateway.name,
                "uid": gateway.uid,
                "controller": True,
                "blockOwnerDeletion": True,
            }
        ],
    }
    meta.update(extra)
    return meta


def config_hash(config_json: str) -> str:
    return hashlib.sha256(config_json.encode()).hexdigest()[:16]


def manifest_hash(body: dict[str, Any]) -> str:
    return config_hash(json.dumps(body, sort_keys=True, separators=(",", ":")))


def rule_owners(config_map: dict[str, Any]) -> dict[str, str]:
    """Read the hostname ownership map from a config map's annotations."""
    annotations = (config_map.get("metadata") or {}).get("annotations") or {}
    raw = annotations.get(RULE_OWNERS_ANNOTATION)
    if not raw:
        return {}
    try:
        owners = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if not isinstance(owners, dict):
        return {}
    return {str(k): str(v) for k, v in owners.items()}


def encode_rule_owners(owners: dict[str, str]) -> str:
    return json.dumps(owners, sort_keys=True, separators=(",", ":"))


def build_config_map(
    gateway: Gateway,
    config_json: str,
    owners: dict[str, str] | None = None,
) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": _metadata(
            gateway,
            config_map_name(gateway.name),
            annotations={RULE_OWNERS_ANNOTATION: encode_rule_owners(owners or {})},
        ),
        "data": {CONFIG_FILE_NAME: config_json},
    }


def build_secret(gateway: Gateway, credentials: TunnelCredentials) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": _metadata(gateway, secret_name(gateway.name)),
        "type": "Opaque",
        "stringData": {CREDENTIALS_FILE_NAME: credentials.to_json()},
    }


def build_deployment(
    gateway: Gateway,
    tunnel_id: str,
    image: str = "cloudflare/cloudflared:latest",
    metrics_port: int = 2000,
    config_json: str = "",
) -> dict[str, Any]:
    """Build the cloudflared deployment for a gateway's tunnel.

    The rolling update surges one new pod and never takes the old one down
    first, so a config change does not drop connections. The config hash in
    the pod template makes a config change roll the pods. The manifest hash
    on the deployment itself lets a reconcile skip replacing an unchanged one.
    """
    labels = _labels(gateway)
    body: dict[str, Any] = {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": _metadata(gateway, deployment_name(gateway.name)),
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": labels},
            "strategy": {
                "type": "RollingUpdate",
                "rollingUpdate": {"maxSurge": 1, "maxUnavailable": 0},
            },
            "template": {
                "metadata": {
                    "labels": labels,
                    "annotations": {CONFIG_HASH_ANNOTATION: config_hash(config_json)},
                },
                "spec": {
                    "containers": [
                        {
                            "name": "cloudflared",
                            "image": image,
                            "args": [
                                "tunnel",
                                "--protocol", "auto",
                                "--config", CONFIG_FILE_PATH,
                                "--metrics", f"0.0.0.0:{metrics_port}",
                                "run",
                                tunnel_id,
                            ],
                            "livenessProbe": {
                                "httpGet": {"path": "/ready", "port": metrics_port},
                                "failureThreshold": 1,
                                "initialDelaySeconds": 10,
                                "periodSeconds": 10,
                            },
                            "ports": [
                                {
                                    "name": "metrics",
                                    "containerPort": metrics_port,
                                    "protocol": "TCP",
                                }
                            ],
                            "volumeMounts": [
                                {"name": "config", "mountPath": CONFIG_DIR, "readOnly": True},
                                {"name": "creds", "mountPath": CREDENTIALS_DIR, "readOnly": True},
                            ],
                            "resources": {
                                "requests": {"memory": "30Mi", "cpu": "10m"},
                                "limits": {"memory": "256Mi", "cpu": "500m"},
                            },
                        }
                    ],
                    "volumes": [
                        {
                            "name": "creds",
                            "secret": {"secretName": secret_name(gateway.name)},
                        },
                        {
                            "name": "config",
                            "configMap": {
                                "name": config_map_name(gateway.name),
                                "items": [{"key": CONFIG_FILE_NAME, "path": CONFIG_FILE_NAME}],
                            },
                        },
                    ],
                },
            },
        },
    }
    body["metadata"]["annotations"] = {MANIFEST_HASH_ANNOTATION: manifest_hash(body)}
    return body
