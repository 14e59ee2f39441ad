"""Cluster-side objects: typed views, manifest builders and the store."""

from tunnelgate.cluster.manifests import (
    CONFIG_MAP_SELECTOR,
    build_config_map,
    build_deployment,
    build_secret,
    config_map_name,
    deployment_name,
    rule_owners,
    secret_name,
)
from tunnelgate.cluster.objects import (
    BackendRef,
    ClassCredentials,
    Gateway,
    GatewayClass,
    HTTPRoute,
    ObjectKey,
    OwnedObject,
)
from tunnelgate.cluster.store import ClusterStore, KubernetesStore

__all__ = [
    # Objects
    "ObjectKey",
    "OwnedObject",
    "GatewayClass",
    "Gateway",
    "HTTPRoute",
    "BackendRef",
    "ClassCredentials",
    # Manifests
    "CONFIG_MAP_SELECTOR",
    "build_config_map",
    "build_secret",
    "build_deployment",
    "config_map_name",
    "secret_name",
    "deployment_name",
    "rule_owners",
    # Store
    "ClusterStore",
    "KubernetesStore",
]
