"""Access to the cluster's control-plane store.

ClusterStore is the capability every reconcile receives; objects go in and
come out as plain dictionaries. KubernetesStore implements it with the
official Kubernetes client, running each blocking call in a worker thread.

Errors are mapped onto the tunnelgate taxonomy:
- a missing object is returned as None by the get_* methods
- 409 on create raises AlreadyExistsError, on replace ConflictError
- anything else raises TransportError
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

import structlog
import urllib3
from kubernetes import client, config
from kubernetes.client.exceptions import ApiException

from tunnelgate.cluster.objects import GATEWAY_API_GROUP, GATEWAY_API_VERSION
from tunnelgate.core.exceptions import AlreadyExistsError, ConflictError, TransportError

logger = structlog.get_logger()

T = TypeVar("T")


class ClusterStore(Protocol):
    """Store operations the reconciles use."""

    async def get_gateway_class(self, name: str) -> dict[str, Any] | None: ...

    async def get_gateway(self, namespace: str, name: str) -> dict[str, Any] | None: ...

    async def get_http_route(self, namespace: str, name: str) -> dict[str, Any] | None: ...

    async def get_secret(self, namespace: str, name: str) -> dict[str, Any] | None: ...

    async def create_secret(self, body: dict[str, Any]) -> None: ...

    async def get_config_map(self, namespace: str, name: str) -> dict[str, Any] | None: ...

    async def list_config_maps(self, label_selector: str) -> list[dict[str, Any]]: ...

    async def create_config_map(self, body: dict[str, Any]) -> None: ...

    async def replace_config_map(self, body: dict[str, Any]) -> None: ...

    async def get_deployment(self, namespace: str, name: str) -> dict[str, Any] | None: ...

    async def create_deployment(self, body: dict[str, Any]) -> None: ...

    async def replace_deployment(self, body: dict[str, Any]) -> None: ...

    async def patch_gateway_annotations(
        self, namespace: str, name: str, annotations: dict[str, str]
    ) -> None: ...

    async def update_gateway_class_status(self, name: str, status: dict[str, Any]) -> None: ...


class KubernetesStore:
    """ClusterStore backed by the Kubernetes API."""

    def __init__(
        self,
        api_client: client.ApiClient | None = None,
        request_timeout: float = 10.0,
    ) -> None:
        self._api_client = api_client or client.ApiClient()
        self._core = client.CoreV1Api(self._api_client)
        self._apps = client.AppsV1Api(self._api_client)
        self._custom = client.CustomObjectsApi(self._api_client)
        self._timeout = request_timeout

    @classmethod
    def from_environment(cls, request_timeout: float = 10.0) -> KubernetesStore:
        """Load in-cluster credentials, falling back to the local kubeconfig."""
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config()
        return cls(request_timeout=request_timeout)

    def _to_dict(self, obj: Any) -> dict[str, Any]:
        if isinstance(obj, dict):
            return obj
        return self._api_client.sanitize_for_serialization(obj)

    async def _call(self, operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        kwargs["_request_timeout"] = self._timeout
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except ApiException as e:
            if e.status == 409:
                error = AlreadyExistsError if operation.startswith("create") else ConflictError
                raise error(operation, e.reason or "conflict", status=409) from e
            raise TransportError(operation, f"{e.status} {e.reason}", status=e.status) from e
        except (urllib3.exceptions.HTTPError, OSError) as e:
            raise TransportError(operation, str(e)) from e

    async def _get(self, operation: str, fn: Callable[..., Any], *args: Any) -> dict[str, Any] | None:
        try:
            obj = await self._call(operation, fn, *args)
        except TransportError as e:
            if e.status == 404:
                return None
            raise
        return self._to_dict(obj)

    async def get_gateway_class(self, name: str) -> dict[str, Any] | None:
        return await self._get(
            "get gatewayclass",
            self._custom.get_cluster_custom_object,
            GATEWAY_API_GROUP,
            GATEWAY_API_VERSION,
            "gatewayclasses",
            name,
        )

    async def get_gateway(self, namespace: str, name: str) -> dict[str, Any] | None:
        return await self._get(
            "get gateway",
            self._custom.get_namespaced_custom_object,
            GATEWAY_API_GROUP,
            GATEWAY_API_VERSION,
            namespace,
            "gateways",
            name,
        )

    async def get_http_route(self, namespace: str, name: str) -> dict[str, Any] | None:
        return await self._get(
            "get httproute",
            self._custom.get_namespaced_custom_object,
            GATEWAY_API_GROUP,
            GATEWAY_API_VERSION,
            namespace,
            "httproutes",
            name,
        )

    async def get_secret(self, namespace: str, name: str) -> dict[str, Any] | None:
        return await self._get("get secret", self._core.read_namespaced_secret, name, namespace)

    async def create_secret(self, body: dict[str, Any]) -> None:
        namespace = body["metadata"]["namespace"]
        await self._call("create secret", self._core.create_namespaced_secret, namespace, body)

    async def get_config_map(self, namespace: str, name: str) -> dict[str, Any] | None:
        return await self._get(
            "get configmap", self._core.read_namespaced_config_map, name, namespace
        )

    async def list_config_maps(self, label_selector: str) -> list[dict[str, Any]]:
        result = await self._call(
            "list configmaps",
            self._core.list_config_map_for_all_namespaces,
            label_selector=label_selector,
        )
        return self._to_dict(result).get("items") or []

    async def create_config_map(self, body: dict[str, Any]) -> None:
        namespace = body["metadata"]["namespace"]
        await self._call(
            "create configmap", self._core.create_namespaced_config_map, namespace, body
        )

    async def replace_config_map(self, body: dict[str, Any]) -> None:
        meta = body["metadata"]
        await self._call(
            "replace configmap",
            self._core.replace_namespaced_config_map,
            meta["name"],
            meta["namespace"],
            body,
        )

    async def get_deployment(self, namespace: str, name: str) -> dict[str, Any] | None:
        return await self._get(
            "get deployment", self._apps.read_namespaced_deployment, name, namespace
        )

    async def create_deployment(self, body: dict[str, Any]) -> None:
        namespace = body["metadata"]["namespace"]
        await self._call(
            "create deployment", self._apps.create_namespaced_deployment, namespace, body
        )

    async def replace_deployment(self, body: dict[str, Any]) -> None:
        meta = body["metadata"]
        await self._call(
            "replace deployment",
            self._apps.replace_namespaced_deployment,
            meta["name"],
            meta["namespace"],
            body,
        )

    async def patch_gateway_annotations(
        self, namespace: str, name: str, annotations: dict[str, str]
    ) -> None:
        await self._call(
            "patch gateway",
            self._custom.patch_namespaced_custom_object,
            GATEWAY_API_GROUP,
            GATEWAY_API_VERSION,
            namespace,
            "gateways",
            name,
            {"metadata": {"annotations": annotations}},
        )

    async def update_gateway_class_status(self, name: str, status: dict[str, Any]) -> None:
        await self._call(
            "update gatewayclass status",
            self._custom.patch_cluster_custom_object_status,
            GATEWAY_API_GROUP,
            GATEWAY_API_VERSION,
            "gatewayclasses",
            name,
            {"status": status},
        )
