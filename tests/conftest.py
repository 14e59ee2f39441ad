"""Shared fixtures: in-memory store and provider fakes plus object builders."""

from __future__ import annotations

import base64
import copy
from typing import Any

import pytest

from tunnelgate.cluster import manifests
from tunnelgate.cluster.objects import GATEWAY_API_GROUP, GATEWAY_API_VERSION
from tunnelgate.core.config import DEFAULT_CONTROLLER_NAME, ControllerConfig
from tunnelgate.core.exceptions import AlreadyExistsError, ConflictError, TransportError
from tunnelgate.tunnels.api import Tunnel

ACCOUNT_ID = "acct-123"
API_TOKEN = "token-abc"


class FakeStore:
    """ClusterStore kept in dictionaries, with resourceVersion conflict checks."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.calls: list[str] = []
        self.fail: dict[str, Exception] = {}
        self._version = 0

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail:
            raise self.fail[operation]

    def _stamp(self, body: dict[str, Any]) -> dict[str, Any]:
        self._version += 1
        body = copy.deepcopy(body)
        body.setdefault("metadata", {})["resourceVersion"] = str(self._version)
        return body

    def put(self, kind: str, body: dict[str, Any]) -> None:
        meta = body["metadata"]
        self.objects[(kind, meta.get("namespace", ""), meta["name"])] = self._stamp(body)

    def get(self, kind: str, namespace: str, name: str) -> dict[str, Any] | None:
        body = self.objects.get((kind, namespace, name))
        return copy.deepcopy(body) if body is not None else None

    def count(self, operation: str) -> int:
        return self.calls.count(operation)

    def _create(self, kind: str, body: dict[str, Any]) -> None:
        meta = body["metadata"]
        key = (kind, meta["namespace"], meta["name"])
        if key in self.objects:
            raise AlreadyExistsError(f"create {kind}", "already exists", status=409)
        self.objects[key] = self._stamp(body)

    def _replace(self, kind: str, body: dict[str, Any]) -> None:
        meta = body["metadata"]
        key = (kind, meta["namespace"], meta["name"])
        current = self.objects.get(key)
        if current is None:
            raise TransportError(f"replace {kind}", "not found", status=404)
        version = meta.get("resourceVersion")
        if version and version != current["metadata"]["resourceVersion"]:
            raise ConflictError(f"replace {kind}", "object has been modified", status=409)
        self.objects[key] = self._stamp(body)

    async def get_gateway_class(self, name: str) -> dict[str, Any] | None:
        self._check("get_gateway_class")
        return self.get("gatewayclass", "", name)

    async def get_gateway(self, namespace: str, name: str) -> dict[str, Any] | None:
        self._check("get_gateway")
        return self.get("gateway", namespace, name)

    async def get_http_route(self, namespace: str, name: str) -> dict[str, Any] | None:
        self._check("get_http_route")
        return self.get("httproute", namespace, name)

    async def get_secret(self, namespace: str, name: str) -> dict[str, Any] | None:
        self._check("get_secret")
        return self.get("secret", namespace, name)

    async def create_secret(self, body: dict[str, Any]) -> None:
        self._check("create_secret")
        self._create("secret", body)

    async def get_config_map(self, namespace: str, name: str) -> dict[str, Any] | None:
        self._check("get_config_map")
        return self.get("configmap", namespace, name)

    async def list_config_maps(self, label_selector: str) -> list[dict[str, Any]]:
        self._check("list_config_maps")
        key, _, value = label_selector.partition("=")
        return [
            copy.deepcopy(body)
            for (kind, _, _), body in sorted(self.objects.items())
            if kind == "configmap" and (body["metadata"].get("labels") or {}).get(key) == value
        ]

    async def create_config_map(self, body: dict[str, Any]) -> None:
        self._check("create_config_map")
        self._create("configmap", body)

    async def replace_config_map(self, body: dict[str, Any]) -> None:
        self._check("replace_config_map")
        self._replace("configmap", body)

    async def get_deployment(self, namespace: str, name: str) -> dict[str, Any] | None:
        self._check("get_deployment")
        return self.get("deployment", namespace, name)

    async def create_deployment(self, body: dict[str, Any]) -> None:
        self._check("create_deployment")
        self._create("deployment", body)

    async def replace_deployment(self, body: dict[str, Any]) -> None:
        self._check("replace_deployment")
        self._replace("deployment", body)

    async def patch_gateway_annotations(
        self, namespace: str, name: str, annotations: dict[str, str]
    ) -> None:
        self._check("patch_gateway_annotations")
        body = self.objects[("gateway", namespace, name)]
        body["metadata"].setdefault("annotations", {}).update(annotations)

    async def update_gateway_class_status(self, name: str, status: dict[str, Any]) -> None:
        self._check("update_gateway_class_status")
        body = self.objects[("gatewayclass", "", name)]
        body["status"] = copy.deepcopy(status)


class FakeProvider:
    """TunnelProvider holding tunnels in a list."""

    def __init__(self) -> None:
        self.tunnels: list[Tunnel] = []
        self.secrets: dict[str, str] = {}
        self.deleted: list[str] = []
        self.created: list[str] = []
        self.verify_error: Exception | None = None
        self.closed = 0

    def add(self, name: str, secret: str = "s" * 32) -> Tunnel:
        tunnel = Tunnel(id=f"tunnel-{len(self.tunnels) + 1}", name=name)
        self.tunnels.append(tunnel)
        self.secrets[tunnel.id] = secret
        return tunnel

    async def create_tunnel(self, name: str, secret: str) -> Tunnel:
        self.created.append(name)
        return self.add(name, secret)

    async def list_tunnels(self, name: str) -> list[Tunnel]:
        return [t for t in self.tunnels if t.name == name and t.id not in self.deleted]

    async def get_tunnel_secret(self, tunnel_id: str) -> str:
        return self.secrets[tunnel_id]

    async def delete_tunnel(self, tunnel_id: str) -> None:
        self.deleted.append(tunnel_id)

    async def verify_token(self) -> None:
        if self.verify_error is not None:
            raise self.verify_error

    async def aclose(self) -> None:
        self.closed += 1

    async def __aenter__(self) -> FakeProvider:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def encode_secret(data: dict[str, str]) -> dict[str, str]:
    return {k: base64.b64encode(v.encode()).decode() for k, v in data.items()}


def credential_secret(
    name: str = "cf-creds",
    namespace: str = "default",
    **overrides: str,
) -> dict[str, Any]:
    data = {
        "api_token": API_TOKEN,
        "domain": "example.com",
        "email": "ops@example.com",
        "account_id": ACCOUNT_ID,
    }
    data.update(overrides)
    data = {k: v for k, v in data.items() if v is not None}
    return {
        "metadata": {"name": name, "namespace": namespace},
        "data": encode_secret(data),
    }


def gateway_class_body(
    name: str = "cloudflare",
    controller: str = DEFAULT_CONTROLLER_NAME,
    secret: str | None = "cf-creds",
    secret_namespace: str = "default",
    generation: int = 1,
) -> dict[str, Any]:
    spec: dict[str, Any] = {"controllerName": controller}
    if secret:
        spec["parametersRef"] = {
            "group": "",
            "kind": "Secret",
            "name": secret,
            "namespace": secret_namespace,
        }
    return {
        "apiVersion": f"{GATEWAY_API_GROUP}/{GATEWAY_API_VERSION}",
        "kind": "GatewayClass",
        "metadata": {"name": name, "generation": generation},
        "spec": spec,
    }


def gateway_body(
    name: str = "gw1",
    namespace: str = "infra",
    class_name: str = "cloudflare",
) -> dict[str, Any]:
    return {
        "apiVersion": f"{GATEWAY_API_GROUP}/{GATEWAY_API_VERSION}",
        "kind": "Gateway",
        "metadata": {"name": name, "namespace": namespace, "uid": f"uid-{name}"},
        "spec": {"gatewayClassName": class_name},
    }


def route_body(
    name: str = "web",
    namespace: str = "apps",
    hostnames: list[str] | None = None,
    gateway: str = "gw1",
    gateway_namespace: str | None = "infra",
    service: str = "web",
    port: int | None = 80,
) -> dict[str, Any]:
    parent: dict[str, Any] = {"name": gateway}
    if gateway_namespace:
        parent["namespace"] = gateway_namespace
    backend: dict[str, Any] = {"name": service}
    if port is not None:
        backend["port"] = port
    return {
        "apiVersion": f"{GATEWAY_API_GROUP}/{GATEWAY_API_VERSION}",
        "kind": "HTTPRoute",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "parentRefs": [parent],
            "hostnames": hostnames if hostnames is not None else ["web.example.com"],
            "rules": [{"backendRefs": [backend]}],
        },
    }


@pytest.fixture
def config() -> ControllerConfig:
    return ControllerConfig(requeue_interval=30.0)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def provider_factory(provider: FakeProvider):
    calls: list[tuple[str, str]] = []

    def factory(api_token: str, account_id: str) -> FakeProvider:
        calls.append((api_token, account_id))
        return provider

    factory.calls = calls
    return factory


@pytest.fixture
def owned_store(store: FakeStore) -> FakeStore:
    """A store with an owned class, its credential secret and one gateway."""
    store.put("gatewayclass", gateway_class_body())
    store.put("secret", credential_secret())
    store.put("gateway", gateway_body())
    return store


def config_map_for(store: FakeStore, gateway: str = "gw1", namespace: str = "infra"):
    return store.get("configmap", namespace, manifests.config_map_name(gateway))
