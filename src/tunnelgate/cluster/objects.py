"""Typed views over the Gateway API objects and secrets the controller reads.

The store hands back plain dictionaries (the JSON form of each object);
these dataclasses pick out the fields reconciles care about. GatewayClass,
Gateway and HTTPRoute together form the set of kinds this controller may
own; see OwnedObject.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from typing import Any

from tunnelgate.core.exceptions import MissingFieldError, RouteSpecError

GATEWAY_API_GROUP = "gateway.networking.k8s.io"
GATEWAY_API_VERSION = "v1"

TUNNEL_ID_ANNOTATION = "tunnelgate.io/tunnel-id"

SECRET_API_TOKEN = "api_token"
SECRET_DOMAIN = "domain"
SECRET_EMAIL = "email"
SECRET_ACCOUNT_ID = "account_id"


def _metadata(body: dict[str, Any]) -> dict[str, Any]:
    return body.get("metadata") or {}


@dataclass
class ObjectKey:
    """Namespace and name of an object; namespace is empty for cluster-scoped kinds."""

    name: str
    namespace: str = ""

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name


@dataclass
class GatewayClass:
    name: str
    controller_name: str
    parameters_ref: ObjectKey | None
    generation: int = 0
    conditions: list[dict[str, Any]] = field(default_factory=list)

    @property
    def class_name(self) -> str:
        return self.name

    @classmethod
    def from_dict(cls, body: dict[str, Any]) -> GatewayClass:
        meta = _metadata(body)
        spec = body.get("spec") or {}
        ref = spec.get("parametersRef")
        return cls(
            name=meta.get("name", ""),
            controller_name=spec.get("controllerName", ""),
            parameters_ref=ObjectKey(name=ref["name"], namespace=ref.get("namespace") or "")
            if ref and ref.get("name")
            else None,
            generation=meta.get("generation", 0),
            conditions=list((body.get("status") or {}).get("conditions") or []),
        )


@dataclass
class Gateway:
    name: str
    namespace: str
    uid: str
    class_name: str
    annotations: dict[str, str] = field(default_factory=dict)

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.name, self.namespace)

    @property
    def tunnel_id(self) -> str | None:
        return self.annotations.get(TUNNEL_ID_ANNOTATION) or None

    @classmethod
    def from_dict(cls, body: dict[str, Any]) -> Gateway:
        meta = _metadata(body)
        spec = body.get("spec") or {}
        return cls(
            name=meta.get("name", ""),
            namespace=meta.get("namespace", ""),
            uid=meta.get("uid", ""),
            class_name=spec.get("gatewayClassName", ""),
            annotations=dict(meta.get("annotations") or {}),
        )


@dataclass
class BackendRef:
    name: str
    namespace: str
    port: int | None


@dataclass
class HTTPRoute:
    name: str
    namespace: str
    hostnames: list[str]
    parent_refs: list[ObjectKey]
    backend_refs: list[BackendRef]

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.name, self.namespace)

    @property
    def owner_id(self) -> str:
        """Identity recorded against the ingress rules this route contributes."""
        return f"{self.namespace}/{self.name}"

    @property
    def gateway_ref(self) -> ObjectKey:
        if not self.parent_refs:
            raise RouteSpecError(f"route {self.owner_id} has no parentRefs")
        return self.parent_refs[0]

    @property
    def backend(self) -> BackendRef:
        if not self.backend_refs:
            raise RouteSpecError(f"route {self.owner_id} has no backendRefs")
        backend = self.backend_refs[0]
        if backend.port is None:
            raise RouteSpecError(f"route {self.owner_id} backend {backend.name} has no port")
        return backend

    @classmethod
    def from_dict(cls, body: dict[str, Any]) -> HTTPRoute:
        meta = _metadata(body)
        spec = body.get("spec") or {}
        namespace = meta.get("namespace", "")
        parents = [
            ObjectKey(name=ref["name"], namespace=ref.get("namespace") or namespace)
            for ref in spec.get("parentRefs") or []
            if ref.get("name")
        ]
        # One backend per routing rule; the first rule's first backend wins.
        backends = []
        for rule in spec.get("rules") or []:
            for ref in rule.get("backendRefs") or []:
                if ref.get("name"):
                    backends.append(
                        BackendRef(
                            name=ref["name"],
                            namespace=ref.get("namespace") or namespace,
                            port=ref.get("port"),
                        )
                    )
                    break
        return cls(
            name=meta.get("name", ""),
            namespace=namespace,
            hostnames=list(spec.get("hostnames") or []),
            parent_refs=parents,
            backend_refs=backends,
        )


OwnedObject = GatewayClass | Gateway | HTTPRoute


@dataclass
class ClassCredentials:
    """Provider credentials referenced by a gateway class."""

    api_token: str
    domain: str
    email: str
    account_id: str

    def validate(self) -> None:
        """Raise MissingFieldError for the first empty field."""
        for name, value in (
            (SECRET_API_TOKEN, self.api_token),
            (SECRET_DOMAIN, self.domain),
            (SECRET_EMAIL, self.email),
            (SECRET_ACCOUNT_ID, self.account_id),
        ):
            if not value:
                raise MissingFieldError(name)

    @classmethod
    def from_secret(cls, body: dict[str, Any]) -> ClassCredentials:
        data = secret_data(body)
        return cls(
            api_token=data.get(SECRET_API_TOKEN, ""),
            domain=data.get(SECRET_DOMAIN, ""),
            email=data.get(SECRET_EMAIL, ""),
            account_id=data.get(SECRET_ACCOUNT_ID, ""),
        )


def secret_data(body: dict[str, Any]) -> dict[str, str]:
    """Decode a secret's data; undecodable values read as empty."""
    decoded: dict[str, str] = {}
    for key, value in (body.get("data") or {}).items():
        try:
            decoded[key] = base64.b64decode(value or "").decode("utf-8").strip()
        except (binascii.Error, UnicodeDecodeError, ValueError):
            decoded[key] = ""
    for key, value in (body.get("stringData") or {}).items():
        decoded[key] = (value or "").strip()
    return decoded
