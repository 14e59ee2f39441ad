"""Event wiring: route kopf events for the three Gateway API kinds to the reconcilers.

Every kind is reconciled on resume, create and update, and again by a timer
every requeue_interval so level-triggered state (token validity, a deleted
config map) is re-checked without a watch event. A failed reconcile raises
kopf.TemporaryError with the same fixed delay.

Usage:
    registry = kopf.OperatorRegistry()
    register(registry, Reconcilers.build(store, factory, config), config)
    kopf.run(registry=registry, clusterwide=True, standalone=True)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import kopf
import structlog

from tunnelgate.cluster.objects import (
    GATEWAY_API_GROUP,
    GATEWAY_API_VERSION,
    TUNNEL_ID_ANNOTATION,
    Gateway,
)
from tunnelgate.cluster.store import ClusterStore
from tunnelgate.controller.base import ReconcileResult
from tunnelgate.controller.gateway import GatewayReconciler
from tunnelgate.controller.gateway_class import GatewayClassReconciler
from tunnelgate.controller.http_route import HTTPRouteReconciler
from tunnelgate.core.config import ControllerConfig
from tunnelgate.tunnels.api import ProviderFactory

logger = structlog.get_logger()

GATEWAY_CLASSES = "gatewayclasses"
GATEWAYS = "gateways"
HTTP_ROUTES = "httproutes"


@dataclass
class Reconcilers:
    gateway_classes: GatewayClassReconciler
    gateways: GatewayReconciler
    http_routes: HTTPRouteReconciler

    @classmethod
    def build(
        cls,
        store: ClusterStore,
        provider_factory: ProviderFactory,
        config: ControllerConfig,
    ) -> Reconcilers:
        return cls(
            gateway_classes=GatewayClassReconciler(store, provider_factory, config),
            gateways=GatewayReconciler(store, provider_factory, config),
            http_routes=HTTPRouteReconciler(store, config),
        )


def raise_for_result(result: ReconcileResult) -> None:
    """Translate a failed result into kopf's fixed-delay retry."""
    if result.failed:
        raise kopf.TemporaryError(result.error or "reconcile failed", delay=result.requeue_after)


def register(
    registry: kopf.OperatorRegistry,
    reconcilers: Reconcilers,
    config: ControllerConfig,
) -> kopf.OperatorRegistry:
    """Attach every handler to `registry` and return it."""
    interval = config.requeue_interval

    def watch(plural: str):
        def decorate(fn):
            for decorator in (
                kopf.on.resume(GATEWAY_API_GROUP, GATEWAY_API_VERSION, plural, registry=registry),
                kopf.on.create(GATEWAY_API_GROUP, GATEWAY_API_VERSION, plural, registry=registry),
                kopf.on.update(GATEWAY_API_GROUP, GATEWAY_API_VERSION, plural, registry=registry),
                kopf.timer(
                    GATEWAY_API_GROUP,
                    GATEWAY_API_VERSION,
                    plural,
                    interval=interval,
                    idle=interval,
                    registry=registry,
                ),
            ):
                fn = decorator(fn)
            return fn

        return decorate

    @watch(GATEWAY_CLASSES)
    async def reconcile_gateway_class(name: str, **_: Any) -> None:
        raise_for_result(await reconcilers.gateway_classes.reconcile(name))

    @watch(GATEWAYS)
    async def reconcile_gateway(name: str, namespace: str, **_: Any) -> None:
        raise_for_result(await reconcilers.gateways.reconcile(namespace, name))

    @watch(HTTP_ROUTES)
    async def reconcile_http_route(name: str, namespace: str, **_: Any) -> None:
        raise_for_result(await reconcilers.http_routes.reconcile(namespace, name))

    if config.delete_tunnel_on_gateway_delete:
        # Only gateways this controller provisioned carry the tunnel id, and only
        # those get a finalizer.
        @kopf.on.delete(
            GATEWAY_API_GROUP,
            GATEWAY_API_VERSION,
            GATEWAYS,
            annotations={TUNNEL_ID_ANNOTATION: kopf.PRESENT},
            registry=registry,
        )
        async def delete_gateway(body: kopf.Body, **_: Any) -> None:
            raise_for_result(await reconcilers.gateways.finalize(Gateway.from_dict(body)))

    # No finalizer: a route deleted while the controller is down keeps its rules.
    @kopf.on.delete(
        GATEWAY_API_GROUP, GATEWAY_API_VERSION, HTTP_ROUTES, optional=True, registry=registry
    )
    async def delete_http_route(name: str, namespace: str, **_: Any) -> None:
        raise_for_result(await reconcilers.http_routes.prune_deleted(f"{namespace}/{name}"))

    logger.debug("Handlers registered", interval=interval)
    return registry
