"""Reconcile drivers for gateway classes, gateways and routes.

Usage:
    from tunnelgate.controller import Reconcilers, register

    reconcilers = Reconcilers.build(store, CloudflareAPI.factory(config), config)
    result = await reconcilers.http_routes.reconcile("apps", "web")
"""

from tunnelgate.controller.base import Outcome, ReconcileResult
from tunnelgate.controller.gateway import GatewayReconciler
from tunnelgate.controller.gateway_class import GatewayClassReconciler
from tunnelgate.controller.http_route import HTTPRouteReconciler
from tunnelgate.controller.operator import Reconcilers, register
from tunnelgate.controller.ownership import OwnershipFilter
from tunnelgate.controller.validator import ClassValidator

__all__ = [
    "ClassValidator",
    "GatewayClassReconciler",
    "GatewayReconciler",
    "HTTPRouteReconciler",
    "Outcome",
    "OwnershipFilter",
    "ReconcileResult",
    "Reconcilers",
    "register",
]
