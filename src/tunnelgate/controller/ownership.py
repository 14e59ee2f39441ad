"""Deciding whether an object belongs to this controller.

An object is owned when the gateway class it ultimately references names
this controller. Routes reach their class through their gateway, gateways
reference it directly, and a class is checked against itself.
"""

from __future__ import annotations

import structlog

from tunnelgate.cluster.objects import Gateway, GatewayClass, HTTPRoute, OwnedObject
from tunnelgate.cluster.store import ClusterStore

logger = structlog.get_logger()


class OwnershipFilter:
    """Resolves class references fresh on every call; nothing is cached."""

    def __init__(self, store: ClusterStore, controller_name: str) -> None:
        self.store = store
        self.controller_name = controller_name

    def owns_class(self, gateway_class: GatewayClass) -> bool:
        return gateway_class.controller_name == self.controller_name

    async def is_owned(self, class_name: str) -> bool:
        """Check a class reference.

        A class that does not exist is not owned. Store failures propagate
        as TransportError.
        """
        if not class_name:
            return False
        body = await self.store.get_gateway_class(class_name)
        if body is None:
            logger.debug("Referenced gateway class not found", gatewayclass=class_name)
            return False
        return self.owns_class(GatewayClass.from_dict(body))

    async def class_name_of(self, obj: OwnedObject) -> str | None:
        """Return the class name an object references, or None if unresolvable."""
        if isinstance(obj, GatewayClass):
            return obj.name
        if isinstance(obj, Gateway):
            return obj.class_name
        if isinstance(obj, HTTPRoute):
            if not obj.parent_refs:
                return None
            ref = obj.parent_refs[0]
            body = await self.store.get_gateway(ref.namespace, ref.name)
            if body is None:
                return None
            return Gateway.from_dict(body).class_name
        raise TypeError(f"unsupported object kind: {type(obj).__name__}")

    async def owns(self, obj: OwnedObject) -> bool:
        if isinstance(obj, GatewayClass):
            return self.owns_class(obj)
        class_name = await self.class_name_of(obj)
        if class_name is None:
            return False
        return await self.is_owned(class_name)
