"""Gateway reconcile: provision the tunnel behind each owned gateway."""

from __future__ import annotations

import structlog

from tunnelgate.cluster.objects import Gateway, GatewayClass
from tunnelgate.cluster.store import ClusterStore
from tunnelgate.controller.base import Outcome, ReconcileResult, finish
from tunnelgate.controller.ownership import OwnershipFilter
from tunnelgate.controller.validator import ClassValidator
from tunnelgate.core.config import ControllerConfig
from tunnelgate.core.exceptions import (
    AmbiguousExternalStateError,
    ClassValidationError,
    TunnelgateError,
)
from tunnelgate.tunnels.api import ProviderFactory
from tunnelgate.tunnels.lifecycle import TunnelLifecycleManager

logger = structlog.get_logger()

CONTROLLER = "gateway"


class GatewayReconciler:
    """Provisions one tunnel per gateway and tears it down on deletion.

    The lookup chain gateway -> class -> secret is resolved fresh on every
    pass; nothing is carried between reconciles.
    """

    def __init__(
        self,
        store: ClusterStore,
        provider_factory: ProviderFactory,
        config: ControllerConfig,
    ) -> None:
        self.store = store
        self.provider_factory = provider_factory
        self.config = config
        self.ownership = OwnershipFilter(store, config.controller_name)
        self.validator = ClassValidator(store, provider_factory, config.default_secret_namespace)

    async def _class_of(self, gateway: Gateway) -> GatewayClass | None:
        body = await self.store.get_gateway_class(gateway.class_name)
        if body is None:
            return None
        gateway_class = GatewayClass.from_dict(body)
        if not self.ownership.owns_class(gateway_class):
            return None
        return gateway_class

    async def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        requeue = self.config.requeue_interval
        log = logger.bind(gateway=f"{namespace}/{name}")
        log.info("Reconciling gateway")

        try:
            body = await self.store.get_gateway(namespace, name)
            if body is None:
                return finish(CONTROLLER, Outcome.DELETED)
            gateway = Gateway.from_dict(body)

            gateway_class = await self._class_of(gateway)
            if gateway_class is None:
                log.debug("Gateway is not mine", gatewayclass=gateway.class_name)
                return finish(CONTROLLER, Outcome.SKIPPED)

            credentials = await self.validator.load_valid_credentials(gateway_class)
            async with self.provider_factory(
                credentials.api_token, credentials.account_id
            ) as provider:
                manager = TunnelLifecycleManager(
                    self.store, provider, self.config, credentials.account_id
                )
                tunnel_id = await manager.provision(gateway)
        except AmbiguousExternalStateError as e:
            log.error(
                "Several remote tunnels share this gateway's name, remove all but one",
                tunnel=e.name,
                count=e.count,
            )
            return finish(CONTROLLER, Outcome.ERROR, requeue, str(e))
        except ClassValidationError as e:
            log.warning("Gateway class credentials are invalid", error=str(e))
            return finish(CONTROLLER, Outcome.ERROR, requeue, str(e))
        except TunnelgateError as e:
            log.error("Failed to reconcile gateway", error=str(e))
            return finish(CONTROLLER, Outcome.ERROR, requeue, str(e))

        log.info("Gateway reconciled", tunnel_id=tunnel_id)
        return finish(CONTROLLER, Outcome.SUCCESS, requeue)

    async def finalize(self, gateway: Gateway) -> ReconcileResult:
        """Delete the remote tunnel of a gateway that is being deleted."""
        log = logger.bind(gateway=str(gateway.key))
        if not self.config.delete_tunnel_on_gateway_delete:
            log.info("Keeping remote tunnel of deleted gateway")
            return finish(CONTROLLER, Outcome.SKIPPED)

        try:
            gateway_class = await self._class_of(gateway)
            if gateway_class is None:
                log.debug("Deleted gateway is not mine", gatewayclass=gateway.class_name)
                return finish(CONTROLLER, Outcome.SKIPPED)

            credentials = await self.validator.load_valid_credentials(gateway_class)
            async with self.provider_factory(
                credentials.api_token, credentials.account_id
            ) as provider:
                manager = TunnelLifecycleManager(
                    self.store, provider, self.config, credentials.account_id
                )
                tunnel_id = await manager.teardown(gateway.name)
        except ClassValidationError as e:
            # The tunnel is unreachable without credentials; let the deletion proceed.
            log.warning(
                "Cannot delete remote tunnel, class credentials are unusable", error=str(e)
            )
            return finish(CONTROLLER, Outcome.SKIPPED)
        except TunnelgateError as e:
            log.error("Failed to delete remote tunnel", error=str(e))
            return finish(CONTROLLER, Outcome.ERROR, self.config.requeue_interval, str(e))

        if tunnel_id is None:
            log.info("No remote tunnel to delete")
        else:
            log.info("Remote tunnel deleted", tunnel_id=tunnel_id)
        return finish(CONTROLLER, Outcome.DELETED)
