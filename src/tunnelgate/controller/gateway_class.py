"""GatewayClass reconcile: validate credentials and publish Accepted status."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import structlog

from tunnelgate.cluster.objects import GatewayClass
from tunnelgate.cluster.store import ClusterStore
from tunnelgate.controller.base import Outcome, ReconcileResult, finish
from tunnelgate.controller.ownership import OwnershipFilter
from tunnelgate.controller.validator import ClassValidator
from tunnelgate.core.config import ControllerConfig
from tunnelgate.core.exceptions import ClassValidationError, TunnelgateError
from tunnelgate.tunnels.api import ProviderFactory

logger = structlog.get_logger()

CONTROLLER = "gatewayclass"
CONDITION_ACCEPTED = "Accepted"
REASON_ACCEPTED = "Accepted"
REASON_INVALID = "InvalidParameters"
ACCEPTED_MESSAGE = "credentials validated"


def _now() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def set_condition(
    conditions: list[dict[str, Any]],
    condition: dict[str, Any],
) -> tuple[list[dict[str, Any]], bool]:
    """Insert or update a condition by type.

    lastTransitionTime only moves when the status flips. Returns the new
    list and whether anything changed.
    """
    result = [dict(c) for c in conditions]
    for i, existing in enumerate(result):
        if existing.get("type") != condition["type"]:
            continue
        if all(
            existing.get(k) == condition.get(k)
            for k in ("status", "reason", "message", "observedGeneration")
        ):
            return result, False
        if existing.get("status") == condition["status"]:
            condition = {**condition, "lastTransitionTime": existing.get("lastTransitionTime")}
        result[i] = condition
        return result, True
    result.append(condition)
    return result, True


def accepted_condition(
    accepted: bool,
    message: str,
    generation: int,
) -> dict[str, Any]:
    return {
        "type": CONDITION_ACCEPTED,
        "status": "True" if accepted else "False",
        "reason": REASON_ACCEPTED if accepted else REASON_INVALID,
        "message": message,
        "observedGeneration": generation,
        "lastTransitionTime": _now(),
    }


class GatewayClassReconciler:
    """Validates owned gateway classes and records the verdict in their status."""

    def __init__(
        self,
        store: ClusterStore,
        provider_factory: ProviderFactory,
        config: ControllerConfig,
    ) -> None:
        self.store = store
        self.config = config
        self.ownership = OwnershipFilter(store, config.controller_name)
        self.validator = ClassValidator(store, provider_factory, config.default_secret_namespace)

    async def _set_accepted(self, gateway_class: GatewayClass, accepted: bool, message: str) -> None:
        conditions, changed = set_condition(
            gateway_class.conditions,
            accepted_condition(accepted, message, gateway_class.generation),
        )
        if not changed:
            return
        logger.info(
            "Updating gateway class status",
            gatewayclass=gateway_class.name,
            accepted=accepted,
            message=message,
        )
        await self.store.update_gateway_class_status(gateway_class.name, {"conditions": conditions})
        gateway_class.conditions = conditions

    async def accept(self, gateway_class: GatewayClass) -> None:
        await self._set_accepted(gateway_class, True, ACCEPTED_MESSAGE)

    async def reject(self, gateway_class: GatewayClass, message: str) -> None:
        await self._set_accepted(gateway_class, False, message)

    async def reconcile(self, name: str) -> ReconcileResult:
        requeue = self.config.requeue_interval
        log = logger.bind(gatewayclass=name)
        log.info("Reconciling gateway class")

        try:
            body = await self.store.get_gateway_class(name)
        except TunnelgateError as e:
            log.error("Failed to get gateway class", error=str(e))
            return finish(CONTROLLER, Outcome.ERROR, requeue, str(e))
        if body is None:
            return finish(CONTROLLER, Outcome.DELETED)

        gateway_class = GatewayClass.from_dict(body)
        if not self.ownership.owns_class(gateway_class):
            log.info("Gateway class is not mine", controller=gateway_class.controller_name)
            return finish(CONTROLLER, Outcome.SKIPPED)

        try:
            try:
                await self.validator.validate(gateway_class)
            except ClassValidationError as e:
                log.warning("Gateway class rejected", reason=str(e))
                await self.reject(gateway_class, str(e))
                return finish(CONTROLLER, Outcome.REJECTED, requeue)
            await self.accept(gateway_class)
        except TunnelgateError as e:
            log.error("Failed to reconcile gateway class", error=str(e))
            return finish(CONTROLLER, Outcome.ERROR, requeue, str(e))

        return finish(CONTROLLER, Outcome.SUCCESS, requeue)
