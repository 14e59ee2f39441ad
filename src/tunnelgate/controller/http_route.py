"""HTTPRoute reconcile: merge each owned route's hostnames into its tunnel config.

The config map is read, merged and written back with the resourceVersion it
was read at, so a concurrent writer makes the replace fail with a conflict
and the route is simply merged again on the next pass.
"""

from __future__ import annotations

from typing import Any

import structlog

from tunnelgate.cluster import manifests
from tunnelgate.cluster.objects import HTTPRoute
from tunnelgate.cluster.store import ClusterStore
from tunnelgate.controller.base import Outcome, ReconcileResult, finish
from tunnelgate.controller.ownership import OwnershipFilter
from tunnelgate.core.config import ControllerConfig
from tunnelgate.core.exceptions import RouteSpecError, TransportError, TunnelgateError
from tunnelgate.ingress.config import CONFIG_FILE_NAME, TunnelConfigFile
from tunnelgate.ingress.merge import (
    MergeResult,
    merge_fragment,
    prune_owner,
    route_fragment,
    service_url,
)
from tunnelgate.ingress.rules import validate_wildcard_pattern
from tunnelgate.observability.metrics import CONFIG_WRITES

logger = structlog.get_logger()

CONTROLLER = "httproute"


def usable_hostnames(route: HTTPRoute) -> list[str]:
    """Return the route's hostnames, dropping malformed wildcards."""
    hostnames = []
    for hostname in route.hostnames:
        if "*" in hostname:
            valid, error = validate_wildcard_pattern(hostname)
            if not valid:
                logger.warning(
                    "Skipping hostname", route=route.owner_id, hostname=hostname, error=error
                )
                continue
        hostnames.append(hostname)
    return hostnames


class HTTPRouteReconciler:
    def __init__(self, store: ClusterStore, config: ControllerConfig) -> None:
        self.store = store
        self.config = config
        self.ownership = OwnershipFilter(store, config.controller_name)

    async def _write(
        self,
        config_map: dict[str, Any],
        content: str,
        owners: dict[str, str],
        result: MergeResult,
    ) -> bool:
        """Persist a merge result; returns False when nothing would change."""
        new_content = result.config.to_json()
        if new_content == content and result.owners == owners:
            CONFIG_WRITES.labels(result="unchanged").inc()
            return False

        meta = config_map.setdefault("metadata", {})
        annotations = meta.get("annotations") or {}
        annotations[manifests.RULE_OWNERS_ANNOTATION] = manifests.encode_rule_owners(
            result.owners
        )
        meta["annotations"] = annotations
        config_map["data"] = {**(config_map.get("data") or {}), CONFIG_FILE_NAME: new_content}
        await self.store.replace_config_map(config_map)
        CONFIG_WRITES.labels(result="written").inc()
        logger.info(
            "Tunnel config updated",
            configmap=_label(config_map),
            added=result.added,
            updated=result.updated,
            pruned=result.pruned,
        )
        if new_content != content:
            await self._roll_workload(meta.get("namespace", ""), config_map, new_content)
        return True

    async def _roll_workload(self, namespace: str, config_map: dict[str, Any], content: str) -> None:
        """Stamp the new config hash on the workload so its pods roll."""
        labels = (config_map.get("metadata") or {}).get("labels") or {}
        gateway_name = labels.get(manifests.GATEWAY_LABEL)
        if not gateway_name:
            return
        deployment = await self.store.get_deployment(
            namespace, manifests.deployment_name(gateway_name)
        )
        if deployment is None:
            return
        template_meta = (
            deployment.setdefault("spec", {})
            .setdefault("template", {})
            .setdefault("metadata", {})
        )
        annotations = template_meta.get("annotations") or {}
        digest = manifests.config_hash(content)
        if annotations.get(manifests.CONFIG_HASH_ANNOTATION) == digest:
            return
        annotations[manifests.CONFIG_HASH_ANNOTATION] = digest
        template_meta["annotations"] = annotations
        await self.store.replace_deployment(deployment)

    async def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        requeue = self.config.requeue_interval
        owner_id = f"{namespace}/{name}"
        log = logger.bind(route=owner_id)
        log.info("Reconciling route")

        try:
            body = await self.store.get_http_route(namespace, name)
            if body is None:
                return await self.prune_deleted(owner_id)
            route = HTTPRoute.from_dict(body)

            if not await self.ownership.owns(route):
                log.debug("Route is not mine")
                errors = await self._prune(owner_id)
                if errors:
                    return finish(CONTROLLER, Outcome.ERROR, requeue, "; ".join(errors))
                return finish(CONTROLLER, Outcome.SKIPPED)

            gateway = route.gateway_ref
            backend = route.backend
            hostnames = usable_hostnames(route)
            if route.hostnames and not hostnames:
                raise RouteSpecError(f"route {owner_id} has no usable hostnames")
            fragment = route_fragment(
                hostnames,
                service_url(backend.name, backend.namespace, backend.port),
            )

            config_map = await self.store.get_config_map(
                gateway.namespace, manifests.config_map_name(gateway.name)
            )
            if config_map is None:
                raise TransportError(
                    "get tunnel config",
                    f"config map for gateway {gateway} does not exist yet",
                    status=404,
                )

            content = (config_map.get("data") or {}).get(CONFIG_FILE_NAME, "")
            owners = manifests.rule_owners(config_map)
            result = merge_fragment(
                TunnelConfigFile.from_json(content),
                fragment,
                owner=route.owner_id,
                owners=owners,
                prune=self.config.prune_rules,
            )
            await self._write(config_map, content, owners, result)
        except TunnelgateError as e:
            if not e.retriable:
                log.warning("Route cannot be merged", error=str(e))
                return finish(CONTROLLER, Outcome.REJECTED)
            log.error("Failed to reconcile route", error=str(e))
            return finish(CONTROLLER, Outcome.ERROR, requeue, str(e))

        # Rules left behind in another gateway's config by an earlier parentRef.
        errors = await self._prune(owner_id, keep=_key(config_map))
        if errors:
            return finish(CONTROLLER, Outcome.ERROR, requeue, "; ".join(errors))
        return finish(CONTROLLER, Outcome.SUCCESS, requeue)

    async def _prune(self, owner_id: str, keep: tuple[str, str] | None = None) -> list[str]:
        """Drop the route's rules from every managed config map except `keep`.

        Returns the errors hit along the way; listing failures are included.
        """
        if not self.config.prune_rules:
            return []

        log = logger.bind(route=owner_id)
        try:
            config_maps = await self.store.list_config_maps(manifests.CONFIG_MAP_SELECTOR)
        except TunnelgateError as e:
            log.error("Failed to list tunnel configs", error=str(e))
            return [str(e)]

        errors: list[str] = []
        for config_map in config_maps:
            if _key(config_map) == keep:
                continue
            owners = manifests.rule_owners(config_map)
            if owner_id not in owners.values():
                continue
            content = (config_map.get("data") or {}).get(CONFIG_FILE_NAME, "")
            try:
                result = prune_owner(TunnelConfigFile.from_json(content), owner_id, owners)
                await self._write(config_map, content, owners, result)
            except TunnelgateError as e:
                log.error(
                    "Failed to prune tunnel config", configmap=_label(config_map), error=str(e)
                )
                errors.append(str(e))
        return errors

    async def prune_deleted(self, owner_id: str) -> ReconcileResult:
        """Remove every rule a deleted route contributed, from every tunnel config."""
        errors = await self._prune(owner_id)
        if errors:
            return finish(
                CONTROLLER, Outcome.ERROR, self.config.requeue_interval, "; ".join(errors)
            )
        return finish(CONTROLLER, Outcome.DELETED)


def _key(config_map: dict[str, Any]) -> tuple[str, str]:
    meta = config_map.get("metadata") or {}
    return meta.get("namespace", ""), meta.get("name", "")


def _label(config_map: dict[str, Any]) -> str:
    return "/".join(_key(config_map))
