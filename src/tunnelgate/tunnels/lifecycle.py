"""Tunnel lifecycle management for one gateway.

Provisioning a gateway runs four steps in order:

1. ensure_tunnel: find the remote tunnel named after the gateway, or create it
2. ensure_credential: write the credential secret if it does not exist
3. ensure_config: write the default config map if it does not exist
4. ensure_workload: create or replace the cloudflared deployment

Each step is idempotent on its own, so a reconcile that fails halfway
resumes cleanly on the next pass. Nothing here locks: two concurrent passes
may both see no tunnel and both create one, in which case the next pass
finds two and raises AmbiguousExternalStateError for manual cleanup.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from tunnelgate.cluster import manifests
from tunnelgate.cluster.objects import TUNNEL_ID_ANNOTATION, Gateway
from tunnelgate.cluster.store import ClusterStore
from tunnelgate.core.config import ControllerConfig
from tunnelgate.core.exceptions import AlreadyExistsError, AmbiguousExternalStateError
from tunnelgate.ingress.config import (
    CONFIG_FILE_NAME,
    TunnelConfigFile,
    default_tunnel_config_file,
)
from tunnelgate.observability.metrics import TUNNELS_CREATED
from tunnelgate.tunnels.api import Tunnel, TunnelProvider
from tunnelgate.tunnels.credentials import build_credentials, generate_secret

logger = structlog.get_logger()


@dataclass
class EnsuredTunnel:
    """The tunnel a gateway is served by.

    secret is only known when the tunnel was created by this call.
    """

    tunnel: Tunnel
    secret: str | None
    created: bool

    @property
    def id(self) -> str:
        return self.tunnel.id


class TunnelLifecycleManager:
    """Provisions and tears down the tunnel behind a gateway."""

    def __init__(
        self,
        store: ClusterStore,
        provider: TunnelProvider,
        config: ControllerConfig,
        account_id: str,
    ) -> None:
        self.store = store
        self.provider = provider
        self.config = config
        self.account_id = account_id

    async def find_tunnel(self, name: str) -> Tunnel | None:
        """Look up the tunnel named `name`.

        Raises:
            AmbiguousExternalStateError: If more than one tunnel has this name.
        """
        tunnels = await self.provider.list_tunnels(name)
        if len(tunnels) > 1:
            raise AmbiguousExternalStateError(name, len(tunnels))
        return tunnels[0] if tunnels else None

    async def ensure_tunnel(self, name: str) -> EnsuredTunnel:
        existing = await self.find_tunnel(name)
        if existing is not None:
            return EnsuredTunnel(tunnel=existing, secret=None, created=False)

        secret = generate_secret(self.config.secret_length)
        tunnel = await self.provider.create_tunnel(name, secret)
        TUNNELS_CREATED.inc()
        return EnsuredTunnel(tunnel=tunnel, secret=secret, created=True)

    async def ensure_credential(self, gateway: Gateway, tunnel_id: str, secret: str | None) -> None:
        """Write the credential secret unless it already exists.

        An existing secret is never rewritten. When the tunnel already existed
        and its secret is unknown, it is recovered from the provider rather
        than regenerated.
        """
        name = manifests.secret_name(gateway.name)
        if await self.store.get_secret(gateway.namespace, name) is not None:
            return

        if secret is None:
            logger.info("Recovering tunnel secret", gateway=gateway.name, tunnel_id=tunnel_id)
            secret = await self.provider.get_tunnel_secret(tunnel_id)

        credentials = build_credentials(tunnel_id, self.account_id, secret)
        try:
            await self.store.create_secret(manifests.build_secret(gateway, credentials))
        except AlreadyExistsError:
            return
        logger.info("Tunnel secret created", gateway=gateway.name, secret=name)

    async def ensure_config(self, gateway: Gateway, tunnel_id: str) -> str:
        """Write the default config map unless it already exists.

        Ingress rules in an existing config map are left alone; only a stale
        tunnel id is corrected. Returns the config file content now persisted.
        """
        name = manifests.config_map_name(gateway.name)
        existing = await self.store.get_config_map(gateway.namespace, name)
        if existing is None:
            content = default_tunnel_config_file(tunnel_id).to_json()
            try:
                await self.store.create_config_map(manifests.build_config_map(gateway, content))
            except AlreadyExistsError:
                existing = await self.store.get_config_map(gateway.namespace, name)
                if existing is None:
                    raise
            else:
                logger.info("Tunnel config created", gateway=gateway.name, configmap=name)
                return content

        content = (existing.get("data") or {}).get(CONFIG_FILE_NAME, "")
        current = TunnelConfigFile.from_json(content)
        if current.tunnel_id == tunnel_id:
            return content

        logger.warning(
            "Tunnel config points at another tunnel, correcting",
            gateway=gateway.name,
            previous=current.tunnel_id,
            tunnel_id=tunnel_id,
        )
        corrected = TunnelConfigFile(
            tunnel_id=tunnel_id,
            ingress=current.ingress,
            credentials_file=current.credentials_file,
        )
        corrected.validate()
        content = corrected.to_json()
        existing.setdefault("data", {})[CONFIG_FILE_NAME] = content
        await self.store.replace_config_map(existing)
        return content

    async def ensure_workload(self, gateway: Gateway, tunnel_id: str, config_json: str) -> None:
        """Create the cloudflared deployment, or replace it when its manifest changed."""
        desired = manifests.build_deployment(
            gateway,
            tunnel_id,
            image=self.config.cloudflared_image,
            metrics_port=self.config.metrics_port,
            config_json=config_json,
        )
        name = manifests.deployment_name(gateway.name)
        existing = await self.store.get_deployment(gateway.namespace, name)
        if existing is None:
            logger.info("Tunnel deployment not found, creating", gateway=gateway.name)
            try:
                await self.store.create_deployment(desired)
            except AlreadyExistsError:
                # Created by a concurrent pass; the next pass replaces it.
                pass
            return

        meta = existing.get("metadata") or {}
        digest = desired["metadata"]["annotations"][manifests.MANIFEST_HASH_ANNOTATION]
        if (meta.get("annotations") or {}).get(manifests.MANIFEST_HASH_ANNOTATION) == digest:
            return

        resource_version = meta.get("resourceVersion")
        if resource_version:
            desired["metadata"]["resourceVersion"] = resource_version
        await self.store.replace_deployment(desired)

    async def annotate_gateway(self, gateway: Gateway, tunnel_id: str) -> None:
        if gateway.tunnel_id == tunnel_id:
            return
        await self.store.patch_gateway_annotations(
            gateway.namespace, gateway.name, {TUNNEL_ID_ANNOTATION: tunnel_id}
        )
        gateway.annotations[TUNNEL_ID_ANNOTATION] = tunnel_id

    async def provision(self, gateway: Gateway) -> str:
        """Run every provisioning step for a gateway and return its tunnel id."""
        ensured = await self.ensure_tunnel(gateway.name)
        if ensured.created:
            logger.info("Tunnel provisioned", gateway=gateway.name, tunnel_id=ensured.id)
        await self.annotate_gateway(gateway, ensured.id)
        await self.ensure_credential(gateway, ensured.id, ensured.secret)
        config_json = await self.ensure_config(gateway, ensured.id)
        await self.ensure_workload(gateway, ensured.id, config_json)
        return ensured.id

    async def teardown(self, gateway_name: str) -> str | None:
        """Delete the remote tunnel of a deleted gateway, if there is one.

        Cluster objects are removed by the garbage collector through their
        owner references.
        """
        tunnel = await self.find_tunnel(gateway_name)
        if tunnel is None:
            return None
        await self.provider.delete_tunnel(tunnel.id)
        return tunnel.id
