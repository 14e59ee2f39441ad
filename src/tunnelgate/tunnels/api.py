"""Cloudflare tunnel API client.

Thin async wrapper over the v4 REST endpoints the controller consumes:

- POST   /accounts/{account}/cfd_tunnel                      create a tunnel
- GET    /accounts/{account}/cfd_tunnel?name=..&is_deleted=false
- GET    /accounts/{account}/cfd_tunnel/{id}/token           connector token
- DELETE /accounts/{account}/cfd_tunnel/{id}/connections     purge stale connections
- DELETE /accounts/{account}/cfd_tunnel/{id}
- GET    /user/tokens/verify                                 token introspection

Every request carries the configured timeout, and an in-flight request is
abandoned when the awaiting task is cancelled.
"""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import structlog

from tunnelgate.core.config import ControllerConfig
from tunnelgate.core.exceptions import (
    CredentialError,
    InvalidTokenError,
    TokenValidationFailedError,
    TransportError,
)

logger = structlog.get_logger()

CONFIG_SOURCE_LOCAL = "local"


@dataclass
class Tunnel:
    """A remote tunnel record."""

    id: str
    name: str
    created_at: str | None = None
    deleted_at: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Tunnel:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            created_at=data.get("created_at"),
            deleted_at=data.get("deleted_at"),
        )


class TunnelProvider(Protocol):
    """Operations the controller needs from the tunnel provider."""

    async def create_tunnel(self, name: str, secret: str) -> Tunnel: ...

    async def list_tunnels(self, name: str) -> list[Tunnel]: ...

    async def get_tunnel_secret(self, tunnel_id: str) -> str: ...

    async def delete_tunnel(self, tunnel_id: str) -> None: ...

    async def verify_token(self) -> None: ...

    async def aclose(self) -> None: ...

    async def __aenter__(self) -> TunnelProvider: ...

    async def __aexit__(self, *exc_info: object) -> None: ...


ProviderFactory = Callable[[str, str], TunnelProvider]


def _first_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except (json.JSONDecodeError, ValueError):
        return response.text[:200] or response.reason_phrase
    if not isinstance(payload, dict):
        return response.reason_phrase
    errors = payload.get("errors") or []
    if errors and isinstance(errors[0], dict):
        return str(errors[0].get("message", ""))
    return response.reason_phrase


class CloudflareAPI:
    """Cloudflare API client scoped to one account and one API token."""

    def __init__(
        self,
        api_token: str,
        account_id: str = "",
        base_url: str = "https://api.cloudflare.com/client/v4",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.account_id = account_id
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            headers={
                "Authorization": f"Bearer {api_token}",
                "Accept": "application/json",
            },
            transport=transport,
        )

    @classmethod
    def factory(cls, config: ControllerConfig) -> ProviderFactory:
        """Return a provider factory bound to the configured endpoint and timeout."""

        def create(api_token: str, account_id: str) -> CloudflareAPI:
            return cls(
                api_token,
                account_id,
                base_url=config.api_base_url,
                timeout=config.api_timeout,
            )

        return create

    async def __aenter__(self) -> CloudflareAPI:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _tunnels_path(self, suffix: str = "") -> str:
        if not self.account_id:
            raise CredentialError("account id is required for tunnel operations")
        return f"/accounts/{self.account_id}/cfd_tunnel{suffix}"

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransportError(operation, f"timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(operation, str(e)) from e

        if response.is_error:
            raise TransportError(
                operation,
                f"status {response.status_code}: {_first_error_message(response)}",
                status=response.status_code,
            )
        try:
            return response.json().get("result")
        except (json.JSONDecodeError, ValueError, AttributeError) as e:
            raise TransportError(operation, f"unparseable response: {e}") from e

    async def create_tunnel(self, name: str, secret: str) -> Tunnel:
        result = await self._request(
            "create tunnel",
            "POST",
            self._tunnels_path(),
            json={"name": name, "tunnel_secret": secret, "config_src": CONFIG_SOURCE_LOCAL},
        )
        tunnel = Tunnel.from_dict(result)
        logger.info("Tunnel created", name=name, tunnel_id=tunnel.id)
        return tunnel

    async def list_tunnels(self, name: str) -> list[Tunnel]:
        """List non-deleted tunnels whose name is exactly `name`."""
        result = await self._request(
            "list tunnels",
            "GET",
            self._tunnels_path(),
            params={"name": name, "is_deleted": "false"},
        )
        tunnels = [Tunnel.from_dict(item) for item in result or []]
        return [t for t in tunnels if t.name == name and not t.deleted_at]

    async def get_tunnel_secret(self, tunnel_id: str) -> str:
        """Recover a tunnel's secret from its connector token.

        The token is base64-encoded JSON: {"a": account, "t": tunnel, "s": secret}.
        """
        token = await self._request(
            "get tunnel token", "GET", self._tunnels_path(f"/{tunnel_id}/token")
        )
        try:
            decoded = json.loads(base64.b64decode(token))
        except (binascii.Error, json.JSONDecodeError, TypeError, ValueError) as e:
            raise CredentialError(f"cannot decode connector token for tunnel {tunnel_id}: {e}") from e
        secret = decoded.get("s") if isinstance(decoded, dict) else None
        if not secret:
            raise CredentialError(f"connector token for tunnel {tunnel_id} has no secret")
        return secret

    async def delete_tunnel(self, tunnel_id: str) -> None:
        # Tunnels with stale connections cannot be deleted.
        await self._request(
            "cleanup tunnel connections",
            "DELETE",
            self._tunnels_path(f"/{tunnel_id}/connections"),
        )
        await self._request("delete tunnel", "DELETE", self._tunnels_path(f"/{tunnel_id}"))
        logger.info("Tunnel deleted", tunnel_id=tunnel_id)

    async def verify_token(self) -> None:
        """Check the API token against the provider's introspection endpoint.

        Raises:
            InvalidTokenError: The provider answered 400.
            TokenValidationFailedError: Any other non-200 answer.
            TransportError: The request itself failed.
        """
        try:
            response = await self._client.get("/user/tokens/verify")
        except httpx.TimeoutException as e:
            raise TransportError("verify token", f"timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError("verify token", str(e)) from e

        # Cloudflare does not distinguish an invalid token beyond a bare 400.
        if response.status_code == 400:
            raise InvalidTokenError()
        if response.status_code != 200:
            raise TokenValidationFailedError(response.status_code, _first_error_message(response))
