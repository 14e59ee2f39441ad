"""Remote tunnels: the provider client, credentials and lifecycle management.

Usage:
    from tunnelgate.tunnels import CloudflareAPI, TunnelLifecycleManager

    async with CloudflareAPI(api_token, account_id) as api:
        manager = TunnelLifecycleManager(store, api, config, account_id)
        tunnel_id = await manager.provision(gateway)
"""

from tunnelgate.tunnels.api import CloudflareAPI, ProviderFactory, Tunnel, TunnelProvider
from tunnelgate.tunnels.credentials import (
    SECRET_ALPHABET,
    TunnelCredentials,
    build_credentials,
    generate_secret,
)
from tunnelgate.tunnels.lifecycle import EnsuredTunnel, TunnelLifecycleManager

__all__ = [
    # API
    "CloudflareAPI",
    "ProviderFactory",
    "Tunnel",
    "TunnelProvider",
    # Credentials
    "SECRET_ALPHABET",
    "TunnelCredentials",
    "build_credentials",
    "generate_secret",
    # Lifecycle
    "EnsuredTunnel",
    "TunnelLifecycleManager",
]
