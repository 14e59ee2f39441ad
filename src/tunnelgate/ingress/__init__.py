"""Tunnel ingress rules, config files and route merging.

Usage:
    from tunnelgate.ingress import (
        default_tunnel_config_file,
        merge_fragment,
        route_fragment,
        service_url,
    )

    config = default_tunnel_config_file("6ff42ae2-765d-4adf-8112-31c55c1551ef")
    fragment = route_fragment(["api.example.com"], service_url("api", "apps", 8080))
    result = merge_fragment(config, fragment, owner="apps/api")

    if result.changed:
        persist(result.config.to_json())
"""

from tunnelgate.ingress.config import (
    CONFIG_FILE_NAME,
    CONFIG_FILE_PATH,
    CREDENTIALS_FILE_NAME,
    CREDENTIALS_FILE_PATH,
    TunnelConfigFile,
    default_tunnel_config_file,
    new_tunnel_config_file,
)
from tunnelgate.ingress.merge import (
    MergeResult,
    merge_fragment,
    prune_owner,
    route_fragment,
    service_url,
)
from tunnelgate.ingress.rules import (
    CATCH_ALL_RULE,
    DEFAULT_BACKEND,
    IngressRule,
    is_wildcard_pattern,
    sort_rules,
    validate_wildcard_pattern,
)

__all__ = [
    # Rules
    "IngressRule",
    "CATCH_ALL_RULE",
    "DEFAULT_BACKEND",
    "sort_rules",
    "is_wildcard_pattern",
    "validate_wildcard_pattern",
    # Config file
    "TunnelConfigFile",
    "new_tunnel_config_file",
    "default_tunnel_config_file",
    "CONFIG_FILE_NAME",
    "CONFIG_FILE_PATH",
    "CREDENTIALS_FILE_NAME",
    "CREDENTIALS_FILE_PATH",
    # Merging
    "MergeResult",
    "merge_fragment",
    "prune_owner",
    "route_fragment",
    "service_url",
]
