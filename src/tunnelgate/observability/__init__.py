from tunnelgate.observability.metrics import (
    CONFIG_WRITES,
    RECONCILES,
    TUNNELS_CREATED,
    start_metrics_server,
)

__all__ = [
    "RECONCILES",
    "CONFIG_WRITES",
    "TUNNELS_CREATED",
    "start_metrics_server",
]
