from prometheus_client import Counter, start_http_server

RECONCILES = Counter(
    "tunnelgate_reconcile_total",
    "Total reconciles",
    ["controller", "outcome"],  # outcome: success/rejected/error/skipped/deleted
)

CONFIG_WRITES = Counter(
    "tunnelgate_config_writes_total",
    "Tunnel config merges",
    ["result"],  # result: written/unchanged
)

TUNNELS_CREATED = Counter(
    "tunnelgate_tunnels_created_total",
    "Remote tunnels created",
)


def start_metrics_server(port: int) -> None:
    start_http_server(port)
