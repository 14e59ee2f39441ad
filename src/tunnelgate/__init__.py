"""tunnelgate - Gateway API controller that exposes routes through Cloudflare tunnels."""

__version__ = "0.1.0"
