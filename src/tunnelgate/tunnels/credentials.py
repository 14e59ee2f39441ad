"""Tunnel secrets and the credential file cloudflared authenticates with.

A tunnel's secret is chosen by us when the tunnel is created and never
changes afterwards: running connectors authenticate with it, so the
credential record is written once and left alone.

Credential file format (creds.json):
    {"AccountTag": "<account id>", "TunnelSecret": "<secret>", "TunnelID": "<tunnel id>"}
"""

from __future__ import annotations

import json
import secrets
from dataclasses import dataclass

from tunnelgate.core.exceptions import CredentialError

SECRET_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz-"


def generate_secret(length: int = 32) -> str:
    """Return a cryptographically random tunnel secret.

    Each symbol is drawn independently and uniformly from SECRET_ALPHABET
    using the operating system's CSPRNG. Failures of the random source
    propagate; there is no fallback.
    """
    if length <= 0:
        raise ValueError(f"secret length must be positive, got {length}")
    return "".join(secrets.choice(SECRET_ALPHABET) for _ in range(length))


@dataclass(frozen=True)
class TunnelCredentials:
    """Credential record for one tunnel."""

    account_id: str
    tunnel_id: str
    secret: str

    def to_dict(self) -> dict[str, str]:
        return {
            "AccountTag": self.account_id,
            "TunnelSecret": self.secret,
            "TunnelID": self.tunnel_id,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))


def build_credentials(tunnel_id: str, account_id: str, secret: str) -> TunnelCredentials:
    """Build a credential record.

    Raises:
        CredentialError: If any field is empty.
    """
    if not account_id:
        raise CredentialError("account id is empty")
    if not tunnel_id:
        raise CredentialError("tunnel id is empty")
    if not secret:
        raise CredentialError("tunnel secret is empty")
    return TunnelCredentials(account_id=account_id, tunnel_id=tunnel_id, secret=secret)
