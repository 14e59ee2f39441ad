"""Tunnel ingress rules and their canonical ordering.

cloudflared evaluates ingress rules top to bottom and stops at the first
match, so the order of a rule list matters. Three kinds of rules exist:

- rules for a fully qualified hostname, e.g. an.example.com (these go first)
- rules for a wildcard hostname, e.g. *.example.com (these go after the first group)
- a single rule without a hostname, the catch-all (this must always go last)

Example:
    rules = sort_rules([
        IngressRule("*.example.com", "http://web.apps.svc.cluster.local:80"),
        IngressRule("", "http_status:404"),
        IngressRule("api.example.com", "http://api.apps.svc.cluster.local:8080"),
    ])
    # api.example.com, *.example.com, catch-all
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

DEFAULT_BACKEND = "http_status:404"


def is_wildcard_pattern(hostname: str) -> bool:
    """Check if a hostname is a wildcard pattern.

    A wildcard pattern starts with "*." to indicate it matches
    any single subdomain level.

    Examples:
        >>> is_wildcard_pattern("*.example.com")
        True
        >>> is_wildcard_pattern("api.example.com")
        False
        >>> is_wildcard_pattern("")
        False
    """
    return hostname.startswith("*.")


def validate_wildcard_pattern(pattern: str) -> tuple[bool, str | None]:
    """Validate a wildcard hostname pattern.

    Returns:
        Tuple of (is_valid, error_message).
        If valid, error_message is None.

    Examples:
        >>> validate_wildcard_pattern("*.example.com")
        (True, None)
        >>> validate_wildcard_pattern("**.example.com")
        (False, 'Invalid wildcard: only single * prefix allowed')
    """
    if "**" in pattern:
        return False, "Invalid wildcard: only single * prefix allowed"

    if not is_wildcard_pattern(pattern):
        return False, "Not a wildcard pattern"

    base = pattern[2:]
    if "*" in base:
        return False, "Invalid wildcard: * only allowed as first component"

    if "." not in base and base != "localhost":
        return False, "Invalid wildcard: base domain must have at least one dot"

    if ".." in pattern or pattern.endswith("."):
        return False, "Invalid domain format"

    return True, None


@dataclass(frozen=True)
class IngressRule:
    """One hostname-to-backend mapping in a tunnel's ingress list.

    An empty hostname marks the catch-all rule.
    """

    hostname: str
    service: str

    @property
    def is_catch_all(self) -> bool:
        return self.hostname == ""

    @property
    def is_wildcard(self) -> bool:
        return is_wildcard_pattern(self.hostname)

    def sort_key(self) -> tuple[bool, bool, str]:
        return (self.is_catch_all, self.is_wildcard, self.hostname)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the cloudflared ingress entry; the catch-all omits its hostname."""
        data: dict[str, Any] = {}
        if self.hostname:
            data["hostname"] = self.hostname
        data["service"] = self.service
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IngressRule:
        return cls(
            hostname=data.get("hostname") or "",
            service=data.get("service", ""),
        )


CATCH_ALL_RULE = IngressRule(hostname="", service=DEFAULT_BACKEND)


def sort_rules(rules: Iterable[IngressRule]) -> list[IngressRule]:
    """Return rules in cloudflared evaluation order.

    Hostnames compare case-sensitively. Rules with identical hostnames keep
    their relative input order.
    """
    ordered = sorted(rules, key=IngressRule.sort_key)

    # Catch-all rules always end the list, whatever the comparator decided.
    return [r for r in ordered if not r.is_catch_all] + [r for r in ordered if r.is_catch_all]
