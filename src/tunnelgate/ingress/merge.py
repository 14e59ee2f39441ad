"""Merging route-derived ingress rules into a tunnel config file.

A route contributes a fragment: one rule per hostname it declares, all
pointing at the route's backend. Merging a fragment into the persisted
config:

- re-points an existing hostname when the backend differs
- leaves an existing hostname alone when the backend matches
- appends hostnames the config does not have yet

Whether a hostname is new is decided against the full set of hostnames in
the persisted config, computed once before any candidate is examined.

Rule ownership is tracked separately (hostname -> "namespace/route") so a
route's stale hostnames can be pruned when the route changes or goes away.
Rules without an owner are never pruned.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from tunnelgate.ingress.config import TunnelConfigFile, new_tunnel_config_file
from tunnelgate.ingress.rules import CATCH_ALL_RULE, IngressRule, sort_rules


def service_url(name: str, namespace: str, port: int | str) -> str:
    """Return the in-cluster URL cloudflared should proxy to."""
    return f"http://{name}.{namespace}.svc.cluster.local:{port}"


def route_fragment(hostnames: Iterable[str], service: str) -> list[IngressRule]:
    """Build the rules one route contributes.

    A route without hostnames contributes a single rule without a hostname,
    which takes over the catch-all.
    """
    names = list(hostnames)
    if not names:
        return [IngressRule(hostname="", service=service)]
    return [IngressRule(hostname=hostname, service=service) for hostname in names]


@dataclass
class MergeResult:
    """Outcome of merging one fragment."""

    config: TunnelConfigFile
    owners: dict[str, str]
    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.pruned)


def _rebuild(current: TunnelConfigFile, rules: list[IngressRule]) -> TunnelConfigFile:
    if not any(rule.is_catch_all for rule in rules):
        rules = [*rules, CATCH_ALL_RULE]
    return new_tunnel_config_file(
        current.tunnel_id,
        sort_rules(rules),
        credentials_file=current.credentials_file,
    )


def merge_fragment(
    current: TunnelConfigFile,
    fragment: Iterable[IngressRule],
    owner: str | None = None,
    owners: Mapping[str, str] | None = None,
    prune: bool = True,
) -> MergeResult:
    """Merge a route's fragment into the current config.

    Args:
        current: The persisted config file.
        fragment: Rules derived from one route.
        owner: "namespace/name" of the route, recorded against every hostname it claims.
        owners: Current hostname ownership map.
        prune: Drop hostnames previously owned by this route that the fragment no longer has.

    Returns:
        MergeResult with the new, sorted and validated config.

    Raises:
        ArtifactValidationError: If the merged config violates its invariants.
    """
    new_owners = dict(owners or {})

    # Later duplicates within one fragment win.
    candidates: dict[str, IngressRule] = {}
    for rule in fragment:
        candidates[rule.hostname] = rule

    existing_hostnames = current.hostnames
    rules = list(current.ingress)
    updated: list[str] = []
    pruned: list[str] = []

    for i, rule in enumerate(rules):
        candidate = candidates.get(rule.hostname)
        if candidate is not None and candidate.service != rule.service:
            rules[i] = candidate
            updated.append(rule.hostname)

    additions = [rule for hostname, rule in candidates.items() if hostname not in existing_hostnames]
    added = [rule.hostname for rule in additions]
    rules.extend(additions)

    if owner is not None:
        if prune:
            stale = {
                hostname
                for hostname, rule_owner in new_owners.items()
                if rule_owner == owner and hostname not in candidates
            }
            if stale:
                pruned = sorted(h for h in stale if h in existing_hostnames)
                rules = [rule for rule in rules if rule.hostname not in stale]
                for hostname in stale:
                    del new_owners[hostname]
        for hostname in candidates:
            new_owners[hostname] = owner

    return MergeResult(
        config=_rebuild(current, rules),
        owners=new_owners,
        added=added,
        updated=updated,
        pruned=pruned,
    )


def prune_owner(
    current: TunnelConfigFile,
    owner: str,
    owners: Mapping[str, str],
) -> MergeResult:
    """Remove every rule owned by a route that no longer exists.

    A pruned catch-all is replaced by the default 404 backend.
    """
    new_owners = dict(owners)
    stale = {hostname for hostname, rule_owner in owners.items() if rule_owner == owner}
    for hostname in stale:
        del new_owners[hostname]

    kept = [rule for rule in current.ingress if rule.hostname not in stale]
    pruned = sorted(rule.hostname for rule in current.ingress if rule.hostname in stale)
    return MergeResult(config=_rebuild(current, kept), owners=new_owners, pruned=pruned)
