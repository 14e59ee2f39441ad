"""Shared pieces of the reconcile drivers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from tunnelgate.observability.metrics import RECONCILES


class Outcome(Enum):
    """How a reconcile ended."""

    SUCCESS = "success"
    REJECTED = "rejected"
    ERROR = "error"
    SKIPPED = "skipped"
    DELETED = "deleted"


@dataclass
class ReconcileResult:
    """What the caller should do after a reconcile.

    requeue_after is a fixed delay in seconds, or None to wait for the next
    watch event. error carries the message of a retriable failure.
    """

    outcome: Outcome
    requeue_after: float | None = None
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.outcome is Outcome.ERROR


def finish(
    controller: str,
    outcome: Outcome,
    requeue_after: float | None = None,
    error: str | None = None,
) -> ReconcileResult:
    """Count the outcome and build the result."""
    RECONCILES.labels(controller=controller, outcome=outcome.value).inc()
    return ReconcileResult(outcome=outcome, requeue_after=requeue_after, error=error)
