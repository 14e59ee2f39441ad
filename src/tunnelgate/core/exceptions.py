"""Error taxonomy for tunnelgate reconciles.

Every error a reconcile step can raise derives from TunnelgateError so the
convergence drivers can isolate one object's failures from the rest.
"""

from __future__ import annotations


class TunnelgateError(Exception):
    """Base class for all tunnelgate errors."""

    retriable: bool = True


class ClassValidationError(TunnelgateError):
    """A gateway class failed validation and should be rejected."""


class MissingFieldError(ClassValidationError):
    """A required credential field is empty or absent."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"secret does not contain a {field} key")


class InvalidTokenError(ClassValidationError):
    """The provider rejected the API token outright."""

    def __init__(self) -> None:
        super().__init__("invalid token")


class TokenValidationFailedError(ClassValidationError):
    """Token introspection returned an unexpected status."""

    def __init__(self, status: int, message: str) -> None:
        self.status = status
        self.provider_message = message
        super().__init__(
            f"failed token validation: expected 200 OK, got {status}: {message}"
        )


class TransportError(TunnelgateError):
    """A call to the store or the provider failed."""

    def __init__(self, operation: str, detail: str, status: int | None = None) -> None:
        self.operation = operation
        self.detail = detail
        self.status = status
        super().__init__(f"{operation} failed: {detail}")


class ConflictError(TransportError):
    """A write was rejected because the resource changed underneath it."""


class AlreadyExistsError(TransportError):
    """A create raced with another writer."""


class AmbiguousExternalStateError(TunnelgateError):
    """More than one remote resource matches an identity expected to be unique."""

    def __init__(self, name: str, count: int) -> None:
        self.name = name
        self.count = count
        super().__init__(
            f"expected at most 1 tunnel named {name!r}, got {count}; manual cleanup required"
        )


class ArtifactValidationError(TunnelgateError):
    """A tunnel config artifact violates its invariants."""

    EMPTY_TUNNEL_ID = "EmptyTunnelId"
    EMPTY_RULE_SET = "EmptyRuleSet"
    MISSING_CATCH_ALL = "MissingCatchAll"
    MULTIPLE_CATCH_ALL = "MultipleCatchAll"
    MALFORMED = "Malformed"

    def __init__(self, reason: str, message: str) -> None:
        self.reason = reason
        super().__init__(f"{reason}: {message}")


class CredentialError(TunnelgateError):
    """Tunnel credential material is incomplete or cannot be recovered."""


class RouteSpecError(TunnelgateError):
    """A route object cannot be turned into ingress rules."""

    retriable = False
