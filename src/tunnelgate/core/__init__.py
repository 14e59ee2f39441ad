"""Core settings and error types shared by every tunnelgate component."""

from tunnelgate.core.config import ControllerConfig
from tunnelgate.core.exceptions import (
    AlreadyExistsError,
    AmbiguousExternalStateError,
    ArtifactValidationError,
    ClassValidationError,
    ConflictError,
    CredentialError,
    InvalidTokenError,
    MissingFieldError,
    RouteSpecError,
    TokenValidationFailedError,
    TransportError,
    TunnelgateError,
)

__all__ = [
    # Config
    "ControllerConfig",
    # Errors
    "TunnelgateError",
    "ClassValidationError",
    "MissingFieldError",
    "InvalidTokenError",
    "TokenValidationFailedError",
    "TransportError",
    "ConflictError",
    "AlreadyExistsError",
    "AmbiguousExternalStateError",
    "ArtifactValidationError",
    "CredentialError",
    "RouteSpecError",
]
