"""Registry gateway exception hierarchy.

Exception Hierarchy:
    RegistryGatewayError (base)
    ├── MalformedReference   # Reference string has the wrong shape or registry
    ├── InvalidRequest       # Well-formed reference missing what the call needs
    ├── AuthRequired         # Credential missing or rejected by the registry
    ├── NotFound             # Empty tag list, missing manifest or blob
    ├── ProtocolViolation    # Successful response missing a mandatory header/field
    ├── SourceSystemError    # Upstream failure attributed to a registry
    └── UnexpectedError      # Anything unclassified, wrapped

`status_code` is only consumed by the HTTP boundary.
"""

from typing import Optional


class RegistryGatewayError(Exception):
    """Base exception for all registry gateway errors.

    Attributes:
        message: Human readable description.
        registry: The upstream registry the error is attributed to, if any.
        status_code: HTTP status used when the error reaches a caller.
    """

    status_code: int = 500

    def __init__(self, message: str, registry: Optional[str] = None) -> None:
        self.message = message
        self.registry = registry
        super().__init__(message)


class MalformedReference(RegistryGatewayError):
    status_code = 400


class InvalidRequest(RegistryGatewayError):
    status_code = 400


class AuthRequired(RegistryGatewayError):
    status_code = 401


class NotFound(RegistryGatewayError):
    status_code = 404


class ProtocolViolation(RegistryGatewayError):
    status_code = 502


class SourceSystemError(RegistryGatewayError):
    """Upstream failure: 5xx, exhausted transport retries or unsupported schema."""

    status_code = 502

    def __init__(self, message: str, registry: str) -> None:
        super().__init__(message, registry=registry)


class UnexpectedError(RegistryGatewayError):
    status_code = 500


class UnsupportedManifestSchema(SourceSystemError):
    """The registry answered with a manifest media type we cannot read."""

    def __init__(self, content_type: str, image: str, registry: str) -> None:
        self.content_type = content_type
        super().__init__(
            f"Only v1 and v2 manifests are supported. contentType={content_type} image={image}",
            registry=registry,
        )
