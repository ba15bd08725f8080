"""Errors raised while aggregating routes and rendering nginx configuration."""

from __future__ import annotations


class PodsIngressError(Exception):
    """Base class for all podsingress errors."""


class CacheLoadError(PodsIngressError, ValueError):
    """A cache snapshot could not be read or has an invalid shape."""


class InvalidSecretError(PodsIngressError):
    """A namespace secret does not carry the API key data field."""

    def __init__(self, namespace: str, secret_name: str, field: str) -> None:
        self.namespace = namespace
        self.secret_name = secret_name
        self.field = field
        super().__init__(
            f"Secret '{secret_name}' in namespace '{namespace}' has no '{field}' data field"
        )


class UpstreamNameCollisionError(PodsIngressError):
    """Two distinct host+path keys hash to the same upstream name."""

    def __init__(self, name: str, existing_key: str, new_key: str) -> None:
        self.name = name
        self.existing_key = existing_key
        self.new_key = new_key
        super().__init__(
            f"Upstream name '{name}' is shared by '{existing_key}' and '{new_key}'"
        )


class MalformedUpstreamError(PodsIngressError):
    """The routing model violates an upstream invariant."""


class RenderError(PodsIngressError):
    """The nginx configuration template could not be applied to the model."""
