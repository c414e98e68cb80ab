"""Exception hierarchy for elide-client.

Schema errors are raised once, while the client is being built. The rest
surface from store operations and carry the identifiers a caller needs to
report or recover.
"""
from __future__ import annotations

from typing import Any


class ElideError(Exception):
    """Base exception for all elide-client errors."""


# =============================================================================
# Schema / configuration
# =============================================================================


class SchemaError(ElideError):
    """Raised when a schema declaration cannot be compiled."""


class MissingStoreError(SchemaError):
    """Raised when a model names no store or a store that is not declared."""

    def __init__(self, model: str):
        super().__init__(f'Elide model "{model}" must specify a valid store.')
        self.model = model


class LinkTypeError(SchemaError):
    """Raised when a link has no type or a type other than hasOne/hasMany."""

    def __init__(self, model: str, link_type: str | None = None):
        if link_type is None:
            message = f'Elide model "{model}" specifies a link without a type.'
        else:
            message = f'Invalid link type "{link_type}".'
        super().__init__(message)
        self.model = model
        self.link_type = link_type


class LinkTargetError(SchemaError):
    """Raised when a link points at a model that is not declared."""

    def __init__(self, model: str, target: str | None = None):
        super().__init__(f'Elide model "{model}" specifies a link to an unknown model.')
        self.model = model
        self.target = target


class DanglingModelError(SchemaError):
    """Raised when a model is unreachable from every root model."""

    def __init__(self, model: str):
        super().__init__(f'Elide model "{model}" cannot be rooted.')
        self.model = model


class StoreConfigurationError(SchemaError):
    """Raised for an unknown store type or an undeclared upstream store."""


class UnknownModelError(SchemaError):
    """Raised when an operation names a model the schema does not declare."""

    def __init__(self, model: str, method: str | None = None):
        if method:
            message = f'Unknown model "{model}" passed to #{method}.'
        else:
            message = f'Elide model "{model}" does not exist.'
        super().__init__(message)
        self.model = model
        self.method = method


# =============================================================================
# Store operations
# =============================================================================


class QueryError(ElideError):
    """Raised when a query hop names a field that is not a link."""

    def __init__(self, message: str, model: str | None = None, field: str | None = None):
        super().__init__(message)
        self.model = model
        self.field = field


class InvalidStateError(ElideError):
    """Raised when create/update/delete receive an unusable state."""


class MissingRecordError(InvalidStateError):
    """Raised when update/delete target an id the store does not hold."""

    def __init__(self, model: str, method: str):
        super().__init__(f'The "{model}" passed to #{method} does not exist.')
        self.model = model
        self.method = method


class ReferentialError(ElideError):
    """Raised when a mutation links to an instance that does not exist."""

    def __init__(self, model: str, instance_id: str, method: str):
        super().__init__(f'The "{model}":{instance_id} passed to #{method} does not exist.')
        self.model = model
        self.instance_id = instance_id
        self.method = method


class CannotRootError(ElideError):
    """Raised when no absolute path can be built for an instance.

    ``ancestor`` names the model whose id could not be determined.
    """

    def __init__(self, model: str, instance_id: str | None, ancestor: str, reason: str | None = None):
        message = f'Cannot root {model}:{instance_id} through {ancestor}.'
        if reason:
            message = f"{message} {reason}"
        super().__init__(message)
        self.model = model
        self.instance_id = instance_id
        self.ancestor = ancestor


class NoUpstreamError(ElideError):
    """Raised when a store without an upstream is asked to commit."""

    def __init__(self) -> None:
        super().__init__("No upstream store to commit to.")


class DehydrateError(ElideError):
    """Raised when persisting a store that still has pending changes."""


class UpstreamError(ElideError):
    """Remote request failure, enriched with request/response details.

    ``response_text`` is only populated for client errors (status < 500).
    """

    def __init__(
        self,
        message: str,
        resource_url: str | None = None,
        request_url: str | None = None,
        request_data: Any = None,
        response_status: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message)
        self.resource_url = resource_url
        self.request_url = request_url
        self.request_data = request_data
        self.response_status = response_status
        self.response_text = response_text
