from __future__ import annotations

"""Error taxonomy shared by the query pipeline and its collaborators."""


class QueryValidationError(ValueError):
    """Raised when a query request is malformed or out of range."""
    pass


class TransientServiceError(RuntimeError):
    """Raised when an embedding or generation service is unavailable."""
    pass
