from __future__ import annotations

from typing import Any, Dict, List, Mapping


class ValidationError(ValueError):
    """Input rejected before anything was written.

    ``errors`` maps a field name to the messages raised for it, the same shape
    the API returns to the client. Keyword arguments ride along in the
    response body (for example the number of records blocking a delete).
    """

    def __init__(
        self,
        errors: Mapping[str, str | List[str]],
        message: str | None = None,
        **extra: Any,
    ) -> None:
        normalised: Dict[str, List[str]] = {}
        for field, value in errors.items():
            normalised[field] = [value] if isinstance(value, str) else list(value)
        self.errors = normalised
        self.extra = extra
        if message is None:
            first = next(iter(normalised.values()), ["The given data was invalid."])
            message = first[0]
        super().__init__(message)


class NotFoundError(LookupError):
    """Record is missing or belongs to somebody else."""


class ForbiddenError(LookupError):
    """Record exists but the caller does not own its parent."""
