"""Typed errors raised by the field stores and the signing engine.

Services never translate these into HTTP responses themselves; ``main.py``
registers one exception handler per kind.
"""

from __future__ import annotations


class FieldSignError(Exception):
    """Base class for every domain error."""

    status_code = 400

    def __init__(self, message: str, *, field_id: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field_id = field_id

    def to_dict(self) -> dict:
        return {"detail": self.message, "field_id": self.field_id}


class ValidationError(FieldSignError):
    """Malformed field spec, or a field missing its value at sign time."""

    status_code = 422

    def __init__(self, reason: str, *, field_id: int | None = None, field_name: str | None = None) -> None:
        self.reason = reason
        self.field_name = field_name
        if field_id is not None:
            label = f"'{field_name}' (id={field_id})" if field_name else f"id={field_id}"
            message = f"Field {label}: {reason}"
        else:
            message = reason
        super().__init__(message, field_id=field_id)


class ConflictError(FieldSignError):
    """Operation is incompatible with the current field state."""

    status_code = 409


class NotFoundError(FieldSignError):
    status_code = 404


class PersistenceError(FieldSignError):
    """The underlying store failed; the whole operation was rolled back."""

    status_code = 503
