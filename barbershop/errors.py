"""Exception types raised by the barbershop core and its persistence boundary."""
from __future__ import annotations


class BarbershopError(Exception):
    """Base class for every error the core reports to its callers."""


class ValidationError(BarbershopError):
    """Malformed input to a constructor or setter."""


class ConflictError(ValidationError):
    """A unique field collides with an existing record."""


class DuplicateClientError(ConflictError):
    """A client with the same phone number is already registered."""


class NotFoundError(BarbershopError):
    """The requested record does not exist."""


class InvalidTransitionError(BarbershopError):
    """Status machine misuse, e.g. completing an appointment never started."""

    def __init__(self, current: str, action: str, subject: str = "an appointment") -> None:
        super().__init__(f"Cannot {action} {subject} that is {current}")
        self.current = current
        self.action = action


class InvalidPriceError(BarbershopError):
    """Unparseable or non-positive final price at completion."""


class PersistenceFailure(BarbershopError):
    """A write to the database failed and was rolled back."""
