"""Exception taxonomy for certwright.

Every exception raised by the orchestration core derives from
:class:`CertwrightError`.  The ``retryable`` flag tells callers whether
repeating the same operation could succeed; configuration, zone and
persistence errors never are.
"""

from __future__ import annotations


class CertwrightError(Exception):
    """Base class for all certwright errors.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    retryable:
        Whether the failure is transient.

    """

    def __init__(self, detail: str, *, retryable: bool = False) -> None:  # noqa: FBT001, FBT002
        self.detail = detail
        self.retryable = retryable
        super().__init__(detail)


class ConfigurationError(CertwrightError):
    """Invalid renewal, target or backend configuration.

    Raised before any network I/O takes place.
    """


class InvalidIdentifierError(ConfigurationError, ValueError):
    """A raw value could not be parsed as the claimed identifier type."""


class ZoneNotFoundError(CertwrightError, LookupError):
    """No hosted zone owns the requested record name."""


class PersistenceError(CertwrightError):
    """Durable state could not be written or verified."""


class InterruptedWriteError(PersistenceError):
    """A previous write left ``.new`` or ``.previous`` files behind.

    The files must be inspected and removed by hand before any further
    write to the same path is attempted.
    """

    def __init__(self, path: str, leftovers: list[str]) -> None:
        self.path = path
        self.leftovers = leftovers
        names = ", ".join(leftovers)
        super().__init__(
            f"Previous write to {path} was interrupted ({names} present); "
            "inspect and remove these files manually before retrying",
        )
