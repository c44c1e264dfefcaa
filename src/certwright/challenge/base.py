"""Abstract base class for validation backends.

A validation backend proves control of identifiers by publishing
whatever a challenge requires (DNS TXT record, HTTP resource, ...).
The :class:`~certwright.services.validation.ValidationDispatcher`
drives every backend through the same lifecycle::

    select_challenge -> prepare_challenge (per identifier)
                     -> commit (once per batch)
                     -> [server validates]
                     -> cleanup (per prepared identifier, always)

Each backend declares a :class:`~certwright.core.types.Parallelism`
bitset that tells the dispatcher which of these steps it may run
concurrently.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from certwright.core.errors import CertwrightError
from certwright.core.state import ENABLED, State
from certwright.core.types import AuthorizationStatus, ChallengeType, IdentifierType, Parallelism

if TYPE_CHECKING:
    from certwright.config.settings import ValidationSettings
    from certwright.models.identifier import Identifier
    from certwright.models.order import Order, OrderResult
    from certwright.models.protocol import AuthorizationDetails, ChallengeDetails, ChallengeOffer
    from certwright.models.target import Target, TargetPart
    from certwright.services.dns_lookup import DnsAuthority, DnsLookupService
    from certwright.services.domain_parse import DomainParseService
    from certwright.services.input import InputService
    from certwright.services.secrets import SecretService

log = logging.getLogger(__name__)


class ChallengeError(CertwrightError):
    """Raised by backends when a challenge cannot be prepared or answered.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    retryable:
        Whether the failure is transient and the challenge may be retried.

    """


@dataclass
class BackendServices:
    """Collaborators handed to every backend instance."""

    settings: ValidationSettings
    secrets: SecretService
    domain_parser: DomainParseService
    dns_lookup: DnsLookupService | None = None
    input: InputService | None = None


@dataclass(eq=False)
class ValidationContext:
    """State of one identifier's validation within an order run.

    Compared and hashed by identity: contexts are mutable and key
    per-identifier bookkeeping in the dispatcher and backends.
    """

    order: Order
    result: OrderResult
    authorization: AuthorizationDetails
    identifier: Identifier
    target_part: TargetPart | None = None
    challenge: ChallengeOffer | None = None
    details: ChallengeDetails | None = None
    prepared: bool = False
    failed: bool = False
    errors_fatal: bool = True
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return f"[{self.identifier.value}]"

    @property
    def valid(self) -> bool:
        return self.authorization.status == AuthorizationStatus.VALID

    def fail(self, message: str) -> None:
        """Mark this identifier failed and record *message* on the order.

        The message fails the whole order unless the order was already
        valid at the server (``errors_fatal`` is false).
        """
        self.failed = True
        self.result.add_error_message(message, self.errors_fatal)


class ValidationBackend(abc.ABC):
    """Base class for all validation backends.

    Subclasses set :attr:`key`, :attr:`challenge_type` and
    :attr:`parallelism` and implement :meth:`prepare_challenge` and
    :meth:`cleanup`.

    Parameters
    ----------
    options:
        Backend-specific options from the renewal's validation block.
    services:
        Shared collaborators (settings, secrets, DNS lookups, ...).

    """

    key: ClassVar[str]
    """Registry key, e.g. ``"rfc2136"``."""

    challenge_type: ClassVar[ChallengeType | None] = None
    """Challenge type answered, ``None`` if the backend answers none."""

    parallelism: Parallelism = Parallelism.NONE

    interactive: ClassVar[bool] = False
    """Whether propagation checks should ask the operator."""

    answers_challenges: ClassVar[bool] = True
    """``False`` for backends that only accept pre-authorized identifiers."""

    supported_identifier_types: ClassVar[frozenset[IdentifierType]] = frozenset(
        {IdentifierType.DNS_NAME},
    )

    def __init__(self, options: dict[str, Any], services: BackendServices) -> None:
        self.options = options
        self.services = services

    @property
    def settings(self) -> ValidationSettings:
        return self.services.settings

    def capability(self, target: Target) -> State:
        """Whether this backend can validate every identifier of *target*."""
        for identifier in target.get_identifiers(unicode=False):
            if identifier.type not in self.supported_identifier_types:
                return State.disabled_state(
                    f"{self.key} validation does not support {identifier.type} identifiers",
                )
        return ENABLED

    def select_challenge(self, offers: list[ChallengeOffer]) -> ChallengeOffer | None:
        """Pick the challenge to answer among those the server offered."""
        for offer in offers:
            if offer.type == self.challenge_type:
                return offer
        return None

    @abc.abstractmethod
    def prepare_challenge(self, context: ValidationContext) -> None:
        """Publish what the challenge requires.

        Raise :class:`ChallengeError` (or any exception) on failure.
        """

    def commit(self) -> None:  # noqa: B027
        """Push buffered changes.  Called once after all prepares of a batch."""

    def prevalidation_records(
        self,
        context: ValidationContext,  # noqa: ARG002
    ) -> list[tuple[DnsAuthority, str]]:
        """Records to check for propagation before answering.

        Default implementation checks nothing.
        """
        return []

    @abc.abstractmethod
    def cleanup(self, context: ValidationContext) -> None:
        """Remove whatever :meth:`prepare_challenge` published for *context*."""

    def close(self) -> None:  # noqa: B027
        """Release resources when the backend instance is discarded."""


class HttpValidationBackend(ValidationBackend):
    """Shared behaviour of HTTP-01 backends."""

    challenge_type = ChallengeType.HTTP_01
    parallelism = Parallelism.ANSWER
    supported_identifier_types = frozenset({IdentifierType.DNS_NAME, IdentifierType.IP_ADDRESS})

    def capability(self, target: Target) -> State:
        state = super().capability(target)
        if state.disabled:
            return state
        if any(i.value.startswith("*.") for i in target.get_identifiers(unicode=False)):
            return State.disabled_state("HTTP validation cannot be used for wildcard identifiers")
        return state
