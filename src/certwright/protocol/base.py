"""Contract for the ACME-style protocol collaborator.

The orchestration core never speaks the wire protocol itself (JWS,
nonces, account registration).  It drives an :class:`AcmeClient`
implementation that submits orders, exposes authorizations and their
challenges, answers challenges and polls for their outcome.

Implementations raise :class:`AcmeError` on failure; transient errors
should set ``retryable=True`` and are retried by the implementation's
own polling logic, not by the core.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from certwright.core.errors import CertwrightError

if TYPE_CHECKING:
    from datetime import datetime

    from certwright.models.protocol import (
        AuthorizationDetails,
        ChallengeOffer,
        ProtocolIdentifier,
        ProtocolOrderDetails,
        RenewalInfo,
    )

log = logging.getLogger(__name__)


class AcmeError(CertwrightError):
    """Raised by protocol collaborators.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    retryable:
        Whether the failure is transient and the operation may be retried.

    """


@dataclass(frozen=True)
class IssuedCertificate:
    """Certificate chain returned when an order is finalized.

    Attributes
    ----------
    pem_chain:
        Leaf certificate followed by intermediates, PEM encoded.
    not_before:
        Validity start of the leaf.
    not_after:
        Validity end of the leaf.
    thumbprint:
        SHA-256 hex digest of the leaf's DER encoding.

    """

    pem_chain: str
    not_before: datetime
    not_after: datetime
    thumbprint: str


class AcmeClient(abc.ABC):
    """Protocol operations consumed by the orchestration core."""

    @abc.abstractmethod
    def submit_order(self, identifiers: list[ProtocolIdentifier]) -> ProtocolOrderDetails:
        """Create a new order (or return a matching pending one)."""

    @abc.abstractmethod
    def refresh_order(self, details: ProtocolOrderDetails) -> ProtocolOrderDetails:
        """Re-fetch the order to observe its current status."""

    @abc.abstractmethod
    def get_authorization(self, url: str) -> AuthorizationDetails:
        """Fetch an authorization with its offered challenges."""

    @abc.abstractmethod
    def key_authorization(self, token: str) -> str:
        """Return ``token + "." + account-key thumbprint``."""

    @abc.abstractmethod
    def answer_challenge(self, challenge: ChallengeOffer) -> ChallengeOffer:
        """Tell the server the challenge is ready and poll until it settles.

        Returns the challenge in its final state (``valid`` or
        ``invalid``), including any server error document.
        """

    @abc.abstractmethod
    def deactivate_authorization(self, url: str) -> None:
        """Deactivate an authorization that will not be completed."""

    @abc.abstractmethod
    def finalize_order(
        self,
        details: ProtocolOrderDetails,
        csr_der: bytes,
    ) -> IssuedCertificate:
        """Submit the CSR and download the issued certificate."""

    def get_renewal_info(self, certificate_pem: str) -> RenewalInfo | None:
        """Return the server's suggested renewal window, if supported.

        Default implementation reports that the server offers none.
        """
        return None
