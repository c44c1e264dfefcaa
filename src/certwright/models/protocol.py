"""Value objects exchanged with the protocol collaborator.

These mirror the ACME resources the orchestration core consumes
(orders, authorizations, challenges, renewal information) without
tying the core to any particular wire implementation.
"""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass, field
from datetime import datetime

from certwright.core.types import (
    AuthorizationStatus,
    ChallengeStatus,
    ChallengeType,
    OrderStatus,
)

DNS_CHALLENGE_PREFIX = "_acme-challenge"
HTTP_CHALLENGE_PATH = ".well-known/acme-challenge"


@dataclass(frozen=True)
class ProtocolIdentifier:
    type: str
    value: str


@dataclass
class ChallengeOffer:
    """One challenge offered by the server for an authorization."""

    type: str
    url: str
    token: str
    status: ChallengeStatus = ChallengeStatus.PENDING
    error: dict | None = None


@dataclass
class AuthorizationDetails:
    url: str
    identifier: ProtocolIdentifier
    status: AuthorizationStatus
    challenges: list[ChallengeOffer] = field(default_factory=list)
    wildcard: bool = False
    expires: datetime | None = None


@dataclass
class ProtocolOrderDetails:
    url: str
    status: OrderStatus
    identifiers: list[ProtocolIdentifier] = field(default_factory=list)
    authorizations: list[str] = field(default_factory=list)
    finalize_url: str | None = None
    certificate_url: str | None = None
    expires: datetime | None = None
    error: dict | None = None


@dataclass(frozen=True)
class RenewalInfo:
    """Server-advertised renewal window (ARI)."""

    suggested_window_start: datetime
    suggested_window_end: datetime
    explanation_url: str | None = None


# ---------------------------------------------------------------------------
# Decoded challenge details
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Dns01ChallengeDetails:
    record_name: str
    record_value: str


@dataclass(frozen=True)
class Http01ChallengeDetails:
    resource_path: str
    resource_value: str
    host: str

    @property
    def resource_url(self) -> str:
        return f"http://{self.host}/{self.resource_path}"


@dataclass(frozen=True)
class TlsAlpn01ChallengeDetails:
    host: str
    key_authorization: str


ChallengeDetails = Dns01ChallengeDetails | Http01ChallengeDetails | TlsAlpn01ChallengeDetails


def decode_challenge(
    identifier_value: str,
    offer: ChallengeOffer,
    key_authorization: str,
) -> ChallengeDetails:
    """Compute what a backend must publish to answer *offer*.

    Parameters
    ----------
    identifier_value:
        The DNS name or IP address being validated (wildcard allowed).
    offer:
        The selected challenge.
    key_authorization:
        ``token + "." + account thumbprint`` as provided by the
        protocol collaborator.

    Raises
    ------
    ValueError
        If the challenge type is not supported.

    """
    host = identifier_value.removeprefix("*.")
    if offer.type == ChallengeType.DNS_01:
        digest = hashlib.sha256(key_authorization.encode("ascii")).digest()
        value = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
        return Dns01ChallengeDetails(
            record_name=f"{DNS_CHALLENGE_PREFIX}.{host}",
            record_value=value,
        )
    if offer.type == ChallengeType.HTTP_01:
        return Http01ChallengeDetails(
            resource_path=f"{HTTP_CHALLENGE_PATH}/{offer.token}",
            resource_value=key_authorization,
            host=host,
        )
    if offer.type == ChallengeType.TLS_ALPN_01:
        return TlsAlpn01ChallengeDetails(host=host, key_authorization=key_authorization)
    msg = f"Unsupported challenge type '{offer.type}'"
    raise ValueError(msg)
