"""Enumerated types for certwright.

String enums inherit from :class:`enum.StrEnum` so their ``.value`` is
a plain string that round-trips through the JSON renewal store.
:class:`Parallelism` is an :class:`enum.IntFlag` because validation
backends combine its members into a capability bitset.
"""

from __future__ import annotations

from enum import IntFlag, StrEnum

# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


class IdentifierType(StrEnum):
    UNKNOWN = "Unknown"
    IP_ADDRESS = "IpAddress"
    DNS_NAME = "DnsName"
    UPN_NAME = "UpnName"
    EMAIL = "Email"


class ProtocolIdentifierType(StrEnum):
    """Identifier types as they appear on the wire."""

    DNS = "dns"
    IP = "ip"


# ---------------------------------------------------------------------------
# Protocol status values
# ---------------------------------------------------------------------------


class OrderStatus(StrEnum):
    PENDING = "pending"
    READY = "ready"
    PROCESSING = "processing"
    VALID = "valid"
    INVALID = "invalid"


class AuthorizationStatus(StrEnum):
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"
    DEACTIVATED = "deactivated"
    EXPIRED = "expired"
    REVOKED = "revoked"


class ChallengeStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    VALID = "valid"
    INVALID = "invalid"


# ---------------------------------------------------------------------------
# Challenge types
# ---------------------------------------------------------------------------


class ChallengeType(StrEnum):
    HTTP_01 = "http-01"
    DNS_01 = "dns-01"
    TLS_ALPN_01 = "tls-alpn-01"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class Parallelism(IntFlag):
    """Concurrency capabilities declared by a validation backend.

    ``ANSWER``
        Multiple challenges may be outstanding at the same time.
    ``PREPARE``
        Multiple challenges may be prepared concurrently.
    ``REUSE``
        One backend instance may serve several identifiers.
    """

    NONE = 0
    ANSWER = 1
    PREPARE = 2
    REUSE = 4


class PrevalidationChoice(StrEnum):
    """Outcome of a propagation pre-check decision."""

    RETRY = "retry"
    PROCEED = "proceed"
    ABORT = "abort"


# ---------------------------------------------------------------------------
# Order decomposition
# ---------------------------------------------------------------------------


class OrderPluginType(StrEnum):
    SINGLE = "single"
    SITE = "site"
    HOST = "host"
    DOMAIN = "domain"


# ---------------------------------------------------------------------------
# Key material
# ---------------------------------------------------------------------------


class KeyType(StrEnum):
    RSA = "rsa"
    EC = "ec"
