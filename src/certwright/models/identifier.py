"""Typed identifiers a certificate can cover.

Identifiers compare and hash on the case-insensitive form of
``"{Type}: {Value}"`` so they can be used directly as de-duplication
keys regardless of the code path that created them::

    >>> Identifier.parse("A.COM") == Identifier.parse("a.com")
    True
"""

from __future__ import annotations

import functools
import ipaddress
import logging
from dataclasses import dataclass
from email.utils import parseaddr
from typing import TYPE_CHECKING, Any, ClassVar

from certwright.core.errors import InvalidIdentifierError
from certwright.core.types import IdentifierType, ProtocolIdentifierType

if TYPE_CHECKING:
    from certwright.models.protocol import ProtocolIdentifier

log = logging.getLogger(__name__)

_WILDCARD_PREFIX = "*."
_PUNYCODE_PREFIX = "xn--"


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Identifier:
    """Base identifier value object."""

    value: str

    type: ClassVar[IdentifierType] = IdentifierType.UNKNOWN

    def __post_init__(self) -> None:
        """Normalise ``value``; subclasses override."""

    def __str__(self) -> str:
        return f"{self.type}: {self.value}"

    @property
    def _key(self) -> str:
        return str(self).lower()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Identifier):
            return NotImplemented
        return self._key == other._key

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Identifier):
            return NotImplemented
        return self._key < other._key

    def __hash__(self) -> int:
        return hash(self._key)

    def unicode(self, unicode: bool) -> Identifier:  # noqa: ARG002, FBT001
        """Return this identifier in Unicode or ASCII form.

        Only DNS names have two forms; every other type returns itself.
        """
        return self

    # -- construction -------------------------------------------------------

    @staticmethod
    def parse(value: str) -> Identifier:
        """Parse a user-supplied string: an IP literal, otherwise a DNS name."""
        try:
            return IpIdentifier(value)
        except InvalidIdentifierError:
            return DnsIdentifier(value)

    @staticmethod
    def parse_protocol(
        identifier: ProtocolIdentifier,
        wildcard: bool | None = None,  # noqa: FBT001
    ) -> Identifier:
        """Map a wire-level identifier to its typed form.

        Parameters
        ----------
        identifier:
            Identifier as reported by the protocol server.
        wildcard:
            Whether the authorization covers ``*.<value>``.

        """
        if identifier.type == ProtocolIdentifierType.IP:
            return IpIdentifier(identifier.value)
        if identifier.type == ProtocolIdentifierType.DNS:
            value = identifier.value
            if wildcard and not value.startswith(_WILDCARD_PREFIX):
                value = f"{_WILDCARD_PREFIX}{value}"
            return DnsIdentifier(value)
        return UnknownIdentifier(identifier.value)

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type.value, "value": self.value}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Identifier:
        id_type = IdentifierType(data["type"])
        cls = _TYPES.get(id_type, UnknownIdentifier)
        return cls(data["value"])


class UnknownIdentifier(Identifier):
    type = IdentifierType.UNKNOWN


class DnsIdentifier(Identifier):
    """DNS name, optionally with a leading ``*.`` wildcard label."""

    type = IdentifierType.DNS_NAME

    def __post_init__(self) -> None:
        value = self.value.strip()
        if not value:
            msg = "DNS name must not be empty"
            raise InvalidIdentifierError(msg)
        object.__setattr__(self, "value", value)

    @property
    def wildcard(self) -> bool:
        return self.value.startswith(_WILDCARD_PREFIX)

    @property
    def base_name(self) -> str:
        """The name without its wildcard label."""
        return self.value.removeprefix(_WILDCARD_PREFIX)

    def unicode(self, unicode: bool) -> DnsIdentifier:  # noqa: FBT001
        labels = self.value.split(".")
        converted = [_label_to_unicode(lbl) if unicode else _label_to_ascii(lbl) for lbl in labels]
        return DnsIdentifier(".".join(converted))


class IpIdentifier(Identifier):
    """IPv4 or IPv6 address.

    Accepts textual/dotted notation as well as the ``#hex`` form used
    for IP addresses in some certificate tooling (``#7f000001``).
    """

    type = IdentifierType.IP_ADDRESS

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _normalize_ip(self.value))

    @property
    def address(self) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
        return ipaddress.ip_address(self.value)


class EmailIdentifier(Identifier):
    type = IdentifierType.EMAIL

    def __post_init__(self) -> None:
        raw = self.value.strip()
        _, address = parseaddr(raw)
        local, _, domain = address.partition("@")
        if not address or address != raw or not local or not domain:
            msg = f"Unable to parse email address {self.value!r}"
            raise InvalidIdentifierError(msg)
        object.__setattr__(self, "value", address)


class UpnIdentifier(Identifier):
    type = IdentifierType.UPN_NAME


_TYPES: dict[IdentifierType, type[Identifier]] = {
    IdentifierType.UNKNOWN: UnknownIdentifier,
    IdentifierType.DNS_NAME: DnsIdentifier,
    IdentifierType.IP_ADDRESS: IpIdentifier,
    IdentifierType.EMAIL: EmailIdentifier,
    IdentifierType.UPN_NAME: UpnIdentifier,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _normalize_ip(value: str) -> str:
    raw = value.strip()
    if raw.startswith("#"):
        try:
            packed = bytes.fromhex(raw[1:])
            return str(ipaddress.ip_address(packed))
        except ValueError as exc:
            msg = f"Unable to parse hex IP address {value!r}"
            raise InvalidIdentifierError(msg) from exc
    try:
        return str(ipaddress.ip_address(raw.strip("[]")))
    except ValueError as exc:
        msg = f"Unable to parse IP address {value!r}"
        raise InvalidIdentifierError(msg) from exc


def _label_to_unicode(label: str) -> str:
    if not label.lower().startswith(_PUNYCODE_PREFIX):
        return label
    try:
        return label.encode("ascii").decode("idna")
    except UnicodeError:
        log.debug("Label %r is not valid punycode, keeping as-is", label)
        return label


def _label_to_ascii(label: str) -> str:
    if label.isascii():
        return label
    try:
        return label.encode("idna").decode("ascii")
    except UnicodeError as exc:
        msg = f"Label {label!r} cannot be encoded as IDNA"
        raise InvalidIdentifierError(msg) from exc
