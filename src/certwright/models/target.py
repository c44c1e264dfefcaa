"""Targets: the identifiers a renewal must cover, grouped by origin."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any

from certwright.core.errors import ConfigurationError
from certwright.models.identifier import Identifier

MAX_COMMON_NAME = 64


def common_name_or_none(identifier: Identifier | None) -> Identifier | None:
    """Return *identifier* when it fits in a certificate common name."""
    if identifier is None or len(identifier.value) > MAX_COMMON_NAME:
        return None
    return identifier


def _distinct(identifiers: list[Identifier]) -> list[Identifier]:
    seen: set[Identifier] = set()
    result: list[Identifier] = []
    for ident in identifiers:
        if ident not in seen:
            seen.add(ident)
            result.append(ident)
    return result


@dataclass
class TargetPart:
    """Identifiers contributed by one binding source (site, host, list).

    ``site_id`` and ``site_type`` are opaque origin tags; a site id of
    ``None`` or ``0`` means the source carries no site information.
    """

    identifiers: list[Identifier]
    site_id: int | None = None
    site_type: str | None = None

    def __post_init__(self) -> None:
        self.identifiers = _distinct(list(self.identifiers))

    def get_identifiers(self, unicode: bool) -> list[Identifier]:  # noqa: FBT001
        return [ident.unicode(unicode) for ident in self.identifiers]

    def add(self, identifier: Identifier) -> bool:
        """Append *identifier* unless already present.  Returns ``True`` if added."""
        if identifier in self.identifiers:
            return False
        self.identifiers.append(identifier)
        return True

    def copy(self, identifiers: list[Identifier] | None = None) -> TargetPart:
        """Return an independently owned copy, optionally with other identifiers."""
        return TargetPart(
            identifiers=list(self.identifiers if identifiers is None else identifiers),
            site_id=self.site_id,
            site_type=self.site_type,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifiers": [i.to_dict() for i in self.identifiers],
            "site_id": self.site_id,
            "site_type": self.site_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TargetPart:
        return cls(
            identifiers=[Identifier.from_dict(i) for i in data.get("identifiers", [])],
            site_id=data.get("site_id"),
            site_type=data.get("site_type"),
        )


@dataclass
class Target:
    """The full set of identifiers one renewal covers.

    Raises
    ------
    ConfigurationError
        If ``common_name`` is not one of the identifiers of ``parts``.

    """

    friendly_name: str | None
    common_name: Identifier | None
    parts: list[TargetPart] = field(default_factory=list)
    user_csr_bytes: bytes | None = None
    private_key_path: str | None = None

    def __post_init__(self) -> None:
        if self.common_name is not None and self.common_name not in self.get_identifiers(
            unicode=False,
        ) and self.common_name not in self.get_identifiers(unicode=True):
            msg = f"Common name {self.common_name.value} is not part of the target identifiers"
            raise ConfigurationError(msg)

    @property
    def is_valid(self) -> bool:
        return bool(self.get_identifiers(unicode=False)) or self.user_csr_bytes is not None

    @property
    def display_name(self) -> str:
        if self.friendly_name:
            return self.friendly_name
        if self.common_name is not None:
            return self.common_name.value
        identifiers = self.get_identifiers(unicode=True)
        return identifiers[0].value if identifiers else "[empty]"

    def get_identifiers(self, unicode: bool) -> list[Identifier]:  # noqa: FBT001
        """All distinct identifiers across parts, in declaration order."""
        return _distinct([i for part in self.parts for i in part.get_identifiers(unicode)])

    def to_dict(self) -> dict[str, Any]:
        return {
            "friendly_name": self.friendly_name,
            "common_name": self.common_name.to_dict() if self.common_name else None,
            "parts": [p.to_dict() for p in self.parts],
            "user_csr": (
                base64.b64encode(self.user_csr_bytes).decode("ascii")
                if self.user_csr_bytes
                else None
            ),
            "private_key_path": self.private_key_path,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Target:
        cn = data.get("common_name")
        csr = data.get("user_csr")
        return cls(
            friendly_name=data.get("friendly_name"),
            common_name=Identifier.from_dict(cn) if cn else None,
            parts=[TargetPart.from_dict(p) for p in data.get("parts", [])],
            user_csr_bytes=base64.b64decode(csr) if csr else None,
            private_key_path=data.get("private_key_path"),
        )
