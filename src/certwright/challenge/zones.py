"""Most-specific zone selection for DNS validation backends.

Every DNS backend needs to know which of the account's hosted zones
owns a challenge record, and what the record is called relative to
that zone.  Matching is case-insensitive, on whole labels, and ignores
a trailing root dot on either side.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TypeVar

from certwright.core.errors import ZoneNotFoundError

T = TypeVar("T")

APEX = "@"


def _normalize(name: str) -> str:
    return name.rstrip(".").lower()


def zone_matches(zone: str, record_name: str) -> bool:
    """Return whether *zone* equals *record_name* or is a parent of it."""
    zone_n = _normalize(zone)
    record_n = _normalize(record_name)
    if not zone_n:
        return False
    return record_n == zone_n or record_n.endswith(f".{zone_n}")


def find_best_match(candidates: Mapping[str, T], record_name: str) -> T | None:
    """Return the value of the longest key that owns *record_name*.

    ``"example.com"`` owns ``"foo.example.com"`` but ``"xample.com"``
    does not.  Returns ``None`` when no key matches.
    """
    best: T | None = None
    best_score = -1
    for key, value in candidates.items():
        if not zone_matches(key, record_name):
            continue
        score = _normalize(key).count(".") + 1
        if score > best_score:
            best, best_score = value, score
    return best


def find_best_zone(zones: list[str] | tuple[str, ...], record_name: str) -> str:
    """Return the owning zone name from a plain list of zone names.

    Raises
    ------
    ZoneNotFoundError
        If no zone owns *record_name*.

    """
    zone = find_best_match({z: z for z in zones}, record_name)
    if zone is None:
        msg = f"No hosted zone found for {record_name}"
        raise ZoneNotFoundError(msg)
    return zone


def relative_record_name(zone: str, record_name: str) -> str:
    """Return *record_name* relative to *zone*, or ``"@"`` for the apex.

    Raises
    ------
    ZoneNotFoundError
        If *record_name* is not inside *zone*.

    """
    if not zone_matches(zone, record_name):
        msg = f"{record_name} is not part of zone {zone}"
        raise ZoneNotFoundError(msg)
    record = record_name.rstrip(".")
    zone_len = len(_normalize(zone))
    if len(record) == zone_len:
        return APEX
    return record[: -(zone_len + 1)]
