"""DNS-01 validation base classes.

:class:`DnsValidation` implements the challenge lifecycle in terms of
three record operations (``create_record``, ``delete_record``,
``save_changes``).  Records are tracked per backend instance, never
globally, so concurrent orders cannot corrupt each other's bookkeeping.

:class:`ZoneBufferedDnsValidation` adds the common two-phase pattern:
changes are buffered as ``{zone: {relative_name: {values}}}`` and
pushed with one provider call per zone in :meth:`commit`.
"""

from __future__ import annotations

import abc
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from certwright.challenge.base import (
    BackendServices,
    ChallengeError,
    ValidationBackend,
    ValidationContext,
)
from certwright.challenge.zones import find_best_zone, relative_record_name
from certwright.core.errors import ZoneNotFoundError
from certwright.core.types import ChallengeType
from certwright.models.protocol import Dns01ChallengeDetails
from certwright.services.dns_lookup import DnsAuthority

if TYPE_CHECKING:
    from collections.abc import Iterable

log = logging.getLogger(__name__)

ZoneChanges = dict[str, set[str]]


@dataclass(frozen=True, eq=False)
class DnsValidationRecord:
    """A TXT record a backend must publish for one identifier."""

    context: ValidationContext
    authority: DnsAuthority
    value: str

    @property
    def name(self) -> str:
        return self.authority.domain


class DnsValidation(ValidationBackend):
    """Base class for DNS-01 backends."""

    challenge_type = ChallengeType.DNS_01

    def __init__(self, options: dict[str, Any], services: BackendServices) -> None:
        super().__init__(options, services)
        self._records: list[DnsValidationRecord] = []
        self._records_lock = threading.Lock()

    # -- lifecycle ----------------------------------------------------------

    def prepare_challenge(self, context: ValidationContext) -> None:
        details = context.details
        if not isinstance(details, Dns01ChallengeDetails):
            msg = f"{context.label} has no DNS-01 challenge details"
            raise ChallengeError(msg)

        authority: DnsAuthority | None = self._authority(details.record_name)
        last_error: Exception | None = None
        while authority is not None:
            record = DnsValidationRecord(context, authority, details.record_value)
            try:
                created = self.create_record(record)
            except ZoneNotFoundError as exc:
                created, last_error = False, exc
            if created:
                with self._records_lock:
                    self._records.append(record)
                log.debug("%s Record %s staged", context.label, record.name)
                return
            authority = authority.source
            if authority is not None:
                log.warning(
                    "%s Unable to create record at %s, falling back to %s",
                    context.label,
                    record.name,
                    authority.domain,
                )
        if last_error is not None:
            raise last_error
        msg = f"Unable to create DNS record {details.record_name}"
        raise ChallengeError(msg)

    def commit(self) -> None:
        self.save_changes()

    def prevalidation_records(self, context: ValidationContext) -> list[tuple[DnsAuthority, str]]:
        return [(r.authority, r.value) for r in self._records_for(context)]

    def cleanup(self, context: ValidationContext) -> None:
        for record in self._records_for(context):
            try:
                self.delete_record(record)
            except Exception as exc:  # noqa: BLE001
                log.warning("%s Error deleting record %s: %s", context.label, record.name, exc)
            with self._records_lock:
                self._records.remove(record)
        if not self._has_records():
            self._finalize_quietly()

    def close(self) -> None:
        self._finalize_quietly()

    # -- record operations --------------------------------------------------

    @abc.abstractmethod
    def create_record(self, record: DnsValidationRecord) -> bool:
        """Stage or create *record*.  Return ``False`` if this name cannot be served."""

    @abc.abstractmethod
    def delete_record(self, record: DnsValidationRecord) -> None:
        """Remove or stage the removal of *record*."""

    def save_changes(self) -> None:  # noqa: B027
        """Push staged creations.  Backends that create immediately need nothing."""

    def finalize(self) -> None:  # noqa: B027
        """Push staged removals once no tracked record remains."""

    # -- helpers ------------------------------------------------------------

    def _authority(self, record_name: str) -> DnsAuthority:
        lookup = self.services.dns_lookup
        if lookup is None:
            return DnsAuthority(domain=record_name)
        return lookup.get_authority(
            record_name,
            follow_cnames=self.settings.allow_dns_substitution,
        )

    def _records_for(self, context: ValidationContext) -> list[DnsValidationRecord]:
        with self._records_lock:
            return [r for r in self._records if r.context is context]

    def _has_records(self) -> bool:
        with self._records_lock:
            return bool(self._records)

    def _finalize_quietly(self) -> None:
        try:
            self.finalize()
        except Exception as exc:  # noqa: BLE001
            log.warning("Error finalizing %s record cleanup: %s", self.key, exc)


class ZoneBufferedDnsValidation(DnsValidation):
    """DNS backend that batches record changes per zone.

    Subclasses implement :meth:`list_zones` and :meth:`apply_changes`.
    """

    def __init__(self, options: dict[str, Any], services: BackendServices) -> None:
        super().__init__(options, services)
        self._zones: list[str] | None = None
        self._buffer_lock = threading.Lock()
        self._additions: dict[str, ZoneChanges] = defaultdict(lambda: defaultdict(set))
        self._deletions: dict[str, ZoneChanges] = defaultdict(lambda: defaultdict(set))

    @abc.abstractmethod
    def list_zones(self) -> Iterable[str]:
        """Names of the zones this account can modify."""

    @abc.abstractmethod
    def apply_changes(self, zone: str, additions: ZoneChanges, deletions: ZoneChanges) -> None:
        """Apply TXT changes to one zone in a single provider call.

        Both mappings are keyed by record name relative to *zone*
        (``"@"`` for the apex).
        """

    def zone_for(self, record_name: str) -> str:
        """Return the most specific owned zone for *record_name*."""
        with self._buffer_lock:
            if self._zones is None:
                self._zones = list(self.list_zones())
            zones = self._zones
        return find_best_zone(zones, record_name)

    def _locate(self, record: DnsValidationRecord) -> tuple[str, str]:
        zone = self.zone_for(record.name)
        return zone, relative_record_name(zone, record.name)

    def create_record(self, record: DnsValidationRecord) -> bool:
        zone, relative = self._locate(record)
        with self._buffer_lock:
            self._additions[zone][relative].add(record.value)
        return True

    def delete_record(self, record: DnsValidationRecord) -> None:
        zone, relative = self._locate(record)
        with self._buffer_lock:
            self._deletions[zone][relative].add(record.value)

    def save_changes(self) -> None:
        with self._buffer_lock:
            pending = {zone: dict(changes) for zone, changes in self._additions.items()}
            self._additions.clear()
        for zone, changes in pending.items():
            log.info("Publishing %d record name(s) in zone %s", len(changes), zone)
            self.apply_changes(zone, changes, {})

    def finalize(self) -> None:
        with self._buffer_lock:
            pending = {zone: dict(changes) for zone, changes in self._deletions.items()}
            self._deletions.clear()
        for zone, changes in pending.items():
            log.info("Removing %d record name(s) from zone %s", len(changes), zone)
            self.apply_changes(zone, {}, changes)
