"""DNS-01 validation through RFC 2136 dynamic updates.

Configuration keys:

- ``server``: IP address of the primary nameserver (required)
- ``port``: default 53
- ``zones``: zones this server accepts updates for; when omitted the
  zone of each record is discovered with an SOA lookup
- ``tsig_key_name`` / ``tsig_key_secret`` / ``tsig_algorithm``:
  optional TSIG credentials; the secret is a secret reference
- ``ttl``: TTL of created records (default 60)
- ``timeout``: per-update timeout in seconds (default 30)

Changes are buffered per zone and sent as one UPDATE message per zone
on commit; removals are sent once every record has been cleaned up.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import dns.exception
import dns.query
import dns.rcode
import dns.resolver
import dns.tsigkeyring
import dns.update

from certwright.challenge.base import ChallengeError
from certwright.challenge.dns import ZoneBufferedDnsValidation
from certwright.core.errors import ConfigurationError
from certwright.core.types import Parallelism

if TYPE_CHECKING:
    from collections.abc import Iterable

    from certwright.challenge.base import BackendServices
    from certwright.challenge.dns import ZoneChanges

log = logging.getLogger(__name__)

_DEFAULT_TTL = 60
_DEFAULT_TIMEOUT = 30.0


class Rfc2136Validation(ZoneBufferedDnsValidation):
    key = "rfc2136"
    parallelism = Parallelism.ANSWER | Parallelism.PREPARE

    def __init__(self, options: dict[str, Any], services: BackendServices) -> None:
        super().__init__(options, services)
        self._server = options.get("server")
        if not self._server:
            msg = "rfc2136 validation requires 'server'"
            raise ConfigurationError(msg)
        self._port = int(options.get("port", 53))
        self._ttl = int(options.get("ttl", _DEFAULT_TTL))
        self._timeout = float(options.get("timeout", _DEFAULT_TIMEOUT))
        self._configured_zones = [z.rstrip(".") for z in options.get("zones", [])]
        self._keyring = None
        self._keyname = None
        self._algorithm = options.get("tsig_algorithm", "hmac-sha256")
        key_name = options.get("tsig_key_name")
        if key_name:
            secret = services.secrets.evaluate_secret(options.get("tsig_key_secret"))
            if not secret:
                msg = "rfc2136 validation: TSIG key secret could not be resolved"
                raise ConfigurationError(msg)
            self._keyring = dns.tsigkeyring.from_text({key_name: secret})
            self._keyname = key_name

    def list_zones(self) -> Iterable[str]:
        return self._configured_zones

    def zone_for(self, record_name: str) -> str:
        if self._configured_zones:
            return super().zone_for(record_name)
        return self._discover_zone(record_name)

    def _discover_zone(self, record_name: str) -> str:
        try:
            zone = dns.resolver.zone_for_name(record_name).to_text().rstrip(".")
        except dns.exception.DNSException as exc:
            msg = f"Unable to find zone for {record_name}: {exc}"
            raise ChallengeError(msg) from exc
        return zone

    def apply_changes(self, zone: str, additions: ZoneChanges, deletions: ZoneChanges) -> None:
        update = dns.update.UpdateMessage(
            zone,
            keyring=self._keyring,
            keyname=self._keyname,
            keyalgorithm=self._algorithm,
        )
        for name, values in additions.items():
            for value in sorted(values):
                update.add(name, self._ttl, "TXT", f'"{value}"')
        for name, values in deletions.items():
            for value in sorted(values):
                update.delete(name, "TXT", f'"{value}"')

        try:
            response = dns.query.tcp(update, self._server, timeout=self._timeout, port=self._port)
        except (dns.exception.DNSException, OSError) as exc:
            msg = f"Dynamic update of zone {zone} via {self._server} failed: {exc}"
            raise ChallengeError(msg, retryable=True) from exc
        rcode = response.rcode()
        if rcode != dns.rcode.NOERROR:
            msg = f"Dynamic update of zone {zone} rejected: {dns.rcode.to_text(rcode)}"
            raise ChallengeError(msg)
        log.debug("Zone %s updated via %s", zone, self._server)
