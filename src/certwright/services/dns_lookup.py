"""DNS lookups used by DNS validation backends and pre-validation.

All queries go through dnspython.  Authoritative nameservers of a
record's zone are located with :func:`dns.resolver.zone_for_name` and
an NS/A/AAAA walk, so pre-validation sees records as soon as the
authoritative servers publish them, independent of resolver caches.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

import dns.exception
import dns.resolver

if TYPE_CHECKING:
    from certwright.config.settings import ValidationSettings

log = logging.getLogger(__name__)

_MAX_CNAME_DEPTH = 10
_DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True)
class DnsAuthority:
    """Where a challenge record must be created.

    Attributes
    ----------
    domain:
        Record name to create (after CNAME substitution).
    zone:
        Zone owning ``domain``, when it could be determined.
    nameservers:
        IP addresses of the zone's authoritative servers.
    source:
        The authority before CNAME substitution, if one was followed.

    """

    domain: str
    zone: str | None = None
    nameservers: tuple[str, ...] = ()
    source: DnsAuthority | None = None


class DnsLookupService:
    """Resolve authorities and TXT records.

    Parameters
    ----------
    settings:
        Validation settings; ``dns_servers`` replaces the system
        resolver configuration when non-empty.
    timeout:
        Lifetime of a single query in seconds.

    """

    def __init__(
        self,
        settings: ValidationSettings | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self._servers = tuple(settings.dns_servers) if settings else ()
        self._timeout = timeout

    def _resolver(self, nameservers: tuple[str, ...] | list[str] = ()) -> dns.resolver.Resolver:
        servers = tuple(nameservers) or self._servers
        resolver = dns.resolver.Resolver(configure=not servers)
        if servers:
            resolver.nameservers = list(servers)
        resolver.lifetime = self._timeout
        return resolver

    # -- authority ----------------------------------------------------------

    def get_authority(self, name: str, *, follow_cnames: bool = True) -> DnsAuthority:
        """Return where the record *name* must be published.

        When *follow_cnames* is true and *name* is a CNAME (for example
        ``_acme-challenge`` delegated to another zone), the target is
        returned with the original authority in ``source``.
        """
        name = name.rstrip(".")
        original = self._authority_for(name)
        if not follow_cnames:
            return original

        current = original
        seen = {name.lower()}
        for _ in range(_MAX_CNAME_DEPTH):
            target = self._cname_target(current.domain)
            if target is None or target.lower() in seen:
                break
            seen.add(target.lower())
            log.debug("Following CNAME %s -> %s", current.domain, target)
            current = replace(self._authority_for(target), source=original)
        return current

    def _cname_target(self, name: str) -> str | None:
        try:
            answer = self._resolver().resolve(name, "CNAME")
        except dns.exception.DNSException:
            return None
        for rdata in answer:
            return rdata.target.to_text().rstrip(".")
        return None

    def _authority_for(self, name: str) -> DnsAuthority:
        try:
            zone = dns.resolver.zone_for_name(name, resolver=self._resolver())
        except dns.exception.DNSException as exc:
            log.warning("Unable to determine zone for %s: %s", name, exc)
            return DnsAuthority(domain=name)
        zone_text = zone.to_text().rstrip(".")
        return DnsAuthority(
            domain=name,
            zone=zone_text,
            nameservers=tuple(self._nameserver_ips(zone_text)),
        )

    def _nameserver_ips(self, zone: str) -> list[str]:
        resolver = self._resolver()
        ips: list[str] = []
        try:
            ns_answer = resolver.resolve(zone, "NS")
        except dns.exception.DNSException as exc:
            log.warning("NS lookup for %s failed: %s", zone, exc)
            return ips
        for rdata in ns_answer:
            ns_name = rdata.target.to_text()
            for rdtype in ("A", "AAAA"):
                try:
                    for addr in resolver.resolve(ns_name, rdtype):
                        ips.append(addr.address)
                except dns.exception.DNSException:
                    pass
        return ips

    # -- TXT ----------------------------------------------------------------

    def get_txt_records(self, name: str, nameservers: tuple[str, ...] | list[str] = ()) -> list[str]:
        """Return the TXT values at *name*, empty when none exist."""
        try:
            answer = self._resolver(nameservers).resolve(name, "TXT")
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return []
        except dns.exception.DNSException as exc:
            log.debug("TXT lookup for %s failed: %s", name, exc)
            return []
        # TXT rdata has .strings, a tuple of bytes segments; concatenate them.
        return [b"".join(rdata.strings).decode("ascii", errors="replace") for rdata in answer]

    def has_txt_record(
        self,
        authority: DnsAuthority,
        expected: str,
        *,
        include_local: bool = False,
    ) -> bool:
        """Check every authoritative server (and optionally the local resolver).

        Returns ``True`` only when all queried servers return *expected*.
        """
        server_sets: list[tuple[str, ...]] = [(ns,) for ns in authority.nameservers]
        if include_local or not server_sets:
            server_sets.append(())
        for servers in server_sets:
            values = self.get_txt_records(authority.domain, servers)
            if expected not in values:
                log.debug(
                    "Record %s not yet visible at %s (found %d value(s))",
                    authority.domain,
                    servers[0] if servers else "local resolver",
                    len(values),
                )
                return False
        log.info("Pre-validation of %s succeeded", authority.domain)
        return True
