"""Fakes shared by dispatcher and executor tests."""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest

from certwright.challenge.base import ChallengeError, ValidationBackend
from certwright.core.types import (
    AuthorizationStatus,
    ChallengeStatus,
    ChallengeType,
    OrderStatus,
    Parallelism,
)
from certwright.models.protocol import (
    AuthorizationDetails,
    ChallengeOffer,
    ProtocolIdentifier,
    ProtocolOrderDetails,
)
from certwright.protocol.base import AcmeClient
from certwright.services.dns_lookup import DnsAuthority
from certwright.storage.cache import parse_certificate_chain


class FakeAcmeClient(AcmeClient):
    """In-memory protocol collaborator.

    Every identifier gets one authorization offering DNS-01 and HTTP-01.
    Names listed in ``invalid`` fail validation at the server.
    """

    def __init__(self, certificate_pem=None):
        self.certificate_pem = certificate_pem
        self.authorizations: dict[str, AuthorizationDetails] = {}
        self.invalid: set[str] = set()
        self.answered: list[str] = []
        self.deactivated: list[str] = []
        self.finalized: list[bytes] = []
        self.submitted: list[list[ProtocolIdentifier]] = []
        self.renewal_info = None
        self.order_status = OrderStatus.PENDING
        self._lock = threading.Lock()

    def add_authorization(self, name, status=AuthorizationStatus.PENDING, types=("dns-01", "http-01")):
        url = f"https://ca.test/authz/{name}"
        self.authorizations[url] = AuthorizationDetails(
            url=url,
            identifier=ProtocolIdentifier("dns", name.removeprefix("*.")),
            status=status,
            wildcard=name.startswith("*."),
            challenges=[ChallengeOffer(t, f"https://ca.test/chall/{name}/{t}", f"tok-{name}") for t in types],
        )
        return url

    def order_for(self, *names, status=OrderStatus.PENDING):
        urls = [self.add_authorization(n) for n in names]
        return ProtocolOrderDetails(url="https://ca.test/order/1", status=status, authorizations=urls)

    # -- AcmeClient ---------------------------------------------------------

    def submit_order(self, identifiers):
        self.submitted.append(list(identifiers))
        urls = []
        for ident in identifiers:
            url = f"https://ca.test/authz/{ident.value}"
            if url not in self.authorizations:
                self.add_authorization(ident.value)
            urls.append(url)
        return ProtocolOrderDetails(
            url="https://ca.test/order/1",
            status=self.order_status,
            identifiers=list(identifiers),
            authorizations=urls,
            finalize_url="https://ca.test/order/1/finalize",
        )

    def refresh_order(self, details):
        with self._lock:
            ready = all(
                self.authorizations[url].status == AuthorizationStatus.VALID for url in details.authorizations
            )
        return replace(details, status=OrderStatus.READY if ready else OrderStatus.PENDING)

    def get_authorization(self, url):
        return replace(self.authorizations[url], challenges=list(self.authorizations[url].challenges))

    def key_authorization(self, token):
        return f"{token}.thumbprint"

    def answer_challenge(self, challenge):
        name = challenge.url.split("/")[-2]
        with self._lock:
            self.answered.append(name)
            failed = name in self.invalid
            for authz in self.authorizations.values():
                if challenge in authz.challenges:
                    authz.status = AuthorizationStatus.INVALID if failed else AuthorizationStatus.VALID
        if failed:
            return replace(challenge, status=ChallengeStatus.INVALID, error={"detail": "record not found"})
        return replace(challenge, status=ChallengeStatus.VALID)

    def deactivate_authorization(self, url):
        with self._lock:
            self.deactivated.append(url)

    def finalize_order(self, details, csr_der):
        self.finalized.append(csr_der)
        return parse_certificate_chain(self.certificate_pem)

    def get_renewal_info(self, certificate_pem):
        return self.renewal_info


class RecordingBackend(ValidationBackend):
    """Backend that records every lifecycle call.

    ``fail_prepare`` holds identifier values whose prepare raises;
    ``publish`` makes the backend report a TXT record for pre-validation.
    """

    key = "recording"
    challenge_type = ChallengeType.DNS_01

    def __init__(self, options, services, parallelism=Parallelism.NONE):
        super().__init__(options, services)
        self.parallelism = parallelism
        self.events: list[tuple[str, str]] = []
        self.fail_prepare: set[str] = set()
        self.fail_cleanup = False
        self.fail_commit = False
        self.publish = False
        self.closed = 0
        self._lock = threading.Lock()

    def _event(self, name, value=""):
        with self._lock:
            self.events.append((name, value))

    def events_of(self, name):
        return [value for event, value in self.events if event == name]

    def prepare_challenge(self, context):
        self._event("prepare", context.identifier.value)
        if context.identifier.value in self.fail_prepare:
            msg = "provider rejected record"
            raise ChallengeError(msg)

    def commit(self):
        self._event("commit")
        if self.fail_commit:
            msg = "provider unavailable"
            raise ChallengeError(msg)

    def prevalidation_records(self, context):
        if not self.publish:
            return []
        return [(DnsAuthority(domain=context.details.record_name), context.details.record_value)]

    def cleanup(self, context):
        self._event("cleanup", context.identifier.value)
        if self.fail_cleanup:
            msg = "cleanup exploded"
            raise RuntimeError(msg)

    def close(self):
        self.closed += 1


def make_registry(backend, input_service=None):
    """Registry stand-in handing out *backend* for every create call."""
    return SimpleNamespace(
        services=SimpleNamespace(input=input_service),
        create=lambda options: backend,
    )


@pytest.fixture()
def certificate_pem(make_certificate_pem):
    return make_certificate_pem(("www.example.com",), not_after=datetime.now(UTC) + timedelta(days=90))


@pytest.fixture()
def acme(certificate_pem):
    return FakeAcmeClient(certificate_pem)


@pytest.fixture()
def backend_factory(settings):
    """Build a :class:`RecordingBackend` with the given parallelism."""

    def _make(parallelism=Parallelism.NONE):
        services = SimpleNamespace(settings=settings.validation, input=None)
        return RecordingBackend({}, services, parallelism)

    return _make


@pytest.fixture()
def registry_for():
    return make_registry
