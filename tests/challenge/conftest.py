"""Shared fixtures for validation backend tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from certwright.challenge.base import BackendServices, ValidationContext
from certwright.core.types import AuthorizationStatus
from certwright.models import DnsIdentifier, Order, OrderResult, Renewal, Target, TargetPart, ValidationOptions
from certwright.models.protocol import AuthorizationDetails, ProtocolIdentifier
from certwright.services.domain_parse import DomainParseService
from certwright.services.secrets import SecretService


@pytest.fixture()
def services(settings):
    return BackendServices(
        settings=settings.validation,
        secrets=SecretService(),
        domain_parser=DomainParseService(),
    )


@pytest.fixture()
def make_context():
    """Factory building a :class:`ValidationContext` for one DNS name."""

    def _make(name="www.example.com", details=None, result=None):
        identifier = DnsIdentifier(name)
        target = Target(friendly_name=None, common_name=None, parts=[TargetPart([identifier])])
        renewal = Renewal(target=target, validation=ValidationOptions("test"))
        return ValidationContext(
            order=Order(renewal=renewal, target=target),
            result=result or OrderResult("main"),
            authorization=AuthorizationDetails(
                url=f"https://ca.test/authz/{name}",
                identifier=ProtocolIdentifier("dns", name),
                status=AuthorizationStatus.PENDING,
            ),
            identifier=identifier,
            details=details,
        )

    return _make


@pytest.fixture()
def input_service():
    svc = MagicMock()
    svc.wait.return_value = True
    return svc
