"""Tests for the concrete validation backends."""

from __future__ import annotations

import hashlib
import socket
import ssl
import subprocess
import threading
from dataclasses import replace
from unittest.mock import MagicMock, patch

import dns.rcode
import pytest
from cryptography import x509

from certwright.challenge.base import ChallengeError
from certwright.challenge.filesystem import FileSystemValidation
from certwright.challenge.manual import ManualDnsValidation
from certwright.challenge.null import NullValidation
from certwright.challenge.rfc2136 import Rfc2136Validation
from certwright.challenge.script import ScriptDnsValidation
from certwright.challenge.selfhosting import SelfHostingValidation, create_challenge_app
from certwright.challenge.tlsselfhosting import (
    ACME_IDENTIFIER_OID,
    ACME_TLS_ALPN,
    TlsSelfHostingValidation,
    build_challenge_certificate,
    challenge_ssl_context,
    sni_name,
)
from certwright.core.errors import ConfigurationError
from certwright.core.types import Parallelism
from certwright.models import DnsIdentifier, IpIdentifier, Target, TargetPart
from certwright.models.protocol import (
    ChallengeOffer,
    Dns01ChallengeDetails,
    Http01ChallengeDetails,
    TlsAlpn01ChallengeDetails,
)


def _http(token="tok123", value="tok123.thumb", host="www.example.com"):
    return Http01ChallengeDetails(
        resource_path=f".well-known/acme-challenge/{token}",
        resource_value=value,
        host=host,
    )


def _dns(name="www.example.com", value="txt-value"):
    return Dns01ChallengeDetails(record_name=f"_acme-challenge.{name}", record_value=value)


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------


class TestFileSystemValidation:
    def test_requires_path(self, services):
        with pytest.raises(ConfigurationError, match="requires 'path'"):
            FileSystemValidation({}, services)

    def test_writes_and_removes_file(self, tmp_path, services, make_context):
        backend = FileSystemValidation({"path": str(tmp_path)}, services)
        ctx = make_context(details=_http())
        backend.prepare_challenge(ctx)

        resource = tmp_path / ".well-known" / "acme-challenge" / "tok123"
        assert resource.read_text(encoding="utf-8") == "tok123.thumb"

        backend.cleanup(ctx)
        assert not resource.exists()
        assert (tmp_path / ".well-known" / "acme-challenge").is_dir()

    def test_cleanup_folders(self, tmp_path, services, make_context):
        settings = replace(services.settings, cleanup_folders=True)
        backend = FileSystemValidation({"path": str(tmp_path)}, replace(services, settings=settings))
        ctx = make_context(details=_http())
        backend.prepare_challenge(ctx)
        backend.cleanup(ctx)
        assert not (tmp_path / ".well-known").exists()

    def test_existing_folders_kept(self, tmp_path, services, make_context):
        (tmp_path / ".well-known").mkdir()
        settings = replace(services.settings, cleanup_folders=True)
        backend = FileSystemValidation({"path": str(tmp_path)}, replace(services, settings=settings))
        ctx = make_context(details=_http())
        backend.prepare_challenge(ctx)
        backend.cleanup(ctx)
        assert (tmp_path / ".well-known").is_dir()
        assert not (tmp_path / ".well-known" / "acme-challenge").exists()

    def test_missing_webroot(self, tmp_path, services, make_context):
        backend = FileSystemValidation({"path": str(tmp_path / "missing")}, services)
        with pytest.raises(ChallengeError, match="does not exist"):
            backend.prepare_challenge(make_context(details=_http()))

    def test_unsafe_path_refused(self, tmp_path, services, make_context):
        backend = FileSystemValidation({"path": str(tmp_path)}, services)
        details = Http01ChallengeDetails("../../etc/passwd", "x", "www.example.com")
        with pytest.raises(ChallengeError, match="unsafe"):
            backend.prepare_challenge(make_context(details=details))

    def test_cleanup_without_prepare(self, tmp_path, services, make_context):
        backend = FileSystemValidation({"path": str(tmp_path)}, services)
        backend.cleanup(make_context())

    def test_wildcard_not_supported(self, tmp_path, services):
        backend = FileSystemValidation({"path": str(tmp_path)}, services)
        target = Target(friendly_name=None, common_name=None, parts=[TargetPart([DnsIdentifier("*.a.com")])])
        assert backend.capability(target).disabled

    def test_ip_supported(self, tmp_path, services):
        backend = FileSystemValidation({"path": str(tmp_path)}, services)
        target = Target(friendly_name=None, common_name=None, parts=[TargetPart([IpIdentifier("10.0.0.1")])])
        assert backend.capability(target).enabled


# ---------------------------------------------------------------------------
# Script
# ---------------------------------------------------------------------------


class TestScriptDnsValidation:
    def test_requires_create_script(self, services):
        with pytest.raises(ConfigurationError):
            ScriptDnsValidation({}, services)

    def test_parallelism_from_options(self, services):
        backend = ScriptDnsValidation({"create_script": "/bin/true", "parallelism": 3}, services)
        assert backend.parallelism == Parallelism.ANSWER | Parallelism.PREPARE

    def test_invalid_parallelism(self, services):
        with pytest.raises(ConfigurationError, match="parallelism"):
            ScriptDnsValidation({"create_script": "/bin/true", "parallelism": 99}, services)

    def test_runs_create_and_delete(self, services, make_context):
        backend = ScriptDnsValidation(
            {"create_script": "/opt/dns.sh", "delete_script": "/opt/del.sh"},
            services,
        )
        ctx = make_context(details=_dns())
        with patch("certwright.challenge.script.subprocess.run") as run:
            run.return_value = MagicMock(stdout="")
            backend.prepare_challenge(ctx)
            backend.cleanup(ctx)

        create_args = run.call_args_list[0].args[0]
        delete_args = run.call_args_list[1].args[0]
        assert create_args == ["/opt/dns.sh", "create", "www.example.com", "_acme-challenge.www.example.com", "txt-value"]
        assert delete_args[0:2] == ["/opt/del.sh", "delete"]

    def test_zone_and_node_placeholders(self, services, make_context):
        backend = ScriptDnsValidation(
            {"create_script": "/opt/dns.sh", "create_arguments": "{ZoneName} {NodeName}"},
            services,
        )
        with patch("certwright.challenge.script.subprocess.run") as run:
            run.return_value = MagicMock(stdout="")
            backend.prepare_challenge(make_context(details=_dns()))
        assert run.call_args.args[0] == ["/opt/dns.sh", "example.com", "_acme-challenge.www"]

    def test_secret_censored_in_log(self, services, make_context, monkeypatch, caplog):
        monkeypatch.setenv("DNS_TOKEN", "hunter2")
        backend = ScriptDnsValidation(
            {"create_script": "/opt/dns.sh", "create_arguments": "{RecordName} {env://DNS_TOKEN}"},
            services,
        )
        with patch("certwright.challenge.script.subprocess.run") as run, caplog.at_level("INFO"):
            run.return_value = MagicMock(stdout="")
            backend.prepare_challenge(make_context(details=_dns()))
        assert run.call_args.args[0][-1] == "hunter2"
        assert "hunter2" not in caplog.text

    def test_failure_raises_challenge_error(self, services, make_context):
        backend = ScriptDnsValidation({"create_script": "/opt/dns.sh"}, services)
        with patch(
            "certwright.challenge.script.subprocess.run",
            side_effect=subprocess.CalledProcessError(2, "/opt/dns.sh"),
        ), pytest.raises(ChallengeError, match="exited with code 2"):
            backend.prepare_challenge(make_context(details=_dns()))

    def test_timeout_is_retryable(self, services, make_context):
        backend = ScriptDnsValidation({"create_script": "/opt/dns.sh"}, services)
        with patch(
            "certwright.challenge.script.subprocess.run",
            side_effect=subprocess.TimeoutExpired("/opt/dns.sh", 600),
        ), pytest.raises(ChallengeError) as exc_info:
            backend.prepare_challenge(make_context(details=_dns()))
        assert exc_info.value.retryable


# ---------------------------------------------------------------------------
# RFC 2136
# ---------------------------------------------------------------------------


class TestRfc2136Validation:
    def test_requires_server(self, services):
        with pytest.raises(ConfigurationError):
            Rfc2136Validation({}, services)

    def test_unresolvable_tsig_secret(self, services):
        with pytest.raises(ConfigurationError, match="TSIG"):
            Rfc2136Validation(
                {"server": "192.0.2.53", "tsig_key_name": "k", "tsig_key_secret": "env://MISSING_TSIG"},
                services,
            )

    def test_commit_sends_one_update_per_zone(self, services, make_context):
        backend = Rfc2136Validation({"server": "192.0.2.53", "zones": ["example.com"]}, services)
        backend.prepare_challenge(make_context("www.example.com", _dns("www.example.com", "v1")))
        backend.prepare_challenge(make_context("api.example.com", _dns("api.example.com", "v2")))

        response = MagicMock()
        response.rcode.return_value = dns.rcode.NOERROR
        with patch("certwright.challenge.rfc2136.dns.query.tcp", return_value=response) as tcp:
            backend.commit()

        tcp.assert_called_once()
        update = tcp.call_args.args[0]
        assert tcp.call_args.args[1] == "192.0.2.53"
        text = update.to_text()
        assert "_acme-challenge.www" in text
        assert '"v1"' in text
        assert '"v2"' in text

    def test_rejected_update(self, services, make_context):
        backend = Rfc2136Validation({"server": "192.0.2.53", "zones": ["example.com"]}, services)
        backend.prepare_challenge(make_context(details=_dns()))
        response = MagicMock()
        response.rcode.return_value = dns.rcode.REFUSED
        with patch("certwright.challenge.rfc2136.dns.query.tcp", return_value=response), pytest.raises(
            ChallengeError,
            match="REFUSED",
        ):
            backend.commit()

    def test_network_error_is_retryable(self, services, make_context):
        backend = Rfc2136Validation({"server": "192.0.2.53", "zones": ["example.com"]}, services)
        backend.prepare_challenge(make_context(details=_dns()))
        with patch("certwright.challenge.rfc2136.dns.query.tcp", side_effect=OSError("refused")), pytest.raises(
            ChallengeError,
        ) as exc_info:
            backend.commit()
        assert exc_info.value.retryable


# ---------------------------------------------------------------------------
# Self-hosting
# ---------------------------------------------------------------------------


class TestSelfHosting:
    def test_app_serves_known_token(self):
        app = create_challenge_app({"abc": "abc.thumb"}, threading.Lock())
        client = app.test_client()
        resp = client.get("/.well-known/acme-challenge/abc")
        assert resp.status_code == 200
        assert resp.get_data(as_text=True) == "abc.thumb"
        assert resp.headers["Content-Type"].startswith("text/plain")

    def test_app_unknown_token(self):
        client = create_challenge_app({}, threading.Lock()).test_client()
        assert client.get("/.well-known/acme-challenge/nope").status_code == 404

    def test_prepare_and_cleanup_update_table(self, services, make_context):
        backend = SelfHostingValidation({"port": 18080, "bind": "127.0.0.1"}, services)
        ctx = make_context(details=_http("t1", "t1.thumb"))
        backend.prepare_challenge(ctx)

        client = backend.app.test_client()
        assert client.get("/.well-known/acme-challenge/t1").get_data(as_text=True) == "t1.thumb"

        backend.cleanup(ctx)
        assert client.get("/.well-known/acme-challenge/t1").status_code == 404

    def test_commit_starts_and_cleanup_stops_server(self, services, make_context):
        backend = SelfHostingValidation({"port": 0, "bind": "127.0.0.1"}, services)
        ctx = make_context(details=_http())
        backend.prepare_challenge(ctx)
        with patch("certwright.challenge.selfhosting.make_server") as make_server:
            server = make_server.return_value
            backend.commit()
            backend.commit()
            make_server.assert_called_once()
            backend.cleanup(ctx)
        server.shutdown.assert_called_once()
        server.server_close.assert_called_once()


# ---------------------------------------------------------------------------
# TLS-ALPN self-hosting
# ---------------------------------------------------------------------------


def _tls(host="www.example.com", key_authorization="tok123.thumb"):
    return TlsAlpn01ChallengeDetails(host=host, key_authorization=key_authorization)


class TestTlsSelfHosting:
    def test_certificate_carries_acme_identifier(self):
        certificate, key = build_challenge_certificate("www.example.com", "tok123.thumb")

        extension = certificate.extensions.get_extension_for_oid(ACME_IDENTIFIER_OID)
        digest = hashlib.sha256(b"tok123.thumb").digest()
        assert extension.critical is True
        assert extension.value.value == b"\x04\x20" + digest
        san = certificate.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        assert san.get_values_for_type(x509.DNSName) == ["www.example.com"]
        assert certificate.public_key().public_numbers() == key.public_key().public_numbers()

    def test_ip_identifier(self):
        certificate, _ = build_challenge_certificate("192.0.2.1", "k.a")
        san = certificate.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        assert [str(ip) for ip in san.get_values_for_type(x509.IPAddress)] == ["192.0.2.1"]
        assert sni_name("192.0.2.1") == "1.2.0.192.in-addr.arpa"

    def test_contexts_negotiate_acme_alpn(self):
        certificate, key = build_challenge_certificate("www.example.com", "k.a")
        with patch("certwright.challenge.tlsselfhosting.ssl.SSLContext") as context_class:
            challenge_ssl_context(certificate, key)
        context_class.return_value.set_alpn_protocols.assert_called_once_with([ACME_TLS_ALPN])
        context_class.return_value.load_cert_chain.assert_called_once()

    def test_rejects_other_details(self, services, make_context):
        backend = TlsSelfHostingValidation({"port": 0, "bind": "127.0.0.1"}, services)
        with pytest.raises(ChallengeError, match="no TLS-ALPN-01 challenge details"):
            backend.prepare_challenge(make_context(details=_http()))

    def test_wildcard_disabled(self, services):
        backend = TlsSelfHostingValidation({"port": 0, "bind": "127.0.0.1"}, services)
        target = Target(friendly_name=None, common_name=None, parts=[TargetPart([DnsIdentifier("*.example.com")])])
        assert backend.capability(target).disabled

    def test_handshake_presents_challenge_certificate(self, services, make_context):
        backend = TlsSelfHostingValidation({"port": 0, "bind": "127.0.0.1"}, services)
        ctx = make_context(details=_tls())
        backend.prepare_challenge(ctx)
        backend.commit()
        try:
            client = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
            client.check_hostname = False
            client.verify_mode = ssl.CERT_NONE
            client.set_alpn_protocols([ACME_TLS_ALPN])
            with (
                socket.create_connection(backend.address, timeout=5) as sock,
                client.wrap_socket(sock, server_hostname="www.example.com") as tls,
            ):
                assert tls.selected_alpn_protocol() == ACME_TLS_ALPN
                presented = x509.load_der_x509_certificate(tls.getpeercert(binary_form=True))
            assert presented == backend.certificates["www.example.com"]
        finally:
            backend.cleanup(ctx)
        assert backend.certificates == {}
        assert backend.address is None

    def test_commit_starts_and_cleanup_stops_server(self, services, make_context):
        backend = TlsSelfHostingValidation({"port": 0, "bind": "127.0.0.1"}, services)
        first = make_context("a.example.com", details=_tls("a.example.com"))
        second = make_context("b.example.com", details=_tls("b.example.com"))
        backend.prepare_challenge(first)
        backend.prepare_challenge(second)
        with patch("certwright.challenge.tlsselfhosting._ChallengeServer") as server_class:
            server = server_class.return_value
            backend.commit()
            backend.commit()
            server_class.assert_called_once_with(("127.0.0.1", 0), backend.ssl_context)
            backend.cleanup(first)
            server.shutdown.assert_not_called()
            assert set(backend.certificates) == {"b.example.com"}
            backend.cleanup(second)
        server.shutdown.assert_called_once()
        server.server_close.assert_called_once()

    def test_bind_failure(self, services, make_context):
        backend = TlsSelfHostingValidation({"port": 0, "bind": "127.0.0.1"}, services)
        backend.prepare_challenge(make_context(details=_tls()))
        with (
            patch("certwright.challenge.tlsselfhosting._ChallengeServer", side_effect=OSError("in use")),
            pytest.raises(ChallengeError, match="Unable to listen on 127.0.0.1:0"),
        ):
            backend.commit()


# ---------------------------------------------------------------------------
# Manual / null
# ---------------------------------------------------------------------------


class TestManualDnsValidation:
    def test_requires_input(self, services):
        with pytest.raises(ConfigurationError, match="interactive"):
            ManualDnsValidation({}, services)

    def test_shows_record_and_waits(self, services, make_context, input_service):
        backend = ManualDnsValidation({}, replace(services, input=input_service))
        backend.prepare_challenge(make_context(details=_dns()))
        shown = {call.args[0]: call.args[1] for call in input_service.show.call_args_list}
        assert shown["Record"] == "_acme-challenge.www.example.com"
        assert shown["Content"] == '"txt-value"'
        input_service.wait.assert_called_once()

    def test_cancelled_by_operator(self, services, make_context, input_service):
        input_service.wait.return_value = False
        backend = ManualDnsValidation({}, replace(services, input=input_service))
        with pytest.raises(ChallengeError, match="cancelled"):
            backend.prepare_challenge(make_context(details=_dns()))

    def test_interactive_flag(self):
        assert ManualDnsValidation.interactive


class TestNullValidation:
    def test_never_selects_a_challenge(self, services):
        backend = NullValidation({}, services)
        assert backend.select_challenge([ChallengeOffer("dns-01", "u", "t")]) is None
        assert not backend.answers_challenges

    def test_supports_any_identifier(self, services):
        target = Target(friendly_name=None, common_name=None, parts=[TargetPart([IpIdentifier("10.0.0.1")])])
        assert NullValidation({}, services).capability(target).enabled
