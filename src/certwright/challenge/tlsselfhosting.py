"""TLS-ALPN-01 validation served by a temporary built-in TLS listener.

Configuration keys:

- ``port``: TCP port to listen on (default 443)
- ``bind``: address to bind (default all interfaces)

For every identifier a self-signed certificate is generated carrying
the identifier as its only SAN and the critical ``acmeIdentifier``
extension (OID 1.3.6.1.5.5.7.1.31) holding the SHA-256 digest of the
key authorization.  The listener negotiates ALPN ``acme-tls/1`` and
picks the certificate from the SNI name of each handshake.  IP
identifiers are looked up by their reverse DNS name.

The listener runs in a daemon thread started on commit and stopped
when the last challenge is cleaned up.
"""

from __future__ import annotations

import hashlib
import ipaddress
import logging
import socketserver
import ssl
import tempfile
import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID, ObjectIdentifier

from certwright.challenge.base import ChallengeError, ValidationBackend
from certwright.challenge.selfhosting import port_probe
from certwright.core.state import State
from certwright.core.types import ChallengeType, IdentifierType, Parallelism
from certwright.models.protocol import TlsAlpn01ChallengeDetails

if TYPE_CHECKING:
    from certwright.challenge.base import BackendServices, ValidationContext
    from certwright.models.target import Target

log = logging.getLogger(__name__)

ACME_IDENTIFIER_OID = ObjectIdentifier("1.3.6.1.5.5.7.1.31")
ACME_TLS_ALPN = "acme-tls/1"

_DEFAULT_PORT = 443
_DEFAULT_BIND = "0.0.0.0"  # noqa: S104
_HANDSHAKE_TIMEOUT = 10.0
_CERT_LIFETIME = timedelta(days=7)


def sni_name(host: str) -> str:
    """Server name a validation server sends when checking *host*."""
    try:
        return ipaddress.ip_address(host).reverse_pointer
    except ValueError:
        return host.lower()


def build_challenge_certificate(
    host: str,
    key_authorization: str,
) -> tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    """Return a self-signed TLS-ALPN-01 certificate and its key for *host*.

    Parameters
    ----------
    host:
        DNS name or IP address being validated.
    key_authorization:
        Key authorization of the challenge.

    Returns
    -------
    tuple
        The certificate and the P-256 private key it was signed with.

    """
    key = ec.generate_private_key(ec.SECP256R1())
    try:
        san: x509.GeneralName = x509.IPAddress(ipaddress.ip_address(host))
    except ValueError:
        san = x509.DNSName(host)
    digest = hashlib.sha256(key_authorization.encode("ascii")).digest()
    # DER OCTET STRING wrapping the 32 byte digest
    extension_value = b"\x04" + bytes([len(digest)]) + digest
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "certwright tls-alpn-01")])
    now = datetime.now(UTC)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(hours=1))
        .not_valid_after(now + _CERT_LIFETIME)
        .add_extension(x509.SubjectAlternativeName([san]), critical=False)
        .add_extension(x509.UnrecognizedExtension(ACME_IDENTIFIER_OID, extension_value), critical=True)
        .sign(key, hashes.SHA256())
    )
    return certificate, key


def _server_context() -> ssl.SSLContext:
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.set_alpn_protocols([ACME_TLS_ALPN])
    return context


def challenge_ssl_context(certificate: x509.Certificate, key: ec.EllipticCurvePrivateKey) -> ssl.SSLContext:
    """Build the server context presenting *certificate*."""
    context = _server_context()
    with tempfile.TemporaryDirectory(prefix="certwright-tls-alpn-") as directory:
        cert_path = Path(directory) / "cert.pem"
        key_path = Path(directory) / "key.pem"
        cert_path.write_bytes(certificate.public_bytes(serialization.Encoding.PEM))
        key_path.write_bytes(
            key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            ),
        )
        context.load_cert_chain(cert_path, key_path)
    return context


class _HandshakeHandler(socketserver.BaseRequestHandler):
    server: _ChallengeServer

    def handle(self) -> None:
        self.request.settimeout(_HANDSHAKE_TIMEOUT)
        try:
            with self.server.ssl_context.wrap_socket(self.request, server_side=True) as tls:
                log.info(
                    "Served TLS-ALPN-01 certificate to %s (ALPN %s)",
                    self.client_address[0],
                    tls.selected_alpn_protocol(),
                )
        except (ssl.SSLError, OSError) as exc:
            log.debug("TLS-ALPN-01 handshake from %s failed: %s", self.client_address[0], exc)


class _ChallengeServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True

    def __init__(self, address: tuple[str, int], ssl_context: ssl.SSLContext) -> None:
        self.ssl_context = ssl_context
        super().__init__(address, _HandshakeHandler)


class TlsSelfHostingValidation(ValidationBackend):
    key = "tls-selfhosting"
    challenge_type = ChallengeType.TLS_ALPN_01
    parallelism = Parallelism.ANSWER | Parallelism.PREPARE
    supported_identifier_types = frozenset({IdentifierType.DNS_NAME, IdentifierType.IP_ADDRESS})

    def __init__(self, options: dict[str, Any], services: BackendServices) -> None:
        super().__init__(options, services)
        self._port = int(options.get("port", _DEFAULT_PORT))
        self._bind = options.get("bind", _DEFAULT_BIND)
        self._contexts: dict[str, ssl.SSLContext] = {}
        self.certificates: dict[str, x509.Certificate] = {}
        self._lock = threading.Lock()
        self._server: _ChallengeServer | None = None
        self._thread: threading.Thread | None = None
        self.ssl_context = _server_context()
        self.ssl_context.sni_callback = self._select_certificate

    def capability(self, target: Target) -> State:
        state = super().capability(target)
        if state.disabled:
            return state
        if any(i.value.startswith("*.") for i in target.get_identifiers(unicode=False)):
            return State.disabled_state("TLS-ALPN validation cannot be used for wildcard identifiers")
        return port_probe(self._bind, self._port)()

    def _select_certificate(self, sock: ssl.SSLObject, server_name: str | None, _: ssl.SSLContext) -> int | None:
        if server_name is None:
            log.warning("TLS-ALPN-01 handshake without a server name")
            return ssl.ALERT_DESCRIPTION_UNRECOGNIZED_NAME
        with self._lock:
            context = self._contexts.get(server_name.lower())
        if context is None:
            log.warning("No TLS-ALPN-01 certificate for %s", server_name)
            return ssl.ALERT_DESCRIPTION_UNRECOGNIZED_NAME
        sock.context = context
        return None

    def prepare_challenge(self, context: ValidationContext) -> None:
        details = context.details
        if not isinstance(details, TlsAlpn01ChallengeDetails):
            msg = f"{context.label} has no TLS-ALPN-01 challenge details"
            raise ChallengeError(msg)
        certificate, key = build_challenge_certificate(details.host, details.key_authorization)
        name = sni_name(details.host)
        ssl_context = challenge_ssl_context(certificate, key)
        with self._lock:
            self._contexts[name] = ssl_context
            self.certificates[name] = certificate
        context.data["sni_name"] = name

    def commit(self) -> None:
        with self._lock:
            if self._server is not None:
                return
            try:
                self._server = _ChallengeServer((self._bind, self._port), self.ssl_context)
            except OSError as exc:
                msg = f"Unable to listen on {self._bind}:{self._port}: {exc}"
                raise ChallengeError(msg) from exc
            self._thread = threading.Thread(
                target=self._server.serve_forever,
                name="certwright-tlsselfhosting",
                daemon=True,
            )
            self._thread.start()
        log.info("Listening for TLS-ALPN-01 challenges on %s:%d", self._bind, self._port)

    @property
    def address(self) -> tuple[str, int] | None:
        """Address the listener is bound to, ``None`` when stopped."""
        with self._lock:
            return None if self._server is None else self._server.server_address[:2]

    def cleanup(self, context: ValidationContext) -> None:
        name = context.data.get("sni_name")
        with self._lock:
            if name is not None:
                self._contexts.pop(name, None)
                self.certificates.pop(name, None)
            idle = not self._contexts
        if idle:
            self.close()

    def close(self) -> None:
        with self._lock:
            server, thread = self._server, self._thread
            self._server = self._thread = None
        if server is None:
            return
        server.shutdown()
        server.server_close()
        if thread is not None:
            thread.join(timeout=5)
        log.info("Stopped TLS-ALPN-01 listener on %s:%d", self._bind, self._port)
