"""Private key and CSR generation.

Builds the certificate signing request submitted when an order is
finalized.  Targets that carry a user-supplied CSR are passed through
after a signature check; every other target gets a fresh (or reused)
key and a CSR naming the common name plus every identifier as a SAN.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

from certwright.core.errors import ConfigurationError
from certwright.core.types import IdentifierType, KeyType
from certwright.models.target import common_name_or_none

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

    from certwright.config.settings import CsrSettings
    from certwright.models.identifier import Identifier
    from certwright.models.target import Target

log = logging.getLogger(__name__)

_CURVES: dict[str, type[ec.EllipticCurve]] = {
    "secp256r1": ec.SECP256R1,
    "secp384r1": ec.SECP384R1,
    "secp521r1": ec.SECP521R1,
}


def _san(identifier: Identifier) -> x509.GeneralName | None:
    if identifier.type == IdentifierType.DNS_NAME:
        return x509.DNSName(identifier.value)
    if identifier.type == IdentifierType.IP_ADDRESS:
        return x509.IPAddress(identifier.address)  # type: ignore[attr-defined]
    if identifier.type == IdentifierType.EMAIL:
        return x509.RFC822Name(identifier.value)
    return None


class CsrService:
    """Generates keys and CSRs according to the ``csr`` settings."""

    def __init__(self, settings: CsrSettings) -> None:
        self.settings = settings

    # -- keys ---------------------------------------------------------------

    def generate_key(self) -> PrivateKeyTypes:
        key_type = KeyType(self.settings.key_type)
        if key_type == KeyType.RSA:
            return rsa.generate_private_key(public_exponent=65537, key_size=self.settings.rsa_key_size)
        curve = _CURVES.get(self.settings.ec_curve)
        if curve is None:
            msg = f"Unsupported EC curve '{self.settings.ec_curve}'. Supported: {sorted(_CURVES)}"
            raise ConfigurationError(msg)
        return ec.generate_private_key(curve())

    @staticmethod
    def key_to_pem(key: PrivateKeyTypes) -> str:
        return key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ).decode("ascii")

    @staticmethod
    def load_key(pem: str) -> PrivateKeyTypes:
        try:
            return serialization.load_pem_private_key(pem.encode("ascii"), password=None)
        except (ValueError, TypeError) as exc:
            msg = f"Unable to load private key: {exc}"
            raise ConfigurationError(msg) from exc

    # -- CSR ----------------------------------------------------------------

    def build_csr(self, target: Target, key: PrivateKeyTypes) -> bytes:
        """Return the DER encoded CSR for *target*, signed with *key*.

        Raises
        ------
        ConfigurationError
            If the target has no identifier that can go in a certificate.

        """
        identifiers = target.get_identifiers(unicode=False)
        names = [san for san in (_san(i) for i in identifiers) if san is not None]
        if not names:
            msg = f"Target {target.display_name} has no identifiers usable in a certificate"
            raise ConfigurationError(msg)

        common_name = common_name_or_none(
            target.common_name.unicode(False) if target.common_name else identifiers[0],
        )
        subject = x509.Name(
            [x509.NameAttribute(NameOID.COMMON_NAME, common_name.value)] if common_name else [],
        )
        builder = (
            x509.CertificateSigningRequestBuilder()
            .subject_name(subject)
            .add_extension(x509.SubjectAlternativeName(names), critical=False)
        )
        csr = builder.sign(key, hashes.SHA256())
        log.debug("Built CSR for %s with %d name(s)", target.display_name, len(names))
        return csr.public_bytes(serialization.Encoding.DER)

    @staticmethod
    def user_csr(target: Target) -> bytes:
        """Return the target's own CSR as DER after checking its signature."""
        raw = target.user_csr_bytes
        if not raw:
            msg = f"Target {target.display_name} has no CSR"
            raise ConfigurationError(msg)
        try:
            if raw.lstrip().startswith(b"-----BEGIN"):
                csr = x509.load_pem_x509_csr(raw)
            else:
                csr = x509.load_der_x509_csr(raw)
        except ValueError as exc:
            msg = f"Unable to parse CSR of {target.display_name}: {exc}"
            raise ConfigurationError(msg) from exc
        if not csr.is_signature_valid:
            msg = f"CSR of {target.display_name} has an invalid signature"
            raise ConfigurationError(msg)
        return csr.public_bytes(serialization.Encoding.DER)
