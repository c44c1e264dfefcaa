"""Certificate and private-key cache.

Issued chains and their keys are cached per order under
``<cache_path>/<renewal id>-<cache key part>.{crt,key}.pem``.  The cache
key part comes from target decomposition and is stable across runs,
so a renewal finds the certificate it issued last time.
"""

from __future__ import annotations

import hashlib
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from certwright.core.errors import PersistenceError
from certwright.protocol.base import IssuedCertificate
from certwright.storage.safe_write import safe_delete, safe_write

if TYPE_CHECKING:
    from certwright.models.order import Order

log = logging.getLogger(__name__)

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]")
_CERT_SUFFIX = ".crt.pem"
_KEY_SUFFIX = ".key.pem"


def parse_certificate_chain(pem_chain: str) -> IssuedCertificate:
    """Read validity and thumbprint of the leaf of *pem_chain*.

    Raises
    ------
    PersistenceError
        If the text holds no parsable certificate.

    """
    try:
        certificates = x509.load_pem_x509_certificates(pem_chain.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as exc:
        msg = f"Unable to parse certificate chain: {exc}"
        raise PersistenceError(msg) from exc
    leaf = certificates[0]
    der = leaf.public_bytes(serialization.Encoding.DER)
    return IssuedCertificate(
        pem_chain=pem_chain,
        not_before=leaf.not_valid_before_utc,
        not_after=leaf.not_valid_after_utc,
        thumbprint=hashlib.sha256(der).hexdigest(),
    )


class CertificateCache:
    """File-backed cache of issued certificates and order keys.

    Parameters
    ----------
    directory:
        Cache folder, created on first write.

    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    @staticmethod
    def cache_key(order: Order) -> str:
        part = order.cache_key_part or "main"
        return _UNSAFE_RE.sub("_", f"{order.renewal.id}-{part}")

    def _path(self, order: Order, suffix: str) -> Path:
        return self.directory / f"{self.cache_key(order)}{suffix}"

    def _write(self, path: Path, content: str, mode: int) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True, mode=0o700)
        except OSError as exc:
            msg = f"Unable to create cache directory {self.directory}: {exc}"
            raise PersistenceError(msg) from exc
        safe_write(path, content, mode=mode)

    # -- certificates -------------------------------------------------------

    def get(self, order: Order) -> IssuedCertificate | None:
        """Return the cached certificate for *order*, ``None`` if absent or unreadable."""
        path = self._path(order, _CERT_SUFFIX)
        if not path.is_file():
            return None
        try:
            return parse_certificate_chain(path.read_text(encoding="ascii"))
        except (OSError, UnicodeDecodeError, PersistenceError) as exc:
            log.warning("Ignoring unreadable cached certificate %s: %s", path, exc)
            return None

    def store(self, order: Order, certificate: IssuedCertificate) -> Path:
        path = self._path(order, _CERT_SUFFIX)
        self._write(path, certificate.pem_chain, 0o644)
        log.info("Cached certificate %s for %s", certificate.thumbprint, order.friendly_name_intermediate)
        return path

    # -- private keys -------------------------------------------------------

    def key_path(self, order: Order) -> Path:
        return self._path(order, _KEY_SUFFIX)

    def load_private_key(self, order: Order) -> str | None:
        path = self.key_path(order)
        if not path.is_file():
            return None
        return path.read_text(encoding="ascii")

    def store_private_key(self, order: Order, pem: str) -> Path:
        path = self.key_path(order)
        self._write(path, pem, 0o600)
        log.debug("Cached private key for %s", order.friendly_name_intermediate)
        return path

    def delete(self, order: Order) -> None:
        for suffix in (_CERT_SUFFIX, _KEY_SUFFIX):
            safe_delete(self._path(order, suffix))
