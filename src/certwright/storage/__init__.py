"""Durable state: crash-safe writes, renewal records and the certificate cache."""

from certwright.storage.cache import CertificateCache, parse_certificate_chain
from certwright.storage.renewal_store import RenewalStore
from certwright.storage.safe_write import safe_delete, safe_write

__all__ = [
    "CertificateCache",
    "RenewalStore",
    "parse_certificate_chain",
    "safe_delete",
    "safe_write",
]
