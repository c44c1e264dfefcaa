"""Protocol collaborator contract."""

from certwright.protocol.base import AcmeClient, AcmeError, IssuedCertificate

__all__ = ["AcmeClient", "AcmeError", "IssuedCertificate"]
