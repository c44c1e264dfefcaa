"""Root conftest for the certwright test suite."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
import yaml

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)


# ---------------------------------------------------------------------------
# Minimal config data shared by multiple test modules
# ---------------------------------------------------------------------------


@pytest.fixture()
def minimal_config_data(tmp_path: Path) -> dict:
    """Return a small valid configuration rooted in *tmp_path*."""
    return {
        "client": {"configuration_path": str(tmp_path / "state")},
        "secrets": {"vault_path": str(tmp_path / "state" / "secrets.json")},
    }


@pytest.fixture()
def tmp_config_file(tmp_path: Path, minimal_config_data: dict) -> Path:
    """Write *minimal_config_data* to a temp YAML file and return its path."""
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        yaml.safe_dump(minimal_config_data, default_flow_style=False, sort_keys=False),
        encoding="utf-8",
    )
    return cfg


@pytest.fixture()
def settings():
    """Default typed settings tree."""
    from certwright.config.settings import build_settings

    return build_settings({})


# ---------------------------------------------------------------------------
# Config singleton cleanup, autouse so every test gets a fresh slate
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def fresh_config():
    """Reset the CertwrightConfig singleton before and after every test."""
    from certwright.config.certwright_config import CertwrightConfig

    CertwrightConfig.reset()
    yield
    CertwrightConfig.reset()


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_certificate_pem():
    """Factory returning a self-signed PEM certificate for *names*."""
    from datetime import UTC, datetime, timedelta

    from cryptography import x509
    from cryptography.hazmat.primitives import hashes, serialization
    from cryptography.hazmat.primitives.asymmetric import ec
    from cryptography.x509.oid import NameOID

    def _make(names=("www.example.com",), not_after=None, not_before=None):
        key = ec.generate_private_key(ec.SECP256R1())
        now = datetime.now(UTC)
        not_before = not_before or now - timedelta(days=1)
        not_after = not_after or now + timedelta(days=90)
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, names[0])])
        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(
                x509.SubjectAlternativeName([x509.DNSName(n) for n in names]),
                critical=False,
            )
            .sign(key, hashes.SHA256())
        )
        return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")

    return _make


# ---------------------------------------------------------------------------
# Logger state cleanup: configure_logging detaches the certwright hierarchy
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def restore_certwright_logger():
    """Undo handler/propagation changes made by configure_logging."""
    import logging

    logger = logging.getLogger("certwright")
    saved = (logger.level, list(logger.handlers), logger.propagate)
    yield
    logger.setLevel(saved[0])
    logger.handlers[:] = saved[1]
    logger.propagate = saved[2]
