"""Typed, frozen dataclasses for every configuration section.

This module is the **single source of truth** for default values.
JSON Schema defaults exist only for documentation; these builders
are what the application actually reads.

Access pattern::

    from certwright.config import get_config

    validation = get_config().settings.validation
    print(validation.parallel_batch_size)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClientSettings:
    """Where renewal records and cached artifacts live."""

    configuration_path: str
    cache_path: str


def _build_client(data: dict | None) -> ClientSettings:
    d = data or {}
    configuration_path = d.get("configuration_path", "/var/lib/certwright")
    return ClientSettings(
        configuration_path=configuration_path,
        cache_path=d.get("cache_path", f"{configuration_path.rstrip('/')}/cache"),
    )


# ---------------------------------------------------------------------------
# Scheduled task (renewal timing)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScheduledTaskSettings:
    """Renewal window policy.

    ``renewal_days`` is counted back from the certificate's NotAfter.
    """

    renewal_days: int
    renewal_days_range: int
    renewal_minimum_valid_days: int
    renewal_disable_server_schedule: bool
    execution_time_limit: int


def _build_scheduled_task(data: dict | None) -> ScheduledTaskSettings:
    d = data or {}
    return ScheduledTaskSettings(
        renewal_days=d.get("renewal_days", 30),
        renewal_days_range=d.get("renewal_days_range", 0),
        renewal_minimum_valid_days=d.get("renewal_minimum_valid_days", 7),
        renewal_disable_server_schedule=d.get("renewal_disable_server_schedule", False),
        execution_time_limit=d.get("execution_time_limit", 7200),
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidationSettings:
    """Dispatcher concurrency and DNS pre-validation policy."""

    allow_dns_substitution: bool
    disable_multithreading: bool
    dns_propagation_delay: int
    dns_servers: tuple[str, ...]
    parallel_batch_size: int
    prevalidate_dns: bool
    prevalidate_dns_local: bool
    prevalidate_dns_retry_count: int
    prevalidate_dns_retry_interval: int
    call_timeout: int
    cleanup_folders: bool


def _build_validation(data: dict | None) -> ValidationSettings:
    d = data or {}
    return ValidationSettings(
        allow_dns_substitution=d.get("allow_dns_substitution", True),
        disable_multithreading=d.get("disable_multithreading", True),
        dns_propagation_delay=d.get("dns_propagation_delay", 0),
        dns_servers=tuple(d.get("dns_servers", [])),
        parallel_batch_size=d.get("parallel_batch_size", 100),
        prevalidate_dns=d.get("prevalidate_dns", True),
        prevalidate_dns_local=d.get("prevalidate_dns_local", False),
        prevalidate_dns_retry_count=d.get("prevalidate_dns_retry_count", 5),
        prevalidate_dns_retry_interval=d.get("prevalidate_dns_retry_interval", 30),
        call_timeout=d.get("call_timeout", 300),
        cleanup_folders=d.get("cleanup_folders", False),
    )


# ---------------------------------------------------------------------------
# Order
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrderSettings:
    default_plugin: str


def _build_order(data: dict | None) -> OrderSettings:
    d = data or {}
    return OrderSettings(default_plugin=d.get("default_plugin", "single"))


# ---------------------------------------------------------------------------
# CSR / key generation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CsrSettings:
    key_type: str
    ec_curve: str
    rsa_key_size: int
    reuse_private_keys: bool


def _build_csr(data: dict | None) -> CsrSettings:
    d = data or {}
    return CsrSettings(
        key_type=d.get("key_type", "ec"),
        ec_curve=d.get("ec_curve", "secp384r1"),
        rsa_key_size=d.get("rsa_key_size", 3072),
        reuse_private_keys=d.get("reuse_private_keys", False),
    )


# ---------------------------------------------------------------------------
# Secrets
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SecretsSettings:
    """Location of the JSON secret vault (``vault://json/<key>``)."""

    vault_path: str | None


def _build_secrets(data: dict | None) -> SecretsSettings:
    d = data or {}
    return SecretsSettings(vault_path=d.get("vault_path"))


# ---------------------------------------------------------------------------
# Public suffix list
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PublicSuffixSettings:
    list_path: str | None
    download_url: str | None
    max_age_seconds: int
    timeout_seconds: int


def _build_public_suffix(data: dict | None) -> PublicSuffixSettings:
    d = data or {}
    return PublicSuffixSettings(
        list_path=d.get("list_path"),
        download_url=d.get("download_url"),
        max_age_seconds=d.get("max_age_seconds", 86400),
        timeout_seconds=d.get("timeout_seconds", 30),
    )


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingSettings:
    """Log level, output format and per-logger overrides."""

    level: str
    format: str
    loggers: dict[str, str] = field(default_factory=dict)


def _build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "text"),
        loggers=dict(d.get("loggers") or {}),
    )


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CertwrightSettings:
    """Root settings object."""

    client: ClientSettings
    scheduled_task: ScheduledTaskSettings
    validation: ValidationSettings
    order: OrderSettings
    csr: CsrSettings
    secrets: SecretsSettings
    public_suffix: PublicSuffixSettings
    logging: LoggingSettings


def build_settings(data: dict[str, Any]) -> CertwrightSettings:
    """Build the full typed settings tree from raw config data.

    Called once during :class:`CertwrightConfig` initialization after
    schema validation and environment-variable resolution.
    """
    return CertwrightSettings(
        client=_build_client(data.get("client")),
        scheduled_task=_build_scheduled_task(data.get("scheduled_task")),
        validation=_build_validation(data.get("validation")),
        order=_build_order(data.get("order")),
        csr=_build_csr(data.get("csr")),
        secrets=_build_secrets(data.get("secrets")),
        public_suffix=_build_public_suffix(data.get("public_suffix")),
        logging=_build_logging(data.get("logging")),
    )
