"""Configuration subsystem for certwright.

Public API::

    from certwright.config import get_config, CertwrightConfig

    # At startup (CLI only):
    CertwrightConfig(config_file="config.yaml")

    # Everywhere else:
    cfg = get_config()
    days = cfg.settings.scheduled_task.renewal_days
"""

from certwright.config.certwright_config import (
    CertwrightConfig,
    ConfigValidationError,
    get_config,
)
from certwright.config.settings import (
    CertwrightSettings,
    ClientSettings,
    CsrSettings,
    LoggingSettings,
    OrderSettings,
    PublicSuffixSettings,
    ScheduledTaskSettings,
    SecretsSettings,
    ValidationSettings,
    build_settings,
)

__all__ = [
    "CertwrightConfig",
    "CertwrightSettings",
    "ClientSettings",
    "ConfigValidationError",
    "CsrSettings",
    "LoggingSettings",
    "OrderSettings",
    "PublicSuffixSettings",
    "ScheduledTaskSettings",
    "SecretsSettings",
    "ValidationSettings",
    "build_settings",
    "get_config",
]
