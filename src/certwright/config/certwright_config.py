"""certwright configuration loader.

Lifecycle::

    # 1. CLI creates the singleton (once, at startup)
    CertwrightConfig(config_file="/etc/certwright/config.yaml")

    # 2. Any module retrieves it afterwards
    from certwright.config import get_config
    cfg = get_config()
    cfg.settings.validation.parallel_batch_size  # typed access

    # 3. Dynamic access
    cfg.get("validation.dns_servers", default=[])

Loading order: read YAML/JSON, resolve ``${VAR}`` references, validate
against the bundled JSON Schema, run cross-field checks, then build
the frozen settings tree.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from certwright.config.settings import CertwrightSettings, build_settings

_SCHEMA_PATH = Path(__file__).parent / "schema.json"

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

_MAX_BATCH_SIZE = 1000

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singleton reference
# ---------------------------------------------------------------------------
_instance: CertwrightConfig | None = None


def get_config() -> CertwrightConfig:
    """Return the initialised configuration singleton.

    Raises :class:`RuntimeError` if :class:`CertwrightConfig` has not
    been created yet (i.e. the CLI entry point has not run).
    """
    if _instance is None:
        msg = (
            "Configuration not initialised. "
            "CertwrightConfig must be created with config_file= before calling get_config()."
        )
        raise RuntimeError(
            msg,
        )
    return _instance


# ---------------------------------------------------------------------------
# Validation error collector
# ---------------------------------------------------------------------------


class ConfigValidationError(Exception):
    """Raised when schema or cross-field validation finds problems."""

    def __init__(self, errors: list[str]) -> None:
        """Store *errors* and build a human-readable message."""
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def _resolve_value(value: str, path: str) -> str:
    """Replace ``${VAR}`` or ``${VAR:-default}`` with env var value."""
    match = _ENV_RE.match(value)
    if match is None:
        return value
    var_name = match.group(1)
    fallback = match.group(2)
    resolved = os.environ.get(var_name)
    if resolved is not None:
        return resolved
    if fallback is not None:
        return fallback
    raise ConfigValidationError(
        [
            f"Environment variable '${{{var_name}}}' referenced "
            f"at '{path}' is not set and has no default",
        ],
    )


def _resolve_env_vars(
    data: Any,  # noqa: ANN401
    path: str = "",
) -> None:
    """Walk *data* in-place and resolve ``${VAR}``/``${VAR:-default}`` strings."""
    if isinstance(data, dict):
        for key in data:
            child_path = f"{path}.{key}" if path else key
            if isinstance(data[key], str):
                data[key] = _resolve_value(data[key], child_path)
            elif isinstance(data[key], (dict, list)):
                _resolve_env_vars(data[key], child_path)
    elif isinstance(data, list):
        for idx, item in enumerate(data):
            child_path = f"{path}[{idx}]"
            if isinstance(item, str):
                data[idx] = _resolve_value(item, child_path)
            elif isinstance(item, (dict, list)):
                _resolve_env_vars(item, child_path)


def _read_file(path: Path) -> dict:
    with path.open(encoding="utf-8") as fh:
        data = json.load(fh) if path.suffix == ".json" else yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigValidationError([f"{path}: top level must be a mapping"])
    return data


# ---------------------------------------------------------------------------
# Config class
# ---------------------------------------------------------------------------


class CertwrightConfig:
    """Central configuration for certwright.

    The JSON schema is bundled at ``config/schema.json``; users supply
    only ``config_file``.  After construction the typed settings tree
    is available at :pyattr:`settings` and the raw dict via
    :pyattr:`data` / :pymeth:`get`.

    Parameters
    ----------
    config_file:
        Path to the YAML or JSON configuration file.

    Raises
    ------
    ConfigValidationError
        If the file violates the schema or a cross-field rule.

    """

    def __init__(self, *, config_file: str | Path) -> None:
        global _instance  # noqa: PLW0603

        self._source = Path(config_file)
        self._data = _read_file(self._source)
        _resolve_env_vars(self._data)
        self._validate_schema()
        self.additional_checks()
        self._settings: CertwrightSettings = build_settings(self._data)
        _instance = self

    # -- typed access -------------------------------------------------------

    @property
    def settings(self) -> CertwrightSettings:
        """Fully-typed, frozen settings tree."""
        return self._settings

    @property
    def data(self) -> dict:
        """Raw configuration after env-var resolution."""
        return self._data

    @property
    def source(self) -> Path:
        return self._source

    def get(self, dotted: str, default: Any = None) -> Any:  # noqa: ANN401
        """Look up a raw value by dot-separated path."""
        node: Any = self._data
        for part in dotted.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    # -- validation ---------------------------------------------------------

    def _validate_schema(self) -> None:
        schema = json.loads(_SCHEMA_PATH.read_text(encoding="utf-8"))
        validator = jsonschema.Draft202012Validator(schema)
        errors = sorted(validator.iter_errors(self._data), key=lambda e: list(e.absolute_path))
        if errors:
            raise ConfigValidationError(
                [f"{'.'.join(str(p) for p in e.absolute_path) or '<root>'}: {e.message}" for e in errors],
            )

    def additional_checks(self) -> None:
        """Semantic & cross-field validation, run after schema validation."""
        errors: list[str] = []
        warnings: list[str] = []

        scheduled = self._data.get("scheduled_task") or {}
        validation = self._data.get("validation") or {}
        public_suffix = self._data.get("public_suffix") or {}

        # -- scheduled task --
        renewal_days = scheduled.get("renewal_days", 30)
        minimum = scheduled.get("renewal_minimum_valid_days", 7)
        if renewal_days < minimum:
            warnings.append(
                f"scheduled_task.renewal_days ({renewal_days}) is below "
                f"renewal_minimum_valid_days ({minimum}); the minimum validity "
                "floor will decide every renewal",
            )
        days_range = scheduled.get("renewal_days_range", 0)
        if days_range > renewal_days:
            errors.append(
                f"scheduled_task.renewal_days_range ({days_range}) must be <= "
                f"scheduled_task.renewal_days ({renewal_days})",
            )

        # -- validation --
        batch = validation.get("parallel_batch_size", 100)
        if batch > _MAX_BATCH_SIZE:
            errors.append(
                f"validation.parallel_batch_size ({batch}) must be <= {_MAX_BATCH_SIZE}",
            )
        if validation.get("prevalidate_dns_local") and not validation.get("prevalidate_dns", True):
            warnings.append(
                "validation.prevalidate_dns_local is true but prevalidate_dns is false; "
                "no pre-validation will be performed",
            )
        call_timeout = validation.get("call_timeout", 300)
        time_limit = scheduled.get("execution_time_limit", 7200)
        if call_timeout > time_limit:
            warnings.append(
                f"validation.call_timeout ({call_timeout}) exceeds "
                f"scheduled_task.execution_time_limit ({time_limit})",
            )

        # -- public suffix --
        if public_suffix.get("download_url") and not public_suffix.get("list_path"):
            errors.append(
                "public_suffix.list_path is required when public_suffix.download_url is set",
            )

        for w in warnings:
            log.warning("Config warning: %s", w)

        if errors:
            raise ConfigValidationError(errors)

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton -- testing only."""
        global _instance  # noqa: PLW0603
        _instance = None

    def __repr__(self) -> str:
        """Return a developer-friendly representation."""
        return f"<CertwrightConfig config_file={self._source}>"
