"""Secret resolution for backend credentials.

Renewal records never contain plain credentials; they contain
references resolved at run time by :meth:`SecretService.evaluate_secret`:

``env://NAME``
    Value of environment variable ``NAME``.
``vault://json/KEY``
    Entry ``KEY`` of the local JSON vault (``secrets.vault_path``),
    persisted with :func:`~certwright.storage.safe_write.safe_write`.

Any other string is returned unchanged.  Resolved values are never
logged.
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from certwright.core.errors import ConfigurationError
from certwright.storage.safe_write import safe_write

if TYPE_CHECKING:
    from certwright.config.settings import SecretsSettings

log = logging.getLogger(__name__)

ENV_PREFIX = "env://"
VAULT_PREFIX = "vault://json/"

_REFERENCE_RE = re.compile(r"\{((?:vault://json/|env://)[^}\s]+)\}")


class SecretService:
    """Resolve and store secret references.

    Parameters
    ----------
    settings:
        The ``secrets`` settings section.

    """

    def __init__(self, settings: SecretsSettings | None = None) -> None:
        self._vault_path = Path(settings.vault_path) if settings and settings.vault_path else None
        self._lock = threading.Lock()
        self._cache: dict[str, str] | None = None

    @staticmethod
    def is_reference(value: str | None) -> bool:
        return bool(value) and value.startswith((ENV_PREFIX, VAULT_PREFIX))

    def evaluate_secret(self, reference: str | None) -> str | None:
        """Resolve *reference* to its secret value.

        Returns ``None`` for an empty reference or a missing entry.
        """
        if not reference:
            return None
        if reference.startswith(ENV_PREFIX):
            name = reference[len(ENV_PREFIX) :]
            value = os.environ.get(name)
            if value is None:
                log.warning("Secret environment variable %s is not set", name)
            return value
        if reference.startswith(VAULT_PREFIX):
            key = reference[len(VAULT_PREFIX) :]
            value = self._vault().get(key)
            if value is None:
                log.warning("Secret %s not found in vault", key)
            return value
        return reference

    def evaluate_inline(self, text: str) -> tuple[str, list[str]]:
        """Replace ``{vault://json/...}`` / ``{env://...}`` placeholders in *text*.

        Returns the resolved text and the list of resolved values so
        callers can censor them before logging.
        """
        resolved: list[str] = []

        def _sub(m: re.Match[str]) -> str:
            value = self.evaluate_secret(m.group(1))
            if value is None:
                return ""
            resolved.append(value)
            return value

        return _REFERENCE_RE.sub(_sub, text), resolved

    def put_secret(self, key: str, value: str) -> str:
        """Store *value* in the vault and return its reference."""
        path = self._require_vault()
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            data = dict(self._vault())
            data[key] = value
            safe_write(path, json.dumps(data, indent=2, sort_keys=True), mode=0o600)
            self._cache = data
        log.info("Stored secret %s", key)
        return f"{VAULT_PREFIX}{key}"

    def delete_secret(self, key: str) -> bool:
        path = self._require_vault()
        with self._lock:
            data = dict(self._vault())
            if key not in data:
                return False
            del data[key]
            safe_write(path, json.dumps(data, indent=2, sort_keys=True), mode=0o600)
            self._cache = data
        return True

    def list_keys(self) -> list[str]:
        return sorted(self._vault())

    # -- internal -----------------------------------------------------------

    def _require_vault(self) -> Path:
        if self._vault_path is None:
            msg = "secrets.vault_path is not configured"
            raise ConfigurationError(msg)
        return self._vault_path

    def _vault(self) -> dict[str, str]:
        if self._cache is None:
            if self._vault_path is None or not self._vault_path.is_file():
                self._cache = {}
            else:
                try:
                    self._cache = json.loads(self._vault_path.read_text(encoding="utf-8"))
                except json.JSONDecodeError as exc:
                    msg = f"Secret vault {self._vault_path} is corrupt: {exc.msg}"
                    raise ConfigurationError(msg) from exc
        return self._cache
