"""Validation backend registry.

Maps stable string keys to backend factories.  Built-in backends are
registered at import time; additional backends are added explicitly
with :func:`register_backend`.  There is no runtime discovery.

Usage::

    from certwright.challenge.registry import ValidationRegistry

    registry = ValidationRegistry(services)
    backend = registry.create(renewal.validation)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from certwright.challenge.base import ValidationBackend
from certwright.challenge.filesystem import FileSystemValidation
from certwright.challenge.manual import ManualDnsValidation
from certwright.challenge.null import NullValidation
from certwright.challenge.rfc2136 import Rfc2136Validation
from certwright.challenge.script import ScriptDnsValidation
from certwright.challenge.selfhosting import SelfHostingValidation
from certwright.challenge.tlsselfhosting import TlsSelfHostingValidation
from certwright.core.errors import ConfigurationError
from certwright.core.types import Parallelism

if TYPE_CHECKING:
    from certwright.challenge.base import BackendServices
    from certwright.models.renewal import ValidationOptions

log = logging.getLogger(__name__)

BackendFactory = Callable[[dict[str, Any], "BackendServices"], ValidationBackend]

_BACKENDS: dict[str, BackendFactory] = {
    NullValidation.key: NullValidation,
    ManualDnsValidation.key: ManualDnsValidation,
    ScriptDnsValidation.key: ScriptDnsValidation,
    Rfc2136Validation.key: Rfc2136Validation,
    FileSystemValidation.key: FileSystemValidation,
    SelfHostingValidation.key: SelfHostingValidation,
    TlsSelfHostingValidation.key: TlsSelfHostingValidation,
}
_BACKENDS_LOCK = threading.Lock()


def register_backend(key: str, factory: BackendFactory) -> None:
    """Make *factory* available under *key*.

    Raises
    ------
    ValueError
        If *key* is already registered.

    """
    with _BACKENDS_LOCK:
        if key in _BACKENDS:
            msg = f"Validation backend '{key}' is already registered"
            raise ValueError(msg)
        _BACKENDS[key] = factory
    log.info("Registered validation backend: %s", key)


def available_backends() -> list[str]:
    with _BACKENDS_LOCK:
        return sorted(_BACKENDS)


class ValidationRegistry:
    """Creates backend instances for a renewal run.

    Backends declaring :attr:`Parallelism.REUSE` are created once per
    set of options and shared; all others get a fresh instance per
    :meth:`create` call.

    Parameters
    ----------
    services:
        Collaborators handed to every backend.

    """

    def __init__(self, services: BackendServices) -> None:
        self.services = services
        self._shared: dict[tuple, ValidationBackend] = {}
        self._lock = threading.Lock()

    def factory(self, key: str) -> BackendFactory:
        """Return the factory registered for *key*.

        Raises
        ------
        ConfigurationError
            If no backend is registered under *key*.

        """
        with _BACKENDS_LOCK:
            factory = _BACKENDS.get(key)
        if factory is None:
            msg = f"Unknown validation plugin '{key}'. Known plugins: {available_backends()}"
            raise ConfigurationError(msg)
        return factory

    def create(self, options: ValidationOptions) -> ValidationBackend:
        """Return a backend instance for *options*."""
        with self._lock:
            shared = self._shared.get(options.group_key)
            if shared is not None:
                return shared
        backend = self.factory(options.plugin)(dict(options.config), self.services)
        if options.challenge_type and backend.challenge_type and backend.challenge_type != options.challenge_type:
            msg = (
                f"Validation plugin '{options.plugin}' answers {backend.challenge_type}, "
                f"not {options.challenge_type}"
            )
            raise ConfigurationError(msg)
        if backend.parallelism & Parallelism.REUSE:
            with self._lock:
                backend = self._shared.setdefault(options.group_key, backend)
        return backend

    def close(self) -> None:
        """Close every shared backend instance."""
        with self._lock:
            shared = list(self._shared.values())
            self._shared.clear()
        for backend in shared:
            try:
                backend.close()
            except Exception as exc:  # noqa: BLE001
                log.warning("Error closing validation backend %s: %s", backend.key, exc)
