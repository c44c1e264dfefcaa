"""Capability states for order strategies and validation backends.

A capability is evaluated on demand by a probe function and reported
as :class:`State`: either enabled, or disabled with a reason that can
be shown to the operator.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class State:
    """Result of a capability probe."""

    disabled: bool
    reason: str | None = None

    @property
    def enabled(self) -> bool:
        return not self.disabled

    @classmethod
    def enabled_state(cls) -> State:
        return cls(disabled=False)

    @classmethod
    def disabled_state(cls, reason: str) -> State:
        return cls(disabled=True, reason=reason)


ENABLED = State.enabled_state()


class CachedProbe:
    """Evaluate an expensive probe at most once.

    The cache lives on the instance, so a probe created at module level
    is evaluated once per process and never persisted.

    Parameters
    ----------
    probe:
        Zero-argument callable returning a :class:`State`.

    """

    def __init__(self, probe: Callable[[], State]) -> None:
        self._probe = probe
        self._state: State | None = None
        self._lock = threading.Lock()

    def __call__(self) -> State:
        with self._lock:
            if self._state is None:
                self._state = self._probe()
                if self._state.disabled:
                    log.debug("Capability probe disabled: %s", self._state.reason)
            return self._state

    def reset(self) -> None:
        """Forget the cached result."""
        with self._lock:
            self._state = None
