"""What to do when a published DNS record is not yet visible.

Propagation is not an error: the dispatcher asks a
:class:`PrevalidationDecision` whether to check again, continue anyway
or give up on the identifier.  Unattended runs use
:class:`UnattendedDecision`; the manual backend uses
:class:`InteractiveDecision`.
"""

from __future__ import annotations

import abc
import logging
import threading
from typing import TYPE_CHECKING

from certwright.core.types import PrevalidationChoice

if TYPE_CHECKING:
    from certwright.services.input import InputService

log = logging.getLogger(__name__)


class PrevalidationDecision(abc.ABC):
    @abc.abstractmethod
    def decide(
        self,
        record_name: str,
        attempt: int,
        cancel: threading.Event | None = None,
    ) -> PrevalidationChoice:
        """Decide after the *attempt*-th failed check of *record_name*."""


class UnattendedDecision(PrevalidationDecision):
    """Retry a bounded number of times, then proceed regardless.

    Parameters
    ----------
    retry_count:
        Extra checks after the first failure.  ``0`` performs a single
        check and proceeds.
    retry_interval:
        Seconds to wait before each extra check.

    """

    def __init__(self, retry_count: int, retry_interval: float) -> None:
        self.retry_count = retry_count
        self.retry_interval = retry_interval

    def decide(
        self,
        record_name: str,
        attempt: int,
        cancel: threading.Event | None = None,
    ) -> PrevalidationChoice:
        if attempt > self.retry_count:
            log.warning(
                "Record %s not visible after %d check(s), will try now anyway",
                record_name,
                attempt,
            )
            return PrevalidationChoice.PROCEED
        log.info(
            "Record %s not yet visible, will retry in %ss (%d/%d)",
            record_name,
            self.retry_interval,
            attempt,
            self.retry_count,
        )
        waiter = cancel or threading.Event()
        if waiter.wait(self.retry_interval):
            return PrevalidationChoice.ABORT
        return PrevalidationChoice.RETRY


class InteractiveDecision(PrevalidationDecision):
    """Let the operator choose until they pick an answer."""

    _OPTIONS = {
        "r": "Retry",
        "i": "Ignore and continue",
        "a": "Abort",
    }
    _CHOICES = {
        "r": PrevalidationChoice.RETRY,
        "i": PrevalidationChoice.PROCEED,
        "a": PrevalidationChoice.ABORT,
    }

    def __init__(self, input_service: InputService) -> None:
        self._input = input_service

    def decide(
        self,
        record_name: str,
        attempt: int,
        cancel: threading.Event | None = None,
    ) -> PrevalidationChoice:
        if cancel is not None and cancel.is_set():
            return PrevalidationChoice.ABORT
        answer = self._input.choose(
            f"The correct record for {record_name} is not yet found by the "
            f"pre-validation check (attempt {attempt}). How do you want to proceed?",
            self._OPTIONS,
        )
        return self._CHOICES.get(answer, PrevalidationChoice.ABORT)
