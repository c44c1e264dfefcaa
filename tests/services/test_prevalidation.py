"""Tests for the pre-validation decision policies."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from certwright.core.types import PrevalidationChoice
from certwright.services.prevalidation import InteractiveDecision, UnattendedDecision


class TestUnattendedDecision:
    def test_zero_retries_proceeds_after_first_check(self):
        assert UnattendedDecision(0, 0).decide("_acme-challenge.a.com", 1) == PrevalidationChoice.PROCEED

    def test_retries_then_proceeds(self):
        decision = UnattendedDecision(2, 0)
        assert decision.decide("r", 1) == PrevalidationChoice.RETRY
        assert decision.decide("r", 2) == PrevalidationChoice.RETRY
        assert decision.decide("r", 3) == PrevalidationChoice.PROCEED

    def test_cancel_during_wait_aborts(self):
        cancel = threading.Event()
        cancel.set()
        assert UnattendedDecision(5, 30).decide("r", 1, cancel) == PrevalidationChoice.ABORT


class TestInteractiveDecision:
    @pytest.mark.parametrize(
        ("answer", "expected"),
        [
            ("r", PrevalidationChoice.RETRY),
            ("i", PrevalidationChoice.PROCEED),
            ("a", PrevalidationChoice.ABORT),
        ],
    )
    def test_maps_answers(self, answer, expected):
        input_service = MagicMock()
        input_service.choose.return_value = answer
        assert InteractiveDecision(input_service).decide("r", 1) == expected

    def test_question_mentions_record(self):
        input_service = MagicMock()
        input_service.choose.return_value = "r"
        InteractiveDecision(input_service).decide("_acme-challenge.a.com", 3)
        question = input_service.choose.call_args.args[0]
        assert "_acme-challenge.a.com" in question
        assert "attempt 3" in question

    def test_cancelled_skips_prompt(self):
        input_service = MagicMock()
        cancel = threading.Event()
        cancel.set()
        assert InteractiveDecision(input_service).decide("r", 1, cancel) == PrevalidationChoice.ABORT
        input_service.choose.assert_not_called()
