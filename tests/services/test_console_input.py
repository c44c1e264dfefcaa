"""Tests for certwright.services.input.ConsoleInput."""

from __future__ import annotations

import io

from certwright.services.input import ConsoleInput


class TestConsoleInput:
    def test_show(self):
        out = io.StringIO()
        ConsoleInput(io.StringIO(), out).show("Record", "_acme-challenge.a.com")
        assert out.getvalue() == " Record: _acme-challenge.a.com\n"

    def test_wait_confirmed(self):
        assert ConsoleInput(io.StringIO("\n"), io.StringIO()).wait("Press enter") is True

    def test_wait_eof(self):
        assert ConsoleInput(io.StringIO(""), io.StringIO()).wait("Press enter") is False

    def test_choose_repeats_until_valid(self):
        out = io.StringIO()
        answer = ConsoleInput(io.StringIO("x\nR\n"), out).choose("Continue?", {"r": "Retry", "a": "Abort"})
        assert answer == "r"
        assert out.getvalue().count("Continue?") == 2

    def test_choose_eof_takes_last_option(self):
        answer = ConsoleInput(io.StringIO(""), io.StringIO()).choose("Continue?", {"r": "Retry", "a": "Abort"})
        assert answer == "a"
