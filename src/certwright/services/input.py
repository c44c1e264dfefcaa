"""Operator interaction used by the manual validation backend.

The orchestration core never talks to a console directly: interactive
pieces receive an :class:`InputService`.  :class:`ConsoleInput` is the
terminal implementation used by the CLI; tests supply scripted fakes.
"""

from __future__ import annotations

import abc
import sys
import threading
from typing import TextIO


class InputService(abc.ABC):
    """Minimal operator dialogue."""

    @abc.abstractmethod
    def show(self, label: str, value: str) -> None:
        """Display a labelled value (record name, content, ...)."""

    @abc.abstractmethod
    def wait(self, message: str) -> bool:
        """Block until the operator confirms.  ``False`` means cancelled."""

    @abc.abstractmethod
    def choose(self, question: str, options: dict[str, str]) -> str:
        """Ask a question; *options* maps answer keys to descriptions."""


class ConsoleInput(InputService):
    """Line-based terminal dialogue.

    Prompts are serialized so concurrent validations never interleave
    their questions.
    """

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        self._in = stdin or sys.stdin
        self._out = stdout or sys.stdout
        self._lock = threading.Lock()

    def _write(self, text: str) -> None:
        self._out.write(text)
        self._out.flush()

    def show(self, label: str, value: str) -> None:
        with self._lock:
            self._write(f" {label}: {value}\n")

    def wait(self, message: str) -> bool:
        with self._lock:
            self._write(f"{message} ")
            line = self._in.readline()
        return line != ""

    def choose(self, question: str, options: dict[str, str]) -> str:
        keys = list(options)
        with self._lock:
            while True:
                self._write(f"{question}\n")
                for key, description in options.items():
                    self._write(f"  {key}: {description}\n")
                line = self._in.readline()
                if line == "":
                    # EOF: take the last option, which callers make the safe one
                    return keys[-1]
                answer = line.strip().lower()
                if answer in options:
                    return answer
