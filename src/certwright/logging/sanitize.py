"""Sensitive data sanitization for log output.

:func:`sanitize_pem` redacts the body of PEM blocks (private keys,
CSRs) and :func:`censor` masks resolved secret values, e.g. inside
script argument lines, before they are written to a log.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

REDACTED = "[REDACTED]"

# Regex matching the base64 body inside PEM blocks
_PEM_BODY_RE = re.compile(
    r"(-----BEGIN [A-Z0-9 ]+-----)"
    r"([\s\S]*?)"
    r"(-----END [A-Z0-9 ]+-----)",
)


def sanitize_pem(text: str) -> str:
    """Replace the base64 body of PEM blocks with ``[REDACTED]``.

    Preserves BEGIN/END markers so the type of object is still visible.
    """
    if "-----BEGIN " not in text:
        return text

    def _redact(m: re.Match[str]) -> str:
        return f"{m.group(1)}\n{REDACTED}\n{m.group(3)}"

    return _PEM_BODY_RE.sub(_redact, text)


def censor(text: str, secrets: Iterable[str | None]) -> str:
    """Replace every occurrence of each non-empty secret in *text*."""
    for secret in sorted((s for s in secrets if s), key=len, reverse=True):
        text = text.replace(secret, REDACTED)
    return text
