"""Logging subsystem for certwright.

Public API::

    from certwright.logging import configure_logging

    configure_logging(settings.logging)
"""

from certwright.logging.setup import configure_logging, log_context

__all__ = ["configure_logging", "log_context"]
