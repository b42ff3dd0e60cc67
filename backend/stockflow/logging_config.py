"""Logging setup for the stockflow engine.

Modules log through named loggers under the ``stockflow`` namespace
(``stockflow.ledger``, ``stockflow.purchasing``, ``stockflow.orders``,
``stockflow.reorder``). Structured fields are passed with ``extra=`` and
rendered as ``key=value`` pairs after the message.
"""

from __future__ import annotations

import logging

ROOT_LOGGER = "stockflow"

# Attributes every LogRecord carries; anything else came in through extra=.
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class KeyValueFormatter(logging.Formatter):
    """Appends ``extra=`` fields to the formatted line as sorted key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED and not key.startswith("_")
        }
        if not fields:
            return base
        rendered = " ".join(f"{key}={fields[key]}" for key in sorted(fields))
        return f"{base} {rendered}"


def configure_logging(app) -> logging.Logger:
    """
    Attach a single stream handler to the ``stockflow`` logger.

    Safe to call once per app instance; repeated calls replace the handler
    rather than stacking duplicates.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    level = app.config.get("LOG_LEVEL", "INFO")
    logger.setLevel(level if isinstance(level, int) else str(level).upper())

    for handler in list(logger.handlers):
        if getattr(handler, "_stockflow_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler._stockflow_handler = True
    handler.setFormatter(
        KeyValueFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    logger.addHandler(handler)
    logger.propagate = True
    return logger
