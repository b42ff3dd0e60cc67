# Overview: Transaction boundary, row locking and retry helpers shared by all mutating commands.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger("stockflow.concurrency")


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE. There, the first write in a
    transaction takes the database write lock, so every command issues its
    guarding UPDATE before it reads anything it depends on.
    """
    return query.with_for_update()


def _retry_policy(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    config = current_app.config
    if attempts is None:
        attempts = int(config.get("RETRY_ATTEMPTS", 3))
    if backoff_base is None:
        backoff_base = float(config.get("RETRY_BACKOFF", 0.1))
    return max(1, attempts), backoff_base


def run_with_retry(
    func,
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
    retry_on: tuple = (),
):
    """
    Execute one transactional command with retry on concurrency failures.

    func must do all of its work and commit. Retries on OperationalError
    (locks, deadlocks) and StaleDataError (optimistic version conflicts);
    func re-reads state on each attempt, so a retried loser sees the winner's
    committed result. retry_on adds command-specific retryable errors (e.g.
    IntegrityError from a racing first insert). Any other exception rolls
    back and propagates, so a failed command never leaves partial writes in
    the session.
    """
    attempts, backoff_base = _retry_policy(attempts, backoff_base)
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError, *retry_on) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                logger.warning(
                    "concurrency retries exhausted",
                    extra={"attempts": attempts, "error": type(exc).__name__},
                )
                raise
            logger.info(
                "retrying after concurrency conflict",
                extra={"attempt": attempt + 1, "error": type(exc).__name__},
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
