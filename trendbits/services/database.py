"""Database connection manager.

One :class:`ConnectionManager` is built by the app factory and shared through
``app.extensions``. It validates the engine with a trivial round trip, retries
connection failures with a fixed delay, and wraps units of work so that a
dropped connection is discarded, re-established and retried a bounded number
of times. Errors that are not connectivity failures propagate untouched.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from flask import current_app
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError, OperationalError

from trendbits.errors import ConnectivityError

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXTENSION_KEY = "trendbits.db"

STATE_DISCONNECTED = "disconnected"
STATE_CONNECTED = "connected"


def is_connectivity_error(exc: BaseException) -> bool:
    """Classify by exception type, as raised at the driver boundary.

    SQLAlchemy marks a DBAPI error as ``connection_invalidated`` when the
    dialect recognises it as a disconnect. An error with no statement was raised
    while checking out a connection. Anything else (missing tables, locks,
    constraint violations) is a logical failure.
    """
    if isinstance(exc, DisconnectionError):
        return True
    if not isinstance(exc, DBAPIError):
        return False
    if exc.connection_invalidated:
        return True
    return isinstance(exc, (OperationalError, InterfaceError)) and exc.statement is None


class ConnectionManager:
    def __init__(
        self,
        engine_provider: Callable[[], Engine],
        *,
        max_attempts: int = 3,
        retry_delay: float = 2.0,
        query_retries: int | None = None,
        rollback: Callable[[], None] | None = None,
        on_discard: Callable[[], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")
        self._engine_provider = engine_provider
        self._engine: Engine | None = None
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.query_retries = max_attempts if query_retries is None else query_retries
        self._rollback = rollback
        self._on_discard = on_discard
        self._sleep = sleep
        self.state = STATE_DISCONNECTED

    @property
    def is_connected(self) -> bool:
        return self.state == STATE_CONNECTED and self._engine is not None

    def connect(self, *, attempts: int | None = None) -> Engine:
        total = self.max_attempts if attempts is None else max(1, attempts)
        last_exc: Exception | None = None
        for attempt in range(1, total + 1):
            logger.info("Attempting database connection (%d/%d)...", attempt, total)
            try:
                engine = self._engine_provider()
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
            except (DBAPIError, DisconnectionError) as exc:
                last_exc = exc
                self.state = STATE_DISCONNECTED
                logger.warning("Database connection attempt %d failed: %s", attempt, exc)
                if attempt < total:
                    self._sleep(self.retry_delay)
                continue
            self._engine = engine
            self.state = STATE_CONNECTED
            logger.info("Database connection established.")
            return engine

        logger.error("Database unavailable after %d connection attempts.", total)
        raise ConnectivityError(attempts=total) from last_exc

    def get_connection(self) -> Engine:
        if self.is_connected:
            return self._engine
        return self.connect()

    def discard(self) -> None:
        if self._on_discard is not None:
            try:
                self._on_discard()
            except Exception:
                logger.exception("Failed to reset the session while discarding the connection.")
        engine = self._engine
        self._engine = None
        self.state = STATE_DISCONNECTED
        if engine is not None:
            engine.dispose()

    def query_with_retry(self, operation: Callable[[], T], retries: int | None = None) -> T:
        """Run ``operation``, reconnecting and retrying on connectivity failures.

        ``retries`` is the number of extra attempts after the first one.
        """
        budget = self.query_retries if retries is None else max(0, retries)
        attempts = 0
        last_exc: Exception | None = None
        while True:
            attempts += 1
            try:
                if not self.is_connected:
                    self.connect(attempts=1)
                return operation()
            except ConnectivityError as exc:
                last_exc = exc
            except Exception as exc:
                if not is_connectivity_error(exc):
                    self._rollback_quietly()
                    raise
                last_exc = exc
                logger.warning(
                    "Database operation failed on attempt %d/%d: %s", attempts, budget + 1, exc
                )
                self.discard()

            if attempts > budget:
                break
            self._sleep(self.retry_delay)

        logger.error("Database operation failed after %d attempts.", attempts)
        raise ConnectivityError(attempts=attempts) from last_exc

    def _rollback_quietly(self) -> None:
        if self._rollback is None:
            return
        try:
            self._rollback()
        except Exception:
            logger.exception("Session rollback failed.")


def connection_manager() -> ConnectionManager:
    return current_app.extensions[EXTENSION_KEY]


def query_with_retry(operation: Callable[[], T], retries: int | None = None) -> T:
    return connection_manager().query_with_retry(operation, retries)
