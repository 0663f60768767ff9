# lesson-booking-backend/unit_of_work.py

from contextlib import contextmanager
import logging
from typing import Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import config
from exceptions import ServiceError
from locks import KeyedLocks, registry

logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    Atomic boundary handed to every slot store and reservation engine call.

    Reads may use `session` directly. Every check-then-write sequence runs
    inside `atomic(...)`, which serializes on the given lock keys, commits
    when the block finishes and rolls back on any exception (including
    cancellation of the surrounding request), so no partial state survives.
    """

    def __init__(
        self,
        session: Session,
        locks: Optional[KeyedLocks] = None,
        lock_timeout: Optional[float] = None,
    ) -> None:
        self.session = session
        self.locks = locks if locks is not None else registry
        self.lock_timeout = config.LOCK_TIMEOUT_SECONDS if lock_timeout is None else lock_timeout
        self._in_atomic = False

    @contextmanager
    def atomic(self, *lock_keys: str) -> Iterator[Session]:
        if self._in_atomic:
            raise RuntimeError("atomic blocks do not nest")
        with self.locks.hold(lock_keys, self.lock_timeout):
            # Start from a fresh transaction so reads see everything committed before the lock
            if self.session.in_transaction():
                self.session.rollback()
            self._in_atomic = True
            try:
                yield self.session
                self.session.commit()
                logger.debug("Transaction committed (locks=%s)", ",".join(lock_keys) or "-")
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.error("Transaction failed and was rolled back: %s", e)
                raise ServiceError("Database operation failed") from e
            except BaseException:
                self.session.rollback()
                raise
            finally:
                self._in_atomic = False
