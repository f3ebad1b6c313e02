"""Mutual exclusion for operations that restructure the library."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from cadenza.domain.exceptions import OperationInProgressError

logger = logging.getLogger(__name__)


# Hey future me - scan and reorganize both walk the whole tree and rewrite paths in the DB.
# Running them at the same time would mean the scanner upserts a path the organizer just
# moved away. So they share ONE instance of this lock (the composition root creates it and
# hands it to both). It never waits: a second caller gets OperationInProgressError right away,
# it does not queue behind the running one. It is also NOT reentrant - the running operation
# must not try to acquire it again.
class StructuralOperationLock:
    """Non-blocking, non-reentrant try-lock shared by scan and reorganize."""

    def __init__(self) -> None:
        self._active_operation: str | None = None

    def is_active(self) -> bool:
        """Check if a structural operation is running."""
        return self._active_operation is not None

    @property
    def active_operation(self) -> str | None:
        """Name of the running operation, if any."""
        return self._active_operation

    def try_acquire(self, operation: str) -> bool:
        """Acquire the lock if it is free.

        No await between check and set, so this is atomic on the event loop.
        """
        if self._active_operation is not None:
            return False
        self._active_operation = operation
        return True

    def release(self) -> None:
        """Release the lock."""
        self._active_operation = None

    @asynccontextmanager
    async def hold(self, operation: str, busy_message: str) -> AsyncIterator[None]:
        """Hold the lock for the duration of an operation.

        Args:
            operation: Name recorded while the lock is held ("scan", "organize")
            busy_message: Message of the error raised when the lock is taken

        Raises:
            OperationInProgressError: If another operation holds the lock
        """
        if not self.try_acquire(operation):
            logger.warning(
                "Refusing %s: %s is still running", operation, self._active_operation
            )
            raise OperationInProgressError(busy_message)
        try:
            yield
        finally:
            self.release()
