from __future__ import annotations

import logging
import threading
from types import TracebackType
from typing import Optional, Type

logger = logging.getLogger(__name__)


class LockPoisonedError(RuntimeError):
    """Raised when acquiring a lock whose previous holder failed mid-update."""


class PoisoningLock:
    """
    Mutex that refuses further use after a critical section raised.

    Shared state guarded by this lock may have been left half-updated, so any
    later acquisition fails with :class:`LockPoisonedError` instead of handing
    out inconsistent data.
    """

    def __init__(self, name: str = "lock") -> None:
        self._lock = threading.Lock()
        self._name = name
        self._poisoned = False
        self._cause: Optional[BaseException] = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def poisoned(self) -> bool:
        return self._poisoned

    def __enter__(self) -> "PoisoningLock":
        self._lock.acquire()
        if self._poisoned:
            self._lock.release()
            raise LockPoisonedError(f"{self._name} is poisoned") from self._cause
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> bool:
        try:
            if exc is not None and not isinstance(exc, LockPoisonedError):
                self._poisoned = True
                self._cause = exc
                logger.error("%s poisoned by %s: %s", self._name, exc_type.__name__, exc)
        finally:
            self._lock.release()
        return False


__all__ = ["LockPoisonedError", "PoisoningLock"]
