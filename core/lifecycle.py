from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional, Tuple

from shared.guarded_lock import PoisoningLock
from shared.models import ScanState

logger = logging.getLogger(__name__)

_NEXT_STATE = {
    ScanState.NOT_STARTED: ScanState.RUNNING,
    ScanState.RUNNING: ScanState.FINISHED,
}


class ScanLifecycle:
    """
    Process-wide scan status for one scan: NOT_STARTED → RUNNING → FINISHED.

    Only the scan controller calls :meth:`begin` and :meth:`finish`; the
    workers only read :attr:`state`. Every access takes the lock for a single
    comparison or assignment.
    """

    def __init__(self) -> None:
        self._lock = PoisoningLock("lifecycle lock")
        self._state = ScanState.NOT_STARTED
        self._history: List[Tuple[ScanState, float]] = [(ScanState.NOT_STARTED, time.monotonic())]

    @property
    def state(self) -> ScanState:
        with self._lock:
            return self._state

    @property
    def started(self) -> bool:
        return self.state != ScanState.NOT_STARTED

    @property
    def finished(self) -> bool:
        return self.state == ScanState.FINISHED

    def _advance(self, target: ScanState) -> None:
        with self._lock:
            current = self._state
            allowed = _NEXT_STATE.get(current) == target
            if allowed:
                self._state = target
                self._history.append((target, time.monotonic()))
        # Rejected transitions leave the lock usable.
        if not allowed:
            raise RuntimeError(f"Invalid scan transition: {current.name} -> {target.name}")
        logger.info("Scan state -> %s", target.name)

    def begin(self) -> None:
        self._advance(ScanState.RUNNING)

    def finish(self) -> None:
        self._advance(ScanState.FINISHED)

    def abort(self) -> None:
        """Walk the remaining transitions up to FINISHED so waiting workers exit."""
        with self._lock:
            pending = []
            state = self._state
            while state in _NEXT_STATE:
                state = _NEXT_STATE[state]
                pending.append(state)
            now = time.monotonic()
            for state in pending:
                self._history.append((state, now))
            self._state = state
        if pending:
            logger.warning("Scan aborted; state -> %s", state.name)

    def wait_until_started(self, poll_interval: float = 0.001) -> ScanState:
        """Spin until the controller leaves NOT_STARTED, sleeping between checks."""
        while True:
            state = self.state
            if state != ScanState.NOT_STARTED:
                return state
            time.sleep(poll_interval)

    def transitions(self) -> List[Tuple[ScanState, float]]:
        """`(state, monotonic timestamp)` pairs in the order they happened."""
        with self._lock:
            return list(self._history)

    def entered_at(self, state: ScanState) -> Optional[float]:
        stamps: Dict[ScanState, float] = dict(self.transitions())
        return stamps.get(state)


__all__ = ["ScanLifecycle"]
