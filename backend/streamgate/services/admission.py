"""
StreamGate Backend - Admission Controller
===========================================

What:  Caps the number of streams this process relays at the same time.
How:   An in-memory counter checked and incremented with no await in between,
       so the check-then-increment is atomic on the event loop. Callers get an
       AdmissionSlot guard whose release() decrements the counter exactly once.
Who:   StreamService acquires a slot after authentication; the relay's
       response owns it until the stream ends.

Scope:
    This is a per-process limit. With several uvicorn workers or several
    instances each one enforces MAX_CONCURRENT_STREAMS independently.
    A global limit needs a shared counter (e.g. Redis INCR/DECR with a TTL)
    behind the same acquire/release contract.
"""

import logging

from streamgate.config import settings
from streamgate.exceptions import AdmissionRejectedError

logger = logging.getLogger(__name__)


class AdmissionSlot:
    """
    One unit of stream capacity.

    release() is idempotent: only the first call returns capacity to the
    controller, so cleanup paths can call it without tracking who already did.
    Also usable as a (sync) context manager.
    """

    def __init__(self, controller: "AdmissionController"):
        self._controller = controller
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._controller.release()

    def __enter__(self) -> "AdmissionSlot":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class AdmissionController:
    """
    In-flight stream counter with a fixed ceiling.

    Thread Safety:
        Safe for single-process asyncio: try_acquire() never awaits.
        NOT safe to share across threads or processes.
    """

    def __init__(self, max_concurrent: int = 10):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._max_concurrent = max_concurrent
        self._active = 0

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def active(self) -> int:
        return self._active

    def try_acquire(self) -> bool:
        """Take one unit of capacity if any is left."""
        if self._active >= self._max_concurrent:
            return False
        self._active += 1
        return True

    def release(self) -> None:
        """Return one unit of capacity; never drops below zero."""
        if self._active == 0:
            logger.warning("Admission release without a matching acquire")
            return
        self._active -= 1

    def acquire(self) -> AdmissionSlot:
        """
        Acquire a slot or raise.

        Returns:
            AdmissionSlot that must be released when the stream ends.

        Raises:
            AdmissionRejectedError: The ceiling has been reached (→ 429).
        """
        if not self.try_acquire():
            logger.warning(
                "Admission rejected: %d/%d streams active",
                self._active,
                self._max_concurrent,
            )
            raise AdmissionRejectedError(max_concurrent=self._max_concurrent)
        return AdmissionSlot(self)


# ── Singleton Instance ────────────────────────────────────────────────────
# Process-wide: every request must see the same counter.
# The ceiling is read from settings once, at import.
admission_controller = AdmissionController(settings.max_concurrent_streams)
