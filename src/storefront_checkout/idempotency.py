"""
Duplicate-submission protection for checkout operations.

Two mechanisms:

- ``InFlightGuard`` rejects a second request for the same resource while the
  first is still awaiting its collaborator (double-clicked "Apply" or "Pay").
  The check happens locally, before anything reaches the network.
- ``generate_idempotency_key`` derives a deterministic key that is sent with
  payment-intent creation so the backend can de-duplicate retries of the
  same attempt.
"""
from __future__ import annotations

import hashlib
import logging
from contextlib import contextmanager
from typing import Any, Iterator

logger = logging.getLogger(__name__)


class InFlightGuard:
    """
    Allows at most one in-flight operation per resource.

    The event loop is single-threaded, so the check-and-set in ``try_acquire``
    cannot interleave with another coroutine; no lock is needed.
    """

    def __init__(self, resource: str):
        self.resource = resource
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    def try_acquire(self) -> bool:
        if self._busy:
            logger.info(f"Rejected duplicate submission for {self.resource}")
            return False
        self._busy = True
        return True

    def release(self) -> None:
        self._busy = False

    @contextmanager
    def hold(self) -> Iterator[None]:
        """Hold an already acquired guard until the block exits."""
        try:
            yield
        finally:
            self.release()


def generate_idempotency_key(
    prefix: str,
    *components: Any,
) -> str:
    """
    Generate a deterministic idempotency key from components.

    Usage:
        key = generate_idempotency_key("payment_intent", session_id, amount)
    """
    parts = [str(prefix)]
    for comp in components:
        if comp is not None:
            parts.append(str(comp))

    combined = ":".join(parts)
    return hashlib.sha256(combined.encode()).hexdigest()[:32]
