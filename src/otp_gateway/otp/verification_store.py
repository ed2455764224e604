"""Short-lived "recently passed OTP" flags, redeemable exactly once.

The OTP check and the action it unlocks (for example the IdP's PreAuth
webhook) happen in separate requests.  A flag bridges them: it is set when a
code is accepted and consumed by the later step.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from otp_gateway.otp.locks import ReadWriteLock
from otp_gateway.otp.sweeper import PeriodicSweeper

VERIFICATION_TTL_SECONDS = 600  # 10 minutes
VERIFICATION_SWEEP_INTERVAL_SECONDS = 60


@dataclass
class _Verification:
    verified: bool
    verified_at: float
    expires_at: float


class VerificationStore:
    """Thread-safe in-memory store of verification flags keyed by subject."""

    def __init__(
        self,
        ttl_seconds: float = VERIFICATION_TTL_SECONDS,
        sweep_interval: float | None = VERIFICATION_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"verification TTL must be positive, got {ttl_seconds}")
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = ReadWriteLock()
        self._verifications: dict[str, _Verification] = {}

        self._sweeper: PeriodicSweeper | None = None
        if sweep_interval is not None:
            self._sweeper = PeriodicSweeper(
                "verification", sweep_interval, self.sweep_expired
            )
            self._sweeper.start()

    def mark_verified(self, subject: str) -> None:
        """Flag *subject* as verified; calling again restarts the window."""
        now = self._clock()
        flag = _Verification(verified=True, verified_at=now, expires_at=now + self._ttl)
        with self._lock.write_locked():
            self._verifications[subject] = flag

    def is_verified(self, subject: str) -> bool:
        """Peek at the flag without consuming it."""
        with self._lock.read_locked():
            flag = self._verifications.get(subject)
            if flag is None or self._clock() >= flag.expires_at:
                return False
            return flag.verified

    def consume(self, subject: str) -> bool:
        """Atomically read and delete the flag.

        Returns ``True`` at most once per :meth:`mark_verified`.  A flag that
        is present but expired is deleted and reported as ``False``.
        """
        with self._lock.write_locked():
            flag = self._verifications.pop(subject, None)
            if flag is None:
                return False
            return flag.verified and self._clock() < flag.expires_at

    def sweep_expired(self) -> int:
        """Remove every expired flag and return how many were removed."""
        with self._lock.write_locked():
            now = self._clock()
            expired = [s for s, v in self._verifications.items() if now >= v.expires_at]
            for subject in expired:
                del self._verifications[subject]
        return len(expired)

    @property
    def active_count(self) -> int:
        with self._lock.read_locked():
            return len(self._verifications)

    @property
    def is_sweeping(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_running

    def close(self) -> None:
        """Stop the background sweeper.  Safe to call more than once."""
        if self._sweeper is not None:
            self._sweeper.stop()

    def __enter__(self) -> VerificationStore:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
