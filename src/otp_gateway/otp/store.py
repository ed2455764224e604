"""In-memory OTP challenge store with expiry, attempt limiting and sweeping."""

from __future__ import annotations

import hmac
import time
from collections.abc import Callable
from dataclasses import dataclass

from otp_gateway.otp.codegen import DEFAULT_CODE_LENGTH, generate_code
from otp_gateway.otp.errors import (
    OTPAttemptsExceededError,
    OTPExpiredError,
    OTPMismatchError,
    OTPNotFoundError,
)
from otp_gateway.otp.locks import ReadWriteLock
from otp_gateway.otp.sweeper import PeriodicSweeper

# OTP validity period in seconds
OTP_TTL_SECONDS = 300  # 5 minutes
OTP_MAX_ATTEMPTS = 3
OTP_SWEEP_INTERVAL_SECONDS = 300


@dataclass
class _Challenge:
    code: str
    created_at: float
    expires_at: float
    attempts: int = 0


class OTPStore:
    """Thread-safe in-memory OTP store.

    Each entry maps ``subject → challenge`` (the subject is a normalised
    phone number).  There is at most one live challenge per subject:
    :meth:`generate` replaces whatever was there, attempts included.

    Expired challenges are removed lazily by :meth:`verify` and eagerly by a
    background sweeper started on construction.  Call :meth:`close` (or use
    the store as a context manager) to stop the sweeper.
    """

    def __init__(
        self,
        ttl_seconds: float = OTP_TTL_SECONDS,
        max_attempts: int = OTP_MAX_ATTEMPTS,
        code_length: int = DEFAULT_CODE_LENGTH,
        sweep_interval: float | None = OTP_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"OTP TTL must be positive, got {ttl_seconds}")
        if max_attempts <= 0:
            raise ValueError(f"max attempts must be positive, got {max_attempts}")
        if code_length <= 0:
            raise ValueError(f"code length must be positive, got {code_length}")
        self._ttl = ttl_seconds
        self._max_attempts = max_attempts
        self._code_length = code_length
        self._clock = clock
        self._lock = ReadWriteLock()
        self._challenges: dict[str, _Challenge] = {}

        self._sweeper: PeriodicSweeper | None = None
        if sweep_interval is not None:
            self._sweeper = PeriodicSweeper("otp", sweep_interval, self.sweep_expired)
            self._sweeper.start()

    def generate(self, subject: str) -> str:
        """Generate and store a fresh code for *subject*, returning it.

        Delivering the code (SMS, email …) is the caller's job.
        """
        code = generate_code(self._code_length)
        now = self._clock()
        challenge = _Challenge(code=code, created_at=now, expires_at=now + self._ttl)
        with self._lock.write_locked():
            self._challenges[subject] = challenge
        return code

    def verify(self, subject: str, code: str) -> None:
        """Check *code* against the live challenge for *subject*.

        Returns ``None`` on success and consumes the challenge.  Otherwise
        raises, checking in this order:

        * :class:`OTPNotFoundError` — nothing pending;
        * :class:`OTPExpiredError` — past its expiry (challenge dropped);
        * :class:`OTPAttemptsExceededError` — attempt budget already spent,
          even if *code* is right (challenge dropped);
        * :class:`OTPMismatchError` — wrong code (attempt counted, challenge kept).
        """
        with self._lock.write_locked():
            challenge = self._challenges.get(subject)
            if challenge is None:
                raise OTPNotFoundError(subject)

            if self._clock() >= challenge.expires_at:
                del self._challenges[subject]
                raise OTPExpiredError(subject)

            if challenge.attempts >= self._max_attempts:
                del self._challenges[subject]
                raise OTPAttemptsExceededError(subject)

            if not hmac.compare_digest(challenge.code.encode(), code.encode()):
                challenge.attempts += 1
                raise OTPMismatchError(subject)

            # One-time use
            del self._challenges[subject]

    def delete(self, subject: str) -> None:
        """Drop any pending challenge for *subject*; no-op if there is none."""
        with self._lock.write_locked():
            self._challenges.pop(subject, None)

    def sweep_expired(self) -> int:
        """Remove every expired challenge and return how many were removed."""
        with self._lock.write_locked():
            now = self._clock()
            expired = [s for s, c in self._challenges.items() if now >= c.expires_at]
            for subject in expired:
                del self._challenges[subject]
        return len(expired)

    @property
    def pending_count(self) -> int:
        """Number of challenges currently held (expired ones included)."""
        with self._lock.read_locked():
            return len(self._challenges)

    @property
    def is_sweeping(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_running

    def close(self) -> None:
        """Stop the background sweeper.  Safe to call more than once."""
        if self._sweeper is not None:
            self._sweeper.stop()

    def __enter__(self) -> OTPStore:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
