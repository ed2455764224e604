"""Typed outcomes of a failed OTP verification.

The store raises these and never logs or retries; the caller decides what to
tell the user.  ``code`` is a stable machine-readable identifier.
"""


class OTPError(Exception):
    """Base class for every OTP verification failure."""

    code = "otp_error"
    message = "OTP verification failed"

    def __init__(self, subject: str) -> None:
        super().__init__(self.message)
        self.subject = subject


class OTPNotFoundError(OTPError):
    """No challenge exists for the subject; a fresh code must be requested."""

    code = "not_found"
    message = "OTP code not found for this phone number"


class OTPExpiredError(OTPError):
    """The challenge aged out and has been purged."""

    code = "expired"
    message = "OTP code has expired"


class OTPAttemptsExceededError(OTPError):
    """Too many wrong guesses; the challenge has been purged."""

    code = "attempts_exceeded"
    message = "maximum OTP attempts exceeded"


class OTPMismatchError(OTPError):
    """Wrong code; the challenge stays live and may be retried."""

    code = "mismatch"
    message = "invalid OTP code"
