"""Phone-number normalisation and registration policy."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from otp_gateway.config import Settings

_SEPARATORS = re.compile(r"[\s\-().]")
_E164 = re.compile(r"^\+[1-9]\d{6,14}$")


def normalize_phone(raw: str) -> str:
    """Strip formatting so the same number always maps to the same subject.

    ``"+7 (999) 123-45-67"`` → ``"+79991234567"``.  Numbers without a
    leading ``+`` are left as digits only; validity is checked separately.
    """
    return _SEPARATORS.sub("", raw.strip())


def is_e164(phone: str) -> bool:
    return bool(_E164.match(phone))


class PhoneRejected(Exception):
    """The phone number fails the registration policy."""


class PhoneBlacklisted(PhoneRejected):
    def __init__(self) -> None:
        super().__init__("this phone number is not allowed")


class PhoneRegionNotAllowed(PhoneRejected):
    def __init__(self, prefix: str) -> None:
        super().__init__(f"only phone numbers starting with {prefix} are allowed")
        self.prefix = prefix


@dataclass
class PhonePolicy:
    """Who may register: not blacklisted, and inside the allowed region prefix.

    An empty ``allowed_prefix`` allows every region.
    """

    allowed_prefix: str = "+7"
    blacklist: set[str] = field(default_factory=set)

    def check(self, phone: str) -> None:
        """Raise :class:`PhoneRejected` if *phone* may not register."""
        if phone in self.blacklist:
            raise PhoneBlacklisted()
        if self.allowed_prefix and not phone.startswith(self.allowed_prefix):
            raise PhoneRegionNotAllowed(self.allowed_prefix)

    @classmethod
    def from_settings(cls, settings: Settings) -> PhonePolicy:
        return cls(
            allowed_prefix=settings.allowed_phone_prefix,
            blacklist={normalize_phone(p) for p in settings.phone_blacklist},
        )
