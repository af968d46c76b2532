"""Error types shared by the scheduler, the store and the command layer.

None of these are fatal: each one is recovered at a known boundary.
"""

from __future__ import annotations


class ShieldBotError(Exception):
    """Base class for bot errors."""


class ParseError(ShieldBotError):
    """Malformed date, time or offset input."""


class PersistedStateError(ShieldBotError):
    def __init__(self, key: str, raw: object):
        self.key = key
        self.raw = raw
        super().__init__(f"Stored value for {key} is not a valid instant: {raw!r}")


class DeliveryError(ShieldBotError):
    """The ping could not be delivered (channel missing, permissions, timeout)."""


class ConfigValidationError(ShieldBotError):
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)
