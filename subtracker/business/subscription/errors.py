from __future__ import annotations

from datetime import date


class RenewalPolicyError(ValueError):
    """Base error for renewal policy violations."""


class InvalidFrequencyError(RenewalPolicyError):
    """Raised when a renewal date must be derived from a missing or unknown frequency."""

    def __init__(self, frequency: object) -> None:
        self.frequency = frequency
        super().__init__(f"invalid frequency: {frequency!r}")


class InvalidDateOrderError(RenewalPolicyError):
    """Raised when a renewal date does not fall strictly after the start date."""

    def __init__(self, start_date: date, renewal_date: date) -> None:
        self.start_date = start_date
        self.renewal_date = renewal_date
        super().__init__(
            f"renewal date must be after start date (start_date={start_date.isoformat()}, "
            f"renewal_date={renewal_date.isoformat()})"
        )
