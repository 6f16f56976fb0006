"""
joyrewards.errors — Domain Error Taxonomy
==========================================

Expected, recoverable conditions raised by the service layer.  Routes turn
them into HTTP 400 ``{"error": reason}``; none of them should be logged as
an exception.
"""

from __future__ import annotations


class RewardError(Exception):
    """Base class.  ``reason`` is safe to show to the end user."""

    reason = "Something went wrong"

    def __init__(self, reason: str | None = None) -> None:
        if reason is not None:
            self.reason = reason
        super().__init__(self.reason)


class InsufficientFunds(RewardError):
    reason = "Not enough coins!"

    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(
            f"Not enough coins! You need {required} coins but have {available}."
        )


class NotFound(RewardError):
    reason = "not found"


class AlreadyScratched(RewardError):
    reason = "already scratched"


class CardExpired(RewardError):
    reason = "expired"


class EmptyCollection(RewardError):
    reason = "no stickers available"


class DuplicateAward(RewardError):
    """The (user, period, scope) award record already exists."""

    reason = "already awarded"


class LimitReached(RewardError):
    reason = "daily limit reached"
