"""Exceptions raised by Cook'it domain services."""

from __future__ import annotations

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."


class CookitError(RuntimeError):
    """Base class for domain exceptions."""

    user_message = GENERIC_ERROR_MESSAGE
    is_integrity_incident = False


class NotFound(CookitError):
    user_message = "Not found."


class AccountNotFound(NotFound):
    user_message = "User not found."


class ItemNotFound(NotFound):
    user_message = "Cook not found in your inventory."


class TradeNotFound(NotFound):
    user_message = "Trade not found."


class UnknownPack(NotFound):
    user_message = "Invalid pack type."


class Banned(CookitError):
    """Raised when a banned account attempts an action."""

    user_message = "Your account has been banned. Please contact support."


class InsufficientFunds(CookitError):
    """Raised when a balance cannot cover a purchase."""

    user_message = "Not enough tokens."


class AlreadyClaimed(CookitError):
    """Raised when the daily claim is attempted before the cooldown expires."""

    user_message = "You've already claimed your daily tokens."

    def __init__(self, seconds_remaining: int) -> None:
        super().__init__(f"Claim available in {seconds_remaining} seconds")
        self.seconds_remaining = seconds_remaining


class OwnershipError(CookitError):
    user_message = "That cook does not belong to the expected owner."


class StaleTrade(CookitError):
    """Raised when trade items changed hands after the offer was made."""

    user_message = "One or both cooks are no longer available for this trade."


class TradeClosed(CookitError):
    user_message = "Trade not found or already processed."


class NotPermitted(CookitError):
    user_message = "You are not allowed to do that."


class ConfigError(CookitError):
    """Raised when the rarity table or pack catalog is malformed."""

    user_message = "Game configuration error. Please try again."


class PackOpenFailed(CookitError):
    """Raised when the item grant failed and the debit was reverted."""

    user_message = "Failed to open pack. Please try again."


class CompensationFailure(CookitError):
    """Debit applied, item grant failed and the refund failed as well.

    Needs manual reconciliation: the account lost ``amount`` tokens.
    """

    user_message = "Failed to open pack. Support has been notified."
    is_integrity_incident = True

    def __init__(self, handle: str, amount: int, item_id: str) -> None:
        super().__init__(
            f"Refund of {amount} tokens to {handle} failed after item {item_id} was not granted"
        )
        self.handle = handle
        self.amount = amount
        self.item_id = item_id


class HandleTaken(CookitError):
    user_message = "Username is already taken."


class InvalidCredentials(CookitError):
    user_message = "Invalid credentials."


def describe_error(exc: BaseException) -> str:
    """Return a short message that is safe to show to the player."""
    if isinstance(exc, CookitError):
        return exc.user_message
    return GENERIC_ERROR_MESSAGE
