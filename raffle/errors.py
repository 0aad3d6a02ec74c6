from __future__ import annotations

from typing import Optional


class RaffleError(Exception):
    """Base class for every rejection raised by the raffle core."""

    code = "raffle_error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class NotEnoughPayment(RaffleError):
    code = "not_enough_payment"


class RaffleNotOpen(RaffleError):
    code = "raffle_not_open"


class NotEnoughTimePassed(RaffleError):
    code = "not_enough_time_passed"


class NoPlayers(RaffleError):
    code = "no_players"


class CallbackRejected(RaffleError):
    """A randomness callback that must not touch state."""

    code = "callback_rejected"


class UnauthorizedCallback(CallbackRejected):
    code = "unauthorized_callback"


class UnknownRequest(CallbackRejected):
    code = "unknown_request"


class InvalidRandomWords(RaffleError):
    code = "invalid_random_words"


class TransferFailed(RaffleError):
    code = "transfer_failed"


class InsufficientBalance(RaffleError):
    code = "insufficient_balance"


class InvalidAddress(RaffleError):
    code = "invalid_address"


# Condition names used when describing the error taxonomy.
InsufficientPayment = NotEnoughPayment
RaffleClosed = RaffleNotOpen
IntervalNotElapsed = NotEnoughTimePassed
NoEligibleEntrants = NoPlayers
UnauthorizedOrMismatchedCallback = CallbackRejected
PayoutTransferFailed = TransferFailed
