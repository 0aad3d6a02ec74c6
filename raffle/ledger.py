from __future__ import annotations

import logging
from threading import RLock
from typing import Callable, Dict, Iterable, Mapping, Optional, Tuple

from .addresses import normalize_address
from .errors import InsufficientBalance, TransferFailed

# Called after a contract account has been credited; raise or return False to refuse.
ReceiveHook = Callable[[str, int], Optional[bool]]

LedgerSnapshot = Dict[str, int]


def _check_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError("amount must be int")
    if amount < 0:
        raise ValueError("amount must be non-negative")
    return amount


class Ledger:
    """Native-currency balances keyed by checksum address.

    Plain accounts always accept funds. Addresses registered through
    `register_receiver` behave like contract accounts: their hook runs after the
    credit and may refuse the payment or call back into other code.
    """

    def __init__(self, balances: Optional[Mapping[str, int]] = None) -> None:
        self._lock = RLock()
        self._balances: Dict[str, int] = {}
        self._receivers: Dict[str, ReceiveHook] = {}
        self._logger = logging.getLogger("chainraffle.ledger")
        for address, amount in (balances or {}).items():
            self._balances[normalize_address(address)] = _check_amount(int(amount))

    @property
    def lock(self) -> RLock:
        """Reentrant lock guarding the balances; held while receiver hooks run.

        Code that calls into the ledger while holding its own lock (a raffle)
        shares this one so hooks that call back cannot invert the order.
        """
        return self._lock

    def balance_of(self, address: str) -> int:
        with self._lock:
            return self._balances.get(normalize_address(address), 0)

    def balances(self) -> Iterable[Tuple[str, int]]:
        with self._lock:
            return sorted(self._balances.items())

    def mint(self, address: str, amount: int) -> int:
        """Credit funds arriving from outside the ledger."""
        _check_amount(amount)
        address = normalize_address(address)
        with self._lock:
            self._balances[address] = self._balances.get(address, 0) + amount
            return self._balances[address]

    def register_receiver(self, address: str, hook: ReceiveHook) -> None:
        with self._lock:
            self._receivers[normalize_address(address)] = hook

    def unregister_receiver(self, address: str) -> None:
        with self._lock:
            self._receivers.pop(normalize_address(address), None)

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        _check_amount(amount)
        sender = normalize_address(sender)
        recipient = normalize_address(recipient)
        with self._lock:
            available = self._balances.get(sender, 0)
            if available < amount:
                raise InsufficientBalance(
                    f"insufficient balance: {sender} has {available}, needs {amount}"
                )
            hook = self._receivers.get(recipient)
            before = self.snapshot() if hook is not None else None
            self._balances[sender] = available - amount
            self._balances[recipient] = self._balances.get(recipient, 0) + amount

            if hook is None:
                return
            # A refusing receiver undoes everything done since the debit, including
            # whatever its hook moved.
            try:
                accepted = hook(sender, amount)
            except Exception as exc:
                self.restore(before)
                self._logger.warning("Receiver %s reverted on %s wei: %s", recipient, amount, exc)
                raise TransferFailed(f"transfer to {recipient} failed: {exc}") from exc
            if accepted is False:
                self.restore(before)
                self._logger.warning("Receiver %s refused %s wei", recipient, amount)
                raise TransferFailed(f"transfer to {recipient} refused")

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return dict(self._balances)

    def restore(self, snapshot: LedgerSnapshot) -> None:
        with self._lock:
            self._balances = dict(snapshot)

    # Journal interface used by `raffle.transaction.Transaction`.
    checkpoint = snapshot
    rollback = restore
