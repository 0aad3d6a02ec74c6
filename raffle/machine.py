from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence, Tuple

from oracle.coordinator import RandomnessCoordinator
from oracle.types import RandomnessRequest

from .addresses import normalize_address
from .clock import Clock, SystemClock
from .errors import (
    InvalidRandomWords,
    NoPlayers,
    NotEnoughPayment,
    NotEnoughTimePassed,
    RaffleNotOpen,
    UnauthorizedCallback,
    UnknownRequest,
)
from .events import EnteredRaffle, EventLog, PickedWinner, RequestedRaffleWinner
from .ledger import Ledger
from .transaction import Transaction
from .types import NUM_WORDS, REQUEST_CONFIRMATIONS, RaffleConfig, RaffleSnapshot, RaffleState


def select_winner_index(random_value: int, player_count: int) -> int:
    """Index of the winning slot: ``random_value mod player_count``."""
    if player_count <= 0:
        raise NoPlayers("cannot pick a winner from an empty pool")
    return int(random_value) % player_count


class _StateJournal:
    """Checkpoints the raffle's mutable fields for `Transaction`."""

    def __init__(self, raffle: "Raffle") -> None:
        self._raffle = raffle

    def checkpoint(self) -> RaffleSnapshot:
        return self._raffle.snapshot()

    def rollback(self, snapshot: RaffleSnapshot) -> None:
        self._raffle._load(snapshot)


class Raffle:
    """Single raffle instance driven by an asynchronous randomness coordinator.

    Entrants pay ``entrance_fee`` while the raffle is OPEN. Once ``interval``
    seconds have passed since the last draw, anyone may call `request_draw`,
    which moves the raffle to CALCULATING and asks the coordinator for one
    random word. The coordinator later calls `on_randomness_delivered`; the
    winner is ``players[word % len(players)]`` and receives the whole balance.

    Every operation runs as one `Transaction`: it either completes or leaves
    state, balances and the event log exactly as they were.
    """

    def __init__(
        self,
        config: RaffleConfig,
        coordinator: RandomnessCoordinator,
        ledger: Ledger,
        *,
        address: str,
        clock: Optional[Clock] = None,
        events: Optional[EventLog] = None,
        logger: Optional[logging.Logger] = None,
        snapshot: Optional[RaffleSnapshot] = None,
    ) -> None:
        self._config = config
        self._coordinator = coordinator
        self._ledger = ledger
        self._address = normalize_address(address)
        self._clock = clock or SystemClock()
        self._events = events or EventLog()
        self._logger = logger or logging.getLogger("chainraffle.raffle")
        # Shares the ledger lock: a receiver hook calling back into the raffle
        # and a raffle operation moving funds take the same single lock.
        self._lock = ledger.lock
        self._depth = 0
        self._journal = _StateJournal(self)

        self._state = RaffleState.OPEN
        self._players: List[str] = []
        self._last_timestamp = self._clock.now()
        self._recent_winner: Optional[str] = None
        self._pending_request_id: Optional[int] = None
        if snapshot is not None:
            self._load(snapshot)

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    def enter(self, caller: str, payment: int) -> None:
        caller = normalize_address(caller)
        with self._lock, self._unit_of_work():
            if payment < self._config.entrance_fee:
                raise NotEnoughPayment(
                    f"payment {payment} is below the entrance fee {self._config.entrance_fee}"
                )
            self._require_open()
            self._ledger.transfer(caller, self._address, payment)
            self._players.append(caller)
            self._events.emit(EnteredRaffle(player=caller))
        self._logger.info("Player %s entered with %s wei", caller, payment)

    def check_draw_ready(self, check_data: bytes = b"") -> Tuple[bool, bytes]:
        """Whether `request_draw` would currently be accepted.

        The coordinator subscription being funded is the caller's concern and
        is not checked here.
        """
        with self._lock:
            time_passed = self._clock.now() - self._last_timestamp >= self._config.interval
            is_open = self._state is RaffleState.OPEN
            has_players = len(self._players) > 0
            has_balance = self.get_balance() > 0
            return time_passed and is_open and has_players and has_balance, b""

    def request_draw(self, caller: Optional[str] = None) -> int:
        with self._lock, self._unit_of_work():
            elapsed = self._clock.now() - self._last_timestamp
            if elapsed < self._config.interval:
                raise NotEnoughTimePassed(
                    f"only {elapsed}s of the {self._config.interval}s interval have passed"
                )
            self._require_open()
            if not self._players:
                raise NoPlayers("no players in raffle")

            self._state = RaffleState.CALCULATING
            request = RandomnessRequest(
                key_hash=self._config.key_hash,
                subscription_id=self._config.subscription_id,
                request_confirmations=REQUEST_CONFIRMATIONS,
                callback_gas_limit=self._config.callback_gas_limit,
                num_words=NUM_WORDS,
            )
            request_id = self._coordinator.request_random_words(request, self)
            self._pending_request_id = request_id
            self._events.emit(RequestedRaffleWinner(request_id=request_id))
        self._logger.info(
            "Draw requested by %s: request=%s players=%s",
            caller or "anonymous",
            request_id,
            len(self._players),
        )
        return request_id

    def on_randomness_delivered(
        self, caller: str, request_id: int, random_words: Sequence[int]
    ) -> str:
        """Coordinator callback; picks the winner and pays out the pool."""
        with self._lock:
            if normalize_address(caller) != self._config.coordinator:
                self._logger.warning("Rejected randomness callback from %s", caller)
                raise UnauthorizedCallback(f"{caller} is not the coordinator")
            if self._state is not RaffleState.CALCULATING or request_id != self._pending_request_id:
                self._logger.warning(
                    "Rejected randomness for request %s (pending=%s, state=%s)",
                    request_id,
                    self._pending_request_id,
                    self._state.name,
                )
                raise UnknownRequest(f"request {request_id} is not the pending request")
            words = self._validate_words(random_words)

            index = select_winner_index(words[0], len(self._players))
            winner = self._players[index]
            with self._unit_of_work() as tx:
                prize = self.get_balance()
                self._recent_winner = winner
                self._state = RaffleState.OPEN
                self._players = []
                self._last_timestamp = self._clock.now()
                self._pending_request_id = None
                self._events.emit(PickedWinner(winner=winner))
                tx.defer(self._pay_winner, winner, prize)
        self._logger.info("Winner picked: %s (slot %s) prize=%s wei", winner, index, prize)
        return winner

    # ------------------------------------------------------------------ #
    # Getters
    # ------------------------------------------------------------------ #

    @property
    def address(self) -> str:
        return self._address

    @property
    def config(self) -> RaffleConfig:
        return self._config

    @property
    def events(self) -> EventLog:
        return self._events

    def get_entrance_fee(self) -> int:
        return self._config.entrance_fee

    def get_interval(self) -> int:
        return self._config.interval

    def get_num_words(self) -> int:
        return NUM_WORDS

    def get_request_confirmations(self) -> int:
        return REQUEST_CONFIRMATIONS

    def get_raffle_state(self) -> RaffleState:
        return self._state

    def get_player(self, index: int) -> str:
        with self._lock:
            return self._players[index]

    def get_players(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._players)

    def get_number_of_players(self) -> int:
        with self._lock:
            return len(self._players)

    def get_recent_winner(self) -> Optional[str]:
        return self._recent_winner

    def get_last_timestamp(self) -> int:
        return self._last_timestamp

    def get_pending_request_id(self) -> Optional[int]:
        return self._pending_request_id

    def get_balance(self) -> int:
        return self._ledger.balance_of(self._address)

    def snapshot(self) -> RaffleSnapshot:
        with self._lock:
            return RaffleSnapshot(
                state=self._state,
                players=tuple(self._players),
                last_timestamp=self._last_timestamp,
                recent_winner=self._recent_winner,
                pending_request_id=self._pending_request_id,
            )

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    @contextmanager
    def _unit_of_work(self) -> Iterator[Transaction]:
        self._depth += 1
        try:
            with Transaction([self._journal, self._ledger, self._events]) as tx:
                yield tx
        finally:
            self._depth -= 1
        if self._depth == 0:
            self._events.publish()

    def _require_open(self) -> None:
        if self._state is RaffleState.OPEN:
            return
        if self._state is RaffleState.CALCULATING:
            raise RaffleNotOpen("raffle is calculating a winner")
        raise AssertionError(f"unhandled raffle state {self._state!r}")

    @staticmethod
    def _validate_words(random_words: Sequence[int]) -> List[int]:
        words = list(random_words or [])
        if not words:
            raise InvalidRandomWords("no random words delivered")
        for word in words:
            if isinstance(word, bool) or not isinstance(word, int) or word < 0:
                raise InvalidRandomWords(f"invalid random word {word!r}")
        return words

    def _pay_winner(self, winner: str, prize: int) -> None:
        try:
            self._ledger.transfer(self._address, winner, prize)
        except Exception:
            self._logger.warning("Payout of %s wei to %s failed; draw stays pending", prize, winner)
            raise

    def _load(self, snapshot: RaffleSnapshot) -> None:
        self._state = RaffleState(snapshot.state)
        self._players = list(snapshot.players)
        self._last_timestamp = int(snapshot.last_timestamp)
        self._recent_winner = snapshot.recent_winner
        self._pending_request_id = snapshot.pending_request_id
