from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from sqlalchemy.orm import Session

from oracle.coordinator import RandomnessConsumer, RandomnessCoordinator, derive_request_id
from oracle.errors import RequestNotFound
from oracle.types import PendingRequest, RandomnessRequest
from raffle.addresses import normalize_address
from raffle.clock import Clock, SystemClock
from raffle.events import RaffleEvent
from raffle.ledger import Ledger
from raffle.machine import Raffle
from raffle.types import RaffleState

from ..config import AppSettings, load_settings
from ..db import session_scope
from ..models import AccountRecord, RaffleRecord, RandomnessRequestRecord

RAFFLE_ID = 1


class SqlCoordinator(RandomnessCoordinator):
    """Coordinator whose requests are rows in the raffle's own database.

    Requests are written in the caller's session, so they commit or roll back
    together with the raffle state. The off-system oracle reads pending rows
    and answers through the fulfillment endpoint.
    """

    def __init__(self, session: Session, address: str, nonce: int, clock: Clock) -> None:
        self._session = session
        self._address = normalize_address(address)
        self.nonce = nonce
        self._clock = clock

    @property
    def address(self) -> str:
        return self._address

    def request_random_words(self, request: RandomnessRequest, consumer: RandomnessConsumer) -> int:
        self.nonce += 1
        request_id = derive_request_id(
            request.key_hash, consumer.address, request.subscription_id, self.nonce
        )
        pending = PendingRequest(
            request_id=request_id,
            consumer=consumer.address,
            request=request,
            created_at=self._clock.now(),
        )
        self._session.add(RandomnessRequestRecord.from_pending(pending))
        return request_id

    def pending_requests(self) -> List[PendingRequest]:
        rows = (
            self._session.query(RandomnessRequestRecord)
            .filter(RandomnessRequestRecord.status == "pending")
            .order_by(RandomnessRequestRecord.created_at)
            .all()
        )
        return [row.to_pending() for row in rows]

    def mark_fulfilled(self, request_id: int) -> None:
        row = self._session.get(RandomnessRequestRecord, str(request_id))
        if row is None or row.status != "pending":
            raise RequestNotFound(f"no pending request {request_id}")
        row.status = "fulfilled"
        row.fulfilled_at = self._clock.now()


@dataclass
class RaffleUnit:
    raffle: Raffle
    ledger: Ledger
    coordinator: SqlCoordinator


class RaffleRepository:
    """Loads the raffle aggregate from storage and saves it back atomically."""

    def __init__(self, settings: Optional[AppSettings] = None, clock: Optional[Clock] = None) -> None:
        self._settings = settings
        self.clock: Clock = clock or SystemClock()
        self._logger = logging.getLogger("chainraffle.backend")
        # One raffle row: operations are serialised within the process.
        self._lock = threading.RLock()

    @property
    def settings(self) -> AppSettings:
        return self._settings or load_settings()

    def ensure_raffle(self) -> None:
        cfg = self.settings
        with session_scope() as session:
            record = session.get(RaffleRecord, RAFFLE_ID)
            if record is not None:
                self._warn_on_drift(record, cfg)
                return
            record = RaffleRecord(
                id=RAFFLE_ID,
                address=normalize_address(cfg.raffle.address),
                entrance_fee=str(cfg.raffle.entrance_fee),
                interval=cfg.raffle.interval,
                coordinator=normalize_address(cfg.coordinator.address),
                key_hash=cfg.raffle.key_hash,
                subscription_id=str(cfg.raffle.subscription_id),
                callback_gas_limit=cfg.raffle.callback_gas_limit,
                state=RaffleState.OPEN.name,
                last_timestamp=self.clock.now(),
                request_nonce=0,
            )
            record.set_players([])
            # Validates the configuration before anything is stored.
            record.to_config()
            session.add(record)
            self._logger.info("Created raffle at %s", record.address)

    def _warn_on_drift(self, record: RaffleRecord, cfg: AppSettings) -> None:
        """The stored raffle's parameters are immutable; log every setting that disagrees."""
        stored = record.to_config()
        configured = {
            "address": (record.address, normalize_address(cfg.raffle.address)),
            "entrance_fee": (stored.entrance_fee, cfg.raffle.entrance_fee),
            "interval": (stored.interval, cfg.raffle.interval),
            "coordinator": (stored.coordinator, normalize_address(cfg.coordinator.address)),
            "key_hash": (stored.key_hash, cfg.raffle.key_hash),
            "subscription_id": (stored.subscription_id, cfg.raffle.subscription_id),
            "callback_gas_limit": (stored.callback_gas_limit, cfg.raffle.callback_gas_limit),
        }
        for name, (kept, ignored) in configured.items():
            if kept != ignored:
                self._logger.warning(
                    "Stored raffle keeps %s=%s; configured value %s is ignored", name, kept, ignored
                )

    def _load(self, session: Session) -> Tuple[RaffleRecord, List[AccountRecord], RaffleUnit]:
        record = session.get(RaffleRecord, RAFFLE_ID)
        if record is None:
            raise RuntimeError("raffle has not been initialised")
        accounts = session.query(AccountRecord).all()
        ledger = Ledger({a.address: int(a.balance) for a in accounts})
        coordinator = SqlCoordinator(session, record.coordinator, record.request_nonce, self.clock)
        raffle = Raffle(
            record.to_config(),
            coordinator,
            ledger,
            address=record.address,
            clock=self.clock,
            snapshot=record.to_snapshot(),
        )
        return record, accounts, RaffleUnit(raffle=raffle, ledger=ledger, coordinator=coordinator)

    @contextmanager
    def unit(self) -> Iterator[RaffleUnit]:
        """Yield the raffle for one operation; persist it only if the block succeeds."""
        with self._lock, session_scope() as session:
            record, accounts, unit = self._load(session)
            unit.raffle.events.subscribe(self._log_event)

            yield unit

            record.apply_snapshot(unit.raffle.snapshot())
            record.request_nonce = unit.coordinator.nonce
            self._save_balances(session, unit.ledger, {a.address: a for a in accounts})

    @contextmanager
    def view(self) -> Iterator[RaffleUnit]:
        """Yield the raffle for reading; nothing is written back."""
        with session_scope() as session:
            _, _, unit = self._load(session)
            yield unit
            session.expunge_all()

    def _save_balances(self, session: Session, ledger: Ledger, existing) -> None:
        for address, balance in ledger.balances():
            row = existing.get(address)
            if row is None:
                session.add(AccountRecord(address=address, balance=str(balance)))
            elif row.balance != str(balance):
                row.balance = str(balance)

    def _log_event(self, event: RaffleEvent) -> None:
        self._logger.info("event %s %s", event.name, event.to_dict()["args"])


raffle_repo = RaffleRepository()
