from __future__ import annotations

import datetime as dt
import json
from typing import List

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

from oracle.types import PendingRequest, RandomnessRequest
from raffle.types import RaffleConfig, RaffleSnapshot, RaffleState

Base = declarative_base()

# Wei amounts and request ids are 256-bit values; they are stored as decimal text.
UINT256_DIGITS = 78


class RaffleRecord(Base):
    __tablename__ = "raffle"

    id = Column(Integer, primary_key=True, default=1)
    address = Column(String(42), nullable=False)
    entrance_fee = Column(String(UINT256_DIGITS), nullable=False)
    interval = Column(Integer, nullable=False)
    coordinator = Column(String(42), nullable=False)
    key_hash = Column(String(128), nullable=False)
    subscription_id = Column(String(UINT256_DIGITS), nullable=False)
    callback_gas_limit = Column(Integer, nullable=False)
    state = Column(String(16), nullable=False, default=RaffleState.OPEN.name)
    players = Column(Text, nullable=False, default="[]")
    last_timestamp = Column(Integer, nullable=False)
    recent_winner = Column(String(42), nullable=True)
    pending_request_id = Column(String(UINT256_DIGITS), nullable=True)
    request_nonce = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=dt.datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow, nullable=False)

    def set_players(self, players: List[str]) -> None:
        self.players = json.dumps(list(players))

    def get_players(self) -> List[str]:
        return json.loads(self.players or "[]")

    def to_config(self) -> RaffleConfig:
        return RaffleConfig(
            entrance_fee=int(self.entrance_fee),
            interval=int(self.interval),
            coordinator=self.coordinator,
            key_hash=self.key_hash,
            subscription_id=int(self.subscription_id),
            callback_gas_limit=int(self.callback_gas_limit),
        )

    def to_snapshot(self) -> RaffleSnapshot:
        return RaffleSnapshot.from_dict(
            {
                "state": self.state,
                "players": self.get_players(),
                "last_timestamp": self.last_timestamp,
                "recent_winner": self.recent_winner,
                "pending_request_id": self.pending_request_id,
            }
        )

    def apply_snapshot(self, snapshot: RaffleSnapshot) -> None:
        self.state = snapshot.state.name
        self.set_players(list(snapshot.players))
        self.last_timestamp = snapshot.last_timestamp
        self.recent_winner = snapshot.recent_winner
        self.pending_request_id = (
            str(snapshot.pending_request_id) if snapshot.pending_request_id is not None else None
        )


class AccountRecord(Base):
    __tablename__ = "accounts"

    address = Column(String(42), primary_key=True)
    balance = Column(String(UINT256_DIGITS), nullable=False, default="0")
    updated_at = Column(DateTime, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {"address": self.address, "balance": self.balance}


class RandomnessRequestRecord(Base):
    __tablename__ = "randomness_requests"

    request_id = Column(String(UINT256_DIGITS), primary_key=True)
    consumer = Column(String(42), nullable=False)
    key_hash = Column(String(128), nullable=False)
    subscription_id = Column(String(UINT256_DIGITS), nullable=False)
    request_confirmations = Column(Integer, nullable=False)
    callback_gas_limit = Column(Integer, nullable=False)
    num_words = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    created_at = Column(Integer, nullable=False)
    fulfilled_at = Column(Integer, nullable=True)

    def to_pending(self) -> PendingRequest:
        return PendingRequest(
            request_id=int(self.request_id),
            consumer=self.consumer,
            request=RandomnessRequest(
                key_hash=self.key_hash,
                subscription_id=int(self.subscription_id),
                request_confirmations=self.request_confirmations,
                callback_gas_limit=self.callback_gas_limit,
                num_words=self.num_words,
            ),
            created_at=self.created_at,
        )

    def to_dict(self) -> dict:
        payload = self.to_pending().to_dict()
        payload["status"] = self.status
        payload["fulfilled_at"] = self.fulfilled_at
        return payload

    @classmethod
    def from_pending(cls, pending: PendingRequest) -> "RandomnessRequestRecord":
        request = pending.request
        return cls(
            request_id=str(pending.request_id),
            consumer=pending.consumer,
            key_hash=request.key_hash,
            subscription_id=str(request.subscription_id),
            request_confirmations=request.request_confirmations,
            callback_gas_limit=request.callback_gas_limit,
            num_words=request.num_words,
            status="pending",
            created_at=pending.created_at,
        )


