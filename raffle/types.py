from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional, Tuple

from .addresses import normalize_address

REQUEST_CONFIRMATIONS = 3
NUM_WORDS = 1


class RaffleState(IntEnum):
    OPEN = 0
    CALCULATING = 1


def _check_uint(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer")
    if value < 0:
        raise ValueError(f"{name} must be non-negative")
    return value


@dataclass(frozen=True)
class RaffleConfig:
    """Construction-time parameters; never change for the life of a raffle."""

    entrance_fee: int
    interval: int
    coordinator: str
    key_hash: str
    subscription_id: int
    callback_gas_limit: int

    def __post_init__(self) -> None:
        _check_uint("entrance_fee", self.entrance_fee)
        _check_uint("interval", self.interval)
        _check_uint("subscription_id", self.subscription_id)
        _check_uint("callback_gas_limit", self.callback_gas_limit)
        if not isinstance(self.key_hash, str) or not self.key_hash:
            raise ValueError("key_hash must be a non-empty string")
        object.__setattr__(self, "coordinator", normalize_address(self.coordinator))


@dataclass(frozen=True)
class RaffleSnapshot:
    """Every mutable field of a raffle, frozen at one point in time."""

    state: RaffleState = RaffleState.OPEN
    players: Tuple[str, ...] = field(default_factory=tuple)
    last_timestamp: int = 0
    recent_winner: Optional[str] = None
    pending_request_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.name,
            "players": list(self.players),
            "last_timestamp": self.last_timestamp,
            "recent_winner": self.recent_winner,
            "pending_request_id": self.pending_request_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RaffleSnapshot":
        pending = data.get("pending_request_id")
        winner = data.get("recent_winner")
        return cls(
            state=RaffleState[data.get("state", "OPEN")],
            players=tuple(normalize_address(p) for p in data.get("players", [])),
            last_timestamp=int(data.get("last_timestamp", 0)),
            recent_winner=normalize_address(winner) if winner else None,
            pending_request_id=int(pending) if pending is not None else None,
        )
