from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

MAX_REQUEST_CONFIRMATIONS = 200
MAX_NUM_WORDS = 500


@dataclass(frozen=True)
class RandomnessRequest:
    """Parameters carried by every randomness request, passed through untouched."""

    key_hash: str
    subscription_id: int
    request_confirmations: int
    callback_gas_limit: int
    num_words: int

    def __post_init__(self) -> None:
        if not 0 <= self.request_confirmations <= MAX_REQUEST_CONFIRMATIONS:
            raise ValueError(
                f"request_confirmations must be within [0, {MAX_REQUEST_CONFIRMATIONS}]"
            )
        if not 1 <= self.num_words <= MAX_NUM_WORDS:
            raise ValueError(f"num_words must be within [1, {MAX_NUM_WORDS}]")
        if self.callback_gas_limit < 0 or self.subscription_id < 0:
            raise ValueError("callback_gas_limit and subscription_id must be non-negative")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key_hash": self.key_hash,
            "subscription_id": self.subscription_id,
            "request_confirmations": self.request_confirmations,
            "callback_gas_limit": self.callback_gas_limit,
            "num_words": self.num_words,
        }


@dataclass(frozen=True)
class PendingRequest:
    request_id: int
    consumer: str
    request: RandomnessRequest
    created_at: int

    def to_dict(self) -> Dict[str, Any]:
        payload = self.request.to_dict()
        payload.update(
            {
                "request_id": str(self.request_id),
                "consumer": self.consumer,
                "created_at": self.created_at,
            }
        )
        return payload
