from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from web3 import Web3


def _validate_address(value: str) -> str:
    if not Web3.is_address(value):
        raise ValueError("must be a 20-byte hex address")
    return Web3.to_checksum_address(value)


class EntryRequest(BaseModel):
    player: str = Field(..., description="Address entering the raffle.")
    payment: int = Field(..., ge=0, description="Amount in wei sent with the entry.")

    @field_validator("player")
    @classmethod
    def validate_player(cls, value: str) -> str:
        return _validate_address(value)


class EntryResponse(BaseModel):
    player: str
    player_count: int
    balance: str


class UpkeepResponse(BaseModel):
    ready: bool
    check_data: str = "0x"


class DrawResponse(BaseModel):
    request_id: str
    state: str


class FulfillmentRequest(BaseModel):
    request_id: int = Field(..., ge=0)
    random_words: List[int] = Field(..., min_length=1)

    @field_validator("random_words")
    @classmethod
    def validate_words(cls, value: List[int]) -> List[int]:
        for word in value:
            if word < 0 or word >= 2**256:
                raise ValueError("random words must be uint256 values")
        return value


class FulfillmentResponse(BaseModel):
    request_id: str
    winner: str
    prize: str


class RaffleView(BaseModel):
    address: str
    state: str
    entrance_fee: str
    interval: int
    player_count: int
    balance: str
    last_timestamp: int
    recent_winner: Optional[str] = None
    pending_request_id: Optional[str] = None
    coordinator: str
    key_hash: str
    subscription_id: str
    callback_gas_limit: int
    request_confirmations: int
    num_words: int


class AccountResponse(BaseModel):
    address: str
    balance: str
