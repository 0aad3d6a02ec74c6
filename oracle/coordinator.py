from __future__ import annotations

import abc
import logging
import time
from threading import RLock
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from web3 import Web3

from .errors import (
    InsufficientSubscriptionBalance,
    InvalidFulfillment,
    RequestNotFound,
    SubscriptionNotFound,
)
from .types import PendingRequest, RandomnessRequest

DEFAULT_COORDINATOR_ADDRESS = "0x" + "c0" * 20


def derive_request_id(key_hash: str, consumer: str, subscription_id: int, nonce: int) -> int:
    """Request id as keccak256(key_hash, consumer, subscription_id, nonce)."""
    digest = Web3.solidity_keccak(
        ["string", "address", "uint256", "uint256"],
        [key_hash, Web3.to_checksum_address(consumer), int(subscription_id), int(nonce)],
    )
    return int.from_bytes(bytes(digest), "big")


def derive_random_words(seed: int, num_words: int) -> List[int]:
    """Expand one 256-bit seed into ``num_words`` independent words."""
    return [
        int.from_bytes(bytes(Web3.solidity_keccak(["uint256", "uint256"], [seed, index])), "big")
        for index in range(num_words)
    ]


class RandomnessConsumer(Protocol):
    @property
    def address(self) -> str:
        ...

    def on_randomness_delivered(
        self, caller: str, request_id: int, random_words: Sequence[int]
    ) -> None:
        ...


class RandomnessCoordinator(abc.ABC):
    """Outbound half of the request/callback handshake.

    `request_random_words` returns immediately with an opaque request id; the
    words arrive later through the consumer's `on_randomness_delivered`, sent
    from `address`.
    """

    @property
    @abc.abstractmethod
    def address(self) -> str:
        ...

    @abc.abstractmethod
    def request_random_words(
        self, request: RandomnessRequest, consumer: RandomnessConsumer
    ) -> int:
        ...


class LocalCoordinator(RandomnessCoordinator):
    """In-process coordinator with subscription billing.

    Requests stay pending until `fulfill` is called, which makes it suitable
    for tests and local simulations of the asynchronous callback.
    """

    def __init__(
        self,
        address: str = DEFAULT_COORDINATOR_ADDRESS,
        fee_per_request: int = 0,
        now: Optional[Callable[[], int]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._address = Web3.to_checksum_address(address)
        self._fee = int(fee_per_request)
        self._now = now or (lambda: int(time.time()))
        self._logger = logger or logging.getLogger("chainraffle.coordinator")
        self._lock = RLock()
        self._subscriptions: Dict[int, int] = {}
        self._next_subscription_id = 1
        self._nonces: Dict[int, int] = {}
        self._pending: Dict[int, Tuple[PendingRequest, RandomnessConsumer]] = {}
        self._fulfilled: Dict[int, List[int]] = {}
        self.last_request_id: Optional[int] = None

    @property
    def address(self) -> str:
        return self._address

    def create_subscription(self) -> int:
        with self._lock:
            sub_id = self._next_subscription_id
            self._next_subscription_id += 1
            self._subscriptions[sub_id] = 0
            return sub_id

    def fund_subscription(self, subscription_id: int, amount: int) -> int:
        if amount < 0:
            raise ValueError("amount must be non-negative")
        with self._lock:
            self._require_subscription(subscription_id)
            self._subscriptions[subscription_id] += amount
            return self._subscriptions[subscription_id]

    def get_subscription_balance(self, subscription_id: int) -> int:
        with self._lock:
            self._require_subscription(subscription_id)
            return self._subscriptions[subscription_id]

    def is_subscription_funded(self, subscription_id: int) -> bool:
        with self._lock:
            return self._subscriptions.get(subscription_id, 0) >= max(self._fee, 1)

    def request_random_words(
        self, request: RandomnessRequest, consumer: RandomnessConsumer
    ) -> int:
        with self._lock:
            self._require_subscription(request.subscription_id)
            nonce = self._nonces.get(request.subscription_id, 0) + 1
            request_id = derive_request_id(
                request.key_hash, consumer.address, request.subscription_id, nonce
            )
            self._nonces[request.subscription_id] = nonce
            pending = PendingRequest(
                request_id=request_id,
                consumer=Web3.to_checksum_address(consumer.address),
                request=request,
                created_at=self._now(),
            )
            self._pending[request_id] = (pending, consumer)
            self.last_request_id = request_id
        self._logger.info(
            "Randomness requested id=%s consumer=%s sub=%s words=%s",
            request_id,
            pending.consumer,
            request.subscription_id,
            request.num_words,
        )
        return request_id

    def pending_requests(self) -> List[PendingRequest]:
        with self._lock:
            return [pending for pending, _ in self._pending.values()]

    def fulfilled_words(self, request_id: int) -> Optional[List[int]]:
        with self._lock:
            return self._fulfilled.get(request_id)

    def fulfill(self, request_id: int, random_words: Optional[Sequence[int]] = None) -> List[int]:
        """Deliver words for a pending request to its consumer.

        Without explicit ``random_words`` the words are derived from the
        request id. If the consumer rejects the callback the request stays
        pending and the consumer's error propagates.
        """
        with self._lock:
            entry = self._pending.get(request_id)
            if entry is None:
                raise RequestNotFound(f"no pending request {request_id}")
            pending, consumer = entry
            num_words = pending.request.num_words
            if random_words is None:
                words = derive_random_words(request_id, num_words)
            else:
                words = [int(w) for w in random_words]
            if len(words) != num_words:
                raise InvalidFulfillment(
                    f"request {request_id} expects {num_words} words, got {len(words)}"
                )
            sub_id = pending.request.subscription_id
            if self._subscriptions.get(sub_id, 0) < self._fee:
                raise InsufficientSubscriptionBalance(
                    f"subscription {sub_id} cannot cover fee {self._fee}"
                )

        consumer.on_randomness_delivered(self._address, request_id, words)

        with self._lock:
            self._subscriptions[sub_id] -= self._fee
            del self._pending[request_id]
            self._fulfilled[request_id] = words
        self._logger.info("Randomness fulfilled id=%s consumer=%s", request_id, pending.consumer)
        return words

    def _require_subscription(self, subscription_id: int) -> None:
        if subscription_id not in self._subscriptions:
            raise SubscriptionNotFound(f"subscription {subscription_id} does not exist")
