from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import List

from ..coordinator import derive_random_words


@dataclass(frozen=True)
class BeaconRound:
    """One published round of a public randomness beacon."""

    round: int
    randomness: str
    signature: str = ""

    def seed(self) -> int:
        return int(self.randomness, 16) % (1 << 256)

    def words(self, num_words: int) -> List[int]:
        return derive_random_words(self.seed(), num_words)


class RandomnessDataSource(abc.ABC):
    """Abstract beacon provider."""

    @abc.abstractmethod
    async def fetch_latest(self) -> BeaconRound:
        """Return the newest published round.

        Implementations should raise `RuntimeError` or `ValueError` if
        remote data is unavailable or validation fails.
        """

    @abc.abstractmethod
    async def fetch_round(self, round_number: int) -> BeaconRound:
        """Return a specific, already published round."""

    async def close(self) -> None:
        """Optional hook for connectors that require cleanup."""
        return None
