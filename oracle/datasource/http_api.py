from __future__ import annotations

import asyncio
import string
from dataclasses import dataclass
from typing import Any, Mapping

import requests

from .base import BeaconRound, RandomnessDataSource


@dataclass(frozen=True)
class HttpBeaconDataSourceConfig:
    """Where the beacon lives and how to read its JSON rounds."""

    url: str
    round_key: str = "round"
    randomness_key: str = "randomness"
    signature_key: str = "signature"
    timeout_seconds: int = 10


class HttpBeaconDataSource(RandomnessDataSource):
    """Read rounds from a drand-style HTTP beacon.

    ``{url}/latest`` returns the newest round and ``{url}/{n}`` a given one.
    """

    def __init__(self, config: HttpBeaconDataSourceConfig) -> None:
        self._config = config
        self._session = requests.Session()

    async def fetch_latest(self) -> BeaconRound:
        payload = await asyncio.to_thread(self._get_json, "latest")
        return self._parse_payload(payload)

    async def fetch_round(self, round_number: int) -> BeaconRound:
        payload = await asyncio.to_thread(self._get_json, str(int(round_number)))
        beacon_round = self._parse_payload(payload)
        if beacon_round.round != round_number:
            raise ValueError(
                f"beacon returned round {beacon_round.round}, expected {round_number}"
            )
        return beacon_round

    async def close(self) -> None:
        self._session.close()

    def _get_json(self, path: str) -> Mapping[str, Any]:
        url = f"{self._config.url.rstrip('/')}/{path}"
        resp = self._session.get(url, timeout=self._config.timeout_seconds)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, Mapping):
            raise ValueError("beacon returned non-object payload")
        return data

    def _parse_payload(self, payload: Mapping[str, Any]) -> BeaconRound:
        cfg = self._config
        try:
            raw_round = payload[cfg.round_key]
        except KeyError as exc:
            raise ValueError(f"Missing round field: {cfg.round_key}") from exc
        try:
            raw_randomness = payload[cfg.randomness_key]
        except KeyError as exc:
            raise ValueError(f"Missing randomness field: {cfg.randomness_key}") from exc

        if isinstance(raw_round, bool) or not isinstance(raw_round, int) or raw_round < 0:
            raise ValueError("round must be a non-negative integer")
        randomness = self._parse_hex(raw_randomness)
        signature = payload.get(cfg.signature_key) or ""
        return BeaconRound(round=raw_round, randomness=randomness, signature=str(signature))

    @staticmethod
    def _parse_hex(raw: Any) -> str:
        if not isinstance(raw, str):
            raise ValueError("randomness must be a hex string")
        value = raw[2:] if raw.startswith("0x") else raw
        if not value or any(c not in string.hexdigits for c in value):
            raise ValueError("randomness must be a hex string")
        return value.lower()
