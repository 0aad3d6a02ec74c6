from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests

from .config import OracleSettings
from .types import PendingRequest, RandomnessRequest

ORACLE_TOKEN_HEADER = "X-Oracle-Token"


class RaffleApiError(RuntimeError):
    def __init__(self, status: int, code: str, message: str) -> None:
        super().__init__(f"{status} {code}: {message}")
        self.status = status
        self.code = code
        self.message = message


def parse_pending_request(item: Mapping[str, Any]) -> PendingRequest:
    return PendingRequest(
        request_id=int(item["request_id"]),
        consumer=str(item["consumer"]),
        request=RandomnessRequest(
            key_hash=str(item["key_hash"]),
            subscription_id=int(item["subscription_id"]),
            request_confirmations=int(item["request_confirmations"]),
            callback_gas_limit=int(item["callback_gas_limit"]),
            num_words=int(item["num_words"]),
        ),
        created_at=int(item.get("created_at") or 0),
    )


class RaffleClient:
    """Talks to the raffle backend as both automation caller and coordinator."""

    def __init__(self, settings: OracleSettings, session: Optional[requests.Session] = None) -> None:
        self._base_url = settings.api.url.rstrip("/")
        self._api_key = settings.api.api_key
        self._timeout = settings.api.timeout_seconds
        self._session = session or requests.Session()

    async def check_draw_ready(self) -> bool:
        data = await asyncio.to_thread(self._call, "GET", "/raffle/upkeep")
        return bool(data.get("ready"))

    async def request_draw(self) -> int:
        data = await asyncio.to_thread(self._call, "POST", "/raffle/draws")
        return int(data["request_id"])

    async def pending_requests(self) -> List[PendingRequest]:
        data = await asyncio.to_thread(self._call, "GET", "/oracle/requests", None, True)
        return [parse_pending_request(item) for item in data.get("requests", [])]

    async def fulfill(self, request_id: int, random_words: Sequence[int]) -> Dict[str, Any]:
        payload = {
            "request_id": str(request_id),
            "random_words": [str(int(w)) for w in random_words],
        }
        return await asyncio.to_thread(self._call, "POST", "/oracle/fulfillments", payload, True)

    def close(self) -> None:
        self._session.close()

    def _call(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        as_oracle: bool = False,
    ) -> Dict[str, Any]:
        headers = {ORACLE_TOKEN_HEADER: self._api_key} if as_oracle else {}
        resp = self._session.request(
            method,
            f"{self._base_url}{path}",
            json=payload,
            headers=headers,
            timeout=self._timeout,
        )
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.status_code >= 400:
            if not isinstance(data, dict):
                data = {}
            raise RaffleApiError(
                resp.status_code,
                str(data.get("error", "http_error")),
                str(data.get("message", resp.reason)),
            )
        if not isinstance(data, dict):
            raise ValueError("raffle API returned non-object payload")
        return data
