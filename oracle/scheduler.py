from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import pathlib
import tempfile
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence

from .config import OracleSettings
from .datasource import RandomnessDataSource
from .raffle_client import RaffleApiError
from .types import PendingRequest


class RaffleClientProtocol(Protocol):
    async def check_draw_ready(self) -> bool:
        ...

    async def request_draw(self) -> int:
        ...

    async def pending_requests(self) -> List[PendingRequest]:
        ...

    async def fulfill(self, request_id: int, random_words: Sequence[int]):
        ...


@dataclass
class SchedulerResult:
    requested_id: Optional[int] = None
    fulfilled: List[int] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.requested_id is not None or bool(self.fulfilled)


class OracleStateStore:
    """Remembers which beacon round each pending request was pinned to.

    A request is answered with the round pinned on first sight, so a restart
    never rolls a request against a different round.
    """

    def __init__(self, path: str) -> None:
        self._path = pathlib.Path(path)

    def load_pins(self) -> Dict[int, int]:
        if not self._path.exists():
            return {}
        # Forgetting a pin would re-roll the request against a later round.
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise RuntimeError(f"Oracle state file {self._path} is unreadable: {exc}") from exc
        pins = data.get("pinned_rounds", {}) if isinstance(data, dict) else None
        if not isinstance(pins, dict):
            raise RuntimeError(f"Oracle state file {self._path} does not hold pinned rounds")
        try:
            return {int(k): int(v) for k, v in pins.items()}
        except (TypeError, ValueError) as exc:
            raise RuntimeError(f"Oracle state file {self._path} has a malformed pin: {exc}") from exc

    def save_pins(self, pins: Dict[int, int]) -> None:
        payload = {"pinned_rounds": {str(k): v for k, v in pins.items()}}
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name)
            raise


class OracleScheduler:
    def __init__(
        self,
        settings: OracleSettings,
        datasource: RandomnessDataSource,
        client: RaffleClientProtocol,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._settings = settings
        self._datasource = datasource
        self._client = client
        self._state = OracleStateStore(settings.state_file)
        self._pins = self._state.load_pins()
        self._logger = logger or logging.getLogger("chainraffle.oracle")

    async def run_forever(self) -> None:
        interval = self._settings.poll_interval_seconds
        self._logger.info("Oracle loop started; poll interval=%s", interval)
        while True:
            try:
                result = await self._tick()
                if result and self._settings.submit_only_once:
                    self._logger.info("Submit-once flag set; exiting loop.")
                    return
            except Exception as exc:
                self._logger.exception("Oracle iteration failed: %s", exc)
            await asyncio.sleep(interval)

    async def run_once(self) -> SchedulerResult:
        try:
            return await self._tick()
        finally:
            await self._datasource.close()

    async def _tick(self) -> SchedulerResult:
        result = SchedulerResult()
        result.fulfilled = await self._fulfill_pending()
        if self._settings.automation_enabled:
            result.requested_id = await self._maybe_request_draw()
        return result

    async def _fulfill_pending(self) -> List[int]:
        pending = await self._client.pending_requests()
        self._prune_pins({p.request_id for p in pending})
        if not pending:
            return []

        latest = await self._datasource.fetch_latest()
        fulfilled: List[int] = []
        for item in pending:
            target = self._pins.get(item.request_id)
            if target is None:
                target = latest.round + item.request.request_confirmations
                self._pins[item.request_id] = target
                self._state.save_pins(self._pins)
                self._logger.info(
                    "Request %s pinned to beacon round %s (latest=%s)",
                    item.request_id,
                    target,
                    latest.round,
                )
            if latest.round < target:
                self._logger.debug(
                    "Request %s waiting for round %s (latest=%s)", item.request_id, target, latest.round
                )
                continue

            beacon = latest if latest.round == target else await self._datasource.fetch_round(target)
            words = beacon.words(item.request.num_words)
            try:
                await self._client.fulfill(item.request_id, words)
            except RaffleApiError as exc:
                self._logger.warning(
                    "Fulfillment of request %s rejected: %s", item.request_id, exc
                )
                continue

            self._logger.info("Fulfilled request %s with beacon round %s", item.request_id, target)
            fulfilled.append(item.request_id)
            self._pins.pop(item.request_id, None)
            self._state.save_pins(self._pins)
        return fulfilled

    async def _maybe_request_draw(self) -> Optional[int]:
        if not await self._client.check_draw_ready():
            self._logger.debug("Raffle not ready for a draw.")
            return None
        try:
            request_id = await self._client.request_draw()
        except RaffleApiError as exc:
            # Another caller may have triggered the draw between check and request.
            self._logger.info("Draw request declined: %s", exc)
            return None
        self._logger.info("Draw requested; randomness request=%s", request_id)
        return request_id

    def _prune_pins(self, live_ids) -> None:
        stale = [request_id for request_id in self._pins if request_id not in live_ids]
        if not stale:
            return
        for request_id in stale:
            del self._pins[request_id]
        self._state.save_pins(self._pins)
