from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from threading import RLock
from typing import Any, Callable, ClassVar, Dict, List


@dataclass(frozen=True)
class RaffleEvent:
    name: ClassVar[str] = "RaffleEvent"

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.name, "args": asdict(self)}


@dataclass(frozen=True)
class EnteredRaffle(RaffleEvent):
    name: ClassVar[str] = "EnteredRaffle"
    player: str


@dataclass(frozen=True)
class RequestedRaffleWinner(RaffleEvent):
    name: ClassVar[str] = "RequestedRaffleWinner"
    request_id: int


@dataclass(frozen=True)
class PickedWinner(RaffleEvent):
    name: ClassVar[str] = "PickedWinner"
    winner: str


Subscriber = Callable[[RaffleEvent], None]


class EventLog:
    """Append-only record of emitted events.

    Events belonging to a unit of work that fails are dropped by `rollback`.
    Subscribers hear about an event only after `publish` is called for it,
    which happens once the emitting unit of work has committed.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._events: List[RaffleEvent] = []
        self._published = 0
        self._subscribers: List[Subscriber] = []
        self._logger = logging.getLogger("chainraffle.events")

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        with self._lock:
            return iter(list(self._events))

    def emit(self, event: RaffleEvent) -> None:
        with self._lock:
            self._events.append(event)

    def subscribe(self, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def of_type(self, event_type: type) -> List[RaffleEvent]:
        with self._lock:
            return [e for e in self._events if isinstance(e, event_type)]

    def checkpoint(self) -> int:
        with self._lock:
            return len(self._events)

    def rollback(self, checkpoint: int) -> None:
        with self._lock:
            del self._events[checkpoint:]
            self._published = min(self._published, checkpoint)

    def publish(self) -> None:
        with self._lock:
            pending = self._events[self._published:]
            self._published = len(self._events)
            subscribers = list(self._subscribers)
        for event in pending:
            for callback in subscribers:
                try:
                    callback(event)
                except Exception:
                    self._logger.exception("Event subscriber failed on %s", event.name)
