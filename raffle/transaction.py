from __future__ import annotations

from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple


class Journal(Protocol):
    def checkpoint(self) -> Any:
        ...

    def rollback(self, checkpoint: Any) -> None:
        ...


class Transaction:
    """All-or-nothing unit of work over a set of journals.

    Usage::

        with Transaction([state, ledger, events]) as tx:
            ...validate...
            ...mutate internal state...
            tx.defer(ledger.transfer, me, winner, amount)

    Deferred interactions run in order once the ``with`` body has finished, so
    every internal effect is already in place before any outside code runs.
    If the body or any deferred interaction raises, every journal is rolled
    back to the checkpoint taken on entry and the exception propagates.
    """

    def __init__(self, journals: Sequence[Journal]) -> None:
        self._journals = list(journals)
        self._checkpoints: Optional[List[Tuple[Journal, Any]]] = None
        self._deferred: List[Tuple[Callable[..., Any], tuple, dict]] = []

    def __enter__(self) -> "Transaction":
        self._checkpoints = [(journal, journal.checkpoint()) for journal in self._journals]
        return self

    def defer(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        self._deferred.append((fn, args, kwargs))

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self._rollback()
            return False
        try:
            while self._deferred:
                fn, args, kwargs = self._deferred.pop(0)
                fn(*args, **kwargs)
        except BaseException:
            self._rollback()
            raise
        return False

    def _rollback(self) -> None:
        self._deferred.clear()
        # Restore in reverse so later journals never observe half-restored ones.
        for journal, checkpoint in reversed(self._checkpoints or []):
            journal.rollback(checkpoint)
