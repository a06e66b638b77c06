"""
escrow.state.events — append-only event log with revert support.

Contracts emit events through the host; the host appends them here and, when a
call reverts, truncates the log back to its length at the call's checkpoint so
a reverted call never leaves events behind.

Query helpers filter by emitter, event name and trade id, in emission order:

    log.get_logs(emitter=escrow.address, name="Released")
    log.get_logs(trade_id=tid)
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterator, List, Mapping, Optional

from ..types.events import LogEvent

log = logging.getLogger(__name__)


class EventLog:
    """
    A simple, thread-safe in-memory event log.

    Notes
    -----
    - Suitable for tests, simulations and embedding in a single process.
    - Keeps all events in RAM.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._events: List[LogEvent] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def emit(
        self,
        emitter: bytes,
        name: str,
        *,
        trade_id: Optional[bytes] = None,
        args: Optional[Mapping[str, Any]] = None,
    ) -> LogEvent:
        with self._lock:
            ev = LogEvent(
                index=len(self._events),
                emitter=emitter,
                name=name,
                trade_id=trade_id,
                args=dict(args or {}),
            )
            self._events.append(ev)
        log.debug("event %s", name, extra={"emitter": emitter, "event_trade_id": trade_id})
        return ev

    def truncate(self, length: int) -> None:
        """Drop every event at index >= length (used on revert)."""
        with self._lock:
            del self._events[length:]

    def get_logs(
        self,
        *,
        emitter: Optional[bytes] = None,
        name: Optional[str] = None,
        trade_id: Optional[bytes] = None,
        limit: Optional[int] = None,
    ) -> List[LogEvent]:
        """Matching events in ascending index order."""
        with self._lock:
            out: List[LogEvent] = []
            for ev in self._events:
                if emitter is not None and ev.emitter != emitter:
                    continue
                if name is not None and ev.name != name:
                    continue
                if trade_id is not None and ev.trade_id != trade_id:
                    continue
                out.append(ev)
                if limit is not None and len(out) >= limit:
                    break
            return out

    def names(self, *, emitter: Optional[bytes] = None) -> List[str]:
        return [ev.name for ev in self.get_logs(emitter=emitter)]

    def __iter__(self) -> Iterator[LogEvent]:
        with self._lock:
            return iter(list(self._events))


__all__ = ["EventLog"]
