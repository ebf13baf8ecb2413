"""
Vault notifications - append-only event log

Deposited(from, amount) / Withdrawn(to, amount) / OwnerChanged(oldOwner, newOwner)

Events are emitted only on the success path, ordered by call completion.
Consumers poll with since(cursor) or register a listener with subscribe().
"""

import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from .constants import VAULT_RULES

logger = logging.getLogger("flarevault.events")


class EventName(str, Enum):
    DEPOSITED = "Deposited"
    WITHDRAWN = "Withdrawn"
    OWNER_CHANGED = "OwnerChanged"


@dataclass
class VaultEvent:
    index: int
    name: EventName
    args: dict
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "event": self.name.value,
            # amounts as strings: wei does not fit a JS number
            "args": {k: str(v) if isinstance(v, int) else v for k, v in self.args.items()},
            "timestamp": self.timestamp,
        }


class EventLog:
    """Append-only notification log for one vault."""

    _MAX_EVENTS = VAULT_RULES.MAX_EVENTS_IN_MEMORY

    def __init__(self):
        self.events: list[VaultEvent] = []
        self._next_index: int = 0
        self._listeners: list[Callable[[VaultEvent], None]] = []

    def __len__(self) -> int:
        """Total events ever emitted (indexes keep growing after trimming)."""
        return self._next_index

    def emit(self, name: EventName, args: dict) -> VaultEvent:
        """Append one event. `args` keys follow the contract ABI (from, to, amount, oldOwner, newOwner)."""
        event = VaultEvent(index=self._next_index, name=name, args=dict(args))
        self._next_index += 1
        self.events.append(event)
        self._trim()

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                # The state change already happened; a broken consumer cannot undo it.
                logger.error(f"Event listener failed on {name.value}#{event.index}: {e}", exc_info=True)
        return event

    def _trim(self):
        if len(self.events) > self._MAX_EVENTS:
            self.events = self.events[-self._MAX_EVENTS:]

    def since(self, cursor: int = 0, limit: int = 100) -> list[VaultEvent]:
        """Events with index >= cursor, oldest first."""
        if limit <= 0:
            return []
        out = [e for e in self.events if e.index >= cursor]
        return out[:limit]

    def latest(self, limit: int = 20) -> list[VaultEvent]:
        return self.events[-limit:] if limit > 0 else []

    def subscribe(self, listener: Callable[[VaultEvent], None]) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ============================================================
    # PERSISTENCE
    # ============================================================

    def snapshot(self, limit: int = VAULT_RULES.MAX_EVENTS_PERSISTED) -> dict:
        return {
            "next_index": self._next_index,
            "events": [
                {
                    "index": e.index,
                    "name": e.name.value,
                    "args": {k: str(v) if isinstance(v, int) else v for k, v in e.args.items()},
                    "timestamp": e.timestamp,
                }
                for e in self.events[-limit:]
            ],
        }

    def restore(self, state: dict):
        """Replace the log with a snapshot. Nothing changes if the snapshot is malformed."""
        events = []
        for ed in state.get("events", []):
            args = {
                k: int(v) if k == "amount" else v
                for k, v in ed.get("args", {}).items()
            }
            events.append(VaultEvent(
                index=ed["index"],
                name=EventName(ed["name"]),
                args=args,
                timestamp=ed.get("timestamp", 0.0),
            ))
        last = events[-1].index + 1 if events else 0
        next_index = max(int(state.get("next_index", 0)), last)
        self.events = events
        self._next_index = next_index
