"""
History of accepted updates, per partition key and rule.

The store is the persistence boundary: it must keep insertion order and
survive the host's checkpoint/restore cycle.  ``InMemoryHistoryStore`` is
the default driver; ``ttl_verifier.state`` snapshots it to disk.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Tuple

from ttl_verifier.models import Codec, TimestampedValue


class HistoryStore(ABC):
    @abstractmethod
    def load(self, key: str, rule_id: str) -> List[TimestampedValue]:
        """Return the history for (key, rule_id) in insertion order (empty if none)."""

    @abstractmethod
    def append(self, key: str, rule_id: str, update: TimestampedValue) -> None:
        """Append one update to the end of the history."""

    @abstractmethod
    def clear(self, key: str, rule_id: str) -> None:
        """Drop the whole history for (key, rule_id)."""


class InMemoryHistoryStore(HistoryStore):
    def __init__(self) -> None:
        self._lists: Dict[Tuple[str, str], List[TimestampedValue]] = {}

    def load(self, key: str, rule_id: str) -> List[TimestampedValue]:
        return list(self._lists.get((key, rule_id), ()))

    def append(self, key: str, rule_id: str, update: TimestampedValue) -> None:
        self._lists.setdefault((key, rule_id), []).append(update)

    def clear(self, key: str, rule_id: str) -> None:
        self._lists.pop((key, rule_id), None)

    def __len__(self) -> int:
        return sum(len(v) for v in self._lists.values())

    # ------------------------------------------------------------------
    # Serialization (checkpoint format)
    # ------------------------------------------------------------------
    def to_dict(self, encoders: Mapping[str, Codec]) -> Dict[str, Any]:
        """``{key: {rule_id: [entry, ...]}}`` with keys sorted for hashing."""
        out: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}
        for (key, rule_id), updates in sorted(self._lists.items()):
            if not updates:
                continue
            encode = encoders.get(rule_id, _passthrough)
            out.setdefault(key, {})[rule_id] = [u.to_dict(encode) for u in updates]
        return out

    @staticmethod
    def from_dict(
        d: Mapping[str, Any], decoders: Mapping[str, Codec]
    ) -> "InMemoryHistoryStore":
        store = InMemoryHistoryStore()
        for key, by_rule in d.items():
            for rule_id, entries in by_rule.items():
                decode = decoders.get(rule_id, _passthrough)
                for entry in entries:
                    store.append(key, rule_id, TimestampedValue.from_dict(entry, decode))
        return store


def _passthrough(value: Any) -> Any:
    return value


class HistoryTracker:
    """
    View of a :class:`HistoryStore` scoped to one partition key.

    Usage:
        tracker = HistoryTracker(store, event.key)
        prev = tracker.snapshot("value")
        ...
        tracker.append("value", update_context.update_with_ts)
    """

    def __init__(self, store: HistoryStore, key: str) -> None:
        self.store = store
        self.key = key

    def snapshot(self, rule_id: str) -> List[TimestampedValue]:
        return self.store.load(self.key, rule_id)

    def append(self, rule_id: str, update: TimestampedValue) -> None:
        self.store.append(self.key, rule_id, update)

    def reset(self, rule_id: str) -> None:
        self.store.clear(self.key, rule_id)
