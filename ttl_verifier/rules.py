"""
Verification rules and the host state interface they run against.

A rule knows how to obtain a TTL state handle from the host, how to read it,
how to apply one raw update, and how to judge a completed update against the
history of accepted updates.  The orchestrator treats every rule the same way.

Expiry model used by the reference rules: a prior update ``p`` is expired at
instant ``now`` iff ``p.after_ts + ttl < now``.  The clash detector keeps any
pair for which this is undecidable out of the history, so the answer is the
same for every instant inside the candidate window.
"""
from __future__ import annotations

import random
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ttl_verifier.models import TimestampedValue, VerificationContext


# ---------------------------------------------------------------------------
# Host interface (implemented by the TTL store under test)
# ---------------------------------------------------------------------------
class ValueHandle(ABC):
    @abstractmethod
    def value(self) -> Any:
        """Current value, or ``None`` if absent or expired."""

    @abstractmethod
    def update(self, value: Any) -> None:
        """Overwrite the value and refresh its TTL."""

    @abstractmethod
    def clear(self) -> None:
        ...


class ListHandle(ABC):
    @abstractmethod
    def get(self) -> List[Any]:
        """Unexpired elements in insertion order."""

    @abstractmethod
    def add(self, value: Any) -> None:
        """Append one element with its own TTL."""

    @abstractmethod
    def clear(self) -> None:
        ...


class MapHandle(ABC):
    @abstractmethod
    def items(self) -> Dict[str, Any]:
        """Unexpired entries."""

    @abstractmethod
    def put(self, map_key: str, value: Any) -> None:
        """Write one entry and refresh that entry's TTL."""

    @abstractmethod
    def clear(self) -> None:
        ...


class StateBackend(ABC):
    """Keyed TTL state owned by the host; handles are scoped to ``key``."""

    @abstractmethod
    def value_state(self, key: str, name: str, ttl_ms: int) -> ValueHandle:
        ...

    @abstractmethod
    def list_state(self, key: str, name: str, ttl_ms: int) -> ListHandle:
        ...

    @abstractmethod
    def map_state(self, key: str, name: str, ttl_ms: int) -> MapHandle:
        ...


# ---------------------------------------------------------------------------
# Rule interface
# ---------------------------------------------------------------------------
class VerificationRule(ABC):
    """
    One kind of TTL-governed value.

    Subclasses fill in the state plumbing and ``expected``; ``verify`` checks
    both reads of an update context:

      value_before == expected(history, before_ts)
      value_after  == expected(history + [update], after_ts)
    """

    rule_id: str = ""

    def __init__(self, ttl_ms: int) -> None:
        if ttl_ms <= 0:
            raise ValueError(f"ttl_ms must be positive, got {ttl_ms}")
        self.ttl_ms = ttl_ms

    # -- state plumbing ---------------------------------------------------
    @abstractmethod
    def create_state(self, backend: StateBackend, key: str) -> Any:
        ...

    @abstractmethod
    def get(self, handle: Any) -> Any:
        ...

    @abstractmethod
    def update(self, handle: Any, raw_update: Any) -> None:
        ...

    def clear(self, handle: Any) -> None:
        handle.clear()

    def validate_update(self, raw_update: Any) -> None:
        """Raise ``TypeError``/``ValueError`` if ``update`` would reject ``raw_update``."""

    # -- domain semantics -------------------------------------------------
    @abstractmethod
    def expected(self, updates: Sequence[TimestampedValue], now_ts: int) -> Any:
        """What a correct TTL store returns at ``now_ts`` after ``updates``."""

    @abstractmethod
    def random_update(self, rng: random.Random) -> Any:
        ...

    def verify(self, ctx: VerificationContext) -> bool:
        uc = ctx.update_context
        updates = list(ctx.prev_updates)
        if uc.value_before != self.expected(updates, uc.before_ts):
            return False
        updates.append(uc.update_with_ts)
        return uc.value_after == self.expected(updates, uc.after_ts)

    def expired(self, update: TimestampedValue, now_ts: int) -> bool:
        return update.after_ts + self.ttl_ms < now_ts

    # -- JSON codec for history entries -----------------------------------
    def encode_value(self, value: Any) -> Any:
        return value

    def decode_value(self, data: Any) -> Any:
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}(ttl_ms={self.ttl_ms})"


# ---------------------------------------------------------------------------
# Reference rules
# ---------------------------------------------------------------------------
class ValueRule(VerificationRule):
    """Single value; every write refreshes the TTL."""

    rule_id = "value"

    def create_state(self, backend: StateBackend, key: str) -> ValueHandle:
        return backend.value_state(key, self.rule_id, self.ttl_ms)

    def get(self, handle: ValueHandle) -> Optional[int]:
        return handle.value()

    def update(self, handle: ValueHandle, raw_update: int) -> None:
        handle.update(_as_int(raw_update, self.rule_id))

    def expected(self, updates: Sequence[TimestampedValue], now_ts: int) -> Optional[int]:
        if not updates:
            return None
        last = updates[-1]
        return None if self.expired(last, now_ts) else last.value

    def random_update(self, rng: random.Random) -> int:
        return rng.randint(0, 1000)

    def validate_update(self, raw_update: Any) -> None:
        _as_int(raw_update, self.rule_id)


class ListRule(VerificationRule):
    """Append-only list; each element carries its own TTL."""

    rule_id = "list"

    def create_state(self, backend: StateBackend, key: str) -> ListHandle:
        return backend.list_state(key, self.rule_id, self.ttl_ms)

    def get(self, handle: ListHandle) -> List[int]:
        return list(handle.get())

    def update(self, handle: ListHandle, raw_update: int) -> None:
        handle.add(_as_int(raw_update, self.rule_id))

    def expected(self, updates: Sequence[TimestampedValue], now_ts: int) -> List[int]:
        return [u.value for u in updates if not self.expired(u, now_ts)]

    def random_update(self, rng: random.Random) -> int:
        return rng.randint(0, 1000)

    def validate_update(self, raw_update: Any) -> None:
        _as_int(raw_update, self.rule_id)


class MapRule(VerificationRule):
    """String-keyed map; updates are ``[map_key, value]`` pairs."""

    rule_id = "map"
    MAP_KEYS = ("a", "b", "c", "d", "e")

    def create_state(self, backend: StateBackend, key: str) -> MapHandle:
        return backend.map_state(key, self.rule_id, self.ttl_ms)

    def get(self, handle: MapHandle) -> Dict[str, int]:
        return dict(handle.items())

    def update(self, handle: MapHandle, raw_update: Any) -> None:
        map_key, value = _map_entry(raw_update)
        handle.put(map_key, value)

    def expected(self, updates: Sequence[TimestampedValue], now_ts: int) -> Dict[str, int]:
        latest: Dict[str, TimestampedValue] = {}
        for u in updates:
            map_key, _ = _map_entry(u.value)
            latest[map_key] = u
        return {
            k: _map_entry(u.value)[1]
            for k, u in latest.items()
            if not self.expired(u, now_ts)
        }

    def random_update(self, rng: random.Random) -> List[Any]:
        return [rng.choice(self.MAP_KEYS), rng.randint(0, 1000)]

    def validate_update(self, raw_update: Any) -> None:
        _map_entry(raw_update)

    def encode_value(self, value: Any) -> Any:
        map_key, v = _map_entry(value)
        return [map_key, v]

    def decode_value(self, data: Any) -> Tuple[str, int]:
        return _map_entry(data)


class ReducingRule(VerificationRule):
    """
    Running sum kept in a value state.  The sum has a single TTL refreshed on
    every write, so it restarts from the update itself once it has expired.
    """

    rule_id = "reducing"

    def create_state(self, backend: StateBackend, key: str) -> ValueHandle:
        return backend.value_state(key, self.rule_id, self.ttl_ms)

    def get(self, handle: ValueHandle) -> Optional[int]:
        return handle.value()

    def update(self, handle: ValueHandle, raw_update: int) -> None:
        amount = _as_int(raw_update, self.rule_id)
        current = handle.value()
        handle.update(amount if current is None else current + amount)

    def expected(self, updates: Sequence[TimestampedValue], now_ts: int) -> Optional[int]:
        total: Optional[int] = None
        prev: Optional[TimestampedValue] = None
        for u in updates:
            if prev is not None and self.expired(prev, u.before_ts):
                total = None
            total = u.value if total is None else total + u.value
            prev = u
        if prev is None or self.expired(prev, now_ts):
            return None
        return total

    def random_update(self, rng: random.Random) -> int:
        return rng.randint(1, 100)

    def validate_update(self, raw_update: Any) -> None:
        _as_int(raw_update, self.rule_id)


RULE_TYPES = (ValueRule, ListRule, MapRule, ReducingRule)


def default_rules(ttl_ms: int) -> List[VerificationRule]:
    """One instance of every reference rule, in a fixed order."""
    return [rule_type(ttl_ms) for rule_type in RULE_TYPES]


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------
def _as_int(raw: Any, rule_id: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise TypeError(
            f"Rule {rule_id!r} expects an int update, got {type(raw).__name__}"
        )
    return raw


def _map_entry(raw: Any) -> Tuple[str, int]:
    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        raise ValueError(f"Map update must be a [key, value] pair, got {raw!r}")
    map_key, value = raw
    if not isinstance(map_key, str):
        raise TypeError(f"Map key must be str, got {type(map_key).__name__}")
    return map_key, _as_int(value, MapRule.rule_id)
