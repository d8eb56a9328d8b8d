"""
Data models for the TTL update verifier.

All timestamps are integer MILLISECONDS since the epoch, as read from the
verifier clock.  A value is never interpreted here; rules supply the codec
used to put it into JSON.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
DEFAULT_TTL_MS: int = 100                  # 100 ms
DEFAULT_REPORT_EVERY: int = 1000           # updates between stats log lines

Codec = Callable[[Any], Any]


def _identity(value: Any) -> Any:
    return value


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class VerifierConfig:
    """TTL duration and stats reporting interval."""

    ttl_ms:       int = DEFAULT_TTL_MS
    report_every: int = DEFAULT_REPORT_EVERY

    def __post_init__(self) -> None:
        if not isinstance(self.ttl_ms, int) or self.ttl_ms <= 0:
            raise ValueError(f"ttl_ms must be a positive int, got {self.ttl_ms!r}")
        if not isinstance(self.report_every, int) or self.report_every <= 0:
            raise ValueError(
                f"report_every must be a positive int, got {self.report_every!r}"
            )


# ---------------------------------------------------------------------------
# TimestampedValue (a value plus the window that produced it)
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TimestampedValue:
    """A value together with the instants bracketing the operation that produced it."""

    value:     Any
    before_ts: int
    after_ts:  int

    def __post_init__(self) -> None:
        if self.before_ts > self.after_ts:
            raise ValueError(
                f"before_ts ({self.before_ts}) is after after_ts ({self.after_ts})"
            )

    @property
    def duration(self) -> int:
        return self.after_ts - self.before_ts

    def to_dict(self, encode: Codec = _identity) -> Dict[str, Any]:
        return {
            "value": encode(self.value),
            "before_ts": self.before_ts,
            "after_ts": self.after_ts,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any], decode: Codec = _identity) -> "TimestampedValue":
        return TimestampedValue(
            value=decode(d["value"]),
            before_ts=int(d["before_ts"]),
            after_ts=int(d["after_ts"]),
        )


# ---------------------------------------------------------------------------
# UpdateEvent (input)
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class UpdateEvent:
    """One line of events.jsonl: a partition key and one raw update per rule."""

    key:     str
    updates: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.key, str) or not self.key:
            raise ValueError(f"Invalid key: {self.key!r}")

    def update_for(self, rule_id: str) -> Any:
        try:
            return self.updates[rule_id]
        except KeyError:
            raise ValueError(
                f"Event for key {self.key!r} has no update for rule {rule_id!r}"
            ) from None

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "UpdateEvent":
        updates = d["updates"]
        if not isinstance(updates, dict):
            raise TypeError(f"updates must be an object, got {type(updates).__name__}")
        return UpdateEvent(key=d["key"], updates=dict(updates))

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "updates": dict(self.updates)}


# ---------------------------------------------------------------------------
# UpdateContext (one read/update/read cycle)
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class UpdateContext:
    """Reads around one state update, bracketed by the clock."""

    before_ts:    int
    value_before: Any
    raw_update:   Any
    value_after:  Any
    after_ts:     int

    @property
    def update_with_ts(self) -> TimestampedValue:
        return TimestampedValue(self.raw_update, self.before_ts, self.after_ts)

    def to_dict(self, encode_update: Codec = _identity) -> Dict[str, Any]:
        return {
            "before_ts": self.before_ts,
            "value_before": self.value_before,
            "raw_update": encode_update(self.raw_update),
            "value_after": self.value_after,
            "after_ts": self.after_ts,
        }


# ---------------------------------------------------------------------------
# VerificationContext (output on failure)
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class VerificationContext:
    """Everything a rule looked at when judging one update."""

    key:            str
    rule_id:        str
    prev_updates:   List[TimestampedValue]
    update_context: UpdateContext
    encode:         Codec = field(default=_identity, repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "rule_id": self.rule_id,
            "prev_updates": [u.to_dict(self.encode) for u in self.prev_updates],
            "update_context": self.update_context.to_dict(self.encode),
        }

    def __str__(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, default=repr)


# ---------------------------------------------------------------------------
# StatsSummary (periodic diagnostics)
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class StatsSummary:
    total_updates:      int
    total_clashes:      int
    avg_history_length: float
    clash_ratio:        float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_updates": self.total_updates,
            "total_clashes": self.total_clashes,
            "avg_history_length": self.avg_history_length,
            "clash_ratio": self.clash_ratio,
        }
