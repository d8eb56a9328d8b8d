"""
Clash detection: decides whether an observed update can be judged at all.

The instant a TTL store stamps a write is only known to lie somewhere in
``[before_ts, after_ts]`` of the operation that produced it.  A candidate
update is *ambiguous* when some prior update may or may not have expired
while the candidate was being applied:

  1. Too slow: the candidate itself took at least one TTL.
  2. Clash: for some prior update ``p``,
       ``p.after_ts + ttl >= c.before_ts`` and
       ``p.before_ts + ttl <= c.after_ts``.

Boundary equality counts as a clash.  Everything here is a pure function of
the timestamps and the TTL.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ttl_verifier.models import TimestampedValue

logger = logging.getLogger(__name__)


class ClashDetector:
    """Ambiguity check for a fixed TTL."""

    def __init__(self, ttl_ms: int) -> None:
        if ttl_ms <= 0:
            raise ValueError(f"ttl_ms must be positive, got {ttl_ms}")
        self.ttl_ms: int = ttl_ms

    def too_slow(self, update: TimestampedValue) -> bool:
        return update.after_ts - update.before_ts >= self.ttl_ms

    def updates_clash(self, prev: TimestampedValue, nxt: TimestampedValue) -> bool:
        return (
            prev.after_ts + self.ttl_ms >= nxt.before_ts
            and prev.before_ts + self.ttl_ms <= nxt.after_ts
        )

    def first_clash(
        self,
        candidate: TimestampedValue,
        history: Sequence[TimestampedValue],
    ) -> Optional[TimestampedValue]:
        """Return the earliest history entry the candidate clashes with, if any."""
        for prev in history:
            if self.updates_clash(prev, candidate):
                return prev
        return None

    def is_ambiguous(
        self,
        candidate: TimestampedValue,
        history: Sequence[TimestampedValue],
    ) -> bool:
        if self.too_slow(candidate):
            logger.debug(
                "Update too slow: window=[%d, %d] ttl=%d",
                candidate.before_ts, candidate.after_ts, self.ttl_ms,
            )
            return True
        prev = self.first_clash(candidate, history)
        if prev is not None:
            logger.debug(
                "Update [%d, %d] clashes with [%d, %d] (ttl=%d)",
                candidate.before_ts, candidate.after_ts,
                prev.before_ts, prev.after_ts, self.ttl_ms,
            )
            return True
        return False


def is_ambiguous(
    ttl_ms: int,
    candidate: TimestampedValue,
    history: Sequence[TimestampedValue],
) -> bool:
    """Functional form of :meth:`ClashDetector.is_ambiguous`."""
    return ClashDetector(ttl_ms).is_ambiguous(candidate, history)


# ---------------------------------------------------------------------------
# Window replay (used by the scenario runner)
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class WindowVerdict:
    """Outcome of one window in :func:`simulate_windows`."""

    before_ts:      int
    after_ts:       int
    ambiguous:      bool
    reason:         str        # CLEAN | TOO_SLOW | CLASH
    history_length: int        # history length after the window was recorded

    def to_dict(self) -> dict:
        return {
            "before_ts": self.before_ts,
            "after_ts": self.after_ts,
            "ambiguous": self.ambiguous,
            "reason": self.reason,
            "history_length": self.history_length,
        }


def simulate_windows(
    ttl_ms: int, windows: Sequence[Tuple[int, int]]
) -> List[WindowVerdict]:
    """
    Replay a sequence of ``(before_ts, after_ts)`` windows through the
    detector, resetting history on ambiguity exactly as the orchestrator does.
    The retried update is assumed to take the same window.
    """
    detector = ClashDetector(ttl_ms)
    history: List[TimestampedValue] = []
    verdicts: List[WindowVerdict] = []
    for before_ts, after_ts in windows:
        candidate = TimestampedValue(None, int(before_ts), int(after_ts))
        if detector.too_slow(candidate):
            reason = "TOO_SLOW"
        elif detector.first_clash(candidate, history) is not None:
            reason = "CLASH"
        else:
            reason = "CLEAN"
        if reason != "CLEAN":
            history.clear()
        history.append(candidate)
        verdicts.append(WindowVerdict(
            before_ts=candidate.before_ts,
            after_ts=candidate.after_ts,
            ambiguous=reason != "CLEAN",
            reason=reason,
            history_length=len(history),
        ))
    return verdicts
