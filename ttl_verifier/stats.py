"""Running update/clash counters with a periodic summary log line."""
from __future__ import annotations

import logging
from typing import Optional

from ttl_verifier.models import StatsSummary

logger = logging.getLogger(__name__)


class StatsAggregator:
    """
    Local, per-instance statistics.  Never affects verification.

    Usage:
        stats = StatsAggregator(report_every=1000)
        stats.record(was_clash, len(prev_updates))
        stats.flush_if_due()
    """

    def __init__(self, report_every: int) -> None:
        if report_every <= 0:
            raise ValueError(f"report_every must be positive, got {report_every}")
        self.report_every: int = report_every
        self.total_updates: int = 0
        self.total_clashes: int = 0
        self.total_history_length: int = 0
        self._last_flushed_at: int = 0

    def record(self, was_clash: bool, history_length: int) -> None:
        if history_length < 0:
            raise ValueError(f"history_length must be >= 0, got {history_length}")
        self.total_updates += 1
        if was_clash:
            self.total_clashes += 1
        self.total_history_length += history_length

    def summary(self) -> StatsSummary:
        updates = self.total_updates
        return StatsSummary(
            total_updates=updates,
            total_clashes=self.total_clashes,
            avg_history_length=self.total_history_length / updates if updates else 0.0,
            clash_ratio=self.total_clashes / updates if updates else 0.0,
        )

    def flush_if_due(self) -> Optional[StatsSummary]:
        """Log and return a summary every ``report_every`` updates, else ``None``."""
        if self.total_updates == 0 or self.total_updates % self.report_every:
            return None
        if self._last_flushed_at == self.total_updates:
            return None
        self._last_flushed_at = self.total_updates
        summary = self.summary()
        logger.info(
            "Avg update chain length: %.2f, clash stat: %d/%d (%.4f)",
            summary.avg_history_length, summary.total_clashes,
            summary.total_updates, summary.clash_ratio,
        )
        return summary
