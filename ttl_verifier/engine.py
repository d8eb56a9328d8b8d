"""
The verification engine.

For every incoming update event and every configured rule:

  BUILD_CONTEXT -> CHECK_CLASH -> (clash: RESET -> REBUILD_CONTEXT)
  -> RECORD_STATS -> APPEND_HISTORY -> EVALUATE_PREDICATE
  -> (predicate failed: EMIT_DIAGNOSTIC)

Host failures (state reads/updates, history persistence) are never caught
here; they propagate to the caller.
"""
from __future__ import annotations

import importlib
import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence

from ttl_verifier.clash import ClashDetector
from ttl_verifier.history import HistoryStore, HistoryTracker, InMemoryHistoryStore
from ttl_verifier.models import (
    UpdateContext,
    UpdateEvent,
    VerificationContext,
    VerifierConfig,
)
from ttl_verifier.rules import StateBackend, VerificationRule, default_rules
from ttl_verifier.stats import StatsAggregator

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def system_clock_ms() -> int:
    """Wall-clock time in integer milliseconds."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Update context builder
# ---------------------------------------------------------------------------
class UpdateContextBuilder:
    """Timestamped read/update/read against one state handle."""

    def __init__(self, clock: Clock = system_clock_ms) -> None:
        self.clock = clock

    def build(self, rule: VerificationRule, handle: Any, raw_update: Any) -> UpdateContext:
        before_ts = self.clock()
        value_before = rule.get(handle)
        rule.update(handle, raw_update)
        value_after = rule.get(handle)
        after_ts = self.clock()
        return UpdateContext(
            before_ts=before_ts,
            value_before=value_before,
            raw_update=raw_update,
            value_after=value_after,
            after_ts=after_ts,
        )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------
class VerificationOrchestrator:
    """
    Runs every rule against every event and collects diagnostics.

    Usage:
        orchestrator = VerificationOrchestrator(rules, backend, InMemoryHistoryStore(), config)
        for event in events:
            for line in orchestrator.process_event(event):
                # write diagnostic ...
    """

    def __init__(
        self,
        rules: Sequence[VerificationRule],
        backend: StateBackend,
        history_store: HistoryStore,
        config: VerifierConfig,
        stats: Optional[StatsAggregator] = None,
        clock: Clock = system_clock_ms,
    ) -> None:
        ids = [rule.rule_id for rule in rules]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate rule ids: {ids}")
        self.rules: List[VerificationRule] = list(rules)
        self.backend = backend
        self.history_store = history_store
        self.config = config
        self.detector = ClashDetector(config.ttl_ms)
        self.builder = UpdateContextBuilder(clock)
        self.stats = stats if stats is not None else StatsAggregator(config.report_every)
        self._event_count: int = 0
        self._failure_count: int = 0

    @property
    def failure_count(self) -> int:
        return self._failure_count

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def prepare_updates(self, event: UpdateEvent) -> List[Any]:
        """
        Return the payload of ``event`` for every rule, in rule order.

        Raises ValueError/TypeError for a missing or malformed payload.  Nothing
        is read or written, so a rejected event leaves state, history and stats
        untouched.
        """
        raw_updates = []
        for rule in self.rules:
            raw_update = event.update_for(rule.rule_id)
            rule.validate_update(raw_update)
            raw_updates.append(raw_update)
        return raw_updates

    def process_event(self, event: UpdateEvent) -> List[str]:
        """Evaluate ``event`` with every rule; return one line per failed rule."""
        raw_updates = self.prepare_updates(event)
        self._event_count += 1
        tracker = HistoryTracker(self.history_store, event.key)
        diagnostics: List[str] = []

        for rule, raw_update in zip(self.rules, raw_updates):
            ctx = self._evaluate(rule, tracker, event.key, raw_update)
            if not rule.verify(ctx):
                self._failure_count += 1
                logger.warning(
                    "Verification failed: key=%s rule=%s before=%r after=%r",
                    event.key, rule.rule_id,
                    ctx.update_context.value_before, ctx.update_context.value_after,
                )
                diagnostics.append(str(ctx))

        logger.debug(
            "Event #%d processed: key=%s failures=%d",
            self._event_count, event.key, len(diagnostics),
        )
        return diagnostics

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _evaluate(
        self,
        rule: VerificationRule,
        tracker: HistoryTracker,
        key: str,
        raw_update: Any,
    ) -> VerificationContext:
        handle = rule.create_state(self.backend, key)
        prev_updates = tracker.snapshot(rule.rule_id)

        update_context = self.builder.build(rule, handle, raw_update)
        clashes = self.detector.is_ambiguous(update_context.update_with_ts, prev_updates)
        if clashes:
            # No disambiguation possible: start over from empty state.
            rule.clear(handle)
            tracker.reset(rule.rule_id)
            prev_updates = []
            update_context = self.builder.build(rule, handle, raw_update)
            logger.debug("Reset key=%s rule=%s after clash", key, rule.rule_id)

        self.stats.record(clashes, len(prev_updates))
        self.stats.flush_if_due()
        tracker.append(rule.rule_id, update_context.update_with_ts)

        return VerificationContext(
            key=key,
            rule_id=rule.rule_id,
            prev_updates=prev_updates,
            update_context=update_context,
            encode=rule.encode_value,
        )


# ---------------------------------------------------------------------------
# Backend loading
# ---------------------------------------------------------------------------
def load_backend(spec: str) -> StateBackend:
    """
    Resolve ``"package.module:attr"`` to a :class:`StateBackend`.
    ``attr`` may be a backend instance or a zero-argument factory.
    """
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Backend must look like 'module:attr', got {spec!r}")
    module = importlib.import_module(module_name)
    target = getattr(module, attr)
    backend = target() if callable(target) and not isinstance(target, StateBackend) else target
    if not isinstance(backend, StateBackend):
        raise TypeError(f"{spec!r} did not produce a StateBackend, got {type(backend).__name__}")
    return backend


# ---------------------------------------------------------------------------
# High-level runner
# ---------------------------------------------------------------------------
def run_verification(
    events_path: str,
    diagnostics_path: str,
    backend: StateBackend,
    config: VerifierConfig,
    checkpoint_path: Optional[str] = None,
    rules: Optional[Sequence[VerificationRule]] = None,
    clock: Clock = system_clock_ms,
) -> int:
    """
    Verify every event in ``events_path`` and write diagnostics.
    Returns the number of failed verifications.
    """
    from ttl_verifier.state import load_history, save_history

    rules = list(rules) if rules is not None else default_rules(config.ttl_ms)

    if checkpoint_path:
        logger.info("Restoring history from %s", checkpoint_path)
        history = load_history(checkpoint_path, rules)
    else:
        history = InMemoryHistoryStore()

    orchestrator = VerificationOrchestrator(rules, backend, history, config, clock=clock)

    diagnostics: List[str] = []
    processed = 0
    logger.info("Processing events from %s", events_path)
    with open(events_path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                event = UpdateEvent.from_dict(json.loads(line))
                orchestrator.prepare_updates(event)
            except (json.JSONDecodeError, KeyError, ValueError, TypeError) as exc:
                raise ValueError(f"Invalid event on line {line_no}: {exc}") from exc
            diagnostics.extend(orchestrator.process_event(event))
            processed += 1

    summary = orchestrator.stats.summary()
    logger.info(
        "Processed %d events (%d updates, %d clashes, %d failures)",
        processed, summary.total_updates, summary.total_clashes, len(diagnostics),
    )

    p = Path(diagnostics_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        for line in diagnostics:
            f.write(line + "\n")
    logger.info("Diagnostics saved -> %s (%d records)", diagnostics_path, len(diagnostics))

    if checkpoint_path:
        digest = save_history(history, checkpoint_path, rules)
        logger.info("History checkpoint saved -> %s (hash=%s)", checkpoint_path, digest)

    return len(diagnostics)
