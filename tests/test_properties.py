"""
Property-based tests for the TTL update verifier using Hypothesis.

Tests properties that must ALWAYS hold:
  - An update slower than the TTL is ambiguous whatever the history
  - An empty history never clashes with a fast enough update
  - The clash decision is a pure function of timestamps and TTL
  - Against a correct TTL store, verification never fails
  - After a clash the history holds exactly the retried update
"""
import random

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from fakes import FakeClock, FakeTtlBackend
from ttl_verifier.clash import ClashDetector
from ttl_verifier.engine import VerificationOrchestrator
from ttl_verifier.history import InMemoryHistoryStore
from ttl_verifier.models import TimestampedValue, UpdateEvent, VerifierConfig
from ttl_verifier.rules import default_rules


# -----------------------------------------------------------------------
# Strategies
# -----------------------------------------------------------------------
ttls = st.integers(min_value=1, max_value=10_000)


@st.composite
def windows(draw, max_duration=10_000):
    before = draw(st.integers(min_value=0, max_value=1_000_000))
    duration = draw(st.integers(min_value=0, max_value=max_duration))
    return TimestampedValue(None, before, before + duration)


histories = st.lists(windows(), max_size=20)


# -----------------------------------------------------------------------
# Property 1: Too slow dominates
# -----------------------------------------------------------------------
class TestPropertyTooSlow:
    @given(ttl=ttls, before=st.integers(0, 1_000_000), extra=st.integers(0, 10_000), history=histories)
    @settings(max_examples=200)
    def test_slow_update_always_ambiguous(self, ttl, before, extra, history):
        candidate = TimestampedValue(None, before, before + ttl + extra)
        assert ClashDetector(ttl).is_ambiguous(candidate, history)


# -----------------------------------------------------------------------
# Property 2: Empty history
# -----------------------------------------------------------------------
class TestPropertyEmptyHistory:
    @given(ttl=ttls, candidate=windows())
    @settings(max_examples=200)
    def test_empty_history_only_fails_when_slow(self, ttl, candidate):
        detector = ClashDetector(ttl)
        assert detector.is_ambiguous(candidate, []) == detector.too_slow(candidate)


# -----------------------------------------------------------------------
# Property 3: Purity
# -----------------------------------------------------------------------
class TestPropertyIdempotence:
    @given(ttl=ttls, candidate=windows(), history=histories)
    @settings(max_examples=200)
    def test_same_inputs_same_answer(self, ttl, candidate, history):
        before = list(history)
        first = ClashDetector(ttl).is_ambiguous(candidate, history)
        second = ClashDetector(ttl).is_ambiguous(candidate, history)
        assert first == second
        assert history == before

    @given(ttl=ttls, candidate=windows(), history=histories)
    @settings(max_examples=200)
    def test_ambiguous_iff_slow_or_some_pair_clashes(self, ttl, candidate, history):
        detector = ClashDetector(ttl)
        expected = detector.too_slow(candidate) or any(
            p.after_ts + ttl >= candidate.before_ts and p.before_ts + ttl <= candidate.after_ts
            for p in history
        )
        assert detector.is_ambiguous(candidate, history) == expected


# -----------------------------------------------------------------------
# Property 4: No false positives against a correct store
# -----------------------------------------------------------------------
class TestPropertyNoFalsePositives:
    @given(
        ttl=st.integers(min_value=20, max_value=200),
        step=st.integers(min_value=0, max_value=1),
        gaps=st.lists(st.integers(min_value=0, max_value=400), min_size=1, max_size=30),
        seed=st.integers(min_value=0, max_value=2**32 - 1),
    )
    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    def test_correct_store_never_fails(self, ttl, step, gaps, seed):
        rng = random.Random(seed)
        clock = FakeClock(step=step)
        rules = default_rules(ttl)
        orchestrator = VerificationOrchestrator(
            rules, FakeTtlBackend(clock), InMemoryHistoryStore(),
            VerifierConfig(ttl_ms=ttl), clock=clock,
        )
        for gap in gaps:
            clock.advance(gap)
            event = UpdateEvent(
                key=rng.choice(["a", "b"]),
                updates={r.rule_id: r.random_update(rng) for r in rules},
            )
            assert orchestrator.process_event(event) == []


# -----------------------------------------------------------------------
# Property 5: Reset leaves exactly the retried update
# -----------------------------------------------------------------------
class TestPropertyResetBaseline:
    @given(
        ttl=st.integers(min_value=1, max_value=500),
        updates=st.integers(min_value=1, max_value=10),
    )
    @settings(max_examples=50)
    def test_boundary_update_resets_to_single_entry(self, ttl, updates):
        clock = FakeClock()
        rules = default_rules(ttl)
        store = InMemoryHistoryStore()
        backend = FakeTtlBackend(clock)
        orchestrator = VerificationOrchestrator(
            rules, backend, store, VerifierConfig(ttl_ms=ttl), clock=clock,
        )
        for i in range(updates):
            orchestrator.process_event(UpdateEvent("k", {
                "value": i, "list": i, "map": ["a", i], "reducing": i,
            }))
        clock.t = ttl  # first update was at 0: exactly on the boundary
        orchestrator.process_event(UpdateEvent("k", {
            "value": 99, "list": 99, "map": ["z", 99], "reducing": 99,
        }))
        for rule in rules:
            history = store.load("k", rule.rule_id)
            assert len(history) == 1
        assert backend.values[("k", "value")][0] == 99
        assert [v for v, _ in backend.lists[("k", "list")]] == [99]
        assert {k: v for k, (v, _) in backend.maps[("k", "map")].items()} == {"z": 99}
        assert backend.values[("k", "reducing")][0] == 99
