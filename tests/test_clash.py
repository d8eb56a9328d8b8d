"""
Unit tests for the clash detector.
"""
import pytest

from ttl_verifier.clash import ClashDetector, is_ambiguous, simulate_windows
from ttl_verifier.models import TimestampedValue


def _tv(before, after, value=None) -> TimestampedValue:
    return TimestampedValue(value, before, after)


# -----------------------------------------------------------------------
# Test: too slow
# -----------------------------------------------------------------------
class TestTooSlow:
    def test_duration_equal_to_ttl_is_ambiguous(self):
        assert is_ambiguous(100, _tv(0, 100), [])

    def test_duration_longer_than_ttl_is_ambiguous(self):
        assert is_ambiguous(100, _tv(0, 250), [])

    def test_duration_just_below_ttl_is_clean(self):
        assert not is_ambiguous(100, _tv(0, 99), [])

    def test_too_slow_ignores_history(self):
        far_past = [_tv(-10_000, -9_999)]
        assert ClashDetector(10).is_ambiguous(_tv(0, 10), far_past)


# -----------------------------------------------------------------------
# Test: pairwise overlap
# -----------------------------------------------------------------------
class TestWindowOverlap:
    def test_overlapping_windows_clash(self):
        # 100 + 50 >= 140 and 90 + 50 <= 145
        assert is_ambiguous(50, _tv(140, 145), [_tv(90, 100)])

    def test_candidate_after_expiry_window_is_clean(self):
        # 100 + 50 = 150 < 160
        assert not is_ambiguous(50, _tv(160, 165), [_tv(90, 100)])

    def test_candidate_well_inside_ttl_is_clean(self):
        # 90 + 50 = 140 > 125: previous value certainly still alive
        assert not is_ambiguous(50, _tv(120, 125), [_tv(90, 100)])

    def test_equality_on_upper_bound_is_a_clash(self):
        # p.after + ttl == c.before
        assert is_ambiguous(50, _tv(150, 150), [_tv(150 - 50, 100)])

    def test_equality_on_lower_bound_is_a_clash(self):
        # p.before + ttl == c.after
        assert is_ambiguous(50, _tv(130, 140), [_tv(90, 100)])

    def test_any_entry_in_history_is_enough(self):
        history = [_tv(0, 1), _tv(500, 501), _tv(90, 100)]
        assert is_ambiguous(50, _tv(140, 145), history)

    def test_first_clash_returns_offending_entry(self):
        detector = ClashDetector(50)
        offending = _tv(90, 100, value="x")
        history = [_tv(0, 1), offending, _tv(95, 96)]
        assert detector.first_clash(_tv(140, 145), history) is offending

    def test_first_clash_none_when_clean(self):
        assert ClashDetector(50).first_clash(_tv(160, 165), [_tv(90, 100)]) is None

    def test_empty_history_is_clean(self):
        assert not is_ambiguous(50, _tv(0, 10), [])


class TestDetectorValidation:
    @pytest.mark.parametrize("ttl", [0, -1])
    def test_non_positive_ttl_rejected(self, ttl):
        with pytest.raises(ValueError):
            ClashDetector(ttl)

    def test_inverted_window_rejected(self):
        with pytest.raises(ValueError):
            _tv(10, 5)


# -----------------------------------------------------------------------
# Test: window replay
# -----------------------------------------------------------------------
class TestSimulateWindows:
    def test_three_clean_updates_accumulate(self):
        verdicts = simulate_windows(100, [(0, 5), (50, 55), (200, 205)])
        assert [v.reason for v in verdicts] == ["CLEAN", "CLEAN", "CLEAN"]
        assert [v.history_length for v in verdicts] == [1, 2, 3]

    def test_clash_resets_history(self):
        verdicts = simulate_windows(100, [(0, 5), (20, 25), (100, 110)])
        assert verdicts[2].reason == "CLASH"
        assert verdicts[2].history_length == 1

    def test_too_slow_resets_history(self):
        verdicts = simulate_windows(10, [(0, 1), (2, 3), (4, 20)])
        assert verdicts[2].reason == "TOO_SLOW"
        assert verdicts[2].ambiguous
        assert verdicts[2].history_length == 1
