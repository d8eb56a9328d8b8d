"""
Interactive scenario runner for the TTL update verifier.

A small JSON API for trying out clash decisions by hand: pick a scenario,
tweak the timestamps, and see whether the verifier would judge the update
or reset and start over.

Usage:
    python -m ttl_verifier.runner_app
    # POST to http://localhost:5050/api/run-test
"""
from __future__ import annotations

import traceback
from typing import Any, Dict, List

from flask import Flask, jsonify, request

from ttl_verifier.clash import ClashDetector, simulate_windows
from ttl_verifier.models import DEFAULT_TTL_MS, TimestampedValue

app = Flask(__name__)

# -----------------------------------------------------------------------
# Scenario definitions
# -----------------------------------------------------------------------
SCENARIOS: List[Dict[str, Any]] = [
    {
        "id": "self_too_slow",
        "name": "Update Slower Than TTL",
        "description": "An update whose own window spans a whole TTL is ambiguous regardless of history.",
        "fields": [
            {"name": "ttl_ms", "label": "TTL (ms)", "type": "number", "default": DEFAULT_TTL_MS},
            {"name": "before_ts", "label": "Before (ms)", "type": "number", "default": 0},
            {"name": "after_ts", "label": "After (ms)", "type": "number", "default": DEFAULT_TTL_MS},
            {"name": "expect_ambiguous", "label": "Expect Ambiguous?", "type": "select", "default": "yes", "options": ["yes", "no"]},
        ],
    },
    {
        "id": "window_overlap",
        "name": "Pairwise Window Overlap",
        "description": "A prior update and a candidate clash when their TTL-shifted windows overlap. Equality counts as a clash.",
        "fields": [
            {"name": "ttl_ms", "label": "TTL (ms)", "type": "number", "default": 50},
            {"name": "prev_before_ts", "label": "Prior Before (ms)", "type": "number", "default": 90},
            {"name": "prev_after_ts", "label": "Prior After (ms)", "type": "number", "default": 100},
            {"name": "before_ts", "label": "Candidate Before (ms)", "type": "number", "default": 140},
            {"name": "after_ts", "label": "Candidate After (ms)", "type": "number", "default": 145},
            {"name": "expect_ambiguous", "label": "Expect Ambiguous?", "type": "select", "default": "yes", "options": ["yes", "no"]},
        ],
    },
    {
        "id": "update_sequence",
        "name": "Update Sequence",
        "description": "Replay a list of [before, after] windows; history is reset whenever an update is ambiguous.",
        "fields": [
            {"name": "ttl_ms", "label": "TTL (ms)", "type": "number", "default": 100},
            {"name": "windows", "label": "Windows", "type": "json", "default": [[0, 5], [50, 55], [200, 205]]},
            {"name": "expected_history_length", "label": "Expected Final History Length", "type": "number", "default": 3},
        ],
    },
]


# -----------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------
def _window(d: Dict[str, Any], before: str = "before_ts", after: str = "after_ts") -> TimestampedValue:
    return TimestampedValue(None, int(d[before]), int(d[after]))


def _expect(params: Dict[str, Any]) -> bool:
    return params.get("expect_ambiguous", "yes") == "yes"


# -----------------------------------------------------------------------
# Scenario runners
# -----------------------------------------------------------------------
def _run_self_too_slow(params: Dict) -> Dict[str, Any]:
    detector = ClashDetector(int(params["ttl_ms"]))
    candidate = _window(params)
    ambiguous = detector.is_ambiguous(candidate, [])
    expected = _expect(params)
    return {
        "passed": ambiguous == expected,
        "ambiguous": ambiguous,
        "expected_ambiguous": expected,
        "explanation": (
            f"Update took {candidate.duration}ms with ttl={detector.ttl_ms}ms: "
            f"{'too slow, expiry may have fired mid-update' if detector.too_slow(candidate) else 'fast enough'}"
        ),
    }


def _run_window_overlap(params: Dict) -> Dict[str, Any]:
    detector = ClashDetector(int(params["ttl_ms"]))
    prev = _window(params, "prev_before_ts", "prev_after_ts")
    candidate = _window(params)
    ambiguous = detector.is_ambiguous(candidate, [prev])
    expected = _expect(params)
    ttl = detector.ttl_ms
    return {
        "passed": ambiguous == expected,
        "ambiguous": ambiguous,
        "expected_ambiguous": expected,
        "explanation": (
            f"prev.after+ttl={prev.after_ts + ttl} >= before={candidate.before_ts}: "
            f"{prev.after_ts + ttl >= candidate.before_ts}; "
            f"prev.before+ttl={prev.before_ts + ttl} <= after={candidate.after_ts}: "
            f"{prev.before_ts + ttl <= candidate.after_ts}"
        ),
    }


def _run_update_sequence(params: Dict) -> Dict[str, Any]:
    windows = [(int(b), int(a)) for b, a in params["windows"]]
    verdicts = simulate_windows(int(params["ttl_ms"]), windows)
    final_length = verdicts[-1].history_length if verdicts else 0
    expected = params.get("expected_history_length")
    passed = expected is None or final_length == int(expected)
    return {
        "passed": passed,
        "verdicts": [v.to_dict() for v in verdicts],
        "history_length": final_length,
        "clashes": sum(1 for v in verdicts if v.ambiguous),
    }


RUNNERS = {
    "self_too_slow": _run_self_too_slow,
    "window_overlap": _run_window_overlap,
    "update_sequence": _run_update_sequence,
}


# -----------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------
@app.route("/api/scenarios")
def get_scenarios():
    return jsonify(SCENARIOS)


@app.route("/api/check-clash", methods=["POST"])
def check_clash():
    data = request.get_json(silent=True) or {}
    try:
        detector = ClashDetector(int(data["ttl_ms"]))
        candidate = _window(data["candidate"])
        history = [_window(h) for h in data.get("history", [])]
    except (KeyError, TypeError, ValueError) as exc:
        return jsonify({"error": f"Invalid request: {exc}"}), 400

    if detector.too_slow(candidate):
        reason, clash_with = "TOO_SLOW", None
    else:
        prev = detector.first_clash(candidate, history)
        reason = "CLEAN" if prev is None else "CLASH"
        clash_with = None if prev is None else prev.to_dict()
    return jsonify({
        "ambiguous": reason != "CLEAN",
        "reason": reason,
        "clash_with": clash_with,
    })


@app.route("/api/run-test", methods=["POST"])
def run_test():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid request: body must be a JSON object"}), 400
    scenario_id = data.get("scenario")
    params = data.get("params", {})
    if not isinstance(params, dict):
        return jsonify({"error": "Invalid request: params must be a JSON object"}), 400

    runner = RUNNERS.get(scenario_id) if isinstance(scenario_id, str) else None
    if not runner:
        return jsonify({"error": f"Unknown scenario: {scenario_id}"}), 400

    try:
        result = runner(params)
        return jsonify(result)
    except Exception as exc:
        return jsonify({
            "passed": False,
            "error": str(exc),
            "traceback": traceback.format_exc(),
        }), 200


# -----------------------------------------------------------------------
# Main
# -----------------------------------------------------------------------
if __name__ == "__main__":
    print("\n  TTL scenario runner -> http://localhost:5050\n")
    app.run(host="127.0.0.1", port=5050, debug=True)
