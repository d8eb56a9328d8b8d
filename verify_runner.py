"""Quick API verification for the scenario runner."""
import sys

import requests

base = "http://127.0.0.1:5050"

tests = [
    ("Scenarios loaded", "GET", "/api/scenarios", None, lambda r: len(r.json()) == 3),
    ("Too slow (duration == ttl)", "POST", "/api/run-test", {
        "scenario": "self_too_slow",
        "params": {"ttl_ms": 100, "before_ts": 0, "after_ts": 100, "expect_ambiguous": "yes"}
    }, lambda r: r.json()["passed"]),
    ("Fast enough (duration < ttl)", "POST", "/api/run-test", {
        "scenario": "self_too_slow",
        "params": {"ttl_ms": 100, "before_ts": 0, "after_ts": 99, "expect_ambiguous": "no"}
    }, lambda r: r.json()["passed"]),
    ("Overlap (140..145 vs 90..100, ttl=50)", "POST", "/api/run-test", {
        "scenario": "window_overlap",
        "params": {"ttl_ms": 50, "prev_before_ts": 90, "prev_after_ts": 100,
                   "before_ts": 140, "after_ts": 145, "expect_ambiguous": "yes"}
    }, lambda r: r.json()["passed"]),
    ("No overlap (160..165 vs 90..100, ttl=50)", "POST", "/api/run-test", {
        "scenario": "window_overlap",
        "params": {"ttl_ms": 50, "prev_before_ts": 90, "prev_after_ts": 100,
                   "before_ts": 160, "after_ts": 165, "expect_ambiguous": "no"}
    }, lambda r: r.json()["passed"]),
    ("Sequence keeps 3 entries", "POST", "/api/run-test", {
        "scenario": "update_sequence",
        "params": {"ttl_ms": 100, "windows": [[0, 5], [50, 55], [200, 205]],
                   "expected_history_length": 3}
    }, lambda r: r.json()["passed"] and r.json()["clashes"] == 0),
    ("Check clash endpoint", "POST", "/api/check-clash", {
        "ttl_ms": 50,
        "candidate": {"before_ts": 140, "after_ts": 145},
        "history": [{"before_ts": 90, "after_ts": 100}],
    }, lambda r: r.json()["reason"] == "CLASH"),
]

print("=" * 60)
ok = 0
for name, method, path, body, check in tests:
    try:
        if method == "GET":
            r = requests.get(base + path)
        else:
            r = requests.post(base + path, json=body)
        passed = check(r)
        status = "PASS" if passed else "FAIL"
        detail = ""
        if not passed and method == "POST":
            detail = f" | {r.text[:120]}"
    except Exception as exc:
        status = "ERR"
        detail = f" | {exc}"
        passed = False
    print(f"  [{status}] {name}{detail}")
    if passed:
        ok += 1

print(f"\n  {ok}/{len(tests)} passed")
print("=" * 60)
if ok != len(tests):
    sys.exit(1)
