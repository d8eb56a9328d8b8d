"""
Tests for the scenario runner JSON API.
"""
import pytest

from ttl_verifier.runner_app import SCENARIOS, app


@pytest.fixture
def client():
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c


def _run(client, scenario, **params):
    return client.post("/api/run-test", json={"scenario": scenario, "params": params})


class TestScenarios:
    def test_list(self, client):
        r = client.get("/api/scenarios")
        assert r.status_code == 200
        assert [s["id"] for s in r.get_json()] == [s["id"] for s in SCENARIOS]

    def test_unknown_scenario(self, client):
        r = _run(client, "nope")
        assert r.status_code == 400

    def test_self_too_slow(self, client):
        body = _run(client, "self_too_slow", ttl_ms=100, before_ts=0, after_ts=100,
                    expect_ambiguous="yes").get_json()
        assert body["passed"] and body["ambiguous"]

    def test_window_overlap_clash(self, client):
        body = _run(client, "window_overlap", ttl_ms=50, prev_before_ts=90, prev_after_ts=100,
                    before_ts=140, after_ts=145, expect_ambiguous="yes").get_json()
        assert body["passed"] and body["ambiguous"]

    def test_window_overlap_clean(self, client):
        body = _run(client, "window_overlap", ttl_ms=50, prev_before_ts=90, prev_after_ts=100,
                    before_ts=160, after_ts=165, expect_ambiguous="yes").get_json()
        assert not body["passed"]
        assert body["ambiguous"] is False

    def test_update_sequence(self, client):
        body = _run(client, "update_sequence", ttl_ms=100,
                    windows=[[0, 5], [50, 55], [200, 205]],
                    expected_history_length=3).get_json()
        assert body["passed"]
        assert body["clashes"] == 0
        assert [v["history_length"] for v in body["verdicts"]] == [1, 2, 3]

    @pytest.mark.parametrize("body", [[1, 2], 7, {"scenario": "self_too_slow", "params": [1]},
                                      {"scenario": ["self_too_slow"]}])
    def test_non_object_body_is_bad_request(self, client, body):
        r = client.post("/api/run-test", json=body)
        assert r.status_code == 400
        assert "error" in r.get_json()

    def test_runner_errors_are_reported(self, client):
        r = _run(client, "self_too_slow", ttl_ms=0, before_ts=0, after_ts=1)
        assert r.status_code == 200
        body = r.get_json()
        assert body["passed"] is False
        assert "ttl_ms must be positive" in body["error"]


class TestCheckClash:
    def test_clash_reports_offending_entry(self, client):
        r = client.post("/api/check-clash", json={
            "ttl_ms": 50,
            "candidate": {"before_ts": 140, "after_ts": 145},
            "history": [{"before_ts": 0, "after_ts": 1}, {"before_ts": 90, "after_ts": 100}],
        })
        body = r.get_json()
        assert body["ambiguous"] is True
        assert body["reason"] == "CLASH"
        assert body["clash_with"]["before_ts"] == 90

    def test_too_slow(self, client):
        body = client.post("/api/check-clash", json={
            "ttl_ms": 10, "candidate": {"before_ts": 0, "after_ts": 10},
        }).get_json()
        assert body["reason"] == "TOO_SLOW"

    def test_clean(self, client):
        body = client.post("/api/check-clash", json={
            "ttl_ms": 10, "candidate": {"before_ts": 0, "after_ts": 1}, "history": [],
        }).get_json()
        assert body == {"ambiguous": False, "reason": "CLEAN", "clash_with": None}

    def test_bad_request(self, client):
        r = client.post("/api/check-clash", json={"ttl_ms": 10})
        assert r.status_code == 400

    def test_inverted_window(self, client):
        r = client.post("/api/check-clash", json={
            "ttl_ms": 10, "candidate": {"before_ts": 5, "after_ts": 1},
        })
        assert r.status_code == 400
