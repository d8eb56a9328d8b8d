"""
Synthetic update generator for the TTL update verifier.

Produces events.jsonl where every line carries one random update for each
rule, spread over a small pool of partition keys so that updates to the
same key land close enough together to exercise TTL expiry and clashes.
"""
from __future__ import annotations

import json
import random
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ttl_verifier.models import DEFAULT_TTL_MS
from ttl_verifier.rules import VerificationRule, default_rules


def _make_event(
    rng: random.Random,
    key: str,
    rules: Sequence[VerificationRule],
) -> Dict[str, Any]:
    return {
        "key": key,
        "updates": {
            rule.rule_id: rule.encode_value(rule.random_update(rng)) for rule in rules
        },
    }


def generate_events(
    output_path: str,
    count: int = 1000,
    seed: int = 42,
    keys: int = 10,
    rules: Optional[Sequence[VerificationRule]] = None,
) -> None:
    """Generate ``count`` seeded random update events."""
    if count < 0:
        raise ValueError(f"count must be >= 0, got {count}")
    if keys <= 0:
        raise ValueError(f"keys must be positive, got {keys}")

    rng = random.Random(seed)
    rules = list(rules) if rules is not None else default_rules(DEFAULT_TTL_MS)
    key_pool = [f"key-{i}" for i in range(keys)]

    events: List[Dict[str, Any]] = [
        _make_event(rng, rng.choice(key_pool), rules) for _ in range(count)
    ]

    p = Path(output_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        for ev in events:
            f.write(json.dumps(ev, sort_keys=True) + "\n")


if __name__ == "__main__":
    generate_events("events.jsonl", 1000, 42)
    print("Generated events.jsonl")
