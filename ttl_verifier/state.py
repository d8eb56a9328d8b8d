"""
History checkpoints for the TTL update verifier.

Handles loading, saving, and SHA-256 hashing of a history checkpoint file.
The hash is computed over a canonical JSON representation (sorted keys,
no whitespace, ``checkpoint_hash`` field excluded) so that a tampered or
truncated checkpoint is rejected on restore.
"""
from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Dict, Sequence

from ttl_verifier.history import InMemoryHistoryStore
from ttl_verifier.rules import VerificationRule

CHECKPOINT_VERSION = 1


def compute_checkpoint_hash(payload: Dict[str, Any]) -> str:
    """Compute SHA-256 of the canonical checkpoint JSON (excluding the hash)."""
    d = dict(payload)
    d.pop("checkpoint_hash", None)
    canonical = json.dumps(d, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def load_history(path: str, rules: Sequence[VerificationRule]) -> InMemoryHistoryStore:
    """Restore history from disk; return an empty store if the file does not exist."""
    p = Path(path)
    if not p.exists():
        return InMemoryHistoryStore()

    with open(p, "r", encoding="utf-8") as f:
        data: Dict[str, Any] = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(
            f"Checkpoint file is corrupted! Expected a JSON object in {path}, "
            f"got {type(data).__name__}"
        )

    version = int(data.get("version", CHECKPOINT_VERSION))
    if version != CHECKPOINT_VERSION:
        raise ValueError(f"Unsupported checkpoint version {version} in {path}")

    stored = data.get("checkpoint_hash", "")
    expected = compute_checkpoint_hash(data)
    if stored and stored != expected:
        raise ValueError(
            f"Checkpoint file is corrupted! "
            f"Expected hash {expected}, got {stored}"
        )

    decoders = {rule.rule_id: rule.decode_value for rule in rules}
    return InMemoryHistoryStore.from_dict(data.get("history", {}), decoders)


def save_history(
    store: InMemoryHistoryStore, path: str, rules: Sequence[VerificationRule]
) -> str:
    """Persist the store to disk and return the checkpoint hash."""
    encoders = {rule.rule_id: rule.encode_value for rule in rules}
    payload: Dict[str, Any] = {
        "version": CHECKPOINT_VERSION,
        "history": store.to_dict(encoders),
    }
    payload["checkpoint_hash"] = compute_checkpoint_hash(payload)

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, sort_keys=True)

    return payload["checkpoint_hash"]
