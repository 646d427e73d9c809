from __future__ import annotations

import hashlib
import json
from typing import Any, Dict

# prev_hash of the first entry in every per-issue assignment chain
GENESIS_HASH = "0" * 64


def canonical_dumps(obj: Dict[str, Any]) -> str:
    """Sorted keys, no whitespace; UUIDs, datetimes and Decimals go through str()."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def payload_fingerprint(payload: Dict[str, Any]) -> str:
    return sha256_hex(canonical_dumps(payload))


def chain_hash(prev_hash: str, payload: Dict[str, Any]) -> str:
    """Hash of one ledger entry, linked to the entry before it."""
    return sha256_hex(prev_hash + canonical_dumps(payload))
