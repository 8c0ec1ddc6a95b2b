# src/poaledger/util/ipfs_hash.py
from __future__ import annotations

"""Content-address checks for proof-of-custody documents.

Custody paperwork lives off chain; the token only stores its IPFS address.
Accepted forms:
  - CIDv0: "Qm" + 44 base58btc characters (46 total)
  - CIDv1: "b" + lowercase RFC4648 base32 (bafy..., bafk...)

Not a multiformats parser: the point is to refuse obviously wrong values
before they are written into storage.
"""

import re
from dataclasses import dataclass

_CIDV0 = re.compile(r"^Qm[1-9A-HJ-NP-Za-km-z]{44}$")
_CIDV1_BASE32 = re.compile(r"^b[a-z2-7]{58,}$")

MAX_HASH_LEN = 128


@dataclass(frozen=True)
class HashCheck:
    ok: bool
    reason: str
    value: str


def check_ipfs_hash(raw: str, *, max_len: int = MAX_HASH_LEN) -> HashCheck:
    v = (raw or "").strip() if isinstance(raw, str) else ""
    if not v:
        return HashCheck(False, "missing_ipfs_hash", "")
    if len(v) > int(max_len):
        return HashCheck(False, "ipfs_hash_too_long", v)
    if _CIDV0.match(v) or _CIDV1_BASE32.match(v):
        return HashCheck(True, "ok", v)
    return HashCheck(False, "invalid_ipfs_hash", v)
