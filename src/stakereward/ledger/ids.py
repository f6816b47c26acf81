# src/stakereward/ledger/ids.py
from __future__ import annotations

import hashlib

from stakereward.ledger.constants import REWARD_DISTRIBUTOR_SEED, REWARD_ENTRY_SEED


def _sha256_hex(*parts: str) -> str:
    h = hashlib.sha256()
    for p in parts:
        b = str(p).encode("utf-8")
        # length-prefix each part so ("ab", "c") and ("a", "bc") cannot collide
        h.update(len(b).to_bytes(4, "big"))
        h.update(b)
    return h.hexdigest()


def find_reward_distributor_id(stake_pool_id: str) -> str:
    """Deterministic distributor id: one distributor per stake pool."""
    return "rd:" + _sha256_hex(REWARD_DISTRIBUTOR_SEED, str(stake_pool_id))


def find_reward_entry_id(distributor_id: str, staked_asset_id: str) -> str:
    """Deterministic entry id: one entry per (distributor, staked asset)."""
    return "re:" + _sha256_hex(REWARD_ENTRY_SEED, str(distributor_id), str(staked_asset_id))
