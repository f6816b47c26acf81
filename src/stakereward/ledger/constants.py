# src/stakereward/ledger/constants.py
from __future__ import annotations

"""Reward ledger constants.

Counters and configuration values are unsigned 64-bit integers. Python ints
are unbounded, so every arithmetic step on them goes through ledger.checked.
"""

U64_MAX: int = 2**64 - 1

# Seeds for deterministic id / authority derivation.
REWARD_DISTRIBUTOR_SEED: str = "reward-distributor"
REWARD_ENTRY_SEED: str = "reward-entry"

DEFAULT_MULTIPLIER: int = 1
