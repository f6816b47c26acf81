# src/stakereward/__init__.py
"""
stakereward: staking reward accrual and disbursement

This package converts externally tracked stake-seconds into reward-token
payouts for a reward distributor:
  - ledger: record types, ids, checked u64 arithmetic
  - runtime: accrual math, payout mechanisms, the claim operation, persistence
  - crypto: Ed25519 signing authority used to authorize payouts
  - api: FastAPI surface over the SQLite-backed store

The claim operation (runtime.claim.claim) is the single state transition;
everything else feeds it inputs or persists its outputs.
"""

from __future__ import annotations

__version__ = "0.1.0"
