# src/stakereward/runtime/seed_config.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from stakereward.ledger.ids import find_reward_distributor_id
from stakereward.runtime.errors import ClaimError
from stakereward.runtime.event_log import log_event
from stakereward.runtime.sqlite_db import SqliteRewardStore

Json = Dict[str, Any]

log = logging.getLogger("stakereward.seed")


@dataclass(frozen=True, slots=True)
class SeedToken:
    token_id: str
    # Either a literal Ed25519 pubkey hex, or the stake pool whose derived
    # signing authority should hold the mint (issuer distributors).
    mint_authority: str = ""
    mint_authority_pool: str = ""


@dataclass(frozen=True, slots=True)
class SeedAccount:
    account_id: str
    token_id: str
    owner: str = ""
    owner_pool: str = ""
    balance: int = 0


@dataclass(frozen=True, slots=True)
class SeedDistributor:
    stake_pool_id: str
    reward_token_id: str
    reward_amount: int
    reward_duration_seconds: int
    kind: int
    max_supply: Optional[int] = None


@dataclass(frozen=True, slots=True)
class SeedEntry:
    stake_pool_id: str
    staked_asset_id: str
    multiplier: int = 1


@dataclass(frozen=True, slots=True)
class SeedStake:
    stake_entry_id: str
    stake_pool_id: str
    staked_asset_id: str
    total_stake_seconds: int = 0


@dataclass(frozen=True, slots=True)
class SeedConfig:
    tokens: List[SeedToken] = field(default_factory=list)
    accounts: List[SeedAccount] = field(default_factory=list)
    distributors: List[SeedDistributor] = field(default_factory=list)
    entries: List[SeedEntry] = field(default_factory=list)
    stakes: List[SeedStake] = field(default_factory=list)


def _records(obj: Json, key: str) -> List[Json]:
    raw = obj.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError(f"seed '{key}' must be a list")
    out: List[Json] = []
    for i, rec in enumerate(raw):
        if not isinstance(rec, dict):
            raise ValueError(f"seed '{key}[{i}]' must be an object")
        out.append(rec)
    return out


def _req_str(rec: Json, key: str, where: str) -> str:
    v = str(rec.get(key) or "").strip()
    if not v:
        raise ValueError(f"seed {where}: '{key}' is required")
    return v


def _as_int(v: Any, key: str, where: str) -> int:
    if isinstance(v, bool):
        raise ValueError(f"seed {where}: '{key}' must be an integer")
    try:
        return int(v)
    except (TypeError, ValueError):
        raise ValueError(f"seed {where}: '{key}' must be an integer") from None


def _req_int(rec: Json, key: str, where: str) -> int:
    if rec.get(key) is None:
        raise ValueError(f"seed {where}: '{key}' is required")
    return _as_int(rec[key], key, where)


def _int_or(rec: Json, key: str, where: str, default: int) -> int:
    v = rec.get(key)
    return default if v is None else _as_int(v, key, where)


def _opt_int(rec: Json, key: str, where: str) -> Optional[int]:
    v = rec.get(key)
    return None if v is None else _as_int(v, key, where)


def parse_seed(obj: Any) -> SeedConfig:
    if not isinstance(obj, dict):
        raise ValueError("seed config must be a mapping")

    tokens = []
    for rec in _records(obj, "tokens"):
        tok = SeedToken(
            token_id=_req_str(rec, "token_id", "token"),
            mint_authority=str(rec.get("mint_authority") or "").strip(),
            mint_authority_pool=str(rec.get("mint_authority_pool") or "").strip(),
        )
        if bool(tok.mint_authority) == bool(tok.mint_authority_pool):
            raise ValueError(f"seed token {tok.token_id}: exactly one of mint_authority/mint_authority_pool")
        tokens.append(tok)

    accounts = []
    for rec in _records(obj, "accounts"):
        acct = SeedAccount(
            account_id=_req_str(rec, "account_id", "account"),
            token_id=_req_str(rec, "token_id", "account"),
            owner=str(rec.get("owner") or "").strip(),
            owner_pool=str(rec.get("owner_pool") or "").strip(),
            balance=_int_or(rec, "balance", "account", 0),
        )
        if bool(acct.owner) == bool(acct.owner_pool):
            raise ValueError(f"seed account {acct.account_id}: exactly one of owner/owner_pool")
        accounts.append(acct)

    distributors = [
        SeedDistributor(
            stake_pool_id=_req_str(rec, "stake_pool_id", "distributor"),
            reward_token_id=_req_str(rec, "reward_token_id", "distributor"),
            reward_amount=_req_int(rec, "reward_amount", "distributor"),
            reward_duration_seconds=_req_int(rec, "reward_duration_seconds", "distributor"),
            kind=_int_or(rec, "kind", "distributor", 0),
            max_supply=_opt_int(rec, "max_supply", "distributor"),
        )
        for rec in _records(obj, "distributors")
    ]

    entries = [
        SeedEntry(
            stake_pool_id=_req_str(rec, "stake_pool_id", "entry"),
            staked_asset_id=_req_str(rec, "staked_asset_id", "entry"),
            multiplier=_int_or(rec, "multiplier", "entry", 1),
        )
        for rec in _records(obj, "entries")
    ]

    stakes = [
        SeedStake(
            stake_entry_id=_req_str(rec, "stake_entry_id", "stake"),
            stake_pool_id=_req_str(rec, "stake_pool_id", "stake"),
            staked_asset_id=_req_str(rec, "staked_asset_id", "stake"),
            total_stake_seconds=_int_or(rec, "total_stake_seconds", "stake", 0),
        )
        for rec in _records(obj, "stakes")
    ]

    return SeedConfig(tokens=tokens, accounts=accounts, distributors=distributors, entries=entries, stakes=stakes)


def load_seed(path: str) -> SeedConfig:
    """Load a SeedConfig from a YAML (.yaml/.yml) or JSON file."""
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(str(p))

    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        obj = yaml.safe_load(text)
    else:
        obj = json.loads(text)
    return parse_seed(obj)


def apply_seed(store: SqliteRewardStore, cfg: SeedConfig) -> bool:
    """Apply a seed to the store. Returns True if anything changed.

    Safe to call repeatedly: existing tokens/accounts/distributors/entries are
    left untouched (balances are only deposited when the account is created),
    and stake totals are re-recorded with the usual never-decrease rule.
    """
    changed = False

    def _created(fn, *args, **kwargs) -> bool:
        try:
            fn(*args, **kwargs)
            return True
        except ClaimError as e:
            if e.code != "conflict":
                raise
            return False

    for tok in cfg.tokens:
        mint_authority = tok.mint_authority or store.authority_for(tok.mint_authority_pool).authority_id
        changed |= _created(store.create_token, tok.token_id, mint_authority=mint_authority)

    for acct in cfg.accounts:
        owner = acct.owner or store.authority_for(acct.owner_pool).authority_id
        if _created(store.create_account, acct.account_id, token_id=acct.token_id, owner=owner):
            changed = True
            if acct.balance:
                store.deposit(acct.account_id, acct.balance)

    for d in cfg.distributors:
        changed |= _created(
            store.init_reward_distributor,
            stake_pool_id=d.stake_pool_id,
            reward_token_id=d.reward_token_id,
            reward_amount=d.reward_amount,
            reward_duration_seconds=d.reward_duration_seconds,
            kind=d.kind,
            max_supply=d.max_supply,
        )

    for e in cfg.entries:
        changed |= _created(
            store.init_reward_entry,
            distributor_id=find_reward_distributor_id(e.stake_pool_id),
            staked_asset_id=e.staked_asset_id,
            multiplier=e.multiplier,
        )

    for s in cfg.stakes:
        store.record_stake_seconds(
            s.stake_entry_id,
            stake_pool_id=s.stake_pool_id,
            staked_asset_id=s.staked_asset_id,
            total_stake_seconds=s.total_stake_seconds,
        )

    log_event(
        log,
        "seed_applied",
        changed=changed,
        tokens=len(cfg.tokens),
        accounts=len(cfg.accounts),
        distributors=len(cfg.distributors),
        entries=len(cfg.entries),
        stakes=len(cfg.stakes),
    )
    return changed
