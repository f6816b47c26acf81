# src/stakereward/runtime/store_boot.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from stakereward.runtime.seed_config import apply_seed, load_seed
from stakereward.runtime.sqlite_db import SqliteDB, SqliteRewardStore

# Only ever used outside prod; prod refuses to boot without a real secret.
_DEV_AUTHORITY_SECRET = "stakereward-dev-secret"


@dataclass
class StoreBootConfig:
    db_path: str
    mode: str
    authority_secret: str
    seed_path: str


def boot_config_from_env() -> StoreBootConfig:
    mode = (os.environ.get("STAKEREWARD_MODE") or "prod").strip().lower()
    secret = os.environ.get("STAKEREWARD_AUTHORITY_SECRET") or ""
    if not secret:
        if mode == "prod":
            raise RuntimeError("STAKEREWARD_AUTHORITY_SECRET must be set in prod mode")
        secret = _DEV_AUTHORITY_SECRET

    return StoreBootConfig(
        db_path=os.environ.get("STAKEREWARD_DB_PATH", "./data/stakereward.db"),
        mode=mode,
        authority_secret=secret,
        seed_path=(os.environ.get("STAKEREWARD_SEED_PATH") or "").strip(),
    )


def build_store(cfg: Optional[StoreBootConfig] = None) -> SqliteRewardStore:
    """
    Build a SqliteRewardStore from an explicit boot config or, if omitted,
    from environment variables. Applies the seed file when one is configured.
    """
    c = cfg or boot_config_from_env()
    store = SqliteRewardStore(db=SqliteDB(path=c.db_path), authority_secret=c.authority_secret)
    if c.seed_path:
        if c.mode == "prod":
            raise RuntimeError("seed files are refused in prod mode")
        apply_seed(store, load_seed(c.seed_path))
    return store
