# src/stakereward/runtime/sqlite_db.py
from __future__ import annotations

import os
import json
import logging
import sqlite3
import time
import random
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from stakereward.crypto.authority import PayoutAuthorization, SigningAuthority, derive_signing_authority
from stakereward.ledger.checked import checked_add, checked_sub
from stakereward.ledger.ids import find_reward_distributor_id, find_reward_entry_id
from stakereward.ledger.types import RewardDistributor, RewardEntry, StakeRecord
from stakereward.runtime.admission import validate_claim_accounts
from stakereward.runtime.claim import ClaimOutcome, claim, report_committed, report_failed
from stakereward.runtime.custody import check_authorization
from stakereward.runtime.errors import ClaimError, PayoutError
from stakereward.runtime.event_log import log_event
from stakereward.runtime.payout import PayoutContext, PayoutExecutor
from stakereward.runtime.stake_ledger import StakeTimeProvider, stake_asset_linked, stake_asset_not_found

Json = Dict[str, Any]

log = logging.getLogger("stakereward.store")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding.

    Keep this stable; stored records are compared as text by tooling.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


class SqliteDB:
    """SQLite manager for the reward store.

    Design goals:
      - single durable DB file for reward records + token custody
      - cross-process safe (SQLite locks)
      - cross-thread safe by never sharing connections

    SQLite allows only one writer at a time. Under multi-process workloads,
    BEGIN IMMEDIATE can transiently fail with "database is locked", so
    write_tx() retries with bounded backoff.
    """

    SCHEMA_VERSION = 2

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """Return a safe PRAGMA synchronous value.

        Defaults:
          - prod        -> FULL
          - dev/testnet -> NORMAL

        Override with STAKEREWARD_SQLITE_SYNCHRONOUS in {OFF,NORMAL,FULL,EXTRA}.
        """
        mode = (os.environ.get("STAKEREWARD_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("STAKEREWARD_SQLITE_SYNCHRONOUS") or default).strip().upper()

        allowed = {"OFF", "NORMAL", "FULL", "EXTRA"}
        if raw not in allowed:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        p = Path(self.path)
        p.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("STAKEREWARD_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0

        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # we manage BEGIN/COMMIT ourselves
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        allow_non_wal = (os.environ.get("STAKEREWARD_SQLITE_ALLOW_NON_WAL") or "").strip() in {"1", "true", "TRUE"}
        try:
            row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
            mode = ""
            if row is not None:
                mode = str(row[0]).strip().lower()
            if mode and mode != "wal" and not allow_non_wal:
                raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")
        except Exception:
            if not allow_non_wal:
                con.close()
                raise

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")

        wal_ckpt = max(0, _env_int("STAKEREWARD_SQLITE_WAL_AUTOCHECKPOINT", 1000))
        con.execute(f"PRAGMA wal_autocheckpoint={wal_ckpt};")

        jsl = max(0, _env_int("STAKEREWARD_SQLITE_JOURNAL_SIZE_LIMIT", 64 * 1024 * 1024))
        con.execute(f"PRAGMA journal_size_limit={jsl};")

        # Negative cache_size means KiB.
        cache_kib = max(0, _env_int("STAKEREWARD_SQLITE_CACHE_SIZE_KIB", 16 * 1024))
        con.execute(f"PRAGMA cache_size={-cache_kib};")

        mmap_bytes = _env_int("STAKEREWARD_SQLITE_MMAP_SIZE", 0)
        if mmap_bytes > 0:
            con.execute(f"PRAGMA mmap_size={mmap_bytes};")

        busy_ms = _env_int("STAKEREWARD_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000))
        busy_ms = max(0, int(busy_ms))
        con.execute(f"PRAGMA busy_timeout={busy_ms};")

        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS reward_distributors (
                  distributor_id TEXT PRIMARY KEY,
                  stake_pool_id TEXT NOT NULL UNIQUE,
                  record_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS reward_entries (
                  entry_id TEXT PRIMARY KEY,
                  distributor_id TEXT NOT NULL REFERENCES reward_distributors(distributor_id),
                  record_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_entries_distributor ON reward_entries(distributor_id);")

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS stake_entries (
                  stake_entry_id TEXT PRIMARY KEY,
                  stake_pool_id TEXT NOT NULL,
                  staked_asset_id TEXT NOT NULL,
                  record_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL,
                  UNIQUE(stake_pool_id, staked_asset_id)
                );
                """
            )

            # Amounts are u64 and may exceed SQLite's signed INTEGER; store as decimal TEXT.
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS token_mints (
                  token_id TEXT PRIMARY KEY,
                  mint_authority TEXT NOT NULL,
                  supply TEXT NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS token_accounts (
                  account_id TEXT PRIMARY KEY,
                  token_id TEXT NOT NULL REFERENCES token_mints(token_id),
                  owner TEXT NOT NULL,
                  balance TEXT NOT NULL
                );
                """
            )

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except Exception:
                    v = 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            try:
                con.close()
            except Exception:
                pass

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return ("database is locked" in msg) or ("database is busy" in msg) or ("locked" in msg and "database" in msg)

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction with bounded retry on writer-lock contention.

        Policy:
          - retry BEGIN IMMEDIATE until a deadline
          - exponential backoff with jitter
          - then raise (fail closed) if we cannot acquire within deadline
          - any exception inside the block rolls the whole transaction back
        """
        deadline_ms = _env_int("STAKEREWARD_SQLITE_WRITE_DEADLINE_MS", 30_000)
        deadline_ms = max(250, int(deadline_ms))
        deadline_ts = _now_ms() + deadline_ms

        base_sleep = float(_env_int("STAKEREWARD_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0
        max_sleep = float(_env_int("STAKEREWARD_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0
        base_sleep = max(0.001, base_sleep)
        max_sleep = max(base_sleep, max_sleep)

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e):
                        raise
                    if _now_ms() >= deadline_ts:
                        raise
                    sleep_s = min(max_sleep, base_sleep * (2.0 ** min(attempt, 8)))
                    sleep_s = sleep_s * (0.5 + random.random())  # jitter in [0.5x, 1.5x]
                    time.sleep(sleep_s)
                    attempt += 1

            try:
                yield con

                c_attempt = 0
                while True:
                    try:
                        con.execute("COMMIT;")
                        break
                    except sqlite3.OperationalError as e:
                        if not self._is_locked_error(e):
                            raise
                        if _now_ms() >= deadline_ts:
                            raise
                        sleep_s = min(max_sleep, base_sleep * (2.0 ** min(c_attempt, 8)))
                        sleep_s = sleep_s * (0.5 + random.random())
                        time.sleep(sleep_s)
                        c_attempt += 1
            except Exception:
                try:
                    con.execute("ROLLBACK;")
                except Exception:
                    pass
                raise


class SqliteTokenLedger(PayoutExecutor):
    """Token custody bound to one open SQLite transaction.

    Balance changes share the claim's transaction, so a claim that fails after
    paying rolls the payout back with it.
    """

    def __init__(self, con: sqlite3.Connection) -> None:
        self._con = con

    def _mint_row(self, token_id: str) -> Optional[sqlite3.Row]:
        return self._con.execute(
            "SELECT token_id, mint_authority, supply FROM token_mints WHERE token_id=?;", (token_id,)
        ).fetchone()

    def _account_row(self, account_id: str) -> Optional[sqlite3.Row]:
        return self._con.execute(
            "SELECT account_id, token_id, owner, balance FROM token_accounts WHERE account_id=?;", (account_id,)
        ).fetchone()

    def _require_account(self, account_id: str) -> sqlite3.Row:
        row = self._account_row(account_id)
        if row is None:
            raise PayoutError.refused("account_not_found", account_id=account_id)
        return row

    def _set_balance(self, account_id: str, balance: int) -> None:
        self._con.execute("UPDATE token_accounts SET balance=? WHERE account_id=?;", (str(int(balance)), account_id))

    def _set_supply(self, token_id: str, supply: int) -> None:
        self._con.execute("UPDATE token_mints SET supply=? WHERE token_id=?;", (str(int(supply)), token_id))

    def token_of(self, account: str) -> Optional[str]:
        row = self._account_row(account)
        return str(row["token_id"]) if row is not None else None

    def owner_of(self, account: str) -> Optional[str]:
        row = self._account_row(account)
        return str(row["owner"]) if row is not None else None

    def available_balance(self, source: str) -> int:
        return int(self._require_account(source)["balance"])

    def supply_of(self, token_id: str) -> int:
        row = self._mint_row(token_id)
        return int(row["supply"]) if row is not None else 0

    def mint(self, token: str, destination: str, authority: PayoutAuthorization, amount: int) -> None:
        a = int(amount)
        if a < 0:
            raise PayoutError.refused("negative_amount", amount=a)
        tok = self._mint_row(token)
        if tok is None:
            raise PayoutError.refused("token_not_found", token=token)
        dst = self._require_account(destination)
        if str(dst["token_id"]) != token:
            raise PayoutError.refused("token_mismatch", account=destination, token=token)
        check_authorization(
            authority,
            expected_authority=str(tok["mint_authority"]),
            op="mint",
            token=token,
            destination=destination,
            amount=a,
        )
        new_supply = checked_add(int(tok["supply"]), a)
        new_balance = checked_add(int(dst["balance"]), a)
        self._set_supply(token, new_supply)
        self._set_balance(destination, new_balance)

    def transfer(self, source: str, destination: str, authority: PayoutAuthorization, amount: int) -> None:
        a = int(amount)
        if a < 0:
            raise PayoutError.refused("negative_amount", amount=a)
        src = self._require_account(source)
        dst = self._require_account(destination)
        if str(src["token_id"]) != str(dst["token_id"]):
            raise PayoutError.refused("token_mismatch", source=source, destination=destination)
        check_authorization(
            authority,
            expected_authority=str(src["owner"]),
            op="transfer",
            token=str(src["token_id"]),
            destination=destination,
            amount=a,
            source=source,
        )
        if int(src["balance"]) < a:
            raise PayoutError.refused("insufficient_funds", available=int(src["balance"]), amount=a)
        if source == destination:
            return
        new_src = checked_sub(int(src["balance"]), a)
        new_dst = checked_add(int(dst["balance"]), a)
        self._set_balance(source, new_src)
        self._set_balance(destination, new_dst)


class SqliteRewardStore(StakeTimeProvider):
    """Reward records + token custody persisted in SQLite.

    This provides:
      - setup: tokens, accounts, distributors, entries, stake totals
      - reads: get_distributor / get_entry / get_stake_record / balance_of
      - claim(): load → validate → claim → write inside one write transaction

    Signing authorities are derived from `authority_secret` and the stake pool
    id; the secret never touches the database.
    """

    def __init__(self, *, db: SqliteDB, authority_secret: str) -> None:
        if not str(authority_secret or ""):
            raise ValueError("authority_secret must be non-empty")
        self._db = db
        self._secret = str(authority_secret)
        self._db.init_schema()

    @property
    def db(self) -> SqliteDB:
        return self._db

    def authority_for(self, stake_pool_id: str) -> SigningAuthority:
        return derive_signing_authority(stake_pool_id, self._secret)

    # ---- record helpers (connection-scoped) ----

    @staticmethod
    def _load_distributor(con: sqlite3.Connection, distributor_id: str) -> RewardDistributor:
        row = con.execute(
            "SELECT record_json FROM reward_distributors WHERE distributor_id=?;", (distributor_id,)
        ).fetchone()
        if row is None:
            raise ClaimError("not_found", "distributor_not_found", {"distributor_id": distributor_id})
        return RewardDistributor.from_dict(json.loads(str(row["record_json"])))

    @staticmethod
    def _load_entry(con: sqlite3.Connection, entry_id: str) -> RewardEntry:
        row = con.execute("SELECT record_json FROM reward_entries WHERE entry_id=?;", (entry_id,)).fetchone()
        if row is None:
            raise ClaimError("not_found", "entry_not_found", {"entry_id": entry_id})
        return RewardEntry.from_dict(json.loads(str(row["record_json"])))

    @staticmethod
    def _load_stake(con: sqlite3.Connection, stake_entry_id: str) -> StakeRecord:
        row = con.execute(
            "SELECT record_json FROM stake_entries WHERE stake_entry_id=?;", (stake_entry_id,)
        ).fetchone()
        if row is None:
            raise ClaimError("not_found", "stake_entry_not_found", {"stake_entry_id": stake_entry_id})
        return StakeRecord.from_dict(json.loads(str(row["record_json"])))

    @staticmethod
    def _write_distributor(con: sqlite3.Connection, d: RewardDistributor) -> None:
        con.execute(
            "UPDATE reward_distributors SET record_json=?, updated_ts_ms=? WHERE distributor_id=?;",
            (_canon_json(d.to_dict()), _now_ms(), d.distributor_id),
        )

    @staticmethod
    def _write_entry(con: sqlite3.Connection, e: RewardEntry) -> None:
        con.execute(
            "UPDATE reward_entries SET record_json=?, updated_ts_ms=? WHERE entry_id=?;",
            (_canon_json(e.to_dict()), _now_ms(), e.entry_id),
        )

    # ---- setup ----

    def create_token(self, token_id: str, *, mint_authority: str) -> None:
        with self._db.write_tx() as con:
            if con.execute("SELECT 1 FROM token_mints WHERE token_id=?;", (token_id,)).fetchone() is not None:
                raise ClaimError("conflict", "token_exists", {"token_id": token_id})
            con.execute(
                "INSERT INTO token_mints(token_id, mint_authority, supply) VALUES(?, ?, '0');",
                (token_id, str(mint_authority)),
            )

    def create_account(self, account_id: str, *, token_id: str, owner: str) -> None:
        with self._db.write_tx() as con:
            if con.execute("SELECT 1 FROM token_mints WHERE token_id=?;", (token_id,)).fetchone() is None:
                raise ClaimError("not_found", "token_not_found", {"token_id": token_id})
            if con.execute("SELECT 1 FROM token_accounts WHERE account_id=?;", (account_id,)).fetchone() is not None:
                raise ClaimError("conflict", "account_exists", {"account_id": account_id})
            con.execute(
                "INSERT INTO token_accounts(account_id, token_id, owner, balance) VALUES(?, ?, ?, '0');",
                (account_id, token_id, str(owner)),
            )

    def deposit(self, account_id: str, amount: int) -> None:
        """Fund an account outside the claim path (treasury top-ups, seeding)."""
        a = int(amount)
        if a < 0:
            raise ClaimError("invalid_payload", "negative_amount", {"amount": a})
        with self._db.write_tx() as con:
            custody = SqliteTokenLedger(con)
            row = custody._require_account(account_id)
            token_id = str(row["token_id"])
            custody._set_balance(account_id, checked_add(int(row["balance"]), a))
            custody._set_supply(token_id, checked_add(custody.supply_of(token_id), a))

    def init_reward_distributor(
        self,
        *,
        stake_pool_id: str,
        reward_token_id: str,
        reward_amount: int,
        reward_duration_seconds: int,
        kind: int,
        max_supply: Optional[int] = None,
    ) -> RewardDistributor:
        distributor_id = find_reward_distributor_id(stake_pool_id)
        dist = RewardDistributor(
            distributor_id=distributor_id,
            stake_pool_id=str(stake_pool_id),
            reward_token_id=str(reward_token_id),
            reward_amount=int(reward_amount),
            reward_duration_seconds=int(reward_duration_seconds),
            kind=int(kind),
            signing_authority=self.authority_for(stake_pool_id).authority_id,
            max_supply=None if max_supply is None else int(max_supply),
            rewards_issued=0,
        )
        with self._db.write_tx() as con:
            exists = con.execute(
                "SELECT 1 FROM reward_distributors WHERE distributor_id=?;", (distributor_id,)
            ).fetchone()
            if exists is not None:
                raise ClaimError("conflict", "distributor_exists", {"stake_pool_id": stake_pool_id})
            con.execute(
                "INSERT INTO reward_distributors(distributor_id, stake_pool_id, record_json, updated_ts_ms) "
                "VALUES(?, ?, ?, ?);",
                (distributor_id, dist.stake_pool_id, _canon_json(dist.to_dict()), _now_ms()),
            )
        log_event(log, "distributor_init", distributor_id=distributor_id, stake_pool_id=stake_pool_id, kind=int(kind))
        return dist

    def init_reward_entry(self, *, distributor_id: str, staked_asset_id: str, multiplier: int = 1) -> RewardEntry:
        entry_id = find_reward_entry_id(distributor_id, staked_asset_id)
        entry = RewardEntry(
            entry_id=entry_id,
            distributor_id=distributor_id,
            staked_asset_id=str(staked_asset_id),
            multiplier=int(multiplier),
        )
        with self._db.write_tx() as con:
            self._load_distributor(con, distributor_id)
            if con.execute("SELECT 1 FROM reward_entries WHERE entry_id=?;", (entry_id,)).fetchone() is not None:
                raise ClaimError("conflict", "entry_exists", {"entry_id": entry_id})
            con.execute(
                "INSERT INTO reward_entries(entry_id, distributor_id, record_json, updated_ts_ms) VALUES(?, ?, ?, ?);",
                (entry_id, distributor_id, _canon_json(entry.to_dict()), _now_ms()),
            )
        return entry

    def record_stake_seconds(
        self,
        stake_entry_id: str,
        *,
        stake_pool_id: str,
        staked_asset_id: str,
        total_stake_seconds: int,
    ) -> StakeRecord:
        """Stake ledger feed. Totals may only grow."""
        rec = StakeRecord(
            stake_entry_id=str(stake_entry_id),
            stake_pool_id=str(stake_pool_id),
            staked_asset_id=str(staked_asset_id),
            total_stake_seconds=int(total_stake_seconds),
        )
        with self._db.write_tx() as con:
            row = con.execute(
                "SELECT record_json FROM stake_entries WHERE stake_entry_id=?;", (stake_entry_id,)
            ).fetchone()
            if row is not None:
                cur = StakeRecord.from_dict(json.loads(str(row["record_json"])))
                if cur.stake_pool_id != rec.stake_pool_id or cur.staked_asset_id != rec.staked_asset_id:
                    raise ClaimError("conflict", "stake_entry_relinked", {"stake_entry_id": stake_entry_id})
                if rec.total_stake_seconds < cur.total_stake_seconds:
                    raise ClaimError(
                        "invalid_payload",
                        "stake_seconds_decreased",
                        {"stake_entry_id": stake_entry_id, "have": cur.total_stake_seconds, "got": rec.total_stake_seconds},
                    )
            else:
                linked = con.execute(
                    "SELECT stake_entry_id FROM stake_entries WHERE stake_pool_id=? AND staked_asset_id=?;",
                    (rec.stake_pool_id, rec.staked_asset_id),
                ).fetchone()
                if linked is not None:
                    raise stake_asset_linked(rec.stake_pool_id, rec.staked_asset_id, str(linked["stake_entry_id"]))
            con.execute(
                """
                INSERT INTO stake_entries(stake_entry_id, stake_pool_id, staked_asset_id, record_json, updated_ts_ms)
                VALUES(?, ?, ?, ?, ?)
                ON CONFLICT(stake_entry_id) DO UPDATE SET
                  record_json=excluded.record_json,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                (rec.stake_entry_id, rec.stake_pool_id, rec.staked_asset_id, _canon_json(rec.to_dict()), _now_ms()),
            )
        return rec

    # ---- reads ----

    def get_distributor(self, distributor_id: str) -> RewardDistributor:
        with self._db.connection() as con:
            return self._load_distributor(con, distributor_id)

    def get_entry(self, entry_id: str) -> RewardEntry:
        with self._db.connection() as con:
            return self._load_entry(con, entry_id)

    def get_stake_record(self, stake_entry_id: str) -> StakeRecord:
        with self._db.connection() as con:
            return self._load_stake(con, stake_entry_id)

    def get_total_stake_seconds(self, stake_pool_id: str, staked_asset_id: str) -> int:
        with self._db.connection() as con:
            row = con.execute(
                "SELECT record_json FROM stake_entries WHERE stake_pool_id=? AND staked_asset_id=?;",
                (stake_pool_id, staked_asset_id),
            ).fetchone()
        if row is None:
            raise stake_asset_not_found(stake_pool_id, staked_asset_id)
        return int(StakeRecord.from_dict(json.loads(str(row["record_json"]))).total_stake_seconds)

    def balance_of(self, account_id: str) -> int:
        with self._db.connection() as con:
            return SqliteTokenLedger(con).available_balance(account_id)

    def supply_of(self, token_id: str) -> int:
        with self._db.connection() as con:
            return SqliteTokenLedger(con).supply_of(token_id)

    # ---- claim ----

    def claim(
        self,
        *,
        entry_id: str,
        stake_entry_id: str,
        destination: str,
        treasury_account: Optional[str] = None,
        claimant: Optional[str] = None,
        distributor_id: Optional[str] = None,
    ) -> ClaimOutcome:
        """Run one claim as a single write transaction.

        BEGIN IMMEDIATE makes this connection the only writer, which
        serializes claims on the same distributor/entry/treasury across
        threads and processes. Any exception rolls every write back.

        `distributor_id`, when given, must be the entry's distributor.
        Metrics and claim events are emitted only after COMMIT.
        """
        try:
            with self._db.write_tx() as con:
                entry = self._load_entry(con, entry_id)
                if distributor_id is not None and distributor_id != entry.distributor_id:
                    raise ClaimError(
                        "invalid_stake_entry",
                        "entry_distributor_mismatch",
                        {"entry_id": entry_id, "distributor_id": distributor_id},
                    )
                distributor = self._load_distributor(con, entry.distributor_id)
                stake = self._load_stake(con, stake_entry_id)

                ctx = PayoutContext(
                    custody=SqliteTokenLedger(con),
                    authority=self.authority_for(distributor.stake_pool_id),
                    destination=str(destination),
                    treasury_account=treasury_account,
                )
                validate_claim_accounts(entry, distributor, stake, ctx, claimant=claimant)

                outcome = claim(entry, distributor, stake, ctx)

                if not outcome.noop:
                    self._write_distributor(con, outcome.distributor)
                    self._write_entry(con, outcome.entry)
        except ClaimError as e:
            report_failed(entry_id, e)
            raise

        report_committed(outcome)
        return outcome
