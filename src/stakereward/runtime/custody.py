# src/stakereward/runtime/custody.py
from __future__ import annotations

"""In-process token custody.

InMemoryTokenLedger is the reference PayoutExecutor: token mints with a mint
authority and token accounts with an owner and a balance. Every mint/transfer
must carry a PayoutAuthorization signed by the key on record (the mint
authority for mints, the source account owner for transfers).
"""

import copy
import threading
from typing import Any, Dict, Optional

from stakereward.crypto.authority import PayoutAuthorization
from stakereward.crypto.sig import canonical_payout_message, verify_ed25519_signature
from stakereward.ledger.checked import checked_add, checked_sub
from stakereward.runtime.errors import ClaimError, PayoutError
from stakereward.runtime.payout import PayoutExecutor

Json = Dict[str, Any]


def check_authorization(
    auth: PayoutAuthorization,
    *,
    expected_authority: str,
    op: str,
    token: str,
    destination: str,
    amount: int,
    source: Optional[str] = None,
) -> None:
    """Raise PayoutError unless `auth` is a valid signature by `expected_authority`."""
    if str(auth.authority_id) != str(expected_authority):
        raise PayoutError.refused("authority_mismatch", expected=str(expected_authority), got=str(auth.authority_id))
    msg = canonical_payout_message(op=op, token=token, destination=destination, amount=amount, source=source)
    if not verify_ed25519_signature(message=msg, sig=auth.sig, pubkey=auth.authority_id):
        raise PayoutError.refused("invalid_signature", op=op)


def _require_amount(amount: int) -> int:
    a = int(amount)
    if a < 0:
        raise PayoutError.refused("negative_amount", amount=a)
    return a


class InMemoryTokenLedger(PayoutExecutor):
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tokens: Dict[str, Json] = {}
        self._accounts: Dict[str, Json] = {}

    # ---- setup ----

    def create_token(self, token_id: str, *, mint_authority: str) -> None:
        with self._lock:
            if token_id in self._tokens:
                raise ClaimError("conflict", "token_exists", {"token_id": token_id})
            self._tokens[token_id] = {"mint_authority": str(mint_authority), "supply": 0}

    def create_account(self, account_id: str, *, token_id: str, owner: str) -> None:
        with self._lock:
            if token_id not in self._tokens:
                raise ClaimError("not_found", "token_not_found", {"token_id": token_id})
            if account_id in self._accounts:
                raise ClaimError("conflict", "account_exists", {"account_id": account_id})
            self._accounts[account_id] = {"token": token_id, "owner": str(owner), "balance": 0}

    def deposit(self, account_id: str, amount: int) -> None:
        """Fund an account outside the claim path (treasury top-ups, tests)."""
        with self._lock:
            acct = self._account(account_id)
            acct["balance"] = checked_add(acct["balance"], _require_amount(amount))
            tok = self._tokens[acct["token"]]
            tok["supply"] = checked_add(tok["supply"], int(amount))

    # ---- reads ----

    def _account(self, account_id: str) -> Json:
        acct = self._accounts.get(account_id)
        if acct is None:
            raise PayoutError.refused("account_not_found", account_id=account_id)
        return acct

    def balance_of(self, account_id: str) -> int:
        with self._lock:
            return int(self._account(account_id)["balance"])

    def supply_of(self, token_id: str) -> int:
        with self._lock:
            tok = self._tokens.get(token_id)
            return int(tok["supply"]) if tok is not None else 0

    def token_of(self, account: str) -> Optional[str]:
        with self._lock:
            acct = self._accounts.get(account)
            return str(acct["token"]) if acct is not None else None

    def owner_of(self, account: str) -> Optional[str]:
        with self._lock:
            acct = self._accounts.get(account)
            return str(acct["owner"]) if acct is not None else None

    def available_balance(self, source: str) -> int:
        return self.balance_of(source)

    def snapshot(self) -> Json:
        with self._lock:
            return {"tokens": copy.deepcopy(self._tokens), "accounts": copy.deepcopy(self._accounts)}

    # ---- payout capabilities ----

    def mint(self, token: str, destination: str, authority: PayoutAuthorization, amount: int) -> None:
        a = _require_amount(amount)
        with self._lock:
            tok = self._tokens.get(token)
            if tok is None:
                raise PayoutError.refused("token_not_found", token=token)
            dst = self._account(destination)
            if dst["token"] != token:
                raise PayoutError.refused("token_mismatch", account=destination, token=token)
            check_authorization(
                authority,
                expected_authority=tok["mint_authority"],
                op="mint",
                token=token,
                destination=destination,
                amount=a,
            )
            new_supply = checked_add(tok["supply"], a)
            new_balance = checked_add(dst["balance"], a)
            tok["supply"] = new_supply
            dst["balance"] = new_balance

    def transfer(self, source: str, destination: str, authority: PayoutAuthorization, amount: int) -> None:
        a = _require_amount(amount)
        with self._lock:
            src = self._account(source)
            dst = self._account(destination)
            if src["token"] != dst["token"]:
                raise PayoutError.refused("token_mismatch", source=source, destination=destination)
            check_authorization(
                authority,
                expected_authority=src["owner"],
                op="transfer",
                token=src["token"],
                destination=destination,
                amount=a,
                source=source,
            )
            if int(src["balance"]) < a:
                raise PayoutError.refused("insufficient_funds", available=int(src["balance"]), amount=a)
            if source == destination:
                return
            new_src = checked_sub(src["balance"], a)
            new_dst = checked_add(dst["balance"], a)
            src["balance"] = new_src
            dst["balance"] = new_dst
