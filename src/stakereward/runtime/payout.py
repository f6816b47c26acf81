# src/stakereward/runtime/payout.py
"""
Payout mechanisms.

Architecture:
    PayoutExecutor (abstract, token custody: mint / transfer / available_balance)
    ├── InMemoryTokenLedger  (runtime.custody)
    └── SqliteTokenLedger    (runtime.sqlite_db)

    PayoutMechanism (abstract, selected by RewardDistributor.kind)
    ├── Issuer     (mint new supply under the distributor's authority)
    └── Custodian  (transfer out of a pre-funded treasury account)

A mechanism first clamps the accrual to what it can actually pay, then pays.
The claim operation computes the committed counters between the two steps, so
pay() is the last call that can fail before commit.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from stakereward.crypto.authority import PayoutAuthorization, SigningAuthority
from stakereward.ledger.types import DistributorKind, RewardDistributor, RewardEntry
from stakereward.runtime.accrual import Accrual, clamp_to_balance
from stakereward.runtime.errors import INVALID_DISTRIBUTOR_KIND, ClaimError, PayoutError


class PayoutExecutor(ABC):
    """Token custody capability consumed by the claim operation."""

    @abstractmethod
    def mint(self, token: str, destination: str, authority: PayoutAuthorization, amount: int) -> None:
        """Create `amount` new units of `token` in `destination`.

        Raises:
            PayoutError: unknown token/account or authority not accepted
        """

    @abstractmethod
    def transfer(self, source: str, destination: str, authority: PayoutAuthorization, amount: int) -> None:
        """Move `amount` units from `source` to `destination`.

        Raises:
            PayoutError: unknown account, token mismatch, authority not accepted
                or insufficient funds
        """

    @abstractmethod
    def available_balance(self, source: str) -> int:
        """Units currently held by `source`."""

    @abstractmethod
    def token_of(self, account: str) -> Optional[str]:
        """Token held by `account`, or None if the account is unknown."""

    @abstractmethod
    def owner_of(self, account: str) -> Optional[str]:
        """Owner of `account`, or None if the account is unknown."""


@dataclass(frozen=True)
class PayoutContext:
    custody: PayoutExecutor
    authority: SigningAuthority
    destination: str
    treasury_account: Optional[str] = None


class PayoutMechanism(ABC):
    kind: DistributorKind

    @abstractmethod
    def clamp(self, accrual: Accrual, entry: RewardEntry, distributor: RewardDistributor, ctx: PayoutContext) -> Accrual:
        pass

    @abstractmethod
    def pay(self, amount: int, distributor: RewardDistributor, ctx: PayoutContext) -> None:
        pass


class Issuer(PayoutMechanism):
    """Mint new reward units; issuance is bounded only by the supply cap."""

    kind = DistributorKind.ISSUER

    def clamp(self, accrual: Accrual, entry: RewardEntry, distributor: RewardDistributor, ctx: PayoutContext) -> Accrual:
        return accrual

    def pay(self, amount: int, distributor: RewardDistributor, ctx: PayoutContext) -> None:
        auth = ctx.authority.authorize(
            op="mint",
            token=distributor.reward_token_id,
            destination=ctx.destination,
            amount=amount,
        )
        ctx.custody.mint(distributor.reward_token_id, ctx.destination, auth, amount)


class Custodian(PayoutMechanism):
    """Drain a pre-funded treasury account; pays at most its balance."""

    kind = DistributorKind.CUSTODIAN

    @staticmethod
    def _treasury(ctx: PayoutContext) -> str:
        src = str(ctx.treasury_account or "").strip()
        if not src:
            raise PayoutError.refused("missing_treasury_account")
        return src

    def clamp(self, accrual: Accrual, entry: RewardEntry, distributor: RewardDistributor, ctx: PayoutContext) -> Accrual:
        available = ctx.custody.available_balance(self._treasury(ctx))
        return clamp_to_balance(accrual, available, entry, distributor)

    def pay(self, amount: int, distributor: RewardDistributor, ctx: PayoutContext) -> None:
        src = self._treasury(ctx)
        auth = ctx.authority.authorize(
            op="transfer",
            token=distributor.reward_token_id,
            destination=ctx.destination,
            amount=amount,
            source=src,
        )
        ctx.custody.transfer(src, ctx.destination, auth, amount)


MECHANISMS: Dict[int, PayoutMechanism] = {
    int(DistributorKind.ISSUER): Issuer(),
    int(DistributorKind.CUSTODIAN): Custodian(),
}


def mechanism_for(kind: int) -> PayoutMechanism:
    m = MECHANISMS.get(int(kind)) if not isinstance(kind, bool) else None
    if m is None:
        raise ClaimError(INVALID_DISTRIBUTOR_KIND, "unknown_kind", {"kind": kind})
    return m
