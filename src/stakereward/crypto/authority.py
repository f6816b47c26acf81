# src/stakereward/crypto/authority.py
from __future__ import annotations

"""Distributor signing authority.

The claim path never derives keys. It receives a SigningAuthority through the
payout context and asks it to authorize each mint/transfer; custody verifies
the resulting PayoutAuthorization against the public key it has on record.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Optional

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from stakereward.crypto.sig import canonical_payout_message, sign_ed25519
from stakereward.ledger.constants import REWARD_DISTRIBUTOR_SEED


@dataclass(frozen=True, slots=True)
class PayoutAuthorization:
    authority_id: str
    sig: str


@dataclass(frozen=True, slots=True)
class SigningAuthority:
    seed_hex: str = field(repr=False)
    authority_id: str = ""

    @classmethod
    def from_seed(cls, seed: bytes) -> "SigningAuthority":
        if len(seed) != 32:
            raise ValueError("signing authority seed must be 32 bytes")
        key = Ed25519PrivateKey.from_private_bytes(seed)
        pub = key.public_key().public_bytes(encoding=Encoding.Raw, format=PublicFormat.Raw)
        return cls(seed_hex=seed.hex(), authority_id=pub.hex())

    def authorize(
        self,
        *,
        op: str,
        token: str,
        destination: str,
        amount: int,
        source: Optional[str] = None,
    ) -> PayoutAuthorization:
        msg = canonical_payout_message(op=op, token=token, destination=destination, amount=amount, source=source)
        return PayoutAuthorization(authority_id=self.authority_id, sig=sign_ed25519(message=msg, privkey=self.seed_hex))


def derive_signing_authority(stake_pool_id: str, secret: bytes | str) -> SigningAuthority:
    """Deterministically derive the signing authority for a stake pool's distributor."""
    sec = secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)
    if not sec:
        raise ValueError("authority secret must be non-empty")
    h = hashlib.sha256()
    h.update(REWARD_DISTRIBUTOR_SEED.encode("utf-8"))
    h.update(b"|")
    h.update(str(stake_pool_id).encode("utf-8"))
    h.update(b"|")
    h.update(sec)
    return SigningAuthority.from_seed(h.digest())
