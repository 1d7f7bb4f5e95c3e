from __future__ import annotations
from typing import Hashable, Iterable

from payment_tally.domain.entities import DedupKey, PaymentClaim


def dedup_key(claim: PaymentClaim, key: DedupKey) -> Hashable:
    if key is DedupKey.ISSUE_PAYEE_TYPE:
        return (claim.issue_number, claim.payee, claim.type)
    return claim.issue_number


class ClaimDeduplicator:
    """
    Key-based deduplication of claims within one repository pass.

    Remembers the keys it has seen; the first claim for a key is kept and
    later ones are dropped. Structurally equal claims collide even if they
    are distinct objects.
    """

    def __init__(self, key: DedupKey = DedupKey.ISSUE) -> None:
        self._key  = key
        self._seen: set[Hashable] = set()

    def filter_fresh(self, claims: Iterable[PaymentClaim]) -> list[PaymentClaim]:
        """Return only claims whose key was not seen before. Remembers them."""
        fresh = []
        for claim in claims:
            k = dedup_key(claim, self._key)
            if k in self._seen:
                continue
            self._seen.add(k)
            fresh.append(claim)
        return fresh

    def total_seen(self) -> int:
        return len(self._seen)
