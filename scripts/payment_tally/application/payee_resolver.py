from __future__ import annotations

from payment_tally.domain.entities import NO_ASSIGNEE, ClaimDialect, ClaimType, Issue
from .claim_parser import RawClaim


def resolve_payee(raw: RawClaim, issue: Issue) -> tuple[str, ClaimType]:
    """
    Decide who a claim pays and under which reward category.

    Inline claims:
      named payee    → creator / conversation per the reward marker in the
                       body, assignee when there is none
      no named payee → the issue assignee (or "No assignee"), type assignee

    Bracketed claims pay the mentioned user; the type comes from comparing
    that user with the issue assignee first, then the issue author.
    """
    if raw.dialect is ClaimDialect.INLINE:
        if raw.payee is None:
            return issue.assignee_login or NO_ASSIGNEE, ClaimType.ASSIGNEE
        return raw.payee, raw.reward_hint or ClaimType.ASSIGNEE

    payee = raw.payee or NO_ASSIGNEE
    if payee == issue.assignee_login:
        return payee, ClaimType.ASSIGNEE
    if payee == issue.author_login:
        return payee, ClaimType.CREATOR
    return payee, ClaimType.CONVERSATION


def needs_manual_review(payee: str) -> bool:
    return payee == NO_ASSIGNEE
