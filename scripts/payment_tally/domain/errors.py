from __future__ import annotations


class TallyError(Exception):
    """Base exception for payment tally errors."""
    pass


class MalformedClaimError(TallyError):
    """
    Raised when a comment looks like a claim but cannot be decoded,
    e.g. a bracketed claim whose mentions and amounts do not line up.

    Recoverable: the processor skips the comment and moves on.
    """
    pass


class FetchError(TallyError):
    """Raised when the data source fails for good. Aborts the whole run."""
    pass


class EmptyTallyError(TallyError):
    """Raised when the aggregator received nothing to report on."""
    pass
