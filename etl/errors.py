"""
Error taxonomy for the ETL pipeline.

Record- and symbol-level errors are recovered where they occur and show up as
counters; only store-wide or universal fetch outages fail a run.
"""


class EtlError(Exception):
    """Base class for pipeline errors."""


class FetchError(EtlError):
    """Transient network/provider fault while fetching raw data."""


class ValidationError(EtlError):
    """A raw record failed coercion or price/volume invariants."""

    def __init__(self, reason, message: str, trade_date: str = None):
        super().__init__(message)
        self.reason = reason
        self.trade_date = trade_date


class QualityBlockedError(EtlError):
    """A symbol batch failed a blocking data-quality check."""

    def __init__(self, verdict):
        checks = ", ".join(verdict.blocked_by)
        super().__init__(f"{verdict.symbol}: load blocked by {checks}")
        self.verdict = verdict


class StoreError(EtlError):
    """The relational store rejected a read or write."""


class RunCancelled(EtlError):
    """The run was aborted by an operator or a timeout."""
