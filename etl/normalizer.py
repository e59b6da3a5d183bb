"""
Raw bar normalizer.

Turns a batch of raw per-symbol OHLCV records (strings, gaps, duplicate dates
from retried fetches) into an ordered, deduplicated series of DailyBar
candidates, and computes the derived daily_return / price_change fields.
"""

import datetime
import logging
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional

from pydantic import BaseModel

from etl.errors import ValidationError
from models import DailyBar, RejectReason, Rejection

logger = logging.getLogger(__name__)

RETURN_QUANT = Decimal("0.000001")
PCT_QUANT = Decimal("0.0001")
_NULLS = {"", "none", "null", "nan", "n/a", "-", "."}


class NormalizationResult(BaseModel):
    symbol: str
    bars: List[DailyBar] = []
    rejections: List[Rejection] = []
    records_read: int = 0
    duplicates: int = 0

    @property
    def rejected(self) -> int:
        return len(self.rejections)


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------

def to_decimal(value) -> Optional[Decimal]:
    """Parse a number or numeric string to Decimal; None if blank or unparsable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    else:
        text = str(value).strip().replace(",", "")
        if text.lower() in _NULLS:
            return None
        try:
            result = Decimal(text)
        except InvalidOperation:
            return None
    if not result.is_finite():
        return None
    return result


def to_volume(value) -> Optional[int]:
    """Parse a volume; fractional shares are truncated."""
    number = to_decimal(value)
    if number is None:
        return None
    return int(number)


def to_date(value) -> Optional[datetime.date]:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if not value:
        return None
    try:
        return datetime.date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Invariants
# ---------------------------------------------------------------------------

def bar_violation(open_, high, low, close, volume) -> Optional[tuple]:
    """
    Check the price/volume invariants. Returns (reason, message) for the first
    violated rule, or None. Null components are skipped.
    """
    for name, price in (("open", open_), ("high", high), ("low", low), ("close", close)):
        if price is not None and price <= 0:
            return RejectReason.NON_POSITIVE_PRICE, f"{name} price {price} is not positive"
    if volume is not None and volume < 0:
        return RejectReason.NEGATIVE_VOLUME, f"volume {volume} is negative"
    if high is not None and low is not None and high < low:
        return RejectReason.HIGH_BELOW_LOW, f"high {high} < low {low}"
    for name, price in (("open", open_), ("close", close)):
        if price is None:
            continue
        if high is not None and price > high:
            return RejectReason.HIGH_LOW_INCONSISTENT, f"{name} {price} above high {high}"
        if low is not None and price < low:
            return RejectReason.HIGH_LOW_INCONSISTENT, f"{name} {price} below low {low}"
    return None


def coerce_record(symbol: str, trade_date: datetime.date, raw: dict) -> DailyBar:
    """Coerce one raw record into a DailyBar (without derived fields)."""
    iso = trade_date.isoformat()
    close = to_decimal(raw.get("close"))
    if close is None:
        raise ValidationError(
            RejectReason.MISSING_CLOSE,
            f"{symbol} {iso}: close {raw.get('close')!r} missing or unparsable",
            iso,
        )
    open_ = to_decimal(raw.get("open"))
    high = to_decimal(raw.get("high"))
    low = to_decimal(raw.get("low"))
    volume = to_volume(raw.get("volume"))

    violation = bar_violation(open_, high, low, close, volume)
    if violation:
        reason, message = violation
        raise ValidationError(reason, f"{symbol} {iso}: {message}", iso)

    return DailyBar(
        symbol=symbol,
        trade_date=trade_date,
        open=open_,
        high=high,
        low=low,
        close=close,
        adjusted_close=to_decimal(raw.get("adjusted_close")),
        volume=volume,
    )


def derive_fields(bars: List[DailyBar], prev_close: Optional[Decimal] = None) -> List[DailyBar]:
    """
    Fill daily_return, price_change and price_change_pct over an ordered series.
    prev_close is the stored close before the first bar, if any.
    """
    for bar in bars:
        if prev_close:
            bar.daily_return = ((bar.close - prev_close) / prev_close).quantize(RETURN_QUANT)
        else:
            bar.daily_return = None
        if bar.open is not None:
            bar.price_change = bar.close - bar.open
            bar.price_change_pct = (
                (bar.price_change / bar.open * 100).quantize(PCT_QUANT) if bar.open else None
            )
        else:
            bar.price_change = None
            bar.price_change_pct = None
        prev_close = bar.close
    return bars


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def normalize_bars(symbol: str, raw_records: Iterable[dict]) -> NormalizationResult:
    """
    Normalize a raw batch for one symbol.

    Duplicate (symbol, trade_date) records: the later-arriving one wins.
    Records failing coercion or invariants are dropped and reported as
    rejections; everything else comes back ordered by trade_date.
    """
    symbol = symbol.upper()
    result = NormalizationResult(symbol=symbol)
    latest = {}

    for raw in raw_records:
        result.records_read += 1
        record_symbol = str(raw.get("symbol") or raw.get("ticker") or symbol).upper()
        raw_date = raw.get("trade_date", raw.get("date"))
        if record_symbol != symbol:
            result.rejections.append(Rejection(
                symbol=symbol, trade_date=str(raw_date) if raw_date else None,
                reason=RejectReason.SYMBOL_MISMATCH,
                detail=f"record for {record_symbol} in {symbol} batch",
            ))
            continue
        trade_date = to_date(raw_date)
        if trade_date is None:
            result.rejections.append(Rejection(
                symbol=symbol, trade_date=str(raw_date) if raw_date else None,
                reason=RejectReason.INVALID_DATE,
                detail=f"unparsable trade date {raw_date!r}",
            ))
            continue
        if trade_date in latest:
            result.duplicates += 1
        latest[trade_date] = raw

    bars = []
    for trade_date in sorted(latest):
        try:
            bars.append(coerce_record(symbol, trade_date, latest[trade_date]))
        except ValidationError as e:
            logger.debug(f"Rejected {e.reason.value}: {e}")
            result.rejections.append(Rejection(
                symbol=symbol, trade_date=e.trade_date, reason=e.reason, detail=str(e),
            ))

    result.bars = derive_fields(bars)
    if result.rejections:
        logger.info(f"{symbol}: {len(result.rejections)} of {result.records_read} records rejected")
    return result
