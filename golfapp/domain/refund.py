"""
Refund calculation for subscription cancellation.

Pure date arithmetic; no I/O. Works on calendar dates: a datetime argument is
reduced to its date in the business timezone.

Monthly plans never refund and keep access until the next renewal.
Yearly plans are prorated per used month. The renewal anchor ("base day") is
the day-of-month of the contract start, taken in the month after the
cancellation. A cancellation filed at least CANCELLATION_CUTOFF_DAYS before
that anchor ends service on it; a later one rolls into the month after.
"""
import calendar
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from golfapp.config import get_settings
from golfapp.domain.plan import (
    INTERVAL_MONTH, VALID_INTERVALS, MONTHLY_PRICE, YEARLY_PRICE,
)

MONTHS_PER_YEAR = 12

# Yearly price spread over 12 months, rounded down (5500 // 12 == 458).
# The remainder (5500 - 12 * 458 == 4) is never refunded.
YEARLY_MONTHLY_RATE = YEARLY_PRICE // MONTHS_PER_YEAR

# Yearly plans: days before the renewal anchor a cancellation must arrive
CANCELLATION_CUTOFF_DAYS = 5

# can_cancel_before_renewal() gate. Intentionally separate from the cutoff above.
RENEWAL_NOTICE_DAYS = 7


class RefundCalculationError(ValueError):
    pass


@dataclass(frozen=True)
class RefundCalculation:
    should_refund: bool
    refund_amount: int  # yen
    used_months: int
    used_amount: int  # yen
    service_end_date: date  # last day of access
    reason: str


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(d: date, n: int) -> date:
    """Calendar month addition; overflow days clip to the month's last day (01-31 + 1 -> 02-28)."""
    month = d.month - 1 + n
    year = d.year + month // 12
    month = month % 12 + 1
    day = min(d.day, last_day_of_month(year, month))
    return date(year, month, day)


def _month_anchor(d: date, months_ahead: int, base_day: int) -> date:
    """Occurrence of base_day in the month `months_ahead` after d's month."""
    first = add_months(d.replace(day=1), months_ahead)
    return first.replace(day=min(base_day, last_day_of_month(first.year, first.month)))


def _months_between(start: date, end: date) -> int:
    return (end.year - start.year) * 12 + (end.month - start.month)


def business_today() -> date:
    return datetime.now(ZoneInfo(get_settings().TIMEZONE)).date()


def _as_date(value, name: str) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(ZoneInfo(get_settings().TIMEZONE))
        return value.date()
    if isinstance(value, date):
        return value
    raise RefundCalculationError(f"{name} must be a date, got {type(value).__name__}")


def calculate_refund(
    subscription_start: date,
    interval: str,
    cancel_date: date | None = None,
) -> RefundCalculation:
    """
    Calculate the refund owed when a subscription is cancelled.

    Args:
        subscription_start: contract activation date
        interval: "month" | "year"
        cancel_date: date the request is evaluated (default: today, business tz)

    Returns:
        RefundCalculation

    Raises:
        RefundCalculationError: unknown interval, non-date input, or
            cancel_date before subscription_start
    """
    start = _as_date(subscription_start, "subscription_start")
    cancel = business_today() if cancel_date is None else _as_date(cancel_date, "cancel_date")

    if interval not in VALID_INTERVALS:
        raise RefundCalculationError(f"Unknown billing interval: {interval!r}")
    if cancel < start:
        raise RefundCalculationError(
            f"cancel_date {cancel.isoformat()} is before subscription_start {start.isoformat()}"
        )

    if interval == INTERVAL_MONTH:
        # Access runs to the renewal that follows the cancellation
        periods = 1
        service_end_date = add_months(start, periods)
        while service_end_date < cancel:
            periods += 1
            service_end_date = add_months(start, periods)

        return RefundCalculation(
            should_refund=False,
            refund_amount=0,
            used_months=1,
            used_amount=MONTHLY_PRICE,
            service_end_date=service_end_date,
            reason="月額プランは返金対象外です。次回更新日まで利用可能です。",
        )

    base_day = start.day
    cutoff = timedelta(days=CANCELLATION_CUTOFF_DAYS)
    next_month_anchor = _month_anchor(cancel, 1, base_day)

    if cancel <= next_month_anchor - cutoff:
        service_end_date = next_month_anchor
    else:
        service_end_date = _month_anchor(cancel, 2, base_day)

    used_months = max(1, _months_between(start, service_end_date))
    used_amount = used_months * YEARLY_MONTHLY_RATE
    if used_months >= MONTHS_PER_YEAR:
        refund_amount = 0
    else:
        refund_amount = max(0, YEARLY_PRICE - used_amount)

    if refund_amount > 0:
        reason = f"{used_months}ヶ月分（{used_amount}円）を差し引いて返金します。"
    else:
        reason = f"{used_months}ヶ月分（{used_amount}円）を利用済みのため、返金額はありません。"

    return RefundCalculation(
        should_refund=True,
        refund_amount=refund_amount,
        used_months=used_months,
        used_amount=used_amount,
        service_end_date=service_end_date,
        reason=reason,
    )


def calculate_service_end_date(subscription_start: date) -> date:
    """One calendar month after the contract start."""
    return add_months(_as_date(subscription_start, "subscription_start"), 1)


def is_service_active(current_date: date, service_end_date: date) -> bool:
    """Access is kept through service_end_date inclusive."""
    return current_date <= service_end_date


def business_now() -> datetime:
    return datetime.now(ZoneInfo(get_settings().TIMEZONE))


def _as_business_datetime(value: date, name: str) -> datetime:
    """Naive datetimes are read as business-timezone wall time; dates as midnight."""
    tz = ZoneInfo(get_settings().TIMEZONE)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=tz)
        return value.astimezone(tz)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=tz)
    raise RefundCalculationError(f"{name} must be a date, got {type(value).__name__}")


def get_days_until_renewal(next_renewal_date: date, current_date: date | None = None) -> int:
    """Days left until renewal, rounded up (a partial day counts as a day)."""
    if current_date is None:
        current_date = business_now() if isinstance(next_renewal_date, datetime) else business_today()

    if not isinstance(next_renewal_date, datetime) and not isinstance(current_date, datetime):
        return (next_renewal_date - current_date).days

    diff = (_as_business_datetime(next_renewal_date, "next_renewal_date")
            - _as_business_datetime(current_date, "current_date"))
    return math.ceil(diff.total_seconds() / 86400)


def can_cancel_before_renewal(next_renewal_date: date, current_date: date | None = None) -> bool:
    """True when at least RENEWAL_NOTICE_DAYS remain before renewal."""
    return get_days_until_renewal(next_renewal_date, current_date) >= RENEWAL_NOTICE_DAYS
