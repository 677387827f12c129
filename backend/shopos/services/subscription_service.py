# Overview: Subscription trial/billing state calculations.

"""
Subscription Service

Expired subscriptions never block login; the shell soft-locks features and
the session reports subscription_expired so the UI can prompt for payment.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta

from .identifier_service import generate_id
from shopos.time_utils import parse_iso_datetime, to_utc_z, utcnow


PLAN_MONTHLY = "monthly"
PLAN_YEARLY = "yearly"
PLANS = (PLAN_MONTHLY, PLAN_YEARLY)

STATUS_TRIAL = "trial"
STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"
STATUS_CANCELLED = "cancelled"


class SubscriptionError(Exception):
    """Raised for invalid subscription changes."""
    pass


def _add_months(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def create_trial_subscription(shop_id: str, trial_days: int = 7, now: datetime | None = None) -> dict:
    """
    New shops start on a trial. trial_days=0 means trial disabled: the
    subscription is created already expired and needs payment.
    """
    now = now or utcnow()
    stamp = to_utc_z(now)
    trial_end = to_utc_z(now + timedelta(days=max(0, trial_days)))
    return {
        "id": generate_id(),
        "shop_id": shop_id,
        "plan": PLAN_MONTHLY,
        "status": STATUS_TRIAL if trial_days > 0 else STATUS_EXPIRED,
        "trial_start_date": stamp,
        "trial_end_date": trial_end,
        "subscription_start_date": None,
        "subscription_end_date": None,
        "last_payment_date": None,
        "last_payment_amount": None,
        "payment_reference": None,
        "created_at": stamp,
        "updated_at": stamp,
        "last_verified_at": stamp,
    }


def check_status(subscription: dict | None, now: datetime | None = None) -> str:
    """Effective status at `now`, derived from the stored dates."""
    if not subscription:
        return STATUS_EXPIRED
    now = now or utcnow()

    if subscription.get("status") == STATUS_CANCELLED:
        return STATUS_CANCELLED

    subscription_end = parse_iso_datetime(subscription.get("subscription_end_date"))
    if subscription_end is not None:
        return STATUS_ACTIVE if now <= subscription_end else STATUS_EXPIRED

    trial_end = parse_iso_datetime(subscription.get("trial_end_date"))
    if subscription.get("status") == STATUS_TRIAL and trial_end is not None and now <= trial_end:
        return STATUS_TRIAL
    if trial_end is not None and now > trial_end:
        return STATUS_EXPIRED

    return subscription.get("status") or STATUS_EXPIRED


def is_active(subscription: dict | None, now: datetime | None = None) -> bool:
    return check_status(subscription, now) in (STATUS_TRIAL, STATUS_ACTIVE)


def days_remaining(subscription: dict | None, now: datetime | None = None) -> int:
    now = now or utcnow()
    status = check_status(subscription, now)
    if status == STATUS_TRIAL:
        end = parse_iso_datetime(subscription.get("trial_end_date"))
    elif status == STATUS_ACTIVE:
        end = parse_iso_datetime(subscription.get("subscription_end_date"))
    else:
        return 0
    seconds = (end - now).total_seconds()
    return max(0, int(-(-seconds // 86400)))


def extend_subscription(
    subscription: dict,
    plan: str,
    payment_reference: str,
    amount,
    now: datetime | None = None,
) -> dict:
    """
    Apply a verified payment.

    Early renewal extends from the current end date; a new or lapsed
    subscription starts now.
    """
    if plan not in PLANS:
        raise SubscriptionError(f"Unknown plan {plan!r}")
    now = now or utcnow()

    current_end = parse_iso_datetime(subscription.get("subscription_end_date"))
    if current_end is not None and current_end > now:
        start = parse_iso_datetime(subscription.get("subscription_start_date")) or now
        end = current_end
    else:
        start = now
        end = now

    end = _add_months(end, 1) if plan == PLAN_MONTHLY else _add_months(end, 12)

    stamp = to_utc_z(now)
    updated = dict(subscription)
    updated.update({
        "plan": plan,
        "status": STATUS_ACTIVE,
        "subscription_start_date": to_utc_z(start),
        "subscription_end_date": to_utc_z(end),
        "last_payment_date": stamp,
        "last_payment_amount": amount,
        "payment_reference": payment_reference,
        "updated_at": stamp,
        "last_verified_at": stamp,
    })
    return updated
