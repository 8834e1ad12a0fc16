"""Subscription-active policy."""

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from .models import Subscription

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = frozenset({"active", "approved"})


def _parse_end_date(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_subscription_record_active(subscription: Subscription, now: Optional[datetime] = None) -> bool:
    """
    Check one subscription record.

    A record counts as active when its status is ``active`` or ``approved``
    and its end date, if present, lies in the future. An end date that cannot
    be parsed leaves the record active.
    """
    status = (subscription.status or "").strip().lower()
    if status not in ACTIVE_STATUSES:
        return False
    if not subscription.end_date:
        return True

    now = now or datetime.now(timezone.utc)
    try:
        return _parse_end_date(subscription.end_date) > now
    except ValueError:
        logger.warning(f"Unparseable subscription end date {subscription.end_date!r}; treating as active")
        return True


def coerce_subscriptions(raw: Any) -> list[Subscription]:
    """Accept a single record, a list, or ``{"subscriptions": [...]}``."""
    if isinstance(raw, dict) and "subscriptions" in raw:
        raw = raw["subscriptions"]
    elif isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, list):
        return []

    subscriptions = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            subscriptions.append(Subscription.model_validate(item))
        except ValidationError as e:
            logger.debug(f"Skipping malformed subscription record: {e}")
    return subscriptions


def is_subscription_active(subscriptions: Iterable[Subscription], now: Optional[datetime] = None) -> bool:
    """True if any record is active."""
    return any(is_subscription_record_active(sub, now) for sub in subscriptions)
