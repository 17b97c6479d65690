# -*- coding: utf-8 -*-
"""
Disappearance rules for paywalled messages.

A message's content may be shown only while its view budget lasts. Three
independent rules can end it, checked in this order (first match wins):

1. absolute deletion time (``delete_at``) has passed, even if never viewed
2. view cap (``max_views``) has been reached
3. post-first-view timer (``delete_after_minutes``) has run out

The functions here are pure: they never touch the database. The view
transition itself lives in ``services.messages.consume_view``.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

REASON_SELF_DESTRUCT = "self-destruct timer expired"
REASON_VIEW_LIMIT = "view limit reached"
REASON_TIMED_DELETION = "timed deletion"
REASON_GONE = "message has disappeared"


@dataclass(frozen=True)
class ViewBudget:
    """Snapshot of the fields the rules read."""
    view_count: int = 0
    max_views: Optional[int] = None
    first_viewed_at: Optional[datetime] = None
    delete_after_minutes: Optional[int] = None
    delete_at: Optional[datetime] = None

    @classmethod
    def from_message(cls, message) -> "ViewBudget":
        return cls(
            view_count=message.view_count or 0,
            max_views=message.max_views,
            first_viewed_at=message.first_viewed_at,
            delete_after_minutes=message.delete_after_minutes,
            delete_at=message.delete_at,
        )


def evaluate(budget: ViewBudget, now: datetime, count_views: bool = True) -> Optional[str]:
    """
    Return the reason the content has disappeared, or None if it may be shown.

    With ``count_views=False`` only the time-based rules apply; the file
    endpoint uses this so the last permitted view can still fetch its bytes.
    """
    if budget.delete_at is not None and now >= budget.delete_at:
        return REASON_SELF_DESTRUCT

    if count_views and budget.max_views is not None and budget.view_count >= budget.max_views:
        return REASON_VIEW_LIMIT

    if budget.delete_after_minutes is not None and budget.first_viewed_at is not None:
        deadline = budget.first_viewed_at + timedelta(minutes=budget.delete_after_minutes)
        if now >= deadline:
            return REASON_TIMED_DELETION

    return None


def views_remaining(budget: ViewBudget) -> Optional[int]:
    if budget.max_views is None:
        return None
    return max(0, budget.max_views - budget.view_count)


def deletes_at(budget: ViewBudget) -> Optional[datetime]:
    """Earliest moment a time rule will fire, if one is armed."""
    candidates = []
    if budget.delete_at is not None:
        candidates.append(budget.delete_at)
    if budget.delete_after_minutes is not None and budget.first_viewed_at is not None:
        candidates.append(budget.first_viewed_at + timedelta(minutes=budget.delete_after_minutes))
    return min(candidates) if candidates else None
