"""Lead temperature scoring.

Additive point model over a lead snapshot; higher totals are hotter.
Pure and deterministic: the caller supplies `now`, nothing is read from the
database or the clock here. Every write path that changes a scoring input
(creation, status change, logged interaction, sequence message sent) must
call `apply_score` in the same transaction as the field update.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.models.lead import LeadScore

HOT_THRESHOLD = 50
WARM_THRESHOLD = 25

# "contacted" and "converted" are accepted as aliases used by older callers.
STATUS_POINTS = {
    "quoted": 30,
    "contacted": 20,
    "in_progress": 20,
    "new": 10,
    "nurturing": 5,
    "converted": 0,
    "booked": 0,
    "lost": -10,
}

# (minimum value, points), highest tier first
VALUE_TIERS = [(1000, 25), (500, 15), (100, 5)]

# (max days since creation, points); 14 < days <= 30 scores 0
CREATED_RECENCY_TIERS = [(1, 20), (3, 15), (7, 10), (14, 5)]
STALE_AFTER_DAYS = 30
STALE_PENALTY = -10

LAST_CONTACT_TIERS = [(1, 15), (3, 10)]
CONTACT_STALE_AFTER_DAYS = 14
CONTACT_STALE_PENALTY = -5


@dataclass(frozen=True)
class LeadSnapshot:
    """The lead fields that feed the score."""
    status: str
    created_at: datetime
    estimated_value: Optional[float] = None
    follow_up_count: int = 0
    email: Optional[str] = None
    phone: Optional[str] = None
    last_contacted_at: Optional[datetime] = None

    @classmethod
    def from_lead(cls, lead) -> "LeadSnapshot":
        return cls(
            status=getattr(lead.status, "value", lead.status),
            created_at=lead.created_at,
            estimated_value=lead.estimated_value,
            follow_up_count=lead.follow_up_count or 0,
            email=lead.email,
            phone=lead.phone,
            last_contacted_at=lead.last_contacted_at,
        )


def _days_between(earlier: datetime, now: datetime) -> float:
    return (now - earlier).total_seconds() / 86400


def _status_points(status) -> int:
    return STATUS_POINTS.get(getattr(status, "value", status), 0)


def _value_points(value: Optional[float]) -> int:
    if value is None:
        return 0
    for minimum, points in VALUE_TIERS:
        if value >= minimum:
            return points
    return 0


def _created_points(created_at: Optional[datetime], now: datetime) -> int:
    if created_at is None:
        return 0
    days = _days_between(created_at, now)
    for max_days, points in CREATED_RECENCY_TIERS:
        if days <= max_days:
            return points
    if days > STALE_AFTER_DAYS:
        return STALE_PENALTY
    return 0


def _follow_up_points(count: Optional[int]) -> int:
    count = count or 0
    if count >= 3:
        return 15
    if count == 2:
        return 10
    if count == 1:
        return 5
    return 0


def _contact_points(email: Optional[str], phone: Optional[str]) -> int:
    has_email = bool(email and email.strip())
    has_phone = bool(phone and phone.strip())
    if has_email and has_phone:
        return 10
    if has_email or has_phone:
        return 5
    return 0


def _last_contact_points(last_contacted_at: Optional[datetime], now: datetime) -> int:
    if last_contacted_at is None:
        return 0
    days = _days_between(last_contacted_at, now)
    for max_days, points in LAST_CONTACT_TIERS:
        if days <= max_days:
            return points
    if days > CONTACT_STALE_AFTER_DAYS:
        return CONTACT_STALE_PENALTY
    return 0


def score_breakdown(snapshot: LeadSnapshot, now: datetime) -> dict[str, int]:
    """Points contributed by each factor, for diagnostics and the lead detail view."""
    return {
        "status": _status_points(snapshot.status),
        "estimated_value": _value_points(snapshot.estimated_value),
        "created_recency": _created_points(snapshot.created_at, now),
        "follow_ups": _follow_up_points(snapshot.follow_up_count),
        "contact_info": _contact_points(snapshot.email, snapshot.phone),
        "last_contact": _last_contact_points(snapshot.last_contacted_at, now),
    }


def score_points(snapshot: LeadSnapshot, now: datetime) -> int:
    return sum(score_breakdown(snapshot, now).values())


def temperature_for(points: int) -> LeadScore:
    if points >= HOT_THRESHOLD:
        return LeadScore.HOT
    if points >= WARM_THRESHOLD:
        return LeadScore.WARM
    return LeadScore.COLD


def calculate_lead_score(snapshot: LeadSnapshot, now: datetime) -> LeadScore:
    """Map a lead snapshot to hot / warm / cold."""
    return temperature_for(score_points(snapshot, now))


def apply_score(lead, now: datetime) -> LeadScore:
    """Recompute and store `lead.score`. Returns the new temperature."""
    lead.score = calculate_lead_score(LeadSnapshot.from_lead(lead), now)
    return lead.score
