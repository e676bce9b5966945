"""Tests for lead temperature scoring."""

from datetime import datetime, timedelta

import pytest

from app.models.lead import LeadScore
from app.services.scoring import (
    LeadSnapshot,
    calculate_lead_score,
    score_breakdown,
    score_points,
    temperature_for,
)

NOW = datetime(2026, 3, 2, 12, 0, 0)


def _snapshot(**overrides):
    values = dict(
        status="new",
        created_at=NOW - timedelta(hours=2),
        estimated_value=1200,
        follow_up_count=0,
        email=None,
        phone="+15551234567",
        last_contacted_at=None,
    )
    values.update(overrides)
    return LeadSnapshot(**values)


def test_new_high_value_lead_with_phone_is_hot():
    snapshot = _snapshot()
    breakdown = score_breakdown(snapshot, NOW)
    assert breakdown == {
        "status": 10,
        "estimated_value": 25,
        "created_recency": 20,
        "follow_ups": 0,
        "contact_info": 5,
        "last_contact": 0,
    }
    assert score_points(snapshot, NOW) == 60
    assert calculate_lead_score(snapshot, NOW) == LeadScore.HOT


def test_score_is_deterministic():
    snapshot = _snapshot(follow_up_count=2, last_contacted_at=NOW - timedelta(days=2))
    assert calculate_lead_score(snapshot, NOW) == calculate_lead_score(snapshot, NOW)
    assert score_points(snapshot, NOW) == score_points(snapshot, NOW)


def test_thresholds():
    assert temperature_for(50) == LeadScore.HOT
    assert temperature_for(49) == LeadScore.WARM
    assert temperature_for(25) == LeadScore.WARM
    assert temperature_for(24) == LeadScore.COLD
    assert temperature_for(-20) == LeadScore.COLD


def test_more_follow_ups_never_lower_the_score():
    previous = None
    for count in range(0, 6):
        points = score_points(_snapshot(follow_up_count=count, estimated_value=None), NOW)
        if previous is not None:
            assert points >= previous
        previous = points


def test_follow_up_points_cap_at_three():
    assert score_breakdown(_snapshot(follow_up_count=3), NOW)["follow_ups"] == 15
    assert score_breakdown(_snapshot(follow_up_count=12), NOW)["follow_ups"] == 15


@pytest.mark.parametrize("value,points", [
    (None, 0),
    (99, 0),
    (100, 5),
    (499.99, 5),
    (500, 15),
    (999, 15),
    (1000, 25),
])
def test_value_tiers(value, points):
    assert score_breakdown(_snapshot(estimated_value=value), NOW)["estimated_value"] == points


@pytest.mark.parametrize("age,points", [
    (timedelta(hours=23), 20),
    (timedelta(days=1), 20),
    (timedelta(days=2), 15),
    (timedelta(days=5), 10),
    (timedelta(days=10), 5),
    (timedelta(days=20), 0),
    (timedelta(days=30), 0),
    (timedelta(days=45), -10),
])
def test_created_recency(age, points):
    assert score_breakdown(_snapshot(created_at=NOW - age), NOW)["created_recency"] == points


@pytest.mark.parametrize("ago,points", [
    (None, 0),
    (timedelta(hours=6), 15),
    (timedelta(days=3), 10),
    (timedelta(days=10), 0),
    (timedelta(days=15), -5),
])
def test_last_contact(ago, points):
    last = NOW - ago if ago is not None else None
    assert score_breakdown(_snapshot(last_contacted_at=last), NOW)["last_contact"] == points


def test_contact_info_points():
    assert score_breakdown(_snapshot(email="a@b.com", phone="+15551234567"), NOW)["contact_info"] == 10
    assert score_breakdown(_snapshot(email="a@b.com", phone=None), NOW)["contact_info"] == 5
    assert score_breakdown(_snapshot(email="  ", phone=""), NOW)["contact_info"] == 0


def test_unknown_status_scores_zero():
    assert score_breakdown(_snapshot(status="archived"), NOW)["status"] == 0


def test_status_aliases():
    assert score_breakdown(_snapshot(status="contacted"), NOW)["status"] == 20
    assert score_breakdown(_snapshot(status="converted"), NOW)["status"] == 0


def test_stale_lost_lead_is_cold():
    snapshot = _snapshot(
        status="lost",
        created_at=NOW - timedelta(days=60),
        estimated_value=None,
        phone=None,
        last_contacted_at=NOW - timedelta(days=40),
    )
    assert score_points(snapshot, NOW) == -25
    assert calculate_lead_score(snapshot, NOW) == LeadScore.COLD
