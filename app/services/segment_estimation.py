# app/services/segment_estimation.py
"""
Audience estimation, preview and cached stats for segment rule trees.

Everything here is read-only against the customer table and computed on
demand; only refresh_segment_stats writes (to the segment row).
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, case, func
from sqlalchemy.orm import Session

from app import crud
from app.models.customer import Customer
from app.models.segment import Segment
from app.services.segment_rules import customer_filter

logger = logging.getLogger(__name__)

ACTIVE_WINDOW_DAYS = 30
SAMPLE_SIZE = 5
TOP_N = 5
UNKNOWN = "Unknown"

AGE_GROUPS = ["Under 18", "18-24", "25-34", "35-44", "45-54", "55-64", "65+", UNKNOWN]
FREQUENCY_BUCKETS = ["No Orders", "1 Order", "2-3 Orders", "4-5 Orders", "5+ Orders"]
SPEND_TIERS = ["0", "1-999", "1000-4999", "5000-9999", "10000+"]


def _age_bucket():
    return case(
        (Customer.age.is_(None), UNKNOWN),
        (Customer.age < 18, "Under 18"),
        (Customer.age < 25, "18-24"),
        (Customer.age < 35, "25-34"),
        (Customer.age < 45, "35-44"),
        (Customer.age < 55, "45-54"),
        (Customer.age < 65, "55-64"),
        else_="65+",
    )


def _frequency_bucket():
    orders = func.coalesce(Customer.order_count, 0)
    return case(
        (orders <= 0, "No Orders"),
        (orders == 1, "1 Order"),
        (orders <= 3, "2-3 Orders"),
        (orders <= 5, "4-5 Orders"),
        else_="5+ Orders",
    )


def _spend_tier():
    spent = func.coalesce(Customer.total_spent, 0)
    return case(
        (spent <= 0, "0"),
        (spent < 1000, "1-999"),
        (spent < 5000, "1000-4999"),
        (spent < 10000, "5000-9999"),
        else_="10000+",
    )


def _bucket_counts(db: Session, predicate, bucket, order: List[str]) -> List[Dict[str, Any]]:
    """Counts per bucket label, in the canonical order, skipping empty ones."""
    rows = (
        db.query(bucket.label("label"), func.count(Customer.id))
        .filter(predicate)
        .group_by(bucket)
        .all()
    )
    counts = {label: count for label, count in rows}
    return [{"label": label, "count": counts[label]} for label in order if counts.get(label)]


def _top_values(db: Session, predicate, column, limit: int = TOP_N) -> List[Dict[str, Any]]:
    value = func.coalesce(column, UNKNOWN)
    count = func.count(Customer.id)
    rows = (
        db.query(value.label("label"), count.label("count"))
        .filter(predicate)
        .group_by(value)
        .order_by(count.desc(), value)
        .limit(limit)
        .all()
    )
    return [{"label": label, "count": n} for label, n in rows]


def _spend_tiers(db: Session, predicate) -> List[Dict[str, Any]]:
    tier = _spend_tier()
    rows = (
        db.query(tier.label("tier"), func.count(Customer.id))
        .filter(predicate)
        .group_by(tier)
        .all()
    )
    counts = {label: count for label, count in rows}
    return [{"range": label, "count": counts.get(label, 0)} for label in SPEND_TIERS]


def _sample(customer: Customer) -> Dict[str, Any]:
    return {
        "id": customer.id,
        "name": customer.name,
        "email": customer.email,
        "city": customer.city,
        "total_spent": customer.total_spent or 0,
        "order_count": customer.order_count or 0,
        "last_purchase": customer.last_purchase,
    }


def _active_since(now: datetime) -> datetime:
    return now - timedelta(days=ACTIVE_WINDOW_DAYS)


def estimate(db: Session, owner_id: str, rules: Dict[str, Any]) -> int:
    """
    Number of the owner's customers matching a rule tree.

    Raises:
        ValidationError: If the rule tree cannot be compiled
    """
    return crud.customer.count_matching(db, owner_id=owner_id, rules=rules)


def preview(
    db: Session, owner_id: str, rules: Dict[str, Any], now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Audience breakdown for a rule tree: sample customers, demographics,
    spending and activity. Keys match the SegmentPreview aliases.

    Raises:
        ValidationError: If the rule tree cannot be compiled
    """
    now = now or datetime.now(timezone.utc)
    predicate = customer_filter(owner_id, rules, now=now)

    spending = (
        db.query(
            func.count(Customer.id),
            func.avg(Customer.total_spent),
            func.min(Customer.total_spent),
            func.max(Customer.total_spent),
            func.sum(Customer.total_spent),
            func.avg(Customer.order_count),
        )
        .filter(predicate)
        .one()
    )
    total, avg_spent, min_spent, max_spent, sum_spent, avg_orders = spending

    active = (
        db.query(func.count(Customer.id))
        .filter(predicate, Customer.last_purchase >= _active_since(now))
        .scalar()
    )

    sample = (
        db.query(Customer)
        .filter(predicate)
        .order_by(Customer.created_at, Customer.id)
        .limit(SAMPLE_SIZE)
        .all()
    )

    return {
        "totalCount": total,
        "sampleCustomers": [_sample(c) for c in sample],
        "demographics": {
            "gender": _top_values(db, predicate, Customer.gender, limit=None),
            "ageGroups": _bucket_counts(db, predicate, _age_bucket(), AGE_GROUPS),
            "occupation": _top_values(db, predicate, Customer.occupation),
        },
        "cityDistribution": _top_values(db, predicate, Customer.city),
        "spendingStats": {
            "avgSpent": round(float(avg_spent or 0), 2),
            "minSpent": float(min_spent or 0),
            "maxSpent": float(max_spent or 0),
            "totalSpent": round(float(sum_spent or 0), 2),
        },
        "activityStats": {
            "avgOrders": round(float(avg_orders or 0), 2),
            "activeCustomers": active or 0,
        },
        "purchaseFrequency": _bucket_counts(db, predicate, _frequency_bucket(), FREQUENCY_BUCKETS),
        "spendTiers": _spend_tiers(db, predicate),
    }


def segment_stats(
    db: Session, owner_id: str, rules: Dict[str, Any], now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Stats cached on a segment row: totals, activity and spend tiers.

    Only active customers count here; estimate and preview follow the rules alone.
    """
    now = now or datetime.now(timezone.utc)
    predicate = and_(customer_filter(owner_id, rules, now=now), Customer.is_active.is_(True))

    total, avg_spent, last_activity = (
        db.query(
            func.count(Customer.id),
            func.avg(Customer.total_spent),
            func.max(Customer.last_purchase),
        )
        .filter(predicate)
        .one()
    )
    active = (
        db.query(func.count(Customer.id))
        .filter(predicate, Customer.last_purchase >= _active_since(now))
        .scalar()
    )

    return {
        "total_customers": total,
        "active_customers": active or 0,
        "average_spend": round(float(avg_spent or 0), 2),
        "last_activity": last_activity,
        "spend_tiers": _spend_tiers(db, predicate),
    }


def refresh_segment_stats(db: Session, segment: Segment) -> Segment:
    """Recalculate and store a segment's cached stats."""
    stats = segment_stats(db, segment.owner_id, segment.rules)
    logger.info(
        f"Segment {segment.id} stats refreshed: {stats['total_customers']} customers, "
        f"{stats['active_customers']} active"
    )
    return crud.segment.apply_stats(db, segment=segment, stats=stats)
