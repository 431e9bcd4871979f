"""
Aggregate reports for the admin dashboard and analytics endpoints.

Counting happens in SQL. Date bucketing and duration averages happen in
Python so the same code runs on PostgreSQL and SQLite.
"""

from datetime import datetime, timedelta
from dateutil.relativedelta import relativedelta
from typing import Dict, List, Optional

from taxpro import db
from taxpro.models.base import iso, money, uuid_str
from taxpro.models.contact_inquiry import ContactInquiry, InquiryStatus
from taxpro.models.review import Review
from taxpro.models.tax_return import TaxReturn, TaxReturnStatus, PaymentStatus
from taxpro.models.user import User, Accountant, Role

# period -> (lookback, bucket)
REVENUE_PERIODS = {
    '7days': (relativedelta(days=7), 'day'),
    '30days': (relativedelta(days=30), 'day'),
    '12months': (relativedelta(months=12), 'month'),
}
DEFAULT_REVENUE_PERIOD = '12months'


def _count_where(condition):
    return db.func.count(db.case((condition, 1)))


def _bucket(moment: datetime, bucket: str) -> str:
    if bucket == 'day':
        return moment.strftime('%Y-%m-%d')
    return moment.strftime('%Y-%m')


def _days_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    if start is None or end is None:
        return None
    return (end - start).total_seconds() / 86400


def _mean(values: List[float]) -> Optional[float]:
    return round(sum(values) / len(values), 2) if values else None


def dashboard_overview() -> Dict[str, object]:
    users = db.session.query(
        db.func.count(User.id),
        _count_where(User.role == Role.CUSTOMER.value),
        _count_where(User.role == Role.ACCOUNTANT.value),
        _count_where(User.is_verified.is_(True)),
    ).one()
    returns = TaxReturn.get_statistics()
    inquiries = db.session.query(
        db.func.count(ContactInquiry.id),
        _count_where(ContactInquiry.status == InquiryStatus.NEW.value),
    ).one()

    return {
        'totalUsers': users[0],
        'totalCustomers': users[1],
        'totalAccountants': users[2],
        'verifiedUsers': users[3],
        'totalTaxReturns': returns['totalReturns'],
        'pendingReturns': returns['pendingReturns'],
        'inProgressReturns': returns['inProgressReturns'],
        'completedReturns': returns['completedReturns'],
        'filedReturns': returns['filedReturns'],
        'paidReturns': returns['paidReturns'],
        'totalRevenue': returns['totalRevenue'],
        'totalInquiries': inquiries[0],
        'newInquiries': inquiries[1],
    }


def recent_activity(days: int = 7, limit: int = 10) -> List[dict]:
    """Newest registrations, returns and inquiries of the last `days`, merged by time."""
    since = datetime.utcnow() - timedelta(days=days)
    events = []

    for first_name, last_name, created_at in db.session.query(
            User.first_name, User.last_name, User.created_at
    ).filter(User.created_at >= since).order_by(User.created_at.desc()).limit(limit):
        events.append(('user_registration', f'{first_name} {last_name}', created_at))

    for tax_year, created_at in db.session.query(
            TaxReturn.tax_year, TaxReturn.created_at
    ).filter(TaxReturn.created_at >= since).order_by(TaxReturn.created_at.desc()).limit(limit):
        events.append(('tax_return_created', f'Tax return for {tax_year}', created_at))

    for subject, created_at in db.session.query(
            ContactInquiry.subject, ContactInquiry.created_at
    ).filter(ContactInquiry.created_at >= since).order_by(ContactInquiry.created_at.desc()).limit(limit):
        events.append(('contact_inquiry', f'Inquiry: {subject}', created_at))

    events.sort(key=lambda event: event[2], reverse=True)
    return [
        {'type': kind, 'description': description, 'timestamp': iso(timestamp)}
        for kind, description, timestamp in events[:limit]
    ]


def _revenue_rows(since: datetime, paid_only: bool = False):
    query = db.session.query(TaxReturn.created_at, TaxReturn.price, TaxReturn.payment_status).filter(
        TaxReturn.created_at >= since
    )
    if paid_only:
        query = query.filter(TaxReturn.payment_status == PaymentStatus.PAID.value)
    return query.order_by(TaxReturn.created_at.asc()).all()


def monthly_revenue(months: int = 12) -> List[dict]:
    """Paid returns and their revenue per calendar month."""
    since = datetime.utcnow() - relativedelta(months=months)
    buckets: Dict[str, dict] = {}
    for created_at, price, _ in _revenue_rows(since, paid_only=True):
        entry = buckets.setdefault(_bucket(created_at, 'month'), {'returnsCount': 0, 'revenue': 0.0})
        entry['returnsCount'] += 1
        entry['revenue'] += money(price) or 0.0
    return [{'month': month, **values} for month, values in sorted(buckets.items())]


def revenue_analytics(period: str) -> dict:
    """Per-bucket and total revenue for '7days', '30days' or '12months' (the default)."""
    if period not in REVENUE_PERIODS:
        period = DEFAULT_REVENUE_PERIOD
    lookback, bucket = REVENUE_PERIODS[period]
    since = datetime.utcnow() - lookback

    chart: Dict[str, dict] = {}
    totals = {'totalReturns': 0, 'totalRevenue': 0.0, 'totalPaid': 0, 'totalPaidRevenue': 0.0}
    for created_at, price, payment_status in _revenue_rows(since):
        amount = money(price) or 0.0
        paid = payment_status == PaymentStatus.PAID.value
        entry = chart.setdefault(_bucket(created_at, bucket), {
            'returnsCount': 0, 'revenue': 0.0, 'paidCount': 0, 'paidRevenue': 0.0,
        })
        entry['returnsCount'] += 1
        entry['revenue'] += amount
        totals['totalReturns'] += 1
        totals['totalRevenue'] += amount
        if paid:
            entry['paidCount'] += 1
            entry['paidRevenue'] += amount
            totals['totalPaid'] += 1
            totals['totalPaidRevenue'] += amount

    return {
        'period': period,
        'chart': [{'period': key, **values} for key, values in sorted(chart.items())],
        'totals': totals,
    }


def performance_analytics() -> dict:
    filed = db.session.query(
        TaxReturn.created_at, TaxReturn.filed_date, TaxReturn.submission_deadline
    ).filter(TaxReturn.status == TaxReturnStatus.FILED.value).all()

    durations = [d for d in (_days_between(created, filed_at) for created, filed_at, _ in filed) if d is not None]
    on_time = sum(
        1 for _, filed_at, deadline in filed
        if filed_at is not None and deadline is not None and filed_at.date() <= deadline
    )
    overdue_pending = TaxReturn.query.filter(
        TaxReturn.status == TaxReturnStatus.PENDING.value,
        TaxReturn.created_at < datetime.utcnow() - timedelta(days=7)
    ).count()

    reviews = db.session.query(
        db.func.avg(Review.rating),
        db.func.count(Review.id),
        _count_where(Review.rating >= 4),
    ).filter(Review.is_approved.is_(True)).one()

    return {
        'performance': {
            'avgCompletionDays': _mean(durations),
            'minCompletionDays': round(min(durations), 2) if durations else None,
            'maxCompletionDays': round(max(durations), 2) if durations else None,
            'onTimeFilings': on_time,
            'totalFilings': len(filed),
            'overduePending': overdue_pending,
        },
        'satisfaction': {
            'avgRating': round(float(reviews[0]), 2) if reviews[0] is not None else None,
            'totalReviews': reviews[1],
            'positiveReviews': reviews[2],
        },
    }


def accountant_summaries() -> List[dict]:
    """Every accountant with workload counters, best rated and busiest first."""
    summaries = []
    for accountant in Accountant.query.all():
        returns = TaxReturn.query.filter_by(accountant_id=accountant.id).with_entities(
            TaxReturn.status, TaxReturn.created_at, TaxReturn.filed_date
        ).all()
        done = [r for r in returns if r.status in (TaxReturnStatus.COMPLETED.value, TaxReturnStatus.FILED.value)]
        durations = [
            d for d in (_days_between(r.created_at, r.filed_date) for r in returns
                        if r.status == TaxReturnStatus.FILED.value)
            if d is not None
        ]
        user = accountant.user
        summaries.append({
            **accountant.to_dict(),
            'userId': uuid_str(accountant.user_id),
            'firstName': user.first_name,
            'lastName': user.last_name,
            'email': user.email,
            'phone': user.phone,
            'isVerified': user.is_verified,
            'userCreatedAt': iso(user.created_at),
            'totalReturns': len(returns),
            'completedReturns': len(done),
            'avgCompletionDays': _mean(durations),
        })

    summaries.sort(key=lambda s: (s['rating'] or 0, s['totalReturns']), reverse=True)
    return summaries
