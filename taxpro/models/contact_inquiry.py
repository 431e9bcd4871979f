"""
Contact form submissions from the public site.
"""

from taxpro import db
from taxpro.models.base import enum_check, iso, uuid_str
from datetime import datetime, timedelta
from enum import Enum
import uuid


class InquiryStatus(str, Enum):
    NEW = "new"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class InquiryType(str, Enum):
    GENERAL = "general"
    TAX_RETURN = "tax-return"
    ACCOUNT = "account"
    BILLING = "billing"
    TECHNICAL = "technical"
    FEEDBACK = "feedback"


class ContactInquiry(db.Model):
    """An inquiry, optionally assigned to an admin for follow-up."""

    __tablename__ = 'contact_inquiries'
    __table_args__ = (
        enum_check('status', InquiryStatus, 'ck_contact_inquiries_status'),
    )

    SORTABLE_COLUMNS = ('created_at', 'status', 'inquiry_type', 'subject', 'email', 'responded_at')

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    subject = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    inquiry_type = db.Column(db.String(50), default=InquiryType.GENERAL.value)
    status = db.Column(db.String(20), default=InquiryStatus.NEW.value, index=True)
    assigned_to = db.Column(db.Uuid, db.ForeignKey('users.id'), nullable=True)
    responded_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    assignee = db.relationship('User')

    def update_status(self, status: str) -> 'ContactInquiry':
        """Any status other than `new` counts as a response and stamps responded_at."""
        self.status = status
        if status != InquiryStatus.NEW.value:
            self.responded_at = datetime.utcnow()
        db.session.commit()
        return self

    def assign(self, admin_user_id) -> 'ContactInquiry':
        self.assigned_to = admin_user_id
        if self.status == InquiryStatus.NEW.value:
            self.status = InquiryStatus.IN_PROGRESS.value
        db.session.commit()
        return self

    @classmethod
    def create(cls, first_name: str, last_name: str, email: str, subject: str, message: str,
               phone: str = None, inquiry_type: str = InquiryType.GENERAL.value) -> 'ContactInquiry':
        inquiry = cls(
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            subject=subject,
            message=message,
            inquiry_type=inquiry_type or InquiryType.GENERAL.value,
        )
        db.session.add(inquiry)
        db.session.commit()
        return inquiry

    @classmethod
    def find_by_id(cls, inquiry_id) -> 'ContactInquiry':
        return db.session.get(cls, inquiry_id)

    @classmethod
    def get_statistics(cls) -> dict:
        """Status counters, recent volume, mean response time and a per-type breakdown."""
        def count_where(condition):
            return db.func.count(db.case((condition, 1)))

        now = datetime.utcnow()
        row = db.session.query(
            db.func.count(cls.id),
            count_where(cls.status == InquiryStatus.NEW.value),
            count_where(cls.status == InquiryStatus.IN_PROGRESS.value),
            count_where(cls.status == InquiryStatus.RESOLVED.value),
            count_where(cls.status == InquiryStatus.CLOSED.value),
            count_where(cls.created_at >= now - timedelta(days=7)),
            count_where(cls.created_at >= now - timedelta(days=30)),
        ).one()

        # Interval arithmetic is backend specific; average in Python
        responded = db.session.query(cls.created_at, cls.responded_at).filter(
            cls.responded_at.isnot(None)
        ).all()
        hours = [(answered - created).total_seconds() / 3600 for created, answered in responded]

        by_type = db.session.query(cls.inquiry_type, db.func.count(cls.id)).group_by(
            cls.inquiry_type
        ).order_by(db.func.count(cls.id).desc()).all()

        return {
            'overview': {
                'totalInquiries': row[0],
                'newInquiries': row[1],
                'inProgressInquiries': row[2],
                'resolvedInquiries': row[3],
                'closedInquiries': row[4],
                'inquiriesLast7Days': row[5],
                'inquiriesLast30Days': row[6],
                'avgResponseTimeHours': round(sum(hours) / len(hours), 2) if hours else None,
            },
            'byType': [{'inquiryType': inquiry_type, 'count': count} for inquiry_type, count in by_type],
        }

    def to_dict(self) -> dict:
        return {
            'id': uuid_str(self.id),
            'firstName': self.first_name,
            'lastName': self.last_name,
            'email': self.email,
            'phone': self.phone,
            'subject': self.subject,
            'message': self.message,
            'inquiryType': self.inquiry_type,
            'status': self.status,
            'assignedTo': uuid_str(self.assigned_to),
            'assignedToName': self.assignee.full_name if self.assignee else None,
            'assignedToEmail': self.assignee.email if self.assignee else None,
            'respondedAt': iso(self.responded_at),
            'createdAt': iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f'<ContactInquiry {self.subject!r} status={self.status}>'
