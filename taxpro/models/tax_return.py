"""
Tax return model and the child records owned by a return: income sources,
expenses, documents, messages and payments.
"""

from taxpro import db
from taxpro.errors import ConflictError, ValidationError
from taxpro.models.base import enum_check, enum_values, iso, money, uuid_str
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
import logging
import uuid

logger = logging.getLogger(__name__)


class TaxReturnStatus(str, Enum):
    """Lifecycle states of a tax return."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    COMPLETED = "completed"
    FILED = "filed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment state recorded on the tax return itself."""
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class SituationType(str, Enum):
    SELF_EMPLOYED = "self-employed"
    FREELANCER = "freelancer"
    LANDLORD = "landlord"
    INVESTOR = "investor"
    HIGH_EARNER = "high-earner"
    FIRST_TIME = "first-time"
    OTHER = "other"


class IncomeSourceType(str, Enum):
    EMPLOYMENT = "employment"
    SELF_EMPLOYMENT = "self_employment"
    RENTAL = "rental"
    DIVIDENDS = "dividends"
    INTEREST = "interest"
    OTHER = "other"


class MessageType(str, Enum):
    GENERAL = "general"
    QUERY = "query"
    UPDATE = "update"
    SYSTEM = "system"


class PaymentRecordStatus(str, Enum):
    """Status of an individual payment attempt."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


DEFAULT_PRICE = Decimal('169.00')


class TaxReturn(db.Model):
    """One customer's filing for one tax year."""

    __tablename__ = 'tax_returns'
    __table_args__ = (
        db.UniqueConstraint('customer_id', 'tax_year', name='uq_tax_returns_customer_year'),
        enum_check('status', TaxReturnStatus, 'ck_tax_returns_status'),
        enum_check('payment_status', PaymentStatus, 'ck_tax_returns_payment_status'),
    )

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = db.Column(db.Uuid, db.ForeignKey('customers.id', ondelete='CASCADE'), nullable=False, index=True)
    accountant_id = db.Column(db.Uuid, db.ForeignKey('accountants.id'), nullable=True, index=True)
    tax_year = db.Column(db.String(10), nullable=False, index=True)  # e.g. '2023-24'
    status = db.Column(db.String(20), nullable=False, default=TaxReturnStatus.PENDING.value, index=True)
    situation_type = db.Column(db.String(50), nullable=True)

    # Calculations
    total_income = db.Column(db.Numeric(12, 2), nullable=True)
    total_tax_due = db.Column(db.Numeric(12, 2), nullable=True)
    total_refund = db.Column(db.Numeric(12, 2), nullable=True)

    # Filing
    submission_deadline = db.Column(db.Date, nullable=True)
    filed_date = db.Column(db.DateTime, nullable=True)
    hmrc_reference = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    price = db.Column(db.Numeric(10, 2), default=DEFAULT_PRICE)
    payment_status = db.Column(db.String(20), default=PaymentStatus.PENDING.value, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    customer = db.relationship('Customer', backref=db.backref('tax_returns', lazy='dynamic'))
    accountant = db.relationship('Accountant', backref=db.backref('tax_returns', lazy='dynamic'))

    # Columns a caller may sort listings by
    SORTABLE_COLUMNS = (
        'created_at', 'updated_at', 'tax_year', 'status', 'payment_status',
        'price', 'submission_deadline', 'filed_date',
    )

    @classmethod
    def create(cls, customer_id, tax_year: str, situation_type: str = None,
               submission_deadline=None, price=None) -> 'TaxReturn':
        """
        Open a return for a customer and tax year.

        Raises:
            ConflictError: if the customer already has a return for that year
        """
        if cls.query.filter_by(customer_id=customer_id, tax_year=tax_year).first():
            raise ConflictError('Tax return for this year already exists')

        tax_return = cls(
            customer_id=customer_id,
            tax_year=tax_year,
            situation_type=situation_type,
            submission_deadline=submission_deadline,
            price=price if price is not None else DEFAULT_PRICE,
        )
        db.session.add(tax_return)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError('Tax return for this year already exists')
        return tax_return

    @classmethod
    def find_by_id(cls, tax_return_id) -> Optional['TaxReturn']:
        return db.session.get(cls, tax_return_id)

    @classmethod
    def filtered(cls, customer_id=None, accountant_id=None, status=None,
                 tax_year=None, payment_status=None):
        """Query with one predicate appended per filter that was supplied."""
        query = cls.query
        if customer_id is not None:
            query = query.filter(cls.customer_id == customer_id)
        if accountant_id is not None:
            query = query.filter(cls.accountant_id == accountant_id)
        if status:
            query = query.filter(cls.status == status)
        if tax_year:
            query = query.filter(cls.tax_year == tax_year)
        if payment_status:
            query = query.filter(cls.payment_status == payment_status)
        return query

    @classmethod
    def find_by_customer(cls, customer_id, **filters) -> List['TaxReturn']:
        return cls.filtered(customer_id=customer_id, **filters).order_by(cls.created_at.desc()).all()

    @classmethod
    def find_by_accountant(cls, accountant_id, **filters) -> List['TaxReturn']:
        return cls.filtered(accountant_id=accountant_id, **filters).order_by(cls.created_at.desc()).all()

    def assign_accountant(self, accountant_id) -> 'TaxReturn':
        """Assign an accountant; a return that has not started moves to in_progress."""
        self.accountant_id = accountant_id
        if self.status in (None, TaxReturnStatus.PENDING.value):
            self.status = TaxReturnStatus.IN_PROGRESS.value
        db.session.commit()
        return self

    def update_status(self, status: str) -> 'TaxReturn':
        """Set any enumerated status. Transitions are not checked against the lifecycle order."""
        if status not in enum_values(TaxReturnStatus):
            raise ValidationError.for_field('status', 'Invalid status')
        self.status = status
        db.session.commit()
        return self

    def update_payment_status(self, payment_status: str) -> 'TaxReturn':
        if payment_status not in enum_values(PaymentStatus):
            raise ValidationError.for_field('paymentStatus', 'Invalid payment status')
        self.payment_status = payment_status
        db.session.commit()
        return self

    def update_calculations(self, total_income, total_tax_due=None, total_refund=None) -> 'TaxReturn':
        self.total_income = total_income
        self.total_tax_due = total_tax_due
        self.total_refund = total_refund
        db.session.commit()
        return self

    def mark_as_filed(self, hmrc_reference: str) -> 'TaxReturn':
        self.status = TaxReturnStatus.FILED.value
        self.filed_date = datetime.utcnow()
        self.hmrc_reference = hmrc_reference
        db.session.commit()
        return self

    def add_notes(self, notes: str) -> 'TaxReturn':
        self.notes = notes
        db.session.commit()
        return self

    def add_income_source(self, source_type: str, gross_income, tax_deducted=None,
                          ni_contributions=None, employer_name: str = None,
                          start_date=None, end_date=None) -> 'IncomeSource':
        income = IncomeSource(
            tax_return_id=self.id,
            source_type=source_type,
            gross_income=gross_income,
            tax_deducted=tax_deducted if tax_deducted is not None else 0,
            ni_contributions=ni_contributions if ni_contributions is not None else 0,
            employer_name=employer_name,
            start_date=start_date,
            end_date=end_date,
        )
        db.session.add(income)
        db.session.commit()
        return income

    def add_expense(self, category: str, description: str, amount, expense_date,
                    receipt_url: str = None) -> 'Expense':
        """Record a claimed expense. It stays unapproved until an accountant approves it."""
        expense = Expense(
            tax_return_id=self.id,
            category=category,
            description=description,
            amount=amount,
            expense_date=expense_date,
            receipt_url=receipt_url,
        )
        db.session.add(expense)
        db.session.commit()
        return expense

    def add_message(self, sender_id, recipient_id, message: str, subject: str = None,
                    message_type: str = MessageType.GENERAL.value) -> 'Message':
        entry = Message(
            tax_return_id=self.id,
            sender_id=sender_id,
            recipient_id=recipient_id,
            subject=subject,
            message=message,
            message_type=message_type,
        )
        db.session.add(entry)
        db.session.commit()
        return entry

    def find_expense(self, expense_id) -> Optional['Expense']:
        return Expense.query.filter_by(id=expense_id, tax_return_id=self.id).first()

    def owner_user_ids(self) -> tuple:
        """Users entitled to this return: the customer and, once assigned, the accountant."""
        owners = [self.customer.user_id]
        if self.accountant is not None:
            owners.append(self.accountant.user_id)
        return tuple(owners)

    def get_income_sources(self) -> List['IncomeSource']:
        return IncomeSource.query.filter_by(tax_return_id=self.id).order_by(IncomeSource.created_at.asc()).all()

    def get_expenses(self) -> List['Expense']:
        return Expense.query.filter_by(tax_return_id=self.id).order_by(Expense.expense_date.desc()).all()

    def get_documents(self) -> List['Document']:
        return Document.query.filter_by(tax_return_id=self.id).order_by(Document.created_at.desc()).all()

    def get_messages(self) -> List['Message']:
        return Message.query.filter_by(tax_return_id=self.id).order_by(Message.created_at.asc()).all()

    def get_total_expenses(self) -> float:
        """Sum of approved expenses."""
        total = db.session.query(db.func.coalesce(db.func.sum(Expense.amount), 0)).filter(
            Expense.tax_return_id == self.id,
            Expense.is_approved.is_(True)
        ).scalar()
        return float(total or 0)

    @classmethod
    def get_statistics(cls, customer_id=None, accountant_id=None, tax_year=None) -> dict:
        """Status and revenue counters, scoped by whichever filters are given."""
        def count_where(condition):
            return db.func.count(db.case((condition, 1)))

        query = db.session.query(
            db.func.count(cls.id),
            count_where(cls.status == TaxReturnStatus.PENDING.value),
            count_where(cls.status == TaxReturnStatus.IN_PROGRESS.value),
            count_where(cls.status == TaxReturnStatus.COMPLETED.value),
            count_where(cls.status == TaxReturnStatus.FILED.value),
            count_where(cls.payment_status == PaymentStatus.PAID.value),
            db.func.coalesce(db.func.sum(db.case((cls.payment_status == PaymentStatus.PAID.value, cls.price))), 0),
            db.func.coalesce(db.func.avg(db.case((cls.status == TaxReturnStatus.FILED.value, cls.total_income))), 0),
        )
        if customer_id is not None:
            query = query.filter(cls.customer_id == customer_id)
        if accountant_id is not None:
            query = query.filter(cls.accountant_id == accountant_id)
        if tax_year:
            query = query.filter(cls.tax_year == tax_year)

        row = query.one()
        return {
            'totalReturns': row[0],
            'pendingReturns': row[1],
            'inProgressReturns': row[2],
            'completedReturns': row[3],
            'filedReturns': row[4],
            'paidReturns': row[5],
            'totalRevenue': float(row[6] or 0),
            'avgIncome': float(row[7] or 0),
        }

    def delete(self) -> List[str]:
        """
        Delete the return and every record it owns as one unit of work.

        Either all rows go or none do. Reviews that mention the return are
        kept and detached from it.

        Returns:
            Paths of the stored document files, for the caller to remove
            once the transaction has committed.
        """
        tax_return_id = self.id
        file_paths = [path for (path,) in db.session.query(Document.file_path).filter_by(tax_return_id=tax_return_id)]

        try:
            for child in (Message, Document, Expense, IncomeSource, Payment):
                child.query.filter_by(tax_return_id=tax_return_id).delete(synchronize_session=False)

            from taxpro.models.review import Review
            Review.query.filter_by(tax_return_id=tax_return_id).update(
                {'tax_return_id': None}, synchronize_session=False
            )

            TaxReturn.query.filter_by(id=tax_return_id).delete(synchronize_session=False)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.error(f"Rolled back deletion of tax return {tax_return_id}", exc_info=True)
            raise

        db.session.expunge(self)
        return file_paths

    def get_full_details(self) -> dict:
        """Return fields plus the names and contact details of both parties."""
        data = self.to_dict()
        customer_user = self.customer.user
        data.update({
            'customerName': customer_user.full_name,
            'customerEmail': customer_user.email,
            'customerPhone': customer_user.phone,
            'accountantName': None,
            'accountantEmail': None,
            'accountantQualification': None,
            'accountantExperience': None,
        })
        if self.accountant is not None:
            accountant_user = self.accountant.user
            data.update({
                'accountantName': accountant_user.full_name,
                'accountantEmail': accountant_user.email,
                'accountantQualification': self.accountant.qualification,
                'accountantExperience': self.accountant.experience_years,
            })
        return data

    def to_dict(self) -> dict:
        return {
            'id': uuid_str(self.id),
            'customerId': uuid_str(self.customer_id),
            'accountantId': uuid_str(self.accountant_id),
            'taxYear': self.tax_year,
            'status': self.status,
            'situationType': self.situation_type,
            'totalIncome': money(self.total_income),
            'totalTaxDue': money(self.total_tax_due),
            'totalRefund': money(self.total_refund),
            'submissionDeadline': iso(self.submission_deadline),
            'filedDate': iso(self.filed_date),
            'hmrcReference': self.hmrc_reference,
            'notes': self.notes,
            'price': money(self.price),
            'paymentStatus': self.payment_status,
            'createdAt': iso(self.created_at),
            'updatedAt': iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f'<TaxReturn {self.tax_year} status={self.status}>'


class IncomeSource(db.Model):
    """A single income stream declared on a return."""

    __tablename__ = 'income_sources'

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    tax_return_id = db.Column(db.Uuid, db.ForeignKey('tax_returns.id', ondelete='CASCADE'), nullable=False, index=True)
    source_type = db.Column(db.String(50), nullable=False)
    employer_name = db.Column(db.String(255), nullable=True)
    gross_income = db.Column(db.Numeric(12, 2), nullable=False)
    tax_deducted = db.Column(db.Numeric(12, 2), default=0)
    ni_contributions = db.Column(db.Numeric(12, 2), default=0)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            'id': uuid_str(self.id),
            'taxReturnId': uuid_str(self.tax_return_id),
            'sourceType': self.source_type,
            'employerName': self.employer_name,
            'grossIncome': money(self.gross_income),
            'taxDeducted': money(self.tax_deducted),
            'niContributions': money(self.ni_contributions),
            'startDate': iso(self.start_date),
            'endDate': iso(self.end_date),
            'createdAt': iso(self.created_at),
        }


class Expense(db.Model):
    """Claimable expense; counts toward totals once approved by an accountant."""

    __tablename__ = 'expenses'

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    tax_return_id = db.Column(db.Uuid, db.ForeignKey('tax_returns.id', ondelete='CASCADE'), nullable=False, index=True)
    category = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    expense_date = db.Column(db.Date, nullable=False)
    receipt_url = db.Column(db.String(500), nullable=True)
    is_approved = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def approve(self) -> 'Expense':
        self.is_approved = True
        db.session.commit()
        return self

    def to_dict(self) -> dict:
        return {
            'id': uuid_str(self.id),
            'taxReturnId': uuid_str(self.tax_return_id),
            'category': self.category,
            'description': self.description,
            'amount': money(self.amount),
            'expenseDate': iso(self.expense_date),
            'receiptUrl': self.receipt_url,
            'isApproved': self.is_approved,
            'createdAt': iso(self.created_at),
        }


class Document(db.Model):
    """Metadata for an uploaded file; the bytes live in the upload folder."""

    __tablename__ = 'documents'

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    tax_return_id = db.Column(db.Uuid, db.ForeignKey('tax_returns.id', ondelete='CASCADE'), nullable=False, index=True)
    uploaded_by = db.Column(db.Uuid, db.ForeignKey('users.id'), nullable=True)
    document_type = db.Column(db.String(50), nullable=False)  # p60, p45, bank_statement, receipt...
    original_name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(500), nullable=False)
    file_size = db.Column(db.Integer, nullable=True)
    mime_type = db.Column(db.String(100), nullable=True)
    is_processed = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    tax_return = db.relationship('TaxReturn')
    uploader = db.relationship('User')

    def to_dict(self) -> dict:
        return {
            'id': uuid_str(self.id),
            'taxReturnId': uuid_str(self.tax_return_id),
            'uploadedBy': uuid_str(self.uploaded_by),
            'uploadedByName': self.uploader.full_name if self.uploader else None,
            'documentType': self.document_type,
            'originalName': self.original_name,
            'fileSize': self.file_size,
            'mimeType': self.mime_type,
            'isProcessed': self.is_processed,
            'createdAt': iso(self.created_at),
        }


class Message(db.Model):
    """Correspondence between the parties of a return."""

    __tablename__ = 'messages'
    __table_args__ = (
        enum_check('message_type', MessageType, 'ck_messages_type'),
    )

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    tax_return_id = db.Column(db.Uuid, db.ForeignKey('tax_returns.id', ondelete='CASCADE'), nullable=False, index=True)
    sender_id = db.Column(db.Uuid, db.ForeignKey('users.id'), nullable=False, index=True)
    recipient_id = db.Column(db.Uuid, db.ForeignKey('users.id'), nullable=False, index=True)
    subject = db.Column(db.String(255), nullable=True)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, default=False)
    message_type = db.Column(db.String(20), default=MessageType.GENERAL.value)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    sender = db.relationship('User', foreign_keys=[sender_id])
    recipient = db.relationship('User', foreign_keys=[recipient_id])

    def to_dict(self) -> dict:
        return {
            'id': uuid_str(self.id),
            'taxReturnId': uuid_str(self.tax_return_id),
            'senderId': uuid_str(self.sender_id),
            'senderName': self.sender.full_name if self.sender else None,
            'recipientId': uuid_str(self.recipient_id),
            'recipientName': self.recipient.full_name if self.recipient else None,
            'subject': self.subject,
            'message': self.message,
            'isRead': self.is_read,
            'messageType': self.message_type,
            'createdAt': iso(self.created_at),
        }


class Payment(db.Model):
    """Payment attempt against a return. Processing itself happens elsewhere."""

    __tablename__ = 'payments'
    __table_args__ = (
        enum_check('payment_status', PaymentRecordStatus, 'ck_payments_status'),
    )

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    tax_return_id = db.Column(db.Uuid, db.ForeignKey('tax_returns.id', ondelete='CASCADE'), nullable=False, index=True)
    customer_id = db.Column(db.Uuid, db.ForeignKey('customers.id'), nullable=True, index=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(3), default='GBP')
    payment_method = db.Column(db.String(50), nullable=True)
    payment_status = db.Column(db.String(20), nullable=False, index=True)
    stripe_payment_intent_id = db.Column(db.String(255), nullable=True)
    transaction_id = db.Column(db.String(255), nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            'id': uuid_str(self.id),
            'taxReturnId': uuid_str(self.tax_return_id),
            'customerId': uuid_str(self.customer_id),
            'amount': money(self.amount),
            'currency': self.currency,
            'paymentMethod': self.payment_method,
            'paymentStatus': self.payment_status,
            'transactionId': self.transaction_id,
            'paidAt': iso(self.paid_at),
            'createdAt': iso(self.created_at),
        }
