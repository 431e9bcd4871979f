"""
User model for authentication and user management, plus the role-specific
customer and accountant profiles attached to it.
"""

from taxpro import db
from taxpro.errors import ConflictError
from taxpro.models.base import enum_check, iso, money, uuid_str
from flask_login import UserMixin
from sqlalchemy.exc import IntegrityError
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime, timedelta
from enum import Enum
import time
import uuid


class Role(str, Enum):
    """Roles a user can hold."""
    CUSTOMER = "customer"
    ACCOUNTANT = "accountant"
    ADMIN = "admin"


class ContactMethod(str, Enum):
    EMAIL = "email"
    PHONE = "phone"
    SMS = "sms"


class AvailabilityStatus(str, Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    OFFLINE = "offline"


RESET_TOKEN_LIFETIME = timedelta(hours=1)


class User(UserMixin, db.Model):
    """Shared identity record for customers, accountants and admins."""

    __tablename__ = 'users'
    __table_args__ = (
        enum_check('role', Role, 'ck_users_role'),
    )

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    role = db.Column(db.String(20), nullable=False, default=Role.CUSTOMER.value, index=True)

    # Email verification
    is_verified = db.Column(db.Boolean, default=False, nullable=False)
    verification_token = db.Column(db.String(255), nullable=True, index=True)

    # Password reset fields
    reset_password_token = db.Column(db.String(255), nullable=True, index=True)
    reset_password_expires = db.Column(db.DateTime, nullable=True)

    last_login = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    customer = db.relationship('Customer', backref='user', uselist=False, cascade='all, delete-orphan')
    accountant = db.relationship('Accountant', backref='user', uselist=False, cascade='all, delete-orphan')

    @classmethod
    def create(cls, email: str, password: str, first_name: str, last_name: str,
               phone: str = None, role: str = Role.CUSTOMER.value) -> 'User':
        """
        Create a user together with the profile row its role calls for.

        Raises:
            ConflictError: if the email is already registered
        """
        if cls.find_by_email(email):
            raise ConflictError('User with this email already exists')

        user = cls(
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            role=role,
            verification_token=str(uuid.uuid4()),
        )
        user.set_password(password)

        if role == Role.CUSTOMER.value:
            user.customer = Customer()
        elif role == Role.ACCOUNTANT.value:
            user.accountant = Accountant()

        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same address
            db.session.rollback()
            raise ConflictError('User with this email already exists')
        return user

    @classmethod
    def find_by_id(cls, user_id) -> 'User':
        return db.session.get(cls, user_id)

    @classmethod
    def find_by_email(cls, email: str) -> 'User':
        return cls.query.filter_by(email=email).first()

    @classmethod
    def find_by_verification_token(cls, token: str) -> 'User':
        return cls.query.filter_by(verification_token=token).first()

    @classmethod
    def find_by_reset_token(cls, token: str) -> 'User':
        """Find the user holding an unexpired password reset token."""
        return cls.query.filter(
            cls.reset_password_token == token,
            cls.reset_password_expires > datetime.utcnow()
        ).first()

    def set_password(self, password: str) -> None:
        """Hash and set the user's password, invalidating any reset token."""
        self.password_hash = generate_password_hash(password, method='pbkdf2:sha256:600000')
        self.reset_password_token = None
        self.reset_password_expires = None

    def check_password(self, password: str) -> bool:
        """Check if provided password matches the hash."""
        return check_password_hash(self.password_hash, password)

    def verify_email(self) -> None:
        self.is_verified = True
        self.verification_token = None
        db.session.commit()

    def set_reset_password_token(self) -> str:
        """Issue a one-hour password reset token."""
        self.reset_password_token = str(uuid.uuid4())
        self.reset_password_expires = datetime.utcnow() + RESET_TOKEN_LIFETIME
        db.session.commit()
        return self.reset_password_token

    def update_password(self, password: str) -> None:
        self.set_password(password)
        db.session.commit()

    def update_last_login(self) -> None:
        self.last_login = datetime.utcnow()
        db.session.commit()

    def update(self, first_name: str = None, last_name: str = None, phone: str = None) -> 'User':
        """Update the editable identity fields; None leaves a field untouched."""
        if first_name is not None:
            self.first_name = first_name
        if last_name is not None:
            self.last_name = last_name
        if phone is not None:
            self.phone = phone
        db.session.commit()
        return self

    def soft_delete(self) -> None:
        """Retire the account without removing the row: free the email and revoke verification."""
        self.email = f'{self.email}_deleted_{int(time.time())}'
        self.is_verified = False
        db.session.commit()

    def generate_token(self) -> str:
        from taxpro.utils.auth import create_access_token
        return create_access_token(self)

    @property
    def full_name(self) -> str:
        return f'{self.first_name} {self.last_name}'

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    @property
    def profile(self):
        """The role-specific profile: a Customer, an Accountant, or None for admins."""
        if self.role == Role.CUSTOMER.value:
            return self.customer
        if self.role == Role.ACCOUNTANT.value:
            return self.accountant
        return None

    def get_profile(self) -> dict:
        """User fields plus the role-specific profile fields."""
        data = self.to_dict()
        profile = self.profile
        data['profile'] = profile.to_dict() if profile else None
        return data

    def to_dict(self) -> dict:
        """Public representation; never includes hashes or tokens."""
        return {
            'id': uuid_str(self.id),
            'email': self.email,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'phone': self.phone,
            'role': self.role,
            'isVerified': self.is_verified,
            'lastLogin': iso(self.last_login),
            'createdAt': iso(self.created_at),
            'updatedAt': iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f'<User {self.email}>'


class Customer(db.Model):
    """Customer profile, one-to-one with a user holding the customer role."""

    __tablename__ = 'customers'
    __table_args__ = (
        enum_check('preferred_contact_method', ContactMethod, 'ck_customers_contact_method'),
    )

    # Fields a customer may edit on their own profile
    EDITABLE_FIELDS = (
        'date_of_birth', 'national_insurance_number', 'address_line1', 'address_line2',
        'city', 'county', 'postcode', 'country', 'employment_status',
        'is_first_time_filer', 'preferred_contact_method',
    )

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    user_id = db.Column(db.Uuid, db.ForeignKey('users.id', ondelete='CASCADE'), unique=True, index=True)
    date_of_birth = db.Column(db.Date, nullable=True)
    national_insurance_number = db.Column(db.String(20), nullable=True)
    address_line1 = db.Column(db.String(255), nullable=True)
    address_line2 = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    county = db.Column(db.String(100), nullable=True)
    postcode = db.Column(db.String(20), nullable=True)
    country = db.Column(db.String(100), default='United Kingdom')
    employment_status = db.Column(db.String(50), nullable=True)
    is_first_time_filer = db.Column(db.Boolean, default=False)
    preferred_contact_method = db.Column(db.String(20), default=ContactMethod.EMAIL.value)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @classmethod
    def id_for_user(cls, user_id):
        customer = cls.query.filter_by(user_id=user_id).first()
        return customer.id if customer else None

    def to_dict(self) -> dict:
        return {
            'id': uuid_str(self.id),
            'dateOfBirth': iso(self.date_of_birth),
            'nationalInsuranceNumber': self.national_insurance_number,
            'addressLine1': self.address_line1,
            'addressLine2': self.address_line2,
            'city': self.city,
            'county': self.county,
            'postcode': self.postcode,
            'country': self.country,
            'employmentStatus': self.employment_status,
            'isFirstTimeFiler': self.is_first_time_filer,
            'preferredContactMethod': self.preferred_contact_method,
        }

    def __repr__(self) -> str:
        return f'<Customer user_id={self.user_id}>'


class Accountant(db.Model):
    """Accountant profile, one-to-one with a user holding the accountant role."""

    __tablename__ = 'accountants'
    __table_args__ = (
        enum_check('availability_status', AvailabilityStatus, 'ck_accountants_availability'),
    )

    EDITABLE_FIELDS = (
        'qualification', 'experience_years', 'specializations', 'bio',
        'hourly_rate', 'availability_status',
    )

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    user_id = db.Column(db.Uuid, db.ForeignKey('users.id', ondelete='CASCADE'), unique=True, index=True)
    qualification = db.Column(db.String(100), nullable=True)
    experience_years = db.Column(db.Integer, nullable=True)
    specializations = db.Column(db.JSON, default=list)
    bio = db.Column(db.Text, nullable=True)
    rating = db.Column(db.Numeric(3, 2), default=0)
    total_reviews = db.Column(db.Integer, default=0)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    hourly_rate = db.Column(db.Numeric(10, 2), nullable=True)
    availability_status = db.Column(db.String(20), default=AvailabilityStatus.AVAILABLE.value)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @classmethod
    def id_for_user(cls, user_id):
        accountant = cls.query.filter_by(user_id=user_id).first()
        return accountant.id if accountant else None

    def to_dict(self) -> dict:
        return {
            'id': uuid_str(self.id),
            'qualification': self.qualification,
            'experienceYears': self.experience_years,
            'specializations': self.specializations or [],
            'bio': self.bio,
            'rating': money(self.rating),
            'totalReviews': self.total_reviews,
            'isActive': self.is_active,
            'hourlyRate': money(self.hourly_rate),
            'availabilityStatus': self.availability_status,
        }

    def __repr__(self) -> str:
        return f'<Accountant user_id={self.user_id}>'
