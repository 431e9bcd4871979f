"""
Request body schemas.

Each model validates one JSON body. Clients send camelCase keys; the models
expose snake_case attributes. `validate_body` turns pydantic failures into a
`ValidationError` whose details list one `{field, message}` per problem, using
the model's FIELD_MESSAGES where one is defined for the field.
"""

from flask import request
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from email_validator import validate_email, EmailNotValidError
from datetime import date
from decimal import Decimal
from typing import ClassVar, Dict, List, Literal, Optional, Type, TypeVar
import re
import uuid

from taxpro.errors import ValidationError

UK_MOBILE_PATTERN = re.compile(r'^(\+?44|0)7\d{9}$')
TAX_YEAR_PATTERN = r'^\d{4}-\d{2}$'

SituationTypeName = Literal['self-employed', 'freelancer', 'landlord', 'investor', 'high-earner', 'first-time', 'other']
TaxReturnStatusName = Literal['pending', 'in_progress', 'review', 'completed', 'filed', 'cancelled']
PaymentStatusName = Literal['pending', 'paid', 'refunded', 'failed']
IncomeSourceTypeName = Literal['employment', 'self_employment', 'rental', 'dividends', 'interest', 'other']
MessageTypeName = Literal['general', 'query', 'update', 'system']
InquiryStatusName = Literal['new', 'in_progress', 'resolved', 'closed']
InquiryTypeName = Literal['general', 'tax-return', 'account', 'billing', 'technical', 'feedback']
ContactMethodName = Literal['email', 'phone', 'sms']
AvailabilityStatusName = Literal['available', 'busy', 'offline']

SchemaT = TypeVar('SchemaT', bound='RequestSchema')


def normalize_email(value: str) -> str:
    """Lower-case and syntax-check an address without a DNS lookup."""
    try:
        info = validate_email(value.strip().lower(), check_deliverability=False)
    except EmailNotValidError:
        raise ValueError('Please provide a valid email')
    return info.normalized


def check_uk_phone(value: Optional[str]) -> Optional[str]:
    if value is None or value == '':
        return None
    compact = re.sub(r'[\s\-()]', '', value)
    if not UK_MOBILE_PATTERN.match(compact):
        raise ValueError('Please provide a valid UK phone number')
    return compact


class RequestSchema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra='ignore',
    )

    # alias -> message reported for any failure on that field
    FIELD_MESSAGES: ClassVar[Dict[str, str]] = {}

    def provided(self) -> dict:
        """Fields the client actually sent, keyed by attribute name."""
        return self.model_dump(exclude_unset=True)


def _error_details(schema: Type[RequestSchema], error: PydanticValidationError) -> List[dict]:
    details = []
    for err in error.errors():
        field = '.'.join(str(part) for part in err['loc']) or 'body'
        message = schema.FIELD_MESSAGES.get(field)
        if message is None:
            message = err['msg']
            if message.startswith('Value error, '):
                message = message[len('Value error, '):]
        details.append({'field': field, 'message': message})
    return details


def validate_body(schema: Type[SchemaT]) -> SchemaT:
    """
    Validate the request's JSON body against `schema`.

    Raises:
        ValidationError: listing every failing field
    """
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError(details=[{'field': 'body', 'message': 'Request body must be a JSON object'}])
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(details=_error_details(schema, e))


# Auth

class RegisterRequest(RequestSchema):
    FIELD_MESSAGES = {
        'email': 'Please provide a valid email',
        'password': 'Password must be at least 8 characters long',
        'firstName': 'First name must be between 2 and 50 characters',
        'lastName': 'Last name must be between 2 and 50 characters',
        'role': 'Role must be either customer or accountant',
    }

    email: str
    password: str = Field(min_length=8)
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    phone: Optional[str] = None
    role: Literal['customer', 'accountant'] = 'customer'

    @field_validator('email')
    @classmethod
    def check_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator('phone')
    @classmethod
    def check_phone(cls, value: Optional[str]) -> Optional[str]:
        return check_uk_phone(value)


class LoginRequest(RequestSchema):
    FIELD_MESSAGES = {
        'email': 'Please provide a valid email',
        'password': 'Password is required',
    }

    email: str
    password: str = Field(min_length=1)

    @field_validator('email')
    @classmethod
    def check_email(cls, value: str) -> str:
        return normalize_email(value)


class TokenRequest(RequestSchema):
    FIELD_MESSAGES = {'token': 'Token is required'}

    token: str = Field(min_length=1)


class ForgotPasswordRequest(RequestSchema):
    FIELD_MESSAGES = {'email': 'Please provide a valid email'}

    email: str

    @field_validator('email')
    @classmethod
    def check_email(cls, value: str) -> str:
        return normalize_email(value)


class ResetPasswordRequest(RequestSchema):
    FIELD_MESSAGES = {
        'token': 'Reset token is required',
        'password': 'Password must be at least 8 characters long',
    }

    token: str = Field(min_length=1)
    password: str = Field(min_length=8)


class ChangePasswordRequest(RequestSchema):
    FIELD_MESSAGES = {
        'currentPassword': 'Current password is required',
        'newPassword': 'New password must be at least 8 characters long',
    }

    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8)


# Users

class ProfileUpdateRequest(RequestSchema):
    """Identity fields plus the fields of whichever role profile the user has."""

    FIELD_MESSAGES = {
        'firstName': 'First name must be between 2 and 50 characters',
        'lastName': 'Last name must be between 2 and 50 characters',
    }

    first_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    phone: Optional[str] = None

    # Customer profile
    date_of_birth: Optional[date] = None
    national_insurance_number: Optional[str] = Field(default=None, max_length=20)
    address_line1: Optional[str] = Field(default=None, max_length=255)
    address_line2: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=100)
    county: Optional[str] = Field(default=None, max_length=100)
    postcode: Optional[str] = Field(default=None, max_length=20)
    country: Optional[str] = Field(default=None, max_length=100)
    employment_status: Optional[str] = Field(default=None, max_length=50)
    is_first_time_filer: Optional[bool] = None
    preferred_contact_method: Optional[ContactMethodName] = None

    # Accountant profile
    qualification: Optional[str] = Field(default=None, max_length=100)
    experience_years: Optional[int] = Field(default=None, ge=0)
    specializations: Optional[List[str]] = None
    bio: Optional[str] = None
    hourly_rate: Optional[Decimal] = Field(default=None, ge=0)
    availability_status: Optional[AvailabilityStatusName] = None

    @field_validator('phone')
    @classmethod
    def check_phone(cls, value: Optional[str]) -> Optional[str]:
        return check_uk_phone(value)


# Tax returns

class TaxReturnCreateRequest(RequestSchema):
    FIELD_MESSAGES = {
        'taxYear': 'Tax year must be in format YYYY-YY (e.g., 2023-24)',
        'situationType': 'Invalid situation type',
        'submissionDeadline': 'Invalid submission deadline format',
    }

    tax_year: str = Field(pattern=TAX_YEAR_PATTERN)
    situation_type: SituationTypeName
    submission_deadline: Optional[date] = None


class StatusUpdateRequest(RequestSchema):
    FIELD_MESSAGES = {'status': 'Invalid status'}

    status: TaxReturnStatusName


class AssignAccountantRequest(RequestSchema):
    FIELD_MESSAGES = {'accountantId': 'Invalid accountant ID'}

    accountant_id: uuid.UUID


class CalculationsRequest(RequestSchema):
    FIELD_MESSAGES = {
        'totalIncome': 'Total income must be a positive number',
        'totalTaxDue': 'Total tax due must be a positive number',
        'totalRefund': 'Total refund must be a positive number',
    }

    total_income: Decimal = Field(ge=0)
    total_tax_due: Optional[Decimal] = Field(default=None, ge=0)
    total_refund: Optional[Decimal] = Field(default=None, ge=0)


class FileReturnRequest(RequestSchema):
    FIELD_MESSAGES = {'hmrcReference': 'HMRC reference is required'}

    hmrc_reference: str = Field(min_length=1, max_length=100)


class NotesRequest(RequestSchema):
    FIELD_MESSAGES = {'notes': 'Notes must be text'}

    notes: str


class PaymentStatusRequest(RequestSchema):
    FIELD_MESSAGES = {'paymentStatus': 'Invalid payment status'}

    payment_status: PaymentStatusName


class IncomeSourceRequest(RequestSchema):
    FIELD_MESSAGES = {
        'sourceType': 'Invalid income source type',
        'grossIncome': 'Gross income must be a positive number',
        'taxDeducted': 'Tax deducted must be a positive number',
        'niContributions': 'NI contributions must be a positive number',
        'employerName': 'Employer name too long',
    }

    source_type: IncomeSourceTypeName
    gross_income: Decimal = Field(ge=0)
    tax_deducted: Optional[Decimal] = Field(default=None, ge=0)
    ni_contributions: Optional[Decimal] = Field(default=None, ge=0)
    employer_name: Optional[str] = Field(default=None, max_length=255)
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class ExpenseRequest(RequestSchema):
    FIELD_MESSAGES = {
        'category': 'Category is required',
        'description': 'Description is required',
        'amount': 'Amount must be a positive number',
        'expenseDate': 'Expense date must be a valid date',
    }

    category: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1)
    amount: Decimal = Field(ge=0)
    expense_date: date
    receipt_url: Optional[str] = Field(default=None, max_length=500)


class MessageRequest(RequestSchema):
    FIELD_MESSAGES = {
        'message': 'Message is required',
        'messageType': 'Invalid message type',
    }

    message: str = Field(min_length=1, max_length=5000)
    subject: Optional[str] = Field(default=None, max_length=255)
    message_type: MessageTypeName = 'general'


# Contact

class ContactInquiryRequest(RequestSchema):
    FIELD_MESSAGES = {
        'firstName': 'First name must be between 2 and 50 characters',
        'lastName': 'Last name must be between 2 and 50 characters',
        'email': 'Please provide a valid email',
        'subject': 'Subject must be between 5 and 255 characters',
        'message': 'Message must be between 10 and 2000 characters',
        'inquiryType': 'Invalid inquiry type',
    }

    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    email: str
    phone: Optional[str] = None
    subject: str = Field(min_length=5, max_length=255)
    message: str = Field(min_length=10, max_length=2000)
    inquiry_type: InquiryTypeName = 'general'

    @field_validator('email')
    @classmethod
    def check_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator('phone')
    @classmethod
    def check_phone(cls, value: Optional[str]) -> Optional[str]:
        return check_uk_phone(value)


class InquiryStatusRequest(RequestSchema):
    FIELD_MESSAGES = {'status': 'Invalid status'}

    status: InquiryStatusName


class InquiryAssignRequest(RequestSchema):
    FIELD_MESSAGES = {'assignedTo': 'Invalid user ID'}

    assigned_to: uuid.UUID


# Admin

class AccountantStatusRequest(RequestSchema):
    FIELD_MESSAGES = {'isActive': 'isActive must be a boolean'}

    is_active: bool


class SettingUpdateRequest(RequestSchema):
    FIELD_MESSAGES = {'value': 'Setting value is required'}

    value: str
