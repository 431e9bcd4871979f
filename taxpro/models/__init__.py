"""
Model package initialization.
"""

from taxpro.models.user import User, Customer, Accountant, Role, ContactMethod, AvailabilityStatus
from taxpro.models.tax_return import (
    TaxReturn, IncomeSource, Expense, Document, Message, Payment,
    TaxReturnStatus, PaymentStatus, SituationType, IncomeSourceType, MessageType, PaymentRecordStatus
)
from taxpro.models.review import Review
from taxpro.models.contact_inquiry import ContactInquiry, InquiryStatus, InquiryType
from taxpro.models.system_setting import SystemSetting, DEFAULT_SETTINGS
from taxpro.models.audit_log import AuditLog

__all__ = [
    'User',
    'Customer',
    'Accountant',
    'Role',
    'ContactMethod',
    'AvailabilityStatus',
    'TaxReturn',
    'IncomeSource',
    'Expense',
    'Document',
    'Message',
    'Payment',
    'TaxReturnStatus',
    'PaymentStatus',
    'SituationType',
    'IncomeSourceType',
    'MessageType',
    'PaymentRecordStatus',
    'Review',
    'ContactInquiry',
    'InquiryStatus',
    'InquiryType',
    'SystemSetting',
    'DEFAULT_SETTINGS',
    'AuditLog'
]
