"""
Key/value site settings editable by admins.
"""

from taxpro import db
from taxpro.models.base import iso
from datetime import datetime
import uuid


# key: (value, description, is_public)
DEFAULT_SETTINGS = {
    'site_name': ('TaxPro', 'Website name', True),
    'default_tax_return_price': ('169.00', 'Default price for tax returns in GBP', False),
    'max_file_upload_size': ('10485760', 'Maximum file upload size in bytes (10MB)', False),
    'allowed_file_types': ('pdf,jpg,jpeg,png,doc,docx,xls,xlsx', 'Allowed file types for uploads', False),
    'tax_year_deadline': ('2024-01-31', 'Self Assessment deadline', True),
    'support_email': ('support@taxpro.com', 'Support email address', True),
    'support_phone': ('+44 20 1234 5678', 'Support phone number', True),
}


class SystemSetting(db.Model):
    __tablename__ = 'system_settings'

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    setting_key = db.Column(db.String(100), unique=True, nullable=False)
    setting_value = db.Column(db.Text, nullable=True)
    description = db.Column(db.Text, nullable=True)
    is_public = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @classmethod
    def get_value(cls, key: str, default: str = None) -> str:
        setting = cls.query.filter_by(setting_key=key).first()
        if setting is None or setting.setting_value is None:
            return default
        return setting.setting_value

    def to_dict(self) -> dict:
        return {
            'settingKey': self.setting_key,
            'settingValue': self.setting_value,
            'description': self.description,
            'isPublic': self.is_public,
            'updatedAt': iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f'<SystemSetting {self.setting_key}={self.setting_value!r}>'
