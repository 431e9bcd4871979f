"""
Persisted audit trail of security-relevant actions.
"""

from taxpro import db
from taxpro.models.base import iso, uuid_str
from datetime import datetime
import uuid


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    user_id = db.Column(db.Uuid, db.ForeignKey('users.id'), nullable=True, index=True)
    action = db.Column(db.String(100), nullable=False)
    table_name = db.Column(db.String(100), nullable=True)
    record_id = db.Column(db.Uuid, nullable=True)
    old_values = db.Column(db.JSON, nullable=True)
    new_values = db.Column(db.JSON, nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            'id': uuid_str(self.id),
            'userId': uuid_str(self.user_id),
            'action': self.action,
            'tableName': self.table_name,
            'recordId': uuid_str(self.record_id),
            'oldValues': self.old_values,
            'newValues': self.new_values,
            'ipAddress': self.ip_address,
            'userAgent': self.user_agent,
            'createdAt': iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f'<AuditLog {self.action}>'
