"""
Audit logging for security events and record changes.

Every event goes to the `taxpro.audit` logger. Events tied to a record are
also stored in the audit_logs table; a failure to store one is logged and
never breaks the request that triggered it.
"""

from flask import has_request_context, request
from sqlalchemy.exc import SQLAlchemyError
from typing import Optional
import logging

from taxpro import db

audit_logger = logging.getLogger('taxpro.audit')


def _client_ip() -> Optional[str]:
    if not has_request_context():
        return None
    return request.remote_addr


class AuditLogger:
    """Facade over the audit logger and the audit_logs table."""

    @staticmethod
    def record(action: str, user=None, table_name: str = None, record_id=None,
               old_values: dict = None, new_values: dict = None) -> None:
        """Persist an audit row for a change to `table_name`/`record_id`."""
        from taxpro.models.audit_log import AuditLog

        user_id = getattr(user, 'id', None)
        audit_logger.info(f"{action} user={user_id} table={table_name} record={record_id}")

        entry = AuditLog(
            user_id=user_id,
            action=action,
            table_name=table_name,
            record_id=record_id,
            old_values=old_values,
            new_values=new_values,
            ip_address=_client_ip(),
            user_agent=request.headers.get('User-Agent') if has_request_context() else None,
        )
        try:
            db.session.add(entry)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            audit_logger.warning(f"Could not persist audit entry {action}: {e}")

    @staticmethod
    def log_security_event(event: str, details: dict = None) -> None:
        audit_logger.warning(f"SECURITY {event} ip={_client_ip()} details={details or {}}")

    @staticmethod
    def log_auth_success(user) -> None:
        AuditLogger.record('LOGIN', user=user, table_name='users', record_id=user.id)

    @staticmethod
    def log_auth_failure(email: str, reason: str) -> None:
        audit_logger.warning(f"LOGIN_FAILED email={email!r} reason={reason} ip={_client_ip()}")

    @staticmethod
    def log_account_creation(user) -> None:
        AuditLogger.record(
            'REGISTER', user=user, table_name='users', record_id=user.id,
            new_values={'email': user.email, 'role': user.role}
        )

    @staticmethod
    def log_password_change(user) -> None:
        AuditLogger.record('PASSWORD_CHANGE', user=user, table_name='users', record_id=user.id)

    @staticmethod
    def log_logout(user) -> None:
        audit_logger.info(f"LOGOUT user={user.id}")

    @staticmethod
    def log_access_denied(user, reason: str) -> None:
        audit_logger.warning(f"ACCESS_DENIED user={user.id} role={user.role} reason={reason} ip={_client_ip()}")
