"""
Database initialization utilities.
"""

from flask import current_app
import logging

from taxpro import db
from taxpro.models.user import User, Role
from taxpro.models.system_setting import SystemSetting, DEFAULT_SETTINGS

logger = logging.getLogger(__name__)


def init_system_settings():
    """Insert any default setting that is missing; existing values are left alone."""
    existing = {key for (key,) in db.session.query(SystemSetting.setting_key)}
    added = 0
    for key, (value, description, is_public) in DEFAULT_SETTINGS.items():
        if key in existing:
            continue
        db.session.add(SystemSetting(
            setting_key=key,
            setting_value=value,
            description=description,
            is_public=is_public,
        ))
        added += 1
    if added:
        db.session.commit()
        logger.info(f"Seeded {added} system settings")


def init_admin_user():
    """Create the bootstrap admin when ADMIN_EMAIL and ADMIN_PASSWORD are both set."""
    admin_email = current_app.config.get('ADMIN_EMAIL')
    admin_password = current_app.config.get('ADMIN_PASSWORD')
    if not admin_email or not admin_password:
        return None

    admin = User.find_by_email(admin_email.lower())
    if admin is None:
        admin = User.create(
            email=admin_email.lower(),
            password=admin_password,
            first_name='Admin',
            last_name='User',
            role=Role.ADMIN.value,
        )
        admin.verify_email()
        logger.info(f"Admin user created: {admin.email}")
    return admin
