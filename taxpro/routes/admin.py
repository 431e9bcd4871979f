"""
Admin routes - dashboard, reporting, accountant management and site settings.
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user
import uuid

from taxpro import db
from taxpro.errors import NotFoundError, ValidationError
from taxpro.models.audit_log import AuditLog
from taxpro.models.system_setting import SystemSetting
from taxpro.models.tax_return import TaxReturn
from taxpro.models.user import Accountant, User, Role
from taxpro.routes.users import USER_SORT_COLUMNS, user_listing_query
from taxpro.schemas import validate_body, AccountantStatusRequest, SettingUpdateRequest
from taxpro.utils import reports
from taxpro.utils.audit_log import AuditLogger
from taxpro.utils.auth import roles_required
from taxpro.utils.query import paginated_listing

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')

admin_required = roles_required(Role.ADMIN.value)

AUDIT_SORT_COLUMNS = ('created_at', 'action', 'table_name')


@admin_bp.route('/dashboard')
@admin_required
def dashboard():
    """Overview counters, the last week's activity and paid revenue by month."""
    return jsonify({
        'success': True,
        'data': {
            'overview': reports.dashboard_overview(),
            'recentActivity': reports.recent_activity(),
            'monthlyRevenue': reports.monthly_revenue(),
        }
    })


@admin_bp.route('/users')
@admin_required
def users():
    users, pagination = paginated_listing(user_listing_query(), User, USER_SORT_COLUMNS)
    return jsonify({
        'success': True,
        'data': {
            'users': [user.to_dict() for user in users],
            'pagination': pagination
        }
    })


@admin_bp.route('/tax-returns')
@admin_required
def tax_returns():
    """All returns with customer and accountant names."""
    def arg(name):
        value = request.args.get(name, 'all')
        return None if value == 'all' else value

    query = TaxReturn.filtered(
        status=arg('status'),
        payment_status=arg('paymentStatus'),
        tax_year=arg('taxYear'),
    )
    returns, pagination = paginated_listing(query, TaxReturn, TaxReturn.SORTABLE_COLUMNS)
    return jsonify({
        'success': True,
        'data': {
            'taxReturns': [tax_return.get_full_details() for tax_return in returns],
            'pagination': pagination
        }
    })


@admin_bp.route('/accountants')
@admin_required
def accountants():
    return jsonify({'success': True, 'data': reports.accountant_summaries()})


@admin_bp.route('/accountants/<uuid:accountant_id>/status', methods=['PUT'])
@admin_required
def update_accountant_status(accountant_id):
    data = validate_body(AccountantStatusRequest)
    accountant = db.session.get(Accountant, accountant_id)
    if accountant is None:
        raise NotFoundError('Accountant not found')

    old_value = accountant.is_active
    accountant.is_active = data.is_active
    db.session.commit()
    AuditLogger.record(
        'ACCOUNTANT_STATUS', user=current_user, table_name='accountants', record_id=accountant.id,
        old_values={'isActive': old_value}, new_values={'isActive': data.is_active}
    )

    return jsonify({
        'success': True,
        'message': f"Accountant {'activated' if data.is_active else 'deactivated'} successfully",
        'data': accountant.to_dict()
    })


@admin_bp.route('/analytics/revenue')
@admin_required
def revenue_analytics():
    period = request.args.get('period', reports.DEFAULT_REVENUE_PERIOD)
    return jsonify({'success': True, 'data': reports.revenue_analytics(period)})


@admin_bp.route('/analytics/performance')
@admin_required
def performance_analytics():
    return jsonify({'success': True, 'data': reports.performance_analytics()})


@admin_bp.route('/system/settings')
@admin_required
def system_settings():
    settings = SystemSetting.query.order_by(SystemSetting.setting_key).all()
    return jsonify({'success': True, 'data': [setting.to_dict() for setting in settings]})


@admin_bp.route('/system/settings/<key>', methods=['PUT'])
@admin_required
def update_system_setting(key):
    data = validate_body(SettingUpdateRequest)
    setting = SystemSetting.query.filter_by(setting_key=key).first()
    if setting is None:
        raise NotFoundError('Setting not found')

    old_value = setting.setting_value
    setting.setting_value = data.value
    db.session.commit()
    AuditLogger.record(
        'SETTING_UPDATE', user=current_user, table_name='system_settings', record_id=setting.id,
        old_values={key: old_value}, new_values={key: data.value}
    )

    return jsonify({
        'success': True,
        'message': 'Setting updated successfully',
        'data': setting.to_dict()
    })


@admin_bp.route('/audit-logs')
@admin_required
def audit_logs():
    """Audit trail, newest first, filterable by action, table and user."""
    query = AuditLog.query
    if request.args.get('action'):
        query = query.filter(AuditLog.action == request.args['action'])
    if request.args.get('tableName'):
        query = query.filter(AuditLog.table_name == request.args['tableName'])
    if request.args.get('userId'):
        try:
            user_id = uuid.UUID(request.args['userId'])
        except ValueError:
            raise ValidationError.for_field('userId', 'Invalid user ID')
        query = query.filter(AuditLog.user_id == user_id)

    entries, pagination = paginated_listing(query, AuditLog, AUDIT_SORT_COLUMNS)
    return jsonify({
        'success': True,
        'data': {
            'auditLogs': [entry.to_dict() for entry in entries],
            'pagination': pagination
        }
    })
