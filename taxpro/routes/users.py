"""
User routes - own profile, and admin user management.
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import or_
from taxpro.errors import NotFoundError, ValidationError
from taxpro.models.user import User, Role
from taxpro.schemas import validate_body, ProfileUpdateRequest
from taxpro.utils.audit_log import AuditLogger
from taxpro.utils.auth import roles_required
from taxpro.utils.query import paginated_listing

users_bp = Blueprint('users', __name__, url_prefix='/api/users')

USER_SORT_COLUMNS = ('created_at', 'updated_at', 'last_login', 'email', 'first_name', 'last_name', 'role')


def user_listing_query():
    """Users filtered by the role, isVerified and search query parameters."""
    query = User.query
    role = request.args.get('role', 'all')
    if role != 'all':
        if role not in [r.value for r in Role]:
            raise ValidationError.for_field('role', 'Invalid role')
        query = query.filter(User.role == role)

    is_verified = request.args.get('isVerified', 'all')
    if is_verified != 'all':
        query = query.filter(User.is_verified.is_(is_verified == 'true'))

    search = request.args.get('search', '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(
            User.email.ilike(pattern),
            User.first_name.ilike(pattern),
            User.last_name.ilike(pattern),
        ))
    return query


def _apply_profile_update(user: User, fields: dict) -> None:
    identity = {key: fields.pop(key) for key in ('first_name', 'last_name', 'phone') if key in fields}

    profile = user.profile
    if profile is not None:
        for key, value in fields.items():
            if key in profile.EDITABLE_FIELDS:
                setattr(profile, key, value)

    # update() commits the identity fields and the profile changes together
    user.update(**identity)


@users_bp.route('/profile', methods=['GET'])
@login_required
def get_profile():
    return jsonify({'success': True, 'data': current_user.get_profile()})


@users_bp.route('/profile', methods=['PUT'])
@login_required
def update_profile():
    data = validate_body(ProfileUpdateRequest)
    fields = data.provided()
    changed = sorted(fields)
    old_values = current_user.to_dict()

    _apply_profile_update(current_user, fields)
    AuditLogger.record(
        'PROFILE_UPDATE', user=current_user, table_name='users', record_id=current_user.id,
        old_values={key: old_values[key] for key in ('firstName', 'lastName', 'phone')},
        new_values={'fields': changed}
    )

    return jsonify({
        'success': True,
        'message': 'Profile updated successfully',
        'data': current_user.get_profile()
    })


@users_bp.route('', methods=['GET'])
@roles_required(Role.ADMIN.value)
def list_users():
    """All users (admin only), filtered, sorted and paginated."""
    users, pagination = paginated_listing(user_listing_query(), User, USER_SORT_COLUMNS)
    return jsonify({
        'success': True,
        'data': {
            'users': [user.to_dict() for user in users],
            'pagination': pagination
        }
    })


@users_bp.route('/<uuid:user_id>', methods=['GET'])
@roles_required(Role.ADMIN.value)
def get_user(user_id):
    user = User.find_by_id(user_id)
    if user is None:
        raise NotFoundError('User not found')
    return jsonify({'success': True, 'data': user.get_profile()})


@users_bp.route('/<uuid:user_id>', methods=['DELETE'])
@roles_required(Role.ADMIN.value)
def delete_user(user_id):
    """Soft delete: the row stays so the user's history remains intact."""
    user = User.find_by_id(user_id)
    if user is None:
        raise NotFoundError('User not found')
    if user.id == current_user.id:
        raise ValidationError('You cannot delete your own account')

    old_email = user.email
    user.soft_delete()
    AuditLogger.record(
        'USER_DELETE', user=current_user, table_name='users', record_id=user.id,
        old_values={'email': old_email}, new_values={'email': user.email}
    )

    return jsonify({'success': True, 'message': 'User deleted successfully'})
