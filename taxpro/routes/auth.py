"""
Authentication routes - register, login, email verification, password reset.
Security enhanced with rate limiting, password policy, and audit logging.
"""

from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required
from taxpro.errors import AuthenticationError, ValidationError
from taxpro.models.user import User
from taxpro.schemas import (
    validate_body, RegisterRequest, LoginRequest, TokenRequest,
    ForgotPasswordRequest, ResetPasswordRequest, ChangePasswordRequest,
)
from taxpro.utils.audit_log import AuditLogger
from taxpro.utils.mailer import send_verification_email, send_password_reset_email
from taxpro.utils.password_security import validate_password

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def _check_password_policy(password: str, email: str = None, field: str = 'password') -> None:
    is_valid, errors = validate_password(password, email)
    if not is_valid:
        raise ValidationError(details=[{'field': field, 'message': message} for message in errors])


@auth_bp.route('/register', methods=['POST'])
def register():
    """Create a customer or accountant account and return a token."""
    data = validate_body(RegisterRequest)
    _check_password_policy(data.password, data.email)

    if User.find_by_email(data.email):
        AuditLogger.log_security_event('REGISTRATION_DUPLICATE_EMAIL', {'email': data.email})

    # create() re-checks the address and raises ConflictError on a duplicate
    user = User.create(
        email=data.email,
        password=data.password,
        first_name=data.first_name,
        last_name=data.last_name,
        phone=data.phone,
        role=data.role,
    )
    AuditLogger.log_account_creation(user)
    send_verification_email(user)

    payload = {'user': user.to_dict(), 'token': user.generate_token()}
    if current_app.config['EXPOSE_DEBUG_TOKENS']:
        payload['verificationToken'] = user.verification_token

    return jsonify({
        'success': True,
        'message': 'User registered successfully. Please check your email to verify your account.',
        'data': payload
    }), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    """Exchange email and password for a token."""
    data = validate_body(LoginRequest)

    user = User.find_by_email(data.email)
    if user is None or not user.check_password(data.password):
        AuditLogger.log_auth_failure(data.email, 'invalid_credentials')
        raise AuthenticationError('Invalid email or password')

    user.update_last_login()
    AuditLogger.log_auth_success(user)

    return jsonify({
        'success': True,
        'message': 'Login successful',
        'data': {'user': user.to_dict(), 'token': user.generate_token()}
    })


@auth_bp.route('/verify-email', methods=['POST'])
def verify_email():
    data = validate_body(TokenRequest)

    user = User.find_by_verification_token(data.token)
    if user is None:
        raise ValidationError('Invalid or expired verification token')

    user.verify_email()
    AuditLogger.record('EMAIL_VERIFIED', user=user, table_name='users', record_id=user.id)

    return jsonify({'success': True, 'message': 'Email verified successfully'})


@auth_bp.route('/forgot-password', methods=['POST'])
def forgot_password():
    """Issue a reset token. The response is the same whether or not the account exists."""
    data = validate_body(ForgotPasswordRequest)
    response = {
        'success': True,
        'message': 'If an account with that email exists, we have sent a password reset link.'
    }

    user = User.find_by_email(data.email)
    if user is None:
        AuditLogger.log_security_event('PASSWORD_RESET_UNKNOWN_EMAIL', {'email': data.email})
        return jsonify(response)

    reset_token = user.set_reset_password_token()
    AuditLogger.log_security_event('PASSWORD_RESET_REQUESTED', {'user_id': str(user.id)})
    send_password_reset_email(user, reset_token)

    if current_app.config['EXPOSE_DEBUG_TOKENS']:
        response['resetToken'] = reset_token
    return jsonify(response)


@auth_bp.route('/reset-password', methods=['POST'])
def reset_password():
    data = validate_body(ResetPasswordRequest)

    user = User.find_by_reset_token(data.token)
    if user is None:
        raise ValidationError('Invalid or expired reset token')

    _check_password_policy(data.password, user.email)
    user.update_password(data.password)
    AuditLogger.log_password_change(user)

    return jsonify({'success': True, 'message': 'Password reset successfully'})


@auth_bp.route('/change-password', methods=['POST'])
@login_required
def change_password():
    data = validate_body(ChangePasswordRequest)

    if not current_user.check_password(data.current_password):
        AuditLogger.log_auth_failure(current_user.email, 'wrong_current_password')
        raise ValidationError('Current password is incorrect')

    _check_password_policy(data.new_password, current_user.email, field='newPassword')
    current_user.update_password(data.new_password)
    AuditLogger.log_password_change(current_user)

    return jsonify({'success': True, 'message': 'Password changed successfully'})


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify({'success': True, 'data': current_user.get_profile()})


@auth_bp.route('/refresh', methods=['POST'])
@login_required
def refresh():
    return jsonify({'success': True, 'data': {'token': current_user.generate_token()}})


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    """Tokens are stateless; the client discards its copy."""
    AuditLogger.log_logout(current_user)
    return jsonify({'success': True, 'message': 'Logged out successfully'})
