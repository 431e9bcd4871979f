"""
Tests for registration, login, email verification, password reset and tokens.
"""

from datetime import datetime, timedelta
from types import SimpleNamespace
import uuid

from conftest import PASSWORD, auth_header
from taxpro import db
from taxpro.models.user import User
from taxpro.utils.auth import create_access_token, parse_expiry


def register(client, email='alice@taxpro-test.co.uk', password=PASSWORD, **extra):
    body = {'email': email, 'password': password, 'firstName': 'Alice', 'lastName': 'Brown', **extra}
    return client.post('/api/auth/register', json=body)


def test_register_returns_user_token_and_verification_token(client):
    response = register(client)

    assert response.status_code == 201
    body = response.get_json()
    assert body['success'] is True
    data = body['data']
    assert data['user']['email'] == 'alice@taxpro-test.co.uk'
    assert data['user']['role'] == 'customer'
    assert data['user']['isVerified'] is False
    assert 'passwordHash' not in data['user']
    assert data['token']
    assert data['verificationToken']


def test_register_creates_role_profile(client, app):
    register(client, role='accountant')

    with app.app_context():
        user = User.find_by_email('alice@taxpro-test.co.uk')
        assert user.accountant is not None
        assert user.customer is None


def test_register_duplicate_email_is_rejected_case_insensitively(client):
    assert register(client).status_code == 201

    response = register(client, email='ALICE@taxpro-test.co.uk')

    assert response.status_code == 400
    assert response.get_json()['error'] == 'User with this email already exists'


def test_register_validation_errors_name_the_field(client):
    response = client.post('/api/auth/register', json={
        'email': 'not-an-email', 'password': PASSWORD, 'firstName': 'A', 'lastName': 'Brown', 'role': 'admin',
    })

    assert response.status_code == 400
    body = response.get_json()
    assert body['error'] == 'Validation failed'
    fields = {detail['field']: detail['message'] for detail in body['details']}
    assert fields['email'] == 'Please provide a valid email'
    assert fields['firstName'] == 'First name must be between 2 and 50 characters'
    assert fields['role'] == 'Role must be either customer or accountant'


def test_register_rejects_weak_password(client):
    response = register(client, password='password123')

    assert response.status_code == 400
    details = response.get_json()['details']
    assert all(detail['field'] == 'password' for detail in details)
    assert details


def test_register_rejects_invalid_uk_phone(client):
    response = register(client, phone='12345')

    assert response.status_code == 400
    assert response.get_json()['details'][0]['field'] == 'phone'


def test_register_rejects_non_object_body(client):
    response = client.post('/api/auth/register', json=['alice@taxpro-test.co.uk'])

    assert response.status_code == 400
    assert response.get_json()['details'][0]['message'] == 'Request body must be a JSON object'


def test_unverified_user_is_refused_until_email_verified(client):
    data = register(client).get_json()['data']

    response = client.get('/api/auth/me', headers=auth_header(data['token']))
    assert response.status_code == 401
    assert response.get_json()['error'] == 'Access denied. Please verify your email address.'

    response = client.post('/api/auth/verify-email', json={'token': data['verificationToken']})
    assert response.status_code == 200

    response = client.get('/api/auth/me', headers=auth_header(data['token']))
    assert response.status_code == 200
    me = response.get_json()['data']
    assert me['isVerified'] is True
    assert me['profile']['country'] == 'United Kingdom'


def test_verification_token_is_single_use(client):
    token = register(client).get_json()['data']['verificationToken']
    assert client.post('/api/auth/verify-email', json={'token': token}).status_code == 200

    response = client.post('/api/auth/verify-email', json={'token': token})

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Invalid or expired verification token'


def test_login_success_records_last_login(client, customer):
    response = client.post('/api/auth/login', json={'email': customer.email, 'password': PASSWORD})

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['user']['lastLogin'] is not None
    me = client.get('/api/auth/me', headers=auth_header(data['token']))
    assert me.status_code == 200


def test_login_failures_share_one_message(client, customer):
    wrong_password = client.post('/api/auth/login', json={'email': customer.email, 'password': 'Wr0ngPassword'})
    unknown_email = client.post('/api/auth/login', json={'email': 'nobody@taxpro-test.co.uk', 'password': PASSWORD})

    for response in (wrong_password, unknown_email):
        assert response.status_code == 401
        assert response.get_json() == {'success': False, 'error': 'Invalid email or password'}


def test_missing_token(client):
    response = client.get('/api/auth/me')

    assert response.status_code == 401
    assert response.get_json()['error'] == 'Access denied. No token provided.'


def test_tampered_token_is_invalid(client, customer):
    header, payload, signature = customer.token.split('.')
    tampered = '.'.join([header, payload, signature[::-1]])

    response = client.get('/api/auth/me', headers=auth_header(tampered))

    assert response.status_code == 401
    assert response.get_json()['error'] == 'Access denied. Invalid token.'


def test_token_signed_with_another_secret_is_invalid(client, app, make_app, customer):
    other = make_app(JWT_SECRET='some-other-secret')
    with other.test_request_context():
        token = create_access_token(SimpleNamespace(id=customer.id, email=customer.email, role='customer'))

    response = client.get('/api/auth/me', headers=auth_header(token))

    assert response.status_code == 401
    assert response.get_json()['error'] == 'Access denied. Invalid token.'


def test_expired_token(client, app, customer):
    with app.app_context():
        user = User.find_by_id(customer.id)
        token = create_access_token(user, expires_in=timedelta(seconds=-5))

    response = client.get('/api/auth/me', headers=auth_header(token))

    assert response.status_code == 401
    assert response.get_json()['error'] == 'Access denied. Token expired.'


def test_token_for_unknown_user(client, app):
    with app.app_context():
        token = create_access_token(SimpleNamespace(id=uuid.uuid4(), email='ghost@taxpro-test.co.uk', role='customer'))

    response = client.get('/api/auth/me', headers=auth_header(token))

    assert response.status_code == 401
    assert response.get_json()['error'] == 'Access denied. User not found.'


def test_parse_expiry():
    assert parse_expiry('7d') == timedelta(days=7)
    assert parse_expiry('12h') == timedelta(hours=12)
    assert parse_expiry('30m') == timedelta(minutes=30)
    assert parse_expiry('90') == timedelta(seconds=90)


def test_forgot_password_does_not_reveal_unknown_accounts(client):
    response = client.post('/api/auth/forgot-password', json={'email': 'nobody@taxpro-test.co.uk'})

    assert response.status_code == 200
    body = response.get_json()
    assert body['message'] == 'If an account with that email exists, we have sent a password reset link.'
    assert 'resetToken' not in body


def test_password_reset_flow(client, customer):
    reset_token = client.post('/api/auth/forgot-password', json={'email': customer.email}).get_json()['resetToken']

    response = client.post('/api/auth/reset-password', json={'token': reset_token, 'password': 'N3wSecretValue'})
    assert response.status_code == 200

    old = client.post('/api/auth/login', json={'email': customer.email, 'password': PASSWORD})
    new = client.post('/api/auth/login', json={'email': customer.email, 'password': 'N3wSecretValue'})
    assert old.status_code == 401
    assert new.status_code == 200

    reused = client.post('/api/auth/reset-password', json={'token': reset_token, 'password': 'An0therSecret'})
    assert reused.status_code == 400
    assert reused.get_json()['error'] == 'Invalid or expired reset token'


def test_expired_reset_token_is_rejected(client, app, customer):
    reset_token = client.post('/api/auth/forgot-password', json={'email': customer.email}).get_json()['resetToken']
    with app.app_context():
        user = User.find_by_id(customer.id)
        user.reset_password_expires = datetime.utcnow() - timedelta(minutes=1)
        db.session.commit()

    response = client.post('/api/auth/reset-password', json={'token': reset_token, 'password': 'N3wSecretValue'})

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Invalid or expired reset token'


def test_change_password(client, customer):
    wrong = client.post(
        '/api/auth/change-password',
        json={'currentPassword': 'Wr0ngPassword', 'newPassword': 'N3wSecretValue'},
        headers=auth_header(customer),
    )
    assert wrong.status_code == 400
    assert wrong.get_json()['error'] == 'Current password is incorrect'

    weak = client.post(
        '/api/auth/change-password',
        json={'currentPassword': PASSWORD, 'newPassword': 'alllowercase'},
        headers=auth_header(customer),
    )
    assert weak.status_code == 400
    assert weak.get_json()['details'][0]['field'] == 'newPassword'

    ok = client.post(
        '/api/auth/change-password',
        json={'currentPassword': PASSWORD, 'newPassword': 'N3wSecretValue'},
        headers=auth_header(customer),
    )
    assert ok.status_code == 200
    login = client.post('/api/auth/login', json={'email': customer.email, 'password': 'N3wSecretValue'})
    assert login.status_code == 200


def test_refresh_and_logout(client, customer):
    refreshed = client.post('/api/auth/refresh', headers=auth_header(customer))
    assert refreshed.status_code == 200
    token = refreshed.get_json()['data']['token']

    assert client.get('/api/auth/me', headers=auth_header(token)).status_code == 200
    logout = client.post('/api/auth/logout', headers=auth_header(token))
    assert logout.status_code == 200
    assert logout.get_json()['message'] == 'Logged out successfully'
