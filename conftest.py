"""
Shared pytest fixtures: an app on in-memory SQLite, a test client, and
factories for verified users and tax returns.

Apps are built per test and no application context is left pushed between
requests, so every request resolves its own user and session.
"""

from types import SimpleNamespace
import itertools

import pytest

from taxpro import create_app, db
from taxpro.models.user import User
from taxpro.utils.auth import create_access_token

PASSWORD = 'Str0ngPassw0rd'


def auth_header(user_or_token) -> dict:
    token = getattr(user_or_token, 'token', user_or_token)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def make_app(tmp_path):
    apps = []

    def _make(**overrides):
        config = {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite://',
            'SECRET_KEY': 'test-secret-key',
            'JWT_SECRET': 'test-jwt-secret',
            'RATELIMIT_ENABLED': False,
            'EXPOSE_DEBUG_TOKENS': True,
            'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
            'MAIL_SERVER': None,
            'MAIL_SUPPRESS_SEND': True,
            'ADMIN_EMAIL': None,
            'ADMIN_PASSWORD': None,
        }
        config.update(overrides)
        app = create_app(config)
        apps.append(app)
        return app

    yield _make

    for app in apps:
        with app.app_context():
            db.session.remove()
            db.drop_all()


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def upload_dir(app):
    return app.config['UPLOAD_FOLDER']


@pytest.fixture
def make_user(app):
    """Create a user directly in the database; verified unless told otherwise."""
    counter = itertools.count(1)

    def _make(role='customer', email=None, verified=True, first_name='Test', last_name='User'):
        email = email or f'{role}{next(counter)}@taxpro-test.co.uk'
        with app.app_context():
            user = User.create(
                email=email,
                password=PASSWORD,
                first_name=first_name,
                last_name=last_name,
                role=role,
            )
            if verified:
                user.verify_email()
            return SimpleNamespace(
                id=user.id,
                email=user.email,
                role=user.role,
                token=create_access_token(user),
                customer_id=user.customer.id if user.customer else None,
                accountant_id=user.accountant.id if user.accountant else None,
            )

    return _make


@pytest.fixture
def customer(make_user):
    return make_user('customer', first_name='Alice', last_name='Brown')


@pytest.fixture
def other_customer(make_user):
    return make_user('customer', first_name='Bob', last_name='Green')


@pytest.fixture
def accountant(make_user):
    return make_user('accountant', first_name='Sarah', last_name='Mitchell')


@pytest.fixture
def admin(make_user):
    return make_user('admin', first_name='Admin', last_name='User')


@pytest.fixture
def create_return(client):
    """Open a tax return through the API and return its JSON."""
    def _create(owner, tax_year='2023-24', situation_type='self-employed', **extra):
        response = client.post(
            '/api/tax-returns',
            json={'taxYear': tax_year, 'situationType': situation_type, **extra},
            headers=auth_header(owner),
        )
        assert response.status_code == 201, response.get_json()
        return response.get_json()['data']

    return _create


@pytest.fixture
def assigned_return(client, create_return, customer, accountant, admin):
    """A return owned by `customer` and assigned to `accountant`."""
    tax_return = create_return(customer)
    response = client.put(
        f"/api/tax-returns/{tax_return['id']}/assign",
        json={'accountantId': str(accountant.accountant_id)},
        headers=auth_header(admin),
    )
    assert response.status_code == 200, response.get_json()
    return response.get_json()['data']
