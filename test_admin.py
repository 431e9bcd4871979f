"""
Tests for the admin dashboard, reporting and management endpoints.
"""

from datetime import datetime, timedelta
import uuid

import pytest

from conftest import auth_header
from taxpro import db
from taxpro.models.review import Review
from taxpro.models.tax_return import TaxReturn
from taxpro.utils import reports

ADMIN_ENDPOINTS = [
    '/api/admin/dashboard',
    '/api/admin/users',
    '/api/admin/tax-returns',
    '/api/admin/accountants',
    '/api/admin/analytics/revenue',
    '/api/admin/analytics/performance',
    '/api/admin/system/settings',
    '/api/admin/audit-logs',
]


@pytest.mark.parametrize('path', ADMIN_ENDPOINTS)
def test_admin_endpoints_reject_other_roles(client, customer, accountant, path):
    assert client.get(path).status_code == 401
    assert client.get(path, headers=auth_header(customer)).status_code == 403
    assert client.get(path, headers=auth_header(accountant)).status_code == 403


def test_dashboard(client, admin, customer, accountant, assigned_return):
    client.put(f"/api/tax-returns/{assigned_return['id']}/payment-status", json={'paymentStatus': 'paid'},
               headers=auth_header(admin))
    client.post('/api/contact', json={
        'firstName': 'Priya', 'lastName': 'Shah', 'email': 'priya@taxpro-test.co.uk',
        'subject': 'Pricing', 'message': 'How much for a landlord return?',
    })

    response = client.get('/api/admin/dashboard', headers=auth_header(admin))

    assert response.status_code == 200
    data = response.get_json()['data']
    overview = data['overview']
    assert overview['totalUsers'] == 3
    assert overview['totalCustomers'] == 1
    assert overview['totalAccountants'] == 1
    assert overview['totalTaxReturns'] == 1
    assert overview['inProgressReturns'] == 1
    assert overview['paidReturns'] == 1
    assert overview['totalRevenue'] == 169.0
    assert overview['newInquiries'] == 1

    kinds = {event['type'] for event in data['recentActivity']}
    assert kinds == {'user_registration', 'tax_return_created', 'contact_inquiry'}
    month = datetime.utcnow().strftime('%Y-%m')
    assert data['monthlyRevenue'] == [{'month': month, 'returnsCount': 1, 'revenue': 169.0}]


def test_admin_tax_returns_include_party_names(client, admin, assigned_return):
    response = client.get('/api/admin/tax-returns?status=in_progress', headers=auth_header(admin))

    data = response.get_json()['data']
    assert data['pagination']['total'] == 1
    row = data['taxReturns'][0]
    assert row['customerName'] == 'Alice Brown'
    assert row['accountantName'] == 'Sarah Mitchell'

    none_paid = client.get('/api/admin/tax-returns?paymentStatus=paid', headers=auth_header(admin))
    assert none_paid.get_json()['data']['taxReturns'] == []


def test_accountant_summaries_and_status(client, admin, accountant, assigned_return):
    summaries = client.get('/api/admin/accountants', headers=auth_header(admin)).get_json()['data']

    assert len(summaries) == 1
    assert summaries[0]['firstName'] == 'Sarah'
    assert summaries[0]['totalReturns'] == 1
    assert summaries[0]['completedReturns'] == 0
    assert summaries[0]['isActive'] is True

    response = client.put(f'/api/admin/accountants/{accountant.accountant_id}/status', json={'isActive': False},
                          headers=auth_header(admin))
    assert response.status_code == 200
    assert response.get_json()['message'] == 'Accountant deactivated successfully'
    assert response.get_json()['data']['isActive'] is False

    missing = client.put(f'/api/admin/accountants/{uuid.uuid4()}/status', json={'isActive': True},
                         headers=auth_header(admin))
    assert missing.status_code == 404

    invalid = client.put(f'/api/admin/accountants/{accountant.accountant_id}/status', json={'isActive': 'maybe'},
                         headers=auth_header(admin))
    assert invalid.status_code == 400


def test_revenue_analytics(client, admin, customer, create_return):
    paid = create_return(customer, tax_year='2022-23')
    create_return(customer, tax_year='2023-24')
    client.put(f"/api/tax-returns/{paid['id']}/payment-status", json={'paymentStatus': 'paid'},
               headers=auth_header(admin))

    weekly = client.get('/api/admin/analytics/revenue?period=7days', headers=auth_header(admin)).get_json()['data']
    assert weekly['period'] == '7days'
    assert weekly['totals'] == {'totalReturns': 2, 'totalRevenue': 338.0, 'totalPaid': 1, 'totalPaidRevenue': 169.0}
    assert weekly['chart'][0]['period'] == datetime.utcnow().strftime('%Y-%m-%d')

    fallback = client.get('/api/admin/analytics/revenue?period=decade', headers=auth_header(admin)).get_json()['data']
    assert fallback['period'] == '12months'
    assert fallback['chart'][0]['period'] == datetime.utcnow().strftime('%Y-%m')


def test_performance_analytics(client, app, admin, customer, accountant, assigned_return):
    client.post(f"/api/tax-returns/{assigned_return['id']}/file", json={'hmrcReference': 'HMRC-1'},
                headers=auth_header(accountant))
    with app.app_context():
        tax_return = db.session.get(TaxReturn, uuid.UUID(assigned_return['id']))
        tax_return.created_at = datetime.utcnow() - timedelta(days=10)
        db.session.add(Review(customer_id=customer.customer_id, accountant_id=accountant.accountant_id,
                              rating=5, is_approved=True))
        db.session.add(Review(customer_id=customer.customer_id, accountant_id=accountant.accountant_id,
                              rating=3, is_approved=True))
        db.session.add(Review(customer_id=customer.customer_id, accountant_id=accountant.accountant_id,
                              rating=1, is_approved=False))
        db.session.commit()

    data = client.get('/api/admin/analytics/performance', headers=auth_header(admin)).get_json()['data']

    performance = data['performance']
    assert performance['totalFilings'] == 1
    assert performance['onTimeFilings'] == 0
    assert 9.9 < performance['avgCompletionDays'] < 10.1
    assert data['satisfaction'] == {'avgRating': 4.0, 'totalReviews': 2, 'positiveReviews': 1}


def test_system_settings(client, admin):
    settings = client.get('/api/admin/system/settings', headers=auth_header(admin)).get_json()['data']
    keys = {setting['settingKey'] for setting in settings}
    assert {'site_name', 'default_tax_return_price', 'tax_year_deadline'} <= keys

    response = client.put('/api/admin/system/settings/site_name', json={'value': 'TaxPro UK'},
                          headers=auth_header(admin))
    assert response.status_code == 200
    assert response.get_json()['data']['settingValue'] == 'TaxPro UK'

    missing = client.put('/api/admin/system/settings/not_a_setting', json={'value': 'x'}, headers=auth_header(admin))
    assert missing.status_code == 404
    assert missing.get_json()['error'] == 'Setting not found'


def test_deadline_setting_drives_new_returns(client, admin, customer, create_return):
    client.put('/api/admin/system/settings/tax_year_deadline', json={'value': '2025-01-31'},
               headers=auth_header(admin))

    assert create_return(customer)['submissionDeadline'] == '2025-01-31'


def test_audit_logs_record_changes(client, admin, customer, assigned_return):
    client.put(f"/api/tax-returns/{assigned_return['id']}/payment-status", json={'paymentStatus': 'paid'},
               headers=auth_header(admin))

    response = client.get('/api/admin/audit-logs?action=TAX_RETURN_PAYMENT_STATUS', headers=auth_header(admin))

    data = response.get_json()['data']
    assert data['pagination']['total'] == 1
    entry = data['auditLogs'][0]
    assert entry['userId'] == str(admin.id)
    assert entry['oldValues'] == {'paymentStatus': 'pending'}
    assert entry['newValues'] == {'paymentStatus': 'paid'}

    by_table = client.get('/api/admin/audit-logs?tableName=tax_returns', headers=auth_header(admin)).get_json()['data']
    assert {entry['action'] for entry in by_table['auditLogs']} >= {
        'TAX_RETURN_CREATE', 'TAX_RETURN_ASSIGN', 'TAX_RETURN_PAYMENT_STATUS',
    }

    by_user = client.get(f'/api/admin/audit-logs?userId={customer.id}', headers=auth_header(admin)).get_json()['data']
    assert {entry['action'] for entry in by_user['auditLogs']} == {'TAX_RETURN_CREATE'}

    bad_user = client.get('/api/admin/audit-logs?userId=nope', headers=auth_header(admin))
    assert bad_user.status_code == 400


def test_revenue_period_table():
    assert set(reports.REVENUE_PERIODS) == {'7days', '30days', '12months'}
    assert reports.DEFAULT_REVENUE_PERIOD == '12months'
