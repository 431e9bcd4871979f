"""
Tests for the tax return lifecycle, its child records and access control.
"""

import io
import os
import uuid

from sqlalchemy.exc import SQLAlchemyError

from conftest import auth_header
from taxpro import db
from taxpro.models.review import Review
from taxpro.models.tax_return import (
    Document, Expense, IncomeSource, Message, Payment, TaxReturn,
)


def test_customer_creates_tax_return_with_defaults(client, customer):
    response = client.post('/api/tax-returns', json={'taxYear': '2023-24', 'situationType': 'landlord'},
                           headers=auth_header(customer))

    assert response.status_code == 201
    data = response.get_json()['data']
    assert data['status'] == 'pending'
    assert data['paymentStatus'] == 'pending'
    assert data['price'] == 169.0
    assert data['submissionDeadline'] == '2024-01-31'
    assert data['customerId'] == str(customer.customer_id)
    assert data['accountantId'] is None


def test_price_follows_system_setting(client, admin, customer):
    client.put('/api/admin/system/settings/default_tax_return_price', json={'value': '199.00'},
               headers=auth_header(admin))

    response = client.post('/api/tax-returns', json={'taxYear': '2023-24', 'situationType': 'investor'},
                           headers=auth_header(customer))

    assert response.get_json()['data']['price'] == 199.0


def test_duplicate_tax_year_is_rejected(client, customer, create_return):
    create_return(customer, tax_year='2022-23')

    response = client.post('/api/tax-returns', json={'taxYear': '2022-23', 'situationType': 'other'},
                           headers=auth_header(customer))

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Tax return for this year already exists'


def test_different_customers_may_share_a_tax_year(customer, other_customer, create_return):
    first = create_return(customer, tax_year='2022-23')
    second = create_return(other_customer, tax_year='2022-23')

    assert first['id'] != second['id']


def test_create_validation(client, customer):
    response = client.post('/api/tax-returns', json={'taxYear': '2023', 'situationType': 'pirate'},
                           headers=auth_header(customer))

    assert response.status_code == 400
    messages = {detail['field']: detail['message'] for detail in response.get_json()['details']}
    assert messages['taxYear'] == 'Tax year must be in format YYYY-YY (e.g., 2023-24)'
    assert messages['situationType'] == 'Invalid situation type'


def test_only_customers_create_returns(client, accountant):
    response = client.post('/api/tax-returns', json={'taxYear': '2023-24', 'situationType': 'other'},
                           headers=auth_header(accountant))

    assert response.status_code == 403


def test_listing_is_scoped_by_role(client, customer, other_customer, accountant, admin, create_return):
    mine = create_return(customer, tax_year='2022-23')
    create_return(customer, tax_year='2023-24')
    create_return(other_customer)
    client.put(f"/api/tax-returns/{mine['id']}/assign", json={'accountantId': str(accountant.accountant_id)},
               headers=auth_header(admin))

    def listed(user, query=''):
        response = client.get(f'/api/tax-returns{query}', headers=auth_header(user))
        assert response.status_code == 200
        return response.get_json()['data']

    assert listed(customer)['pagination']['total'] == 2
    assert listed(other_customer)['pagination']['total'] == 1
    assert [r['id'] for r in listed(accountant)['taxReturns']] == [mine['id']]
    assert listed(admin)['pagination']['total'] == 3
    assert listed(admin, '?taxYear=2022-23')['pagination']['total'] == 1
    assert listed(admin, '?status=in_progress')['pagination']['total'] == 1


def test_listing_rejects_unknown_sort_column(client, customer):
    response = client.get('/api/tax-returns?sortBy=customer_id;DROP', headers=auth_header(customer))

    assert response.status_code == 400
    assert response.get_json()['details'][0]['field'] == 'sortBy'


def test_get_tax_return_access(client, customer, other_customer, admin, create_return):
    tax_return = create_return(customer)
    url = f"/api/tax-returns/{tax_return['id']}"

    owner = client.get(url, headers=auth_header(customer))
    assert owner.status_code == 200
    data = owner.get_json()['data']
    assert data['taxReturn']['customerName'] == 'Alice Brown'
    assert data['incomeSources'] == []
    assert data['totalApprovedExpenses'] == 0

    stranger = client.get(url, headers=auth_header(other_customer))
    assert stranger.status_code == 403
    assert stranger.get_json()['error'] == 'Access denied. You can only access your own resources.'

    assert client.get(url, headers=auth_header(admin)).status_code == 200

    missing = client.get('/api/tax-returns/00000000-0000-4000-8000-000000000000', headers=auth_header(customer))
    assert missing.status_code == 404
    assert missing.get_json()['error'] == 'Tax return not found'


def test_other_customer_cannot_modify_tax_return(client, app, customer, other_customer, assigned_return):
    url = f"/api/tax-returns/{assigned_return['id']}"
    stranger = auth_header(other_customer)
    before = _child_counts(app, assigned_return['id'])

    attempts = [
        client.post(f'{url}/income', json={'sourceType': 'employment', 'grossIncome': 1000}, headers=stranger),
        client.post(f'{url}/expenses', json={
            'category': 'Travel', 'description': 'Train', 'amount': 40, 'expenseDate': '2023-10-02',
        }, headers=stranger),
        client.post(f'{url}/messages', json={'message': 'Let me in'}, headers=stranger),
        client.put(f'{url}/status', json={'status': 'completed'}, headers=stranger),
    ]

    assert [response.status_code for response in attempts] == [403, 403, 403, 403]
    assert _child_counts(app, assigned_return['id']) == before
    details = client.get(url, headers=auth_header(customer)).get_json()['data']
    assert details['taxReturn']['status'] == 'in_progress'


def test_assign_moves_pending_return_in_progress(assigned_return, accountant):
    assert assigned_return['accountantId'] == str(accountant.accountant_id)
    assert assigned_return['status'] == 'in_progress'


def test_assign_rejects_inactive_accountant(client, app, admin, customer, accountant, create_return):
    client.put(f'/api/admin/accountants/{accountant.accountant_id}/status', json={'isActive': False},
               headers=auth_header(admin))
    tax_return = create_return(customer)

    response = client.put(f"/api/tax-returns/{tax_return['id']}/assign",
                          json={'accountantId': str(accountant.accountant_id)}, headers=auth_header(admin))

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Invalid or inactive accountant'


def test_assign_requires_admin(client, customer, accountant, create_return):
    tax_return = create_return(customer)

    response = client.put(f"/api/tax-returns/{tax_return['id']}/assign",
                          json={'accountantId': str(accountant.accountant_id)}, headers=auth_header(customer))

    assert response.status_code == 403


def test_assigned_accountant_works_the_return(client, assigned_return, accountant, customer):
    url = f"/api/tax-returns/{assigned_return['id']}"

    status = client.put(f'{url}/status', json={'status': 'review'}, headers=auth_header(accountant))
    assert status.status_code == 200
    assert status.get_json()['data']['status'] == 'review'

    calculations = client.put(f'{url}/calculations', json={
        'totalIncome': 52000, 'totalTaxDue': 8432.6, 'totalRefund': 0,
    }, headers=auth_header(accountant))
    assert calculations.status_code == 200
    assert calculations.get_json()['data']['totalTaxDue'] == 8432.6

    notes = client.put(f'{url}/notes', json={'notes': 'Awaiting P60'}, headers=auth_header(accountant))
    assert notes.get_json()['data']['notes'] == 'Awaiting P60'

    filed = client.post(f'{url}/file', json={'hmrcReference': 'HMRC-2024-0001'}, headers=auth_header(accountant))
    assert filed.status_code == 200
    data = filed.get_json()['data']
    assert data['status'] == 'filed'
    assert data['hmrcReference'] == 'HMRC-2024-0001'
    assert data['filedDate'] is not None

    # Customers cannot drive the lifecycle
    forbidden = client.put(f'{url}/status', json={'status': 'completed'}, headers=auth_header(customer))
    assert forbidden.status_code == 403


def test_status_update_validation_and_ownership(client, make_user, assigned_return, accountant):
    url = f"/api/tax-returns/{assigned_return['id']}/status"

    invalid = client.put(url, json={'status': 'lost'}, headers=auth_header(accountant))
    assert invalid.status_code == 400
    assert invalid.get_json()['details'][0]['message'] == 'Invalid status'

    negative = client.put(f"/api/tax-returns/{assigned_return['id']}/calculations", json={'totalIncome': -1},
                          headers=auth_header(accountant))
    assert negative.status_code == 400

    unassigned = make_user('accountant')
    response = client.put(url, json={'status': 'review'}, headers=auth_header(unassigned))
    assert response.status_code == 403


def test_payment_status_is_admin_only(client, admin, assigned_return, accountant):
    url = f"/api/tax-returns/{assigned_return['id']}/payment-status"

    assert client.put(url, json={'paymentStatus': 'paid'}, headers=auth_header(accountant)).status_code == 403
    response = client.put(url, json={'paymentStatus': 'paid'}, headers=auth_header(admin))

    assert response.status_code == 200
    assert response.get_json()['data']['paymentStatus'] == 'paid'


def test_income_and_expenses(client, assigned_return, customer, accountant):
    url = f"/api/tax-returns/{assigned_return['id']}"

    income = client.post(f'{url}/income', json={
        'sourceType': 'employment', 'grossIncome': 38000, 'taxDeducted': 5486, 'employerName': 'Acme Ltd',
    }, headers=auth_header(customer))
    assert income.status_code == 201
    assert income.get_json()['data']['employerName'] == 'Acme Ltd'

    first = client.post(f'{url}/expenses', json={
        'category': 'Travel', 'description': 'Client visit', 'amount': 120.5, 'expenseDate': '2023-10-02',
    }, headers=auth_header(customer)).get_json()['data']
    client.post(f'{url}/expenses', json={
        'category': 'Equipment', 'description': 'Laptop', 'amount': 899, 'expenseDate': '2023-11-20',
    }, headers=auth_header(customer))
    assert first['isApproved'] is False

    approved = client.put(f"{url}/expenses/{first['id']}/approve", headers=auth_header(accountant))
    assert approved.status_code == 200
    assert approved.get_json()['data']['isApproved'] is True

    details = client.get(url, headers=auth_header(customer)).get_json()['data']
    assert len(details['incomeSources']) == 1
    assert len(details['expenses']) == 2
    assert details['totalApprovedExpenses'] == 120.5


def test_customer_cannot_approve_expenses(client, assigned_return, customer):
    url = f"/api/tax-returns/{assigned_return['id']}"
    expense = client.post(f'{url}/expenses', json={
        'category': 'Travel', 'description': 'Train', 'amount': 40, 'expenseDate': '2023-10-02',
    }, headers=auth_header(customer)).get_json()['data']

    response = client.put(f"{url}/expenses/{expense['id']}/approve", headers=auth_header(customer))

    assert response.status_code == 403


def test_approve_unknown_expense(client, assigned_return, accountant):
    url = f"/api/tax-returns/{assigned_return['id']}/expenses/00000000-0000-4000-8000-000000000000/approve"

    response = client.put(url, headers=auth_header(accountant))

    assert response.status_code == 404
    assert response.get_json()['error'] == 'Expense not found'


def test_messages_route_to_the_other_party(client, customer, accountant, assigned_return):
    url = f"/api/tax-returns/{assigned_return['id']}/messages"

    to_accountant = client.post(url, json={'message': 'I have uploaded my P60', 'subject': 'P60'},
                                headers=auth_header(customer))
    assert to_accountant.status_code == 201
    assert to_accountant.get_json()['data']['recipientId'] == str(accountant.id)

    to_customer = client.post(url, json={'message': 'Thanks, reviewing now', 'messageType': 'update'},
                              headers=auth_header(accountant))
    assert to_customer.get_json()['data']['recipientId'] == str(customer.id)

    messages = client.get(f"/api/tax-returns/{assigned_return['id']}",
                          headers=auth_header(customer)).get_json()['data']['messages']
    assert [m['message'] for m in messages] == ['I have uploaded my P60', 'Thanks, reviewing now']


def test_customer_message_needs_an_assigned_accountant(client, customer, create_return):
    tax_return = create_return(customer)

    response = client.post(f"/api/tax-returns/{tax_return['id']}/messages", json={'message': 'Hello?'},
                           headers=auth_header(customer))

    assert response.status_code == 400


def test_statistics_are_scoped(client, admin, customer, other_customer, create_return):
    paid = create_return(customer, tax_year='2022-23')
    create_return(customer, tax_year='2023-24')
    create_return(other_customer)
    client.put(f"/api/tax-returns/{paid['id']}/payment-status", json={'paymentStatus': 'paid'},
               headers=auth_header(admin))

    mine = client.get('/api/tax-returns/stats', headers=auth_header(customer)).get_json()['data']
    everything = client.get('/api/tax-returns/stats', headers=auth_header(admin)).get_json()['data']

    assert mine['totalReturns'] == 2
    assert mine['pendingReturns'] == 2
    assert mine['paidReturns'] == 1
    assert mine['totalRevenue'] == 169.0
    assert everything['totalReturns'] == 3


def _populate(client, app, tax_return, customer, accountant):
    """Attach one of every child record to a return."""
    url = f"/api/tax-returns/{tax_return['id']}"
    client.post(f'{url}/income', json={'sourceType': 'rental', 'grossIncome': 9600}, headers=auth_header(customer))
    client.post(f'{url}/expenses', json={
        'category': 'Repairs', 'description': 'Boiler', 'amount': 640, 'expenseDate': '2023-12-01',
    }, headers=auth_header(customer))
    client.post(f'{url}/messages', json={'message': 'Boiler invoice attached'}, headers=auth_header(customer))
    upload = client.post(
        f"/api/uploads/documents/{tax_return['id']}",
        data={'documents': [(io.BytesIO(b'%PDF-1.4 invoice'), 'invoice.pdf')]},
        content_type='multipart/form-data',
        headers=auth_header(customer),
    )
    assert upload.status_code == 201

    with app.app_context():
        record = db.session.get(TaxReturn, uuid.UUID(tax_return['id']))
        db.session.add(Payment(tax_return_id=record.id, customer_id=record.customer_id,
                               amount=record.price, payment_status='completed'))
        db.session.add(Review(customer_id=record.customer_id, accountant_id=accountant.accountant_id,
                              tax_return_id=record.id, rating=5, is_approved=True))
        db.session.commit()
        return [doc.file_path for doc in Document.query.filter_by(tax_return_id=record.id)]


def _child_counts(app, tax_return_id):
    tax_return_id = uuid.UUID(tax_return_id)
    with app.app_context():
        counts = {
            model.__tablename__: model.query.filter_by(tax_return_id=tax_return_id).count()
            for model in (IncomeSource, Expense, Message, Document, Payment)
        }
        counts['tax_returns'] = TaxReturn.query.filter_by(id=tax_return_id).count()
        return counts


def test_delete_removes_return_children_and_files(client, app, admin, customer, accountant, assigned_return):
    file_paths = _populate(client, app, assigned_return, customer, accountant)
    assert all(os.path.isfile(path) for path in file_paths)

    response = client.delete(f"/api/tax-returns/{assigned_return['id']}", headers=auth_header(admin))

    assert response.status_code == 200
    assert set(_child_counts(app, assigned_return['id']).values()) == {0}
    assert not any(os.path.exists(path) for path in file_paths)
    with app.app_context():
        review = Review.query.one()
        assert review.tax_return_id is None


def test_failed_delete_rolls_back_everything(client, app, admin, customer, accountant, assigned_return, monkeypatch):
    file_paths = _populate(client, app, assigned_return, customer, accountant)
    before = _child_counts(app, assigned_return['id'])

    class FailingQuery:
        def filter_by(self, **kwargs):
            raise SQLAlchemyError('simulated failure')

    with app.app_context():
        monkeypatch.setattr(Payment, 'query', FailingQuery())
    response = client.delete(f"/api/tax-returns/{assigned_return['id']}", headers=auth_header(admin))
    monkeypatch.undo()

    assert response.status_code == 500
    assert response.get_json() == {'success': False, 'error': 'Internal server error'}
    assert _child_counts(app, assigned_return['id']) == before
    assert set(before.values()) == {1}
    assert all(os.path.isfile(path) for path in file_paths)


def test_delete_is_admin_only(client, customer, accountant, assigned_return):
    url = f"/api/tax-returns/{assigned_return['id']}"

    assert client.delete(url, headers=auth_header(customer)).status_code == 403
    assert client.delete(url, headers=auth_header(accountant)).status_code == 403


def test_status_transitions_are_not_guarded(client, admin, customer, create_return):
    tax_return = create_return(customer)
    url = f"/api/tax-returns/{tax_return['id']}/status"

    jumped = client.put(url, json={'status': 'filed'}, headers=auth_header(admin))
    reverted = client.put(url, json={'status': 'pending'}, headers=auth_header(admin))

    assert jumped.get_json()['data']['status'] == 'filed'
    assert reverted.get_json()['data']['status'] == 'pending'


def test_finders_scope_by_party(app, customer, other_customer, accountant, assigned_return, create_return):
    create_return(other_customer)

    with app.app_context():
        by_customer = TaxReturn.find_by_customer(customer.customer_id)
        by_accountant = TaxReturn.find_by_accountant(accountant.accountant_id, status='in_progress')
        assert [str(r.id) for r in by_customer] == [assigned_return['id']]
        assert [str(r.id) for r in by_accountant] == [assigned_return['id']]
        assert TaxReturn.find_by_accountant(accountant.accountant_id, status='filed') == []
