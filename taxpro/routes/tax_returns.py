"""
Tax return routes - lifecycle, calculations, filing, and the records attached
to a return (income sources, expenses, messages).
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from datetime import date
from decimal import Decimal, InvalidOperation
import logging

from taxpro import db
from taxpro.errors import NotFoundError, ValidationError
from taxpro.models.user import Accountant, Customer, Role
from taxpro.models.tax_return import TaxReturn, DEFAULT_PRICE
from taxpro.models.system_setting import SystemSetting
from taxpro.schemas import (
    validate_body, TaxReturnCreateRequest, StatusUpdateRequest, AssignAccountantRequest,
    CalculationsRequest, FileReturnRequest, NotesRequest, PaymentStatusRequest,
    IncomeSourceRequest, ExpenseRequest, MessageRequest,
)
from taxpro.utils.audit_log import AuditLogger
from taxpro.utils.auth import check_ownership, roles_required
from taxpro.utils.query import paginated_listing
from taxpro.utils.storage import LocalFileStore

logger = logging.getLogger(__name__)

tax_returns_bp = Blueprint('tax_returns', __name__, url_prefix='/api/tax-returns')

CUSTOMER = Role.CUSTOMER.value
ACCOUNTANT = Role.ACCOUNTANT.value
ADMIN = Role.ADMIN.value


def tax_return_owners(tax_return_id, **_):
    """Users entitled to a return, or None when it does not exist."""
    tax_return = TaxReturn.find_by_id(tax_return_id)
    return tax_return.owner_user_ids() if tax_return else None


owner_only = check_ownership(tax_return_owners, not_found='Tax return not found')


def load_tax_return(tax_return_id) -> TaxReturn:
    tax_return = TaxReturn.find_by_id(tax_return_id)
    if tax_return is None:
        raise NotFoundError('Tax return not found')
    return tax_return


def _default_deadline() -> date:
    value = SystemSetting.get_value('tax_year_deadline', '2024-01-31')
    try:
        return date.fromisoformat(value)
    except ValueError:
        logger.warning(f"Ignoring malformed tax_year_deadline setting {value!r}")
        return date(2024, 1, 31)


def _default_price() -> Decimal:
    value = SystemSetting.get_value('default_tax_return_price', str(DEFAULT_PRICE))
    try:
        return Decimal(value)
    except InvalidOperation:
        logger.warning(f"Ignoring malformed default_tax_return_price setting {value!r}")
        return DEFAULT_PRICE


def _role_scope() -> dict:
    """Listing filters that confine a customer or accountant to their own returns."""
    if current_user.role == CUSTOMER:
        customer_id = Customer.id_for_user(current_user.id)
        if customer_id is None:
            raise ValidationError('Customer profile not found')
        return {'customer_id': customer_id}
    if current_user.role == ACCOUNTANT:
        accountant_id = Accountant.id_for_user(current_user.id)
        if accountant_id is None:
            raise ValidationError('Accountant profile not found')
        return {'accountant_id': accountant_id}
    return {}


def _audit_change(action: str, tax_return: TaxReturn, old_values: dict = None, new_values: dict = None):
    AuditLogger.record(
        action, user=current_user, table_name='tax_returns', record_id=tax_return.id,
        old_values=old_values, new_values=new_values
    )


@tax_returns_bp.route('', methods=['POST'])
@roles_required(CUSTOMER)
def create_tax_return():
    """Open a return for the calling customer."""
    data = validate_body(TaxReturnCreateRequest)

    customer_id = Customer.id_for_user(current_user.id)
    if customer_id is None:
        raise ValidationError('Customer profile not found')

    tax_return = TaxReturn.create(
        customer_id=customer_id,
        tax_year=data.tax_year,
        situation_type=data.situation_type,
        submission_deadline=data.submission_deadline or _default_deadline(),
        price=_default_price(),
    )
    _audit_change('TAX_RETURN_CREATE', tax_return, new_values={'taxYear': tax_return.tax_year})
    logger.info(f"Tax return {tax_return.id} opened for {data.tax_year}")

    return jsonify({
        'success': True,
        'message': 'Tax return created successfully',
        'data': tax_return.to_dict()
    }), 201


@tax_returns_bp.route('', methods=['GET'])
@login_required
def list_tax_returns():
    """Own returns for customers, assigned returns for accountants, all for admins."""
    query = TaxReturn.filtered(
        status=request.args.get('status'),
        tax_year=request.args.get('taxYear'),
        payment_status=request.args.get('paymentStatus'),
        **_role_scope()
    )
    tax_returns, pagination = paginated_listing(query, TaxReturn, TaxReturn.SORTABLE_COLUMNS)
    return jsonify({
        'success': True,
        'data': {
            'taxReturns': [tax_return.to_dict() for tax_return in tax_returns],
            'pagination': pagination
        }
    })


@tax_returns_bp.route('/stats', methods=['GET'])
@login_required
def tax_return_stats():
    stats = TaxReturn.get_statistics(tax_year=request.args.get('taxYear'), **_role_scope())
    return jsonify({'success': True, 'data': stats})


@tax_returns_bp.route('/<uuid:tax_return_id>', methods=['GET'])
@owner_only
def get_tax_return(tax_return_id):
    tax_return = load_tax_return(tax_return_id)
    return jsonify({
        'success': True,
        'data': {
            'taxReturn': tax_return.get_full_details(),
            'incomeSources': [income.to_dict() for income in tax_return.get_income_sources()],
            'expenses': [expense.to_dict() for expense in tax_return.get_expenses()],
            'totalApprovedExpenses': tax_return.get_total_expenses(),
            'documents': [document.to_dict() for document in tax_return.get_documents()],
            'messages': [message.to_dict() for message in tax_return.get_messages()],
        }
    })


@tax_returns_bp.route('/<uuid:tax_return_id>/status', methods=['PUT'])
@roles_required(ACCOUNTANT, ADMIN)
@owner_only
def update_status(tax_return_id):
    data = validate_body(StatusUpdateRequest)
    tax_return = load_tax_return(tax_return_id)

    old_status = tax_return.status
    tax_return.update_status(data.status)
    _audit_change('TAX_RETURN_STATUS', tax_return, {'status': old_status}, {'status': data.status})

    return jsonify({
        'success': True,
        'message': 'Tax return status updated successfully',
        'data': tax_return.to_dict()
    })


@tax_returns_bp.route('/<uuid:tax_return_id>/assign', methods=['PUT'])
@roles_required(ADMIN)
def assign_accountant(tax_return_id):
    data = validate_body(AssignAccountantRequest)
    tax_return = load_tax_return(tax_return_id)

    accountant = db.session.get(Accountant, data.accountant_id)
    if accountant is None or not accountant.is_active:
        raise ValidationError('Invalid or inactive accountant')

    old_accountant = str(tax_return.accountant_id) if tax_return.accountant_id else None
    tax_return.assign_accountant(accountant.id)
    _audit_change(
        'TAX_RETURN_ASSIGN', tax_return,
        {'accountantId': old_accountant}, {'accountantId': str(accountant.id), 'status': tax_return.status}
    )

    return jsonify({
        'success': True,
        'message': 'Accountant assigned successfully',
        'data': tax_return.to_dict()
    })


@tax_returns_bp.route('/<uuid:tax_return_id>/calculations', methods=['PUT'])
@roles_required(ACCOUNTANT, ADMIN)
@owner_only
def update_calculations(tax_return_id):
    data = validate_body(CalculationsRequest)
    tax_return = load_tax_return(tax_return_id)

    tax_return.update_calculations(data.total_income, data.total_tax_due, data.total_refund)
    _audit_change('TAX_RETURN_CALCULATIONS', tax_return, new_values={
        'totalIncome': str(data.total_income),
        'totalTaxDue': str(data.total_tax_due) if data.total_tax_due is not None else None,
        'totalRefund': str(data.total_refund) if data.total_refund is not None else None,
    })

    return jsonify({
        'success': True,
        'message': 'Tax calculations updated successfully',
        'data': tax_return.to_dict()
    })


@tax_returns_bp.route('/<uuid:tax_return_id>/file', methods=['POST'])
@roles_required(ACCOUNTANT, ADMIN)
@owner_only
def file_tax_return(tax_return_id):
    """Record submission to HMRC."""
    data = validate_body(FileReturnRequest)
    tax_return = load_tax_return(tax_return_id)

    old_status = tax_return.status
    tax_return.mark_as_filed(data.hmrc_reference)
    _audit_change(
        'TAX_RETURN_FILED', tax_return,
        {'status': old_status}, {'status': tax_return.status, 'hmrcReference': data.hmrc_reference}
    )

    return jsonify({
        'success': True,
        'message': 'Tax return filed successfully',
        'data': tax_return.to_dict()
    })


@tax_returns_bp.route('/<uuid:tax_return_id>/notes', methods=['PUT'])
@roles_required(ACCOUNTANT, ADMIN)
@owner_only
def update_notes(tax_return_id):
    data = validate_body(NotesRequest)
    tax_return = load_tax_return(tax_return_id)
    tax_return.add_notes(data.notes)

    return jsonify({
        'success': True,
        'message': 'Notes updated successfully',
        'data': tax_return.to_dict()
    })


@tax_returns_bp.route('/<uuid:tax_return_id>/payment-status', methods=['PUT'])
@roles_required(ADMIN)
def update_payment_status(tax_return_id):
    data = validate_body(PaymentStatusRequest)
    tax_return = load_tax_return(tax_return_id)

    old_status = tax_return.payment_status
    tax_return.update_payment_status(data.payment_status)
    _audit_change(
        'TAX_RETURN_PAYMENT_STATUS', tax_return,
        {'paymentStatus': old_status}, {'paymentStatus': data.payment_status}
    )

    return jsonify({
        'success': True,
        'message': 'Payment status updated successfully',
        'data': tax_return.to_dict()
    })


@tax_returns_bp.route('/<uuid:tax_return_id>/income', methods=['POST'])
@owner_only
def add_income_source(tax_return_id):
    data = validate_body(IncomeSourceRequest)
    tax_return = load_tax_return(tax_return_id)
    income = tax_return.add_income_source(**data.model_dump())

    return jsonify({
        'success': True,
        'message': 'Income source added successfully',
        'data': income.to_dict()
    }), 201


@tax_returns_bp.route('/<uuid:tax_return_id>/expenses', methods=['POST'])
@owner_only
def add_expense(tax_return_id):
    data = validate_body(ExpenseRequest)
    tax_return = load_tax_return(tax_return_id)
    expense = tax_return.add_expense(**data.model_dump())

    return jsonify({
        'success': True,
        'message': 'Expense added successfully',
        'data': expense.to_dict()
    }), 201


@tax_returns_bp.route('/<uuid:tax_return_id>/expenses/<uuid:expense_id>/approve', methods=['PUT'])
@roles_required(ACCOUNTANT, ADMIN)
@owner_only
def approve_expense(tax_return_id, expense_id):
    tax_return = load_tax_return(tax_return_id)
    expense = tax_return.find_expense(expense_id)
    if expense is None:
        raise NotFoundError('Expense not found')

    expense.approve()
    AuditLogger.record('EXPENSE_APPROVE', user=current_user, table_name='expenses', record_id=expense.id)

    return jsonify({
        'success': True,
        'message': 'Expense approved successfully',
        'data': expense.to_dict()
    })


@tax_returns_bp.route('/<uuid:tax_return_id>/messages', methods=['POST'])
@owner_only
def send_message(tax_return_id):
    """
    Post a message on a return.

    Customers write to the assigned accountant; accountants and admins write
    to the customer.
    """
    data = validate_body(MessageRequest)
    tax_return = load_tax_return(tax_return_id)

    if current_user.role == CUSTOMER:
        if tax_return.accountant is None:
            raise ValidationError('No accountant has been assigned to this tax return yet')
        recipient_id = tax_return.accountant.user_id
    else:
        recipient_id = tax_return.customer.user_id

    message = tax_return.add_message(
        sender_id=current_user.id,
        recipient_id=recipient_id,
        message=data.message,
        subject=data.subject,
        message_type=data.message_type,
    )

    return jsonify({
        'success': True,
        'message': 'Message sent successfully',
        'data': message.to_dict()
    }), 201


@tax_returns_bp.route('/<uuid:tax_return_id>', methods=['DELETE'])
@roles_required(ADMIN)
def delete_tax_return(tax_return_id):
    """Delete a return and everything it owns, then remove its stored files."""
    tax_return = load_tax_return(tax_return_id)
    snapshot = {'taxYear': tax_return.tax_year, 'customerId': str(tax_return.customer_id)}

    file_paths = tax_return.delete()
    LocalFileStore.from_config().delete_all(file_paths)
    AuditLogger.record(
        'TAX_RETURN_DELETE', user=current_user, table_name='tax_returns',
        record_id=tax_return_id, old_values=snapshot
    )

    return jsonify({'success': True, 'message': 'Tax return deleted successfully'})
