"""
Contact routes - public inquiry intake and the admin inbox.
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user
import logging

from taxpro.errors import NotFoundError, ValidationError
from taxpro.models.contact_inquiry import ContactInquiry
from taxpro.models.user import User, Role
from taxpro.models.base import iso, uuid_str
from taxpro.schemas import validate_body, ContactInquiryRequest, InquiryStatusRequest, InquiryAssignRequest
from taxpro.utils.audit_log import AuditLogger
from taxpro.utils.auth import roles_required
from taxpro.utils.mailer import send_inquiry_confirmation, send_inquiry_notification
from taxpro.utils.query import paginated_listing

logger = logging.getLogger(__name__)

contact_bp = Blueprint('contact', __name__, url_prefix='/api/contact')

ADMIN = Role.ADMIN.value


def load_inquiry(inquiry_id) -> ContactInquiry:
    inquiry = ContactInquiry.find_by_id(inquiry_id)
    if inquiry is None:
        raise NotFoundError('Contact inquiry not found')
    return inquiry


@contact_bp.route('', methods=['POST'])
def submit_inquiry():
    """Public contact form."""
    data = validate_body(ContactInquiryRequest)
    inquiry = ContactInquiry.create(**data.model_dump())
    logger.info(f"Contact inquiry {inquiry.id} received ({inquiry.inquiry_type})")

    send_inquiry_confirmation(inquiry)
    send_inquiry_notification(inquiry)

    return jsonify({
        'success': True,
        'message': 'Thank you for your inquiry. We will get back to you within 24 hours.',
        'data': {
            'id': uuid_str(inquiry.id),
            'status': inquiry.status,
            'createdAt': iso(inquiry.created_at),
        }
    }), 201


@contact_bp.route('/inquiries', methods=['GET'])
@roles_required(ADMIN)
def list_inquiries():
    query = ContactInquiry.query
    status = request.args.get('status', 'all')
    if status != 'all':
        query = query.filter(ContactInquiry.status == status)
    inquiry_type = request.args.get('inquiryType', 'all')
    if inquiry_type != 'all':
        query = query.filter(ContactInquiry.inquiry_type == inquiry_type)

    inquiries, pagination = paginated_listing(query, ContactInquiry, ContactInquiry.SORTABLE_COLUMNS)
    return jsonify({
        'success': True,
        'data': {
            'inquiries': [inquiry.to_dict() for inquiry in inquiries],
            'pagination': pagination
        }
    })


@contact_bp.route('/inquiries/<uuid:inquiry_id>', methods=['GET'])
@roles_required(ADMIN)
def get_inquiry(inquiry_id):
    return jsonify({'success': True, 'data': load_inquiry(inquiry_id).to_dict()})


@contact_bp.route('/inquiries/<uuid:inquiry_id>/status', methods=['PUT'])
@roles_required(ADMIN)
def update_inquiry_status(inquiry_id):
    data = validate_body(InquiryStatusRequest)
    inquiry = load_inquiry(inquiry_id)

    old_status = inquiry.status
    inquiry.update_status(data.status)
    AuditLogger.record(
        'INQUIRY_STATUS', user=current_user, table_name='contact_inquiries', record_id=inquiry.id,
        old_values={'status': old_status}, new_values={'status': inquiry.status}
    )

    return jsonify({
        'success': True,
        'message': 'Inquiry status updated successfully',
        'data': inquiry.to_dict()
    })


@contact_bp.route('/inquiries/<uuid:inquiry_id>/assign', methods=['PUT'])
@roles_required(ADMIN)
def assign_inquiry(inquiry_id):
    """Hand an inquiry to an admin; a new inquiry moves to in_progress."""
    data = validate_body(InquiryAssignRequest)

    assignee = User.find_by_id(data.assigned_to)
    if assignee is None or not assignee.is_admin:
        raise ValidationError('Invalid admin user ID')

    inquiry = load_inquiry(inquiry_id)
    inquiry.assign(assignee.id)
    AuditLogger.record(
        'INQUIRY_ASSIGN', user=current_user, table_name='contact_inquiries', record_id=inquiry.id,
        new_values={'assignedTo': str(assignee.id), 'status': inquiry.status}
    )

    return jsonify({
        'success': True,
        'message': 'Inquiry assigned successfully',
        'data': inquiry.to_dict()
    })


@contact_bp.route('/stats', methods=['GET'])
@roles_required(ADMIN)
def inquiry_stats():
    return jsonify({'success': True, 'data': ContactInquiry.get_statistics()})
