"""
Upload routes - documents attached to a tax return.
"""

from flask import Blueprint, current_app, jsonify, request, send_file
from flask_login import current_user, login_required
import logging
import os
import uuid

from taxpro import db
from taxpro.errors import AuthorizationError, NotFoundError, ValidationError
from taxpro.models.tax_return import Document, TaxReturn
from taxpro.utils.audit_log import AuditLogger
from taxpro.utils.auth import ensure_owner
from taxpro.utils.storage import LocalFileStore, file_extension, file_size

logger = logging.getLogger(__name__)

uploads_bp = Blueprint('uploads', __name__, url_prefix='/api/uploads')

UPLOAD_FIELD = 'documents'


def load_tax_return(tax_return_id) -> TaxReturn:
    tax_return = TaxReturn.find_by_id(tax_return_id)
    if tax_return is None:
        raise NotFoundError('Tax return not found')
    return tax_return


def load_document(document_id) -> Document:
    document = db.session.get(Document, document_id)
    if document is None:
        raise NotFoundError('Document not found')
    return document


def _validate_uploads(store: LocalFileStore, uploads: list) -> None:
    """Reject the whole batch before anything touches the disk."""
    if not uploads:
        raise ValidationError('No files uploaded')

    max_files = current_app.config['MAX_FILES_PER_UPLOAD']
    if len(uploads) > max_files:
        raise ValidationError(f'Too many files. Maximum is {max_files} files per upload.')

    max_size = current_app.config['MAX_FILE_SIZE']
    for upload in uploads:
        if not store.is_allowed(upload.filename):
            raise ValidationError(
                f'File type .{file_extension(upload.filename)} is not allowed. '
                f"Allowed types: {', '.join(store.allowed_extensions)}"
            )
        if file_size(upload) > max_size:
            raise ValidationError(f'File too large. Maximum size is {max_size // (1024 * 1024)}MB.')


@uploads_bp.route('/documents/<uuid:tax_return_id>', methods=['POST'])
@login_required
def upload_documents(tax_return_id):
    """
    Store up to five files for a return.

    Files and rows are written as one unit: if any file or row fails, the
    rows are rolled back and every file already written is removed.
    """
    tax_return = load_tax_return(tax_return_id)
    ensure_owner(tax_return.owner_user_ids())

    store = LocalFileStore.from_config()
    uploads = [upload for upload in request.files.getlist(UPLOAD_FIELD) if upload and upload.filename]
    _validate_uploads(store, uploads)

    document_type = request.form.get('documentType') or 'other'
    saved_paths = []
    documents = []
    try:
        for upload in uploads:
            size = file_size(upload)
            path = store.save(upload)
            saved_paths.append(path)
            document = Document(
                tax_return_id=tax_return.id,
                uploaded_by=current_user.id,
                document_type=document_type,
                original_name=upload.filename,
                file_path=path,
                file_size=size,
                mime_type=upload.mimetype,
            )
            db.session.add(document)
            documents.append(document)
        db.session.commit()
    except Exception:
        db.session.rollback()
        store.delete_all(saved_paths)
        logger.error(f"Upload to tax return {tax_return_id} failed; removed {len(saved_paths)} stored file(s)")
        raise

    AuditLogger.record(
        'DOCUMENT_UPLOAD', user=current_user, table_name='tax_returns', record_id=tax_return.id,
        new_values={'documents': [str(document.id) for document in documents]}
    )

    return jsonify({
        'success': True,
        'message': f'{len(documents)} document(s) uploaded successfully',
        'data': [document.to_dict() for document in documents]
    }), 201


@uploads_bp.route('/documents', methods=['GET'])
@login_required
def list_documents():
    raw_id = request.args.get('taxReturnId')
    if not raw_id:
        raise ValidationError('Tax return ID is required')
    try:
        tax_return_id = uuid.UUID(raw_id)
    except ValueError:
        raise ValidationError.for_field('taxReturnId', 'Invalid tax return ID')

    tax_return = load_tax_return(tax_return_id)
    ensure_owner(tax_return.owner_user_ids())

    return jsonify({
        'success': True,
        'data': [document.to_dict() for document in tax_return.get_documents()]
    })


@uploads_bp.route('/documents/<uuid:document_id>', methods=['GET'])
@login_required
def download_document(document_id):
    document = load_document(document_id)
    ensure_owner(document.tax_return.owner_user_ids())

    if not LocalFileStore.exists(document.file_path):
        raise NotFoundError('File not found on server')

    return send_file(
        os.path.abspath(document.file_path),
        mimetype=document.mime_type or 'application/octet-stream',
        as_attachment=True,
        download_name=document.original_name,
    )


@uploads_bp.route('/documents/<uuid:document_id>', methods=['DELETE'])
@login_required
def delete_document(document_id):
    """Only admins, the uploader, or the assigned accountant may delete."""
    document = load_document(document_id)
    tax_return = document.tax_return

    allowed = current_user.is_admin or document.uploaded_by == current_user.id
    if not allowed and tax_return.accountant is not None:
        allowed = tax_return.accountant.user_id == current_user.id
    if not allowed:
        AuditLogger.log_access_denied(current_user, f'cannot delete document {document_id}')
        raise AuthorizationError('Access denied')

    snapshot = {'originalName': document.original_name, 'taxReturnId': str(tax_return.id)}
    LocalFileStore.delete(document.file_path)
    db.session.delete(document)
    db.session.commit()
    AuditLogger.record(
        'DOCUMENT_DELETE', user=current_user, table_name='documents', record_id=document_id,
        old_values=snapshot
    )

    return jsonify({'success': True, 'message': 'Document deleted successfully'})
