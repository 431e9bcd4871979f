"""
Pagination and sorting for list endpoints.

Sort columns and directions come from the query string, so both are checked
against allow-lists before they reach the ORDER BY clause.
"""

from typing import Iterable, Tuple
from flask import request

from taxpro.errors import ValidationError

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100
SORT_DIRECTIONS = ('ASC', 'DESC')

# Accept the camelCase names clients send as well as column names
_CAMEL_TO_COLUMN = {
    'createdAt': 'created_at',
    'updatedAt': 'updated_at',
    'lastLogin': 'last_login',
    'firstName': 'first_name',
    'lastName': 'last_name',
    'taxYear': 'tax_year',
    'paymentStatus': 'payment_status',
    'submissionDeadline': 'submission_deadline',
    'filedDate': 'filed_date',
    'inquiryType': 'inquiry_type',
    'respondedAt': 'responded_at',
    'tableName': 'table_name',
}


def _int_arg(name: str, default: int, minimum: int, maximum: int = None) -> int:
    raw = request.args.get(name)
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError.for_field(name, f'{name} must be an integer')
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f'between {minimum} and {maximum}' if maximum is not None else f'at least {minimum}'
        raise ValidationError.for_field(name, f'{name} must be {bounds}')
    return value


def page_args() -> Tuple[int, int]:
    """Read page (>= 1) and limit (1..100) from the query string."""
    page = _int_arg('page', DEFAULT_PAGE, 1)
    limit = _int_arg('limit', DEFAULT_LIMIT, 1, MAX_LIMIT)
    return page, limit


def sort_args(allowed_columns: Iterable[str], default_column: str = 'created_at',
              default_direction: str = 'DESC') -> Tuple[str, str]:
    """
    Read sortBy/sortOrder and check them against the allow-lists.

    Raises:
        ValidationError: for a column or direction that is not allowed
    """
    allowed_columns = tuple(allowed_columns)
    sort_by = request.args.get('sortBy') or default_column
    sort_by = _CAMEL_TO_COLUMN.get(sort_by, sort_by)
    if sort_by not in allowed_columns:
        raise ValidationError.for_field('sortBy', f"sortBy must be one of: {', '.join(allowed_columns)}")

    direction = (request.args.get('sortOrder') or default_direction).upper()
    if direction not in SORT_DIRECTIONS:
        raise ValidationError.for_field('sortOrder', 'sortOrder must be ASC or DESC')
    return sort_by, direction


def apply_sort(query, model, column: str, direction: str):
    """ORDER BY an allow-listed column of `model`."""
    attribute = getattr(model, column)
    return query.order_by(attribute.asc() if direction == 'ASC' else attribute.desc())


def paginate(query, page: int, limit: int) -> Tuple[list, dict]:
    """
    Run a page of `query` plus a separate COUNT over the same filters.

    Returns:
        Tuple of (items, pagination dict with page, limit, total, pages)
    """
    total = query.order_by(None).count()
    items = query.limit(limit).offset((page - 1) * limit).all()
    pages = (total + limit - 1) // limit if total else 0
    return items, {'page': page, 'limit': limit, 'total': total, 'pages': pages}


def paginated_listing(query, model, allowed_columns: Iterable[str],
                      default_column: str = 'created_at') -> Tuple[list, dict]:
    """Sort and paginate `query` from the request's query string."""
    page, limit = page_args()
    column, direction = sort_args(allowed_columns, default_column)
    return paginate(apply_sort(query, model, column, direction), page, limit)
