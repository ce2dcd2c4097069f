from flask import current_app, request
from sqlalchemy.exc import IntegrityError

from .errors import DuplicateResource, NotFound, ValidationFailed
from .extensions import db
from .validation import OBJECT_ID_RE, parse_iso_date


def int_arg(name, default=None, minimum=None, maximum=None):
    raw = request.args.get(name)
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationFailed([{'field': name, 'message': 'Must be an integer'}])
    if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
        raise ValidationFailed([{'field': name, 'message': f'Must be between {minimum} and {maximum}'}])
    return value


def float_arg(name, default=None):
    raw = request.args.get(name)
    if raw is None or raw == '':
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValidationFailed([{'field': name, 'message': 'Must be a number'}])


def bool_arg(name):
    """``None`` when absent, otherwise whether the value is ``'true'``."""
    raw = request.args.get(name)
    if raw is None or raw == '':
        return None
    return raw.lower() == 'true'


def to_date(value, field):
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationFailed([{'field': field, 'message': 'Must be a valid ISO 8601 date'}])


def date_arg(name, required=False):
    raw = request.args.get(name)
    if not raw:
        if required:
            raise ValidationFailed([{'field': name, 'message': 'This field is required'}])
        return None
    return to_date(raw, name)


def paginate(query, serializer=None, default_limit=None):
    """Page a query into the ``{data, pagination}`` envelope."""
    config = current_app.config
    page = int_arg('page', 1, minimum=1)
    limit = int_arg('limit', default_limit or config['DEFAULT_PAGE_SIZE'], minimum=1,
                    maximum=config['MAX_PAGE_SIZE'])

    pagination = query.paginate(page=page, per_page=limit, error_out=False)
    serializer = serializer or (lambda item: item.to_dict())
    return {
        'data': [serializer(item) for item in pagination.items],
        'pagination': {
            'currentPage': page,
            'totalPages': pagination.pages,
            'totalItems': pagination.total,
            'itemsPerPage': limit,
        }
    }


def get_or_404(model, record_id, label=None):
    label = label or model.__name__
    if not OBJECT_ID_RE.match(record_id or ''):
        raise ValidationFailed([{'field': 'id', 'message': 'Must be a valid identifier'}])
    record = db.session.get(model, record_id)
    if record is None:
        raise NotFound(f'{label} not found')
    return record


UNIQUE_VIOLATION_PGCODE = '23505'
UNIQUE_VIOLATION_MARKERS = ('unique constraint', 'duplicate entry', 'duplicate key')


def is_unique_violation(error: IntegrityError) -> bool:
    if getattr(error.orig, 'pgcode', None) == UNIQUE_VIOLATION_PGCODE:
        return True
    text = str(error.orig).lower()
    return any(marker in text for marker in UNIQUE_VIOLATION_MARKERS)


def commit_or_conflict(message='Resource already exists'):
    """Commit, turning a unique-constraint failure into a 409.

    Any other integrity failure is rolled back and re-raised so it is
    answered as an unexpected error.
    """
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        if not is_unique_violation(e):
            current_app.logger.error(f"Integrity failure on commit: {str(e.orig)}")
            raise
        current_app.logger.warning(f"Integrity conflict: {str(e.orig)}")
        raise DuplicateResource(message)
