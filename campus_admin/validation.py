"""Declarative request-body validation.

A schema maps a field path to its rules::

    {
        'title': {'type': str, 'required': True, 'min_length': 5, 'max_length': 200},
        'classInfo.subject': {'type': str, 'required': True},
        'studentAttendance.*.status': {'type': str, 'choices': ['present', 'absent']},
    }

Dotted segments walk into nested objects and ``*`` walks every item of a
list. Every violation is collected so a client sees all of them at once.
An explicit ``null`` is only accepted where the rule sets ``nullable``.
"""
import re
from datetime import date, datetime
from functools import wraps
from typing import Any, Dict, List

from flask import request

from .errors import ValidationFailed

OBJECT_ID_RE = re.compile(r'^[0-9a-fA-F]{24}$')
EMAIL_RE = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
TIME_RE = re.compile(r'^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$')

_MISSING = object()

TYPE_NAMES = {str: 'string', int: 'integer', float: 'number', bool: 'boolean', dict: 'object', list: 'array'}


def parse_iso_date(value) -> date:
    """Accept ``YYYY-MM-DD`` or a full ISO-8601 timestamp; return the calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return date.fromisoformat(text)


def _is_iso_date(value) -> bool:
    if not isinstance(value, str):
        return False
    try:
        parse_iso_date(value)
    except ValueError:
        return False
    return True


FORMATS = {
    'iso_date': (_is_iso_date, 'Must be a valid ISO 8601 date'),
    'object_id': (lambda v: isinstance(v, str) and bool(OBJECT_ID_RE.match(v)), 'Must be a valid identifier'),
    'email': (lambda v: isinstance(v, str) and bool(EMAIL_RE.match(v.strip())), 'Must be a valid email address'),
    'time': (lambda v: isinstance(v, str) and bool(TIME_RE.match(v)), 'Must be a time in HH:MM format'),
}


def _resolve(data, parts, prefix=''):
    """Yield ``(path, value)`` for a dotted path, expanding ``*`` over lists."""
    if not parts:
        yield prefix, data
        return

    head, rest = parts[0], parts[1:]
    if head == '*':
        if isinstance(data, list):
            for index, item in enumerate(data):
                yield from _resolve(item, rest, f'{prefix}[{index}]')
        return

    path = f'{prefix}.{head}' if prefix else head
    value = data.get(head, _MISSING) if isinstance(data, dict) else _MISSING
    if value is _MISSING or value is None:
        # item rules under an absent list are reported by the list's own rule
        if '*' in rest:
            return
        # a null parent is reported by the parent's own rule
        yield '.'.join([path] + list(rest)), (_MISSING if rest else value)
        return
    yield from _resolve(value, rest, path)


def _type_matches(value, expected) -> bool:
    expected = expected if isinstance(expected, tuple) else (expected,)
    if isinstance(value, bool):
        return bool in expected
    if float in expected and isinstance(value, int):
        return True
    return isinstance(value, expected)


def _type_name(expected) -> str:
    expected = expected if isinstance(expected, tuple) else (expected,)
    return ' or '.join(TYPE_NAMES.get(t, t.__name__) for t in expected)


def check_field(value, rules: Dict[str, Any]):
    """Return the first message a single present value violates, or None."""
    expected = rules.get('type')
    if expected is not None and not _type_matches(value, expected):
        return f'Must be of type {_type_name(expected)}'

    if 'choices' in rules and value not in rules['choices']:
        return f"Must be one of: {', '.join(str(c) for c in rules['choices'])}"

    if isinstance(value, (str, list)):
        length = len(value.strip()) if isinstance(value, str) else len(value)
        if 'min_length' in rules and length < rules['min_length']:
            return f"Must be at least {rules['min_length']} characters long"
        if 'max_length' in rules and length > rules['max_length']:
            return f"Must be at most {rules['max_length']} characters long"

    if isinstance(value, list) and 'min_items' in rules and len(value) < rules['min_items']:
        return f"Must contain at least {rules['min_items']} item(s)"

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if 'min' in rules and value < rules['min']:
            return f"Must be at least {rules['min']}"
        if 'max' in rules and value > rules['max']:
            return f"Must be at most {rules['max']}"

    if 'format' in rules:
        check, message = FORMATS[rules['format']]
        if not check(value):
            return message

    validator = rules.get('validator')
    if validator and not validator(value):
        return rules.get('error_message', 'Invalid value')
    return None


def validate_payload(data: Dict[str, Any], schema: Dict[str, Dict[str, Any]]) -> List[Dict[str, str]]:
    errors = []
    for field, rules in schema.items():
        for path, value in _resolve(data, field.split('.')):
            required = rules.get('required', False)
            if value is _MISSING or value is None:
                if required:
                    errors.append({'field': path, 'message': 'This field is required'})
                elif value is None and not rules.get('nullable', False):
                    errors.append({'field': path, 'message': 'Must not be null'})
                continue
            if required and isinstance(value, str) and not value.strip():
                errors.append({'field': path, 'message': 'This field is required'})
                continue
            message = check_field(value, rules)
            if message:
                errors.append({'field': path, 'message': message})
    return errors


def validate_json(schema: Dict[str, Dict[str, Any]]):
    """Reject the request with every violation before the view runs."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            data = request.get_json(silent=True)
            if data is None and not request.get_data():
                data = {}
            if not isinstance(data, dict):
                raise ValidationFailed([{'field': 'body', 'message': 'Request body must be a JSON object'}])

            errors = validate_payload(data, schema)
            if errors:
                raise ValidationFailed(errors)
            return f(*args, **kwargs)
        return decorated_function
    return decorator
