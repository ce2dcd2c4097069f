from datetime import date

import pytest

from campus_admin.validation import parse_iso_date, validate_payload

SCHEMA = {
    'title': {'type': str, 'required': True, 'min_length': 5},
    'count': {'type': int, 'min': 1, 'max': 10},
    'score': {'type': float},
    'info': {'type': dict, 'required': True},
    'info.start': {'type': str, 'required': True, 'format': 'time'},
    'rows': {'type': list, 'min_items': 1},
    'rows.*.id': {'type': str, 'required': True, 'format': 'object_id'},
}


def fields(errors):
    return [error['field'] for error in errors]


def test_valid_payload_has_no_errors():
    payload = {'title': 'Hello world', 'count': 3, 'score': 2, 'info': {'start': '09:30'},
               'rows': [{'id': 'a' * 24}]}
    assert validate_payload(payload, SCHEMA) == []


def test_all_violations_are_collected():
    payload = {'title': '  hi  ', 'count': 11, 'info': {'start': '25:00'}, 'rows': []}
    assert fields(validate_payload(payload, SCHEMA)) == ['title', 'count', 'info.start', 'rows']


def test_missing_parent_reports_nested_required_path():
    assert fields(validate_payload({'title': 'Hello world'}, SCHEMA)) == ['info', 'info.start']


def test_list_items_are_addressed_by_index():
    payload = {'title': 'Hello world', 'info': {'start': '08:00'},
               'rows': [{'id': 'a' * 24}, {'id': 'xyz'}, {}]}
    errors = validate_payload(payload, SCHEMA)
    assert fields(errors) == ['rows[1].id', 'rows[2].id']
    assert errors[1]['message'] == 'This field is required'


def test_absent_list_does_not_report_item_rules():
    assert 'rows' not in ' '.join(fields(validate_payload({'title': 'Hello world', 'info': {'start': '08:00'}},
                                                          SCHEMA)))


def test_booleans_are_not_integers():
    errors = validate_payload({'title': 'Hello world', 'info': {'start': '08:00'}, 'count': True}, SCHEMA)
    assert errors == [{'field': 'count', 'message': 'Must be of type integer'}]


def test_blank_required_string_counts_as_missing():
    errors = validate_payload({'title': '   ', 'info': {'start': '08:00'}}, SCHEMA)
    assert errors == [{'field': 'title', 'message': 'This field is required'}]


def test_choices_and_custom_validator():
    schema = {
        'status': {'type': str, 'choices': ['open', 'closed']},
        'even': {'type': int, 'validator': lambda v: v % 2 == 0, 'error_message': 'Must be even'},
    }
    errors = validate_payload({'status': 'pending', 'even': 3}, schema)
    assert errors == [
        {'field': 'status', 'message': 'Must be one of: open, closed'},
        {'field': 'even', 'message': 'Must be even'},
    ]


@pytest.mark.parametrize('value, expected', [
    ('2024-03-04', date(2024, 3, 4)),
    ('2024-03-04T10:15:00Z', date(2024, 3, 4)),
    ('2024-03-04T10:15:00.000+05:30', date(2024, 3, 4)),
])
def test_parse_iso_date(value, expected):
    assert parse_iso_date(value) == expected


def test_parse_iso_date_rejects_garbage():
    with pytest.raises(ValueError):
        parse_iso_date('04/03/2024')


def test_explicit_null_is_rejected_unless_nullable():
    schema = {
        'title': {'type': str},
        'notes': {'type': str, 'nullable': True},
        'info': {'type': dict},
        'info.start': {'type': str},
    }
    errors = validate_payload({'title': None, 'notes': None, 'info': None}, schema)
    assert errors == [
        {'field': 'title', 'message': 'Must not be null'},
        {'field': 'info', 'message': 'Must not be null'},
    ]


def test_null_on_required_field_reads_as_missing():
    errors = validate_payload({'title': None, 'info': {'start': '08:00'}}, SCHEMA)
    assert errors == [{'field': 'title', 'message': 'This field is required'}]
