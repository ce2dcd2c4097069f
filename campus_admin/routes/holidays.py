from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import func

from ..database_models import (HOLIDAY_AUDIENCES, DEFAULT_HOLIDAY_NOTIFICATIONS, Holiday, HolidayCategory,
                               HolidayType, RecurringPattern, values)
from ..errors import ValidationFailed
from ..extensions import db
from ..policy import authorize
from ..utils import bool_arg, date_arg, get_or_404, int_arg, paginate, to_date
from ..validation import validate_json, validate_payload

holidays_bp = Blueprint('holidays', __name__)

HOLIDAY_SCHEMA = {
    'title': {'type': str, 'required': True, 'max_length': 200},
    'description': {'type': str, 'max_length': 500, 'nullable': True},
    'date': {'type': str, 'required': True, 'format': 'iso_date'},
    'endDate': {'type': str, 'format': 'iso_date', 'nullable': True},
    'type': {'type': str, 'required': True, 'choices': values(HolidayType)},
    'category': {'type': str, 'choices': values(HolidayCategory)},
    'affects': {'type': dict},
    'academicYear': {'type': str, 'required': True},
    'semester': {'type': int, 'min': 1, 'max': 8, 'nullable': True},
    'isRecurring': {'type': bool},
    'recurringPattern': {'type': str, 'choices': values(RecurringPattern), 'nullable': True},
    'isActive': {'type': bool},
    'tags': {'type': list},
    'tags.*': {'type': str},
    'notifications': {'type': dict},
    'notifications.reminderDays': {'type': int, 'min': 0},
}
HOLIDAY_SCHEMA.update({f'affects.{audience}': {'type': bool} for audience in HOLIDAY_AUDIENCES})

UPDATE_SCHEMA = {field: dict(rules, required=False) for field, rules in HOLIDAY_SCHEMA.items()}

BULK_SCHEMA = {
    'holidays': {'type': list, 'required': True, 'min_items': 1},
    'holidays.*': {'type': dict},
}


def user_type_arg():
    user_type = request.args.get('userType') or 'students'
    if user_type not in HOLIDAY_AUDIENCES:
        raise ValidationFailed([{'field': 'userType', 'message': f"Must be one of: {', '.join(HOLIDAY_AUDIENCES)}"}])
    return user_type


def date_range_args():
    start = date_arg('startDate', required=True)
    end = date_arg('endDate', required=True)
    if end < start:
        raise ValidationFailed([{'field': 'endDate', 'message': 'Must not be before startDate'}])
    return start, end


def end_date_errors(data, start=None, end=None):
    """``endDate`` may not precede ``date``; either side may come from the stored record."""
    start = to_date(data['date'], 'date') if data.get('date') else start
    end = to_date(data['endDate'], 'endDate') if data.get('endDate') else end
    if start and end and end < start:
        return [{'field': 'endDate', 'message': 'Must not be before date'}]
    return []


def build_holiday(data):
    holiday = Holiday(
        category=HolidayCategory.MANDATORY.value,
        notifications=dict(DEFAULT_HOLIDAY_NOTIFICATIONS),
        created_by_id=g.profile.id,
    )
    apply_holiday_changes(holiday, data)
    return holiday


def apply_holiday_changes(holiday, data):
    changes = dict(data)
    for key in ('date', 'endDate'):
        if changes.get(key):
            changes[key] = to_date(changes[key], key)
    if isinstance(changes.get('title'), str):
        changes['title'] = changes['title'].strip()
    if 'notifications' in changes:
        changes['notifications'] = dict(holiday.notifications or DEFAULT_HOLIDAY_NOTIFICATIONS,
                                         **changes['notifications'])
    holiday.apply_changes(changes, Holiday.EDITABLE)
    holiday.set_affects(data.get('affects') or {})


@holidays_bp.route('/upcoming', methods=['GET'])
@authorize('holidays.upcoming')
def upcoming_holidays():
    days = int_arg('days', 30, minimum=1, maximum=365)
    holidays = Holiday.upcoming(days, user_type_arg())
    return jsonify({'data': [holiday.to_dict() for holiday in holidays]})


@holidays_bp.route('/current-month', methods=['GET'])
@authorize('holidays.current_month')
def current_month_holidays():
    holidays = Holiday.current_month(user_type_arg())
    return jsonify({'data': [holiday.to_dict() for holiday in holidays]})


@holidays_bp.route('/check/<day>', methods=['GET'])
@authorize('holidays.check')
def check_holiday(day):
    holiday = Holiday.on_date(to_date(day, 'date'), user_type_arg())
    return jsonify({
        'isHoliday': holiday is not None,
        'holiday': holiday.summary() if holiday else None,
    })


@holidays_bp.route('/range', methods=['GET'])
@authorize('holidays.range')
def holidays_in_range():
    start, end = date_range_args()
    holidays = Holiday.for_range(start, end, user_type_arg())
    return jsonify({'data': [holiday.to_dict() for holiday in holidays]})


@holidays_bp.route('/working-days', methods=['GET'])
@authorize('holidays.working_days')
def working_days():
    start, end = date_range_args()
    user_type = user_type_arg()
    return jsonify({
        'data': {'workingDays': Holiday.working_days(start, end, user_type)},
        'startDate': start.isoformat(),
        'endDate': end.isoformat(),
        'userType': user_type,
    })


@holidays_bp.route('/stats', methods=['GET'])
@authorize('holidays.stats')
def holiday_stats():
    user_type = user_type_arg()
    query = Holiday.active_for(user_type)
    if request.args.get('academicYear'):
        query = query.filter(Holiday.academic_year == request.args['academicYear'])

    by_type = dict(query.with_entities(Holiday.type, func.count(Holiday.id)).group_by(Holiday.type).all())
    return jsonify({
        'data': {
            'total': sum(by_type.values()),
            'byType': {
                'national': by_type.get(HolidayType.NATIONAL.value, 0),
                'state': by_type.get(HolidayType.STATE.value, 0),
                'academic': by_type.get(HolidayType.ACADEMIC.value, 0),
                'festivals': by_type.get(HolidayType.FESTIVAL.value, 0),
                'exam': by_type.get(HolidayType.EXAM.value, 0),
                'maintenance': by_type.get(HolidayType.MAINTENANCE.value, 0),
                'other': by_type.get(HolidayType.OTHER.value, 0),
            },
            'upcoming': len(Holiday.upcoming(30, user_type)),
        }
    })


@holidays_bp.route('/', methods=['GET'])
@authorize('holidays.list')
def list_holidays():
    query = Holiday.query
    for arg, column in (('type', Holiday.type), ('category', Holiday.category),
                        ('academicYear', Holiday.academic_year)):
        if request.args.get(arg):
            query = query.filter(column == request.args[arg])
    is_active = bool_arg('isActive')
    if is_active is not None:
        query = query.filter(Holiday.is_active.is_(is_active))
    if request.args.get('startDate') and request.args.get('endDate'):
        query = Holiday.overlapping(query, *date_range_args())

    return jsonify(paginate(query.order_by(Holiday.date.asc()), default_limit=10))


@holidays_bp.route('/', methods=['POST'])
@authorize('holidays.create')
@validate_json(HOLIDAY_SCHEMA)
def create_holiday():
    data = request.get_json()
    errors = end_date_errors(data)
    if errors:
        raise ValidationFailed(errors)

    holiday = build_holiday(data)
    db.session.add(holiday)
    db.session.commit()

    current_app.logger.info(f"Holiday created: {holiday.title} on {holiday.date} by {g.profile.id}")
    return jsonify({'data': holiday.to_dict(), 'message': 'Holiday created successfully'}), 201


@holidays_bp.route('/bulk', methods=['POST'])
@authorize('holidays.bulk_create')
@validate_json(BULK_SCHEMA)
def bulk_create_holidays():
    created, errors = [], []
    for item in request.get_json()['holidays']:
        problems = validate_payload(item, HOLIDAY_SCHEMA) or end_date_errors(item)
        if problems:
            errors.append({'title': item.get('title'), 'date': item.get('date'), 'details': problems})
            continue
        holiday = build_holiday(item)
        db.session.add(holiday)
        created.append(holiday)
    db.session.commit()

    current_app.logger.info(f"Bulk holiday import by {g.profile.id}: {len(created)} created, {len(errors)} rejected")
    return jsonify({
        'data': [holiday.to_dict() for holiday in created],
        'errors': errors,
        'message': f'Created {len(created)} holidays successfully',
    }), 201


@holidays_bp.route('/<holiday_id>', methods=['PUT'])
@authorize('holidays.update')
@validate_json(UPDATE_SCHEMA)
def update_holiday(holiday_id):
    holiday = get_or_404(Holiday, holiday_id, 'Holiday')
    data = request.get_json()
    errors = end_date_errors(data, holiday.date, holiday.end_date)
    if errors:
        raise ValidationFailed(errors)

    apply_holiday_changes(holiday, data)
    holiday.updated_by_id = g.profile.id
    db.session.commit()
    return jsonify({'data': holiday.to_dict(), 'message': 'Holiday updated successfully'})


@holidays_bp.route('/<holiday_id>', methods=['DELETE'])
@authorize('holidays.delete')
def delete_holiday(holiday_id):
    holiday = get_or_404(Holiday, holiday_id, 'Holiday')
    db.session.delete(holiday)
    db.session.commit()

    current_app.logger.info(f"Holiday deleted: {holiday_id} by {g.profile.id}")
    return jsonify({'message': 'Holiday deleted successfully'})
