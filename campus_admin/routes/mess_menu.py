from datetime import date

from flask import Blueprint, current_app, g, jsonify, request

from ..database_models import MEALS, MessMenu
from ..errors import DuplicateResource, NotFound
from ..extensions import db
from ..policy import authorize
from ..utils import bool_arg, commit_or_conflict, date_arg, get_or_404, paginate, to_date
from ..validation import validate_json, validate_payload

mess_menu_bp = Blueprint('mess_menu', __name__)

DUPLICATE_MESSAGE = 'Menu already exists for this date'

MENU_SCHEMA = {
    'date': {'type': str, 'required': True, 'format': 'iso_date'},
    'snacks': {'type': dict},
    'snacks.items': {'type': list},
    'notes': {'type': str, 'max_length': 500, 'nullable': True},
    'isSpecialDay': {'type': bool},
    'specialDayName': {'type': str, 'max_length': 100, 'nullable': True},
    'academicYear': {'type': str, 'required': True},
    'isActive': {'type': bool},
}
for _meal in MEALS:
    MENU_SCHEMA.update({
        _meal: {'type': dict},
        f'{_meal}.veg': {'type': dict},
        f'{_meal}.veg.items': {'type': list},
        f'{_meal}.nonVeg': {'type': dict},
        f'{_meal}.nonVeg.items': {'type': list},
        f'{_meal}.timing': {'type': dict},
        f'{_meal}.timing.start': {'type': str, 'format': 'time'},
        f'{_meal}.timing.end': {'type': str, 'format': 'time'},
    })

UPDATE_SCHEMA = {field: dict(rules, required=False) for field, rules in MENU_SCHEMA.items()}
UPDATE_SCHEMA.pop('date')

BULK_SCHEMA = {
    'menus': {'type': list, 'required': True, 'min_items': 1},
    'menus.*': {'type': dict},
}


def build_menu(data, day):
    menu = MessMenu(date=day, created_by_id=g.profile.id, snacks={'items': []})
    menu.set_meals(data)
    menu.apply_changes(data, MessMenu.EDITABLE)
    menu.academic_year = data['academicYear'].strip()
    return menu


@mess_menu_bp.route('/today', methods=['GET'])
@authorize('mess_menu.today')
def todays_menu():
    menu = MessMenu.for_date(date.today())
    if menu is None:
        raise NotFound('No menu found for today')
    return jsonify({'data': menu.to_dict(), 'currentMeal': menu.current_meal()})


@mess_menu_bp.route('/date/<day>', methods=['GET'])
@authorize('mess_menu.for_date')
def menu_for_date(day):
    menu = MessMenu.for_date(to_date(day, 'date'))
    if menu is None:
        raise NotFound('No menu found for the specified date')
    return jsonify({'data': menu.to_dict()})


@mess_menu_bp.route('/week/<start_date>', methods=['GET'])
@authorize('mess_menu.week')
def weekly_menu(start_date):
    menus = MessMenu.week(to_date(start_date, 'startDate'))
    return jsonify({'data': [menu.to_dict() for menu in menus]})


@mess_menu_bp.route('/', methods=['GET'])
@authorize('mess_menu.list')
def list_menus():
    query = MessMenu.query
    day = date_arg('date')
    if day:
        query = query.filter(MessMenu.date == day)
    is_active = bool_arg('isActive')
    if is_active is not None:
        query = query.filter(MessMenu.is_active.is_(is_active))
    return jsonify(paginate(query.order_by(MessMenu.date.desc()), default_limit=10))


@mess_menu_bp.route('/', methods=['POST'])
@authorize('mess_menu.create')
@validate_json(MENU_SCHEMA)
def create_menu():
    data = request.get_json()
    day = to_date(data['date'], 'date')

    existing = MessMenu.query.filter_by(date=day).first()
    if existing:
        raise DuplicateResource(DUPLICATE_MESSAGE, extra={'existingMenuId': existing.id})

    menu = build_menu(data, day)
    db.session.add(menu)
    commit_or_conflict(DUPLICATE_MESSAGE)

    current_app.logger.info(f"Mess menu created for {day} by {g.profile.id}")
    return jsonify({'data': menu.to_dict(), 'message': 'Menu created successfully'}), 201


@mess_menu_bp.route('/bulk', methods=['POST'])
@authorize('mess_menu.bulk_create')
@validate_json(BULK_SCHEMA)
def bulk_create_menus():
    created, errors = [], []
    seen = set()
    for item in request.get_json()['menus']:
        problems = validate_payload(item, MENU_SCHEMA)
        if problems:
            errors.append({'date': item.get('date'), 'error': 'Validation failed', 'details': problems})
            continue

        day = to_date(item['date'], 'date')
        if day in seen or MessMenu.query.filter_by(date=day).first():
            errors.append({'date': item['date'], 'error': DUPLICATE_MESSAGE})
            continue
        seen.add(day)

        menu = build_menu(item, day)
        db.session.add(menu)
        created.append(menu)
    commit_or_conflict(DUPLICATE_MESSAGE)

    current_app.logger.info(f"Bulk menu import by {g.profile.id}: {len(created)} created, {len(errors)} rejected")
    return jsonify({
        'data': [menu.to_dict() for menu in created],
        'errors': errors,
        'message': f'Created {len(created)} menus successfully',
    }), 201


@mess_menu_bp.route('/<menu_id>', methods=['PUT'])
@authorize('mess_menu.update')
@validate_json(UPDATE_SCHEMA)
def update_menu(menu_id):
    menu = get_or_404(MessMenu, menu_id, 'Menu')
    data = request.get_json()

    menu.set_meals(data)
    menu.apply_changes(data, MessMenu.EDITABLE)
    menu.updated_by_id = g.profile.id
    db.session.commit()
    return jsonify({'data': menu.to_dict(), 'message': 'Menu updated successfully'})


@mess_menu_bp.route('/<menu_id>', methods=['DELETE'])
@authorize('mess_menu.delete')
def delete_menu(menu_id):
    menu = get_or_404(MessMenu, menu_id, 'Menu')
    db.session.delete(menu)
    db.session.commit()

    current_app.logger.info(f"Mess menu deleted: {menu_id} by {g.profile.id}")
    return jsonify({'message': 'Menu deleted successfully'})
