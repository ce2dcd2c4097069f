"""Student departments and faculty departments.

Both tables share their columns, so one set of views is registered on
each blueprint under that blueprint's policy names.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..database_models import Department, FacultyDepartment, Profile, Role
from ..extensions import db
from ..policy import authorize
from ..utils import commit_or_conflict, get_or_404
from ..validation import validate_json

departments_bp = Blueprint('departments', __name__)
faculty_departments_bp = Blueprint('faculty_departments', __name__)

DUPLICATE_MESSAGE = 'Department name or code must be unique'

DEPARTMENT_SCHEMA = {
    'name': {'type': str, 'required': True, 'min_length': 2, 'max_length': 100},
    'code': {'type': str, 'max_length': 20, 'nullable': True},
    'description': {'type': str, 'max_length': 1000, 'nullable': True},
    'hod': {'type': str, 'format': 'object_id', 'nullable': True},
    'isActive': {'type': bool},
}

UPDATE_SCHEMA = dict(DEPARTMENT_SCHEMA, name={'type': str, 'min_length': 2, 'max_length': 100})

HOD_SCHEMA = {
    'hodId': {'type': str, 'required': True, 'format': 'object_id'},
}


def _clean(data):
    """Strip names and codes; an empty code is stored as NULL so it never collides."""
    cleaned = dict(data)
    for key in ('name', 'description'):
        if isinstance(cleaned.get(key), str):
            cleaned[key] = cleaned[key].strip()
    if 'code' in cleaned:
        cleaned['code'] = (cleaned['code'] or '').strip().upper() or None
    return cleaned


def register_department_views(blueprint, model, policy_prefix, label):
    def list_departments():
        departments = model.query.order_by(model.name.asc()).all()
        return jsonify({'data': [department.to_dict() for department in departments]})

    def get_department(department_id):
        return jsonify({'data': get_or_404(model, department_id, label).to_dict()})

    def create_department():
        data = _clean(request.get_json())
        department = model(is_active=data.get('isActive', True))
        department.apply_changes(data, model.EDITABLE)
        if data.get('hod'):
            department.hod_id = get_or_404(Profile, data['hod'], 'Profile').id
        db.session.add(department)
        commit_or_conflict(DUPLICATE_MESSAGE)

        current_app.logger.info(f"{label} created: {department.name} by {g.profile.id}")
        return jsonify({'data': department.to_dict(), 'message': f'{label} created successfully'}), 201

    def update_department(department_id):
        department = get_or_404(model, department_id, label)
        data = _clean(request.get_json())
        department.apply_changes(data, model.EDITABLE)
        if 'hod' in data:
            department.hod_id = get_or_404(Profile, data['hod'], 'Profile').id if data['hod'] else None
        commit_or_conflict(DUPLICATE_MESSAGE)
        return jsonify({'data': department.to_dict(), 'message': f'{label} updated successfully'})

    def delete_department(department_id):
        department = get_or_404(model, department_id, label)
        db.session.delete(department)
        db.session.commit()

        current_app.logger.info(f"{label} deleted: {department_id} by {g.profile.id}")
        return jsonify({'message': f'{label} deleted successfully'})

    blueprint.add_url_rule('/', 'list', authorize(f'{policy_prefix}.list')(list_departments),
                           methods=['GET'])
    blueprint.add_url_rule('/<department_id>', 'get', authorize(f'{policy_prefix}.get')(get_department),
                           methods=['GET'])
    blueprint.add_url_rule('/', 'create',
                           authorize(f'{policy_prefix}.create')(validate_json(DEPARTMENT_SCHEMA)(create_department)),
                           methods=['POST'])
    blueprint.add_url_rule('/<department_id>', 'update',
                           authorize(f'{policy_prefix}.update')(validate_json(UPDATE_SCHEMA)(update_department)),
                           methods=['PUT'])
    blueprint.add_url_rule('/<department_id>', 'delete',
                           authorize(f'{policy_prefix}.delete')(delete_department),
                           methods=['DELETE'])


register_department_views(departments_bp, Department, 'departments', 'Department')
register_department_views(faculty_departments_bp, FacultyDepartment, 'faculty_departments',
                          'Faculty department')


@faculty_departments_bp.route('/<department_id>/hod', methods=['PUT'])
@authorize('faculty_departments.assign_hod')
@validate_json(HOD_SCHEMA)
def assign_hod(department_id):
    department = get_or_404(FacultyDepartment, department_id, 'Faculty department')
    hod = get_or_404(Profile, request.get_json()['hodId'], 'Profile')

    department.hod_id = hod.id
    if hod.role != Role.HOD.value:
        current_app.logger.info(f"Role of profile {hod.id} changed from {hod.role} to {Role.HOD.value}")
        hod.role = Role.HOD.value
    db.session.commit()

    return jsonify({'data': department.to_dict(), 'message': 'HOD assigned successfully'})
