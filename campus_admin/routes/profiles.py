from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import or_

from ..database_models import BloodGroup, Profile, Role, values
from ..extensions import db
from ..policy import ACADEMIC_STAFF, authorize, enforce_scope
from ..utils import commit_or_conflict, get_or_404, int_arg, paginate
from ..validation import validate_json

profiles_bp = Blueprint('profiles', __name__)

PROFILE_SCHEMA = {
    'name': {'type': str, 'min_length': 2, 'max_length': 100},
    'phoneNumber': {'type': str, 'max_length': 20, 'nullable': True},
    'bloodGroup': {'type': str, 'choices': values(BloodGroup), 'nullable': True},
    'department': {'type': str, 'max_length': 100, 'nullable': True},
    'designation': {'type': str, 'max_length': 100, 'nullable': True},
    'studentRollNumber': {'type': str, 'max_length': 50, 'nullable': True},
    'hostelRoomNo': {'type': str, 'max_length': 20, 'nullable': True},
    'branch': {'type': str, 'max_length': 100, 'nullable': True},
    'batch': {'type': str, 'format': 'object_id', 'nullable': True},
    'section': {'type': str, 'max_length': 20, 'nullable': True},
    'year': {'type': int, 'min': 1, 'max': 4, 'nullable': True},
    'address': {'type': dict, 'nullable': True},
    'emergencyContact': {'type': dict, 'nullable': True},
    'avatar': {'type': str, 'max_length': 500, 'nullable': True},
}

ADMIN_PROFILE_SCHEMA = dict(
    PROFILE_SCHEMA,
    hostelBlockNumber={'type': str, 'max_length': 20, 'nullable': True},
    role={'type': str, 'choices': values(Role)},
    isActive={'type': bool},
)


@profiles_bp.route('/', methods=['GET'])
@authorize('profiles.list')
def list_profiles():
    query = Profile.query
    role = request.args.get('role')
    department = request.args.get('department')
    search = request.args.get('search')
    year = int_arg('year', minimum=1, maximum=4)

    if role:
        query = query.filter(Profile.role == role)
    elif g.profile.role == ACADEMIC_STAFF:
        # academic staff manage faculty unless they ask for another role
        query = query.filter(Profile.role == Role.FACULTY.value)
    if department:
        query = query.filter(Profile.department == department)
    if year:
        query = query.filter(Profile.year == year)
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(
            Profile.name.ilike(pattern),
            Profile.email.ilike(pattern),
            Profile.student_roll_number.ilike(pattern),
        ))

    return jsonify(paginate(query.order_by(Profile.created_at.desc()), default_limit=10))


@profiles_bp.route('/me', methods=['GET'])
@authorize('profiles.me')
def get_my_profile():
    return jsonify({'data': g.profile.to_dict()})


@profiles_bp.route('/me', methods=['PUT'])
@authorize('profiles.update_me')
@validate_json(PROFILE_SCHEMA)
def update_my_profile():
    g.profile.apply_changes(request.get_json(), Profile.SELF_EDITABLE)
    commit_or_conflict('Roll number already in use')
    return jsonify({'data': g.profile.to_dict(), 'message': 'Profile updated successfully'})


@profiles_bp.route('/<profile_id>', methods=['GET'])
@authorize('profiles.get')
def get_profile(profile_id):
    profile = enforce_scope('profiles.get', get_or_404(Profile, profile_id, 'Profile'))
    return jsonify({'data': profile.to_dict()})


@profiles_bp.route('/<profile_id>', methods=['PUT'])
@authorize('profiles.update')
@validate_json(ADMIN_PROFILE_SCHEMA)
def update_profile(profile_id):
    profile = get_or_404(Profile, profile_id, 'Profile')
    data = request.get_json()
    previous_role = profile.role

    profile.apply_changes(data, Profile.ADMIN_EDITABLE)
    commit_or_conflict('Roll number already in use')

    if profile.role != previous_role:
        current_app.logger.info(f"Role of profile {profile.id} changed from {previous_role} to {profile.role}")
    return jsonify({'data': profile.to_dict(), 'message': 'Profile updated successfully'})


@profiles_bp.route('/<profile_id>', methods=['DELETE'])
@authorize('profiles.delete')
def delete_profile(profile_id):
    profile = get_or_404(Profile, profile_id, 'Profile')
    # an account never outlives its profile
    db.session.delete(profile.account)
    db.session.commit()

    current_app.logger.info(f"Profile and account deleted: {profile_id}")
    return jsonify({'message': 'Profile and user deleted successfully'})
