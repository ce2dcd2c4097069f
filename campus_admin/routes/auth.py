from datetime import datetime

from flask import Blueprint, current_app, g, jsonify, request

from ..auth import issue_token, login_required, resolve_identity
from ..database_models import Account, BloodGroup, Profile, Role, values
from ..errors import AccountLocked, DuplicateResource, Forbidden, InvalidCredentials, ProfileMissing
from ..extensions import db, limiter
from ..policy import authorize
from ..utils import commit_or_conflict
from ..validation import validate_json

auth_bp = Blueprint('auth', __name__)

REGISTER_SCHEMA = {
    'email': {'type': str, 'required': True, 'format': 'email'},
    'password': {'type': str, 'required': True, 'min_length': 6},
    'name': {'type': str, 'required': True, 'min_length': 2, 'max_length': 100},
    'role': {'type': str, 'required': True, 'choices': values(Role)},
    'phoneNumber': {'type': str, 'max_length': 20, 'nullable': True},
    'bloodGroup': {'type': str, 'choices': values(BloodGroup), 'nullable': True},
    'department': {'type': str, 'nullable': True},
    'batch': {'type': str, 'format': 'object_id', 'nullable': True},
    'section': {'type': str, 'nullable': True},
    'year': {'type': int, 'min': 1, 'max': 4, 'nullable': True},
    'studentRollNumber': {'type': str, 'max_length': 50, 'nullable': True},
    'hostelBlockNumber': {'type': str, 'max_length': 20, 'nullable': True},
    'hostelRoomNo': {'type': str, 'max_length': 20, 'nullable': True},
}

LOGIN_SCHEMA = {
    'email': {'type': str, 'required': True, 'format': 'email'},
    'password': {'type': str, 'required': True},
}


@auth_bp.route('/register', methods=['POST'])
@validate_json(REGISTER_SCHEMA)
def register():
    """Students may sign themselves up; every other role needs a super admin."""
    data = request.get_json()
    role = data['role']

    if role != Role.STUDENT.value:
        creator = resolve_identity(optional=True)
        if creator is None or creator.role != Role.SUPER_ADMIN.value:
            raise Forbidden(f'Only a super admin can register a {role} account')
        if not creator.is_active:
            current_app.logger.warning(f"Registration refused for inactive profile {creator.id}")
            raise Forbidden('Account is inactive')

    email = data['email'].strip().lower()
    if Account.query.filter_by(email=email).first():
        raise DuplicateResource('User already exists with this email')

    account = Account(email=email, password=data['password'])
    db.session.add(account)
    db.session.flush()

    is_student = role == Role.STUDENT.value
    profile = Profile(
        account_id=account.id,
        name=data['name'].strip(),
        email=email,
        role=role,
        phone_number=data.get('phoneNumber'),
        blood_group=data.get('bloodGroup'),
        department=data.get('department'),
        batch_id=data.get('batch') if is_student else None,
        section=data.get('section') if is_student else None,
        year=data.get('year') if is_student else None,
        student_roll_number=data.get('studentRollNumber') if is_student else None,
        hostel_block_number=data.get('hostelBlockNumber'),
        hostel_room_no=data.get('hostelRoomNo') if is_student else None,
    )
    db.session.add(profile)
    commit_or_conflict('User already exists with this email')

    current_app.logger.info(f"Registered {role} account {account.email}")
    return jsonify({
        'message': 'User registered successfully',
        'token': issue_token(account),
        'user': profile.to_user_dict()
    }), 201


@auth_bp.route('/login', methods=['POST'])
@limiter.limit(lambda: current_app.config['LOGIN_RATE_LIMIT'])
@validate_json(LOGIN_SCHEMA)
def login():
    data = request.get_json()
    email = data['email'].strip().lower()
    config = current_app.config

    account = Account.query.filter_by(email=email).first()
    if account is None:
        current_app.logger.warning(f"Failed login attempt for email: {email}")
        raise InvalidCredentials()

    now = datetime.utcnow()
    account.clear_expired_lock(now)
    if account.is_locked(now):
        db.session.commit()
        raise AccountLocked(extra={'lockUntil': account.lock_until.isoformat()})

    if not account.check_password(data['password']):
        account.register_failed_login(config['MAX_LOGIN_ATTEMPTS'], config['LOCKOUT_MINUTES'], now)
        db.session.commit()
        current_app.logger.warning(f"Failed login attempt for email: {email}")
        raise InvalidCredentials()

    profile = Profile.query.filter_by(account_id=account.id).first()
    if profile is None:
        db.session.rollback()
        current_app.logger.error(f"Integrity fault: account {account.id} has no profile")
        raise ProfileMissing()

    account.register_successful_login(now)
    profile.last_active = now
    db.session.commit()

    current_app.logger.info(f"User {account.email} logged in successfully")
    return jsonify({
        'message': 'Login successful',
        'token': issue_token(account),
        'user': profile.to_user_dict()
    })


@auth_bp.route('/me', methods=['GET'])
@authorize('auth.me')
def me():
    return jsonify({'user': g.profile.to_user_dict(), 'profile': g.profile.to_dict()})


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    # tokens are stateless; the client discards its copy
    return jsonify({'message': 'Logout successful'})
