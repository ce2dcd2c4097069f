from datetime import datetime, timedelta

from campus_admin.auth import issue_token
from campus_admin.database_models import Account, Profile
from campus_admin.extensions import db


def register_payload(**overrides):
    payload = {
        'email': 'new.student@campus.test',
        'password': 'secret123',
        'name': 'New Student',
        'role': 'student',
        'studentRollNumber': 'CS-001',
        'hostelBlockNumber': 'B1',
    }
    payload.update(overrides)
    return payload


def test_student_can_self_register(client):
    response = client.post('/api/auth/register', json=register_payload())

    assert response.status_code == 201
    body = response.get_json()
    assert body['token']
    assert body['user']['role'] == 'student'
    assert body['user']['email'] == 'new.student@campus.test'
    profile = Profile.query.filter_by(email='new.student@campus.test').one()
    assert profile.student_roll_number == 'CS-001'


def test_registering_staff_role_requires_super_admin(client, make_profile, auth_headers):
    payload = register_payload(email='prof@campus.test', role='faculty')

    anonymous = client.post('/api/auth/register', json=payload)
    assert anonymous.status_code == 403

    student = make_profile('student')
    as_student = client.post('/api/auth/register', json=payload, headers=auth_headers(student))
    assert as_student.status_code == 403

    admin = make_profile('super_admin')
    as_admin = client.post('/api/auth/register', json=payload, headers=auth_headers(admin))
    assert as_admin.status_code == 201
    profile = Profile.query.filter_by(email='prof@campus.test').one()
    assert profile.role == 'faculty'
    assert profile.student_roll_number is None


def test_inactive_super_admin_cannot_register_accounts(client, make_profile, auth_headers):
    admin = make_profile('super_admin', is_active=False)
    payload = register_payload(email='warden@campus.test', role='hostel_warden')

    response = client.post('/api/auth/register', json=payload, headers=auth_headers(admin))

    assert response.status_code == 403
    assert response.get_json() == {'error': 'Account is inactive'}
    assert Profile.query.filter_by(email='warden@campus.test').first() is None
    assert Account.query.filter_by(email='warden@campus.test').first() is None


def test_duplicate_email_is_a_conflict(client):
    client.post('/api/auth/register', json=register_payload())
    response = client.post('/api/auth/register',
                           json=register_payload(email='NEW.student@campus.test', studentRollNumber='CS-002'))

    assert response.status_code == 409
    assert response.get_json()['error'] == 'User already exists with this email'


def test_register_reports_every_invalid_field(client):
    response = client.post('/api/auth/register', json={'email': 'nope', 'password': '123', 'role': 'janitor'})

    assert response.status_code == 400
    body = response.get_json()
    assert body['error'] == 'Validation failed'
    fields = {detail['field'] for detail in body['details']}
    assert fields == {'email', 'password', 'name', 'role'}


def test_login_returns_token_and_user(client, make_profile):
    profile = make_profile('faculty', email='teach@campus.test')

    response = client.post('/api/auth/login', json={'email': 'Teach@campus.test', 'password': 'secret123'})

    assert response.status_code == 200
    body = response.get_json()
    assert body['user']['profileId'] == profile.id
    assert body['user']['id'] == profile.account_id
    assert profile.account.last_login is not None

    me = client.get('/api/auth/me', headers={'Authorization': f"Bearer {body['token']}"})
    assert me.status_code == 200
    assert me.get_json()['profile']['id'] == profile.id


def test_unknown_email_and_wrong_password_look_the_same(client, make_profile):
    make_profile('student', email='s@campus.test')

    unknown = client.post('/api/auth/login', json={'email': 'ghost@campus.test', 'password': 'secret123'})
    wrong = client.post('/api/auth/login', json={'email': 's@campus.test', 'password': 'wrong-password'})

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.get_json() == wrong.get_json() == {'error': 'Invalid credentials'}


def test_account_locks_after_repeated_failures(app, client, make_profile):
    profile = make_profile('student', email='s@campus.test')
    attempts = app.config['MAX_LOGIN_ATTEMPTS']

    for _ in range(attempts):
        response = client.post('/api/auth/login', json={'email': 's@campus.test', 'password': 'bad-password'})
        assert response.status_code == 401

    locked = client.post('/api/auth/login', json={'email': 's@campus.test', 'password': 'secret123'})
    assert locked.status_code == 423
    assert locked.get_json()['lockUntil']
    assert profile.account.failed_login_count == attempts


def test_expired_lock_is_forgotten(client, make_profile):
    profile = make_profile('student', email='s@campus.test')
    account = profile.account
    account.failed_login_count = 5
    account.lock_until = datetime.utcnow() - timedelta(minutes=1)
    db.session.commit()

    response = client.post('/api/auth/login', json={'email': 's@campus.test', 'password': 'secret123'})

    assert response.status_code == 200
    assert account.failed_login_count == 0
    assert account.lock_until is None


def test_missing_and_malformed_tokens_are_rejected(client):
    missing = client.get('/api/auth/me')
    assert missing.status_code == 401
    assert missing.get_json()['error'] == 'Access token required'

    garbage = client.get('/api/auth/me', headers={'Authorization': 'Bearer not-a-jwt'})
    assert garbage.status_code == 401
    assert garbage.get_json()['error'] == 'Invalid token'


def test_token_for_deleted_account_is_rejected(client, make_profile, auth_headers):
    profile = make_profile('student')
    headers = auth_headers(profile)
    db.session.delete(profile.account)
    db.session.commit()

    response = client.get('/api/auth/me', headers=headers)

    assert response.status_code == 401


def test_account_without_profile_fails_closed(client):
    account = Account(email='orphan@campus.test', password='secret123')
    db.session.add(account)
    db.session.commit()

    response = client.get('/api/auth/me', headers={'Authorization': f'Bearer {issue_token(account)}'})

    assert response.status_code == 500
    assert response.get_json() == {'error': 'Authentication failed'}


def test_logout_is_allowed_for_inactive_profiles(client, make_profile, auth_headers):
    profile = make_profile('student', is_active=False)

    response = client.post('/api/auth/logout', headers=auth_headers(profile))

    assert response.status_code == 200
