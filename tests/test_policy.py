import pytest

from campus_admin.database_models import Profile
from campus_admin.extensions import db
from campus_admin.policy import ALL_ROLES, POLICIES


def test_every_policy_names_known_roles():
    for endpoint, policy in POLICIES.items():
        assert policy.roles, endpoint
        assert policy.roles <= ALL_ROLES, endpoint


def test_every_view_is_guarded_by_a_declared_policy(app):
    open_endpoints = {'static', 'auth.register', 'auth.login', 'auth.logout', 'health.health_check'}
    guarded = {endpoint for endpoint in app.view_functions if endpoint not in open_endpoints}
    assert guarded
    for endpoint in guarded:
        policy_endpoint = getattr(app.view_functions[endpoint], 'policy_endpoint', None)
        assert policy_endpoint in POLICIES, endpoint
        assert policy_endpoint.split('.')[0] == endpoint.split('.')[0], endpoint


def test_every_declared_policy_guards_a_view(app):
    in_use = {getattr(view, 'policy_endpoint', None) for view in app.view_functions.values()}
    assert set(POLICIES) <= in_use


@pytest.mark.parametrize('role, path, expected', [
    ('student', '/api/users/', 403),
    ('faculty', '/api/users/', 403),
    ('super_admin', '/api/users/', 200),
    ('student', '/api/attendance/stats/overview', 403),
    ('hod', '/api/attendance/stats/overview', 200),
    ('student', '/api/complaints/stats/overview', 403),
    ('director', '/api/complaints/stats/overview', 200),
    ('student', '/api/courses/', 403),
    ('faculty', '/api/courses/', 200),
    ('hostel_warden', '/api/subject-assignments/', 403),
    ('hod', '/api/subject-assignments/', 200),
    ('student', '/api/holidays/', 403),
    ('academic_staff', '/api/holidays/', 200),
    ('student', '/api/holidays/upcoming', 200),
    ('mess_supervisor', '/api/departments/', 200),
])
def test_role_allow_lists(client, make_profile, auth_headers, role, path, expected):
    response = client.get(path, headers=auth_headers(make_profile(role)))
    assert response.status_code == expected
    if expected == 403:
        assert response.get_json()['error'] == 'Insufficient permissions'


def test_super_admin_is_not_implicitly_allowed(client, make_profile, auth_headers):
    admin = make_profile('super_admin')

    response = client.get('/api/mess-menu/', headers=auth_headers(admin))

    assert response.status_code == 403


def test_role_check_runs_after_authentication(client):
    response = client.get('/api/users/')
    assert response.status_code == 401


def test_inactive_profile_may_read_but_not_write(client, make_profile, auth_headers):
    student = make_profile('student', is_active=False, student_roll_number='R-1', hostel_block_number='B1')
    headers = auth_headers(student)

    assert client.get('/api/profiles/me', headers=headers).status_code == 200

    response = client.put('/api/profiles/me', json={'name': 'Renamed'}, headers=headers)
    assert response.status_code == 403
    assert response.get_json()['error'] == 'Account is inactive'


def test_role_change_applies_to_existing_tokens(client, make_profile, auth_headers):
    profile = make_profile('student')
    headers = auth_headers(profile)
    assert client.get('/api/users/', headers=headers).status_code == 403

    profile.role = 'super_admin'
    db.session.commit()

    assert client.get('/api/users/', headers=headers).status_code == 200


def test_profiles_are_visible_to_their_owner_and_super_admin(client, make_profile, auth_headers):
    owner = make_profile('student')
    other = make_profile('student')
    admin = make_profile('super_admin')
    path = f'/api/profiles/{owner.id}'

    assert client.get(path, headers=auth_headers(owner)).status_code == 200
    assert client.get(path, headers=auth_headers(admin)).status_code == 200
    denied = client.get(path, headers=auth_headers(other))
    assert denied.status_code == 403
    assert denied.get_json()['error'] == 'Access denied'


def test_profile_update_rejects_null_name(client, make_profile, auth_headers):
    owner = make_profile('student', student_roll_number='CS-11', phone_number='555-0101')
    headers = auth_headers(owner)

    response = client.put('/api/profiles/me', json={'name': None}, headers=headers)
    assert response.status_code == 400
    assert response.get_json()['details'] == [{'field': 'name', 'message': 'Must not be null'}]

    cleared = client.put('/api/profiles/me', json={'phoneNumber': None}, headers=headers)
    assert cleared.status_code == 200
    assert cleared.get_json()['data']['phoneNumber'] is None
    assert cleared.get_json()['data']['studentRollNumber'] == 'CS-11'


def test_taken_roll_number_is_a_conflict(client, make_profile, auth_headers):
    make_profile('student', student_roll_number='CS-12')
    owner = make_profile('student', student_roll_number='CS-13')

    response = client.put('/api/profiles/me', json={'studentRollNumber': 'CS-12'}, headers=auth_headers(owner))

    assert response.status_code == 409
    assert response.get_json() == {'error': 'Roll number already in use'}


def test_academic_staff_list_defaults_to_faculty(client, make_profile, auth_headers):
    staff = make_profile('academic_staff')
    make_profile('faculty')
    make_profile('student')

    body = client.get('/api/profiles/', headers=auth_headers(staff)).get_json()

    assert {profile['role'] for profile in body['data']} == {'faculty'}
    assert body['pagination']['totalItems'] == 1


def test_deleting_a_user_removes_the_profile(client, make_profile, auth_headers):
    admin = make_profile('super_admin')
    victim = make_profile('student')
    victim_id = victim.id

    response = client.delete(f'/api/users/{victim.account_id}', headers=auth_headers(admin))

    assert response.status_code == 200
    assert db.session.get(Profile, victim_id) is None


def test_malformed_and_unknown_ids(client, make_profile, auth_headers):
    headers = auth_headers(make_profile('super_admin'))

    malformed = client.get('/api/profiles/not-an-id', headers=headers)
    assert malformed.status_code == 400
    assert malformed.get_json()['details'][0]['field'] == 'id'

    unknown = client.get('/api/profiles/' + 'a' * 24, headers=headers)
    assert unknown.status_code == 404
    assert unknown.get_json()['error'] == 'Profile not found'


def test_unknown_route_is_json(client):
    response = client.get('/api/nowhere')
    assert response.status_code == 404
    assert response.get_json() == {'error': 'Route not found'}
