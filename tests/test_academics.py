import pytest
from sqlalchemy.exc import IntegrityError

from campus_admin.database_models import Profile, StudentBatch
from campus_admin.errors import DuplicateResource
from campus_admin.extensions import db
from campus_admin.utils import commit_or_conflict


@pytest.fixture
def staff(make_profile, auth_headers):
    return auth_headers(make_profile('academic_staff'))


@pytest.fixture
def batch(client, staff):
    response = client.post('/api/student-batches/', json={'name': '2024-2028'}, headers=staff)
    assert response.status_code == 201
    return response.get_json()['data']


def course_payload(batch, **overrides):
    payload = {'name': 'Data Structures', 'code': 'CS201', 'batch': batch['id'], 'semester': 3,
               'credits': 4, 'academicYear': '2024-25'}
    payload.update(overrides)
    return payload


def test_batches_and_sections(client, staff, batch, make_profile, auth_headers):
    assert client.post('/api/student-batches/', json={'name': '2024-2028'}, headers=staff).status_code == 409

    section = client.post('/api/student-batch-sections/', json={'name': 'A', 'batch': batch['id']}, headers=staff)
    assert section.status_code == 201
    assert section.get_json()['data']['batchName'] == '2024-2028'
    assert client.post('/api/student-batch-sections/', json={'name': 'A', 'batch': batch['id']},
                       headers=staff).status_code == 409

    student = auth_headers(make_profile('student'))
    listed = client.get(f"/api/student-batch-sections/batch/{batch['id']}", headers=student)
    assert [s['name'] for s in listed.get_json()['data']] == ['A']
    assert client.post('/api/student-batches/', json={'name': 'X'}, headers=student).status_code == 403


def test_course_duplicate_key_is_a_conflict(client, staff, batch):
    assert client.post('/api/courses/', json=course_payload(batch), headers=staff).status_code == 201

    duplicate = client.post('/api/courses/', json=course_payload(batch, name='Other name'), headers=staff)
    assert duplicate.status_code == 409

    next_year = client.post('/api/courses/', json=course_payload(batch, academicYear='2025-26'), headers=staff)
    assert next_year.status_code == 201


def test_faculty_only_touch_their_own_courses(client, staff, batch, make_profile, auth_headers):
    owner = auth_headers(make_profile('faculty'))
    other = auth_headers(make_profile('faculty'))
    course = client.post('/api/courses/', json=course_payload(batch), headers=owner).get_json()['data']
    path = f"/api/courses/{course['id']}"

    assert client.put(path, json={'credits': 3}, headers=other).status_code == 403
    assert client.delete(path, headers=other).status_code == 403
    assert client.put(path, json={'credits': 3}, headers=owner).get_json()['data']['credits'] == 3
    assert client.put(path, json={'isActive': False}, headers=staff).status_code == 200

    active = client.get('/api/courses/', headers=owner).get_json()
    inactive = client.get('/api/courses/?isActive=false', headers=owner).get_json()
    assert active['pagination']['totalItems'] == 0
    assert inactive['pagination']['totalItems'] == 1


def test_course_rejects_out_of_range_values(client, staff, batch):
    response = client.post('/api/courses/', json=course_payload(batch, semester=9, credits=0), headers=staff)
    assert {d['field'] for d in response.get_json()['details']} == {'semester', 'credits'}


def test_department_names_are_unique(client, staff, make_profile, auth_headers):
    created = client.post('/api/departments/', json={'name': 'Computer Science', 'code': 'cse'}, headers=staff)
    assert created.status_code == 201
    assert created.get_json()['data']['code'] == 'CSE'

    duplicate = client.post('/api/departments/', json={'name': 'Computer Science'}, headers=staff)
    assert duplicate.status_code == 409

    listed = client.get('/api/departments/', headers=auth_headers(make_profile('student')))
    assert [d['name'] for d in listed.get_json()['data']] == ['Computer Science']


def test_assigning_hod_promotes_the_profile(client, staff, make_profile, auth_headers):
    department = client.post('/api/faculty-departments/', json={'name': 'Physics'},
                             headers=staff).get_json()['data']
    professor = make_profile('faculty')
    path = f"/api/faculty-departments/{department['id']}/hod"

    assert client.put(path, json={'hodId': professor.id}, headers=staff).status_code == 403

    admin = auth_headers(make_profile('super_admin'))
    response = client.put(path, json={'hodId': professor.id}, headers=admin)
    assert response.status_code == 200
    assert response.get_json()['data']['hod']['id'] == professor.id
    assert db.session.get(Profile, professor.id).role == 'hod'


def test_subject_assignments(client, make_profile, auth_headers):
    hod = auth_headers(make_profile('hod'))
    professor = make_profile('faculty', department='Physics')
    student = make_profile('student')
    payload = {'subject': 'Quantum Mechanics', 'facultyId': professor.id, 'academicYear': '2024-25'}

    created = client.post('/api/subject-assignments/', json=payload, headers=hod)
    assert created.status_code == 201
    assert created.get_json()['data']['department'] == 'Physics'
    assert client.post('/api/subject-assignments/', json=payload, headers=hod).status_code == 409
    assert client.post('/api/subject-assignments/', json=dict(payload, facultyId=student.id),
                       headers=hod).status_code == 400

    found = client.get('/api/subject-assignments/subject/quantum', headers=hod)
    assert found.get_json()['data']['facultyId'] == professor.id
    assert client.get('/api/subject-assignments/subject/biology', headers=hod).status_code == 404


def test_batch_in_use_cannot_be_deleted(client, staff, batch):
    course = client.post('/api/courses/', json=course_payload(batch), headers=staff).get_json()['data']
    client.post('/api/student-batch-sections/', json={'name': 'A', 'batch': batch['id']}, headers=staff)
    path = f"/api/student-batches/{batch['id']}"

    refused = client.delete(path, headers=staff)
    assert refused.status_code == 409
    assert refused.get_json() == {'error': 'Batch is still assigned to profiles or courses'}

    assert client.delete(f"/api/courses/{course['id']}", headers=staff).status_code == 200
    assert client.delete(path, headers=staff).status_code == 200
    assert client.get(f"/api/student-batch-sections/batch/{batch['id']}", headers=staff).status_code == 404


def test_only_unique_violations_become_conflicts(app):
    db.session.add(StudentBatch(name=None))
    with pytest.raises(IntegrityError):
        commit_or_conflict('Batch name must be unique')

    db.session.add(StudentBatch(name='2025-2029'))
    db.session.commit()
    db.session.add(StudentBatch(name='2025-2029'))
    with pytest.raises(DuplicateResource):
        commit_or_conflict('Batch name must be unique')
    assert StudentBatch.query.count() == 1
