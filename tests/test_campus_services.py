from datetime import date, datetime, timedelta

import pytest

from campus_admin.database_models import MessMenu


@pytest.fixture
def staff(make_profile, auth_headers):
    return auth_headers(make_profile('academic_staff'))


@pytest.fixture
def student(make_profile, auth_headers):
    return auth_headers(make_profile('student'))


def holiday(**overrides):
    payload = {'title': 'Winter Break', 'date': '2024-01-02', 'endDate': '2024-01-03',
               'type': 'academic_holiday', 'academicYear': '2023-24'}
    payload.update(overrides)
    return payload


def test_multi_day_holiday_covers_every_day(client, staff, student):
    assert client.post('/api/holidays/', json=holiday(), headers=staff).status_code == 201

    inside = client.get('/api/holidays/check/2024-01-03', headers=student).get_json()
    assert inside['isHoliday'] is True
    assert inside['holiday']['duration'] == 2
    assert client.get('/api/holidays/check/2024-01-04', headers=student).get_json()['isHoliday'] is False


def test_working_days_skip_weekends_and_holidays(client, staff, student):
    client.post('/api/holidays/', json=holiday(), headers=staff)

    response = client.get('/api/holidays/working-days?startDate=2024-01-01&endDate=2024-01-07', headers=student)

    assert response.get_json()['data'] == {'workingDays': 3}


def test_holiday_audience_filters(client, staff, make_profile, auth_headers):
    client.post('/api/holidays/', json=holiday(affects={'students': False, 'faculty': True}), headers=staff)

    students = client.get('/api/holidays/range?startDate=2024-01-01&endDate=2024-01-31', headers=staff)
    faculty = client.get('/api/holidays/range?startDate=2024-01-01&endDate=2024-01-31&userType=faculty',
                         headers=staff)
    assert students.get_json()['data'] == []
    assert len(faculty.get_json()['data']) == 1

    bad = client.get('/api/holidays/upcoming?userType=aliens', headers=staff)
    assert bad.status_code == 400
    assert bad.get_json()['details'][0]['field'] == 'userType'


def test_upcoming_holidays(client, staff, student):
    soon = (date.today() + timedelta(days=3)).isoformat()
    later = (date.today() + timedelta(days=90)).isoformat()
    client.post('/api/holidays/', json=holiday(date=soon, endDate=None, title='Founders Day'), headers=staff)
    client.post('/api/holidays/', json=holiday(date=later, endDate=None, title='Far Away Day'), headers=staff)

    upcoming = client.get('/api/holidays/upcoming', headers=student).get_json()['data']
    assert [h['title'] for h in upcoming] == ['Founders Day']


def test_end_date_before_start_is_rejected(client, staff):
    response = client.post('/api/holidays/', json=holiday(endDate='2024-01-01'), headers=staff)
    assert response.status_code == 400
    assert response.get_json()['details'][0]['field'] == 'endDate'


def test_bulk_holidays_report_rejected_items(client, staff):
    response = client.post('/api/holidays/bulk', json={'holidays': [
        holiday(title='Republic Day', date='2024-01-26', endDate=None, type='national_holiday'),
        holiday(title='Nameless', type='made_up'),
    ]}, headers=staff)

    assert response.status_code == 201
    body = response.get_json()
    assert [h['title'] for h in body['data']] == ['Republic Day']
    assert body['errors'][0]['title'] == 'Nameless'
    assert body['errors'][0]['details'][0]['field'] == 'type'


def test_holiday_update_records_editor(client, staff):
    created = client.post('/api/holidays/', json=holiday(), headers=staff).get_json()['data']

    updated = client.put(f"/api/holidays/{created['id']}", json={'endDate': '2024-01-05'}, headers=staff)

    assert updated.status_code == 200
    body = updated.get_json()['data']
    assert body['endDate'] == '2024-01-05'
    assert body['updatedBy'] is not None


def menu(day, **overrides):
    payload = {
        'date': day,
        'academicYear': '2024-25',
        'breakfast': {'veg': {'items': [{'name': 'Idli'}]}},
        'lunch': {'veg': {'items': [{'name': 'Rice'}]}, 'timing': {'start': '12:30', 'end': '14:30'}},
        'dinner': {'nonVeg': {'items': [{'name': 'Chicken curry'}]}},
    }
    payload.update(overrides)
    return payload


def test_mess_menu_is_managed_by_mess_supervisor(client, make_profile, auth_headers, student):
    supervisor = auth_headers(make_profile('mess_supervisor'))
    today = date.today().isoformat()

    created = client.post('/api/mess-menu/', json=menu(today), headers=supervisor)
    assert created.status_code == 201
    data = created.get_json()['data']
    assert data['breakfast']['timing'] == {'start': '07:00', 'end': '09:00'}
    assert data['lunch']['timing'] == {'start': '12:30', 'end': '14:30'}
    assert data['breakfast']['nonVeg'] == {'items': []}

    duplicate = client.post('/api/mess-menu/', json=menu(today), headers=supervisor)
    assert duplicate.status_code == 409
    assert duplicate.get_json()['existingMenuId'] == data['id']

    todays = client.get('/api/mess-menu/today', headers=student)
    assert todays.status_code == 200
    assert 'currentMeal' in todays.get_json()

    admin = auth_headers(make_profile('super_admin'))
    assert client.post('/api/mess-menu/', json=menu('2030-01-01'), headers=admin).status_code == 403


def test_mess_menu_bulk_and_week(client, make_profile, auth_headers, student):
    supervisor = auth_headers(make_profile('mess_supervisor'))
    response = client.post('/api/mess-menu/bulk', json={'menus': [
        menu('2024-05-06'), menu('2024-05-07'), menu('2024-05-07'), menu('2024-05-20'),
        {'date': 'soon'},
    ]}, headers=supervisor)

    body = response.get_json()
    assert len(body['data']) == 3
    assert len(body['errors']) == 2

    week = client.get('/api/mess-menu/week/2024-05-06', headers=student).get_json()['data']
    assert [m['date'] for m in week] == ['2024-05-06', '2024-05-07']
    assert client.get('/api/mess-menu/date/2024-05-08', headers=student).status_code == 404


def test_current_meal_follows_timings():
    menu = MessMenu(date=date(2024, 1, 1), academic_year='2024-25', created_by_id='a' * 24)
    menu.set_meals({'dinner': {'timing': {'start': '18:30', 'end': '20:00'}}})

    assert menu.current_meal(datetime(2024, 1, 1, 8, 0)) == 'breakfast'
    assert menu.current_meal(datetime(2024, 1, 1, 18, 45)) == 'dinner'
    assert menu.current_meal(datetime(2024, 1, 1, 16, 0)) is None


def test_health_reports_services(client):
    response = client.get('/api/health')

    assert response.status_code == 200
    body = response.get_json()
    assert body['status'] == 'healthy'
    assert body['services'] == {'api': 'healthy', 'database': 'healthy', 'cache': 'healthy'}
    assert response.headers['X-Content-Type-Options'] == 'nosniff'


def test_holiday_update_rejects_null_on_required_columns(client, staff):
    created = client.post('/api/holidays/', json=holiday(), headers=staff).get_json()['data']
    path = f"/api/holidays/{created['id']}"

    response = client.put(path, json={'title': None, 'type': None}, headers=staff)
    assert response.status_code == 400
    assert response.get_json()['details'] == [
        {'field': 'title', 'message': 'Must not be null'},
        {'field': 'type', 'message': 'Must not be null'},
    ]

    cleared = client.put(path, json={'endDate': None, 'description': None}, headers=staff)
    assert cleared.status_code == 200
    assert cleared.get_json()['data']['title'] == 'Winter Break'
    assert cleared.get_json()['data']['endDate'] is None
