"""Who may call which endpoint, and which records they may touch.

``POLICIES`` is the single table of allow-lists. There is no role
hierarchy: ``super_admin`` reaches an endpoint only where it is listed.

A policy may also carry a record scope, checked by the view after it has
loaded a record, and a query scope that narrows list queries regardless
of the filters the caller supplied. A scope that cannot be evaluated
because the profile lacks the attribute it compares against denies.
"""
from collections import namedtuple
from functools import wraps

from flask import current_app, g, request
from sqlalchemy import false

from .auth import resolve_identity
from .database_models import Attendance, AttendanceEntry, Complaint, Role
from .errors import Forbidden

SAFE_METHODS = frozenset({'GET', 'HEAD', 'OPTIONS'})

SUPER_ADMIN = Role.SUPER_ADMIN.value
ACADEMIC_STAFF = Role.ACADEMIC_STAFF.value
FACULTY = Role.FACULTY.value
STUDENT = Role.STUDENT.value
MESS_SUPERVISOR = Role.MESS_SUPERVISOR.value
HOSTEL_WARDEN = Role.HOSTEL_WARDEN.value
HOD = Role.HOD.value
DIRECTOR = Role.DIRECTOR.value

ALL_ROLES = frozenset(role.value for role in Role)

Policy = namedtuple('Policy', ['roles', 'record_scope', 'query_scope'], defaults=(None, None))


def roles(*names):
    return frozenset(names)


# Record scopes: (record, profile) -> bool

def own_profile_or_admin(record, profile):
    return profile.role == SUPER_ADMIN or record.id == profile.id


def warden_block_matches(block, profile):
    return bool(profile.hostel_block_number) and block == profile.hostel_block_number


def complaint_owned(complaint, profile):
    return complaint.student_id == profile.id


def complaint_in_warden_block(complaint, profile):
    return warden_block_matches(complaint.hostel_block, profile)


def complaint_visible(complaint, profile):
    if profile.role == STUDENT:
        return complaint_owned(complaint, profile)
    if profile.role == HOSTEL_WARDEN:
        return complaint_in_warden_block(complaint, profile)
    return True


def attendance_visible(attendance, profile):
    if profile.role == STUDENT:
        return attendance.entry_for(profile.id) is not None
    return True


def attendance_class_owned(attendance, profile):
    return attendance.faculty_id == profile.id


def own_student_id(student_id, profile):
    if profile.role == STUDENT:
        return student_id == profile.id
    return True


def course_owned_by_faculty(course, profile):
    if profile.role == FACULTY:
        return course.created_by_id == profile.id
    return True


# Query scopes: (query, profile) -> query

def complaints_scope(query, profile):
    if profile.role == STUDENT:
        return query.filter(Complaint.student_id == profile.id)
    if profile.role == HOSTEL_WARDEN:
        return warden_complaints_scope(query, profile)
    return query


def warden_complaints_scope(query, profile):
    if not profile.hostel_block_number:
        return query.filter(false())
    return query.filter(Complaint.hostel_block == profile.hostel_block_number)


def attendance_scope(query, profile):
    if profile.role == STUDENT:
        return query.filter(Attendance.entries.any(AttendanceEntry.student_id == profile.id))
    return query


COURSE_READERS = roles(SUPER_ADMIN, ACADEMIC_STAFF, HOD, DIRECTOR, FACULTY)
COURSE_WRITERS = roles(SUPER_ADMIN, ACADEMIC_STAFF, FACULTY)
STRUCTURE_WRITERS = roles(SUPER_ADMIN, ACADEMIC_STAFF)
HOLIDAY_MANAGERS = roles(ACADEMIC_STAFF, SUPER_ADMIN)
LEADERSHIP = roles(HOD, DIRECTOR, SUPER_ADMIN)
ASSIGNMENT_READERS = roles(SUPER_ADMIN, ACADEMIC_STAFF, HOD, DIRECTOR)
ASSIGNMENT_WRITERS = roles(SUPER_ADMIN, ACADEMIC_STAFF, HOD)
MESS_STAFF = roles(MESS_SUPERVISOR)

POLICIES = {
    'auth.me': Policy(ALL_ROLES),

    'users.list': Policy(roles(SUPER_ADMIN)),
    'users.get': Policy(roles(SUPER_ADMIN)),
    'users.update': Policy(roles(SUPER_ADMIN)),
    'users.delete': Policy(roles(SUPER_ADMIN)),

    'profiles.list': Policy(roles(SUPER_ADMIN, ACADEMIC_STAFF, HOD, DIRECTOR)),
    'profiles.me': Policy(ALL_ROLES),
    'profiles.update_me': Policy(ALL_ROLES),
    'profiles.get': Policy(ALL_ROLES, record_scope=own_profile_or_admin),
    'profiles.update': Policy(roles(SUPER_ADMIN)),
    'profiles.delete': Policy(roles(SUPER_ADMIN)),

    'attendance.list': Policy(ALL_ROLES, query_scope=attendance_scope),
    'attendance.stats': Policy(LEADERSHIP),
    'attendance.low_attendance': Policy(LEADERSHIP),
    'attendance.get': Policy(ALL_ROLES, record_scope=attendance_visible),
    'attendance.student_summary': Policy(ALL_ROLES, record_scope=own_student_id),
    'attendance.mark': Policy(roles(FACULTY)),
    'attendance.update': Policy(roles(FACULTY), record_scope=attendance_class_owned),

    'complaints.list': Policy(ALL_ROLES, query_scope=complaints_scope),
    'complaints.stats': Policy(LEADERSHIP),
    'complaints.urgent': Policy(roles(HOSTEL_WARDEN), query_scope=warden_complaints_scope),
    'complaints.by_block': Policy(roles(HOSTEL_WARDEN), record_scope=warden_block_matches),
    'complaints.get': Policy(ALL_ROLES, record_scope=complaint_visible),
    'complaints.timeline': Policy(ALL_ROLES, record_scope=complaint_visible),
    'complaints.create': Policy(roles(STUDENT)),
    'complaints.update_status': Policy(roles(HOSTEL_WARDEN), record_scope=complaint_in_warden_block),
    'complaints.complete': Policy(roles(STUDENT), record_scope=complaint_owned),

    'courses.list': Policy(COURSE_READERS),
    'courses.by_batch': Policy(COURSE_READERS),
    'courses.get': Policy(COURSE_READERS),
    'courses.create': Policy(COURSE_WRITERS),
    'courses.update': Policy(COURSE_WRITERS, record_scope=course_owned_by_faculty),
    'courses.delete': Policy(COURSE_WRITERS, record_scope=course_owned_by_faculty),

    'departments.list': Policy(ALL_ROLES),
    'departments.get': Policy(ALL_ROLES),
    'departments.create': Policy(STRUCTURE_WRITERS),
    'departments.update': Policy(STRUCTURE_WRITERS),
    'departments.delete': Policy(STRUCTURE_WRITERS),

    'faculty_departments.list': Policy(ALL_ROLES),
    'faculty_departments.get': Policy(ALL_ROLES),
    'faculty_departments.create': Policy(STRUCTURE_WRITERS),
    'faculty_departments.update': Policy(STRUCTURE_WRITERS),
    'faculty_departments.delete': Policy(STRUCTURE_WRITERS),
    'faculty_departments.assign_hod': Policy(roles(SUPER_ADMIN)),

    'holidays.upcoming': Policy(ALL_ROLES),
    'holidays.current_month': Policy(ALL_ROLES),
    'holidays.check': Policy(ALL_ROLES),
    'holidays.range': Policy(ALL_ROLES),
    'holidays.working_days': Policy(ALL_ROLES),
    'holidays.stats': Policy(LEADERSHIP),
    'holidays.list': Policy(HOLIDAY_MANAGERS),
    'holidays.create': Policy(HOLIDAY_MANAGERS),
    'holidays.bulk_create': Policy(HOLIDAY_MANAGERS),
    'holidays.update': Policy(HOLIDAY_MANAGERS),
    'holidays.delete': Policy(HOLIDAY_MANAGERS),

    'mess_menu.today': Policy(ALL_ROLES),
    'mess_menu.for_date': Policy(ALL_ROLES),
    'mess_menu.week': Policy(ALL_ROLES),
    'mess_menu.list': Policy(MESS_STAFF),
    'mess_menu.create': Policy(MESS_STAFF),
    'mess_menu.bulk_create': Policy(MESS_STAFF),
    'mess_menu.update': Policy(MESS_STAFF),
    'mess_menu.delete': Policy(MESS_STAFF),

    'student_batches.list': Policy(ALL_ROLES),
    'student_batches.get': Policy(ALL_ROLES),
    'student_batches.create': Policy(STRUCTURE_WRITERS),
    'student_batches.update': Policy(STRUCTURE_WRITERS),
    'student_batches.delete': Policy(STRUCTURE_WRITERS),

    'student_batch_sections.by_batch': Policy(ALL_ROLES),
    'student_batch_sections.get': Policy(ALL_ROLES),
    'student_batch_sections.create': Policy(STRUCTURE_WRITERS),
    'student_batch_sections.update': Policy(STRUCTURE_WRITERS),
    'student_batch_sections.delete': Policy(STRUCTURE_WRITERS),

    'subject_assignments.list': Policy(ASSIGNMENT_READERS),
    'subject_assignments.by_subject': Policy(ASSIGNMENT_READERS),
    'subject_assignments.create': Policy(ASSIGNMENT_WRITERS),
    'subject_assignments.update': Policy(ASSIGNMENT_WRITERS),
    'subject_assignments.delete': Policy(ASSIGNMENT_WRITERS),
}


def authorize(endpoint):
    """Authenticate, then apply the role guard declared for ``endpoint``.

    An inactive profile may still read but every write is refused,
    whatever its role.
    """
    policy = POLICIES[endpoint]

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            profile = resolve_identity()

            if request.method not in SAFE_METHODS and not profile.is_active:
                current_app.logger.warning(f"Write refused for inactive profile {profile.id} on {endpoint}")
                raise Forbidden('Account is inactive')

            if profile.role not in policy.roles:
                current_app.logger.warning(f"Role {profile.role} not allowed on {endpoint}")
                raise Forbidden('Insufficient permissions')

            return f(*args, **kwargs)
        decorated_function.policy_endpoint = endpoint
        return decorated_function
    return decorator


def enforce_scope(endpoint, record):
    policy = POLICIES[endpoint]
    if policy.record_scope is None:
        return record
    if not policy.record_scope(record, g.profile):
        current_app.logger.warning(f"Scope denied for profile {g.profile.id} on {endpoint}")
        raise Forbidden('Access denied')
    return record


def apply_query_scope(endpoint, query):
    policy = POLICIES[endpoint]
    if policy.query_scope is None:
        return query
    return policy.query_scope(query, g.profile)
