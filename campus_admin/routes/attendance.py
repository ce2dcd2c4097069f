from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import case, func

from ..cache import cache_key, get_cache
from ..database_models import Attendance, AttendanceEntry, AttendanceStatus, Profile, values
from ..errors import DuplicateResource, ValidationFailed
from ..extensions import db
from ..policy import STUDENT, apply_query_scope, authorize, enforce_scope
from ..utils import bool_arg, commit_or_conflict, date_arg, float_arg, get_or_404, int_arg, paginate, to_date
from ..validation import OBJECT_ID_RE, validate_json

attendance_bp = Blueprint('attendance', __name__)

CACHE_NAMESPACE = 'attendance'
DUPLICATE_MESSAGE = 'Attendance has already been marked for this class on the specified date'

ENTRY_RULES = {
    'studentAttendance': {'type': list, 'required': True, 'min_items': 1},
    'studentAttendance.*.studentId': {'type': str, 'required': True, 'format': 'object_id'},
    'studentAttendance.*.status': {'type': str, 'required': True, 'choices': values(AttendanceStatus)},
    'studentAttendance.*.remarks': {'type': str, 'max_length': 500, 'nullable': True},
}

MARK_SCHEMA = dict({
    'date': {'type': str, 'required': True, 'format': 'iso_date'},
    'timetableId': {'type': str, 'format': 'object_id', 'nullable': True},
    'classInfo': {'type': dict, 'required': True},
    'classInfo.subject': {'type': str, 'required': True},
    'classInfo.startTime': {'type': str, 'required': True},
    'classInfo.endTime': {'type': str, 'required': True},
    'classInfo.location': {'type': str, 'required': True},
    'timetableInfo': {'type': dict, 'required': True},
    'timetableInfo.branch': {'type': str, 'required': True},
    'timetableInfo.section': {'type': str, 'required': True},
    'timetableInfo.year': {'type': int, 'required': True, 'min': 1, 'max': 4},
    'timetableInfo.semester': {'type': int, 'required': True, 'min': 1, 'max': 8},
    'academicYear': {'type': str, 'required': True},
}, **ENTRY_RULES)


def percentage(part, whole):
    return round(part / whole * 100, 2) if whole else 0


def status_count(status):
    return func.sum(case((AttendanceEntry.status == status, 1), else_=0))


def stats_conditions():
    conditions = [Attendance.is_marked.is_(True)]
    academic_year = request.args.get('academicYear')
    branch = request.args.get('branch')
    year = int_arg('year', minimum=1, maximum=4)
    semester = int_arg('semester', minimum=1, maximum=8)
    if academic_year:
        conditions.append(Attendance.academic_year == academic_year)
    if branch:
        conditions.append(Attendance.branch == branch)
    if year:
        conditions.append(Attendance.year == year)
    if semester:
        conditions.append(Attendance.semester == semester)
    return conditions


@attendance_bp.route('/', methods=['GET'])
@authorize('attendance.list')
def list_attendance():
    query = Attendance.query
    args = request.args

    day = date_arg('date')
    if day:
        query = query.filter(Attendance.date == day)
    for arg, column in (('branch', Attendance.branch), ('section', Attendance.section),
                        ('subject', Attendance.subject), ('facultyId', Attendance.faculty_id),
                        ('academicYear', Attendance.academic_year)):
        if args.get(arg):
            query = query.filter(column == args[arg])
    year = int_arg('year', minimum=1, maximum=4)
    if year:
        query = query.filter(Attendance.year == year)
    semester = int_arg('semester', minimum=1, maximum=8)
    if semester:
        query = query.filter(Attendance.semester == semester)
    is_marked = bool_arg('isMarked')
    if is_marked is not None:
        query = query.filter(Attendance.is_marked.is_(is_marked))

    # for students the scope below decides whose records they see
    student_id = args.get('studentId')
    if student_id and g.profile.role != STUDENT:
        query = query.filter(Attendance.entries.any(AttendanceEntry.student_id == student_id))
    query = apply_query_scope('attendance.list', query)

    cache = get_cache()
    filters = {key: value for key, value in args.items() if key not in ('page', 'limit')}
    key = cache_key(CACHE_NAMESPACE, args.get('page', 1), args.get('limit', 20),
                    g.profile.role, g.profile.id, **filters)
    cached = cache.get(key)
    if cached is not None:
        return jsonify(cached)

    response = paginate(query.order_by(Attendance.date.desc()))
    cache.set(key, response, current_app.config['CACHE_LIST_TTL'])
    return jsonify(response)


@attendance_bp.route('/stats/overview', methods=['GET'])
@authorize('attendance.stats')
def attendance_stats():
    conditions = stats_conditions()

    cache = get_cache()
    key = cache_key(f'{CACHE_NAMESPACE}:stats', **request.args.to_dict())
    cached = cache.get(key)
    if cached is not None:
        return jsonify(cached)

    total_classes = Attendance.query.filter(*conditions).count()
    entries = db.session.query(AttendanceEntry).join(Attendance).filter(*conditions)
    total_students = entries.with_entities(func.count(func.distinct(AttendanceEntry.student_id))).scalar()

    counts = dict(entries.with_entities(AttendanceEntry.status, func.count(AttendanceEntry.id))
                  .group_by(AttendanceEntry.status).all())
    total_records = sum(counts.values())
    present = counts.get(AttendanceStatus.PRESENT.value, 0)
    late = counts.get(AttendanceStatus.LATE.value, 0)

    subject_rows = (entries.with_entities(
        Attendance.subject,
        func.count(AttendanceEntry.id),
        status_count(AttendanceStatus.PRESENT.value),
        status_count(AttendanceStatus.ABSENT.value),
    ).group_by(Attendance.subject).all())
    subject_stats = [{
        'subject': subject,
        'totalRecords': total,
        'presentCount': int(present_count or 0),
        'absentCount': int(absent_count or 0),
        'presentPercentage': percentage(present_count or 0, total),
    } for subject, total, present_count, absent_count in subject_rows]
    subject_stats.sort(key=lambda row: row['presentPercentage'], reverse=True)

    response = {
        'data': {
            'totalClasses': total_classes,
            'totalStudents': total_students or 0,
            'totalRecords': total_records,
            'presentCount': present,
            'absentCount': counts.get(AttendanceStatus.ABSENT.value, 0),
            'lateCount': late,
            'excusedCount': counts.get(AttendanceStatus.EXCUSED.value, 0),
            'overallPercentage': percentage(present + late, total_records),
            'subjectStats': subject_stats,
        }
    }
    cache.set(key, response, current_app.config['CACHE_STATS_TTL'])
    return jsonify(response)


@attendance_bp.route('/stats/low-attendance', methods=['GET'])
@authorize('attendance.low_attendance')
def low_attendance():
    threshold = float_arg('threshold', 75.0)
    rows = (db.session.query(
        AttendanceEntry.student_id,
        func.count(AttendanceEntry.id),
        status_count(AttendanceStatus.PRESENT.value),
        status_count(AttendanceStatus.LATE.value),
    ).join(Attendance).filter(*stats_conditions()).group_by(AttendanceEntry.student_id).all())

    students = []
    for student_id, total, present, late in rows:
        present, late = int(present or 0), int(late or 0)
        attendance_percentage = percentage(present + late, total)
        if attendance_percentage >= threshold:
            continue
        student = db.session.get(Profile, student_id)
        if student is None:
            continue
        students.append({
            'studentId': student_id,
            'studentName': student.name,
            'studentRollNumber': student.student_roll_number,
            'branch': student.branch,
            'batch': student.batch_id,
            'year': student.year,
            'totalClasses': total,
            'presentCount': present,
            'lateCount': late,
            'attendancePercentage': attendance_percentage,
        })
    students.sort(key=lambda row: row['attendancePercentage'])
    return jsonify({'data': students, 'threshold': threshold})


@attendance_bp.route('/<attendance_id>', methods=['GET'])
@authorize('attendance.get')
def get_attendance(attendance_id):
    attendance = get_or_404(Attendance, attendance_id, 'Attendance record')
    enforce_scope('attendance.get', attendance)
    return jsonify({'data': attendance.to_dict()})


@attendance_bp.route('/student/<student_id>/summary', methods=['GET'])
@authorize('attendance.student_summary')
def student_summary(student_id):
    if not OBJECT_ID_RE.match(student_id):
        raise ValidationFailed([{'field': 'studentId', 'message': 'Must be a valid identifier'}])
    enforce_scope('attendance.student_summary', student_id)

    query = Attendance.query.filter(Attendance.entries.any(AttendanceEntry.student_id == student_id))
    if request.args.get('academicYear'):
        query = query.filter(Attendance.academic_year == request.args['academicYear'])
    semester = int_arg('semester', minimum=1, maximum=8)
    if semester:
        query = query.filter(Attendance.semester == semester)
    records = query.order_by(Attendance.date.desc()).all()

    subject_stats = {}
    for record in records:
        entry = record.entry_for(student_id)
        stats = subject_stats.setdefault(record.subject, {
            'total': 0, 'present': 0, 'absent': 0, 'late': 0, 'excused': 0
        })
        stats['total'] += 1
        stats[entry.status] += 1

    for stats in subject_stats.values():
        stats['presentPercentage'] = percentage(stats['present'] + stats['late'], stats['total'])
        stats['absentPercentage'] = percentage(stats['absent'], stats['total'])

    total_classes = sum(stats['total'] for stats in subject_stats.values())
    total_present = sum(stats['present'] + stats['late'] for stats in subject_stats.values())
    return jsonify({
        'data': {
            'studentId': student_id,
            'overallPercentage': percentage(total_present, total_classes),
            'totalClasses': total_classes,
            'totalPresent': total_present,
            'subjectStats': subject_stats,
            'recentRecords': [record.to_dict() for record in records[:10]],
        }
    })


def find_marked_slot(slot):
    return Attendance.query.filter_by(**slot).first()


@attendance_bp.route('/mark', methods=['POST'])
@authorize('attendance.mark')
@validate_json(MARK_SCHEMA)
def mark_attendance():
    data = request.get_json()
    class_info = data['classInfo']
    timetable = data['timetableInfo']
    day = to_date(data['date'], 'date')

    slot = dict(
        date=day,
        subject=class_info['subject'].strip(),
        start_time=class_info['startTime'].strip(),
        branch=timetable['branch'].strip(),
        section=timetable['section'].strip(),
        year=timetable['year'],
        semester=timetable['semester'],
    )
    # best-effort pre-check; the unique constraint settles races at commit
    if find_marked_slot(slot):
        raise DuplicateResource(DUPLICATE_MESSAGE)

    attendance = Attendance(
        timetable_id=data.get('timetableId'),
        end_time=class_info['endTime'].strip(),
        location=class_info['location'].strip(),
        faculty_id=g.profile.id,
        academic_year=data['academicYear'].strip(),
        **slot
    )
    attendance.replace_entries(data['studentAttendance'], g.profile.id)
    db.session.add(attendance)
    commit_or_conflict(DUPLICATE_MESSAGE)
    get_cache().invalidate(CACHE_NAMESPACE)

    current_app.logger.info(f"Attendance marked: {attendance.id} by {g.profile.id}")
    return jsonify({'data': attendance.to_dict(), 'message': 'Attendance marked successfully'}), 201


@attendance_bp.route('/<attendance_id>', methods=['PUT'])
@authorize('attendance.update')
@validate_json(ENTRY_RULES)
def update_attendance(attendance_id):
    attendance = get_or_404(Attendance, attendance_id, 'Attendance record')
    enforce_scope('attendance.update', attendance)

    attendance.replace_entries(request.get_json()['studentAttendance'], g.profile.id)
    db.session.commit()
    get_cache().invalidate(CACHE_NAMESPACE)

    current_app.logger.info(f"Attendance updated: {attendance.id} by {g.profile.id}")
    return jsonify({'data': attendance.to_dict(), 'message': 'Attendance updated successfully'})
