from flask import Blueprint, current_app, g, jsonify, request

from ..database_models import Course, StudentBatch
from ..errors import DuplicateResource
from ..extensions import db
from ..policy import authorize, enforce_scope
from ..utils import bool_arg, commit_or_conflict, get_or_404, int_arg, paginate
from ..validation import validate_json

courses_bp = Blueprint('courses', __name__)

DUPLICATE_MESSAGE = 'A course with this code already exists for this batch and academic year'

COURSE_SCHEMA = {
    'name': {'type': str, 'required': True, 'max_length': 200},
    'code': {'type': str, 'required': True, 'max_length': 50},
    'description': {'type': str, 'nullable': True},
    'batch': {'type': str, 'required': True, 'format': 'object_id'},
    'semester': {'type': int, 'required': True, 'min': 1, 'max': 8},
    'credits': {'type': int, 'required': True, 'min': 1, 'max': 10},
    'academicYear': {'type': str, 'required': True},
}

UPDATE_SCHEMA = dict(
    {field: dict(rules, required=False) for field, rules in COURSE_SCHEMA.items()},
    isActive={'type': bool},
)


def find_duplicate(code, batch_id, academic_year, exclude_id=None):
    query = Course.query.filter_by(code=code, batch_id=batch_id, academic_year=academic_year)
    if exclude_id:
        query = query.filter(Course.id != exclude_id)
    return query.first()


@courses_bp.route('/', methods=['GET'])
@authorize('courses.list')
def list_courses():
    is_active = bool_arg('isActive')
    query = Course.query.filter(Course.is_active.is_(True if is_active is None else is_active))

    if request.args.get('batch'):
        query = query.filter(Course.batch_id == request.args['batch'])
    semester = int_arg('semester', minimum=1, maximum=8)
    if semester:
        query = query.filter(Course.semester == semester)
    if request.args.get('academicYear'):
        query = query.filter(Course.academic_year == request.args['academicYear'])

    return jsonify(paginate(query.order_by(Course.batch_id, Course.semester, Course.name)))


@courses_bp.route('/batch/<batch_id>', methods=['GET'])
@authorize('courses.by_batch')
def courses_by_batch(batch_id):
    get_or_404(StudentBatch, batch_id, 'Student batch')
    query = Course.query.filter(Course.batch_id == batch_id, Course.is_active.is_(True))
    if request.args.get('academicYear'):
        query = query.filter(Course.academic_year == request.args['academicYear'])

    courses = query.order_by(Course.semester, Course.name).all()
    return jsonify({'data': [course.to_dict() for course in courses]})


@courses_bp.route('/<course_id>', methods=['GET'])
@authorize('courses.get')
def get_course(course_id):
    return jsonify({'data': get_or_404(Course, course_id, 'Course').to_dict()})


@courses_bp.route('/', methods=['POST'])
@authorize('courses.create')
@validate_json(COURSE_SCHEMA)
def create_course():
    data = request.get_json()
    get_or_404(StudentBatch, data['batch'], 'Student batch')

    code = data['code'].strip()
    academic_year = data['academicYear'].strip()
    if find_duplicate(code, data['batch'], academic_year):
        raise DuplicateResource(DUPLICATE_MESSAGE)

    course = Course(
        name=data['name'].strip(),
        code=code,
        description=(data.get('description') or '').strip(),
        batch_id=data['batch'],
        semester=data['semester'],
        credits=data['credits'],
        academic_year=academic_year,
        created_by_id=g.profile.id,
    )
    db.session.add(course)
    commit_or_conflict(DUPLICATE_MESSAGE)

    current_app.logger.info(f"Course created: {course.code} ({course.id}) by {g.profile.id}")
    return jsonify({'data': course.to_dict(), 'message': 'Course created successfully'}), 201


@courses_bp.route('/<course_id>', methods=['PUT'])
@authorize('courses.update')
@validate_json(UPDATE_SCHEMA)
def update_course(course_id):
    course = enforce_scope('courses.update', get_or_404(Course, course_id, 'Course'))
    data = request.get_json()

    if data.get('batch'):
        get_or_404(StudentBatch, data['batch'], 'Student batch')
    if find_duplicate(data.get('code', course.code), data.get('batch', course.batch_id),
                      data.get('academicYear', course.academic_year), exclude_id=course.id):
        raise DuplicateResource(DUPLICATE_MESSAGE)

    course.apply_changes(data, Course.EDITABLE)
    commit_or_conflict(DUPLICATE_MESSAGE)
    return jsonify({'data': course.to_dict(), 'message': 'Course updated successfully'})


@courses_bp.route('/<course_id>', methods=['DELETE'])
@authorize('courses.delete')
def delete_course(course_id):
    course = enforce_scope('courses.delete', get_or_404(Course, course_id, 'Course'))
    db.session.delete(course)
    db.session.commit()

    current_app.logger.info(f"Course deleted: {course_id} by {g.profile.id}")
    return jsonify({'message': 'Course deleted successfully'})
