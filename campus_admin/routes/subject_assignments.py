from flask import Blueprint, current_app, g, jsonify, request

from ..database_models import Profile, Role, SubjectAssignment
from ..errors import DuplicateResource, NotFound, ValidationFailed
from ..extensions import db
from ..policy import authorize
from ..utils import bool_arg, commit_or_conflict, get_or_404
from ..validation import validate_json

subject_assignments_bp = Blueprint('subject_assignments', __name__)

DUPLICATE_MESSAGE = 'This faculty is already assigned to this subject for the academic year'

ASSIGNMENT_SCHEMA = {
    'subject': {'type': str, 'required': True, 'max_length': 100},
    'facultyId': {'type': str, 'required': True, 'format': 'object_id'},
    'department': {'type': str, 'max_length': 100, 'nullable': True},
    'academicYear': {'type': str, 'required': True},
}

UPDATE_SCHEMA = dict(
    {field: dict(rules, required=False) for field, rules in ASSIGNMENT_SCHEMA.items()},
    isActive={'type': bool},
)


def assignable_faculty(profile_id):
    faculty = get_or_404(Profile, profile_id, 'Faculty')
    if faculty.role not in (Role.FACULTY.value, Role.HOD.value):
        raise ValidationFailed([{'field': 'facultyId', 'message': 'Must reference a faculty member'}])
    return faculty


def find_duplicate(subject, faculty_id, academic_year, exclude_id=None):
    query = SubjectAssignment.query.filter_by(subject=subject, faculty_id=faculty_id,
                                              academic_year=academic_year)
    if exclude_id:
        query = query.filter(SubjectAssignment.id != exclude_id)
    return query.first()


@subject_assignments_bp.route('/', methods=['GET'])
@authorize('subject_assignments.list')
def list_assignments():
    is_active = bool_arg('isActive')
    query = SubjectAssignment.query.filter(
        SubjectAssignment.is_active.is_(True if is_active is None else is_active))

    if request.args.get('subject'):
        query = query.filter(SubjectAssignment.subject.ilike(f"%{request.args['subject']}%"))
    for arg, column in (('facultyId', SubjectAssignment.faculty_id),
                        ('department', SubjectAssignment.department),
                        ('academicYear', SubjectAssignment.academic_year)):
        if request.args.get(arg):
            query = query.filter(column == request.args[arg])

    assignments = query.order_by(SubjectAssignment.subject.asc()).all()
    return jsonify({'data': [assignment.to_dict() for assignment in assignments]})


@subject_assignments_bp.route('/subject/<subject>', methods=['GET'])
@authorize('subject_assignments.by_subject')
def assignment_for_subject(subject):
    query = SubjectAssignment.query.filter(SubjectAssignment.subject.ilike(f'%{subject}%'),
                                           SubjectAssignment.is_active.is_(True))
    if request.args.get('academicYear'):
        query = query.filter(SubjectAssignment.academic_year == request.args['academicYear'])

    assignment = query.order_by(SubjectAssignment.created_at.desc()).first()
    if assignment is None:
        raise NotFound('No faculty assigned to this subject')
    return jsonify({'data': assignment.to_dict()})


@subject_assignments_bp.route('/', methods=['POST'])
@authorize('subject_assignments.create')
@validate_json(ASSIGNMENT_SCHEMA)
def create_assignment():
    data = request.get_json()
    faculty = assignable_faculty(data['facultyId'])
    subject = data['subject'].strip()
    academic_year = data['academicYear'].strip()

    if find_duplicate(subject, faculty.id, academic_year):
        raise DuplicateResource(DUPLICATE_MESSAGE)

    assignment = SubjectAssignment(
        subject=subject,
        faculty_id=faculty.id,
        department=data.get('department') or faculty.department,
        academic_year=academic_year,
        created_by_id=g.profile.id,
    )
    db.session.add(assignment)
    commit_or_conflict(DUPLICATE_MESSAGE)

    current_app.logger.info(f"Subject {subject} assigned to {faculty.id} by {g.profile.id}")
    return jsonify({'data': assignment.to_dict(), 'message': 'Subject assigned successfully'}), 201


@subject_assignments_bp.route('/<assignment_id>', methods=['PUT'])
@authorize('subject_assignments.update')
@validate_json(UPDATE_SCHEMA)
def update_assignment(assignment_id):
    assignment = get_or_404(SubjectAssignment, assignment_id, 'Subject assignment')
    data = request.get_json()

    if data.get('facultyId'):
        assignable_faculty(data['facultyId'])
    if find_duplicate(data.get('subject') or assignment.subject,
                      data.get('facultyId') or assignment.faculty_id,
                      data.get('academicYear') or assignment.academic_year,
                      exclude_id=assignment.id):
        raise DuplicateResource(DUPLICATE_MESSAGE)

    assignment.apply_changes(data, SubjectAssignment.EDITABLE)
    commit_or_conflict(DUPLICATE_MESSAGE)
    return jsonify({'data': assignment.to_dict(), 'message': 'Subject assignment updated successfully'})


@subject_assignments_bp.route('/<assignment_id>', methods=['DELETE'])
@authorize('subject_assignments.delete')
def delete_assignment(assignment_id):
    assignment = get_or_404(SubjectAssignment, assignment_id, 'Subject assignment')
    db.session.delete(assignment)
    db.session.commit()

    current_app.logger.info(f"Subject assignment deleted: {assignment_id} by {g.profile.id}")
    return jsonify({'message': 'Subject assignment deleted successfully'})
