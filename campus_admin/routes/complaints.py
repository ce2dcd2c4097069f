from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import case, func

from ..database_models import (Complaint, ComplaintCategory, ComplaintPriority, ComplaintStatus,
                               values)
from ..errors import ValidationFailed
from ..extensions import db
from ..policy import STUDENT, apply_query_scope, authorize, enforce_scope
from ..utils import bool_arg, get_or_404, paginate
from ..validation import validate_json

complaints_bp = Blueprint('complaints', __name__)

CREATE_SCHEMA = {
    'title': {'type': str, 'required': True, 'min_length': 5, 'max_length': 200},
    'description': {'type': str, 'required': True, 'min_length': 10, 'max_length': 1000},
    'category': {'type': str, 'required': True, 'choices': values(ComplaintCategory)},
    'priority': {'type': str, 'choices': values(ComplaintPriority)},
    'academicYear': {'type': str, 'required': True},
    'tags': {'type': list},
    'tags.*': {'type': str, 'max_length': 50},
}

STATUS_SCHEMA = {
    'status': {'type': str, 'required': True, 'choices': values(ComplaintStatus)},
    'notes': {'type': str, 'max_length': 500, 'nullable': True},
}

COMPLETE_SCHEMA = {
    'completionNotes': {'type': str, 'max_length': 500, 'nullable': True},
}

WARDEN_TARGETS = (ComplaintStatus.IN_PROGRESS.value, ComplaintStatus.RESOLVED.value)
STUDENT_TARGETS = (ComplaintStatus.COMPLETED.value,)

PRIORITY_RANK = case(
    (Complaint.priority == ComplaintPriority.URGENT.value, 0),
    (Complaint.priority == ComplaintPriority.HIGH.value, 1),
    (Complaint.priority == ComplaintPriority.MEDIUM.value, 2),
    else_=3,
)


def grouped_counts(column, filters):
    rows = (db.session.query(column, func.count(Complaint.id))
            .filter(*filters)
            .group_by(column)
            .order_by(func.count(Complaint.id).desc())
            .all())
    return [{'value': value, 'count': count} for value, count in rows]


@complaints_bp.route('/', methods=['GET'])
@authorize('complaints.list')
def list_complaints():
    query = Complaint.query
    args = request.args

    for arg, column in (('status', Complaint.status), ('category', Complaint.category),
                        ('priority', Complaint.priority), ('hostelBlock', Complaint.hostel_block),
                        ('academicYear', Complaint.academic_year)):
        if args.get(arg):
            query = query.filter(column == args[arg])
    is_urgent = bool_arg('isUrgent')
    if is_urgent is not None:
        query = query.filter(Complaint.is_urgent.is_(is_urgent))
    if args.get('studentId') and g.profile.role != STUDENT:
        query = query.filter(Complaint.student_id == args['studentId'])

    query = apply_query_scope('complaints.list', query)
    return jsonify(paginate(query.order_by(Complaint.created_at.desc())))


@complaints_bp.route('/stats/overview', methods=['GET'])
@authorize('complaints.stats')
def complaint_stats():
    filters = []
    if request.args.get('academicYear'):
        filters.append(Complaint.academic_year == request.args['academicYear'])
    if request.args.get('hostelBlock'):
        filters.append(Complaint.hostel_block == request.args['hostelBlock'])

    by_status = dict(db.session.query(Complaint.status, func.count(Complaint.id))
                     .filter(*filters).group_by(Complaint.status).all())
    return jsonify({
        'data': {
            'total': sum(by_status.values()),
            'byStatus': {
                'open': by_status.get(ComplaintStatus.OPEN.value, 0),
                'inProgress': by_status.get(ComplaintStatus.IN_PROGRESS.value, 0),
                'resolved': by_status.get(ComplaintStatus.RESOLVED.value, 0),
                'completed': by_status.get(ComplaintStatus.COMPLETED.value, 0),
            },
            'byCategory': grouped_counts(Complaint.category, filters),
            'byPriority': grouped_counts(Complaint.priority, filters),
            'byHostelBlock': grouped_counts(Complaint.hostel_block, filters),
        }
    })


@complaints_bp.route('/urgent/list', methods=['GET'])
@authorize('complaints.urgent')
def urgent_complaints():
    query = Complaint.query.filter(
        Complaint.is_urgent.is_(True),
        Complaint.status.in_([ComplaintStatus.OPEN.value, ComplaintStatus.IN_PROGRESS.value]),
    )
    # a warden only ever sees their own block, whatever hostelBlock says
    query = apply_query_scope('complaints.urgent', query)
    complaints = query.order_by(PRIORITY_RANK, Complaint.created_at.asc()).all()
    return jsonify({'data': [complaint.to_dict() for complaint in complaints]})


@complaints_bp.route('/block/<block>', methods=['GET'])
@authorize('complaints.by_block')
def complaints_by_block(block):
    enforce_scope('complaints.by_block', block)

    query = Complaint.query.filter(Complaint.hostel_block == block)
    if request.args.get('status'):
        query = query.filter(Complaint.status == request.args['status'])
    return jsonify(paginate(query.order_by(Complaint.created_at.desc())))


@complaints_bp.route('/<complaint_id>', methods=['GET'])
@authorize('complaints.get')
def get_complaint(complaint_id):
    complaint = get_or_404(Complaint, complaint_id, 'Complaint')
    enforce_scope('complaints.get', complaint)
    return jsonify({'data': complaint.to_dict()})


@complaints_bp.route('/<complaint_id>/timeline', methods=['GET'])
@authorize('complaints.timeline')
def complaint_timeline(complaint_id):
    complaint = get_or_404(Complaint, complaint_id, 'Complaint')
    enforce_scope('complaints.timeline', complaint)
    return jsonify({'data': complaint.timeline()})


@complaints_bp.route('/', methods=['POST'])
@authorize('complaints.create')
@validate_json(CREATE_SCHEMA)
def create_complaint():
    data = request.get_json()
    student = g.profile

    missing = [{'field': f'studentInfo.{field}', 'message': 'Complete your profile before filing a complaint'}
               for field, value in (('rollNumber', student.student_roll_number),
                                    ('hostelBlock', student.hostel_block_number))
               if not value]
    if missing:
        raise ValidationFailed(missing)

    complaint = Complaint(
        title=data['title'].strip(),
        description=data['description'].strip(),
        category=data['category'],
        priority=data.get('priority') or ComplaintPriority.MEDIUM.value,
        student_id=student.id,
        student_name=student.name,
        roll_number=student.student_roll_number,
        hostel_block=student.hostel_block_number,
        room_number=student.hostel_room_no,
        phone_number=student.phone_number,
        tags=data.get('tags') or [],
        academic_year=data['academicYear'].strip(),
    )
    db.session.add(complaint)
    db.session.commit()

    current_app.logger.info(f"Complaint filed: {complaint.id} by {student.id}")
    return jsonify({'data': complaint.to_dict(), 'message': 'Complaint submitted successfully'}), 201


@complaints_bp.route('/<complaint_id>/status', methods=['PUT'])
@authorize('complaints.update_status')
@validate_json(STATUS_SCHEMA)
def update_complaint_status(complaint_id):
    data = request.get_json()
    complaint = get_or_404(Complaint, complaint_id, 'Complaint')
    enforce_scope('complaints.update_status', complaint)

    complaint.update_status(data['status'], g.profile.id, data.get('notes'), allowed=WARDEN_TARGETS)
    db.session.commit()

    current_app.logger.info(f"Complaint {complaint.id} moved to {complaint.status} by {g.profile.id}")
    return jsonify({'data': complaint.to_dict(), 'message': f"Complaint status updated to {complaint.status}"})


@complaints_bp.route('/<complaint_id>/complete', methods=['PUT'])
@authorize('complaints.complete')
@validate_json(COMPLETE_SCHEMA)
def complete_complaint(complaint_id):
    data = request.get_json(silent=True) or {}
    complaint = get_or_404(Complaint, complaint_id, 'Complaint')
    enforce_scope('complaints.complete', complaint)

    complaint.update_status(ComplaintStatus.COMPLETED.value, g.profile.id, data.get('completionNotes'),
                            allowed=STUDENT_TARGETS)
    db.session.commit()
    return jsonify({'data': complaint.to_dict(), 'message': 'Complaint marked as completed'})
