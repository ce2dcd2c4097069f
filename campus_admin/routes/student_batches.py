from flask import Blueprint, current_app, g, jsonify, request

from ..database_models import Course, Profile, StudentBatch, StudentBatchSection
from ..errors import ResourceInUse
from ..extensions import db
from ..policy import authorize
from ..utils import commit_or_conflict, get_or_404
from ..validation import validate_json

student_batches_bp = Blueprint('student_batches', __name__)
student_batch_sections_bp = Blueprint('student_batch_sections', __name__)

BATCH_SCHEMA = {
    'name': {'type': str, 'required': True, 'min_length': 1, 'max_length': 100},
}

SECTION_SCHEMA = {
    'name': {'type': str, 'required': True, 'min_length': 1, 'max_length': 50},
    'batch': {'type': str, 'required': True, 'format': 'object_id'},
}

SECTION_UPDATE_SCHEMA = {
    'name': {'type': str, 'min_length': 1, 'max_length': 50},
    'batch': {'type': str, 'format': 'object_id'},
}


@student_batches_bp.route('/', methods=['GET'])
@authorize('student_batches.list')
def list_batches():
    batches = StudentBatch.query.order_by(StudentBatch.name.asc()).all()
    return jsonify({'data': [batch.to_dict() for batch in batches]})


@student_batches_bp.route('/<batch_id>', methods=['GET'])
@authorize('student_batches.get')
def get_batch(batch_id):
    return jsonify({'data': get_or_404(StudentBatch, batch_id, 'Student batch').to_dict()})


@student_batches_bp.route('/', methods=['POST'])
@authorize('student_batches.create')
@validate_json(BATCH_SCHEMA)
def create_batch():
    batch = StudentBatch(name=request.get_json()['name'].strip())
    db.session.add(batch)
    commit_or_conflict('Batch name must be unique')

    current_app.logger.info(f"Student batch created: {batch.name} by {g.profile.id}")
    return jsonify({'data': batch.to_dict(), 'message': 'Student batch created successfully'}), 201


@student_batches_bp.route('/<batch_id>', methods=['PUT'])
@authorize('student_batches.update')
@validate_json(BATCH_SCHEMA)
def update_batch(batch_id):
    batch = get_or_404(StudentBatch, batch_id, 'Student batch')
    batch.name = request.get_json()['name'].strip()
    commit_or_conflict('Batch name must be unique')
    return jsonify({'data': batch.to_dict(), 'message': 'Student batch updated successfully'})


@student_batches_bp.route('/<batch_id>', methods=['DELETE'])
@authorize('student_batches.delete')
def delete_batch(batch_id):
    batch = get_or_404(StudentBatch, batch_id, 'Student batch')
    if (Profile.query.filter_by(batch_id=batch.id).first()
            or Course.query.filter_by(batch_id=batch.id).first()):
        raise ResourceInUse('Batch is still assigned to profiles or courses')

    StudentBatchSection.query.filter_by(batch_id=batch.id).delete()
    db.session.delete(batch)
    db.session.commit()

    current_app.logger.info(f"Student batch deleted: {batch_id} by {g.profile.id}")
    return jsonify({'message': 'Student batch deleted successfully'})


@student_batch_sections_bp.route('/batch/<batch_id>', methods=['GET'])
@authorize('student_batch_sections.by_batch')
def sections_by_batch(batch_id):
    get_or_404(StudentBatch, batch_id, 'Student batch')
    sections = (StudentBatchSection.query
                .filter_by(batch_id=batch_id)
                .order_by(StudentBatchSection.name.asc())
                .all())
    return jsonify({'data': [section.to_dict() for section in sections]})


@student_batch_sections_bp.route('/<section_id>', methods=['GET'])
@authorize('student_batch_sections.get')
def get_section(section_id):
    return jsonify({'data': get_or_404(StudentBatchSection, section_id, 'Section').to_dict()})


@student_batch_sections_bp.route('/', methods=['POST'])
@authorize('student_batch_sections.create')
@validate_json(SECTION_SCHEMA)
def create_section():
    data = request.get_json()
    batch = get_or_404(StudentBatch, data['batch'], 'Student batch')

    section = StudentBatchSection(name=data['name'].strip(), batch_id=batch.id)
    db.session.add(section)
    commit_or_conflict('Section name must be unique within the batch')
    return jsonify({'data': section.to_dict(), 'message': 'Section created successfully'}), 201


@student_batch_sections_bp.route('/<section_id>', methods=['PUT'])
@authorize('student_batch_sections.update')
@validate_json(SECTION_UPDATE_SCHEMA)
def update_section(section_id):
    section = get_or_404(StudentBatchSection, section_id, 'Section')
    data = request.get_json()

    if data.get('name'):
        section.name = data['name'].strip()
    if data.get('batch'):
        section.batch_id = get_or_404(StudentBatch, data['batch'], 'Student batch').id
    commit_or_conflict('Section name must be unique within the batch')
    return jsonify({'data': section.to_dict(), 'message': 'Section updated successfully'})


@student_batch_sections_bp.route('/<section_id>', methods=['DELETE'])
@authorize('student_batch_sections.delete')
def delete_section(section_id):
    section = get_or_404(StudentBatchSection, section_id, 'Section')
    db.session.delete(section)
    db.session.commit()
    return jsonify({'message': 'Section deleted successfully'})
