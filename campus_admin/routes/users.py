from flask import Blueprint, current_app, jsonify, request

from ..database_models import Account
from ..extensions import db
from ..policy import authorize
from ..utils import bool_arg, get_or_404, paginate
from ..validation import validate_json

users_bp = Blueprint('users', __name__)


def account_with_profile(account):
    data = account.to_dict()
    data['profile'] = account.profile.to_dict() if account.profile else None
    return data


@users_bp.route('/', methods=['GET'])
@authorize('users.list')
def list_users():
    query = Account.query
    is_verified = bool_arg('isVerified')
    if is_verified is not None:
        query = query.filter(Account.is_verified.is_(is_verified))

    return jsonify(paginate(query.order_by(Account.created_at.desc()), account_with_profile,
                            default_limit=10))


@users_bp.route('/<user_id>', methods=['GET'])
@authorize('users.get')
def get_user(user_id):
    account = get_or_404(Account, user_id, 'User')
    return jsonify({'data': account_with_profile(account)})


@users_bp.route('/<user_id>', methods=['PUT'])
@authorize('users.update')
@validate_json({
    'isVerified': {'type': bool},
    'isActive': {'type': bool},
})
def update_user(user_id):
    account = get_or_404(Account, user_id, 'User')
    data = request.get_json()

    if 'isVerified' in data:
        account.is_verified = data['isVerified']
    if 'isActive' in data and account.profile:
        account.profile.is_active = data['isActive']
    db.session.commit()

    current_app.logger.info(f"User updated: {account.id}")
    return jsonify({'data': account_with_profile(account), 'message': 'User updated successfully'})


@users_bp.route('/<user_id>', methods=['DELETE'])
@authorize('users.delete')
def delete_user(user_id):
    account = get_or_404(Account, user_id, 'User')
    # the profile goes with it through the relationship cascade
    db.session.delete(account)
    db.session.commit()

    current_app.logger.info(f"User deleted: {user_id}")
    return jsonify({'message': 'User deleted successfully'})
