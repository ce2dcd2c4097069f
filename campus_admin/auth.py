"""Bearer-token resolution.

A token carries only the account id. Every request reloads the account
and its profile so a role change made by an admin applies immediately.
"""
from functools import wraps

from flask import current_app, g, jsonify
from flask_jwt_extended import create_access_token, get_jwt_identity, verify_jwt_in_request

from .database_models import Account, Profile
from .errors import AccountNotFound, InvalidToken, ProfileMissing
from .extensions import db, jwt


def issue_token(account: Account) -> str:
    return create_access_token(identity=str(account.id))


def load_identity(account_id):
    """Resolve an account id to ``(account, profile)`` or fail closed."""
    account = db.session.get(Account, account_id)
    if account is None:
        raise AccountNotFound()

    profile = Profile.query.filter_by(account_id=account.id).first()
    if profile is None:
        current_app.logger.error(f"Integrity fault: account {account.id} has no profile")
        raise ProfileMissing()
    return account, profile


def resolve_identity(optional=False):
    """Verify the bearer token and attach ``g.account`` / ``g.profile``.

    With ``optional=True`` a request without an Authorization header
    resolves to ``None`` instead of failing; a bad token still fails.
    """
    verify_jwt_in_request(optional=optional)
    account_id = get_jwt_identity()
    if account_id is None:
        g.account = g.profile = None
        return None

    g.account, g.profile = load_identity(account_id)
    return g.profile


def login_required(f):
    """Authentication only, for endpoints open to every role."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        resolve_identity()
        return f(*args, **kwargs)
    return decorated_function


def register_jwt_handlers(app):

    @jwt.unauthorized_loader
    def missing_token(reason):
        error = InvalidToken('Access token required')
        return jsonify(error.to_dict()), error.status_code

    @jwt.invalid_token_loader
    def invalid_token(reason):
        app.logger.warning(f"Rejected token: {reason}")
        error = InvalidToken()
        return jsonify(error.to_dict()), error.status_code

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        error = InvalidToken('Token expired')
        return jsonify(error.to_dict()), error.status_code
