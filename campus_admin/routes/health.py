from datetime import datetime

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .. import __version__
from ..cache import get_cache
from ..extensions import db, limiter

health_bp = Blueprint('health', __name__)


@health_bp.route('/', methods=['GET'])
@limiter.exempt
def health_check():
    """Liveness of the API, its database and, when configured, the cache."""
    services = {'api': 'healthy'}
    try:
        db.session.execute(text('SELECT 1'))
        services['database'] = 'healthy'
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Health check failed: {str(e)}")
        services['database'] = 'unhealthy'

    cache_up = get_cache().ping()
    services['cache'] = 'disabled' if cache_up is None else ('healthy' if cache_up else 'unhealthy')

    healthy = services['database'] == 'healthy'
    return jsonify({
        'status': 'healthy' if healthy else 'unhealthy',
        'timestamp': datetime.utcnow().isoformat(),
        'version': __version__,
        'environment': current_app.config['ENV_NAME'],
        'services': services,
    }), 200 if healthy else 503
