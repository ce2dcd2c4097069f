import logging
from logging.handlers import RotatingFileHandler

from flask import Flask

from .auth import register_jwt_handlers
from .cache import init_cache
from .config import get_config
from .errors import register_error_handlers
from .extensions import cors, db, jwt, limiter

__version__ = '1.0.0'


def setup_logging(app):
    """Rotating file log plus console, both on ``app.logger``."""
    formatter = logging.Formatter(
        '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
    )
    level = getattr(logging, app.config['LOG_LEVEL'].upper(), logging.INFO)

    # the logger outlives the app, so start clean on every factory call
    for handler in app.logger.handlers[:]:
        app.logger.removeHandler(handler)

    if app.config.get('LOG_FILE'):
        file_handler = RotatingFileHandler(
            app.config['LOG_FILE'],
            maxBytes=app.config['MAX_LOG_SIZE'],
            backupCount=app.config['BACKUP_COUNT']
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        app.logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    app.logger.addHandler(console_handler)

    app.logger.setLevel(level)
    app.logger.propagate = False


def register_blueprints(app):
    from .routes.attendance import attendance_bp
    from .routes.auth import auth_bp
    from .routes.complaints import complaints_bp
    from .routes.courses import courses_bp
    from .routes.departments import departments_bp, faculty_departments_bp
    from .routes.health import health_bp
    from .routes.holidays import holidays_bp
    from .routes.mess_menu import mess_menu_bp
    from .routes.profiles import profiles_bp
    from .routes.student_batches import student_batch_sections_bp, student_batches_bp
    from .routes.subject_assignments import subject_assignments_bp
    from .routes.users import users_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(users_bp, url_prefix='/api/users')
    app.register_blueprint(profiles_bp, url_prefix='/api/profiles')
    app.register_blueprint(attendance_bp, url_prefix='/api/attendance')
    app.register_blueprint(complaints_bp, url_prefix='/api/complaints')
    app.register_blueprint(courses_bp, url_prefix='/api/courses')
    app.register_blueprint(departments_bp, url_prefix='/api/departments')
    app.register_blueprint(faculty_departments_bp, url_prefix='/api/faculty-departments')
    app.register_blueprint(holidays_bp, url_prefix='/api/holidays')
    app.register_blueprint(mess_menu_bp, url_prefix='/api/mess-menu')
    app.register_blueprint(student_batches_bp, url_prefix='/api/student-batches')
    app.register_blueprint(student_batch_sections_bp, url_prefix='/api/student-batch-sections')
    app.register_blueprint(subject_assignments_bp, url_prefix='/api/subject-assignments')
    app.register_blueprint(health_bp, url_prefix='/api/health')


def create_app(config_name=None, cache=None):
    """Application factory.

    ``cache`` replaces the configured response cache, which lets tests
    inject an in-memory double.
    """
    app = Flask(__name__)
    config_class = get_config(config_name)
    app.config.from_object(config_class)
    app.url_map.strict_slashes = False

    setup_logging(app)

    db.init_app(app)
    jwt.init_app(app)
    limiter.init_app(app)
    cors.init_app(app,
                  origins=app.config['CORS_ORIGINS'],
                  supports_credentials=True,
                  allow_headers=['Content-Type', 'Authorization'],
                  methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'])
    init_cache(app, cache)

    @app.after_request
    def set_security_headers(response):
        for header, value in app.config['SECURITY_HEADERS'].items():
            response.headers[header] = value
        return response

    register_error_handlers(app)
    register_jwt_handlers(app)
    register_blueprints(app)

    with app.app_context():
        db.create_all()

    app.logger.info(f"Campus admin API started with {config_class.__name__}")
    return app
