import os
from flask import Flask
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _env_flag(name, default):
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes')


def create_app(test_config=None):
    app = Flask(__name__)
    app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "exam_control_secret_2026")
    app.config["SQLALCHEMY_DATABASE_URI"] = os.environ.get("DATABASE_URL", "sqlite:///exams.db")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.json.ensure_ascii = False
    # Messages are served in this locale ("ar" or "en")
    app.config['EXAM_CONTROL_LOCALE'] = os.environ.get('EXAM_CONTROL_LOCALE', 'ar')
    # The reserved account that always exists with a known password
    app.config['SUPER_ADMIN_USERNAME'] = os.environ.get('SUPER_ADMIN_USERNAME', '1027594579')
    app.config['SUPER_ADMIN_PASSWORD'] = os.environ.get('SUPER_ADMIN_PASSWORD', 'admin123')
    app.config['DEFAULT_USER_PASSWORD'] = os.environ.get('DEFAULT_USER_PASSWORD', '123456')
    app.config['SEED_DATA'] = _env_flag('SEED_DATA', 'true')
    # Attendance timestamps are stored in UTC; the school's day starts at local midnight
    app.config['SCHOOL_UTC_OFFSET_MINUTES'] = int(os.environ.get('SCHOOL_UTC_OFFSET_MINUTES', '180'))
    app.config['BOOTSTRAP_ON_START'] = _env_flag('BOOTSTRAP_ON_START', 'true')

    if test_config:
        app.config.update(test_config)

    db.init_app(app)

    from exam_control.store import ExamStore
    app.extensions["exam_store"] = ExamStore(
        db,
        super_admin_username=app.config["SUPER_ADMIN_USERNAME"],
        default_password=app.config["DEFAULT_USER_PASSWORD"],
        utc_offset_minutes=app.config["SCHOOL_UTC_OFFSET_MINUTES"],
    )

    # import and register blueprint
    from exam_control.routes import api
    app.register_blueprint(api)

    from exam_control.cli import register_commands
    register_commands(app)

    if app.config['BOOTSTRAP_ON_START']:
        from exam_control.bootstrap import bootstrap
        with app.app_context():
            bootstrap(app)

    return app
