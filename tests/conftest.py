import pytest
from exam_control import create_app, db


@pytest.fixture
def db_uri(tmp_path):
    return f"sqlite:///{tmp_path / 'exams.db'}"


@pytest.fixture
def make_app(db_uri):
    apps = []

    def factory(**overrides):
        config = {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": db_uri,
            "EXAM_CONTROL_LOCALE": "en",
        }
        config.update(overrides)
        app = create_app(config)
        apps.append(app)
        return app

    yield factory

    for app in apps:
        with app.app_context():
            db.session.remove()
            db.engine.dispose()


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()
