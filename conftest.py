# conftest.py

import os
import tempfile

import pytest

# Set testing environment BEFORE importing app so app.py picks TestingConfig.
# The database lives in a file so concurrent tests get one connection per thread.
os.environ["FLASK_ENV"] = "testing"
_db_fd, _db_path = tempfile.mkstemp(suffix="_crm_test.db")
os.environ.setdefault("TEST_DATABASE_URL", f"sqlite:///{_db_path}")

# Now import app and other modules after environment is set
from app import app as flask_app  # noqa: E402
from crm_app.importer import IMPORTER_EXTENSION_KEY, init_importer  # noqa: E402
from crm_app.importer.pipeline import SideEffectDispatcher  # noqa: E402
from crm_app.models import (  # noqa: E402
    Board,
    BoardType,
    Field,
    FieldType,
    ImportJob,
    ImportJobStatus,
    Pipeline,
    Stage,
    Tag,
    User,
    db,
)


def _reset_importer(app, **config):
    app.config.update(
        {
            "IMPORTER_ENABLED": False,
            "IMPORTER_WORKER_ENABLED": False,
            "IMPORTER_STRICT_ROW_MAPPING": False,
            "IMPORTER_STRICT_CATEGORY_MATCH": False,
            "CONTACT_VERIFIER_URL": None,
            "CELERY_CONFIG": None,
        }
    )
    app.config.update(config)
    app.extensions.pop(IMPORTER_EXTENSION_KEY, None)
    init_importer(app)


@pytest.fixture(scope="function")
def app():
    """Test application with freshly created tables"""
    _reset_importer(flask_app)

    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    """Create a test client for the Flask application"""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()


@pytest.fixture
def importer_app(app, tmp_path):
    """App with the importer enabled and Celery running tasks eagerly"""
    _reset_importer(
        app,
        IMPORTER_ENABLED=True,
        IMPORTER_WORKER_ENABLED=True,
        CELERY_SQLITE_PATH=str(tmp_path / "celery.sqlite"),
        CELERY_CONFIG={"task_always_eager": True, "task_eager_propagates": True},
    )
    yield app
    _reset_importer(app)


@pytest.fixture
def acting_user(app):
    """Create the user running imports"""
    user = User(username="importer", email="importer@example.com", first_name="Import", last_name="User")
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def owner_user(app):
    """Create a user referenced by ownerEmail columns"""
    user = User(username="owner", email="owner@example.com", first_name="Owner", last_name="User")
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def vip_tag(app):
    tag = Tag(name="VIP Customers", type="customer")
    db.session.add(tag)
    db.session.commit()
    return tag


@pytest.fixture
def deal_stage(app):
    """Create the board -> pipeline -> stage chain 'Sales' / 'Inbound' / 'New'"""
    board = Board(name="Sales", type=BoardType.DEAL)
    db.session.add(board)
    db.session.flush()
    pipeline = Pipeline(board_id=board.id, name="Inbound")
    db.session.add(pipeline)
    db.session.flush()
    stage = Stage(pipeline_id=pipeline.id, name="New", order=0)
    db.session.add(stage)
    db.session.commit()
    return stage


@pytest.fixture
def number_field(app):
    field = Field(content_type="customer", text="Employees", type=FieldType.NUMBER)
    db.session.add(field)
    db.session.commit()
    return field


@pytest.fixture
def job_factory(app):
    """Create ImportJob rows with a declared total"""

    def _factory(total: int, content_type: str = "customer", **kwargs) -> ImportJob:
        job = ImportJob(
            content_type=content_type,
            total=total,
            success=0,
            failed=0,
            percentage=0.0,
            status=ImportJobStatus.PENDING,
            **kwargs,
        )
        db.session.add(job)
        db.session.commit()
        return job

    return _factory


class RecordingDispatcher(SideEffectDispatcher):
    """Side-effect dispatcher that only records what it was asked to do"""

    def __init__(self):
        self.activity_logs = []
        self.validations = []

    def append_activity_logs(self, content_type, entries, *, created_by):
        self.activity_logs.append((content_type, list(entries), created_by))

    def validate_contact_point(self, kind, value):
        self.validations.append((kind, value))


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers and ensure testing environment"""
    os.environ["FLASK_ENV"] = "testing"

    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")


def pytest_unconfigure(config):
    try:
        os.close(_db_fd)
    except OSError:
        pass
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(_db_path + suffix)
        except OSError:
            pass


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers"""
    for item in items:
        if "integration" in item.nodeid or "concurrency" in item.nodeid:
            item.add_marker(pytest.mark.slow)
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
