import os, sys, pytest
# Ensure the backend directory is on path so 'fixmarket' and 'tests' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from fixmarket import create_app, get_db, import_models

TEST_CONFIG = {
    'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
    'JWT_SECRET_KEY': 'fixmarket-test-secret-0123456789abcdef',
    'TESTING': True,
}


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    app = create_app(TEST_CONFIG)
    with app.app_context():
        import_models().create_all(get_db().get_bind())
    yield app


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance


@pytest.fixture()
def client(app_context):
    return app_context.test_client()


@pytest.fixture()
def db(app_context):
    session = get_db()
    yield session
    # Leave nothing half-flushed for the next test
    session.rollback()
