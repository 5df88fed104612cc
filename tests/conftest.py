"""
Pytest configuration and shared fixtures for Visitor Desk governance tests
"""
import pytest
import os
import sys
import tempfile
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment before importing app; the engine is built from
# DATABASE_URL when the app module is first imported.
_db_fd, _db_path = tempfile.mkstemp(suffix='.db')
os.environ['DATABASE_URL'] = f'sqlite:///{_db_path}'
os.environ['TESTING'] = 'true'


@pytest.fixture(scope='session')
def app():
    """Create and configure a test Flask application instance"""
    from server import app as flask_app
    from models import db
    from rate_limiter import limiter

    flask_app.config.update({
        'TESTING': True,
        'SECRET_KEY': 'test-secret-key',
        'GOVERNANCE_ALLOW_SELF_DECISION': False,
        'GOVERNANCE_STALE_REQUEST_HOURS': 72,
        'GOVERNANCE_MIN_REASON_LENGTH': 1,
    })

    # Disable rate limiting for tests (must be done after init_limiter ran)
    limiter.enabled = False

    # Create tables inside a persistent app context
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()

    # Close and remove temporary database
    os.close(_db_fd)
    os.unlink(_db_path)


@pytest.fixture(autouse=True)
def _clean_db(app):
    """Clean up data between tests to avoid UNIQUE constraint violations."""
    from models import db
    yield
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    db.session.remove()


@pytest.fixture(scope='function')
def client(app):
    """Create a test client for the Flask application"""
    return app.test_client()


def _make_user(name, email, role):
    from models import User, db

    user = User(name=name, email=email, role=role)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def receptionist_user(app):
    """Front-desk operator (role string as the identity layer issues it)"""
    return _make_user('Rina Receptionist', 'rina@example.com', 'Receptionist')


@pytest.fixture
def other_receptionist_user(app):
    return _make_user('Budi Receptionist', 'budi@example.com', 'receptionist')


@pytest.fixture
def manager_user(app):
    return _make_user('Maya Manager', 'maya@example.com', 'Manager')


@pytest.fixture
def admin_user(app):
    return _make_user('Adi Admin', 'adi@example.com', 'Admin')


@pytest.fixture
def receptionist(receptionist_user):
    from core.governance.permissions import Actor
    return Actor.from_user(receptionist_user)


@pytest.fixture
def other_receptionist(other_receptionist_user):
    from core.governance.permissions import Actor
    return Actor.from_user(other_receptionist_user)


@pytest.fixture
def manager(manager_user):
    from core.governance.permissions import Actor
    return Actor.from_user(manager_user)


@pytest.fixture
def admin(admin_user):
    from core.governance.permissions import Actor
    return Actor.from_user(admin_user)


@pytest.fixture
def visitor(app, receptionist):
    """A checked-in visitor with a 'created' history entry"""
    from core.records import create_visitor

    return create_visitor(
        receptionist,
        full_name='Siti Rahma',
        phone='0811111111',
        email='siti@example.com',
        institution='Universitas Indonesia',
        purpose='Meeting',
        person_to_meet='Pak Joko',
        location='Lobby A',
    )


@pytest.fixture
def lost_item(app, receptionist):
    """A found item with a 'created' history entry"""
    from core.records import create_lost_item

    return create_lost_item(
        receptionist,
        item_name='Black umbrella',
        category='accessories',
        found_location='Lobby A',
        finder_name='Security',
    )


def login(client, user):
    with client.session_transaction() as sess:
        sess['user_id'] = user.id
        sess['user_email'] = user.email
    return client


@pytest.fixture
def receptionist_client(app, receptionist_user):
    return login(app.test_client(), receptionist_user)


@pytest.fixture
def manager_client(app, manager_user):
    return login(app.test_client(), manager_user)


@pytest.fixture
def admin_client(app, admin_user):
    return login(app.test_client(), admin_user)
