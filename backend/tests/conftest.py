import os
import sys
import pytest

# Ensure the backend root (containing the `pokersplit` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from pokersplit import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    MIN_PLAYERS = 2
    MAX_PLAYERS = 10
    GAME_CODE_LENGTH = 6
    MAX_BUY_INS = 100
    MAX_AMOUNT = 1000000.0
    CONTROLLER_DEBOUNCE_MS = 0
    ADMIN_TOKEN = 'admin-secret'
    CORS_ORIGINS = ['http://localhost:5173']


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import pokersplit.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def new_game(client):
    """Create a four-player game with a $20 buy-in and return its creation payload."""
    def _create(players=('Alice', 'Bob', 'Cara', 'Dan'), buy_in_amount=20):
        res = client.post('/api/games/create', json={'buy_in_amount': buy_in_amount, 'players': list(players)})
        assert res.status_code == 201
        return res.get_json()
    return _create
