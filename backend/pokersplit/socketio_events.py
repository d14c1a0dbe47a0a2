from flask_socketio import join_room, leave_room, emit
from pokersplit import socketio
from pokersplit.models import Game
from pokersplit.services.poker.rounds import game_state


def _room(game_code: str) -> str:
    return f"game:{game_code.upper()}"


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_join_game(data):
    game_code = (data or {}).get('game_code')
    if not game_code:
        emit('error', {'message': 'game_code is required'})
        return
    game = Game.query.filter_by(game_code=game_code.upper()).first()
    if not game:
        emit('error', {'message': 'Game not found'})
        return
    room = _room(game_code)
    join_room(room)
    # Observers only read; the dealer flag lets the client show write controls
    is_dealer = game.check_dealer_token((data or {}).get('dealer_token'))
    emit('joined', {'room': room, 'is_dealer': is_dealer})


def handle_leave_game(data):
    game_code = (data or {}).get('game_code')
    if not game_code:
        emit('error', {'message': 'game_code is required'})
        return
    room = _room(game_code)
    leave_room(room)
    emit('left', {'room': room})


def handle_request_state(data):
    """Send the caller a fresh game payload, settlement included when complete."""
    game_code = (data or {}).get('game_code')
    if not game_code:
        emit('error', {'message': 'game_code is required'})
        return
    game = Game.query.filter_by(game_code=game_code.upper()).first()
    if not game:
        emit('error', {'message': 'Game not found'})
        return
    emit('state', game_state(game))


def handle_ping(data):
    emit('pong', data or {})


_HANDLERS = (
    ('connect', handle_connect),
    ('join_game', handle_join_game),
    ('leave_game', handle_leave_game),
    ('request_state', handle_request_state),
    ('ping', handle_ping),
)


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    for event, handler in _HANDLERS:
        socketio.on_event(event, handler, namespace='/ws')

    if testing:
        for event, handler in _HANDLERS:
            socketio.on_event(event, handler, namespace='/')
