from flask import Blueprint, jsonify, request, current_app
from pokersplit import db
from pokersplit.models import Game, Player, PHASE_COMPLETE
from pokersplit.services.poker import rounds
from pokersplit.services.poker.settlement import InvalidAmountError
from pokersplit.services.poker.summary import build_share_text
import math
import time


games = Blueprint('games', __name__)

_last_controller_action: dict[str, float] = {}


def _parse_amount(value, label='amount'):
    if isinstance(value, bool):
        raise InvalidAmountError(f'{label} must be a number')
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise InvalidAmountError(f'{label} must be a number')
    if math.isnan(amount) or math.isinf(amount) or amount < 0:
        raise InvalidAmountError(f'{label} must be a non-negative number')
    max_amount = float(current_app.config.get('MAX_AMOUNT', 1000000))
    if amount > max_amount:
        raise InvalidAmountError(f'{label} must be at most {max_amount:.2f}')
    return amount


def _dealer_token(data):
    return request.headers.get('X-Dealer-Token') or (data or {}).get('dealer_token')


def _is_debounced(action, game_code, player_id=None):
    try:
        debounce_ms = int(current_app.config.get('CONTROLLER_DEBOUNCE_MS', 0))
    except Exception:
        debounce_ms = 0
    if debounce_ms <= 0:
        return False
    key = f"{action}:{game_code}:{player_id}"
    now = time.time() * 1000.0
    last = _last_controller_action.get(key, 0)
    if now - last < debounce_ms:
        return True
    # Drop keys whose window has passed so the map stays bounded
    for stale in [k for k, t in _last_controller_action.items() if now - t >= debounce_ms]:
        del _last_controller_action[stale]
    _last_controller_action[key] = now
    return False


def _load_for_dealer(game_code, data):
    """Return (game, error_response) for a dealer-only write."""
    game = Game.query.filter_by(game_code=game_code.upper()).first_or_404()
    if not game.check_dealer_token(_dealer_token(data)):
        current_app.logger.info(f"[dealer-denied] game={game.game_code} path={request.path}")
        return game, (jsonify({'error': 'Only the dealer may change this game'}), 403)
    return game, None


@games.route('/create', methods=['POST'])
def create_game():
    data = request.get_json(silent=True) or {}
    names = data.get('players') or []
    if not isinstance(names, list):
        return jsonify({'error': 'players must be a list of names'}), 400

    min_players = int(current_app.config.get('MIN_PLAYERS', 2))
    max_players = int(current_app.config.get('MAX_PLAYERS', 10))
    if not (min_players <= len(names) <= max_players):
        return jsonify({'error': f'Please enter between {min_players} and {max_players} players'}), 400

    buy_in_amount = _parse_amount(data.get('buy_in_amount'), 'buy_in_amount')
    if buy_in_amount <= 0:
        return jsonify({'error': 'Please enter a valid buy-in amount'}), 400

    new_game = Game(
        buy_in_amount=buy_in_amount,
        code_length=int(current_app.config.get('GAME_CODE_LENGTH', 6)),
    )
    dealer_token = new_game.issue_dealer_token()
    taken = []
    for position, raw in enumerate(names):
        name = (str(raw).strip() if raw is not None else '') or f'Player {position + 1}'
        name = rounds.unique_name(name, taken)
        taken.append(name)
        new_game.players.append(Player(name=name, position=position))
    db.session.add(new_game)
    db.session.commit()
    current_app.logger.info(f"[create] game={new_game.game_code} players={len(taken)} buy_in={buy_in_amount:.2f}")

    return jsonify({
        'message': 'New game created!',
        'game_code': new_game.game_code,
        'dealer_token': dealer_token,
        'game': rounds.game_state(new_game),
    }), 201


@games.route('/<string:game_code>/state', methods=['GET'])
def get_game_state(game_code):
    game = Game.query.filter_by(game_code=game_code.upper()).first_or_404()
    return jsonify(rounds.game_state(game))


@games.route('/<string:game_code>/settlement', methods=['GET'])
def get_settlement(game_code):
    game = Game.query.filter_by(game_code=game_code.upper()).first_or_404()
    if game.phase != PHASE_COMPLETE:
        return jsonify({'error': 'Game has not been settled yet'}), 409
    settlement = rounds.settlement_for(game)
    payload = settlement.to_dict()
    payload['summary'] = build_share_text(rounds.snapshot_from_game(game), settlement)
    return jsonify(payload)


@games.route('/<string:game_code>/players', methods=['POST'])
def add_player(game_code):
    data = request.get_json(silent=True) or {}
    game, denied = _load_for_dealer(game_code, data)
    if denied:
        return denied
    name = str(data.get('name') or '').strip()
    player = rounds.add_player(game, name)
    return jsonify(player.to_dict()), 201


@games.route('/<string:game_code>/players/<int:player_id>/buy-ins', methods=['POST'])
def set_buy_ins(game_code, player_id):
    data = request.get_json(silent=True) or {}
    game, denied = _load_for_dealer(game_code, data)
    if denied:
        return denied
    if _is_debounced('buy-ins', game.game_code, player_id):
        return jsonify({'message': 'debounced'}), 202
    player = Player.query.filter_by(id=player_id, game_id=game.id).first_or_404()
    buy_ins = data.get('buy_ins')
    if isinstance(buy_ins, bool) or not isinstance(buy_ins, int):
        return jsonify({'error': 'buy_ins must be a whole number'}), 400
    rounds.set_buy_ins(game, player, buy_ins)
    return jsonify(player.to_dict())


@games.route('/<string:game_code>/players/<int:player_id>/cash-out', methods=['POST'])
def cash_out(game_code, player_id):
    data = request.get_json(silent=True) or {}
    game, denied = _load_for_dealer(game_code, data)
    if denied:
        return denied
    player = Player.query.filter_by(id=player_id, game_id=game.id).first_or_404()
    amount = _parse_amount(data.get('amount'))
    rounds.cash_out_player(game, player, amount)
    return jsonify(player.to_dict())


@games.route('/<string:game_code>/players/<int:player_id>/wins', methods=['PUT'])
def record_wins(game_code, player_id):
    data = request.get_json(silent=True) or {}
    game, denied = _load_for_dealer(game_code, data)
    if denied:
        return denied
    player = Player.query.filter_by(id=player_id, game_id=game.id).first_or_404()
    amount = _parse_amount(data.get('amount'))
    rounds.record_wins(game, player, amount)
    return jsonify(player.to_dict())


@games.route('/<string:game_code>/phase', methods=['POST'])
def change_phase(game_code):
    data = request.get_json(silent=True) or {}
    game, denied = _load_for_dealer(game_code, data)
    if denied:
        return denied
    phase = data.get('phase')
    if not phase:
        return jsonify({'error': 'phase is required'}), 400
    rounds.change_phase(game, phase)
    return jsonify(rounds.game_state(game))


@games.route('/<string:game_code>/finalize', methods=['POST'])
def finalize(game_code):
    data = request.get_json(silent=True) or {}
    game, denied = _load_for_dealer(game_code, data)
    if denied:
        return denied
    raw_wins = data.get('wins') or {}
    if not isinstance(raw_wins, dict):
        return jsonify({'error': 'wins must map player ids to amounts'}), 400
    wins = {}
    for key, value in raw_wins.items():
        try:
            player_id = int(key)
        except (TypeError, ValueError):
            return jsonify({'error': f'Invalid player id {key!r}'}), 400
        wins[player_id] = _parse_amount(value)
    settlement = rounds.finalize_round(game, wins)
    payload = rounds.game_state(game)
    payload['settlement'] = settlement.to_dict()
    return jsonify(payload)
