from flask import Blueprint, jsonify, request, current_app, abort
from pokersplit import db
from pokersplit.models import Game
import hmac

admin = Blueprint('admin', __name__)


@admin.before_request
def require_admin_token():
    expected = current_app.config.get('ADMIN_TOKEN')
    if not expected:
        abort(404)
    supplied = request.headers.get('X-Admin-Token') or ''
    if not hmac.compare_digest(supplied, expected):
        return jsonify({'error': 'Admin token required'}), 403


@admin.route('/games', methods=['GET'])
def list_games():
    all_games = Game.query.order_by(Game.created_at.desc(), Game.id.desc()).all()
    return jsonify([g.to_dict(include_players=False) for g in all_games])


@admin.route('/games/<string:game_code>/players', methods=['GET'])
def list_players(game_code):
    game = Game.query.filter_by(game_code=game_code.upper()).first_or_404()
    return jsonify([p.to_dict() for p in game.players])


@admin.route('/games/<string:game_code>', methods=['DELETE'])
def delete_game(game_code):
    game = Game.query.filter_by(game_code=game_code.upper()).first_or_404()
    db.session.delete(game)
    db.session.commit()
    current_app.logger.info(f"[admin-delete] game={game_code.upper()}")
    return jsonify({'deleted': game_code.upper()})
