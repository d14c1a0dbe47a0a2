from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or '*'

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from pokersplit.main import main
    flask_app.register_blueprint(main)

    from pokersplit.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from pokersplit.api.admin import admin
    flask_app.register_blueprint(admin, url_prefix='/api/admin')

    from pokersplit.services.poker.errors import RoundStateError
    from pokersplit.services.poker.settlement import SettlementError

    @flask_app.errorhandler(SettlementError)
    def handle_settlement_error(exc):
        return jsonify({'error': str(exc)}), 400

    @flask_app.errorhandler(RoundStateError)
    def handle_round_state_error(exc):
        return jsonify({'error': str(exc)}), 409

    # Register Socket.IO event handlers on the initialized socketio instance
    from pokersplit.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database with a demo round."""
        from pokersplit.models import Game, Player
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            game = Game(buy_in_amount=20.0)
            dealer_token = game.issue_dealer_token()
            db.session.add(game)
            db.session.flush()
            for position, name in enumerate(['Alice', 'Bob', 'Cara', 'Dan']):
                db.session.add(Player(name=name, game_id=game.id, position=position))

            db.session.commit()
            print('Database has been reset and seeded!')
            print(f'Demo game {game.game_code} (dealer token: {dealer_token})')

    @click.command('settle')
    @click.argument('game_code')
    def settle_command(game_code):
        """Prints the settlement summary for a completed game."""
        from pokersplit.models import Game, PHASE_COMPLETE
        from pokersplit.services.poker.rounds import settlement_for, snapshot_from_game
        from pokersplit.services.poker.summary import build_share_text
        with flask_app.app_context():
            game = Game.query.filter_by(game_code=game_code.upper()).first()
            if not game:
                raise click.ClickException(f'Game {game_code.upper()} not found')
            if game.phase != PHASE_COMPLETE:
                raise click.ClickException(f'Game {game.game_code} is not complete (phase={game.phase})')
            click.echo(build_share_text(snapshot_from_game(game), settlement_for(game)))

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(settle_command)

    return flask_app
