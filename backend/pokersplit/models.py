from pokersplit import db
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime, timezone
import secrets
import random

PHASE_PLAYING = 'playing'
PHASE_SETTLEMENT = 'settlement'
PHASE_COMPLETE = 'complete'
PHASES = (PHASE_PLAYING, PHASE_SETTLEMENT, PHASE_COMPLETE)

# Confusable characters (0, O, 1, I) are left out so codes read aloud cleanly
GAME_CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'

# Column widths; callers clip input to these before storing
PLAYER_NAME_LENGTH = 64
FEEDBACK_EMAIL_LENGTH = 255
FEEDBACK_URL_LENGTH = 1024
FEEDBACK_USER_AGENT_LENGTH = 512


def _utcnow():
    return datetime.now(timezone.utc)


def generate_game_code(length=6):
    """Generate a unique, short game code."""
    while True:
        code = ''.join(random.choices(GAME_CODE_ALPHABET, k=length))
        if not Game.query.filter_by(game_code=code).first():
            return code


class Player(db.Model):
    __tablename__ = 'player'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(PLAYER_NAME_LENGTH), nullable=False)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    buy_ins = db.Column(db.Integer, default=1, nullable=False)
    position = db.Column(db.Integer, default=0, nullable=False)
    # Cash-out amount; stays NULL until entered at settlement or on early cash-out
    wins = db.Column(db.Float, nullable=True)
    cashed_out = db.Column(db.Boolean, default=False, nullable=False)
    game = db.relationship('Game', back_populates='players')

    def invested(self, buy_in_amount):
        return (self.buy_ins or 0) * (buy_in_amount or 0)

    def to_dict(self):
        buy_in_amount = self.game.buy_in_amount if self.game else 0
        return {
            'id': self.id,
            'name': self.name,
            'game_id': self.game_id,
            'buy_ins': self.buy_ins,
            'position': self.position,
            'invested': round(self.invested(buy_in_amount), 2),
            'wins': self.wins,
            'cashed_out': self.cashed_out,
        }


class Game(db.Model):
    __tablename__ = 'game'
    id = db.Column(db.Integer, primary_key=True)
    game_code = db.Column(db.String(8), unique=True, index=True, nullable=False)
    buy_in_amount = db.Column(db.Float, nullable=False)
    phase = db.Column(db.String(32), default=PHASE_PLAYING, nullable=False, index=True)  # playing, settlement, complete
    dealer_token_hash = db.Column(db.String(256), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    players = db.relationship(
        'Player',
        back_populates='game',
        order_by='Player.position',
        cascade='all, delete-orphan',
    )

    def __init__(self, code_length=6, **kwargs):
        super(Game, self).__init__(**kwargs)
        if not self.phase:
            self.phase = PHASE_PLAYING
        if not self.game_code:
            self.game_code = generate_game_code(code_length)

    def issue_dealer_token(self):
        """Create a fresh dealer token; only its hash is stored."""
        token = secrets.token_urlsafe(24)
        self.dealer_token_hash = generate_password_hash(token)
        return token

    def check_dealer_token(self, token):
        if not token or not self.dealer_token_hash:
            return False
        return check_password_hash(self.dealer_token_hash, token)

    @property
    def pot(self):
        return sum(p.invested(self.buy_in_amount) for p in self.players)

    def to_dict(self, include_players=True):
        data = {
            'id': self.id,
            'game_code': self.game_code,
            'buy_in_amount': self.buy_in_amount,
            'phase': self.phase,
            'pot': round(self.pot, 2),
            'player_count': len(self.players),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_players:
            data['players'] = [p.to_dict() for p in self.players]
        return data


class Feedback(db.Model):
    __tablename__ = 'feedback'
    id = db.Column(db.Integer, primary_key=True)
    rating = db.Column(db.Integer, nullable=True)
    message = db.Column(db.Text, nullable=True)
    email = db.Column(db.String(FEEDBACK_EMAIL_LENGTH), nullable=True)
    page_url = db.Column(db.String(FEEDBACK_URL_LENGTH), nullable=True)
    user_agent = db.Column(db.String(FEEDBACK_USER_AGENT_LENGTH), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'rating': self.rating,
            'message': self.message,
            'email': self.email,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
