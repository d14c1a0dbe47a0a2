from flask import Blueprint, request, jsonify
from pokersplit import db
from pokersplit.models import (
    Game, Feedback, PHASE_PLAYING, PHASE_SETTLEMENT, PHASE_COMPLETE,
    FEEDBACK_EMAIL_LENGTH, FEEDBACK_URL_LENGTH, FEEDBACK_USER_AGENT_LENGTH,
)

main = Blueprint('main', __name__)


def _clip(value, length):
    value = str(value or '').strip()
    return value[:length] or None


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the PokerSplit server!'})


@main.route('/api/stats')
def game_stats():
    active = Game.query.filter_by(phase=PHASE_PLAYING).count()
    # Games in settlement count as finished sessions
    completed = Game.query.filter(Game.phase.in_([PHASE_SETTLEMENT, PHASE_COMPLETE])).count()
    return jsonify({'active': active, 'completed': completed, 'total': active + completed})


@main.route('/api/feedback', methods=['POST'])
def submit_feedback():
    data = request.get_json(silent=True) or {}
    rating = data.get('rating')
    message = (data.get('message') or '').strip() or None
    if rating is not None:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            return jsonify({'error': 'Rating must be between 1 and 5'}), 400
    if rating is None and not message:
        return jsonify({'error': 'Please provide a rating or message'}), 400

    feedback = Feedback(
        rating=rating,
        message=message,
        email=_clip(data.get('email'), FEEDBACK_EMAIL_LENGTH),
        page_url=_clip(data.get('page_url') or request.referrer, FEEDBACK_URL_LENGTH),
        user_agent=_clip(request.user_agent.string, FEEDBACK_USER_AGENT_LENGTH),
    )
    db.session.add(feedback)
    db.session.commit()
    return jsonify(feedback.to_dict()), 201
