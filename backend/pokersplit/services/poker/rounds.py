from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from flask import current_app

from pokersplit import db, socketio
from pokersplit.models import Game, Player, PHASE_PLAYING, PHASE_SETTLEMENT, PHASE_COMPLETE, PLAYER_NAME_LENGTH
from .errors import RoundStateError
from .settlement import InvalidAmountError, Participant, PoolMismatchError, Settlement, check_pool, pool_difference, settle

# Phase changes a dealer may request directly; complete is reached via finalize_round
ALLOWED_TRANSITIONS = {
    PHASE_PLAYING: {PHASE_SETTLEMENT},
    PHASE_SETTLEMENT: {PHASE_PLAYING},
    PHASE_COMPLETE: set(),
}


@dataclass(frozen=True)
class RoundSnapshot:
    """Read-only view of a round, handed to the settlement engine."""
    game_code: str
    buy_in_amount: float
    phase: str
    participants: Tuple[Participant, ...]

    @property
    def pot(self) -> float:
        return sum(p.investment for p in self.participants)

    @property
    def entered_total(self) -> float:
        return sum(p.wins for p in self.participants)

    @property
    def pool_difference(self) -> float:
        return pool_difference(self.participants)


def snapshot_from_game(game: Game) -> RoundSnapshot:
    participants = tuple(
        Participant.from_buy_ins(
            p.name,
            p.buy_ins,
            game.buy_in_amount,
            cash_out=p.wins,
            settled_early=bool(p.cashed_out),
        )
        for p in game.players
    )
    return RoundSnapshot(
        game_code=game.game_code,
        buy_in_amount=game.buy_in_amount,
        phase=game.phase,
        participants=participants,
    )


def settlement_for(game: Game) -> Settlement:
    return settle(snapshot_from_game(game).participants)


def broadcast_state(game: Game) -> None:
    socketio.emit(
        'state_update',
        {'game_code': game.game_code, 'phase': game.phase},
        to=f"game:{game.game_code}",
        namespace='/ws',
    )


def _commit_and_broadcast(game: Game) -> None:
    db.session.add(game)
    db.session.commit()
    broadcast_state(game)


def _require_phase(game: Game, phase: str, action: str) -> None:
    if game.phase != phase:
        raise RoundStateError(f'Cannot {action} while the game is in the {game.phase} phase')


def add_player(game: Game, name: str) -> Player:
    _require_phase(game, PHASE_PLAYING, 'add players')
    max_players = int(current_app.config.get('MAX_PLAYERS', 10))
    if len(game.players) >= max_players:
        raise RoundStateError(f'A game can have at most {max_players} players')
    position = max((p.position for p in game.players), default=-1) + 1
    player = Player(
        name=unique_name(name or f'Player {len(game.players) + 1}', [p.name for p in game.players]),
        position=position,
    )
    game.players.append(player)
    _commit_and_broadcast(game)
    current_app.logger.info(f"[add-player] game={game.game_code} player={player.id} name={player.name!r}")
    return player


def set_buy_ins(game: Game, player: Player, buy_ins: int) -> Player:
    _require_phase(game, PHASE_PLAYING, 'change buy-ins')
    if player.cashed_out:
        raise RoundStateError(f'{player.name} has already cashed out')
    if buy_ins < 1:
        raise RoundStateError('A player must keep at least one buy-in')
    max_buy_ins = int(current_app.config.get('MAX_BUY_INS', 100))
    if buy_ins > max_buy_ins:
        raise InvalidAmountError(f'buy_ins must be at most {max_buy_ins}')
    Participant.from_buy_ins(player.name, buy_ins, game.buy_in_amount, cash_out=player.wins)
    player.buy_ins = buy_ins
    db.session.add(player)
    _commit_and_broadcast(game)
    return player


def cash_out_player(game: Game, player: Player, amount: float) -> Player:
    """Settle a player early. The amount is locked from then on."""
    _require_phase(game, PHASE_PLAYING, 'cash out players')
    if player.cashed_out:
        raise RoundStateError(f'{player.name} has already cashed out')
    # Validates the amount at the record boundary before anything is stored
    Participant.from_buy_ins(player.name, player.buy_ins, game.buy_in_amount, cash_out=amount, settled_early=True)
    player.wins = amount
    player.cashed_out = True
    db.session.add(player)
    _commit_and_broadcast(game)
    current_app.logger.info(f"[cash-out] game={game.game_code} player={player.id} amount={amount:.2f}")
    return player


def record_wins(game: Game, player: Player, amount: float) -> Player:
    _require_phase(game, PHASE_SETTLEMENT, 'enter final amounts')
    if player.cashed_out:
        raise RoundStateError(f'{player.name} cashed out early; their amount is locked')
    Participant.from_buy_ins(player.name, player.buy_ins, game.buy_in_amount, cash_out=amount)
    player.wins = amount
    db.session.add(player)
    _commit_and_broadcast(game)
    return player


def change_phase(game: Game, phase: str) -> Game:
    if phase == game.phase:
        return game
    if phase not in ALLOWED_TRANSITIONS.get(game.phase, set()):
        raise RoundStateError(f'Cannot move from {game.phase} to {phase}')
    previous = game.phase
    game.phase = phase
    _commit_and_broadcast(game)
    current_app.logger.info(f"[phase] game={game.game_code} {previous} -> {phase}")
    return game


def finalize_round(game: Game, wins_by_player_id: Optional[Dict[int, float]] = None) -> Settlement:
    """Apply final amounts, validate the pool, and complete the round.

    Entered amounts are saved even when the totals do not match so the
    dealer can correct them; the round stays in settlement in that case.
    """
    _require_phase(game, PHASE_SETTLEMENT, 'finalize')
    wins_by_player_id = wins_by_player_id or {}
    players_by_id = {p.id: p for p in game.players}
    for player_id in wins_by_player_id:
        player = players_by_id.get(player_id)
        if player is None:
            raise RoundStateError(f'Player {player_id} is not in game {game.game_code}')
        if player.cashed_out:
            raise RoundStateError(f'{player.name} cashed out early; their amount is locked')
    resolved = {}
    for player in game.players:
        if player.cashed_out:
            continue
        amount = wins_by_player_id.get(player.id, player.wins)
        if amount is None:
            amount = 0.0
        Participant.from_buy_ins(player.name, player.buy_ins, game.buy_in_amount, cash_out=amount)
        resolved[player.id] = amount
    for player in game.players:
        if player.id in resolved:
            player.wins = resolved[player.id]
            db.session.add(player)
    db.session.commit()

    snapshot = snapshot_from_game(game)
    try:
        check_pool(snapshot.participants)
    except PoolMismatchError:
        current_app.logger.info(
            f"[pool-mismatch] game={game.game_code} pot={snapshot.pot:.2f} entered={snapshot.entered_total:.2f}"
        )
        broadcast_state(game)
        raise

    game.phase = PHASE_COMPLETE
    _commit_and_broadcast(game)
    settlement = settle(snapshot.participants)
    current_app.logger.info(
        f"[finalize] game={game.game_code} players={len(snapshot.participants)} payments={len(settlement.payments)}"
    )
    return settlement


def unique_name(name: str, existing, max_length: int = PLAYER_NAME_LENGTH) -> str:
    """Suffix a duplicate display name as 'Name (2)', 'Name (3)', ...

    Names are clipped so the suffixed result still fits ``max_length``.
    """
    name = name[:max_length].rstrip()
    taken = {n.lower() for n in existing}
    candidate = name
    n = 2
    while candidate.lower() in taken:
        suffix = f' ({n})'
        candidate = name[:max_length - len(suffix)].rstrip() + suffix
        n += 1
    return candidate


def game_state(game: Game) -> dict:
    """Game payload plus derived views recomputed from the latest snapshot."""
    payload = game.to_dict()
    snapshot = snapshot_from_game(game)
    payload['entered_total'] = round(snapshot.entered_total, 2)
    payload['pool_difference'] = round(snapshot.pool_difference, 2)
    if game.phase == PHASE_COMPLETE:
        payload['settlement'] = settle(snapshot.participants).to_dict()
    return payload
