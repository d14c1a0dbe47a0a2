"""Poker round services: settlement engine, round lifecycle and summaries.

The settlement engine is pure; the round service is the only layer that
reads and writes persisted game state, and it hands the engine a plain
snapshot rather than model objects.
"""

from .settlement import (
    EPSILON,
    InvalidAmountError,
    Participant,
    ParticipantResult,
    Payment,
    PoolMismatchError,
    Settlement,
    SettlementError,
    check_pool,
    compute_net,
    compute_settlements,
    pool_difference,
    settle,
)
from .errors import RoundStateError
