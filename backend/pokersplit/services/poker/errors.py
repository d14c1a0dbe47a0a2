class RoundStateError(Exception):
    """The round's phase or a player's state does not allow the operation."""
