from __future__ import annotations

from typing import Optional


class TableError(Exception):
    """Base for every rejection the table reports back to a single player."""

    code = "TABLE_ERROR"
    default_msg = "Action rejected"

    def __init__(self, msg: Optional[str] = None) -> None:
        self.msg = msg or self.default_msg
        super().__init__(self.msg)


# Invariant violations. Fixed seat limits make these unreachable in practice.


class DeckExhausted(TableError):
    code = "DECK_EXHAUSTED"
    default_msg = "No more cards in the deck"


class InsufficientCards(TableError):
    code = "INSUFFICIENT_CARDS"
    default_msg = "Not enough cards in the deck for all players"


# Per-action rejections.


class NotYourTurn(TableError):
    code = "NOT_YOUR_TURN"
    default_msg = "Not your turn"


class AlreadyFolded(TableError):
    code = "ALREADY_FOLDED"
    default_msg = "You have folded"


class BetTooLow(TableError):
    code = "BET_TOO_LOW"
    default_msg = "Bet must be at least the current bet"


class InsufficientChips(TableError):
    code = "INSUFFICIENT_CHIPS"
    default_msg = "Not enough chips"


class TableFull(TableError):
    code = "TABLE_FULL"
    default_msg = "The table is full"


class InvalidShowdownDecision(TableError):
    code = "INVALID_SHOWDOWN_DECISION"
    default_msg = "No show/muck decision is pending for you"


class InvalidAction(TableError):
    code = "INVALID_ACTION"
    default_msg = "Unknown action"


class NotSeated(TableError):
    code = "NOT_SEATED"
    default_msg = "You are not part of the game"


class HandInProgress(TableError):
    code = "HAND_IN_PROGRESS"
    default_msg = "A hand is already in progress"


class NotEnoughPlayers(TableError):
    code = "NOT_ENOUGH_PLAYERS"
    default_msg = "At least two players with chips are needed"


class PlayersNotReady(TableError):
    code = "PLAYERS_NOT_READY"
    default_msg = "Waiting for every player to ready up"


class RebuyNotAllowed(TableError):
    code = "REBUY_NOT_ALLOWED"
    default_msg = "Rebuy is only allowed with zero chips"
