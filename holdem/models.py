from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .cards import Card
from .evaluator import HandRanking


class Round(str, Enum):
    PRE_FLOP = "pre-flop"
    FLOP = "flop"
    TURN = "turn"
    RIVER = "river"


class TablePhase(str, Enum):
    WAITING = "waiting"  # between hands, players readying up
    BETTING = "betting"
    SHOWDOWN = "showdown"  # awaiting show/muck decisions
    REVIEW = "review"  # pot settled, results on display


class ActionType(str, Enum):
    BET = "bet"
    FOLD = "fold"


class ShowDecision(str, Enum):
    UNDECIDED = "undecided"
    SHOW = "show"
    MUCK = "muck"


# Cards drawn after the deal (3 burns, 5 board); each seat also takes two.
BOARD_DRAWS = 8
MAX_SEATS = (52 - BOARD_DRAWS) // 2


@dataclass
class TableConfig:
    max_seats: int = 12
    starting_stack: int = 1_000
    sb: int = 10
    bb: int = 20
    rebuy_amount: int = 1_000
    showdown_timeout: float = 30.0
    review_timeout: float = 15.0
    disconnect_grace: float = 60.0
    action_log_size: int = 50

    def __post_init__(self) -> None:
        if not 2 <= self.max_seats <= MAX_SEATS:
            raise ValueError(f"max_seats must be between 2 and {MAX_SEATS}")
        if self.sb < 0 or self.bb < self.sb:
            raise ValueError("Blinds must satisfy 0 <= sb <= bb")
        if self.starting_stack < 0 or self.rebuy_amount < 0:
            raise ValueError("Stacks must not be negative")


@dataclass
class PlayerSeat:
    username: str
    chips: int
    hole_cards: List[Card] = field(default_factory=list)
    current_bet: int = 0
    total_bet: int = 0
    folded: bool = False
    is_small_blind: bool = False
    is_big_blind: bool = False
    ready: bool = False
    has_acted: bool = False
    hand: Optional[HandRanking] = None
    connected: bool = True
    leaving: bool = False

    @property
    def can_act(self) -> bool:
        return not self.folded and self.chips > 0

    def reset_for_hand(self) -> None:
        self.hole_cards = []
        self.current_bet = 0
        self.total_bet = 0
        self.folded = False
        self.is_small_blind = False
        self.is_big_blind = False
        self.ready = False
        self.has_acted = False
        self.hand = None

    def reset_for_round(self) -> None:
        self.current_bet = 0
        self.has_acted = False
