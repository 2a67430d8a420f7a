"""Texas Hold'em table primitives: deck, hand oracle, round engine and showdown protocol."""

from .cards import Card, Deck, RANKS, SUITS, parse_cards, parse_label
from .errors import TableError
from .evaluator import BestHandOracle, HandOracle, HandRanking, TreysOracle, evaluate_best
from .game import GameEngine, TableState
from .models import ActionType, PlayerSeat, Round, ShowDecision, TableConfig, TablePhase
from .showdown import ShowdownContext, ShowdownCoordinator, ShowdownKind

__all__ = [
    "Card",
    "Deck",
    "RANKS",
    "SUITS",
    "parse_cards",
    "parse_label",
    "TableError",
    "BestHandOracle",
    "TreysOracle",
    "HandOracle",
    "HandRanking",
    "evaluate_best",
    "GameEngine",
    "TableState",
    "ActionType",
    "PlayerSeat",
    "Round",
    "ShowDecision",
    "TableConfig",
    "TablePhase",
    "ShowdownContext",
    "ShowdownCoordinator",
    "ShowdownKind",
]
