from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Dict, Hashable, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple, TypeVar

from treys import Card as TreysCard
from treys import Evaluator

from .cards import Card

RANK_ORDER = "23456789TJQKA"
RANK_VALUE = {rank: idx for idx, rank in enumerate(RANK_ORDER, start=2)}
VALUE_NAME = {value: ("10" if rank == "T" else rank) for rank, value in RANK_VALUE.items()}

CATEGORY_NAMES = {
    8: "Straight Flush",
    7: "Four of a Kind",
    6: "Full House",
    5: "Flush",
    4: "Straight",
    3: "Three of a Kind",
    2: "Two Pair",
    1: "Pair",
    0: "High Card",
}

Score = Tuple[int, Tuple[int, ...]]
K = TypeVar("K", bound=Hashable)


@dataclass(frozen=True, order=True)
class HandRanking:
    """Comparable result of ranking 5-7 cards. Only ``score`` takes part in ordering."""

    score: Score
    name: str = field(compare=False)
    description: str = field(compare=False)


class HandOracle(Protocol):
    def rank(self, cards: Sequence[Card]) -> HandRanking:
        ...

    def winners(self, hands: Mapping[K, HandRanking]) -> List[K]:
        ...


class BestHandOracle:
    """Ranks the best five-card hand out of up to seven cards."""

    def rank(self, cards: Sequence[Card]) -> HandRanking:
        if not 5 <= len(cards) <= 7:
            raise ValueError(f"Expected 5 to 7 cards, got {len(cards)}")
        category, detail = evaluate_best(cards)
        score = (category, tuple(detail))
        return HandRanking(score=score, name=hand_name(score), description=describe_score(score))

    def winners(self, hands: Mapping[K, HandRanking]) -> List[K]:
        if not hands:
            return []
        best = max(hands.values())
        return [key for key, ranking in hands.items() if ranking == best]


class TreysOracle(BestHandOracle):
    """Hand strength from the ``treys`` lookup tables.

    treys scores run from 1 (royal flush) to 7462 (seven high) with lower
    being stronger, so the score is negated to keep rankings higher-is-better.
    Descriptions still come from the five-card breakdown.
    """

    def __init__(self) -> None:
        self.evaluator = Evaluator()

    def rank(self, cards: Sequence[Card]) -> HandRanking:
        if not 5 <= len(cards) <= 7:
            raise ValueError(f"Expected 5 to 7 cards, got {len(cards)}")
        encoded = [TreysCard.new(card.label) for card in cards]
        strength = self.evaluator.evaluate(encoded[:2], encoded[2:])
        rank_class = self.evaluator.get_rank_class(strength)
        category = 9 - rank_class
        name = "Royal Flush" if strength == 1 else self.evaluator.class_to_string(rank_class)
        _, detail = evaluate_best(cards)
        return HandRanking(
            score=(category, (-strength,)),
            name=name,
            description=describe_score((category, tuple(detail))),
        )


def hand_name(score: Score) -> str:
    category, detail = score
    if category == 8 and detail and detail[0] == 14:
        return "Royal Flush"
    return CATEGORY_NAMES[category]


def describe_score(score: Score) -> str:
    category, detail = score
    name = hand_name(score)
    if name == "Royal Flush":
        return name
    if category in (8, 5, 4, 0):
        return f"{name}, {VALUE_NAME[detail[0]]} High"
    if category == 6:
        return f"{name}, {VALUE_NAME[detail[0]]}'s over {VALUE_NAME[detail[1]]}'s"
    if category == 2:
        return f"{name}, {VALUE_NAME[detail[0]]}'s & {VALUE_NAME[detail[1]]}'s"
    return f"{name}, {VALUE_NAME[detail[0]]}'s"


def evaluate_best(cards: Sequence[Card]) -> Tuple[int, List[int]]:
    """Return a strength tuple for up to 7 cards (Texas Hold'em). Higher is better."""
    best: Optional[Tuple[int, List[int]]] = None
    for combo in itertools.combinations(cards, 5):
        rank = _evaluate_five(combo)
        if best is None or rank > best:
            best = rank
    if best is None:
        raise ValueError("At least five cards are required")
    return best


def _evaluate_five(cards: Sequence[Card]) -> Tuple[int, List[int]]:
    values = sorted((RANK_VALUE[card.rank] for card in cards), reverse=True)
    flush = len({card.suit for card in cards}) == 1
    straight = _straight_high(cards)

    counts: Dict[int, int] = {}
    for value in values:
        counts[value] = counts.get(value, 0) + 1
    # Distinct values by multiplicity then value, e.g. full house -> [trips, pair].
    groups = sorted(counts, key=lambda value: (counts[value], value), reverse=True)
    shape = sorted(counts.values(), reverse=True)

    if straight and flush:
        return (8, [straight])
    if shape[0] == 4:
        return (7, groups)
    if shape[:2] == [3, 2]:
        return (6, groups)
    if flush:
        return (5, values)
    if straight:
        return (4, [straight])
    if shape[0] == 3:
        return (3, groups)
    if shape[:2] == [2, 2]:
        return (2, groups)
    if shape[0] == 2:
        return (1, groups)
    return (0, values)


def _straight_high(cards: Iterable[Card]) -> Optional[int]:
    values = {RANK_VALUE[card.rank] for card in cards}
    if 14 in values:  # Ace low
        values.add(1)
    ordered = sorted(values)
    best = None
    for idx in range(len(ordered) - 4):
        window = ordered[idx : idx + 5]
        if window == list(range(window[0], window[0] + 5)):
            best = window[-1]
    return best
