from __future__ import annotations

import random
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .errors import DeckExhausted

RANKS = "23456789TJQKA"
SUITS = "shdc"


@dataclass(frozen=True)
class Card:
    rank: str
    suit: str

    def __post_init__(self) -> None:
        if self.rank not in RANKS:
            raise ValueError(f"Invalid rank: {self.rank}")
        if self.suit not in SUITS:
            raise ValueError(f"Invalid suit: {self.suit}")

    @property
    def label(self) -> str:
        return f"{self.rank}{self.suit}"


class Deck:
    """The undealt cards of one hand. Draws come off the end of ``cards``."""

    def __init__(self) -> None:
        self.cards: List[Card] = [Card(rank, suit) for suit in SUITS for rank in RANKS]

    @classmethod
    def shuffled(cls, seed: Optional[int] = None) -> "Deck":
        deck = cls()
        deck.shuffle(random.Random(seed) if seed is not None else random.SystemRandom())
        return deck

    def __len__(self) -> int:
        return len(self.cards)

    def shuffle(self, rng: Optional[random.Random] = None) -> None:
        (rng or random.SystemRandom()).shuffle(self.cards)

    def draw(self) -> Card:
        if not self.cards:
            raise DeckExhausted()
        return self.cards.pop()

    def draw_many(self, count: int) -> List[Card]:
        if len(self.cards) < count:
            raise DeckExhausted(f"Need {count} cards, {len(self.cards)} left")
        return [self.draw() for _ in range(count)]


def cards_to_labels(cards: Sequence[Card]) -> List[str]:
    return [card.label for card in cards]


def parse_label(label: str) -> Card:
    if len(label) != 2:
        raise ValueError(f"Invalid card label: {label}")
    return Card(label[0], label[1])


def parse_cards(labels: Sequence[str]) -> List[Card]:
    return [parse_label(label) for label in labels]
