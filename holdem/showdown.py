from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional, Set

from .cards import Card, cards_to_labels
from .errors import InvalidShowdownDecision
from .evaluator import HandRanking
from .models import ShowDecision, TablePhase

if TYPE_CHECKING:
    from .game import GameEngine

LOGGER = logging.getLogger("holdem.showdown")

Event = Dict[str, object]


class ShowdownKind(str, Enum):
    FOLD_OUT = "fold_out"
    SHOWDOWN = "showdown"


@dataclass
class ShowdownHand:
    username: str
    hole_cards: List[Card]
    folded: bool
    ranking: Optional[HandRanking] = None

    @property
    def hand_name(self) -> Optional[str]:
        return self.ranking.name if self.ranking else None


@dataclass
class ShowdownContext:
    hand_id: Optional[str]
    kind: ShowdownKind
    hands: Dict[str, ShowdownHand]
    winners: List[str]
    last_aggressor: Optional[str]
    decisions: Dict[str, ShowDecision] = field(default_factory=dict)
    payouts: Dict[str, int] = field(default_factory=dict)
    pot: int = 0
    undecided_split: bool = False
    settled: bool = False


class ShowdownCoordinator:
    """Post-river protocol: collect show/muck decisions, settle the pot, hand back to idle.

    Lifecycle is ``awaiting decisions -> reviewing -> idle``, tracked through the
    engine's table phase (SHOWDOWN, REVIEW, WAITING). A fold-out skips straight to
    REVIEW with the pot already awarded. Timers are owned by the caller, which
    invokes :meth:`expire` and :meth:`reset_to_idle` when they fire.
    """

    default_decision = ShowDecision.MUCK

    def __init__(self, engine: "GameEngine") -> None:
        self.engine = engine
        self.context: Optional[ShowdownContext] = None

    @property
    def awaiting_decisions(self) -> bool:
        ctx = self.context
        return bool(ctx and ctx.kind == ShowdownKind.SHOWDOWN and not ctx.settled)

    def pending(self) -> List[str]:
        if not self.awaiting_decisions:
            return []
        assert self.context is not None
        return [name for name, choice in self.context.decisions.items() if choice == ShowDecision.UNDECIDED]

    def choices(self) -> Dict[str, str]:
        if not self.context:
            return {}
        return {name: choice.value for name, choice in self.context.decisions.items()}

    def revealed(self) -> Set[str]:
        ctx = self.context
        if not ctx or not ctx.settled:
            return set()
        return {name for name, choice in ctx.decisions.items() if choice == ShowDecision.SHOW}

    # Entry points ----------------------------------------------------

    def open_fold_out(self, winner_idx: int) -> List[Event]:
        st = self.engine.state
        winner = st.seats[winner_idx]
        self.context = ShowdownContext(
            hand_id=st.hand_id,
            kind=ShowdownKind.FOLD_OUT,
            hands=self._freeze_hands(rank=False),
            winners=[winner.username],
            last_aggressor=st.last_aggressor,
        )
        amount = st.pot
        self._award([winner.username])
        self.context.settled = True
        st.phase = TablePhase.REVIEW
        st.current_index = None
        LOGGER.info("Hand %s won by %s uncontested (%s chips)", st.hand_id, winner.username, amount)
        return [{"ev": "FOLD_OUT", "winner": winner.username, "amount": amount}]

    def open_showdown(self) -> List[Event]:
        st = self.engine.state
        hands = self._freeze_hands(rank=True)
        contenders = [name for name, hand in hands.items() if not hand.folded]
        provisional = self.engine.oracle.winners({name: hands[name].ranking for name in contenders})
        self.context = ShowdownContext(
            hand_id=st.hand_id,
            kind=ShowdownKind.SHOWDOWN,
            hands=hands,
            winners=provisional,
            last_aggressor=st.last_aggressor,
            decisions={name: ShowDecision.UNDECIDED for name in contenders},
        )
        st.phase = TablePhase.SHOWDOWN
        st.current_index = None
        LOGGER.info(
            "Hand %s showdown between %s (last aggressor: %s)",
            st.hand_id,
            ", ".join(contenders),
            st.last_aggressor,
        )
        return [{"ev": "SHOWDOWN_OPEN", "contenders": contenders, "last_aggressor": st.last_aggressor}]

    # Decisions -------------------------------------------------------

    def record_decision(self, username: str, decision: ShowDecision) -> List[Event]:
        if not self.awaiting_decisions:
            raise InvalidShowdownDecision()
        assert self.context is not None
        if decision not in (ShowDecision.SHOW, ShowDecision.MUCK):
            raise InvalidShowdownDecision("Decision must be show or muck")
        current = self.context.decisions.get(username)
        if current is None:
            raise InvalidShowdownDecision(f"{username} is not part of this showdown")
        if current != ShowDecision.UNDECIDED:
            raise InvalidShowdownDecision(f"You already chose to {current.value}")

        self.context.decisions[username] = decision
        self.engine.log_action(username, decision.value)
        LOGGER.info("%s chose to %s", username, decision.value)
        events: List[Event] = [{"ev": "SHOW_CHOICE", "choices": self.choices()}]
        if not self.pending():
            events.extend(self.settle())
        return events

    def expire(self) -> List[Event]:
        """Default every undecided seat to muck and settle."""
        if not self.awaiting_decisions:
            return []
        assert self.context is not None
        pending = self.pending()
        for name in pending:
            self.context.decisions[name] = self.default_decision
        LOGGER.info("Showdown timer expired; mucking for %s", ", ".join(pending) or "nobody")
        return [{"ev": "SHOW_CHOICE", "choices": self.choices()}] + self.settle()

    def settle(self) -> List[Event]:
        ctx = self.context
        assert ctx is not None
        st = self.engine.state
        shown = [name for name, choice in ctx.decisions.items() if choice == ShowDecision.SHOW]
        if shown:
            rankings = {name: ctx.hands[name].ranking for name in shown}
            winners = self.engine.oracle.winners(rankings)  # type: ignore[arg-type]
            ctx.undecided_split = False
        else:
            winners = list(ctx.decisions)
            ctx.undecided_split = True

        self._award(winners)
        ctx.winners = list(winners)
        ctx.settled = True
        st.phase = TablePhase.REVIEW
        LOGGER.info(
            "Hand %s settled: pot=%s winners=%s%s",
            st.hand_id,
            ctx.pot,
            ", ".join(winners),
            " (split, nobody showed)" if ctx.undecided_split else "",
        )
        return [
            {
                "ev": "SETTLED",
                "winners": list(winners),
                "pot": ctx.pot,
                "undecided_split": ctx.undecided_split,
            }
        ]

    def reset_to_idle(self) -> List[Event]:
        if self.engine.state.phase != TablePhase.REVIEW:
            return []
        self.context = None
        self.engine.reset_hand()
        LOGGER.info("Table reset; waiting for players to ready up")
        return [{"ev": "RESET"}]

    def discard(self) -> None:
        self.context = None

    # Helpers ---------------------------------------------------------

    def _freeze_hands(self, rank: bool) -> Dict[str, ShowdownHand]:
        st = self.engine.state
        hands: Dict[str, ShowdownHand] = {}
        for seat in st.seats:
            if not seat.hole_cards:
                continue
            ranking = None
            if rank and not seat.folded:
                ranking = self.engine.oracle.rank(seat.hole_cards + st.community)
                seat.hand = ranking
            hands[seat.username] = ShowdownHand(seat.username, list(seat.hole_cards), seat.folded, ranking)
        return hands

    def _award(self, winners: List[str]) -> None:
        """Split the pot; odd chips go one each to winners nearest the dealer's left."""
        ctx = self.context
        assert ctx is not None
        st = self.engine.state
        ordered = self._order_from_dealer(winners)
        if not ordered:
            return
        ctx.pot = st.pot
        share, remainder = divmod(st.pot, len(ordered))
        for position, name in enumerate(ordered):
            payout = share + (1 if position < remainder else 0)
            idx = self.engine.find_seat(name)
            if idx is not None:
                st.seats[idx].chips += payout
            ctx.payouts[name] = payout
            self.engine.log_action(name, "win", payout)
        st.pot = 0

    def _order_from_dealer(self, names: List[str]) -> List[str]:
        st = self.engine.state
        count = len(st.seats)
        start = (st.dealer_index if st.dealer_index is not None else -1) + 1

        def distance(name: str) -> int:
            idx = self.engine.find_seat(name)
            return count if idx is None else (idx - start) % count

        return sorted(names, key=distance)

    # Payloads --------------------------------------------------------

    def payload(self) -> Dict[str, object]:
        """Body of the ``showdown`` message; cards only for seats that showed after settlement."""
        ctx = self.context
        if ctx is None:
            return {}
        revealed = self.revealed()
        winners = []
        if ctx.settled:
            for name in ctx.winners:
                idx = self.engine.find_seat(name)
                ranking = ctx.hands[name].ranking if name in ctx.hands else None
                winners.append(
                    {
                        "name": name,
                        "chips": self.engine.state.seats[idx].chips if idx is not None else None,
                        "amount": ctx.payouts.get(name, 0),
                        "hand": ranking.name if ranking and name in revealed else None,
                    }
                )
        showdown_players = []
        for name, hand in ctx.hands.items():
            shown = name in revealed
            showdown_players.append(
                {
                    "name": name,
                    "folded": hand.folded,
                    "decision": ctx.decisions[name].value if name in ctx.decisions else None,
                    "holeCards": cards_to_labels(hand.hole_cards) if shown else [],
                    "hand": hand.hand_name if shown else None,
                    "description": hand.ranking.description if shown and hand.ranking else None,
                }
            )
        return {
            "handId": ctx.hand_id,
            "kind": ctx.kind.value,
            "final": ctx.settled,
            "winners": winners,
            "showdownPlayers": showdown_players,
            "lastAggressor": ctx.last_aggressor,
            "undecidedSplit": ctx.undecided_split,
            "pot": ctx.pot,
        }
