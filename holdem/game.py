from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

from .cards import Card, Deck, cards_to_labels
from .errors import (
    AlreadyFolded,
    BetTooLow,
    HandInProgress,
    InsufficientCards,
    InsufficientChips,
    InvalidAction,
    NotEnoughPlayers,
    NotSeated,
    NotYourTurn,
    PlayersNotReady,
    RebuyNotAllowed,
    TableError,
    TableFull,
)
from .evaluator import BestHandOracle, HandOracle
from .models import BOARD_DRAWS, ActionType, PlayerSeat, Round, TableConfig, TablePhase
from .showdown import ShowdownCoordinator

LOGGER = logging.getLogger("holdem.game")

# GameEngine keeps all table state in memory. No networking or timers live
# here, only poker rules, chip accounting and turn order. Every mutating call
# returns a list of event dicts for the caller to broadcast.

Event = Dict[str, object]

STREETS = {
    Round.PRE_FLOP: (Round.FLOP, 3),
    Round.FLOP: (Round.TURN, 1),
    Round.TURN: (Round.RIVER, 1),
}


@dataclass
class TableState:
    seats: List[PlayerSeat] = field(default_factory=list)
    community: List[Card] = field(default_factory=list)
    deck: Optional[Deck] = None
    pot: int = 0
    current_bet: int = 0
    dealer_index: Optional[int] = None
    current_index: Optional[int] = None
    round: Round = Round.PRE_FLOP
    phase: TablePhase = TablePhase.WAITING
    last_aggressor: Optional[str] = None
    hand_id: Optional[str] = None
    action_log: Deque[Event] = field(default_factory=deque)

    def active_indices(self) -> List[int]:
        return [idx for idx, seat in enumerate(self.seats) if not seat.folded]

    def contributions(self) -> int:
        return sum(seat.total_bet for seat in self.seats)


class GameEngine:
    """Texas Hold'em rules for a single table of up to ``max_seats`` players."""

    def __init__(self, config: TableConfig, oracle: Optional[HandOracle] = None) -> None:
        self.config = config
        self.oracle: HandOracle = oracle or BestHandOracle()
        self.state = TableState(action_log=deque(maxlen=config.action_log_size))
        self.showdown = ShowdownCoordinator(self)
        self.hand_counter = 0

    # Seat management -------------------------------------------------

    def find_seat(self, username: str) -> Optional[int]:
        for idx, seat in enumerate(self.state.seats):
            if seat.username == username:
                return idx
        return None

    def seat_for(self, username: str) -> PlayerSeat:
        idx = self.find_seat(username)
        if idx is None:
            raise NotSeated()
        return self.state.seats[idx]

    def add_player(self, username: str, chips: int) -> PlayerSeat:
        if self.find_seat(username) is not None:
            raise InvalidAction(f"{username} is already seated")
        if len(self.state.seats) >= self.config.max_seats:
            raise TableFull(f"The game is full (maximum {self.config.max_seats} players).")
        seat = PlayerSeat(username=username, chips=chips)
        if self.state.phase in (TablePhase.BETTING, TablePhase.SHOWDOWN):
            # Late joiners sit out the running hand.
            seat.folded = True
            seat.has_acted = True
        self.state.seats.append(seat)
        return seat

    def set_connected(self, username: str, connected: bool) -> None:
        idx = self.find_seat(username)
        if idx is not None:
            self.state.seats[idx].connected = connected

    def mark_ready(self, username: str) -> None:
        self.seat_for(username).ready = True

    def remove_player(self, username: str) -> List[Event]:
        """Drop a seat, or fold it and defer the drop when it is part of a live hand."""
        idx = self.find_seat(username)
        if idx is None:
            return []
        st = self.state
        seat = st.seats[idx]
        seat.leaving = True
        seat.connected = False
        if st.phase == TablePhase.BETTING:
            if seat.folded:
                return []
            return self.force_fold(idx)
        if st.phase == TablePhase.SHOWDOWN:
            if username in self.showdown.pending():
                return self.showdown.record_decision(username, self.showdown.default_decision)
            return []
        self._purge_leaving()
        return []

    def rebuy(self, username: str) -> List[Event]:
        seat = self.seat_for(username)
        if seat.chips > 0:
            raise RebuyNotAllowed()
        if self.state.phase in (TablePhase.BETTING, TablePhase.SHOWDOWN) and not seat.folded:
            raise HandInProgress("Cannot rebuy while still in a hand")
        seat.chips += self.config.rebuy_amount
        self.log_action(username, "rebuy", self.config.rebuy_amount)
        LOGGER.info("%s rebought for %s", username, self.config.rebuy_amount)
        return [{"ev": "REBUY", "player": username, "amount": self.config.rebuy_amount}]

    def _purge_leaving(self) -> None:
        for idx in reversed(range(len(self.state.seats))):
            if self.state.seats[idx].leaving:
                self._drop_seat(idx)

    def _drop_seat(self, idx: int) -> None:
        st = self.state
        seat = st.seats.pop(idx)
        LOGGER.info("Seat of %s removed", seat.username)
        if st.dealer_index is None:
            return
        if not st.seats:
            st.dealer_index = None
        elif idx <= st.dealer_index:
            # Keep the button where it was so the next rotation lands on the following seat.
            st.dealer_index = (st.dealer_index - 1) % len(st.seats)

    # Hand lifecycle --------------------------------------------------

    def eligible_seats(self) -> List[int]:
        return [idx for idx, seat in enumerate(self.state.seats) if seat.chips > 0 and not seat.leaving]

    def check_can_start(self) -> None:
        if self.state.phase in (TablePhase.BETTING, TablePhase.SHOWDOWN):
            raise HandInProgress()
        eligible = self.eligible_seats()
        if len(eligible) < 2:
            raise NotEnoughPlayers()
        if not all(self.state.seats[idx].ready for idx in eligible):
            raise PlayersNotReady()

    def can_start_hand(self) -> bool:
        try:
            self.check_can_start()
        except TableError:
            return False
        return True

    def start_hand(self, seed: Optional[int] = None) -> List[Event]:
        self.check_can_start()
        deck = Deck.shuffled(seed)
        if len(deck) < 2 * len(self.eligible_seats()) + BOARD_DRAWS:
            raise InsufficientCards()

        self.showdown.discard()
        self.reset_hand()
        st = self.state
        eligible = self.eligible_seats()

        for seat in st.seats:
            if seat.chips <= 0:
                seat.folded = True
                seat.has_acted = True

        dealer = eligible[0] if st.dealer_index is None else self._next_eligible(st.dealer_index)
        sb_idx = self._next_eligible(dealer)
        bb_idx = self._next_eligible(sb_idx)
        st.dealer_index = dealer

        sb_seat = st.seats[sb_idx]
        bb_seat = st.seats[bb_idx]
        sb_seat.is_small_blind = True
        bb_seat.is_big_blind = True
        sb_posted = self._commit(sb_seat, min(self.config.sb, sb_seat.chips))
        bb_posted = self._commit(bb_seat, min(self.config.bb, bb_seat.chips))
        st.current_bet = max(sb_posted, bb_posted)

        order = self._rotation_from(sb_idx, eligible)
        for _ in range(2):
            for idx in order:
                st.seats[idx].hole_cards.append(deck.draw())
        st.deck = deck

        self.hand_counter += 1
        st.hand_id = f"H-{self.hand_counter:05d}"
        st.round = Round.PRE_FLOP
        st.phase = TablePhase.BETTING
        self.log_action(sb_seat.username, "small blind", sb_posted)
        self.log_action(bb_seat.username, "big blind", bb_posted)
        LOGGER.info(
            "Hand %s started: dealer=%s sb=%s bb=%s players=%s",
            st.hand_id,
            st.seats[dealer].username,
            sb_seat.username,
            bb_seat.username,
            len(order),
        )

        events: List[Event] = [
            {"ev": "HAND_START", "hand_id": st.hand_id, "dealer": st.seats[dealer].username},
            {
                "ev": "POST_BLINDS",
                "sb": sb_seat.username,
                "bb": bb_seat.username,
                "sb_amount": sb_posted,
                "bb_amount": bb_posted,
            },
        ]
        next_actor = self._next_actor_after(bb_idx)
        if next_actor is None or self.is_betting_round_complete():
            events.extend(self._close_betting_round())
        else:
            st.current_index = next_actor
        return events

    def reset_hand(self) -> None:
        """Clear every per-hand field and return the table to waiting."""
        st = self.state
        self._purge_leaving()
        for seat in st.seats:
            seat.reset_for_hand()
        st.community = []
        st.deck = None
        st.pot = 0
        st.current_bet = 0
        st.current_index = None
        st.last_aggressor = None
        st.round = Round.PRE_FLOP
        st.phase = TablePhase.WAITING

    def _rotation_from(self, start: int, indices: List[int]) -> List[int]:
        count = len(self.state.seats)
        return sorted(indices, key=lambda idx: (idx - start) % count)

    def _next_eligible(self, start: int) -> int:
        seats = self.state.seats
        for step in range(1, len(seats) + 1):
            idx = (start + step) % len(seats)
            if seats[idx].chips > 0 and not seats[idx].leaving:
                return idx
        raise NotEnoughPlayers()

    def _next_actor_after(self, start: int) -> Optional[int]:
        seats = self.state.seats
        for step in range(1, len(seats) + 1):
            idx = (start + step) % len(seats)
            if seats[idx].can_act:
                return idx
        return None

    def _commit(self, seat: PlayerSeat, amount: int) -> int:
        seat.chips -= amount
        seat.current_bet += amount
        seat.total_bet += amount
        self.state.pot += amount
        return amount

    # Action handling -------------------------------------------------

    def validate_action(self, seat_idx: int, action: ActionType, amount: Optional[int] = None) -> None:
        st = self.state
        if st.phase != TablePhase.BETTING:
            raise InvalidAction("No betting round in progress")
        if st.current_index != seat_idx:
            raise NotYourTurn()
        seat = st.seats[seat_idx]
        if seat.folded:
            raise AlreadyFolded()
        if action == ActionType.FOLD:
            return
        if action != ActionType.BET:
            raise InvalidAction(f"Unsupported action {action}")
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAction("Bet requires an integer amount")
        if amount < st.current_bet:
            raise BetTooLow(f"Bet must be at least current bet: {st.current_bet}")
        if amount > seat.chips + seat.current_bet:
            raise InsufficientChips()

    def apply_action(self, seat_idx: int, action: ActionType, amount: Optional[int] = None) -> List[Event]:
        self.validate_action(seat_idx, action, amount)
        if action == ActionType.FOLD:
            return self.apply_fold(seat_idx)
        assert amount is not None
        return self.apply_bet(seat_idx, amount)

    def apply_bet(self, seat_idx: int, target: int) -> List[Event]:
        """Bring the seat's contribution for this round up to ``target``."""
        st = self.state
        seat = st.seats[seat_idx]
        added = self._commit(seat, target - seat.current_bet)
        seat.has_acted = True

        if target > st.current_bet:
            kind = "BET" if st.current_bet == 0 else "RAISE"
            st.current_bet = target
            st.last_aggressor = seat.username
            # A raise reopens the action for everyone else still in.
            for other in st.seats:
                if other is not seat and not other.folded:
                    other.has_acted = False
        elif added > 0:
            kind = "CALL"
        else:
            kind = "CHECK"

        self.log_action(seat.username, kind.lower(), target if added else None)
        events: List[Event] = [
            {
                "ev": kind,
                "seat": seat_idx,
                "player": seat.username,
                "amount": target,
                "added": added,
                "all_in": seat.chips == 0,
            }
        ]
        events.extend(self._after_action(seat_idx))
        return events

    def apply_fold(self, seat_idx: int) -> List[Event]:
        seat = self.state.seats[seat_idx]
        seat.folded = True
        seat.has_acted = True
        self.log_action(seat.username, "fold")
        events: List[Event] = [{"ev": "FOLD", "seat": seat_idx, "player": seat.username}]
        events.extend(self._after_action(seat_idx))
        return events

    def force_fold(self, seat_idx: int) -> List[Event]:
        """Fold a seat regardless of turn order (used when a player leaves)."""
        LOGGER.info("Folding %s out of turn", self.state.seats[seat_idx].username)
        return self.apply_fold(seat_idx)

    def is_betting_round_complete(self) -> bool:
        st = self.state
        for seat in st.seats:
            if seat.folded or seat.chips == 0:
                continue
            if not seat.has_acted or seat.current_bet != st.current_bet:
                return False
        return True

    def _after_action(self, seat_idx: int) -> List[Event]:
        st = self.state
        remaining = st.active_indices()
        if len(remaining) == 1:
            return self.showdown.open_fold_out(remaining[0])
        if self.is_betting_round_complete():
            return self._close_betting_round()
        if st.current_index == seat_idx:
            next_actor = self._next_actor_after(seat_idx)
            if next_actor is None:
                return self._close_betting_round()
            st.current_index = next_actor
        return []

    def _close_betting_round(self) -> List[Event]:
        st = self.state
        events: List[Event] = []
        while True:
            if st.round == Round.RIVER:
                events.extend(self.showdown.open_showdown())
                return events
            events.extend(self.advance_street())
            actors = [idx for idx in st.active_indices() if st.seats[idx].can_act]
            if len(actors) >= 2:
                assert st.dealer_index is not None
                st.current_index = self._next_actor_after(st.dealer_index)
                return events
            # Fewer than two seats can still bet: deal the rest of the board.

    def advance_street(self) -> List[Event]:
        st = self.state
        if st.round not in STREETS or st.deck is None:
            raise InvalidAction("No street left to deal")
        next_round, count = STREETS[st.round]
        st.deck.draw()  # burn
        cards = st.deck.draw_many(count)
        st.community.extend(cards)
        st.round = next_round
        st.current_bet = 0
        st.current_index = None
        st.last_aggressor = None
        for seat in st.seats:
            if seat.folded:
                seat.current_bet = 0
                continue
            seat.reset_for_round()
            seat.hand = self.oracle.rank(seat.hole_cards + st.community)
        LOGGER.info("Hand %s %s: %s", st.hand_id, next_round.value, " ".join(cards_to_labels(cards)))
        return [{"ev": next_round.name, "cards": cards_to_labels(cards)}]

    # Snapshots -------------------------------------------------------

    def current_player(self) -> Optional[str]:
        st = self.state
        if st.phase != TablePhase.BETTING or st.current_index is None:
            return None
        return st.seats[st.current_index].username

    def dealer_name(self) -> Optional[str]:
        st = self.state
        if st.dealer_index is None or st.dealer_index >= len(st.seats):
            return None
        return st.seats[st.dealer_index].username

    def snapshot(self, viewer: Optional[str] = None) -> Dict[str, object]:
        """Table state as seen by ``viewer``; other players' hole cards stay hidden."""
        st = self.state
        revealed = self.showdown.revealed()
        players = []
        for seat in st.seats:
            visible = seat.username == viewer or seat.username in revealed
            players.append(
                {
                    "name": seat.username,
                    "chips": seat.chips,
                    "currentBet": seat.current_bet,
                    "totalBet": seat.total_bet,
                    "folded": seat.folded,
                    "isSmallBlind": seat.is_small_blind,
                    "isBigBlind": seat.is_big_blind,
                    "ready": seat.ready,
                    "connected": seat.connected,
                    "holeCards": cards_to_labels(seat.hole_cards) if visible else [],
                    "currentHand": self._current_hand(seat) if visible else None,
                }
            )
        return {
            "handId": st.hand_id,
            "players": players,
            "communityCards": cards_to_labels(st.community),
            "pot": st.pot,
            "currentBet": st.current_bet,
            "currentPlayer": self.current_player(),
            "round": st.round.value,
            "phase": st.phase.value,
            "dealer": self.dealer_name(),
            "actionLog": list(st.action_log),
        }

    def _current_hand(self, seat: PlayerSeat) -> Optional[Dict[str, str]]:
        if not seat.hole_cards:
            return None
        if not self.state.community:
            return {"name": "Hole Cards", "description": ", ".join(cards_to_labels(seat.hole_cards))}
        if seat.hand is None:
            return None
        return {"name": seat.hand.name, "description": seat.hand.description}

    def log_action(self, player: str, action: str, amount: Optional[int] = None) -> None:
        self.state.action_log.append({"player": player, "action": action, "amount": amount})
