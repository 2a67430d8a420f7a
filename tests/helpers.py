from __future__ import annotations

import asyncio
import json
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from holdem.cards import Deck, parse_cards
from holdem.evaluator import BestHandOracle, HandOracle, HandRanking
from holdem.game import Event, GameEngine
from holdem.models import ActionType, TableConfig, TablePhase
from holdem_server.session import ClientSession, TableSession
from holdem_server.store import MemoryChipStore


def create_engine(
    *,
    players: int = 3,
    max_seats: int = 12,
    starting_stack: int = 1_000,
    sb: int = 10,
    bb: int = 20,
    ready: bool = True,
    oracle: Optional[HandOracle] = None,
) -> GameEngine:
    """Instantiate an engine with ``players`` seats named Player0, Player1, ..."""
    config = TableConfig(max_seats=max_seats, starting_stack=starting_stack, sb=sb, bb=bb)
    engine = GameEngine(config, oracle=oracle)
    for idx in range(players):
        engine.add_player(f"Player{idx}", starting_stack)
        if ready:
            engine.mark_ready(f"Player{idx}")
    return engine


def start_hand(engine: GameEngine, seed: int = 42) -> List[Event]:
    events = engine.start_hand(seed=seed)
    assert engine.state.phase in (TablePhase.BETTING, TablePhase.SHOWDOWN)
    return events


def ready_all(engine: GameEngine) -> None:
    for seat in engine.state.seats:
        seat.ready = True


def rig_hand(engine: GameEngine, holes: Dict[str, Sequence[str]], board: Sequence[str]) -> None:
    """Replace hole cards and stack the deck so the next streets deal ``board``.

    Call right after ``start_hand``. Each street burns one card before dealing.
    """
    st = engine.state
    used = set(board)
    for name, labels in holes.items():
        st.seats[engine.find_seat(name)].hole_cards = parse_cards(labels)
        used.update(labels)
    spare = [card for card in Deck().cards if card.label not in used]
    flop, turn, river = parse_cards(board[:3]), parse_cards(board[3:4]), parse_cards(board[4:5])
    dealt = [spare[0], *flop, spare[1], *turn, spare[2], *river]
    # Draws pop from the end of the list.
    assert st.deck is not None
    st.deck.cards = list(reversed(dealt))


def act(engine: GameEngine, name: str, action: str, amount: Optional[int] = None) -> List[Event]:
    idx = engine.find_seat(name)
    assert idx is not None
    return engine.apply_action(idx, ActionType(action), amount)


def perform_actions(engine: GameEngine, actions: Iterable[Tuple[str, str, Optional[int]]]) -> List[Event]:
    """Apply a scripted sequence of (player, action, amount) tuples."""
    events: List[Event] = []
    for name, action, amount in actions:
        events.extend(act(engine, name, action, amount))
    return events


def check_down(engine: GameEngine) -> List[Event]:
    """Have whoever is to act call or check until betting is over."""
    events: List[Event] = []
    while engine.state.phase == TablePhase.BETTING:
        idx = engine.state.current_index
        assert idx is not None
        events.extend(engine.apply_action(idx, ActionType.BET, engine.state.current_bet))
    return events


def event_names(events: Iterable[Event]) -> List[str]:
    return [str(event["ev"]) for event in events]


class RecordingOracle:
    """Wraps the real oracle and counts every call made into it."""

    def __init__(self) -> None:
        self.inner = BestHandOracle()
        self.rank_calls = 0
        self.winner_calls = 0

    def rank(self, cards):
        self.rank_calls += 1
        return self.inner.rank(cards)

    def winners(self, hands: Dict[str, HandRanking]):
        self.winner_calls += 1
        return self.inner.winners(hands)


# Fake sockets so we can exercise async paths without opening real connections.
class DummyWebSocket:
    def __init__(self) -> None:
        self.sent: List[Dict[str, object]] = []

    async def send(self, message: str) -> None:
        self.sent.append(json.loads(message))

    def of_type(self, msg_type: str) -> List[Dict[str, object]]:
        return [message for message in self.sent if message["type"] == msg_type]

    def last(self, msg_type: str) -> Dict[str, object]:
        messages = self.of_type(msg_type)
        assert messages, f"no {msg_type} message received"
        return messages[-1]


def create_table(
    config: Optional[TableConfig] = None,
    store: Optional[MemoryChipStore] = None,
) -> TableSession:
    return TableSession("main", config or TableConfig(), store if store is not None else MemoryChipStore())


async def join(table: TableSession, username: str) -> Tuple[ClientSession, DummyWebSocket]:
    websocket = DummyWebSocket()
    client = ClientSession(websocket=websocket)
    await table.handle_message(client, {"type": "joinGame", "username": username})
    return client, websocket


async def seat_players(table: TableSession, names: Sequence[str]) -> List[Tuple[ClientSession, DummyWebSocket]]:
    return [await join(table, name) for name in names]


async def ready_up(table: TableSession, clients: Sequence[ClientSession]) -> None:
    for client in clients:
        await table.handle_message(client, {"type": "playerReady"})


async def check_down_over_wire(table: TableSession, clients: Sequence[ClientSession]) -> None:
    by_name = {client.username: client for client in clients}
    while table.engine.state.phase == TablePhase.BETTING:
        actor = table.engine.current_player()
        await table.handle_message(
            by_name[actor],
            {"type": "playerAction", "action": "bet", "amount": table.engine.state.current_bet},
        )


async def settle_briefly(delay: float = 0.05) -> None:
    await asyncio.sleep(delay)
