from __future__ import annotations

import asyncio
import functools
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import websockets

from holdem.errors import InvalidAction, InvalidShowdownDecision, NotSeated, TableError
from holdem.evaluator import HandOracle
from holdem.game import Event, GameEngine
from holdem.models import ActionType, ShowDecision, TableConfig

from .store import ChipStore
from .timers import TimerSlot

LOGGER = logging.getLogger("holdem_server")

# TableSession routes one table's connections into the engine. Every inbound
# message and every timer firing runs under ``self.lock`` from validation to
# the last broadcast, so handlers never interleave on the shared state.

Message = Dict[str, Any]
Handler = Callable[["ClientSession", Message], Awaitable[None]]


def envelope(msg_type: str, payload: Dict[str, object]) -> str:
    body: Dict[str, object] = {"type": msg_type, "v": 1, "ts": datetime.now(timezone.utc).isoformat()}
    body.update(payload)
    return json.dumps(body)


@dataclass(eq=False)
class ClientSession:
    websocket: Any
    username: Optional[str] = None
    table: Optional["TableSession"] = None

    async def send(self, msg_type: str, payload: Dict[str, object]) -> None:
        try:
            await self.websocket.send(envelope(msg_type, payload))
        except websockets.ConnectionClosed:
            pass

    async def send_error(self, code: str, msg: str) -> None:
        await self.send("errorMessage", {"code": code, "msg": msg})


class TableSession:
    def __init__(
        self,
        table_id: str,
        config: TableConfig,
        store: ChipStore,
        oracle: Optional[HandOracle] = None,
        on_empty: Optional[Callable[["TableSession"], None]] = None,
    ) -> None:
        self.table_id = table_id
        self.on_empty = on_empty
        self.config = config
        self.engine = GameEngine(config, oracle)
        self.store = store
        self.lock = asyncio.Lock()
        self.clients: List[ClientSession] = []
        self.showdown_timer = TimerSlot(f"{table_id}:showdown")
        self.reset_timer = TimerSlot(f"{table_id}:reset")
        self.disconnect_timers: Dict[str, TimerSlot] = {}
        self._saved_chips: Dict[str, int] = {}
        self._handlers: Dict[str, Handler] = {
            "joinGame": self._on_join,
            "playerAction": self._on_action,
            "playerReady": self._on_ready,
            "startRound": self._on_start_round,
            "showHand": functools.partial(self._on_decision, decision=ShowDecision.SHOW),
            "muckHand": functools.partial(self._on_decision, decision=ShowDecision.MUCK),
            "rebuy": self._on_rebuy,
        }

    # Inbound ---------------------------------------------------------

    async def handle_message(self, client: ClientSession, message: Message) -> None:
        msg_type = message.get("type")
        handler = self._handlers.get(msg_type) if isinstance(msg_type, str) else None
        async with self.lock:
            try:
                if handler is None:
                    raise InvalidAction(f"Unsupported message type {msg_type!r}")
                await handler(client, message)
            except TableError as exc:
                LOGGER.warning(
                    "Rejected %s from %s on %s: %s",
                    msg_type,
                    client.username,
                    self.table_id,
                    exc.msg,
                )
                await client.send_error(exc.code, exc.msg)
            except Exception:
                LOGGER.exception("Failed to process %s from %s on %s", msg_type, client.username, self.table_id)
                await client.send_error("INTERNAL_ERROR", "Something went wrong processing your request")

    async def _on_join(self, client: ClientSession, message: Message) -> None:
        raw = message.get("username")
        if not isinstance(raw, str) or not raw.strip():
            raise InvalidAction("username required")
        username = raw.strip()
        if client.username and client.username != username:
            raise InvalidAction(f"Connection already joined as {client.username}")

        if self.engine.find_seat(username) is None:
            chips = self.store.load(username)
            if chips is None:
                chips = self.config.starting_stack
            self.engine.add_player(username, chips)
            self._saved_chips[username] = chips
            LOGGER.info("%s took a seat at %s (chips=%s)", username, self.table_id, chips)
        else:
            self._cancel_disconnect(username)
            seat = self.engine.seat_for(username)
            seat.connected = True
            seat.leaving = False
            LOGGER.info("%s reconnected to %s", username, self.table_id)

        client.username = username
        client.table = self
        if client not in self.clients:
            self.clients.append(client)
        await self._broadcast_state()

    async def _on_action(self, client: ClientSession, message: Message) -> None:
        seat_idx = self._seat_index(client)
        raw = message.get("action")
        if isinstance(raw, dict):
            action_name, amount = raw.get("type"), raw.get("amount")
        else:
            action_name, amount = raw, message.get("amount")
        if not isinstance(action_name, str):
            raise InvalidAction()
        try:
            action = ActionType(action_name)
        except ValueError:
            raise InvalidAction(f"Unknown action {action_name!r}") from None

        events = self.engine.apply_action(seat_idx, action, amount)
        LOGGER.debug(
            "Applied action hand=%s player=%s action=%s amount=%s",
            self.engine.state.hand_id,
            client.username,
            action.value,
            amount,
        )
        await self._after_events(events)

    async def _on_ready(self, client: ClientSession, message: Message) -> None:
        self._seat_index(client)
        assert client.username is not None
        self.engine.mark_ready(client.username)
        if self.engine.can_start_hand():
            await self._start_hand()
        else:
            await self._broadcast_state()

    async def _on_start_round(self, client: ClientSession, message: Message) -> None:
        self._seat_index(client)
        await self._start_hand()

    async def _on_decision(self, client: ClientSession, message: Message, *, decision: ShowDecision) -> None:
        if client.username is None or self.engine.find_seat(client.username) is None:
            raise InvalidShowdownDecision("Unknown seat")
        events = self.engine.showdown.record_decision(client.username, decision)
        await self._after_events(events)

    async def _on_rebuy(self, client: ClientSession, message: Message) -> None:
        self._seat_index(client)
        assert client.username is not None
        events = self.engine.rebuy(client.username)
        await self._after_events(events)

    def _seat_index(self, client: ClientSession) -> int:
        if client.username is None:
            raise NotSeated()
        seat_idx = self.engine.find_seat(client.username)
        if seat_idx is None:
            raise NotSeated()
        return seat_idx

    async def _start_hand(self) -> None:
        self.engine.check_can_start()
        # A manual start replaces whatever reset was pending.
        self.showdown_timer.cancel()
        self.reset_timer.cancel()
        events = self.engine.start_hand()
        await self._after_events(events)

    # Disconnects -----------------------------------------------------

    async def disconnect(self, client: ClientSession) -> None:
        async with self.lock:
            if client in self.clients:
                self.clients.remove(client)
            username = client.username
            if username is None or self.engine.find_seat(username) is None:
                self.release_if_empty()
                return
            if any(other.username == username for other in self.clients):
                return
            self.engine.set_connected(username, False)
            LOGGER.info(
                "%s disconnected from %s; removing in %ss unless they return",
                username,
                self.table_id,
                self.config.disconnect_grace,
            )
            await self._broadcast(
                "playerDisconnectNotice",
                {"username": username, "timeout": self.config.disconnect_grace},
            )
            slot = self.disconnect_timers.setdefault(username, TimerSlot(f"{self.table_id}:disconnect:{username}"))
            slot.schedule(self.config.disconnect_grace, functools.partial(self._disconnect_expired, username))
            await self._broadcast_state()

    def _cancel_disconnect(self, username: str) -> None:
        slot = self.disconnect_timers.pop(username, None)
        if slot is not None:
            slot.cancel()

    async def _disconnect_expired(self, username: str, token: int) -> None:
        async with self.lock:
            slot = self.disconnect_timers.get(username)
            if slot is None or not slot.is_current(token):
                return
            del self.disconnect_timers[username]
            try:
                events = self.engine.remove_player(username)
                for other in self.clients:
                    if other.username == username:
                        other.username = None
                        other.table = None
                self.clients = [other for other in self.clients if other.username is not None]
                self._saved_chips.pop(username, None)
                LOGGER.info("Removed %s from %s after disconnect grace period", username, self.table_id)
                await self._after_events(events)
                await self._broadcast("playerRemoveNotice", {"username": username})
            except Exception:
                LOGGER.exception("Failed to remove %s from %s", username, self.table_id)
            self.release_if_empty()

    # Showdown timers -------------------------------------------------

    async def _showdown_expired(self, token: int) -> None:
        await self._run_timer(self.showdown_timer, token, self.engine.showdown.expire)

    async def _reset_expired(self, token: int) -> None:
        await self._run_timer(self.reset_timer, token, self.engine.showdown.reset_to_idle)

    async def _run_timer(self, slot: TimerSlot, token: int, action: Callable[[], List[Event]]) -> None:
        async with self.lock:
            if not slot.is_current(token):
                return
            LOGGER.info("Timer %s fired", slot.name)
            try:
                await self._after_events(action())
            except Exception:
                LOGGER.exception("Timer %s failed", slot.name)
            self.release_if_empty()

    # Outbound --------------------------------------------------------

    async def _after_events(self, events: List[Event]) -> None:
        showdown = self.engine.showdown
        for event in events:
            kind = event.get("ev")
            if kind == "FOLD_OUT":
                self.showdown_timer.cancel()
                await self._broadcast("showdown", showdown.payload())
                self.reset_timer.schedule(self.config.showdown_timeout, self._reset_expired)
            elif kind == "SHOWDOWN_OPEN":
                self.reset_timer.cancel()
                await self._broadcast("showdown", showdown.payload())
                self.showdown_timer.schedule(self.config.showdown_timeout, self._showdown_expired)
            elif kind == "SHOW_CHOICE":
                await self._broadcast("showChoicesUpdate", {"choices": event["choices"]})
            elif kind == "SETTLED":
                self.showdown_timer.cancel()
                await self._broadcast("showdown", showdown.payload())
                await self._broadcast("showdownReviewPhase", {"duration": self.config.review_timeout})
                self.reset_timer.schedule(self.config.review_timeout, self._reset_expired)
        await self._persist_chips()
        await self._broadcast_state()

    async def _persist_chips(self) -> None:
        changed = {
            seat.username: seat.chips
            for seat in self.engine.state.seats
            if self._saved_chips.get(seat.username) != seat.chips
        }
        if not changed:
            return
        # One write per handler, kept off the event loop.
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self.store.save_many, changed)
        except OSError:
            LOGGER.exception("Could not persist chips for %s", ", ".join(changed))
            return
        self._saved_chips.update(changed)

    async def _broadcast(self, msg_type: str, payload: Dict[str, object]) -> None:
        targets = list(self.clients)
        if not targets:
            return
        await asyncio.gather(*(client.send(msg_type, payload) for client in targets), return_exceptions=True)

    async def _broadcast_state(self) -> None:
        targets = list(self.clients)
        if not targets:
            return
        await asyncio.gather(
            *(client.send("gameState", self.engine.snapshot(client.username)) for client in targets),
            return_exceptions=True,
        )

    @property
    def is_empty(self) -> bool:
        return not self.engine.state.seats and not self.clients

    def release_if_empty(self) -> None:
        """Hand an abandoned table back to its owner, which closes and forgets it."""
        if self.is_empty and self.on_empty is not None:
            self.on_empty(self)

    def close(self) -> None:
        self.showdown_timer.cancel()
        self.reset_timer.cancel()
        for slot in self.disconnect_timers.values():
            slot.cancel()
        self.disconnect_timers.clear()
