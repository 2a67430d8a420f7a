from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import websockets

from holdem.errors import InvalidAction, NotSeated
from holdem.evaluator import HandOracle
from holdem.models import TableConfig

from .session import ClientSession, TableSession
from .store import ChipStore, MemoryChipStore

LOGGER = logging.getLogger("holdem_server")

DEFAULT_TABLE = "main"

# TableServer owns the websocket listener and the arena of tables. It only
# decodes frames and picks the table; everything else is TableSession's job.


class TableServer:
    def __init__(
        self,
        config: TableConfig,
        store: Optional[ChipStore] = None,
        oracle: Optional[HandOracle] = None,
    ) -> None:
        self.config = config
        self.store: ChipStore = store if store is not None else MemoryChipStore()
        self.oracle = oracle
        self.tables: Dict[str, TableSession] = {}

    def table(self, table_id: str) -> TableSession:
        session = self.tables.get(table_id)
        if session is None:
            session = TableSession(table_id, self.config, self.store, self.oracle, on_empty=self._release)
            self.tables[table_id] = session
            LOGGER.info("Opened table %s", table_id)
        return session

    def _release(self, session: TableSession) -> None:
        if self.tables.get(session.table_id) is not session:
            return
        del self.tables[session.table_id]
        session.close()
        LOGGER.info("Closed empty table %s", session.table_id)

    async def start(self, host: str = "0.0.0.0", port: int = 8080) -> None:
        # websockets.serve keeps accepting clients until the process stops.
        async with websockets.serve(self._handle_connection, host, port):
            LOGGER.info("Table server listening on %s:%s", host, port)
            try:
                await asyncio.Future()
            finally:
                for session in self.tables.values():
                    session.close()

    async def _handle_connection(self, websocket: Any) -> None:
        client = ClientSession(websocket=websocket)
        LOGGER.info("Connection opened from %s", getattr(websocket, "remote_address", None))
        try:
            async for raw in websocket:
                await self.dispatch(client, self._decode(raw))
        except websockets.ConnectionClosed:
            pass
        finally:
            LOGGER.info("Connection closed for %s", client.username or "anonymous client")
            if client.table is not None:
                await client.table.disconnect(client)

    async def dispatch(self, client: ClientSession, message: Dict[str, Any]) -> None:
        if not message:
            await client.send_error(InvalidAction.code, "Messages must be JSON objects")
            return
        if message.get("type") == "joinGame":
            table_id = message.get("table") or DEFAULT_TABLE
            if not isinstance(table_id, str):
                await client.send_error(InvalidAction.code, "table must be a string")
                return
            if client.table is not None and client.table.table_id != table_id:
                await client.send_error(InvalidAction.code, f"Already seated at table {client.table.table_id}")
                return
            username = message.get("username")
            if not isinstance(username, str) or not username.strip():
                await client.send_error(InvalidAction.code, "username required")
                return
            session = self.table(table_id)
            await session.handle_message(client, message)
            session.release_if_empty()
            return
        if client.table is None:
            await client.send_error(NotSeated.code, NotSeated.default_msg)
            return
        await client.table.handle_message(client, message)

    def _decode(self, raw: Any) -> Dict[str, Any]:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            return {}
        return message if isinstance(message, dict) else {}
