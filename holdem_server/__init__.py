"""Table server package: routes websocket players into the Hold'em engine."""

from .server import DEFAULT_TABLE, TableServer
from .session import ClientSession, TableSession
from .store import ChipStore, JsonFileChipStore, MemoryChipStore
from .timers import TimerSlot

__all__ = [
    "DEFAULT_TABLE",
    "TableServer",
    "ClientSession",
    "TableSession",
    "ChipStore",
    "JsonFileChipStore",
    "MemoryChipStore",
    "TimerSlot",
]
