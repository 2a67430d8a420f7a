from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol, Union

LOGGER = logging.getLogger("holdem_server")


class ChipStore(Protocol):
    """Per-username chip balances kept outside the table process."""

    def load(self, username: str) -> Optional[int]:
        ...

    def save(self, username: str, chips: int) -> None:
        ...

    def save_many(self, balances: Mapping[str, int]) -> None:
        ...


class MemoryChipStore:
    def __init__(self, balances: Optional[Dict[str, int]] = None) -> None:
        self.balances: Dict[str, int] = dict(balances or {})

    def load(self, username: str) -> Optional[int]:
        return self.balances.get(username)

    def save(self, username: str, chips: int) -> None:
        self.balances[username] = chips

    def save_many(self, balances: Mapping[str, int]) -> None:
        self.balances.update(balances)


class JsonFileChipStore:
    """Balances in a single JSON object ``{username: chips}``, rewritten atomically."""

    def __init__(self, path: Union[str, os.PathLike]) -> None:
        self.path = Path(path)
        self.balances = self._read()

    def load(self, username: str) -> Optional[int]:
        return self.balances.get(username)

    def save(self, username: str, chips: int) -> None:
        self.balances[username] = chips
        self._write()

    def save_many(self, balances: Mapping[str, int]) -> None:
        self.balances.update(balances)
        self._write()

    def _read(self) -> Dict[str, int]:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} must contain a JSON object")
        LOGGER.info("Loaded %s chip balances from %s", len(data), self.path)
        return {str(name): int(chips) for name, chips in data.items()}

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(self.path.parent), prefix=".chips-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(self.balances, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
