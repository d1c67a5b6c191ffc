"""Local cache of a user's document, usable without the server.

Values live in a flat string key-value storage (the browser's localStorage
or a JSON file) under keys ``lifegrass:<username>:<field>``. ``:`` cannot
appear in a normalized username, so one user's keys never match another
user's prefix.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, Optional, Protocol

from pydantic import ValidationError

from lifegrass.schemas import MAX_BIRTH_YEAR, MIN_BIRTH_YEAR, JournalEntry, UserState
from lifegrass.services.weeks import is_week_key

logger = logging.getLogger(__name__)

STORAGE_PREFIX = "lifegrass"
BIRTH_YEAR = "birthYear"
FILLED_WEEKS = "filledWeeks"
JOURNAL = "journal"
TOKEN = "token"


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryStorage:
    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class JsonFileStorage(MemoryStorage):
    """Key-value storage persisted as one JSON object, rewritten atomically on every change."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        items: dict[str, str] = {}
        if self.path.exists():
            try:
                loaded = json.loads(self.path.read_text(encoding="utf-8") or "{}")
                if isinstance(loaded, dict):
                    items = {str(k): str(v) for k, v in loaded.items()}
            except (OSError, ValueError):
                logger.warning("Ignoring unreadable cache file %s", self.path)
        super().__init__(items)

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".cache-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._items, f, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def set_item(self, key: str, value: str) -> None:
        super().set_item(key, value)
        self._flush()

    def remove_item(self, key: str) -> None:
        if key in self._items:
            super().remove_item(key)
            self._flush()


class LocalCache:
    def __init__(self, storage: KeyValueStorage, username: str):
        if not username:
            raise ValueError("cache needs a username")
        self.storage = storage
        self.username = username
        self.prefix = f"{STORAGE_PREFIX}:{username}:"

    def key(self, field: str) -> str:
        return f"{self.prefix}{field}"

    def _read_json(self, field: str, default):
        raw = self.storage.get_item(self.key(field))
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable cached %s for %s", field, self.username)
            return default

    def _write_json(self, field: str, value) -> None:
        self.storage.set_item(self.key(field), json.dumps(value, ensure_ascii=False))

    # ---------- birth year ----------
    def birth_year(self) -> Optional[int]:
        raw = self.storage.get_item(self.key(BIRTH_YEAR))
        try:
            return int(raw) if raw is not None else None
        except ValueError:
            return None

    def set_birth_year(self, year: Optional[int]) -> None:
        if year is None:
            self.storage.remove_item(self.key(BIRTH_YEAR))
            return
        if not (MIN_BIRTH_YEAR <= year <= MAX_BIRTH_YEAR):
            raise ValueError(f"birth year must be between {MIN_BIRTH_YEAR} and {MAX_BIRTH_YEAR}")
        self.storage.set_item(self.key(BIRTH_YEAR), str(year))

    # ---------- weeks / journal ----------
    def filled_weeks(self) -> list[str]:
        raw = self._read_json(FILLED_WEEKS, [])
        if not isinstance(raw, list):
            return []
        return list(dict.fromkeys(k for k in raw if is_week_key(k)))

    def set_filled_weeks(self, keys: Iterable[str]) -> None:
        self._write_json(FILLED_WEEKS, list(dict.fromkeys(keys)))

    def journal(self) -> dict[str, JournalEntry]:
        raw = self._read_json(JOURNAL, {})
        if not isinstance(raw, dict):
            return {}
        out = {}
        for key, value in raw.items():
            if not is_week_key(key):
                continue
            try:
                out[key] = JournalEntry.model_validate(value)
            except ValidationError:
                logger.warning("Skipping unreadable cached entry %s for %s", key, self.username)
        return out

    def entry(self, week_key: str) -> Optional[JournalEntry]:
        return self.journal().get(week_key)

    def put_entry(self, week_key: str, entry: JournalEntry) -> None:
        """Store an entry and mark its week filled, keeping both fields in step."""
        if not is_week_key(week_key):
            raise ValueError(f"not a week key: {week_key!r}")
        journal = self.journal()
        journal[week_key] = entry
        self._write_json(JOURNAL, {k: e.to_wire() for k, e in journal.items()})
        filled = self.filled_weeks()
        if week_key not in filled:
            filled.append(week_key)
            self.set_filled_weeks(filled)

    # ---------- token ----------
    def token(self) -> Optional[str]:
        return self.storage.get_item(self.key(TOKEN)) or None

    def save_token(self, token: str) -> None:
        self.storage.set_item(self.key(TOKEN), token)

    def clear_token(self) -> None:
        self.storage.remove_item(self.key(TOKEN))

    # ---------- whole document ----------
    def snapshot(self) -> UserState:
        return UserState(
            birth_year=self.birth_year(),
            filled_weeks=self.filled_weeks(),
            journal=self.journal(),
        )

    def apply(self, state: UserState) -> None:
        """Replace the cached document with ``state``; the token is left alone."""
        self.set_birth_year(state.birth_year)
        self.set_filled_weeks(state.filled_weeks)
        self._write_json(JOURNAL, {k: e.to_wire() for k, e in state.journal.items()})

    def clear(self) -> None:
        for key in self.storage.keys():
            if key.startswith(self.prefix):
                self.storage.remove_item(key)
