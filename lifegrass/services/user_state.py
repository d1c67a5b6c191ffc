# services/user_state.py
"""Per-user JSON documents on top of an object store.

``save`` is a read-modify-write with no compare-and-swap: the last writer
wins. Each account has a single authenticated writer (its owner), but two
browser tabs of the same owner can still overwrite each other.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from lifegrass.errors import InvalidInput, NotFound, StorageUnavailable
from lifegrass.schemas import UserRecord, UserState
from lifegrass.services.storage import BlobStore
from lifegrass.utils import normalize_username

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserStateRepository:
    def __init__(self, store: BlobStore, *, prefix: str = "users/",
                 clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.prefix = prefix
        self.clock = clock

    def key_for(self, username: str) -> str:
        name = normalize_username(username)
        if not name:
            raise InvalidInput("Invalid username")
        return f"{self.prefix}{name}.json"

    async def exists(self, username: str) -> bool:
        return await self.store.exists(self.key_for(username))

    async def load(self, username: str) -> UserRecord:
        key = self.key_for(username)
        raw = await self.store.get(key)
        if raw is None:
            raise NotFound()
        try:
            return UserRecord.model_validate(json.loads(raw.decode("utf-8") or "{}"))
        except (UnicodeDecodeError, ValueError, ValidationError) as e:
            # unreadable is not the same as absent; never hand out an empty document here
            logger.error("Stored document %s is unreadable: %s", key, e)
            raise StorageUnavailable("Storage read failed") from e

    async def find(self, username: str) -> Optional[UserRecord]:
        try:
            return await self.load(username)
        except NotFound:
            return None

    async def save(self, username: str, state: UserState,
                   new_password_hash: Optional[str] = None) -> UserRecord:
        """Replace the synchronized fields, keeping the stored credential.

        ``new_password_hash`` is only given at registration.
        """
        key = self.key_for(username)
        existing = await self.find(username)
        record = UserRecord(
            password_hash=new_password_hash or (existing.password_hash if existing else None),
            birth_year=state.birth_year,
            filled_weeks=list(state.filled_weeks),
            journal=dict(state.journal),
            updated_at=self.clock(),
        )
        body = json.dumps(record.to_document(), ensure_ascii=False, indent=2).encode("utf-8")
        await self.store.put(key, body)
        return record

    async def create(self, username: str, state: UserState, password_hash: str) -> UserRecord:
        """Write a brand-new document; ``Conflict`` when the name is already stored."""
        record = UserRecord(
            password_hash=password_hash,
            birth_year=state.birth_year,
            filled_weeks=list(state.filled_weeks),
            journal=dict(state.journal),
            updated_at=self.clock(),
        )
        body = json.dumps(record.to_document(), ensure_ascii=False, indent=2).encode("utf-8")
        await self.store.create(self.key_for(username), body)
        return record

    async def delete(self, username: str) -> None:
        await self.store.delete(self.key_for(username))

    async def list_all(self) -> list[str]:
        names = []
        for key in await self.store.list_keys(self.prefix):
            name = key[len(self.prefix):]
            if name.endswith(".json"):
                name = name[: -len(".json")]
            if name and "/" not in name:
                names.append(name)
        return names
