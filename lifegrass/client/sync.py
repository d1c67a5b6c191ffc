"""Keep the local cache and the server copy of a user's document in step.

Writes land in the local cache first and are then pushed, whole, in a
supervised background task. The server is trusted on load once the session
is authenticated; when it cannot be reached the cache is used as is.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any, Callable, Optional, Set

from lifegrass.background import drain, spawn
from lifegrass.client.api import ApiError
from lifegrass.client.session import AuthState, Session
from lifegrass.schemas import JournalEntry, UserState
from lifegrass.services.reflections import fallback_comment, fallback_recommendation
from lifegrass.services.weeks import current_week_key, parse_week_key

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    def __init__(self, session: Session, *,
                 on_push_error: Optional[Callable[[BaseException], None]] = None,
                 today: Callable[[], date] = date.today):
        self.session = session
        self.on_push_error = on_push_error
        self.today = today
        self._seq = 0
        self.last_acked = 0
        self._pushes: Set[asyncio.Task[Any]] = set()
        self._pushing: Optional[asyncio.Task[Any]] = None
        self._dirty = False

    # ---------- load ----------
    async def load(self) -> UserState:
        """Pull the server document into the cache and return what the page should show."""
        session = self.session
        if session.state not in (AuthState.AUTHENTICATED, AuthState.SYNCED):
            raise RuntimeError(f"cannot sync {session.username} before authenticating")
        try:
            remote = await session.api.fetch_state(session.username, session.token)
        except ApiError as e:
            logger.warning("Loading %s from server failed, using local cache: %s", session.username, e)
            return session.cache.snapshot()
        if not remote.is_empty():
            session.cache.apply(remote)
        session.state = AuthState.SYNCED
        return session.cache.snapshot()

    # ---------- local mutations ----------
    def set_birth_year(self, year: int) -> None:
        self.session.cache.set_birth_year(year)
        self.push()

    async def plant(self, keywords: str, text: str, *, today: Optional[date] = None) -> JournalEntry:
        """Commit this week's entry locally, then push the whole document."""
        key = current_week_key(today or self.today())
        cache = self.session.cache
        entry = JournalEntry(keywords=keywords, text=text)
        previous = cache.entry(key)
        if entry.has_content() and not (entry.same_content(previous) and previous.ai_comment):
            entry.ai_comment = await self._comment_for(key, entry)
        elif previous is not None:
            entry.ai_comment = previous.ai_comment
        cache.put_entry(key, entry)
        self.push()
        return entry

    async def ensure_ai_comment(self, week_key: str) -> Optional[JournalEntry]:
        """Generate and store a comment for an entry that has content but none yet."""
        cache = self.session.cache
        entry = cache.entry(week_key)
        if entry is None or entry.ai_comment or not entry.has_content():
            return entry
        entry.ai_comment = await self._comment_for(week_key, entry)
        cache.put_entry(week_key, entry)
        self.push()
        return entry

    async def recommendation(self, week_key: str) -> Optional[str]:
        entry = self.session.cache.entry(week_key)
        if entry is None:
            return None
        try:
            line = await self.session.api.recommend(entry.keywords, entry.text)
        except ApiError as e:
            logger.warning("Recommendation request failed, using local text: %s", e)
            line = ""
        return line or fallback_recommendation(entry.keywords, entry.text)

    async def _comment_for(self, week_key: str, entry: JournalEntry) -> str:
        year, week = parse_week_key(week_key)
        try:
            line = await self.session.api.comment(entry.keywords, entry.text, year, week)
        except ApiError as e:
            logger.warning("Comment request failed, using local text: %s", e)
            line = ""
        return line or fallback_comment(entry.keywords, entry.text)

    # ---------- push ----------
    def push(self) -> Optional[asyncio.Task[Any]]:
        """Schedule a best-effort push of the cached document; ``None`` when offline-only.

        At most one push is in flight. Changes made meanwhile are sent, as one
        fresh snapshot, right after it finishes, so the server never ends on an
        older document than the cache.
        """
        session = self.session
        if not session.token:
            logger.debug("No token for %s; keeping changes local", session.username)
            return None
        self._seq += 1
        if self._pushing is not None and not self._pushing.done():
            self._dirty = True
            return self._pushing
        self._dirty = False
        self._pushing = spawn(
            self._push_latest(),
            name=f"push:{session.username}:{self._seq}",
            on_error=self.on_push_error,
            registry=self._pushes,
        )
        return self._pushing

    async def _push_latest(self) -> None:
        session = self.session
        while True:
            self._dirty = False
            seq = self._seq
            await session.api.push_state(session.username, session.token, session.cache.snapshot())
            if seq <= self.last_acked:
                logger.debug("Discarding stale ack %s for %s (latest %s)", seq, session.username, self.last_acked)
            else:
                self.last_acked = seq
            if not self._dirty:
                return

    @property
    def in_sync(self) -> bool:
        return not self._pushes and self.last_acked == self._seq

    async def drain(self) -> None:
        await drain(list(self._pushes))
