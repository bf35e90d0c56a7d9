"""
Durable session storage.

``SessionStore`` owns the session collection and the current-session
pointer. Everything it hands out is a copy; the only way to change a
session's messages is ``commit_messages``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
import copy
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import json
import logging
import os
from pathlib import Path
import tempfile
from typing import Any, Protocol

from ._types import Message, Session, utcnow
from .exceptions import NotFoundError, PersistenceError

logger = logging.getLogger(__name__)

STORAGE_KEY = "tandem-sessions"
CURRENT_SESSION_KEY = "tandem-current-session"

RECENT_LIMIT = 5


class Storage(Protocol):
    """Keyed durable storage. Calls block; the store runs them off the event loop."""

    def read(self, key: str) -> Any: ...

    def write(self, entries: dict[str, Any]) -> None: ...


class MemoryStorage:
    """Process-local storage, mostly for tests."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = dict(data or {})
        self.write_count = 0

    def read(self, key: str) -> Any:
        return copy.deepcopy(self.data.get(key))

    def write(self, entries: dict[str, Any]) -> None:
        self.write_count += 1
        for key, value in entries.items():
            if value is None:
                self.data.pop(key, None)
            else:
                self.data[key] = copy.deepcopy(value)


class JSONFileStorage:
    """All keys in one JSON document, replaced atomically on every write."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def _ensure_dir(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # User-only permissions where the filesystem allows it.
        try:
            os.chmod(self.path.parent, 0o700)
        except PermissionError:
            return

    def _load_document(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, encoding="utf-8") as f:
            document = json.load(f)
        if not isinstance(document, dict):
            raise ValueError(f"{self.path} does not hold a JSON object")
        return document

    def read(self, key: str) -> Any:
        return self._load_document().get(key)

    def write(self, entries: dict[str, Any]) -> None:
        self._ensure_dir()
        try:
            document = self._load_document()
        except (OSError, ValueError):
            logger.warning("Replacing unreadable session file %s", self.path)
            document = {}
        for key, value in entries.items():
            if value is None:
                document.pop(key, None)
            else:
                document[key] = value

        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".sessions-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise


@dataclass
class SessionGroups:
    """Sessions bucketed by last update, newest first within each bucket."""

    recent: list[Session] = field(default_factory=list)
    last_week: list[Session] = field(default_factory=list)
    last_month: list[Session] = field(default_factory=list)
    previous: list[Session] = field(default_factory=list)


class SessionStore:
    """Session collection plus current-session pointer, with load/persist lifecycle."""

    def __init__(self, storage: Storage) -> None:
        self._storage = storage
        self._sessions: dict[str, Session] = {}
        self._current_id: str | None = None
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------ reads

    @property
    def current_id(self) -> str | None:
        return self._current_id

    @property
    def current(self) -> Session | None:
        if self._current_id is None:
            return None
        return copy.deepcopy(self._sessions[self._current_id])

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> Session:
        """Return a copy of a session.

        Raises:
            NotFoundError: if the id is absent
        """
        return copy.deepcopy(self._require(session_id))

    def list_sessions(self) -> list[Session]:
        """All sessions, most recently updated first."""
        ordered = sorted(self._sessions.values(), key=lambda s: s.updatedAt, reverse=True)
        return copy.deepcopy(ordered)

    def grouped_sessions(self, now: datetime | None = None) -> SessionGroups:
        now = now or utcnow()
        seven_days_ago = now - timedelta(days=7)
        thirty_days_ago = now - timedelta(days=30)
        groups = SessionGroups()

        for session in self.list_sessions():
            updated = session.updatedAt
            if updated >= seven_days_ago:
                if len(groups.recent) < RECENT_LIMIT:
                    groups.recent.append(session)
            elif updated >= thirty_days_ago:
                groups.last_week.append(session)
            elif updated.year == now.year:
                groups.last_month.append(session)
            elif updated.year < now.year:
                groups.previous.append(session)
        return groups

    # -------------------------------------------------------------- mutations

    async def create_session(self) -> str:
        """Allocate an empty session with the sentinel title and make it current."""
        async with self._lock:
            session = Session.new()
            self._sessions[session.id] = session
            self._current_id = session.id
            logger.debug("Created session %s", session.id)
            await self._write()
            return session.id

    async def select_session(self, session_id: str) -> None:
        async with self._lock:
            self._require(session_id)
            if self._current_id == session_id:
                return
            self._current_id = session_id
            await self._write()

    async def commit_messages(self, session_id: str, messages: Sequence[Message]) -> bool:
        """
        Replace a session's messages if they differ structurally from the stored ones.

        Commits are serialized in arrival order and each is compared against the
        latest committed snapshot. On a failed write the previous snapshot is kept.

        Returns:
            True if a write happened, False for a no-op

        Raises:
            NotFoundError: if the id is absent
            PersistenceError: if durable storage rejected the write
        """
        async with self._lock:
            session = self._require(session_id)
            candidate = copy.deepcopy(list(messages))
            if session.messages == candidate:
                return False

            previous_messages, previous_updated = session.messages, session.updatedAt
            session.messages = candidate
            session.updatedAt = utcnow()
            try:
                await self._write()
            except PersistenceError:
                session.messages, session.updatedAt = previous_messages, previous_updated
                raise
            logger.debug("Committed %d messages to session %s", len(candidate), session_id)
            return True

    async def update_title(self, session_id: str, title: str) -> bool:
        async with self._lock:
            session = self._require(session_id)
            if session.title == title:
                return False

            previous_title, previous_updated = session.title, session.updatedAt
            session.title = title
            session.updatedAt = utcnow()
            try:
                await self._write()
            except PersistenceError:
                session.title, session.updatedAt = previous_title, previous_updated
                raise
            return True

    async def delete_session(self, session_id: str) -> None:
        """Remove a session; if it was current, fall back to the most recently updated one."""
        async with self._lock:
            self._require(session_id)
            del self._sessions[session_id]
            if self._current_id == session_id:
                remaining = sorted(self._sessions.values(), key=lambda s: s.updatedAt, reverse=True)
                self._current_id = remaining[0].id if remaining else None
            logger.debug("Deleted session %s", session_id)
            await self._write()

    # -------------------------------------------------------------- lifecycle

    async def load(self) -> None:
        """Restore sessions and the current pointer. Unreadable storage starts empty."""
        async with self._lock:
            try:
                raw_sessions = await asyncio.to_thread(self._storage.read, STORAGE_KEY)
                raw_current = await asyncio.to_thread(self._storage.read, CURRENT_SESSION_KEY)
            except (OSError, ValueError) as e:
                logger.error("Could not read stored sessions: %s", e)
                raw_sessions, raw_current = None, None

            sessions: dict[str, Session] = {}
            for raw in raw_sessions or []:
                try:
                    session = Session.from_dict(raw)
                except (KeyError, TypeError, ValueError, AttributeError) as e:
                    logger.warning("Skipping unreadable stored session: %s", e)
                    continue
                sessions[session.id] = session

            self._sessions = sessions
            self._current_id = raw_current if raw_current in sessions else None
            logger.debug("Loaded %d sessions", len(sessions))

    async def persist(self) -> None:
        async with self._lock:
            await self._write()

    # ---------------------------------------------------------------- helpers

    def _require(self, session_id: str) -> Session:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise NotFoundError.session(session_id) from None

    def _snapshot(self) -> dict[str, Any]:
        return {
            STORAGE_KEY: [s.to_dict() for s in self._sessions.values()],
            CURRENT_SESSION_KEY: self._current_id,
        }

    async def _write(self) -> None:
        entries = self._snapshot()
        try:
            await asyncio.to_thread(self._storage.write, entries)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Session write failed: %s", e)
            raise PersistenceError(f"Could not write sessions: {e}") from e
