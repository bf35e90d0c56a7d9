"""Decides when a working timeline is written to the session store."""

from collections.abc import Sequence
import logging

from ._types import SENTINEL_TITLE, Message
from .exceptions import PersistenceError
from .store import SessionStore

logger = logging.getLogger(__name__)

TITLE_LIMIT = 50
TITLE_ELLIPSIS = "..."


def derive_title(messages: Sequence[Message]) -> str | None:
    """Title from the first user message's text, cut to 50 characters."""
    for message in messages:
        if message.role != "user":
            continue
        text = message.content
        if not text:
            return None
        if len(text) > TITLE_LIMIT:
            return text[:TITLE_LIMIT] + TITLE_ELLIPSIS
        return text
    return None


class PersistenceGate:
    """
    The only write path from a working timeline to the store.

    A commit happens only when the timeline differs structurally from the last
    committed value; repeated settles of the same timeline write nothing. A
    failed write is logged and retried at the next settle point.
    """

    def __init__(self, store: SessionStore) -> None:
        self.store = store
        self._titled: set[str] = set()

    async def settle(self, session_id: str, timeline: Sequence[Message]) -> bool:
        try:
            written = await self.store.commit_messages(session_id, timeline)
        except PersistenceError as e:
            logger.error("Commit of session %s deferred: %s", session_id, e.message)
            return False

        # A title update that failed earlier is retried on any later settle.
        if written or session_id not in self._titled:
            await self._maybe_title(session_id, timeline)
        return written

    async def _maybe_title(self, session_id: str, timeline: Sequence[Message]) -> None:
        if session_id in self._titled:
            return
        session = self.store.get(session_id)
        if session.title != SENTINEL_TITLE:
            self._titled.add(session_id)
            return

        title = derive_title(timeline)
        if title is None:
            return
        try:
            await self.store.update_title(session_id, title)
        except PersistenceError as e:
            logger.error("Title update for session %s deferred: %s", session_id, e.message)
            return
        self._titled.add(session_id)
        logger.debug("Titled session %s: %s", session_id, title)
