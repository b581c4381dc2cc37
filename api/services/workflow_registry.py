"""
Guardian Shield - Workflow Session Registry.

Keeps grouping and editor sessions in memory between requests. Engines are
built per request around the stored session, so the store and suggestion
service can be swapped through FastAPI dependencies while the working
state survives. Sessions idle for longer than WORKFLOW_SESSION_TTL_SECONDS
are dropped on the next access.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Literal

from maintenance.fsm.grouping_workflow import GroupingSession
from maintenance.services.protocol_editor import EditorSession
from shared.config import get_settings
from shared.errors import NotFoundError

logger = logging.getLogger(__name__)

SessionKind = Literal["grouping", "editor"]


@dataclass
class _Entry:
    kind: SessionKind
    session: GroupingSession | EditorSession
    last_used: float = field(default_factory=time.monotonic)


class WorkflowSessionRegistry:
    """In-memory session store with idle expiry."""

    def __init__(self, ttl_seconds: int | None = None):
        self.ttl_seconds = ttl_seconds or get_settings().WORKFLOW_SESSION_TTL_SECONDS
        self._entries: dict[str, _Entry] = {}

    def _purge_expired(self) -> None:
        now = time.monotonic()
        expired = [sid for sid, entry in self._entries.items() if now - entry.last_used > self.ttl_seconds]
        for sid in expired:
            del self._entries[sid]
            logger.info("Workflow session expired", extra={"session_id": sid})

    def create(self, kind: SessionKind) -> str:
        self._purge_expired()
        session_id = str(uuid.uuid4())
        session = GroupingSession() if kind == "grouping" else EditorSession()
        self._entries[session_id] = _Entry(kind=kind, session=session)
        logger.info(f"Workflow session created ({kind})", extra={"session_id": session_id})
        return session_id

    def get(self, session_id: str, kind: SessionKind) -> GroupingSession | EditorSession:
        self._purge_expired()
        entry = self._entries.get(session_id)
        if entry is None or entry.kind != kind:
            raise NotFoundError(
                "La sesión no existe o ha expirado.",
                context={"session_id": session_id},
            )
        entry.last_used = time.monotonic()
        return entry.session

    def grouping(self, session_id: str) -> GroupingSession:
        return self.get(session_id, "grouping")

    def editor(self, session_id: str) -> EditorSession:
        return self.get(session_id, "editor")

    def delete(self, session_id: str) -> bool:
        entry = self._entries.pop(session_id, None)
        if entry is not None:
            # Invalidate responses still in flight for this session
            entry.session.reset()
            logger.info(f"Workflow session deleted ({entry.kind})", extra={"session_id": session_id})
        return entry is not None

    def __len__(self) -> int:
        return len(self._entries)


# Singleton
_registry: WorkflowSessionRegistry | None = None


def get_workflow_registry() -> WorkflowSessionRegistry:
    """Get singleton session registry instance."""
    global _registry
    if _registry is None:
        _registry = WorkflowSessionRegistry()
    return _registry
