"""
Single busy slot and stale-response detection for workflow sessions.

A session (grouping or editor) runs at most one suggestion request at a
time. Requests capture the session epoch when they start; if the session
was reset or reseeded while the request was in flight, the response is
stale and must not touch the new buffer.

Usage:
    guard = BusySlot(session, "steps")
    async with guard:
        drafts = await suggestions.generate_protocol_steps(descriptor)
    guard.ensure_current()
    session.steps = drafts
"""

import logging
from typing import Protocol

from shared.errors import GenerationInProgressError, StaleResponseError

logger = logging.getLogger(__name__)


class GuardedSession(Protocol):
    epoch: int
    pending_request: str | None
    generating_image_index: int | None


class BusySlot:
    """Async context manager that owns the session busy slot for one request."""

    def __init__(self, session: GuardedSession, request: str, *, image_index: int | None = None):
        self.session = session
        self.request = request
        self.image_index = image_index
        self.epoch = session.epoch

    async def __aenter__(self) -> "BusySlot":
        if self.session.pending_request is not None or self.session.generating_image_index is not None:
            raise GenerationInProgressError(
                "Ya hay una generación en curso. Espere a que termine.",
                context={
                    "pending_request": self.session.pending_request,
                    "generating_image_index": self.session.generating_image_index,
                },
            )
        self.session.pending_request = self.request
        if self.image_index is not None:
            self.session.generating_image_index = self.image_index
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        # A reset already cleared the slot; never clear a newer request's slot
        if self.session.epoch == self.epoch:
            self.session.pending_request = None
            self.session.generating_image_index = None
        return False

    @property
    def is_current(self) -> bool:
        return self.session.epoch == self.epoch

    def ensure_current(self) -> None:
        """Raise StaleResponseError if the session moved on during the request."""
        if not self.is_current:
            logger.info(
                f"Discarding stale '{self.request}' response "
                f"(epoch {self.epoch} -> {self.session.epoch})"
            )
            raise StaleResponseError(
                "La respuesta llegó después de reiniciar el flujo y fue descartada.",
                context={"request": self.request},
            )
