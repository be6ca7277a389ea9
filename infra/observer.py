from __future__ import annotations

import logging
from typing import Any

from core.errors import StorageError
from store.event_store import EventStore, StepEventType

logger = logging.getLogger(__name__)


class StepObserver:
    def __init__(self, event_store: EventStore | None = None) -> None:
        self.event_store = event_store

    def record(self, step_id: str, type: StepEventType, payload: dict[str, Any] | None = None) -> None:
        if self.event_store is None:
            return
        # Called after the state document is written; a history failure must not undo that.
        try:
            self.event_store.record(step_id, type, payload)
        except StorageError as exc:
            logger.warning("Step history not updated for %s (%s): %s", step_id, type, exc)


class NullObserver:
    def record(self, step_id: str, type: StepEventType, payload: dict[str, Any] | None = None) -> None:  # noqa: ARG002
        return None
