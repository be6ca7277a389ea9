from __future__ import annotations

from pathlib import Path
import json
import time
from typing import Any, Iterable, Literal

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Field, Session, SQLModel, create_engine, select

from core.errors import StorageError

StepEventType = Literal[
    "registered",
    "completed",
    "skipped",
    "undone_skipped",
    "failed",
    "undone",
    "deferred",
    "declined",
]


class StepEvent(BaseModel):
    step_id: str
    type: StepEventType
    payload: dict[str, Any] = {}
    recorded_at: float


class StepEventRow(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    step_id: str = Field(index=True)
    type: str
    payload_json: str
    recorded_at: float


class EventStore:
    """SQLite ledger of step lifecycle events. Informational only; the state document is authoritative."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)
        try:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(f"sqlite:///{self.db_path}")
            SQLModel.metadata.create_all(self.engine)
        except (OSError, SQLAlchemyError) as exc:
            raise StorageError(f"Cannot open step history at {self.db_path}: {exc}") from exc

    def append(self, events: Iterable[StepEvent]) -> None:
        try:
            with Session(self.engine) as session:
                for event in events:
                    row = StepEventRow(
                        step_id=event.step_id,
                        type=event.type,
                        payload_json=json.dumps(event.payload),
                        recorded_at=event.recorded_at,
                    )
                    session.add(row)
                session.commit()
        except (OSError, SQLAlchemyError) as exc:
            raise StorageError(f"Cannot write step history at {self.db_path}: {exc}") from exc

    def record(self, step_id: str, type: StepEventType, payload: dict[str, Any] | None = None) -> StepEvent:
        event = StepEvent(step_id=step_id, type=type, payload=payload or {}, recorded_at=time.time())
        self.append([event])
        return event

    def recent_for_step(self, step_id: str, limit: int = 50) -> list[StepEvent]:
        with Session(self.engine) as session:
            statement = (
                select(StepEventRow)
                .where(StepEventRow.step_id == step_id)
                .order_by(StepEventRow.id.desc())
                .limit(limit)
            )
            rows = session.exec(statement).all()
        return [self._to_event(row) for row in rows]

    def recent(self, limit: int = 200) -> list[StepEvent]:
        with Session(self.engine) as session:
            statement = select(StepEventRow).order_by(StepEventRow.id.desc()).limit(limit)
            rows = session.exec(statement).all()
        return [self._to_event(row) for row in rows]

    @staticmethod
    def _to_event(row: StepEventRow) -> StepEvent:
        return StepEvent(
            step_id=row.step_id,
            type=row.type,  # type: ignore[arg-type]
            payload=json.loads(row.payload_json),
            recorded_at=row.recorded_at,
        )


__all__ = ["StepEvent", "StepEventRow", "StepEventType", "EventStore"]
