from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

import orjson
from pydantic import ValidationError as PydanticValidationError

from core.errors import CorruptionError, StorageError, ValidationError
from schemas.state import STATE_SCHEMA_VERSION, StateDocument

logger = logging.getLogger(__name__)


class StateStore:
    """JSON state document with atomic whole-file replacement.

    Notes:
    - Every write goes to a sibling temporary file that is fsynced and then
      renamed over the target, so a reader sees either the old or the new
      document, never a partial one.
    - The store does not serialize concurrent writers. Each caller re-reads,
      mutates a copy and writes the whole document back, so two processes
      running against the same file can clobber each other's changes to
      unrelated steps. Run at most one process per document.
    - Corrupt content is reported as ``CorruptionError`` and never repaired
      or deleted here.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def initialize(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to create state directory: {self.path.parent}") from exc
        if self.path.exists():
            if not self.path.is_file():
                raise StorageError(f"State path exists but is not a file: {self.path}")
            return
        logger.info("Initializing state document at %s", self.path)
        self._replace(StateDocument(version=STATE_SCHEMA_VERSION, steps={}))

    def read(self) -> StateDocument:
        if not self.path.exists():
            self.initialize()
        try:
            raw = self.path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Failed to read state document: {self.path}") from exc
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            raise CorruptionError(f"State document is not valid JSON: {self.path}") from exc
        try:
            return StateDocument.model_validate(data)
        except PydanticValidationError as exc:
            raise CorruptionError(
                f"State document does not match schema ({exc.error_count()} errors): {self.path}"
            ) from exc

    def write(self, doc: StateDocument) -> None:
        try:
            checked = StateDocument.model_validate(doc.to_json_dict())
        except PydanticValidationError as exc:
            raise ValidationError(f"Refusing to write invalid state document: {exc}") from exc
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to create state directory: {self.path.parent}") from exc
        self._replace(checked)

    def _replace(self, doc: StateDocument) -> None:
        payload = orjson.dumps(doc.to_json_dict(), option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS) + b"\n"
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f"{self.path.name}.tmp.", dir=str(self.path.parent))
        except OSError as exc:
            raise StorageError(f"Failed to create temporary state file in {self.path.parent}") from exc
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Failed to write state document: {self.path}") from exc


__all__ = ["StateStore"]
