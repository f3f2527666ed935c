"""
Archive persistence backends.

The archive is always re-serialized as a whole on every mutation. The JSON
file backend stores exactly the export format (a JSON array of archived event
records); the SQLite backend keeps one row per event with the record in a
JSON column.
"""

import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Protocol

from loguru import logger
from sqlalchemy import Engine, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from intel_archive.exceptions import PersistenceFailure
from intel_archive.models import ArchivedEvent, ArchivedEventRow


class ArchiveStorage(Protocol):
    """Load/save contract used by the ArchiveStore."""

    def load(self) -> list[ArchivedEvent]: ...

    def save(self, events: list[ArchivedEvent]) -> None: ...


def serialize_events(events: list[ArchivedEvent]) -> list[dict]:
    """JSON-ready records, the on-storage and export representation."""
    return [event.model_dump(mode="json") for event in events]


def atomic_write_text(path: Path, text: str) -> None:
    """Write to a temp file in the same directory, then rename over the target."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def quarantine_file(path: Path) -> Path:
    """Move an unreadable file aside so it is never overwritten."""
    stamp = datetime.now().strftime("%Y%m%d%H%M%S")
    target = path.with_name(f"{path.name}.corrupt-{stamp}")
    os.replace(path, target)
    return target


class JsonArchiveStorage:
    """Archive stored as a JSON array in a single file."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load(self) -> list[ArchivedEvent]:
        if not self.path.exists():
            logger.info(f"[ARCHIVE] No archive at {self.path}, starting empty")
            return []

        try:
            records = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(records, list):
                raise ValueError("archive root is not a JSON array")
            events = [ArchivedEvent.model_validate(record) for record in records]
        except ValueError as e:
            # json.JSONDecodeError and pydantic.ValidationError are ValueErrors
            moved = quarantine_file(self.path)
            logger.error(f"[ARCHIVE] Unreadable archive moved to {moved}: {e}")
            return []

        logger.info(f"[ARCHIVE] Loaded {len(events)} events from {self.path}")
        return events

    def save(self, events: list[ArchivedEvent]) -> None:
        payload = json.dumps(serialize_events(events), ensure_ascii=False, indent=2)
        try:
            atomic_write_text(self.path, payload)
        except OSError as e:
            raise PersistenceFailure(f"Could not write {self.path}: {e}") from e
        logger.debug(f"[ARCHIVE] Saved {len(events)} events to {self.path}")


class SqlArchiveStorage:
    """Archive stored in the archived_event table (SQLModel)."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def load(self) -> list[ArchivedEvent]:
        with Session(self.engine) as session:
            rows = session.exec(select(ArchivedEventRow).order_by(ArchivedEventRow.position)).all()
            events = [ArchivedEvent.model_validate(row.payload) for row in rows]
        logger.info(f"[ARCHIVE] Loaded {len(events)} events from database")
        return events

    def save(self, events: list[ArchivedEvent]) -> None:
        records = serialize_events(events)
        try:
            with Session(self.engine) as session:
                session.execute(delete(ArchivedEventRow))
                for position, (event, record) in enumerate(zip(events, records)):
                    session.add(
                        ArchivedEventRow(
                            id=event.id,
                            position=position,
                            event_date=event.event_date,
                            category=event.category.value,
                            origin_url=event.origin_url,
                            title=event.title[:512],
                            payload=record,
                        )
                    )
                session.commit()
        except SQLAlchemyError as e:
            # Session rolls back on exit; the previous rows stay in place
            raise PersistenceFailure(f"Database write failed: {e}") from e
        logger.debug(f"[ARCHIVE] Saved {len(events)} events to database")
