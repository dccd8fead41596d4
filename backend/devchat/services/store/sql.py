"""SQLite/SQL-backed store built on the sqlmodel tables in devchat.models.store."""

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, select

from devchat.core.errors import StoreUnavailable
from devchat.models.store import CounterRecord, KeyValueRecord
from devchat.services.store.base import BaseStore

logger = logging.getLogger(__name__)


class SQLStore(BaseStore):
    def __init__(self, engine):
        self.engine = engine

    @contextmanager
    def _session(self):
        try:
            with Session(self.engine) as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Store operation failed: {e}")
            raise StoreUnavailable(str(e)) from e

    def atomic_increment(self, key: str) -> int:
        # A single UPDATE ... RETURNING keeps the read inside the write
        stmt = (
            update(CounterRecord)
            .where(col(CounterRecord.key) == key)
            .values(value=CounterRecord.value + 1)
            .returning(CounterRecord.value)
        )
        for _ in range(3):
            with self._session() as session:
                row = session.connection().execute(stmt).first()
                if row is not None:
                    session.commit()
                    return int(row[0])
                session.add(CounterRecord(key=key, value=1))
                try:
                    session.commit()
                    return 1
                except IntegrityError:
                    # Another caller created the counter first; increment theirs
                    session.rollback()
        raise StoreUnavailable(f"Could not increment counter {key}")

    def put(self, key: str, value: Any) -> None:
        encoded = json.dumps(value)
        with self._session() as session:
            record = session.get(KeyValueRecord, key)
            if record is None:
                record = KeyValueRecord(key=key, value=encoded)
            else:
                record.value = encoded
                record.updated_at = datetime.now(timezone.utc)
            session.add(record)
            session.commit()

    def get(self, key: str) -> Any | None:
        with self._session() as session:
            record = session.get(KeyValueRecord, key)
            if record is not None:
                return json.loads(record.value)
            counter = session.get(CounterRecord, key)
            return counter.value if counter is not None else None

    def list(self, prefix: str) -> list[str]:
        with self._session() as session:
            keys = session.exec(
                select(KeyValueRecord.key).where(col(KeyValueRecord.key).startswith(prefix, autoescape=True))
            ).all()
            counters = session.exec(
                select(CounterRecord.key).where(col(CounterRecord.key).startswith(prefix, autoescape=True))
            ).all()
        return sorted([*keys, *counters])

    def delete(self, key: str) -> int:
        removed = 0
        with self._session() as session:
            for model in (KeyValueRecord, CounterRecord):
                record = session.get(model, key)
                if record is not None:
                    session.delete(record)
                    removed += 1
            session.commit()
        return removed
