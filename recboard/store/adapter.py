# SPDX-License-Identifier: Apache-2.0
"""Record store adapter over the ``records`` table.

Paths alternate collection and record id (``protocols/P1/documents/D1``).
Records are schemaless JSON; typed views are validated on the way out with
``get_model``. Reads return the record data plus ``id``, ``revision`` and
``path`` metadata, with timestamps normalized to aware UTC datetimes.
"""
from __future__ import annotations

import json
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Callable, Iterator, Literal, TypeVar

from pydantic import BaseModel
from pydantic_core import to_jsonable_python
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from recboard.core.exceptions import NotFoundError, StoreUnavailable
from recboard.models.record import StoredRecord
from recboard.store.fanout import Snapshot, Subscription, SubscriptionHub
from recboard.store.query import QueryDescriptor, split_path
from recboard.store.timestamps import coerce_timestamp, normalize_record, utcnow

_logger = logging.getLogger("recboard.store")

META_KEYS = ("id", "revision", "path")

M = TypeVar("M", bound=BaseModel)


def new_id() -> str:
    return uuid.uuid4().hex[:20]


class Transaction:
    """One unit of work; committed as a whole, then fanned out."""

    def __init__(self, session: Session):
        self.session = session
        self.touched: set[str] = set()


class RecordStore:
    def __init__(
        self,
        engine: Engine,
        stale_write_threshold_seconds: int = 30,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.engine = engine
        self.stale_write_threshold = timedelta(seconds=stale_write_threshold_seconds)
        self.clock = clock
        self.hub = SubscriptionHub(self)
        self._local = threading.local()

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Open a unit of work, or join the one already open on this thread."""
        current = getattr(self._local, "tx", None)
        if current is not None:
            yield current
            return
        tx = Transaction(Session(self.engine))
        self._local.tx = tx
        try:
            yield tx
            tx.session.commit()
        except OperationalError as exc:
            tx.session.rollback()
            raise StoreUnavailable(f"Record store unavailable: {exc.orig}") from exc
        except Exception:
            tx.session.rollback()
            raise
        finally:
            self._local.tx = None
            tx.session.close()
        self.hub.notify(tx.touched)

    # Reads

    def get(self, path: str) -> dict | None:
        with self.transaction() as tx:
            row = tx.session.get(StoredRecord, path.strip("/"))
            return _to_data(row) if row is not None else None

    def get_model(self, path: str, model: type[M]) -> M | None:
        data = self.get(path)
        return model.model_validate(data) if data is not None else None

    def require(self, path: str, model: type[M], label: str | None = None) -> M:
        found = self.get_model(path, model)
        if found is None:
            raise NotFoundError(f"{label or model.__name__} not found: {path}", path=path)
        return found

    def query(self, query: QueryDescriptor) -> Snapshot:
        with self.transaction() as tx:
            stmt = select(StoredRecord)
            if query.group:
                stmt = stmt.where(StoredRecord.collection_name == query.collection)
            else:
                stmt = stmt.where(StoredRecord.collection == query.collection)
            rows = tx.session.exec(stmt.order_by(StoredRecord.path)).all()
            return query.apply([(row.record_id, _to_data(row)) for row in rows])

    def query_models(self, query: QueryDescriptor, model: type[M]) -> list[M]:
        return [model.model_validate(data) for _, data in self.query(query)]

    # Writes

    def write(
        self,
        path: str,
        data: dict | BaseModel,
        mode: Literal["replace", "merge"] = "replace",
        base_revision: int | None = None,
        read_at: datetime | None = None,
    ) -> int:
        """Point write. ``merge`` updates top-level fields; last write wins.

        ``base_revision``/``read_at`` describe the snapshot the caller edited;
        a mismatch or an old snapshot is logged, never rejected.
        """
        path = path.strip("/")
        collection, name, record_id = split_path(path)
        if isinstance(data, BaseModel):
            data = data.model_dump(exclude_none=False)
        payload = {k: v for k, v in data.items() if k not in META_KEYS}
        now = self.clock()
        with self.transaction() as tx:
            row = tx.session.get(StoredRecord, path)
            self._check_stale(path, row, base_revision, read_at, now)
            if row is None:
                row = StoredRecord(
                    path=path,
                    collection=collection,
                    collection_name=name,
                    record_id=record_id,
                    revision=0,
                    created_at=coerce_timestamp(now),
                )
                current: dict = {}
            else:
                current = json.loads(row.data) if mode == "merge" else {}
            current.update(payload)
            row.data = json.dumps(to_jsonable_python(current), sort_keys=True)
            row.revision += 1
            row.updated_at = coerce_timestamp(now)
            tx.session.add(row)
            tx.touched.add(collection)
            return row.revision

    def create(self, collection_path: str, data: dict | BaseModel, record_id: str | None = None) -> str:
        record_id = record_id or new_id()
        self.write(f"{collection_path.strip('/')}/{record_id}", data)
        return record_id

    def delete(self, path: str) -> bool:
        path = path.strip("/")
        collection, _, _ = split_path(path)
        with self.transaction() as tx:
            row = tx.session.get(StoredRecord, path)
            if row is None:
                return False
            tx.session.delete(row)
            tx.touched.add(collection)
            return True

    # Live queries

    def subscribe(
        self,
        query: QueryDescriptor,
        on_next: Callable[[Snapshot], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription:
        """Emit the current snapshot now and again whenever it changes."""
        subscription = Subscription(self.hub, query, on_next, on_error)
        self.hub.add(subscription)
        subscription.refresh(self)
        return subscription

    def _check_stale(
        self,
        path: str,
        row: StoredRecord | None,
        base_revision: int | None,
        read_at: datetime | None,
        now: datetime,
    ) -> None:
        if base_revision is not None and row is not None and row.revision != base_revision:
            _logger.warning(
                "Overwriting %s at revision %s based on revision %s",
                path, row.revision, base_revision,
            )
        if read_at is None:
            return
        age = coerce_timestamp(now) - coerce_timestamp(read_at)
        if age > self.stale_write_threshold:
            _logger.warning("Write to %s based on a snapshot %ss old", path, int(age.total_seconds()))


def _to_data(row: StoredRecord) -> dict[str, Any]:
    data = normalize_record(json.loads(row.data))
    data.update(id=row.record_id, revision=row.revision, path=row.path)
    return data
