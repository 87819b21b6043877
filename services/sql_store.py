"""Flask-SQLAlchemy implementation of the document store contract."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import OperationalError, SQLAlchemyError

from extensions import db
from models import COLLECTION_MODELS
from services.datastore import (
    DESCENDING,
    SERVER_TIMESTAMP,
    Document,
    DocumentStore,
    SnapshotCallback,
    Unsubscribe,
    utcnow,
)
from services.errors import RecordNotFound, StoreError, StoreTimeout
from services.live_updates import connect_collection_listener, emit_collection_change

logger = logging.getLogger("store")

_TIMEOUT_MARKERS = ("database is locked", "timeout", "timed out")


def _model_for(collection: str):
    model = COLLECTION_MODELS.get(collection)
    if model is None:
        raise StoreError(f"Unknown collection: {collection}")
    return model


def _resolve_sentinels(fields: Dict[str, Any]) -> Dict[str, Any]:
    now = utcnow()
    return {key: (now if value is SERVER_TIMESTAMP else value) for key, value in fields.items()}


def _translate(exc: SQLAlchemyError, action: str) -> StoreError:
    db.session.rollback()
    message = str(getattr(exc, "orig", exc) or exc)
    logger.warning("SQL store %s failed: %s", action, message)
    if isinstance(exc, OperationalError) and any(marker in message.lower() for marker in _TIMEOUT_MARKERS):
        return StoreTimeout()
    return StoreError(message)


class SqlDocumentStore(DocumentStore):
    """Documents live in one table per collection; writes notify the change hub."""

    def _document(self, row) -> Document:
        return Document(id=row.id, fields=row.to_document())

    def get_record(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        model = _model_for(collection)
        try:
            row = db.session.get(model, record_id, populate_existing=True)
        except SQLAlchemyError as exc:
            raise _translate(exc, "get") from exc
        return row.to_document() if row is not None else None

    def set_record(self, collection: str, record_id: str, fields: Dict[str, Any], merge: bool = False) -> None:
        model = _model_for(collection)
        values = _resolve_sentinels(fields)
        try:
            row = db.session.get(model, record_id, populate_existing=True)
            if row is None:
                row = model(id=record_id)
                db.session.add(row)
            elif not merge:
                # overwrite: reset every field not supplied
                row.apply_fields({key: None for key in model.DOCUMENT_FIELDS if key not in values})
            row.apply_fields(values)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _translate(exc, "set") from exc
        emit_collection_change(collection, "set", record_id)

    def add_record(self, collection: str, fields: Dict[str, Any]) -> str:
        model = _model_for(collection)
        row = model()
        row.apply_fields(_resolve_sentinels(fields))
        try:
            db.session.add(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _translate(exc, "add") from exc
        emit_collection_change(collection, "add", row.id)
        return row.id

    def increment(self, collection: str, record_id: str, field_name: str, amount: int = 1) -> None:
        model = _model_for(collection)
        attr = model.DOCUMENT_FIELDS.get(field_name)
        if attr is None:
            raise StoreError(f"Unknown field {field_name!r} for {collection}")
        column = getattr(model, attr)
        try:
            updated = (
                db.session.query(model)
                .filter(model.id == record_id)
                .update({column: db.func.coalesce(column, 0) + amount}, synchronize_session=False)
            )
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _translate(exc, "increment") from exc
        if not updated:
            raise RecordNotFound(f"{collection}/{record_id} not found")
        emit_collection_change(collection, "update", record_id)

    def delete_record(self, collection: str, record_id: str) -> None:
        model = _model_for(collection)
        try:
            row = db.session.get(model, record_id, populate_existing=True)
            if row is None:
                raise RecordNotFound(f"{collection}/{record_id} not found")
            db.session.delete(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _translate(exc, "delete") from exc
        emit_collection_change(collection, "delete", record_id)

    def query_ordered(
        self,
        collection: str,
        order_field: str,
        direction: str = DESCENDING,
        limit: Optional[int] = None,
        min_value: Any = None,
    ) -> List[Document]:
        model = _model_for(collection)
        attr = model.DOCUMENT_FIELDS.get(order_field)
        if attr is None:
            raise StoreError(f"Cannot order {collection} by {order_field!r}")
        column = getattr(model, attr)
        query = model.query.populate_existing()
        if min_value is not None:
            query = query.filter(column >= min_value)
        # rows without the field sort last either way, matching a document store
        ordering = column.desc().nullslast() if direction == DESCENDING else column.asc().nullslast()
        query = query.order_by(ordering, model.id)
        if limit:
            query = query.limit(limit)
        try:
            rows = query.all()
        except SQLAlchemyError as exc:
            raise _translate(exc, "query") from exc
        return [self._document(row) for row in rows]

    def subscribe_ordered(
        self,
        collection: str,
        order_field: str,
        direction: str,
        on_snapshot: SnapshotCallback,
    ) -> Unsubscribe:
        _model_for(collection)

        def _push(_event: dict) -> None:
            try:
                snapshot = self.query_ordered(collection, order_field, direction)
            except StoreError:
                logger.exception("Snapshot refresh failed for %s", collection)
                return
            on_snapshot(snapshot)

        disconnect = connect_collection_listener(collection, _push)
        try:
            on_snapshot(self.query_ordered(collection, order_field, direction))
        except StoreError:
            disconnect()
            raise
        return disconnect

    def is_empty(self, collection: str) -> bool:
        model = _model_for(collection)
        try:
            return db.session.query(model.id).first() is None
        except SQLAlchemyError as exc:
            raise _translate(exc, "count") from exc


__all__ = ["SqlDocumentStore"]
