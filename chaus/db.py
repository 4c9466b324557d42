"""
SQLAlchemy document store

Every document is stored as a pickled dict in the `chaus_documents` table, keyed by (collection, id).
Pickling keeps the python types of the values (datetimes, GeoJSON dicts) intact.
The app should be initialized with the chaus flask-sqlalchemy extension:

    chaus.DB.init_app(app)
    with app.app_context():
        chaus.DB.create_all()
"""
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

import chaus
from .chaus_init import DB
from .store import DocumentStore


class Document(DB.Model):
    """
    description: a stored resource instance
    """

    __tablename__ = "chaus_documents"
    collection = DB.Column(DB.String(255), primary_key=True)
    id = DB.Column(DB.String(255), primary_key=True)
    data = DB.Column(DB.PickleType, nullable=False)

    def __repr__(self) -> str:
        return f"<Document {self.collection}/{self.id}>"


class SQLAlchemyStore(DocumentStore):
    """
    Document store persisted with flask-sqlalchemy (requires an app context)
    Each write is committed on its own: single document writes are atomic, nothing else is.
    The session calls block the event loop, concurrent lookups (e.g. the relations fanned out by
    asyncio.gather) run one after the other on this store.
    """

    def _documents(self, predicate: Mapping[str, Any]) -> Iterable[dict]:
        id = predicate.get("id")
        if isinstance(id, str):
            row = DB.session.get(Document, (self.collection, id))
            return [row.data] if row is not None else []
        query = DB.select(Document).filter_by(collection=self.collection).order_by(Document.id)
        return [row.data for row in DB.session.execute(query).scalars()]

    def _write(self, document: dict) -> None:
        try:
            DB.session.merge(Document(collection=self.collection, id=document["id"], data=dict(document)))
            DB.session.commit()
        except SQLAlchemyError:
            chaus.log.exception(f"Failed to write {self.collection}/{document.get('id')}")
            DB.session.rollback()
            raise

    def _delete(self, id: str) -> Optional[dict]:
        row = DB.session.get(Document, (self.collection, id))
        if row is None:
            return None
        data = dict(row.data)
        try:
            DB.session.delete(row)
            DB.session.commit()
        except SQLAlchemyError:
            chaus.log.exception(f"Failed to delete {self.collection}/{id}")
            DB.session.rollback()
            raise
        return data
