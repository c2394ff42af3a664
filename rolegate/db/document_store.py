"""
Document store on top of SQLAlchemy.

Gives the rest of the code a small key/document API (get, get_all, set with
optional merge, update, delete) grouped by collection. Every write is a
single-row transaction, so writes to one document are atomic and concurrent
writes to the same key resolve last-write-wins.

collections:
    users: verified accounts keyed by subject id
    pending_verifications: durable copies of open challenges keyed by subject id
"""

import time
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from rolegate.core.errors import StoreUnavailableError
from rolegate.db.base import Base
from rolegate.models.documents import Document


USERS = "users"
PENDING_VERIFICATIONS = "pending_verifications"


class DocumentStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create_all(self) -> None:
        """Create the documents table if it does not exist yet."""
        Base.metadata.create_all(bind=self._session_factory.kw["bind"])

    def _session(self) -> Session:
        return self._session_factory()

    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        db = self._session()
        try:
            row = db.get(Document, (collection, key))
            if row is None:
                return None
            return dict(row.data or {})
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"get {collection}/{key} failed: {exc}") from exc
        finally:
            db.close()

    def get_all(self, collection: str) -> List[Tuple[str, Dict[str, Any]]]:
        """Return (key, document) pairs of a collection ordered by key."""
        db = self._session()
        try:
            rows = (
                db.query(Document)
                .filter(Document.collection == collection)
                .order_by(Document.key)
                .all()
            )
            return [(row.key, dict(row.data or {})) for row in rows]
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"get_all {collection} failed: {exc}") from exc
        finally:
            db.close()

    def set(self, collection: str, key: str, doc: Dict[str, Any], merge: bool = False) -> None:
        """Create or overwrite a document. With merge=True the fields are
        merged into an existing document instead of replacing it."""
        db = self._session()
        try:
            row = db.get(Document, (collection, key))
            now = int(time.time())
            if row is None:
                db.add(Document(collection=collection, key=key, data=dict(doc), updated_at=now))
            else:
                data = {**(row.data or {}), **doc} if merge else dict(doc)
                # assign a fresh dict so the JSON column is flagged dirty
                row.data = data
                row.updated_at = now
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreUnavailableError(f"set {collection}/{key} failed: {exc}") from exc
        finally:
            db.close()

    def update(self, collection: str, key: str, partial: Dict[str, Any]) -> None:
        """Merge fields into an existing document.

        Raises:
            KeyError: If the document does not exist
        """
        db = self._session()
        try:
            row = db.get(Document, (collection, key))
            if row is None:
                raise KeyError(f"{collection}/{key}")
            row.data = {**(row.data or {}), **partial}
            row.updated_at = int(time.time())
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreUnavailableError(f"update {collection}/{key} failed: {exc}") from exc
        finally:
            db.close()

    def delete(self, collection: str, key: str) -> bool:
        """Delete a document, returns False when there was nothing to delete."""
        db = self._session()
        try:
            deleted = (
                db.query(Document)
                .filter(Document.collection == collection, Document.key == key)
                .delete()
            )
            db.commit()
            return bool(deleted)
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreUnavailableError(f"delete {collection}/{key} failed: {exc}") from exc
        finally:
            db.close()

    def count(self, collection: str) -> int:
        db = self._session()
        try:
            return db.query(Document).filter(Document.collection == collection).count()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"count {collection} failed: {exc}") from exc
        finally:
            db.close()
