"""
Firebase backend access.

Owns the process-wide firebase-admin app, exposes the Firestore client and the
Storage bucket as FastAPI dependencies, and provides the generic document
helpers the per-entity wrappers in `crud` are built on.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type

import firebase_admin
from firebase_admin import credentials, firestore, storage
from firebase_admin.exceptions import FirebaseError
from google.api_core.exceptions import GoogleAPICallError, RetryError
from google.cloud.firestore_v1.base_query import FieldFilter

from config import FIREBASE_CREDENTIALS, FIREBASE_PROJECT_ID, FIREBASE_STORAGE_BUCKET
from errors import MalformedDocumentError
from schemas import R, parse_document

logger = logging.getLogger(__name__)

# Everything the hosted backend may raise from a call
BACKEND_ERRORS = (GoogleAPICallError, RetryError, FirebaseError)

Filter = Tuple[str, str, Any]

_app: Optional[firebase_admin.App] = None


def init_backend() -> firebase_admin.App:
    global _app

    if _app is None:
        if FIREBASE_CREDENTIALS:
            cred = credentials.Certificate(FIREBASE_CREDENTIALS)
        else:
            cred = credentials.ApplicationDefault()
        options = {}
        if FIREBASE_PROJECT_ID:
            options["projectId"] = FIREBASE_PROJECT_ID
        if FIREBASE_STORAGE_BUCKET:
            options["storageBucket"] = FIREBASE_STORAGE_BUCKET
        _app = firebase_admin.initialize_app(cred, options)
        logger.info("Firebase app initialised for project %s", _app.project_id)
    return _app


def close_backend() -> None:
    global _app

    if _app is not None:
        firebase_admin.delete_app(_app)
        _app = None
        logger.info("Firebase app closed")


def get_app() -> firebase_admin.App:
    return _app if _app is not None else init_backend()


def get_db():
    return firestore.client(app=get_app())


def get_bucket():
    return storage.bucket(app=get_app())


def now() -> datetime:
    return datetime.now(timezone.utc)


def snapshot_to_record(model: Type[R], snapshot) -> Optional[R]:
    """Parse a DocumentSnapshot, or return None when the document is missing."""
    if not snapshot.exists:
        return None
    return parse_document(model, snapshot.id, snapshot.to_dict())


def records_from_snapshots(model: Type[R], snapshots: Iterable) -> List[R]:
    """Parse snapshots, skipping (and logging) the ones that do not validate."""
    records = []
    for snapshot in snapshots:
        try:
            records.append(parse_document(model, snapshot.id, snapshot.to_dict()))
        except MalformedDocumentError as exc:
            logger.warning("Skipping document: %s", exc)
    return records


def build_query(
    ref,
    filters: Sequence[Filter] = (),
    order_by: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = None,
):
    query = ref
    for field, op, value in filters:
        query = query.where(filter=FieldFilter(field, op, value))
    if order_by:
        direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
        query = query.order_by(order_by, direction=direction)
    if limit:
        query = query.limit(limit)
    return query


def get_document(db, model: Type[R], doc_id: str) -> Optional[R]:
    return snapshot_to_record(model, db.collection(model.collection).document(doc_id).get())


def get_documents(
    db,
    model: Type[R],
    filters: Sequence[Filter] = (),
    order_by: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = None,
) -> List[R]:
    query = build_query(db.collection(model.collection), filters, order_by, descending, limit)
    return records_from_snapshots(model, query.stream())


def create_document(db, collection_name: str, data: Dict[str, Any]) -> str:
    """Insert a document with a backend-assigned id. Returns the id."""
    _, doc_ref = db.collection(collection_name).add(data)
    return doc_ref.id


def set_document(db, collection_name: str, doc_id: str, data: Dict[str, Any]) -> str:
    db.collection(collection_name).document(doc_id).set(data)
    return doc_id


def update_document(db, collection_name: str, doc_id: str, data: Dict[str, Any]) -> str:
    db.collection(collection_name).document(doc_id).update(data)
    return doc_id


def delete_document(db, collection_name: str, doc_id: str) -> str:
    db.collection(collection_name).document(doc_id).delete()
    return doc_id
