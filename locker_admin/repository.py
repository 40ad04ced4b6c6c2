"""
Document repository used by every locker administration service.

Services never touch the Firestore client directly: they go through the
``Repository`` contract (point reads and writes, equality queries, an atomic
conditional update and full-collection subscriptions). ``FirestoreRepository``
is the production implementation; tests plug in an in-memory one through the
Flask config key ``LOCKER_REPOSITORY``.

Documents are exchanged as plain dicts with the document id injected under
``'id'``.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from functools import wraps
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from flask import current_app, has_app_context
from google.api_core import exceptions as gapi_exceptions
from google.cloud import firestore as gc_firestore

from .errors import LockerAdminError, NotFoundError, PermissionDeniedError, RepositoryError

_logger = logging.getLogger(__name__)
_logger.setLevel(logging.INFO)

# Firestore rejects batches larger than this
BATCH_LIMIT = 500

SnapshotCallback = Callable[[List[Dict[str, Any]]], None]
ErrorCallback = Callable[[Exception], None]


class Repository(ABC):
    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Point read; None when the document does not exist."""
        raise NotImplementedError

    @abstractmethod
    def list(self, collection: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def query(self, collection: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Documents whose fields equal every value in ``filters``."""
        raise NotImplementedError

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or overwrite."""
        raise NotImplementedError

    @abstractmethod
    def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> bool:
        """Create only if absent. Returns False, without writing, if the id exists."""
        raise NotImplementedError

    @abstractmethod
    def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Create with a store-generated id and return it."""
        raise NotImplementedError

    @abstractmethod
    def update(self, collection: str, doc_id: str, updates: Dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete_many(self, collection: str, doc_ids: Iterable[str]) -> int:
        raise NotImplementedError

    @abstractmethod
    def update_if(self, collection: str, doc_id: str, field: str, expected: Any,
                  updates: Dict[str, Any],
                  also_set: Optional[Tuple[str, str, Dict[str, Any]]] = None) -> bool:
        """
        Atomic compare-and-set.

        Applies ``updates`` (and writes ``also_set`` = (collection, id, data) in
        the same unit) only while ``field`` still equals ``expected``; returns
        False when the comparison fails. Raises NotFoundError for a missing
        document.
        """
        raise NotImplementedError

    @abstractmethod
    def subscribe(self, collection: str, on_snapshot: SnapshotCallback,
                  on_error: Optional[ErrorCallback] = None):
        """
        Invoke ``on_snapshot`` with the full collection every time any document
        changes. Returns a handle exposing ``unsubscribe()``.
        """
        raise NotImplementedError


def _with_id(doc_id: str, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    doc = dict(data or {})
    doc['id'] = doc_id
    return doc


def _matches(current: Any, expected: Any) -> bool:
    # Missing booleans are stored as absent fields on older documents
    if isinstance(expected, bool):
        return bool(current) == expected
    return current == expected


def translate_errors(f):
    """Map google-api-core failures onto the locker administration taxonomy."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except LockerAdminError:
            raise
        except gapi_exceptions.PermissionDenied as e:
            _logger.error('Firestore permission denied in %s: %s', f.__name__, str(e))
            raise PermissionDeniedError('Access denied. Please check your authentication.') from e
        except gapi_exceptions.NotFound as e:
            raise NotFoundError(f'Document not found: {str(e)}') from e
        except gapi_exceptions.GoogleAPICallError as e:
            _logger.error('Firestore call failed in %s: %s', f.__name__, str(e))
            raise RepositoryError(f'Document store unavailable: {str(e)}') from e
        except gapi_exceptions.RetryError as e:
            _logger.error('Firestore retries exhausted in %s: %s', f.__name__, str(e))
            raise RepositoryError(f'Document store unavailable: {str(e)}', code='RETRY_EXHAUSTED') from e
    return wrapper


class FirestoreRepository(Repository):
    def __init__(self, client):
        self._client = client

    def _ref(self, collection: str, doc_id: str):
        return self._client.collection(collection).document(doc_id)

    @translate_errors
    def get(self, collection, doc_id):
        snap = self._ref(collection, doc_id).get()
        if not snap.exists:
            return None
        return _with_id(snap.id, snap.to_dict())

    @translate_errors
    def list(self, collection):
        return [_with_id(doc.id, doc.to_dict()) for doc in self._client.collection(collection).stream()]

    @translate_errors
    def query(self, collection, filters):
        query = self._client.collection(collection)
        for field, value in filters.items():
            query = query.where(field, '==', value)
        return [_with_id(doc.id, doc.to_dict()) for doc in query.stream()]

    @translate_errors
    def set(self, collection, doc_id, data):
        self._ref(collection, doc_id).set(data)

    @translate_errors
    def create(self, collection, doc_id, data):
        try:
            self._ref(collection, doc_id).create(data)
            return True
        except gapi_exceptions.AlreadyExists:
            return False

    @translate_errors
    def add(self, collection, data):
        _, ref = self._client.collection(collection).add(data)
        return ref.id

    @translate_errors
    def update(self, collection, doc_id, updates):
        self._ref(collection, doc_id).update(updates)

    @translate_errors
    def delete(self, collection, doc_id):
        self._ref(collection, doc_id).delete()

    @translate_errors
    def delete_many(self, collection, doc_ids):
        ids = list(doc_ids)
        for i in range(0, len(ids), BATCH_LIMIT):
            batch = self._client.batch()
            for doc_id in ids[i:i + BATCH_LIMIT]:
                batch.delete(self._ref(collection, doc_id))
            batch.commit()
        return len(ids)

    @translate_errors
    def update_if(self, collection, doc_id, field, expected, updates, also_set=None):
        ref = self._ref(collection, doc_id)
        other_ref = self._ref(also_set[0], also_set[1]) if also_set else None

        @gc_firestore.transactional
        def _apply(transaction):
            snap = ref.get(transaction=transaction)
            if not snap.exists:
                raise NotFoundError(f'{collection}/{doc_id} not found')
            if not _matches((snap.to_dict() or {}).get(field), expected):
                return False
            transaction.update(ref, updates)
            if other_ref is not None:
                transaction.set(other_ref, also_set[2])
            return True

        return _apply(self._client.transaction())

    def subscribe(self, collection, on_snapshot, on_error=None):
        def _callback(col_snapshot, changes, read_time):
            try:
                on_snapshot([_with_id(doc.id, doc.to_dict()) for doc in col_snapshot])
            except Exception as e:
                _logger.error('Snapshot handler for %s failed: %s', collection, str(e))
                if on_error:
                    on_error(e)

        try:
            return self._client.collection(collection).on_snapshot(_callback)
        except gapi_exceptions.PermissionDenied as e:
            _logger.error('Firestore permission error in %s listener: %s', collection, str(e))
            if on_error:
                on_error(PermissionDeniedError('Access denied. Please check your authentication.'))
            raise PermissionDeniedError('Access denied. Please check your authentication.') from e


def get_repository() -> Repository:
    """
    Repository for the current request.

    An instance stored under ``LOCKER_REPOSITORY`` in the Flask config wins;
    otherwise a Firestore-backed repository is created on first use.
    """
    if has_app_context():
        repo = current_app.config.get('LOCKER_REPOSITORY')
        if repo is not None:
            return repo
    from .database import get_db
    repo = FirestoreRepository(get_db())
    if has_app_context():
        current_app.config['LOCKER_REPOSITORY'] = repo
    return repo
