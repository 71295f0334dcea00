from __future__ import annotations


class StorageError(Exception):
    """Base class for infrastructure failures raised by a document store.

    A version conflict is not a StorageError: commit reports it by returning
    False.
    """


class StorageConnectionError(StorageError):
    """Pool exhausted or the backing store is unreachable."""


class StoreClosedError(StorageConnectionError):
    """The store or its pool was shut down."""


class QueryError(StorageError):
    """Malformed query, type mismatch or an unexpected constraint failure."""


class IntegrityViolation(QueryError):
    """An operation already exists at the version being written."""

    def __init__(self, collection: str, doc_id: str, version: int) -> None:
        super().__init__(f"op already recorded: collection={collection!r} doc_id={doc_id!r} version={version}")
        self.collection = collection
        self.doc_id = doc_id
        self.version = version
