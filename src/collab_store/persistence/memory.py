from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from collab_store.core.models import OpRecord, Snapshot
from collab_store.errors import IntegrityViolation, StoreClosedError
from collab_store.persistence.base import DocumentStore


logger = logging.getLogger(__name__)

DocKey = Tuple[str, str]


@dataclass
class _DocStore:
    lock: asyncio.Lock
    snapshot: Optional[Snapshot] = None
    ops: Dict[int, OpRecord] = field(default_factory=dict)


class InMemoryDocumentStore(DocumentStore):
    def __init__(self) -> None:
        self._docs: Dict[DocKey, _DocStore] = {}
        self._global_lock = asyncio.Lock()
        self._closed = False

    async def commit(self, collection: str, doc_id: str, operation: Any, snapshot: Snapshot) -> bool:
        self._check_open()
        # Only a version 1 commit may create a document entry.
        if snapshot.version != 1 and (collection, doc_id) not in self._docs:
            self._log_conflict(collection, doc_id, snapshot.version)
            return False

        doc = await self._get_or_create_doc(collection, doc_id)
        async with doc.lock:
            current = doc.snapshot.version if doc.snapshot is not None else 0
            if snapshot.version != current + 1:
                self._log_conflict(collection, doc_id, snapshot.version)
                return False

            if snapshot.version in doc.ops:
                raise IntegrityViolation(collection, doc_id, snapshot.version)

            doc.snapshot = Snapshot(
                id=doc_id,
                version=snapshot.version,
                type=snapshot.type,
                data=copy.deepcopy(snapshot.data),
            )
            doc.ops[snapshot.version] = OpRecord(
                collection=collection,
                doc_id=doc_id,
                version=snapshot.version,
                operation=copy.deepcopy(operation),
            )

            logger.info(
                "commit applied",
                extra={"collection": collection, "doc_id": doc_id, "version": snapshot.version},
            )
            return True

    async def get_snapshot(self, collection: str, doc_id: str) -> Snapshot:
        self._check_open()
        doc = self._docs.get((collection, doc_id))
        if doc is None or doc.snapshot is None:
            return Snapshot.missing(doc_id)
        return doc.snapshot.model_copy(deep=True)

    async def get_snapshot_bulk(self, collection: str, doc_ids: Iterable[str]) -> dict[str, Snapshot]:
        return {doc_id: await self.get_snapshot(collection, doc_id) for doc_id in doc_ids}

    async def get_ops(
        self, collection: str, doc_id: str, from_version: int, to_version: Optional[int] = None
    ) -> list[OpRecord]:
        self._check_open()
        doc = self._docs.get((collection, doc_id))
        if doc is None:
            return []
        records: List[OpRecord] = []
        for version in sorted(doc.ops):
            if version <= from_version:
                continue
            if to_version is not None and version > to_version:
                break
            rec = doc.ops[version]
            records.append(
                OpRecord(
                    collection=rec.collection,
                    doc_id=rec.doc_id,
                    version=rec.version,
                    operation=copy.deepcopy(rec.operation),
                )
            )
        return records

    async def get_ops_to_snapshot(
        self, collection: str, doc_id: str, from_version: int, snapshot: Snapshot
    ) -> list[OpRecord]:
        return await self.get_ops(collection, doc_id, from_version, snapshot.version)

    async def close(self) -> None:
        self._closed = True

    def _log_conflict(self, collection: str, doc_id: str, version: int) -> None:
        logger.info(
            "commit rejected: not the latest version",
            extra={"collection": collection, "doc_id": doc_id, "version": version},
        )

    def _check_open(self) -> None:
        if self._closed:
            raise StoreClosedError("document store is closed")

    async def _get_or_create_doc(self, collection: str, doc_id: str) -> _DocStore:
        async with self._global_lock:
            ds = self._docs.get((collection, doc_id))
            if ds is None:
                ds = _DocStore(lock=asyncio.Lock())
                self._docs[(collection, doc_id)] = ds
            return ds
