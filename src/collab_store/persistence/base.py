from __future__ import annotations

from typing import Any, Iterable, Optional, Protocol

from collab_store.core.models import OpRecord, Snapshot


class DocumentStore(Protocol):
    async def commit(self, collection: str, doc_id: str, operation: Any, snapshot: Snapshot) -> bool:
        """Store ``snapshot`` and ``operation`` if ``snapshot.version`` is the next version.

        Returns False on a version mismatch. Only id, version, type and data of
        the snapshot are stored; its metadata is dropped.
        """

    async def get_snapshot(self, collection: str, doc_id: str) -> Snapshot: ...

    async def get_snapshot_bulk(self, collection: str, doc_ids: Iterable[str]) -> dict[str, Snapshot]: ...

    async def get_ops(
        self, collection: str, doc_id: str, from_version: int, to_version: Optional[int] = None
    ) -> list[OpRecord]: ...

    async def get_ops_to_snapshot(
        self, collection: str, doc_id: str, from_version: int, snapshot: Snapshot
    ) -> list[OpRecord]: ...

    async def close(self) -> None: ...
