from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, Field


class Snapshot(BaseModel):
    """Materialized document state at ``version``.

    ``metadata`` is accepted on input but not persisted by the stores; a
    snapshot read back always carries ``metadata=None``.
    """

    id: str
    version: int = Field(ge=0)
    type: Optional[str] = None
    data: Any = None
    metadata: Any = None

    @classmethod
    def missing(cls, doc_id: str) -> "Snapshot":
        """Sentinel for a document that has never been committed."""
        return cls(id=doc_id, version=0, type=None, data=None, metadata=None)


@dataclass(frozen=True)
class OpRecord:
    collection: str
    doc_id: str
    version: int
    operation: Any


class CommitRequest(BaseModel):
    operation: Any
    snapshot: Snapshot


class CommitResult(BaseModel):
    success: bool


class OpView(BaseModel):
    version: int
    operation: Any


class OpsResponse(BaseModel):
    collection: str
    doc_id: str
    ops: list[OpView]

    @classmethod
    def from_records(cls, collection: str, doc_id: str, records: list[OpRecord]) -> "OpsResponse":
        return cls(
            collection=collection,
            doc_id=doc_id,
            ops=[OpView(version=r.version, operation=r.operation) for r in records],
        )
