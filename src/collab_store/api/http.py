import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from collab_store.core.models import CommitRequest, CommitResult, OpsResponse, Snapshot
from collab_store.persistence.base import DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/collections/{collection}/docs/{doc_id}")


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


@router.get("/snapshot", response_model=Snapshot)
async def read_snapshot(collection: str, doc_id: str, store: DocumentStore = Depends(get_store)) -> Snapshot:
    return await store.get_snapshot(collection, doc_id)


@router.get("/ops", response_model=OpsResponse)
async def read_ops(
    collection: str,
    doc_id: str,
    from_version: int = Query(default=0, alias="from", ge=0),
    to_version: Optional[int] = Query(default=None, alias="to", ge=0),
    store: DocumentStore = Depends(get_store),
) -> OpsResponse:
    records = await store.get_ops(collection, doc_id, from_version, to_version)
    return OpsResponse.from_records(collection, doc_id, records)


@router.post("/commit", response_model=CommitResult)
async def commit(
    collection: str,
    doc_id: str,
    body: CommitRequest,
    store: DocumentStore = Depends(get_store),
) -> CommitResult:
    if body.snapshot.id != doc_id:
        logger.warning(
            "commit snapshot id differs from path",
            extra={"collection": collection, "doc_id": doc_id, "version": body.snapshot.version},
        )
    success = await store.commit(collection, doc_id, body.operation, body.snapshot)
    return CommitResult(success=success)
