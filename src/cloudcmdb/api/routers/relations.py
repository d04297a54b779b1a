"""Instance relation endpoints, including reconciliation."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Response

from cloudcmdb.api.deps import get_cmdb
from cloudcmdb.api.schemas import (
    CountResponse,
    RelationBatchRequest,
    RelationListResponse,
    RelationSyncRequest,
    RelationSyncResponse,
)
from cloudcmdb.models.relation import InstanceRelation, InstanceRelationFilter
from cloudcmdb.service.cmdb import CMDB

router = APIRouter()


@router.post("", response_model=InstanceRelation, status_code=201)
async def create_relation(
    body: InstanceRelation,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> InstanceRelation:
    return await cmdb.relations.create(body)


@router.post("/batch", response_model=CountResponse, status_code=201)
async def create_relations(
    body: RelationBatchRequest,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> CountResponse:
    return CountResponse(count=await cmdb.relations.create_batch(body.relations))


@router.post("/sync", response_model=RelationSyncResponse)
async def sync_relations(
    body: RelationSyncRequest,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> RelationSyncResponse:
    """Derive relations from attribute values for one tenant."""
    result = await cmdb.relations.sync_relations(body.tenant_id)
    return RelationSyncResponse(**asdict(result))


@router.get("", response_model=RelationListResponse)
async def list_relations(
    source_instance_id: int = 0,
    target_instance_id: int = 0,
    relation_type_uid: str = "",
    tenant_id: str = "",
    offset: int = 0,
    limit: int | None = None,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> RelationListResponse:
    filter = InstanceRelationFilter(
        source_instance_id=source_instance_id,
        target_instance_id=target_instance_id,
        relation_type_uid=relation_type_uid,
        tenant_id=tenant_id,
        offset=offset,
        limit=cmdb.settings.default_page_size if limit is None else limit,
    )
    items, total = await cmdb.relations.list(filter)
    return RelationListResponse(items=items, total=total)


@router.get("/{relation_id}", response_model=InstanceRelation)
async def get_relation(
    relation_id: int,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> InstanceRelation:
    return await cmdb.relations.get_by_id(relation_id)


@router.delete("/{relation_id}", status_code=204)
async def delete_relation(
    relation_id: int,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> Response:
    await cmdb.relations.delete(relation_id)
    return Response(status_code=204)
