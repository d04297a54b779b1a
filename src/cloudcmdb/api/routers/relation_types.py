"""Model relation type endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from cloudcmdb.api.deps import get_cmdb
from cloudcmdb.api.schemas import RelationTypeListResponse
from cloudcmdb.models.relation import ModelRelationType, ModelRelationTypeFilter
from cloudcmdb.service.cmdb import CMDB

router = APIRouter()


@router.get("", response_model=RelationTypeListResponse)
async def list_relation_types(
    source_model_uid: str = "",
    target_model_uid: str = "",
    relation_type: str = "",
    offset: int = 0,
    limit: int | None = None,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> RelationTypeListResponse:
    filter = ModelRelationTypeFilter(
        source_model_uid=source_model_uid,
        target_model_uid=target_model_uid,
        relation_type=relation_type,
        offset=offset,
        limit=cmdb.settings.default_page_size if limit is None else limit,
    )
    items, total = await cmdb.relation_types.list(filter)
    return RelationTypeListResponse(items=items, total=total)


@router.post("", response_model=ModelRelationType, status_code=201)
async def create_relation_type(
    body: ModelRelationType,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> ModelRelationType:
    return await cmdb.relation_types.create(body)


@router.get("/{uid}", response_model=ModelRelationType)
async def get_relation_type(
    uid: str,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> ModelRelationType:
    return await cmdb.relation_types.get_by_uid(uid)


@router.put("/{uid}", response_model=ModelRelationType)
async def update_relation_type(
    uid: str,
    body: ModelRelationType,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> ModelRelationType:
    return await cmdb.relation_types.update(uid, body)


@router.delete("/{uid}", status_code=204)
async def delete_relation_type(
    uid: str,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> Response:
    await cmdb.relation_types.delete(uid)
    return Response(status_code=204)
