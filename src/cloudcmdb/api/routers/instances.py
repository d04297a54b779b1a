"""Instance endpoints.  Writes are upserts on (tenant, model, asset id)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from cloudcmdb.api.deps import get_cmdb
from cloudcmdb.api.schemas import InstanceListResponse
from cloudcmdb.models.instance import Instance, InstanceFilter
from cloudcmdb.service.cmdb import CMDB

router = APIRouter()


@router.put("", response_model=Instance)
async def upsert_instance(
    body: Instance,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> Instance:
    return await cmdb.upsert_instance(body)


@router.get("", response_model=InstanceListResponse)
async def list_instances(
    tenant_id: str = "",
    model_uid: str = "",
    asset_name: str = "",
    offset: int = 0,
    limit: int | None = None,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> InstanceListResponse:
    filter = InstanceFilter(
        tenant_id=tenant_id,
        model_uid=model_uid,
        asset_name=asset_name,
        offset=offset,
        limit=cmdb.settings.default_page_size if limit is None else limit,
    )
    items, total = await cmdb.list_instances(filter)
    return InstanceListResponse(items=items, total=total)


@router.get("/{instance_id}", response_model=Instance)
async def get_instance(
    instance_id: int,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> Instance:
    return await cmdb.get_instance(instance_id)


@router.delete("/{instance_id}", status_code=204)
async def delete_instance(
    instance_id: int,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> Response:
    await cmdb.delete_instance(instance_id)
    return Response(status_code=204)


@router.get("/{instance_id}/related", response_model=list[Instance])
async def related_instances(
    instance_id: int,
    relation_type_uid: str = "",
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> list[Instance]:
    """Direct outgoing neighbours, optionally of one relation type."""
    return await cmdb.topology.get_related_instances(instance_id, relation_type_uid)
