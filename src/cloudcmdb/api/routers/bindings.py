"""Service tree nodes and resource binding endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from cloudcmdb.api.deps import get_cmdb
from cloudcmdb.api.schemas import BindingBatchRequest, BindingListResponse, CountResponse
from cloudcmdb.models.servicetree import BindingFilter, ResourceBinding, ServiceTreeNode
from cloudcmdb.service.cmdb import CMDB

router = APIRouter()


@router.post("/nodes", response_model=ServiceTreeNode, status_code=201)
async def add_node(
    body: ServiceTreeNode,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> ServiceTreeNode:
    """Register a node of the external service tree so rules can target it."""
    return await cmdb.add_node(body)


@router.post("", response_model=ResourceBinding, status_code=201)
async def bind_resource(
    body: ResourceBinding,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> ResourceBinding:
    return await cmdb.bindings.bind_resource(body)


@router.post("/batch", response_model=CountResponse, status_code=201)
async def bind_resources(
    body: BindingBatchRequest,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> CountResponse:
    count = await cmdb.bindings.bind_resources(
        body.tenant_id, body.node_id, body.resource_ids, env_id=body.env_id
    )
    return CountResponse(count=count)


@router.get("", response_model=BindingListResponse)
async def list_bindings(
    tenant_id: str = "",
    node_id: int = 0,
    env_id: int = 0,
    resource_id: int = 0,
    bind_type: str = "",
    rule_id: int = 0,
    offset: int = 0,
    limit: int | None = None,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> BindingListResponse:
    filter = BindingFilter(
        tenant_id=tenant_id,
        node_id=node_id,
        env_id=env_id,
        resource_id=resource_id,
        bind_type=bind_type,
        rule_id=rule_id,
        offset=offset,
        limit=cmdb.settings.default_page_size if limit is None else limit,
    )
    items, total = await cmdb.bindings.list_bindings(filter)
    return BindingListResponse(items=items, total=total)


@router.delete("/{binding_id}", status_code=204)
async def unbind_resource(
    binding_id: int,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> Response:
    await cmdb.bindings.unbind_resource(binding_id)
    return Response(status_code=204)
