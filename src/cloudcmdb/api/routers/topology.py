"""Topology endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from cloudcmdb.api.deps import get_cmdb
from cloudcmdb.api.schemas import ModelCyclesResponse
from cloudcmdb.models.topology import (
    ModelTopologyGraph,
    TopologyDirection,
    TopologyGraph,
    TopologyQuery,
)
from cloudcmdb.service.cmdb import CMDB

router = APIRouter()


@router.get("/instances/{instance_id}", response_model=TopologyGraph)
async def instance_topology(
    instance_id: int,
    tenant_id: str = "",
    model_uid: str = "",
    depth: int = 1,
    direction: TopologyDirection | None = None,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> TopologyGraph:
    """Relation graph around one instance.  ``depth <= 0`` means no depth limit."""
    query = TopologyQuery(
        instance_id=instance_id,
        tenant_id=tenant_id,
        model_uid=model_uid,
        depth=depth,
        direction=direction,
    )
    return await cmdb.topology.get_instance_topology(query)


@router.get("/models", response_model=ModelTopologyGraph)
async def model_topology(
    provider: str = "",
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> ModelTopologyGraph:
    return await cmdb.topology.get_model_topology(provider)


@router.get("/models/cycles", response_model=ModelCyclesResponse)
async def model_cycles(
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> ModelCyclesResponse:
    graph = await cmdb.model_graph()
    return ModelCyclesResponse(cycles=graph.detect_cycles())
