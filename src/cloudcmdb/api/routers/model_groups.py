"""Model group endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from cloudcmdb.api.deps import get_cmdb
from cloudcmdb.models.schema import ModelGroup, ModelGroupWithModels
from cloudcmdb.service.cmdb import CMDB

router = APIRouter()


@router.get("", response_model=list[ModelGroupWithModels])
async def list_model_groups(
    provider: str = "",
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> list[ModelGroupWithModels]:
    """Every model group with the models it holds."""
    return await cmdb.model_groups.list_with_models(provider)


@router.post("", response_model=ModelGroup, status_code=201)
async def create_model_group(
    body: ModelGroup,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> ModelGroup:
    return await cmdb.model_groups.create(body)


@router.get("/{uid}", response_model=ModelGroup)
async def get_model_group(
    uid: str,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> ModelGroup:
    return await cmdb.model_groups.get(uid)


@router.put("/{uid}", response_model=ModelGroup)
async def update_model_group(
    uid: str,
    body: ModelGroup,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> ModelGroup:
    return await cmdb.model_groups.update(uid, body)


@router.delete("/{uid}", status_code=204)
async def delete_model_group(
    uid: str,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> Response:
    await cmdb.model_groups.delete(uid)
    return Response(status_code=204)
