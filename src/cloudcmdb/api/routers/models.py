"""Model, attribute and attribute group endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from cloudcmdb.api.deps import get_cmdb
from cloudcmdb.api.schemas import AttributeListResponse, FieldTypeInfo, ModelListResponse
from cloudcmdb.models.schema import (
    Attribute,
    AttributeFilter,
    AttributeGroup,
    AttributeGroupWithAttrs,
    Model,
    ModelDetail,
    ModelFilter,
)
from cloudcmdb.service.cmdb import CMDB

router = APIRouter()


# -- models ------------------------------------------------------------------


@router.get("", response_model=ModelListResponse)
async def list_models(
    provider: str = "",
    category: str = "",
    parent_uid: str = "",
    offset: int = 0,
    limit: int | None = None,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> ModelListResponse:
    filter = ModelFilter(
        provider=provider,
        category=category,
        parent_uid=parent_uid,
        offset=offset,
        limit=cmdb.settings.default_page_size if limit is None else limit,
    )
    items, total = await cmdb.models.list(filter)
    return ModelListResponse(items=items, total=total)


@router.post("", response_model=Model, status_code=201)
async def create_model(
    body: Model,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> Model:
    return await cmdb.models.create(body)


@router.get("/field-types", response_model=list[FieldTypeInfo])
async def field_types(
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> list[FieldTypeInfo]:
    return [FieldTypeInfo(**t) for t in cmdb.attributes.field_types()]


@router.get("/{uid}", response_model=ModelDetail)
async def get_model(
    uid: str,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> ModelDetail:
    return await cmdb.models.get_detail(uid)


@router.put("/{uid}", response_model=Model)
async def update_model(
    uid: str,
    body: Model,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> Model:
    return await cmdb.models.update(uid, body)


@router.delete("/{uid}", status_code=204)
async def delete_model(
    uid: str,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> Response:
    await cmdb.models.delete(uid)
    return Response(status_code=204)


# -- attributes ----------------------------------------------------------------


@router.get("/{uid}/attributes", response_model=list[AttributeGroupWithAttrs])
async def list_attributes_with_groups(
    uid: str,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> list[AttributeGroupWithAttrs]:
    return await cmdb.attributes.list_attributes_with_groups(uid)


@router.get("/{uid}/attributes/flat", response_model=AttributeListResponse)
async def list_attributes(
    uid: str,
    group_id: int = 0,
    offset: int = 0,
    limit: int = 0,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> AttributeListResponse:
    filter = AttributeFilter(model_uid=uid, group_id=group_id, offset=offset, limit=limit)
    items, total = await cmdb.attributes.list_attributes(filter)
    return AttributeListResponse(items=items, total=total)


@router.post("/{uid}/attributes", response_model=Attribute, status_code=201)
async def create_attribute(
    uid: str,
    body: Attribute,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> Attribute:
    return await cmdb.attributes.create_attribute(body.model_copy(update={"model_uid": uid}))


@router.put("/attributes/{attr_id}", response_model=Attribute)
async def update_attribute(
    attr_id: int,
    body: Attribute,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> Attribute:
    return await cmdb.attributes.update_attribute(attr_id, body)


@router.delete("/attributes/{attr_id}", status_code=204)
async def delete_attribute(
    attr_id: int,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> Response:
    await cmdb.attributes.delete_attribute(attr_id)
    return Response(status_code=204)


# -- attribute groups ------------------------------------------------------------


@router.get("/{uid}/attribute-groups", response_model=list[AttributeGroup])
async def list_attribute_groups(
    uid: str,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> list[AttributeGroup]:
    return await cmdb.attributes.list_attribute_groups(uid)


@router.post("/{uid}/attribute-groups", response_model=AttributeGroup, status_code=201)
async def create_attribute_group(
    uid: str,
    body: AttributeGroup,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> AttributeGroup:
    return await cmdb.attributes.create_attribute_group(body.model_copy(update={"model_uid": uid}))


@router.put("/attribute-groups/{group_id}", response_model=AttributeGroup)
async def update_attribute_group(
    group_id: int,
    body: AttributeGroup,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> AttributeGroup:
    return await cmdb.attributes.update_attribute_group(group_id, body)


@router.delete("/attribute-groups/{group_id}", status_code=204)
async def delete_attribute_group(
    group_id: int,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> Response:
    await cmdb.attributes.delete_attribute_group(group_id)
    return Response(status_code=204)
