"""API request/response Pydantic schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field

from cloudcmdb.models.instance import Instance
from cloudcmdb.models.relation import InstanceRelation, ModelRelationType
from cloudcmdb.models.schema import Attribute, Model
from cloudcmdb.models.servicetree import BindingRule, ResourceBinding


class ErrorResponse(BaseModel):
    """Body of every error response."""

    error: str = Field(description="Error kind, e.g. not_found")
    code: int = Field(description="Stable numeric error code")
    message: str


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str
    version: str


# -- listings ----------------------------------------------------------------


class ModelListResponse(BaseModel):
    items: list[Model]
    total: int


class AttributeListResponse(BaseModel):
    items: list[Attribute]
    total: int


class RelationTypeListResponse(BaseModel):
    items: list[ModelRelationType]
    total: int


class InstanceListResponse(BaseModel):
    items: list[Instance]
    total: int


class RelationListResponse(BaseModel):
    items: list[InstanceRelation]
    total: int


class RuleListResponse(BaseModel):
    items: list[BindingRule]
    total: int


class BindingListResponse(BaseModel):
    items: list[ResourceBinding]
    total: int


# -- requests / results ------------------------------------------------------


class RelationBatchRequest(BaseModel):
    """Request body for POST /relations/batch."""

    relations: list[InstanceRelation]


class CountResponse(BaseModel):
    count: int


class RelationSyncRequest(BaseModel):
    """Request body for POST /relations/sync."""

    tenant_id: str


class RelationSyncResponse(BaseModel):
    created: int
    skipped: int
    failed: int
    by_relation_type: dict[str, int] = {}
    duration_ms: int


class ModelCyclesResponse(BaseModel):
    """Cycles among relation type declarations, as lists of model uids."""

    cycles: list[list[str]] = []


class RuleExecuteRequest(BaseModel):
    """Request body for POST /rules/execute."""

    tenant_id: str


class FieldTypeInfo(BaseModel):
    value: str
    label: str


class RuleMatchRequest(BaseModel):
    """Request body for POST /rules/match."""

    tenant_id: str
    instance: Instance


class BindingBatchRequest(BaseModel):
    """Request body for POST /bindings/batch."""

    tenant_id: str
    node_id: int
    env_id: int = 0
    resource_ids: list[int]
