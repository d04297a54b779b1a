"""Binding rule endpoints: management, matching and execution."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from cloudcmdb.api.deps import get_cmdb
from cloudcmdb.api.schemas import (
    CountResponse,
    RuleExecuteRequest,
    RuleListResponse,
    RuleMatchRequest,
)
from cloudcmdb.models.servicetree import BindingRule, RuleFilter, RuleMatchResult
from cloudcmdb.service.cmdb import CMDB

router = APIRouter()


@router.post("", response_model=BindingRule, status_code=201)
async def create_rule(
    body: BindingRule,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> BindingRule:
    return await cmdb.rules.create_rule(body)


@router.get("", response_model=RuleListResponse)
async def list_rules(
    tenant_id: str = "",
    node_id: int = 0,
    enabled: bool | None = None,
    name: str = "",
    offset: int = 0,
    limit: int | None = None,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> RuleListResponse:
    filter = RuleFilter(
        tenant_id=tenant_id,
        node_id=node_id,
        enabled=enabled,
        name=name,
        offset=offset,
        limit=cmdb.settings.default_page_size if limit is None else limit,
    )
    items, total = await cmdb.rules.list_rules(filter)
    return RuleListResponse(items=items, total=total)


@router.get("/preview", response_model=list[RuleMatchResult])
async def preview_rules(
    tenant_id: str,
    instance_id: int,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> list[RuleMatchResult]:
    """How each enabled rule of the tenant judges one stored instance."""
    return await cmdb.rules.preview(tenant_id, instance_id)


@router.post("/match", response_model=RuleMatchResult)
async def match_instance(
    body: RuleMatchRequest,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> RuleMatchResult:
    """First enabled rule that matches an instance, which need not be stored."""
    return await cmdb.rules.match_instance(body.tenant_id, body.instance)


@router.post("/execute", response_model=CountResponse)
async def execute_rules(
    body: RuleExecuteRequest,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> CountResponse:
    return CountResponse(count=await cmdb.rules.execute_rules(body.tenant_id))


@router.get("/{rule_id}", response_model=BindingRule)
async def get_rule(
    rule_id: int,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> BindingRule:
    return await cmdb.rules.get_rule(rule_id)


@router.put("/{rule_id}", response_model=BindingRule)
async def update_rule(
    rule_id: int,
    body: BindingRule,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> BindingRule:
    return await cmdb.rules.update_rule(rule_id, body)


@router.delete("/{rule_id}", response_model=CountResponse)
async def delete_rule(
    rule_id: int,
    cmdb: CMDB = Depends(get_cmdb),  # noqa: B008
) -> CountResponse:
    """Delete a rule.  The count is the number of bindings removed with it."""
    return CountResponse(count=await cmdb.rules.delete_rule(rule_id))
