"""Service tree nodes, binding rules and resource bindings."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import IntEnum, StrEnum

from pydantic import BaseModel, Field

from cloudcmdb.models.errors import ErrorCode, InvalidError


def _utcnow() -> datetime:
    return datetime.now(UTC)


class NodeStatus(IntEnum):
    DISABLED = 0
    ENABLED = 1


class ServiceTreeNode(BaseModel):
    """An organizational node (business line, product, module, cluster)."""

    id: int = 0
    uid: str = ""
    name: str
    parent_id: int = 0
    level: int = 1
    path: str = ""
    tenant_id: str
    owner: str = ""
    team: str = ""
    status: NodeStatus = NodeStatus.ENABLED
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_root(self) -> bool:
        return self.parent_id == 0


class RuleOperator(StrEnum):
    EQ = "eq"
    NE = "ne"
    CONTAINS = "contains"
    REGEX = "regex"
    IN = "in"
    NOT_IN = "not_in"
    EXISTS = "exists"


class RuleCondition(BaseModel):
    """One predicate over an instance field.

    ``operator`` is kept as a plain string: unknown operators are stored as
    given and never match.
    """

    field: str
    operator: str
    value: str = ""


class BindingRule(BaseModel):
    """Conditions (AND-combined) that bind matching instances to a node.

    Lower ``priority`` values are evaluated first.
    """

    id: int = 0
    node_id: int
    env_id: int = 0
    name: str
    tenant_id: str
    priority: int = 100
    conditions: list[RuleCondition] = []
    enabled: bool = True
    description: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def validate_fields(self) -> None:
        if not self.name:
            raise InvalidError("rule name cannot be empty", code=ErrorCode.RULE_INVALID)
        if not self.node_id:
            raise InvalidError("rule target node cannot be empty", code=ErrorCode.RULE_INVALID)
        if not self.tenant_id:
            raise InvalidError("rule tenant id cannot be empty", code=ErrorCode.RULE_INVALID)
        if not self.conditions:
            raise InvalidError("rule conditions cannot be empty", code=ErrorCode.RULE_INVALID)


class RuleFilter(BaseModel):
    tenant_id: str = ""
    node_id: int = 0
    enabled: bool | None = None
    name: str = ""
    offset: int = 0
    limit: int = 0


class RuleMatchResult(BaseModel):
    rule_id: int = 0
    node_id: int = 0
    resource_id: int
    matched: bool
    reason: str = ""


class ResourceType(StrEnum):
    INSTANCE = "instance"
    ASSET = "asset"


class BindType(StrEnum):
    MANUAL = "manual"
    RULE = "rule"


class ResourceBinding(BaseModel):
    """Assignment of a resource to a service tree node within an environment."""

    id: int = 0
    node_id: int
    env_id: int = 0
    resource_type: ResourceType = ResourceType.INSTANCE
    resource_id: int
    tenant_id: str
    bind_type: BindType = BindType.MANUAL
    rule_id: int = 0
    created_at: datetime = Field(default_factory=_utcnow)


class BindingFilter(BaseModel):
    tenant_id: str = ""
    node_id: int = 0
    env_id: int = 0
    resource_type: str = ""
    resource_id: int = 0
    bind_type: str = ""
    rule_id: int = 0
    offset: int = 0
    limit: int = 0
