"""Pydantic domain models for cloudcmdb."""

from cloudcmdb.models.errors import (
    AlreadyExistsError,
    CMDBError,
    ErrorCode,
    ErrorKind,
    InvalidError,
    NotFoundError,
    StorageError,
)
from cloudcmdb.models.instance import Instance, InstanceFilter
from cloudcmdb.models.relation import (
    InstanceRelation,
    InstanceRelationFilter,
    ModelRelationType,
    RelationDirection,
    RelationKind,
)
from cloudcmdb.models.schema import Attribute, AttributeGroup, FieldType, Model, ModelGroup
from cloudcmdb.models.servicetree import (
    BindingRule,
    ResourceBinding,
    RuleCondition,
    RuleMatchResult,
    RuleOperator,
    ServiceTreeNode,
)
from cloudcmdb.models.topology import TopologyDirection, TopologyGraph, TopologyQuery

__all__ = [
    "AlreadyExistsError",
    "Attribute",
    "AttributeGroup",
    "BindingRule",
    "CMDBError",
    "ErrorCode",
    "ErrorKind",
    "FieldType",
    "Instance",
    "InstanceFilter",
    "InstanceRelation",
    "InstanceRelationFilter",
    "InvalidError",
    "Model",
    "ModelGroup",
    "ModelRelationType",
    "NotFoundError",
    "RelationDirection",
    "RelationKind",
    "ResourceBinding",
    "RuleCondition",
    "RuleMatchResult",
    "RuleOperator",
    "ServiceTreeNode",
    "StorageError",
    "TopologyDirection",
    "TopologyGraph",
    "TopologyQuery",
]
