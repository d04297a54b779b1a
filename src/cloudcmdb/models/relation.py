"""Relation types (schema level) and instance relations (data level)."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from cloudcmdb.models.errors import ErrorCode, InvalidError


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RelationKind(StrEnum):
    BELONGS_TO = "belongs_to"
    CONTAINS = "contains"
    BIND_TO = "bindto"
    CONNECTS = "connects"
    DEPENDS_ON = "depends_on"


class RelationDirection(StrEnum):
    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_MANY = "many_to_many"


_DIRECTION_ALIASES = {
    "1:1": RelationDirection.ONE_TO_ONE,
    "1:N": RelationDirection.ONE_TO_MANY,
    "1:n": RelationDirection.ONE_TO_MANY,
    "N:N": RelationDirection.MANY_TO_MANY,
    "n:n": RelationDirection.MANY_TO_MANY,
}


class ModelRelationType(BaseModel):
    """Declares that instances of two models may be related, and how."""

    id: int = 0
    uid: str
    name: str = ""
    source_model_uid: str
    target_model_uid: str
    relation_type: RelationKind = RelationKind.BELONGS_TO
    direction: RelationDirection = RelationDirection.ONE_TO_MANY
    source_to_target: str = ""
    target_to_source: str = ""
    description: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = {"protected_namespaces": ()}

    @field_validator("direction", mode="before")
    @classmethod
    def _normalize_direction(cls, value: object) -> object:
        if isinstance(value, str):
            return _DIRECTION_ALIASES.get(value, value)
        return value

    def validate_fields(self) -> None:
        if not self.uid:
            raise InvalidError("relation type uid cannot be empty", code=ErrorCode.RELATION_INVALID)
        if not self.source_model_uid or not self.target_model_uid:
            raise InvalidError(
                "source and target model uid cannot be empty", code=ErrorCode.RELATION_INVALID
            )


class ModelRelationTypeFilter(BaseModel):
    source_model_uid: str = ""
    target_model_uid: str = ""
    relation_type: str = ""
    offset: int = 0
    limit: int = 0

    model_config = {"protected_namespaces": ()}


class RelationTriple(BaseModel):
    """The uniqueness key of an instance relation."""

    source_instance_id: int
    target_instance_id: int
    relation_type_uid: str

    model_config = {"frozen": True}


class InstanceRelation(BaseModel):
    """A directed, typed edge between two instances of one tenant."""

    id: int = 0
    source_instance_id: int
    target_instance_id: int
    relation_type_uid: str
    tenant_id: str = ""
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def triple(self) -> RelationTriple:
        return RelationTriple(
            source_instance_id=self.source_instance_id,
            target_instance_id=self.target_instance_id,
            relation_type_uid=self.relation_type_uid,
        )

    def validate_fields(self) -> None:
        if not self.source_instance_id or not self.target_instance_id:
            raise InvalidError(
                "source and target instance id are required", code=ErrorCode.RELATION_INVALID
            )
        if not self.relation_type_uid:
            raise InvalidError("relation type uid cannot be empty", code=ErrorCode.RELATION_INVALID)
        if self.source_instance_id == self.target_instance_id:
            raise InvalidError(
                f"instance {self.source_instance_id} cannot relate to itself",
                code=ErrorCode.RELATION_INVALID,
            )


class InstanceRelationFilter(BaseModel):
    """All set fields are AND-combined; zero / empty means "any"."""

    source_instance_id: int = 0
    target_instance_id: int = 0
    relation_type_uid: str = ""
    tenant_id: str = ""
    offset: int = 0
    limit: int = 0
