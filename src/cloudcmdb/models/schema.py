"""Schema-level types: models, attributes, attribute groups, model groups."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from cloudcmdb.models.errors import ErrorCode, InvalidError

PROVIDER_ALL = "all"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class FieldType(StrEnum):
    STRING = "string"
    TEXT = "text"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    ENUM = "enum"
    DATETIME = "datetime"
    DATE = "date"
    ARRAY = "array"
    JSON = "json"
    LINK = "link"


FIELD_TYPE_LABELS: dict[FieldType, str] = {
    FieldType.STRING: "Short text",
    FieldType.TEXT: "Long text",
    FieldType.INT: "Integer",
    FieldType.FLOAT: "Float",
    FieldType.BOOL: "Boolean",
    FieldType.ENUM: "Enumeration",
    FieldType.DATETIME: "Date and time",
    FieldType.DATE: "Date",
    FieldType.ARRAY: "Array",
    FieldType.JSON: "JSON",
    FieldType.LINK: "Model link",
}


def is_valid_field_type(value: str) -> bool:
    return value in FieldType._value2member_map_


class BuiltinAttributeGroup(StrEnum):
    BASIC = "basic"
    NETWORK = "network"
    RESOURCE = "resource"
    TIME = "time"
    CUSTOM = "custom"


_BUILTIN_GROUP_LAYOUT: list[tuple[BuiltinAttributeGroup, str, int]] = [
    (BuiltinAttributeGroup.BASIC, "Basic", 1),
    (BuiltinAttributeGroup.NETWORK, "Network", 2),
    (BuiltinAttributeGroup.RESOURCE, "Resource", 3),
    (BuiltinAttributeGroup.TIME, "Time", 4),
    (BuiltinAttributeGroup.CUSTOM, "Custom", 100),
]


class Model(BaseModel):
    """An asset type, e.g. ``cloud_vm`` or ``aliyun_ecs``."""

    id: int = 0
    uid: str
    name: str
    category: str
    model_group_id: int = 0
    parent_uid: str = ""
    level: int = 1
    icon: str = ""
    description: str = ""
    provider: str = PROVIDER_ALL
    extensible: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = {"protected_namespaces": ()}

    def validate_fields(self) -> None:
        if not self.uid:
            raise InvalidError("model uid cannot be empty", code=ErrorCode.MODEL_INVALID)
        if not self.name:
            raise InvalidError("model name cannot be empty", code=ErrorCode.MODEL_INVALID)
        if not self.category:
            raise InvalidError("model category cannot be empty", code=ErrorCode.MODEL_INVALID)

    @property
    def is_top_level(self) -> bool:
        return self.level == 1 and not self.parent_uid

    def matches_provider(self, provider: str) -> bool:
        """True when this model belongs to *provider* or is provider-agnostic."""
        return self.provider == provider or self.provider == PROVIDER_ALL


class ModelFilter(BaseModel):
    provider: str = ""
    category: str = ""
    parent_uid: str = ""
    level: int = 0
    model_group_id: int = 0
    extensible: bool | None = None
    offset: int = 0
    limit: int = 0

    model_config = {"protected_namespaces": ()}


class ModelGroup(BaseModel):
    """A classification of models (host, network, cloud, ...)."""

    id: int = 0
    uid: str
    name: str
    icon: str = ""
    sort_order: int = 0
    is_builtin: bool = False
    description: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class ModelGroupWithModels(BaseModel):
    group: ModelGroup
    models: list[Model] = []


class Attribute(BaseModel):
    """A typed field definition belonging to a model."""

    id: int = 0
    field_uid: str
    field_name: str
    field_type: str = FieldType.STRING.value
    model_uid: str
    group_id: int = 0
    display_name: str = ""
    display: bool = True
    index: int = 0
    required: bool = False
    editable: bool = True
    searchable: bool = False
    unique: bool = False
    secure: bool = False
    link: bool = False
    link_model: str = ""
    option: Any = None
    default: str = ""
    placeholder: str = ""
    description: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = {"protected_namespaces": ()}

    def validate_fields(self) -> None:
        if not self.field_uid:
            raise InvalidError("attribute uid cannot be empty", code=ErrorCode.ATTRIBUTE_INVALID)
        if not self.field_name:
            raise InvalidError("attribute name cannot be empty", code=ErrorCode.ATTRIBUTE_INVALID)
        if not self.model_uid:
            raise InvalidError("model uid cannot be empty", code=ErrorCode.ATTRIBUTE_INVALID)
        if not is_valid_field_type(self.field_type):
            raise InvalidError(
                f"invalid attribute type '{self.field_type}'", code=ErrorCode.ATTRIBUTE_INVALID
            )
        if self.field_type == FieldType.LINK and not self.link_model:
            raise InvalidError(
                f"link attribute '{self.field_uid}' must name a link model",
                code=ErrorCode.ATTRIBUTE_INVALID,
            )


class AttributeFilter(BaseModel):
    model_uid: str = ""
    group_id: int = 0
    field_type: str = ""
    display: bool | None = None
    required: bool | None = None
    searchable: bool | None = None
    offset: int = 0
    limit: int = 0

    model_config = {"protected_namespaces": ()}


class AttributeGroup(BaseModel):
    id: int = 0
    uid: str
    name: str
    model_uid: str
    index: int = 0
    is_builtin: bool = False
    description: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = {"protected_namespaces": ()}


class AttributeGroupWithAttrs(BaseModel):
    group: AttributeGroup
    attributes: list[Attribute] = []


def builtin_attribute_groups(model_uid: str) -> list[AttributeGroup]:
    """The attribute groups every model starts with."""
    return [
        AttributeGroup(uid=uid.value, name=name, model_uid=model_uid, index=index, is_builtin=True)
        for uid, name, index in _BUILTIN_GROUP_LAYOUT
    ]


class ModelDetail(BaseModel):
    """A model together with its attribute groups and their attributes."""

    model: Model
    groups: list[AttributeGroupWithAttrs] = []

    model_config = {"protected_namespaces": ()}
