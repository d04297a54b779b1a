"""Instance records and their schema-less attribute bag.

Attribute values are a closed variant: ``str``, ``bool``, ``int``,
``float``, ``list``, ``dict`` (nested values of the same variant) or
``None``.  :func:`value_kind` names the variant of a value and
:func:`render_scalar` is the single place that turns a value into the
string form the rule engine and reconciliation compare against.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, JsonValue

from cloudcmdb.models.errors import ErrorCode, InvalidError

AttributeValue = JsonValue

TAGS_ATTRIBUTE = "tags"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ValueKind(StrEnum):
    NULL = "null"
    STRING = "string"
    BOOL = "bool"
    NUMBER = "number"
    LIST = "list"
    MAP = "map"


def value_kind(value: Any) -> ValueKind:
    """Classify an attribute value.  ``bool`` is checked before ``int``."""
    if value is None:
        return ValueKind.NULL
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, int | float):
        return ValueKind.NUMBER
    if isinstance(value, list | tuple):
        return ValueKind.LIST
    if isinstance(value, dict):
        return ValueKind.MAP
    raise TypeError(f"unsupported attribute value type: {type(value).__name__}")


def render_scalar(value: Any) -> str:
    """Render a scalar attribute value as text; containers and null become ``""``."""
    kind = value_kind(value)
    if kind is ValueKind.STRING:
        return value
    if kind is ValueKind.BOOL:
        return "true" if value else "false"
    if kind is ValueKind.NUMBER:
        return str(value)
    return ""


class NaturalKey(BaseModel):
    tenant_id: str
    model_uid: str
    asset_id: str

    model_config = {"frozen": True, "protected_namespaces": ()}


class Instance(BaseModel):
    """A concrete asset record of a given model."""

    id: int = 0
    tenant_id: str
    model_uid: str
    asset_id: str
    asset_name: str = ""
    account_id: int = 0
    attributes: dict[str, AttributeValue] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = {"protected_namespaces": ()}

    @property
    def natural_key(self) -> NaturalKey:
        return NaturalKey(tenant_id=self.tenant_id, model_uid=self.model_uid, asset_id=self.asset_id)

    def validate_fields(self) -> None:
        if not self.model_uid:
            raise InvalidError("model uid cannot be empty", code=ErrorCode.INSTANCE_INVALID)
        if not self.asset_id:
            raise InvalidError("asset id cannot be empty", code=ErrorCode.INSTANCE_INVALID)
        if not self.tenant_id:
            raise InvalidError("tenant id cannot be empty", code=ErrorCode.INSTANCE_INVALID)

    def get_attribute(self, key: str) -> AttributeValue:
        return self.attributes.get(key)

    def attribute_text(self, key: str) -> str:
        return render_scalar(self.attributes.get(key))

    @property
    def tags(self) -> dict[str, AttributeValue]:
        """The nested tag map stored under ``attributes["tags"]``, or ``{}``."""
        raw = self.attributes.get(TAGS_ATTRIBUTE)
        return raw if isinstance(raw, dict) else {}


class InstanceFilter(BaseModel):
    tenant_id: str = ""
    model_uid: str = ""
    account_id: int = 0
    asset_id: str = ""
    asset_name: str = ""  # substring match
    attributes: dict[str, AttributeValue] = Field(default_factory=dict)  # exact match
    offset: int = 0
    limit: int = 0

    model_config = {"protected_namespaces": ()}
