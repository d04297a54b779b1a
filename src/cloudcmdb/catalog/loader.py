"""Safe YAML loader for the model catalog.

A catalog document declares model groups, models, attributes (keyed by
model uid) and relation types.  Models reference their group, and
attributes their attribute group, by uid; the bootstrap in
:mod:`cloudcmdb.service.cmdb` resolves those references to ids.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from cloudcmdb.models.errors import InvalidError
from cloudcmdb.models.relation import ModelRelationType
from cloudcmdb.models.schema import Attribute, BuiltinAttributeGroup, Model, ModelGroup

BUILTIN_CATALOG = Path(__file__).with_name("builtin.yaml")

# ---------------------------------------------------------------------------
# Safety limits
# ---------------------------------------------------------------------------

_MAX_DOCUMENT_SIZE = 1_000_000
_MAX_NODE_COUNT = 50_000
_MAX_DEPTH = 10

# Anchor definitions (&name) at line start or after whitespace/indicators.
_ANCHOR_RE = re.compile(r"(?:^|[\s\-:])&(\w+)", re.MULTILINE)


class CatalogError(InvalidError):
    """Raised when a catalog document is unsafe, malformed or inconsistent."""


class CatalogModel(Model):
    group: str = ""


class CatalogAttribute(Attribute):
    group: str = BuiltinAttributeGroup.CUSTOM.value


class Catalog(BaseModel):
    model_groups: list[ModelGroup] = []
    models: list[CatalogModel] = []
    attributes: list[CatalogAttribute] = []
    relation_types: list[ModelRelationType] = []

    model_config = {"protected_namespaces": ()}

    def declared_model_uids(self) -> set[str]:
        return {m.uid for m in self.models}


class CatalogLoader:
    """Loads catalog YAML with ruamel.yaml's safe constructor."""

    def __init__(self) -> None:
        self._yaml = YAML(typ="safe", pure=True)

    # -- safety checks -------------------------------------------------------

    @staticmethod
    def _check_yaml_safety(content: str) -> None:
        if len(content) > _MAX_DOCUMENT_SIZE:
            raise CatalogError(
                f"catalog exceeds maximum size "
                f"({len(content):,} chars > {_MAX_DOCUMENT_SIZE:,} limit)"
            )
        if _ANCHOR_RE.search(content):
            raise CatalogError("YAML anchors/aliases are not supported in catalogs")

    @staticmethod
    def _check_shape(data: Any) -> None:
        """Reject documents with too many nodes or too deep nesting."""
        count = 0
        stack: list[tuple[Any, int]] = [(data, 1)]
        while stack:
            node, depth = stack.pop()
            count += 1
            if count > _MAX_NODE_COUNT:
                raise CatalogError(f"catalog exceeds maximum node count ({_MAX_NODE_COUNT:,})")
            if depth > _MAX_DEPTH:
                raise CatalogError(f"catalog exceeds maximum nesting depth ({_MAX_DEPTH})")
            if isinstance(node, dict):
                stack.extend((v, depth + 1) for v in node.values())
            elif isinstance(node, list):
                stack.extend((v, depth + 1) for v in node)

    # -- public loading API --------------------------------------------------

    def load(self, path: Path) -> Catalog:
        with path.open("r", encoding="utf-8") as handle:
            content = handle.read()
        return self.load_string(content, filename=str(path))

    def load_string(self, content: str, filename: str = "<string>") -> Catalog:
        self._check_yaml_safety(content)
        try:
            data = self._yaml.load(content)
        except YAMLError as exc:
            raise CatalogError(f"{filename}: invalid YAML: {exc}") from None
        if data is None:
            return Catalog()
        if not isinstance(data, dict):
            raise CatalogError(f"{filename}: catalog root must be a mapping")
        self._check_shape(data)
        return self._build(data, filename)

    def _build(self, data: dict[str, Any], filename: str) -> Catalog:
        attributes: list[dict[str, Any]] = []
        raw_attrs = data.get("attributes") or {}
        if not isinstance(raw_attrs, dict):
            raise CatalogError(f"{filename}: 'attributes' must map model uids to lists")
        for model_uid, items in raw_attrs.items():
            for item in items or []:
                attributes.append({**item, "model_uid": str(model_uid)})
        try:
            catalog = Catalog(
                model_groups=data.get("model_groups") or [],
                models=data.get("models") or [],
                attributes=attributes,
                relation_types=data.get("relation_types") or [],
            )
        except ValidationError as exc:
            raise CatalogError(f"{filename}: {exc.error_count()} invalid entries: {exc}") from None
        self._check_references(catalog, filename)
        return catalog

    @staticmethod
    def _check_references(catalog: Catalog, filename: str) -> None:
        group_uids = {g.uid for g in catalog.model_groups}
        model_uids = catalog.declared_model_uids()
        for model in catalog.models:
            model.validate_fields()
            if model.group and model.group not in group_uids:
                raise CatalogError(
                    f"{filename}: model '{model.uid}' references unknown group '{model.group}'"
                )
            if model.parent_uid and model.parent_uid not in model_uids:
                raise CatalogError(
                    f"{filename}: model '{model.uid}' references unknown parent "
                    f"'{model.parent_uid}'"
                )
        for attr in catalog.attributes:
            attr.validate_fields()
            if attr.model_uid not in model_uids:
                raise CatalogError(
                    f"{filename}: attribute '{attr.field_uid}' declared on unknown model "
                    f"'{attr.model_uid}'"
                )
        for rel in catalog.relation_types:
            rel.validate_fields()
            for uid in (rel.source_model_uid, rel.target_model_uid):
                if uid not in model_uids:
                    raise CatalogError(
                        f"{filename}: relation type '{rel.uid}' references unknown model '{uid}'"
                    )


def load_catalog(path: Path | None = None) -> Catalog:
    """Load *path*, or the packaged builtin catalog when it is ``None``."""
    return CatalogLoader().load(path or BUILTIN_CATALOG)
