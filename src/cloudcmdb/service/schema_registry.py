"""Schema registry: models, attributes, attribute groups and model groups.

Every write validates its input and checks existence before touching the
store, so a rejected call leaves no partial state behind.
"""

from __future__ import annotations

import logging

from cloudcmdb.models.errors import AlreadyExistsError, ErrorCode, InvalidError, NotFoundError
from cloudcmdb.models.schema import (
    FIELD_TYPE_LABELS,
    Attribute,
    AttributeFilter,
    AttributeGroup,
    AttributeGroupWithAttrs,
    BuiltinAttributeGroup,
    FieldType,
    Model,
    ModelDetail,
    ModelFilter,
    ModelGroup,
    ModelGroupWithModels,
    builtin_attribute_groups,
)
from cloudcmdb.storage.repository import (
    AttributeGroupRepository,
    AttributeRepository,
    ModelGroupRepository,
    ModelRepository,
)

logger = logging.getLogger(__name__)


class ModelService:
    """CRUD over models.  Creating a model seeds its builtin attribute groups."""

    def __init__(
        self,
        models: ModelRepository,
        attributes: AttributeRepository,
        attribute_groups: AttributeGroupRepository,
        model_groups: ModelGroupRepository,
    ) -> None:
        self._models = models
        self._attributes = attributes
        self._attribute_groups = attribute_groups
        self._model_groups = model_groups

    async def create(self, model: Model) -> Model:
        model.validate_fields()
        if await self._models.exists(model.uid):
            raise AlreadyExistsError(f"model '{model.uid}' already exists")
        if model.parent_uid and not await self._models.exists(model.parent_uid):
            raise NotFoundError(f"parent model '{model.parent_uid}' not found")
        if model.model_group_id and await self._model_groups.get_by_id(model.model_group_id) is None:
            raise NotFoundError(
                f"model group {model.model_group_id} not found", code=ErrorCode.MODEL_GROUP_NOT_FOUND
            )
        created = await self._models.create(model)
        for group in builtin_attribute_groups(created.uid):
            await self._attribute_groups.upsert(group)
        logger.info("Created model %s (provider=%s)", created.uid, created.provider)
        return created

    async def get_by_uid(self, uid: str) -> Model:
        model = await self._models.get_by_uid(uid)
        if model is None:
            raise NotFoundError(f"model '{uid}' not found")
        return model

    async def get_by_id(self, model_id: int) -> Model:
        model = await self._models.get_by_id(model_id)
        if model is None:
            raise NotFoundError(f"model {model_id} not found")
        return model

    async def get_detail(self, uid: str) -> ModelDetail:
        model = await self.get_by_uid(uid)
        groups = await self._attribute_groups.list(uid)
        attrs = await self._attributes.list(AttributeFilter(model_uid=uid))
        return ModelDetail(model=model, groups=_group_attributes(groups, attrs))

    async def list(self, filter: ModelFilter) -> tuple[list[Model], int]:
        items = await self._models.list(filter)
        total = await self._models.count(filter)
        return items, total

    async def update(self, uid: str, model: Model) -> Model:
        """Replace the mutable fields of *uid*; the uid itself never changes."""
        if not await self._models.exists(uid):
            raise NotFoundError(f"model '{uid}' not found")
        model = model.model_copy(update={"uid": uid})
        model.validate_fields()
        return await self._models.update(model)

    async def delete(self, uid: str) -> None:
        """Delete a model with its attributes and attribute groups.

        A model that still has child models cannot be deleted.
        """
        if not await self._models.exists(uid):
            raise NotFoundError(f"model '{uid}' not found")
        if await self._models.count(ModelFilter(parent_uid=uid)):
            raise InvalidError(
                f"model '{uid}' has child models", code=ErrorCode.MODEL_INVALID
            )
        for attr in await self._attributes.list(AttributeFilter(model_uid=uid)):
            await self._attributes.delete(attr.id)
        for group in await self._attribute_groups.list(uid):
            await self._attribute_groups.delete(group.id)
        await self._models.delete(uid)
        logger.info("Deleted model %s", uid)


class AttributeService:
    """Attributes and attribute groups of a model."""

    def __init__(
        self,
        attributes: AttributeRepository,
        attribute_groups: AttributeGroupRepository,
        models: ModelRepository,
    ) -> None:
        self._attributes = attributes
        self._groups = attribute_groups
        self._models = models

    # -- attributes ------------------------------------------------------------

    async def create_attribute(self, attr: Attribute) -> Attribute:
        attr.validate_fields()
        if not await self._models.exists(attr.model_uid):
            raise NotFoundError(f"model '{attr.model_uid}' not found")
        if await self._attributes.exists(attr.model_uid, attr.field_uid):
            raise AlreadyExistsError(
                f"attribute '{attr.field_uid}' already exists on model '{attr.model_uid}'",
                code=ErrorCode.ATTRIBUTE_EXISTS,
            )
        if not attr.group_id:
            custom = await self._builtin_group(attr.model_uid, BuiltinAttributeGroup.CUSTOM)
            attr = attr.model_copy(update={"group_id": custom.id})
        elif await self._groups.get_by_id(attr.group_id) is None:
            raise NotFoundError(
                f"attribute group {attr.group_id} not found", code=ErrorCode.ATTRIBUTE_NOT_FOUND
            )
        created = await self._attributes.create(attr)
        logger.debug("Created attribute %s.%s", created.model_uid, created.field_uid)
        return created

    async def get_attribute(self, attr_id: int) -> Attribute:
        attr = await self._attributes.get_by_id(attr_id)
        if attr is None:
            raise NotFoundError(f"attribute {attr_id} not found", code=ErrorCode.ATTRIBUTE_NOT_FOUND)
        return attr

    async def get_by_field_uid(self, model_uid: str, field_uid: str) -> Attribute:
        attr = await self._attributes.get_by_field_uid(model_uid, field_uid)
        if attr is None:
            raise NotFoundError(
                f"attribute '{field_uid}' not found on model '{model_uid}'",
                code=ErrorCode.ATTRIBUTE_NOT_FOUND,
            )
        return attr

    async def list_attributes(self, filter: AttributeFilter) -> tuple[list[Attribute], int]:
        items = await self._attributes.list(filter)
        total = await self._attributes.count(filter)
        return items, total

    async def update_attribute(self, attr_id: int, attr: Attribute) -> Attribute:
        """Update an attribute.  ``field_uid`` and ``model_uid`` are immutable."""
        existing = await self.get_attribute(attr_id)
        attr = attr.model_copy(
            update={
                "id": existing.id,
                "field_uid": existing.field_uid,
                "model_uid": existing.model_uid,
                "group_id": attr.group_id or existing.group_id,
            }
        )
        attr.validate_fields()
        return await self._attributes.update(attr)

    async def delete_attribute(self, attr_id: int) -> None:
        await self.get_attribute(attr_id)
        await self._attributes.delete(attr_id)

    # -- attribute groups --------------------------------------------------------

    async def create_attribute_group(self, group: AttributeGroup) -> AttributeGroup:
        if not group.uid or not group.name:
            raise InvalidError(
                "attribute group uid and name cannot be empty", code=ErrorCode.ATTRIBUTE_INVALID
            )
        if not await self._models.exists(group.model_uid):
            raise NotFoundError(f"model '{group.model_uid}' not found")
        return await self._groups.create(group.model_copy(update={"is_builtin": False}))

    async def list_attribute_groups(self, model_uid: str) -> list[AttributeGroup]:
        return await self._groups.list(model_uid)

    async def update_attribute_group(self, group_id: int, group: AttributeGroup) -> AttributeGroup:
        """Update a group.  Builtin groups keep their uid and builtin flag."""
        existing = await self._get_group(group_id)
        update: dict[str, object] = {"id": existing.id, "model_uid": existing.model_uid}
        if existing.is_builtin:
            update.update(uid=existing.uid, is_builtin=True)
        return await self._groups.update(group.model_copy(update=update))

    async def delete_attribute_group(self, group_id: int) -> None:
        group = await self._get_group(group_id)
        if group.is_builtin:
            raise InvalidError(
                f"builtin attribute group '{group.uid}' cannot be deleted",
                code=ErrorCode.CANNOT_DELETE_BUILTIN,
            )
        if await self._attributes.count(AttributeFilter(model_uid=group.model_uid, group_id=group_id)):
            raise InvalidError(
                f"attribute group '{group.uid}' still holds attributes",
                code=ErrorCode.ATTRIBUTE_INVALID,
            )
        await self._groups.delete(group_id)

    async def init_builtin_groups(self, model_uid: str) -> list[AttributeGroup]:
        """Create (or refresh) the builtin groups of *model_uid*.  Idempotent."""
        return [await self._groups.upsert(g) for g in builtin_attribute_groups(model_uid)]

    async def list_attributes_with_groups(self, model_uid: str) -> list[AttributeGroupWithAttrs]:
        if not await self._models.exists(model_uid):
            raise NotFoundError(f"model '{model_uid}' not found")
        groups = await self._groups.list(model_uid)
        if not groups:
            groups = await self.init_builtin_groups(model_uid)
        attrs = await self._attributes.list(AttributeFilter(model_uid=model_uid))
        return _group_attributes(groups, attrs)

    @staticmethod
    def field_types() -> list[dict[str, str]]:
        return [{"value": t.value, "label": FIELD_TYPE_LABELS[t]} for t in FieldType]

    # -- helpers -------------------------------------------------------------

    async def _get_group(self, group_id: int) -> AttributeGroup:
        group = await self._groups.get_by_id(group_id)
        if group is None:
            raise NotFoundError(
                f"attribute group {group_id} not found", code=ErrorCode.ATTRIBUTE_NOT_FOUND
            )
        return group

    async def _builtin_group(
        self, model_uid: str, uid: BuiltinAttributeGroup
    ) -> AttributeGroup:
        group = await self._groups.get_by_uid(model_uid, uid.value)
        if group is None:
            await self.init_builtin_groups(model_uid)
            group = await self._groups.get_by_uid(model_uid, uid.value)
        assert group is not None
        return group


class ModelGroupService:
    def __init__(self, model_groups: ModelGroupRepository, models: ModelRepository) -> None:
        self._groups = model_groups
        self._models = models

    async def create(self, group: ModelGroup) -> ModelGroup:
        if not group.uid or not group.name:
            raise InvalidError(
                "model group uid and name cannot be empty", code=ErrorCode.MODEL_GROUP_INVALID
            )
        if await self._groups.get_by_uid(group.uid) is not None:
            raise AlreadyExistsError(
                f"model group '{group.uid}' already exists", code=ErrorCode.MODEL_GROUP_EXISTS
            )
        return await self._groups.create(group)

    async def get(self, uid: str) -> ModelGroup:
        group = await self._groups.get_by_uid(uid)
        if group is None:
            raise NotFoundError(
                f"model group '{uid}' not found", code=ErrorCode.MODEL_GROUP_NOT_FOUND
            )
        return group

    async def list(self, offset: int = 0, limit: int = 0) -> list[ModelGroup]:
        return await self._groups.list(offset, limit)

    async def update(self, uid: str, group: ModelGroup) -> ModelGroup:
        existing = await self.get(uid)
        return await self._groups.update(
            group.model_copy(update={"uid": uid, "is_builtin": existing.is_builtin})
        )

    async def delete(self, uid: str) -> None:
        group = await self.get(uid)
        if group.is_builtin:
            raise InvalidError(
                f"builtin model group '{uid}' cannot be deleted",
                code=ErrorCode.CANNOT_DELETE_BUILTIN,
            )
        if await self._models.count(ModelFilter(model_group_id=group.id)):
            raise InvalidError(
                f"model group '{uid}' still holds models", code=ErrorCode.GROUP_HAS_MODELS
            )
        await self._groups.delete(uid)

    async def list_with_models(self, provider: str = "") -> list[ModelGroupWithModels]:
        """Every group with its models, optionally narrowed to one provider."""
        result = []
        for group in await self._groups.list():
            models = await self._models.list(ModelFilter(model_group_id=group.id, provider=provider))
            result.append(ModelGroupWithModels(group=group, models=models))
        return result


def _group_attributes(
    groups: list[AttributeGroup], attrs: list[Attribute]
) -> list[AttributeGroupWithAttrs]:
    by_group: dict[int, list[Attribute]] = {g.id: [] for g in groups}
    for attr in attrs:
        by_group.setdefault(attr.group_id, []).append(attr)
    return [AttributeGroupWithAttrs(group=g, attributes=by_group[g.id]) for g in groups]
