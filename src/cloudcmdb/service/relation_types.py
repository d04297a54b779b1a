"""Registry of model relation types."""

from __future__ import annotations

import logging

from cloudcmdb.models.errors import AlreadyExistsError, ErrorCode, NotFoundError
from cloudcmdb.models.relation import ModelRelationType, ModelRelationTypeFilter
from cloudcmdb.storage.repository import ModelRelationTypeRepository, ModelRepository

logger = logging.getLogger(__name__)


class RelationTypeService:
    def __init__(self, relation_types: ModelRelationTypeRepository, models: ModelRepository) -> None:
        self._types = relation_types
        self._models = models

    async def create(self, rel: ModelRelationType) -> ModelRelationType:
        rel.validate_fields()
        if await self._types.exists(rel.uid):
            raise AlreadyExistsError(
                f"relation type '{rel.uid}' already exists", code=ErrorCode.RELATION_TYPE_EXISTS
            )
        for uid in (rel.source_model_uid, rel.target_model_uid):
            if not await self._models.exists(uid):
                raise NotFoundError(f"model '{uid}' not found")
        created = await self._types.create(rel)
        logger.info(
            "Created relation type %s (%s -> %s)",
            created.uid,
            created.source_model_uid,
            created.target_model_uid,
        )
        return created

    async def get_by_uid(self, uid: str) -> ModelRelationType:
        rel = await self._types.get_by_uid(uid)
        if rel is None:
            raise NotFoundError(
                f"relation type '{uid}' not found", code=ErrorCode.RELATION_TYPE_NOT_FOUND
            )
        return rel

    async def list(self, filter: ModelRelationTypeFilter) -> tuple[list[ModelRelationType], int]:
        items = await self._types.list(filter)
        total = await self._types.count(filter)
        return items, total

    async def update(self, uid: str, rel: ModelRelationType) -> ModelRelationType:
        await self.get_by_uid(uid)
        rel = rel.model_copy(update={"uid": uid})
        rel.validate_fields()
        return await self._types.update(rel)

    async def delete(self, uid: str) -> None:
        await self.get_by_uid(uid)
        await self._types.delete(uid)
        logger.info("Deleted relation type %s", uid)

    async def find_by_models(self, source_uid: str, target_uid: str) -> list[ModelRelationType]:
        return await self._types.find_by_models(source_uid, target_uid)
