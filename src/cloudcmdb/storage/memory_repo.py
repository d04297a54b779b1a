"""In-memory storage implementation.

Used by the API server in development and by the test-suite.  Every method
completes without awaiting, so a check-and-insert inside one method is
atomic with respect to other coroutines on the same event loop; that is
what lets these stores enforce their uniqueness constraints.
"""

from __future__ import annotations

import itertools
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TypeVar

from cloudcmdb.models.errors import AlreadyExistsError, ErrorCode
from cloudcmdb.models.instance import Instance, InstanceFilter
from cloudcmdb.models.relation import (
    InstanceRelation,
    InstanceRelationFilter,
    ModelRelationType,
    ModelRelationTypeFilter,
    RelationTriple,
)
from cloudcmdb.models.schema import (
    Attribute,
    AttributeFilter,
    AttributeGroup,
    Model,
    ModelFilter,
    ModelGroup,
)
from cloudcmdb.models.servicetree import (
    BindingFilter,
    BindingRule,
    ResourceBinding,
    RuleFilter,
    ServiceTreeNode,
)
from cloudcmdb.storage.repository import (
    AttributeGroupRepository,
    AttributeRepository,
    BindingRepository,
    InstanceRelationRepository,
    InstanceRepository,
    ModelGroupRepository,
    ModelRelationTypeRepository,
    ModelRepository,
    NodeRepository,
    RuleRepository,
)

T = TypeVar("T")


def _now() -> datetime:
    return datetime.now(UTC)


def _page(items: Iterable[T], offset: int, limit: int) -> list[T]:
    result = list(items)[max(offset, 0) :]
    return result[:limit] if limit > 0 else result


class InMemoryModelRepository(ModelRepository):
    def __init__(self) -> None:
        self._store: dict[str, Model] = {}
        self._ids = itertools.count(1)

    def _matching(self, f: ModelFilter) -> list[Model]:
        models = sorted(self._store.values(), key=lambda m: m.id)
        if f.provider:
            models = [m for m in models if m.provider == f.provider]
        if f.category:
            models = [m for m in models if m.category == f.category]
        if f.parent_uid:
            models = [m for m in models if m.parent_uid == f.parent_uid]
        if f.level:
            models = [m for m in models if m.level == f.level]
        if f.model_group_id:
            models = [m for m in models if m.model_group_id == f.model_group_id]
        if f.extensible is not None:
            models = [m for m in models if m.extensible == f.extensible]
        return models

    async def create(self, model: Model) -> Model:
        if model.uid in self._store:
            raise AlreadyExistsError(f"model '{model.uid}' already exists")
        stored = model.model_copy(update={"id": next(self._ids)})
        self._store[stored.uid] = stored
        return stored

    async def get_by_uid(self, uid: str) -> Model | None:
        return self._store.get(uid)

    async def get_by_id(self, model_id: int) -> Model | None:
        return next((m for m in self._store.values() if m.id == model_id), None)

    async def list(self, filter: ModelFilter) -> list[Model]:
        return _page(self._matching(filter), filter.offset, filter.limit)

    async def count(self, filter: ModelFilter) -> int:
        return len(self._matching(filter))

    async def update(self, model: Model) -> Model:
        existing = self._store[model.uid]
        stored = model.model_copy(
            update={"id": existing.id, "created_at": existing.created_at, "updated_at": _now()}
        )
        self._store[model.uid] = stored
        return stored

    async def delete(self, uid: str) -> None:
        self._store.pop(uid, None)

    async def exists(self, uid: str) -> bool:
        return uid in self._store


class InMemoryModelGroupRepository(ModelGroupRepository):
    def __init__(self) -> None:
        self._store: dict[str, ModelGroup] = {}
        self._ids = itertools.count(1)

    async def create(self, group: ModelGroup) -> ModelGroup:
        if group.uid in self._store:
            raise AlreadyExistsError(
                f"model group '{group.uid}' already exists", code=ErrorCode.MODEL_GROUP_EXISTS
            )
        stored = group.model_copy(update={"id": next(self._ids)})
        self._store[stored.uid] = stored
        return stored

    async def get_by_uid(self, uid: str) -> ModelGroup | None:
        return self._store.get(uid)

    async def get_by_id(self, group_id: int) -> ModelGroup | None:
        return next((g for g in self._store.values() if g.id == group_id), None)

    async def list(self, offset: int = 0, limit: int = 0) -> list[ModelGroup]:
        groups = sorted(self._store.values(), key=lambda g: (g.sort_order, g.id))
        return _page(groups, offset, limit)

    async def update(self, group: ModelGroup) -> ModelGroup:
        existing = self._store[group.uid]
        stored = group.model_copy(
            update={"id": existing.id, "created_at": existing.created_at, "updated_at": _now()}
        )
        self._store[group.uid] = stored
        return stored

    async def delete(self, uid: str) -> None:
        self._store.pop(uid, None)


class InMemoryAttributeRepository(AttributeRepository):
    def __init__(self) -> None:
        self._store: dict[int, Attribute] = {}
        self._ids = itertools.count(1)

    def _matching(self, f: AttributeFilter) -> list[Attribute]:
        attrs = sorted(self._store.values(), key=lambda a: (a.model_uid, a.index, a.id))
        if f.model_uid:
            attrs = [a for a in attrs if a.model_uid == f.model_uid]
        if f.group_id:
            attrs = [a for a in attrs if a.group_id == f.group_id]
        if f.field_type:
            attrs = [a for a in attrs if a.field_type == f.field_type]
        if f.display is not None:
            attrs = [a for a in attrs if a.display == f.display]
        if f.required is not None:
            attrs = [a for a in attrs if a.required == f.required]
        if f.searchable is not None:
            attrs = [a for a in attrs if a.searchable == f.searchable]
        return attrs

    async def create(self, attr: Attribute) -> Attribute:
        if await self.exists(attr.model_uid, attr.field_uid):
            raise AlreadyExistsError(
                f"attribute '{attr.field_uid}' already exists on model '{attr.model_uid}'",
                code=ErrorCode.ATTRIBUTE_EXISTS,
            )
        stored = attr.model_copy(update={"id": next(self._ids)})
        self._store[stored.id] = stored
        return stored

    async def get_by_id(self, attr_id: int) -> Attribute | None:
        return self._store.get(attr_id)

    async def get_by_field_uid(self, model_uid: str, field_uid: str) -> Attribute | None:
        return next(
            (
                a
                for a in self._store.values()
                if a.model_uid == model_uid and a.field_uid == field_uid
            ),
            None,
        )

    async def list(self, filter: AttributeFilter) -> list[Attribute]:
        return _page(self._matching(filter), filter.offset, filter.limit)

    async def count(self, filter: AttributeFilter) -> int:
        return len(self._matching(filter))

    async def update(self, attr: Attribute) -> Attribute:
        existing = self._store[attr.id]
        stored = attr.model_copy(update={"created_at": existing.created_at, "updated_at": _now()})
        self._store[attr.id] = stored
        return stored

    async def delete(self, attr_id: int) -> None:
        self._store.pop(attr_id, None)

    async def exists(self, model_uid: str, field_uid: str) -> bool:
        return await self.get_by_field_uid(model_uid, field_uid) is not None


class InMemoryAttributeGroupRepository(AttributeGroupRepository):
    def __init__(self) -> None:
        self._store: dict[int, AttributeGroup] = {}
        self._ids = itertools.count(1)

    async def create(self, group: AttributeGroup) -> AttributeGroup:
        if await self.get_by_uid(group.model_uid, group.uid) is not None:
            raise AlreadyExistsError(
                f"attribute group '{group.uid}' already exists on model '{group.model_uid}'",
                code=ErrorCode.ATTRIBUTE_EXISTS,
            )
        stored = group.model_copy(update={"id": next(self._ids)})
        self._store[stored.id] = stored
        return stored

    async def get_by_id(self, group_id: int) -> AttributeGroup | None:
        return self._store.get(group_id)

    async def get_by_uid(self, model_uid: str, uid: str) -> AttributeGroup | None:
        return next(
            (g for g in self._store.values() if g.model_uid == model_uid and g.uid == uid),
            None,
        )

    async def list(self, model_uid: str) -> list[AttributeGroup]:
        groups = [g for g in self._store.values() if g.model_uid == model_uid]
        return sorted(groups, key=lambda g: (g.index, g.id))

    async def update(self, group: AttributeGroup) -> AttributeGroup:
        existing = self._store[group.id]
        stored = group.model_copy(update={"created_at": existing.created_at, "updated_at": _now()})
        self._store[group.id] = stored
        return stored

    async def upsert(self, group: AttributeGroup) -> AttributeGroup:
        existing = await self.get_by_uid(group.model_uid, group.uid)
        if existing is None:
            return await self.create(group)
        return await self.update(group.model_copy(update={"id": existing.id}))

    async def delete(self, group_id: int) -> None:
        self._store.pop(group_id, None)


class InMemoryInstanceRepository(InstanceRepository):
    """Instances keyed by id, with a secondary index on the natural key."""

    def __init__(self) -> None:
        self._store: dict[int, Instance] = {}
        self._by_key: dict[tuple[str, str, str], int] = {}
        self._ids = itertools.count(1)

    @staticmethod
    def _key(instance: Instance) -> tuple[str, str, str]:
        return (instance.tenant_id, instance.model_uid, instance.asset_id)

    def _matching(self, f: InstanceFilter) -> list[Instance]:
        items = sorted(self._store.values(), key=lambda i: i.id)
        if f.tenant_id:
            items = [i for i in items if i.tenant_id == f.tenant_id]
        if f.model_uid:
            items = [i for i in items if i.model_uid == f.model_uid]
        if f.account_id:
            items = [i for i in items if i.account_id == f.account_id]
        if f.asset_id:
            items = [i for i in items if i.asset_id == f.asset_id]
        if f.asset_name:
            items = [i for i in items if f.asset_name in i.asset_name]
        for key, value in f.attributes.items():
            items = [i for i in items if i.attributes.get(key) == value]
        return items

    async def create(self, instance: Instance) -> Instance:
        key = self._key(instance)
        if key in self._by_key:
            raise AlreadyExistsError(
                f"instance {key} already exists", code=ErrorCode.INSTANCE_EXISTS
            )
        stored = instance.model_copy(update={"id": next(self._ids)})
        self._store[stored.id] = stored
        self._by_key[key] = stored.id
        return stored

    async def get_by_id(self, instance_id: int) -> Instance | None:
        return self._store.get(instance_id)

    async def get_by_asset_id(
        self, tenant_id: str, model_uid: str, asset_id: str
    ) -> Instance | None:
        instance_id = self._by_key.get((tenant_id, model_uid, asset_id))
        return self._store.get(instance_id) if instance_id is not None else None

    async def list(self, filter: InstanceFilter) -> list[Instance]:
        return _page(self._matching(filter), filter.offset, filter.limit)

    async def count(self, filter: InstanceFilter) -> int:
        return len(self._matching(filter))

    async def upsert(self, instance: Instance) -> Instance:
        key = self._key(instance)
        existing_id = self._by_key.get(key)
        if existing_id is None:
            return await self.create(instance)
        existing = self._store[existing_id]
        stored = instance.model_copy(
            update={"id": existing_id, "created_at": existing.created_at, "updated_at": _now()}
        )
        self._store[existing_id] = stored
        return stored

    async def delete(self, instance_id: int) -> None:
        instance = self._store.pop(instance_id, None)
        if instance is not None:
            self._by_key.pop(self._key(instance), None)


class InMemoryModelRelationTypeRepository(ModelRelationTypeRepository):
    def __init__(self) -> None:
        self._store: dict[str, ModelRelationType] = {}
        self._ids = itertools.count(1)

    def _matching(self, f: ModelRelationTypeFilter) -> list[ModelRelationType]:
        rels = sorted(self._store.values(), key=lambda r: r.id)
        if f.source_model_uid:
            rels = [r for r in rels if r.source_model_uid == f.source_model_uid]
        if f.target_model_uid:
            rels = [r for r in rels if r.target_model_uid == f.target_model_uid]
        if f.relation_type:
            rels = [r for r in rels if r.relation_type == f.relation_type]
        return rels

    async def create(self, rel: ModelRelationType) -> ModelRelationType:
        if rel.uid in self._store:
            raise AlreadyExistsError(
                f"relation type '{rel.uid}' already exists", code=ErrorCode.RELATION_TYPE_EXISTS
            )
        stored = rel.model_copy(update={"id": next(self._ids)})
        self._store[stored.uid] = stored
        return stored

    async def get_by_uid(self, uid: str) -> ModelRelationType | None:
        return self._store.get(uid)

    async def list(self, filter: ModelRelationTypeFilter) -> list[ModelRelationType]:
        return _page(self._matching(filter), filter.offset, filter.limit)

    async def count(self, filter: ModelRelationTypeFilter) -> int:
        return len(self._matching(filter))

    async def update(self, rel: ModelRelationType) -> ModelRelationType:
        existing = self._store[rel.uid]
        stored = rel.model_copy(
            update={"id": existing.id, "created_at": existing.created_at, "updated_at": _now()}
        )
        self._store[rel.uid] = stored
        return stored

    async def delete(self, uid: str) -> None:
        self._store.pop(uid, None)

    async def exists(self, uid: str) -> bool:
        return uid in self._store

    async def find_by_models(self, source_uid: str, target_uid: str) -> list[ModelRelationType]:
        return self._matching(
            ModelRelationTypeFilter(source_model_uid=source_uid, target_model_uid=target_uid)
        )


class InMemoryInstanceRelationRepository(InstanceRelationRepository):
    """Relations with a unique index on (source, target, relation type)."""

    def __init__(self) -> None:
        self._store: dict[int, InstanceRelation] = {}
        self._triples: dict[RelationTriple, int] = {}
        self._ids = itertools.count(1)

    def _matching(self, f: InstanceRelationFilter) -> list[InstanceRelation]:
        rels: Iterable[InstanceRelation] = self._store.values()
        if f.source_instance_id:
            rels = [r for r in rels if r.source_instance_id == f.source_instance_id]
        if f.target_instance_id:
            rels = [r for r in rels if r.target_instance_id == f.target_instance_id]
        if f.relation_type_uid:
            rels = [r for r in rels if r.relation_type_uid == f.relation_type_uid]
        if f.tenant_id:
            rels = [r for r in rels if r.tenant_id == f.tenant_id]
        return sorted(rels, key=lambda r: r.id)

    def _duplicate(self, triple: RelationTriple) -> AlreadyExistsError:
        return AlreadyExistsError(
            f"relation {triple.source_instance_id} -> {triple.target_instance_id} "
            f"({triple.relation_type_uid}) already exists",
            code=ErrorCode.RELATION_EXISTS,
        )

    def _insert(self, relation: InstanceRelation) -> InstanceRelation:
        stored = relation.model_copy(update={"id": next(self._ids)})
        self._store[stored.id] = stored
        self._triples[stored.triple] = stored.id
        return stored

    async def create(self, relation: InstanceRelation) -> InstanceRelation:
        if relation.triple in self._triples:
            raise self._duplicate(relation.triple)
        return self._insert(relation)

    async def create_batch(self, relations: list[InstanceRelation]) -> int:
        """Insert all relations or none of them."""
        seen: set[RelationTriple] = set()
        for relation in relations:
            triple = relation.triple
            if triple in self._triples or triple in seen:
                raise self._duplicate(triple)
            seen.add(triple)
        for relation in relations:
            self._insert(relation)
        return len(relations)

    async def get_by_id(self, relation_id: int) -> InstanceRelation | None:
        return self._store.get(relation_id)

    async def list(self, filter: InstanceRelationFilter) -> list[InstanceRelation]:
        return _page(self._matching(filter), filter.offset, filter.limit)

    async def count(self, filter: InstanceRelationFilter) -> int:
        return len(self._matching(filter))

    async def delete(self, relation_id: int) -> None:
        relation = self._store.pop(relation_id, None)
        if relation is not None:
            self._triples.pop(relation.triple, None)

    async def delete_by_instance_id(self, instance_id: int) -> int:
        doomed = [
            r.id
            for r in self._store.values()
            if instance_id in (r.source_instance_id, r.target_instance_id)
        ]
        for relation_id in doomed:
            await self.delete(relation_id)
        return len(doomed)

    async def exists(self, source_id: int, target_id: int, relation_type_uid: str) -> bool:
        triple = RelationTriple(
            source_instance_id=source_id,
            target_instance_id=target_id,
            relation_type_uid=relation_type_uid,
        )
        return triple in self._triples


class InMemoryNodeRepository(NodeRepository):
    def __init__(self) -> None:
        self._store: dict[int, ServiceTreeNode] = {}
        self._ids = itertools.count(1)

    async def create(self, node: ServiceTreeNode) -> ServiceTreeNode:
        node_id = node.id or next(self._ids)
        stored = node.model_copy(update={"id": node_id})
        self._store[node_id] = stored
        return stored

    async def get_by_id(self, node_id: int) -> ServiceTreeNode | None:
        return self._store.get(node_id)

    async def exists(self, node_id: int) -> bool:
        return node_id in self._store


class InMemoryRuleRepository(RuleRepository):
    def __init__(self) -> None:
        self._store: dict[int, BindingRule] = {}
        self._ids = itertools.count(1)

    def _matching(self, f: RuleFilter) -> list[BindingRule]:
        rules = sorted(self._store.values(), key=lambda r: r.id)
        if f.tenant_id:
            rules = [r for r in rules if r.tenant_id == f.tenant_id]
        if f.node_id:
            rules = [r for r in rules if r.node_id == f.node_id]
        if f.enabled is not None:
            rules = [r for r in rules if r.enabled == f.enabled]
        if f.name:
            rules = [r for r in rules if f.name in r.name]
        return rules

    async def create(self, rule: BindingRule) -> BindingRule:
        stored = rule.model_copy(update={"id": next(self._ids)})
        self._store[stored.id] = stored
        return stored

    async def get_by_id(self, rule_id: int) -> BindingRule | None:
        return self._store.get(rule_id)

    async def list(self, filter: RuleFilter) -> list[BindingRule]:
        return _page(self._matching(filter), filter.offset, filter.limit)

    async def count(self, filter: RuleFilter) -> int:
        return len(self._matching(filter))

    async def list_enabled(self, tenant_id: str) -> list[BindingRule]:
        rules = self._matching(RuleFilter(tenant_id=tenant_id, enabled=True))
        return sorted(rules, key=lambda r: (r.priority, r.id))

    async def update(self, rule: BindingRule) -> BindingRule:
        existing = self._store[rule.id]
        stored = rule.model_copy(update={"created_at": existing.created_at, "updated_at": _now()})
        self._store[rule.id] = stored
        return stored

    async def delete(self, rule_id: int) -> None:
        self._store.pop(rule_id, None)


class InMemoryBindingRepository(BindingRepository):
    """Bindings with a unique index on (tenant, resource type, resource, env)."""

    def __init__(self) -> None:
        self._store: dict[int, ResourceBinding] = {}
        self._ids = itertools.count(1)

    @staticmethod
    def _key(b: ResourceBinding) -> tuple[str, str, int, int]:
        return (b.tenant_id, b.resource_type.value, b.resource_id, b.env_id)

    def _matching(self, f: BindingFilter) -> list[ResourceBinding]:
        items = sorted(self._store.values(), key=lambda b: b.id)
        if f.tenant_id:
            items = [b for b in items if b.tenant_id == f.tenant_id]
        if f.node_id:
            items = [b for b in items if b.node_id == f.node_id]
        if f.env_id:
            items = [b for b in items if b.env_id == f.env_id]
        if f.resource_type:
            items = [b for b in items if b.resource_type == f.resource_type]
        if f.resource_id:
            items = [b for b in items if b.resource_id == f.resource_id]
        if f.bind_type:
            items = [b for b in items if b.bind_type == f.bind_type]
        if f.rule_id:
            items = [b for b in items if b.rule_id == f.rule_id]
        return items

    def _duplicate(self, b: ResourceBinding) -> AlreadyExistsError:
        return AlreadyExistsError(
            f"{b.resource_type.value} {b.resource_id} is already bound in env {b.env_id}",
            code=ErrorCode.BINDING_EXISTS,
        )

    def _insert(self, binding: ResourceBinding) -> ResourceBinding:
        stored = binding.model_copy(update={"id": next(self._ids)})
        self._store[stored.id] = stored
        return stored

    async def create(self, binding: ResourceBinding) -> ResourceBinding:
        keys = {self._key(b) for b in self._store.values()}
        if self._key(binding) in keys:
            raise self._duplicate(binding)
        return self._insert(binding)

    async def create_batch(self, bindings: list[ResourceBinding]) -> int:
        """Insert all bindings or none of them."""
        keys = {self._key(b) for b in self._store.values()}
        for binding in bindings:
            key = self._key(binding)
            if key in keys:
                raise self._duplicate(binding)
            keys.add(key)
        for binding in bindings:
            self._insert(binding)
        return len(bindings)

    async def get_by_id(self, binding_id: int) -> ResourceBinding | None:
        return self._store.get(binding_id)

    async def get_by_resource(
        self, tenant_id: str, resource_type: str, resource_id: int, env_id: int = 0
    ) -> ResourceBinding | None:
        return next(
            (
                b
                for b in self._store.values()
                if self._key(b) == (tenant_id, resource_type, resource_id, env_id)
            ),
            None,
        )

    async def list(self, filter: BindingFilter) -> list[ResourceBinding]:
        return _page(self._matching(filter), filter.offset, filter.limit)

    async def count(self, filter: BindingFilter) -> int:
        return len(self._matching(filter))

    async def delete(self, binding_id: int) -> None:
        self._store.pop(binding_id, None)

    async def delete_by_rule_id(self, rule_id: int) -> int:
        doomed = [b.id for b in self._store.values() if b.rule_id == rule_id]
        for binding_id in doomed:
            del self._store[binding_id]
        return len(doomed)

    async def delete_by_resource(
        self, tenant_id: str, resource_type: str, resource_id: int
    ) -> int:
        doomed = [
            b.id
            for b in self._store.values()
            if b.tenant_id == tenant_id
            and b.resource_type == resource_type
            and b.resource_id == resource_id
        ]
        for binding_id in doomed:
            del self._store[binding_id]
        return len(doomed)
