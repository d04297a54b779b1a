"""CMDB facade: wires repositories and services, loads the model catalog.

Models, model groups and relation types are global; instances, relations,
rules and bindings are scoped by tenant.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from cloudcmdb.catalog.loader import Catalog, CatalogError, load_catalog
from cloudcmdb.models.errors import ErrorCode, NotFoundError
from cloudcmdb.models.instance import Instance, InstanceFilter
from cloudcmdb.models.relation import ModelRelationTypeFilter
from cloudcmdb.models.schema import Attribute, Model, ModelFilter
from cloudcmdb.models.servicetree import ResourceType, ServiceTreeNode
from cloudcmdb.service.binding import BindingService
from cloudcmdb.service.model_graph import ModelGraph
from cloudcmdb.service.relation_types import RelationTypeService
from cloudcmdb.service.relations import RelationService
from cloudcmdb.service.rule_engine import RuleEngineService
from cloudcmdb.service.schema_registry import AttributeService, ModelGroupService, ModelService
from cloudcmdb.service.topology import TopologyService
from cloudcmdb.settings import Settings
from cloudcmdb.storage.memory_repo import (
    InMemoryAttributeGroupRepository,
    InMemoryAttributeRepository,
    InMemoryBindingRepository,
    InMemoryInstanceRelationRepository,
    InMemoryInstanceRepository,
    InMemoryModelGroupRepository,
    InMemoryModelRelationTypeRepository,
    InMemoryModelRepository,
    InMemoryNodeRepository,
    InMemoryRuleRepository,
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

logger = logging.getLogger(__name__)


@dataclass
class Repositories:
    """One store per entity.  Defaults to the in-memory implementations."""

    models: ModelRepository = field(default_factory=InMemoryModelRepository)
    model_groups: ModelGroupRepository = field(default_factory=InMemoryModelGroupRepository)
    attributes: AttributeRepository = field(default_factory=InMemoryAttributeRepository)
    attribute_groups: AttributeGroupRepository = field(
        default_factory=InMemoryAttributeGroupRepository
    )
    instances: InstanceRepository = field(default_factory=InMemoryInstanceRepository)
    relation_types: ModelRelationTypeRepository = field(
        default_factory=InMemoryModelRelationTypeRepository
    )
    relations: InstanceRelationRepository = field(
        default_factory=InMemoryInstanceRelationRepository
    )
    nodes: NodeRepository = field(default_factory=InMemoryNodeRepository)
    rules: RuleRepository = field(default_factory=InMemoryRuleRepository)
    bindings: BindingRepository = field(default_factory=InMemoryBindingRepository)


@dataclass
class CatalogSummary:
    model_groups: int = 0
    models: int = 0
    attributes: int = 0
    relation_types: int = 0


class CMDB:
    """Entry point for callers: the HTTP API, sync jobs and tests."""

    def __init__(self, settings: Settings | None = None, repos: Repositories | None = None) -> None:
        self.settings = settings or Settings()
        self.repos = repos or Repositories()
        r = self.repos
        self.models = ModelService(r.models, r.attributes, r.attribute_groups, r.model_groups)
        self.attributes = AttributeService(r.attributes, r.attribute_groups, r.models)
        self.model_groups = ModelGroupService(r.model_groups, r.models)
        self.relation_types = RelationTypeService(r.relation_types, r.models)
        self.relations = RelationService(r.relations, r.instances)
        self.topology = TopologyService(
            r.instances,
            r.relations,
            r.models,
            r.relation_types,
            max_nodes=self.settings.topology_max_nodes,
        )
        self.rules = RuleEngineService(r.rules, r.bindings, r.nodes, r.instances)
        self.bindings = BindingService(r.bindings, r.nodes)

    # -- catalog -----------------------------------------------------------------

    async def bootstrap(self) -> CatalogSummary:
        """Load the configured catalog.  Entries that already exist are kept as they are."""
        if self.settings.catalog_path is not None:
            catalog = load_catalog(self.settings.catalog_path)
        elif self.settings.load_builtin_catalog:
            catalog = load_catalog()
        else:
            return CatalogSummary()
        return await self.apply_catalog(catalog)

    async def apply_catalog(self, catalog: Catalog) -> CatalogSummary:
        r = self.repos
        summary = CatalogSummary()

        group_ids: dict[str, int] = {}
        for group in catalog.model_groups:
            existing = await r.model_groups.get_by_uid(group.uid)
            if existing is None:
                existing = await self.model_groups.create(group)
                summary.model_groups += 1
            group_ids[group.uid] = existing.id

        for entry in catalog.models:
            if await r.models.exists(entry.uid):
                continue
            model = Model.model_validate(entry.model_dump(exclude={"group"}))
            if entry.group:
                model = model.model_copy(update={"model_group_id": group_ids[entry.group]})
            await self.models.create(model)
            summary.models += 1

        for entry in catalog.attributes:
            if await r.attributes.exists(entry.model_uid, entry.field_uid):
                continue
            group = await r.attribute_groups.get_by_uid(entry.model_uid, entry.group)
            if group is None:
                raise CatalogError(
                    f"attribute '{entry.field_uid}' references unknown attribute group "
                    f"'{entry.group}' on model '{entry.model_uid}'"
                )
            attr = Attribute.model_validate(
                entry.model_dump(exclude={"group"}) | {"group_id": group.id}
            )
            await self.attributes.create_attribute(attr)
            summary.attributes += 1

        for rel in catalog.relation_types:
            if await r.relation_types.exists(rel.uid):
                continue
            await self.relation_types.create(rel)
            summary.relation_types += 1

        logger.info(
            "Catalog applied: %d model groups, %d models, %d attributes, %d relation types",
            summary.model_groups,
            summary.models,
            summary.attributes,
            summary.relation_types,
        )
        return summary

    async def model_graph(self) -> ModelGraph:
        models = await self.repos.models.list(ModelFilter())
        relation_types = await self.repos.relation_types.list(ModelRelationTypeFilter())
        return ModelGraph(models, relation_types)

    # -- instances ---------------------------------------------------------------

    async def upsert_instance(self, instance: Instance) -> Instance:
        """Insert or replace by (tenant, model, asset id); the id is kept on replace."""
        instance.validate_fields()
        if not await self.repos.models.exists(instance.model_uid):
            raise NotFoundError(f"model '{instance.model_uid}' not found")
        return await self.repos.instances.upsert(instance)

    async def get_instance(self, instance_id: int) -> Instance:
        instance = await self.repos.instances.get_by_id(instance_id)
        if instance is None:
            raise NotFoundError(
                f"instance {instance_id} not found", code=ErrorCode.INSTANCE_NOT_FOUND
            )
        return instance

    async def list_instances(self, filter: InstanceFilter) -> tuple[list[Instance], int]:
        items = await self.repos.instances.list(filter)
        total = await self.repos.instances.count(filter)
        return items, total

    async def delete_instance(self, instance_id: int) -> None:
        """Delete an instance with its relations and bindings."""
        instance = await self.get_instance(instance_id)
        await self.relations.delete_by_instance_id(instance_id)
        await self.bindings.unbind_everywhere(
            instance.tenant_id, instance_id, ResourceType.INSTANCE
        )
        await self.repos.instances.delete(instance_id)

    # -- service tree ------------------------------------------------------------

    async def add_node(self, node: ServiceTreeNode) -> ServiceTreeNode:
        """Register a service tree node owned by the external service tree."""
        return await self.repos.nodes.create(node)
