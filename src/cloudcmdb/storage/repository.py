"""Abstract repository interfaces for persistence.

Getters return ``None`` for a missing record; services turn that into a
:class:`~cloudcmdb.models.errors.NotFoundError`.  Stores enforce their own
uniqueness constraints and raise
:class:`~cloudcmdb.models.errors.AlreadyExistsError` on violation, even when
the calling service checked first.  Backend failures may surface as the
driver's own exceptions; batch operations such as relation reconciliation
count them per item instead of aborting.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from cloudcmdb.models.instance import Instance, InstanceFilter
from cloudcmdb.models.relation import (
    InstanceRelation,
    InstanceRelationFilter,
    ModelRelationType,
    ModelRelationTypeFilter,
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


class ModelRepository(ABC):
    @abstractmethod
    async def create(self, model: Model) -> Model: ...

    @abstractmethod
    async def get_by_uid(self, uid: str) -> Model | None: ...

    @abstractmethod
    async def get_by_id(self, model_id: int) -> Model | None: ...

    @abstractmethod
    async def list(self, filter: ModelFilter) -> list[Model]: ...

    @abstractmethod
    async def count(self, filter: ModelFilter) -> int: ...

    @abstractmethod
    async def update(self, model: Model) -> Model: ...

    @abstractmethod
    async def delete(self, uid: str) -> None: ...

    @abstractmethod
    async def exists(self, uid: str) -> bool: ...


class ModelGroupRepository(ABC):
    @abstractmethod
    async def create(self, group: ModelGroup) -> ModelGroup: ...

    @abstractmethod
    async def get_by_uid(self, uid: str) -> ModelGroup | None: ...

    @abstractmethod
    async def get_by_id(self, group_id: int) -> ModelGroup | None: ...

    @abstractmethod
    async def list(self, offset: int = 0, limit: int = 0) -> list[ModelGroup]: ...

    @abstractmethod
    async def update(self, group: ModelGroup) -> ModelGroup: ...

    @abstractmethod
    async def delete(self, uid: str) -> None: ...


class AttributeRepository(ABC):
    @abstractmethod
    async def create(self, attr: Attribute) -> Attribute: ...

    @abstractmethod
    async def get_by_id(self, attr_id: int) -> Attribute | None: ...

    @abstractmethod
    async def get_by_field_uid(self, model_uid: str, field_uid: str) -> Attribute | None: ...

    @abstractmethod
    async def list(self, filter: AttributeFilter) -> list[Attribute]: ...

    @abstractmethod
    async def count(self, filter: AttributeFilter) -> int: ...

    @abstractmethod
    async def update(self, attr: Attribute) -> Attribute: ...

    @abstractmethod
    async def delete(self, attr_id: int) -> None: ...

    @abstractmethod
    async def exists(self, model_uid: str, field_uid: str) -> bool: ...


class AttributeGroupRepository(ABC):
    @abstractmethod
    async def create(self, group: AttributeGroup) -> AttributeGroup: ...

    @abstractmethod
    async def get_by_id(self, group_id: int) -> AttributeGroup | None: ...

    @abstractmethod
    async def get_by_uid(self, model_uid: str, uid: str) -> AttributeGroup | None: ...

    @abstractmethod
    async def list(self, model_uid: str) -> list[AttributeGroup]: ...

    @abstractmethod
    async def update(self, group: AttributeGroup) -> AttributeGroup: ...

    @abstractmethod
    async def upsert(self, group: AttributeGroup) -> AttributeGroup: ...

    @abstractmethod
    async def delete(self, group_id: int) -> None: ...


class InstanceRepository(ABC):
    @abstractmethod
    async def create(self, instance: Instance) -> Instance: ...

    @abstractmethod
    async def get_by_id(self, instance_id: int) -> Instance | None: ...

    @abstractmethod
    async def get_by_asset_id(
        self, tenant_id: str, model_uid: str, asset_id: str
    ) -> Instance | None: ...

    @abstractmethod
    async def list(self, filter: InstanceFilter) -> list[Instance]: ...

    @abstractmethod
    async def count(self, filter: InstanceFilter) -> int: ...

    @abstractmethod
    async def upsert(self, instance: Instance) -> Instance: ...

    @abstractmethod
    async def delete(self, instance_id: int) -> None: ...


class ModelRelationTypeRepository(ABC):
    @abstractmethod
    async def create(self, rel: ModelRelationType) -> ModelRelationType: ...

    @abstractmethod
    async def get_by_uid(self, uid: str) -> ModelRelationType | None: ...

    @abstractmethod
    async def list(self, filter: ModelRelationTypeFilter) -> list[ModelRelationType]: ...

    @abstractmethod
    async def count(self, filter: ModelRelationTypeFilter) -> int: ...

    @abstractmethod
    async def update(self, rel: ModelRelationType) -> ModelRelationType: ...

    @abstractmethod
    async def delete(self, uid: str) -> None: ...

    @abstractmethod
    async def exists(self, uid: str) -> bool: ...

    @abstractmethod
    async def find_by_models(self, source_uid: str, target_uid: str) -> list[ModelRelationType]: ...


class InstanceRelationRepository(ABC):
    @abstractmethod
    async def create(self, relation: InstanceRelation) -> InstanceRelation: ...

    @abstractmethod
    async def create_batch(self, relations: list[InstanceRelation]) -> int: ...

    @abstractmethod
    async def get_by_id(self, relation_id: int) -> InstanceRelation | None: ...

    @abstractmethod
    async def list(self, filter: InstanceRelationFilter) -> list[InstanceRelation]: ...

    @abstractmethod
    async def count(self, filter: InstanceRelationFilter) -> int: ...

    @abstractmethod
    async def delete(self, relation_id: int) -> None: ...

    @abstractmethod
    async def delete_by_instance_id(self, instance_id: int) -> int: ...

    @abstractmethod
    async def exists(self, source_id: int, target_id: int, relation_type_uid: str) -> bool: ...


class NodeRepository(ABC):
    @abstractmethod
    async def create(self, node: ServiceTreeNode) -> ServiceTreeNode: ...

    @abstractmethod
    async def get_by_id(self, node_id: int) -> ServiceTreeNode | None: ...

    @abstractmethod
    async def exists(self, node_id: int) -> bool: ...


class RuleRepository(ABC):
    @abstractmethod
    async def create(self, rule: BindingRule) -> BindingRule: ...

    @abstractmethod
    async def get_by_id(self, rule_id: int) -> BindingRule | None: ...

    @abstractmethod
    async def list(self, filter: RuleFilter) -> list[BindingRule]: ...

    @abstractmethod
    async def count(self, filter: RuleFilter) -> int: ...

    @abstractmethod
    async def list_enabled(self, tenant_id: str) -> list[BindingRule]:
        """Enabled rules of a tenant, ordered by ascending priority then id."""

    @abstractmethod
    async def update(self, rule: BindingRule) -> BindingRule: ...

    @abstractmethod
    async def delete(self, rule_id: int) -> None: ...


class BindingRepository(ABC):
    @abstractmethod
    async def create(self, binding: ResourceBinding) -> ResourceBinding: ...

    @abstractmethod
    async def create_batch(self, bindings: list[ResourceBinding]) -> int: ...

    @abstractmethod
    async def get_by_id(self, binding_id: int) -> ResourceBinding | None: ...

    @abstractmethod
    async def get_by_resource(
        self, tenant_id: str, resource_type: str, resource_id: int, env_id: int = 0
    ) -> ResourceBinding | None: ...

    @abstractmethod
    async def list(self, filter: BindingFilter) -> list[ResourceBinding]: ...

    @abstractmethod
    async def count(self, filter: BindingFilter) -> int: ...

    @abstractmethod
    async def delete(self, binding_id: int) -> None: ...

    @abstractmethod
    async def delete_by_rule_id(self, rule_id: int) -> int: ...

    @abstractmethod
    async def delete_by_resource(
        self, tenant_id: str, resource_type: str, resource_id: int
    ) -> int: ...
