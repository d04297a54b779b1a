"""Shared test fixtures for the cloud CMDB."""

from __future__ import annotations

import pytest

from cloudcmdb.models.instance import Instance
from cloudcmdb.models.relation import InstanceRelation, ModelRelationType
from cloudcmdb.models.schema import Model
from cloudcmdb.models.servicetree import ServiceTreeNode
from cloudcmdb.service.cmdb import CMDB
from cloudcmdb.settings import Settings

TENANT = "t-100"

SAMPLE_CATALOG_YAML = """\
model_groups:
  - {uid: compute, name: Compute, sort_order: 1}
  - {uid: network, name: Network, sort_order: 2}

models:
  - {uid: cloud_vm, name: Virtual machine, group: compute, category: compute}
  - {uid: cloud_vpc, name: VPC, group: network, category: network}
  - uid: aliyun_ecs
    name: Aliyun ECS
    group: compute
    category: compute
    parent_uid: cloud_vm
    level: 2
    provider: aliyun

attributes:
  cloud_vm:
    - {field_uid: region, field_name: Region, group: basic, required: true}
    - {field_uid: vpc_id, field_name: VPC, field_type: link, link_model: cloud_vpc, group: network}
  cloud_vpc:
    - {field_uid: vpc_id, field_name: VPC ID}

relation_types:
  - uid: ecs_belongs_to_vpc
    name: VM belongs to VPC
    source_model_uid: cloud_vm
    target_model_uid: cloud_vpc
    relation_type: belongs_to
    direction: "N:N"
"""


@pytest.fixture
def settings() -> Settings:
    """Settings with the builtin catalog switched off."""
    return Settings(load_builtin_catalog=False)


@pytest.fixture
def cmdb(settings: Settings) -> CMDB:
    """An empty CMDB on in-memory stores."""
    return CMDB(settings)


@pytest.fixture
async def seeded_cmdb(cmdb: CMDB) -> CMDB:
    """CMDB with a VM and a VPC model and the relation types used in tests."""
    return await seed_models(cmdb)


async def seed_models(cmdb: CMDB) -> CMDB:
    await cmdb.models.create(Model(uid="cloud_vm", name="Virtual machine", category="compute"))
    await cmdb.models.create(Model(uid="cloud_vpc", name="VPC", category="network"))
    await cmdb.relation_types.create(
        ModelRelationType(
            uid="ecs_belongs_to_vpc",
            name="VM belongs to VPC",
            source_model_uid="cloud_vm",
            target_model_uid="cloud_vpc",
        )
    )
    await cmdb.relation_types.create(
        ModelRelationType(
            uid="vm_depends_on_vm",
            name="VM depends on VM",
            source_model_uid="cloud_vm",
            target_model_uid="cloud_vm",
            relation_type="depends_on",
        )
    )
    return cmdb


async def add_vm(cmdb: CMDB, asset_id: str, tenant_id: str = TENANT, **attributes) -> Instance:
    return await cmdb.upsert_instance(
        Instance(
            tenant_id=tenant_id,
            model_uid="cloud_vm",
            asset_id=asset_id,
            asset_name=asset_id,
            attributes=attributes,
        )
    )


async def add_vpc(cmdb: CMDB, vpc_id: str, tenant_id: str = TENANT) -> Instance:
    return await cmdb.upsert_instance(
        Instance(
            tenant_id=tenant_id,
            model_uid="cloud_vpc",
            asset_id=vpc_id,
            asset_name=vpc_id,
            attributes={"vpc_id": vpc_id},
        )
    )


async def link(
    cmdb: CMDB,
    source: Instance,
    target: Instance,
    relation_type_uid: str = "vm_depends_on_vm",
    tenant_id: str = TENANT,
) -> InstanceRelation:
    return await cmdb.relations.create(
        InstanceRelation(
            source_instance_id=source.id,
            target_instance_id=target.id,
            relation_type_uid=relation_type_uid,
            tenant_id=tenant_id,
        )
    )


async def add_node(cmdb: CMDB, name: str = "web", tenant_id: str = TENANT) -> ServiceTreeNode:
    return await cmdb.add_node(ServiceTreeNode(name=name, tenant_id=tenant_id))
