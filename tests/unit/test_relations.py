"""Unit tests for instance relations and attribute-driven reconciliation."""

from __future__ import annotations

import pytest

from cloudcmdb.models.errors import AlreadyExistsError, ErrorCode, InvalidError, NotFoundError
from cloudcmdb.models.instance import Instance, InstanceFilter
from cloudcmdb.models.relation import InstanceRelation, InstanceRelationFilter
from cloudcmdb.service.cmdb import CMDB, Repositories
from cloudcmdb.service.relations import BUILTIN_RECONCILE_SPECS, ReconcileSpec
from cloudcmdb.settings import Settings
from cloudcmdb.storage.memory_repo import (
    InMemoryInstanceRelationRepository,
    InMemoryInstanceRepository,
)
from tests.conftest import TENANT, add_vm, add_vpc, link, seed_models

VM_TO_VPC = ReconcileSpec("ecs_belongs_to_vpc", "cloud_vm", "cloud_vpc", "vpc_id", "vpc_id")


class TestCreate:
    async def test_duplicate_edge(self, seeded_cmdb: CMDB) -> None:
        a = await add_vm(seeded_cmdb, "i-a")
        b = await add_vm(seeded_cmdb, "i-b")
        await link(seeded_cmdb, a, b)
        with pytest.raises(AlreadyExistsError) as exc:
            await link(seeded_cmdb, a, b)
        assert exc.value.code == ErrorCode.RELATION_EXISTS
        items, total = await seeded_cmdb.relations.list(
            InstanceRelationFilter(source_instance_id=a.id)
        )
        assert total == 1
        assert len(items) == 1

    async def test_reverse_edge_is_distinct(self, seeded_cmdb: CMDB) -> None:
        a = await add_vm(seeded_cmdb, "i-a")
        b = await add_vm(seeded_cmdb, "i-b")
        await link(seeded_cmdb, a, b)
        await link(seeded_cmdb, b, a)
        assert await seeded_cmdb.relations.exists(b.id, a.id, "vm_depends_on_vm")

    async def test_missing_fields(self, seeded_cmdb: CMDB) -> None:
        with pytest.raises(InvalidError):
            await seeded_cmdb.relations.create(
                InstanceRelation(source_instance_id=1, target_instance_id=0, relation_type_uid="r")
            )

    async def test_batch(self, seeded_cmdb: CMDB) -> None:
        a = await add_vm(seeded_cmdb, "i-a")
        b = await add_vm(seeded_cmdb, "i-b")
        c = await add_vm(seeded_cmdb, "i-c")
        batch = [
            InstanceRelation(
                source_instance_id=a.id,
                target_instance_id=target.id,
                relation_type_uid="vm_depends_on_vm",
                tenant_id=TENANT,
            )
            for target in (b, c)
        ]
        assert await seeded_cmdb.relations.create_batch(batch) == 2
        assert await seeded_cmdb.relations.create_batch([]) == 0

    async def test_get_and_delete(self, seeded_cmdb: CMDB) -> None:
        a = await add_vm(seeded_cmdb, "i-a")
        b = await add_vm(seeded_cmdb, "i-b")
        rel = await link(seeded_cmdb, a, b)
        assert (await seeded_cmdb.relations.get_by_id(rel.id)).triple == rel.triple
        await seeded_cmdb.relations.delete(rel.id)
        with pytest.raises(NotFoundError) as exc:
            await seeded_cmdb.relations.get_by_id(rel.id)
        assert exc.value.code == ErrorCode.RELATION_NOT_FOUND


class TestReconcile:
    async def test_vm_to_vpc(self, seeded_cmdb: CMDB) -> None:
        vpc = await add_vpc(seeded_cmdb, "vpc-1")
        vm = await add_vm(seeded_cmdb, "i-1", vpc_id="vpc-1")

        first = await seeded_cmdb.relations.reconcile(TENANT, VM_TO_VPC)
        assert (first.created, first.skipped, first.failed) == (1, 0, 0)
        assert await seeded_cmdb.relations.exists(vm.id, vpc.id, "ecs_belongs_to_vpc")

        second = await seeded_cmdb.relations.reconcile(TENANT, VM_TO_VPC)
        assert (second.created, second.skipped, second.failed) == (0, 1, 0)

    async def test_unknown_target_is_skipped(self, seeded_cmdb: CMDB) -> None:
        await add_vm(seeded_cmdb, "i-1", vpc_id="vpc-missing")
        result = await seeded_cmdb.relations.reconcile(TENANT, VM_TO_VPC)
        assert (result.created, result.skipped) == (0, 1)

    async def test_empty_or_non_string_key_is_ignored(self, seeded_cmdb: CMDB) -> None:
        await add_vpc(seeded_cmdb, "vpc-1")
        await add_vm(seeded_cmdb, "i-1", vpc_id="")
        await add_vm(seeded_cmdb, "i-2", vpc_id=42)
        await add_vm(seeded_cmdb, "i-3")
        result = await seeded_cmdb.relations.reconcile(TENANT, VM_TO_VPC)
        assert (result.created, result.skipped, result.failed) == (0, 0, 0)

    async def test_other_tenant_not_linked(self, seeded_cmdb: CMDB) -> None:
        await add_vpc(seeded_cmdb, "vpc-1", tenant_id="t-other")
        await add_vm(seeded_cmdb, "i-1", vpc_id="vpc-1")
        result = await seeded_cmdb.relations.reconcile(TENANT, VM_TO_VPC)
        assert result.created == 0
        assert result.skipped == 1

    def test_eip_filter_keeps_vm_bindings_only(self) -> None:
        spec = next(s for s in BUILTIN_RECONCILE_SPECS if s.relation_type_uid == "eip_bindto_ecs")
        assert spec.source_filter is not None
        vm_eip = Instance(
            tenant_id=TENANT,
            model_uid="cloud_eip",
            asset_id="eip-1",
            attributes={"instance_id": "i-1", "instance_type": "EcsInstance"},
        )
        nat_eip = vm_eip.model_copy(
            update={"attributes": {"instance_id": "nat-1", "instance_type": "Nat"}}
        )
        assert spec.source_filter(vm_eip)
        assert not spec.source_filter(nat_eip)

    async def test_requires_tenant(self, seeded_cmdb: CMDB) -> None:
        with pytest.raises(InvalidError):
            await seeded_cmdb.relations.reconcile("", VM_TO_VPC)


class TestSyncRelations:
    async def test_totals_per_relation_type(self, seeded_cmdb: CMDB) -> None:
        await add_vpc(seeded_cmdb, "vpc-1")
        await add_vm(seeded_cmdb, "i-1", vpc_id="vpc-1")
        await add_vm(seeded_cmdb, "i-2", vpc_id="vpc-1")
        result = await seeded_cmdb.relations.sync_relations(TENANT)
        assert result.created == 2
        assert result.by_relation_type["ecs_belongs_to_vpc"] == 2
        assert result.by_relation_type["redis_belongs_to_vpc"] == 0
        assert set(result.by_relation_type) == {s.relation_type_uid for s in BUILTIN_RECONCILE_SPECS}
        assert result.duration_ms >= 0

        again = await seeded_cmdb.relations.sync_relations(TENANT)
        assert again.created == 0
        assert again.skipped == 2


class FailingRelationRepository(InMemoryInstanceRelationRepository):
    """Raises a driver-level error when linking the given source instances."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_sources: set[int] = set()

    async def create(self, relation: InstanceRelation) -> InstanceRelation:
        if relation.source_instance_id in self.fail_sources:
            raise ConnectionError("connection reset")
        return await super().create(relation)


class FailingInstanceRepository(InMemoryInstanceRepository):
    """Fails every listing of one model."""

    def __init__(self, failing_model_uid: str) -> None:
        super().__init__()
        self.failing_model_uid = failing_model_uid

    async def list(self, filter: InstanceFilter) -> list[Instance]:
        if filter.model_uid == self.failing_model_uid:
            raise ConnectionError("connection reset")
        return await super().list(filter)


class TestReconcileFailures:
    async def test_failed_insert_is_counted_and_run_continues(self, settings: Settings) -> None:
        relations = FailingRelationRepository()
        cmdb = await seed_models(CMDB(settings, Repositories(relations=relations)))
        vpc = await add_vpc(cmdb, "vpc-1")
        vms = [await add_vm(cmdb, f"i-{i}", vpc_id="vpc-1") for i in range(3)]
        relations.fail_sources.add(vms[0].id)

        result = await cmdb.relations.reconcile(TENANT, VM_TO_VPC)

        assert (result.created, result.skipped, result.failed) == (2, 0, 1)
        assert not await cmdb.relations.exists(vms[0].id, vpc.id, "ecs_belongs_to_vpc")
        for vm in vms[1:]:
            assert await cmdb.relations.exists(vm.id, vpc.id, "ecs_belongs_to_vpc")

    async def test_failed_listing_leaves_other_relation_types(self, settings: Settings) -> None:
        instances = FailingInstanceRepository("cloud_eip")
        cmdb = await seed_models(CMDB(settings, Repositories(instances=instances)))
        await add_vpc(cmdb, "vpc-1")
        await add_vm(cmdb, "i-1", vpc_id="vpc-1")

        result = await cmdb.relations.sync_relations(TENANT)

        assert (result.created, result.failed) == (1, 0)
        assert result.by_relation_type["ecs_belongs_to_vpc"] == 1
        assert "eip_bindto_ecs" not in result.by_relation_type
        assert "rds_belongs_to_vpc" in result.by_relation_type
