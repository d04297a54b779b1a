"""Unit tests for models, attributes, attribute groups and model groups."""

from __future__ import annotations

import pytest

from cloudcmdb.models.errors import (
    AlreadyExistsError,
    ErrorCode,
    InvalidError,
    NotFoundError,
)
from cloudcmdb.models.schema import (
    Attribute,
    AttributeFilter,
    AttributeGroup,
    BuiltinAttributeGroup,
    Model,
    ModelFilter,
    ModelGroup,
)
from cloudcmdb.service.cmdb import CMDB
from cloudcmdb.service.schema_registry import AttributeService


def _vm() -> Model:
    return Model(uid="cloud_vm", name="Virtual machine", category="compute")


class TestModelService:
    async def test_create_seeds_builtin_groups(self, cmdb: CMDB) -> None:
        created = await cmdb.models.create(_vm())
        assert created.id > 0
        groups = await cmdb.attributes.list_attribute_groups("cloud_vm")
        assert {g.uid for g in groups} == {g.value for g in BuiltinAttributeGroup}

    async def test_duplicate_uid(self, cmdb: CMDB) -> None:
        await cmdb.models.create(_vm())
        with pytest.raises(AlreadyExistsError):
            await cmdb.models.create(_vm())

    async def test_invalid_model_leaves_no_state(self, cmdb: CMDB) -> None:
        with pytest.raises(InvalidError):
            await cmdb.models.create(Model(uid="x", name="", category="c"))
        _, total = await cmdb.models.list(ModelFilter())
        assert total == 0

    async def test_unknown_parent(self, cmdb: CMDB) -> None:
        child = Model(uid="aws_ec2", name="EC2", category="compute", parent_uid="cloud_vm")
        with pytest.raises(NotFoundError):
            await cmdb.models.create(child)

    async def test_unknown_model_group(self, cmdb: CMDB) -> None:
        model = Model(uid="cloud_vm", name="VM", category="compute", model_group_id=42)
        with pytest.raises(NotFoundError) as exc:
            await cmdb.models.create(model)
        assert exc.value.code == ErrorCode.MODEL_GROUP_NOT_FOUND

    async def test_get_missing(self, cmdb: CMDB) -> None:
        with pytest.raises(NotFoundError):
            await cmdb.models.get_by_uid("nope")

    async def test_list_filters(self, cmdb: CMDB) -> None:
        await cmdb.models.create(_vm())
        await cmdb.models.create(
            Model(
                uid="aws_ec2",
                name="EC2",
                category="compute",
                parent_uid="cloud_vm",
                level=2,
                provider="aws",
            )
        )
        items, total = await cmdb.models.list(ModelFilter(provider="aws"))
        assert total == 1
        assert items[0].uid == "aws_ec2"
        children, _ = await cmdb.models.list(ModelFilter(parent_uid="cloud_vm"))
        assert [m.uid for m in children] == ["aws_ec2"]

    async def test_update_keeps_uid(self, cmdb: CMDB) -> None:
        created = await cmdb.models.create(_vm())
        body = Model(uid="renamed", name="VM v2", category="compute", icon="server")
        updated = await cmdb.models.update("cloud_vm", body)
        assert updated.uid == "cloud_vm"
        assert updated.id == created.id
        assert updated.name == "VM v2"

    async def test_delete_with_children_rejected(self, cmdb: CMDB) -> None:
        await cmdb.models.create(_vm())
        await cmdb.models.create(
            Model(uid="aws_ec2", name="EC2", category="compute", parent_uid="cloud_vm", level=2)
        )
        with pytest.raises(InvalidError, match="child models"):
            await cmdb.models.delete("cloud_vm")

    async def test_delete_cascades_attributes_and_groups(self, cmdb: CMDB) -> None:
        await cmdb.models.create(_vm())
        await cmdb.attributes.create_attribute(
            Attribute(field_uid="region", field_name="Region", model_uid="cloud_vm")
        )
        await cmdb.models.delete("cloud_vm")
        _, total = await cmdb.attributes.list_attributes(AttributeFilter(model_uid="cloud_vm"))
        assert total == 0
        assert await cmdb.attributes.list_attribute_groups("cloud_vm") == []

    async def test_detail(self, cmdb: CMDB) -> None:
        await cmdb.models.create(_vm())
        await cmdb.attributes.create_attribute(
            Attribute(field_uid="region", field_name="Region", model_uid="cloud_vm")
        )
        detail = await cmdb.models.get_detail("cloud_vm")
        assert detail.model.uid == "cloud_vm"
        custom = next(g for g in detail.groups if g.group.uid == "custom")
        assert [a.field_uid for a in custom.attributes] == ["region"]


class TestAttributeService:
    async def test_defaults_to_custom_group(self, cmdb: CMDB) -> None:
        await cmdb.models.create(_vm())
        attr = await cmdb.attributes.create_attribute(
            Attribute(field_uid="region", field_name="Region", model_uid="cloud_vm")
        )
        custom = await cmdb.repos.attribute_groups.get_by_uid("cloud_vm", "custom")
        assert custom is not None
        assert attr.group_id == custom.id

    async def test_unknown_model(self, cmdb: CMDB) -> None:
        with pytest.raises(NotFoundError):
            await cmdb.attributes.create_attribute(
                Attribute(field_uid="region", field_name="Region", model_uid="nope")
            )

    async def test_duplicate_field(self, cmdb: CMDB) -> None:
        await cmdb.models.create(_vm())
        attr = Attribute(field_uid="region", field_name="Region", model_uid="cloud_vm")
        await cmdb.attributes.create_attribute(attr)
        with pytest.raises(AlreadyExistsError) as exc:
            await cmdb.attributes.create_attribute(attr)
        assert exc.value.code == ErrorCode.ATTRIBUTE_EXISTS

    async def test_unknown_group_id(self, cmdb: CMDB) -> None:
        await cmdb.models.create(_vm())
        with pytest.raises(NotFoundError):
            await cmdb.attributes.create_attribute(
                Attribute(field_uid="region", field_name="R", model_uid="cloud_vm", group_id=999)
            )

    async def test_update_keeps_identity(self, cmdb: CMDB) -> None:
        await cmdb.models.create(_vm())
        attr = await cmdb.attributes.create_attribute(
            Attribute(field_uid="region", field_name="Region", model_uid="cloud_vm")
        )
        body = Attribute(field_uid="zone", field_name="Region name", model_uid="other")
        updated = await cmdb.attributes.update_attribute(attr.id, body)
        assert updated.field_uid == "region"
        assert updated.model_uid == "cloud_vm"
        assert updated.field_name == "Region name"
        assert updated.group_id == attr.group_id

    async def test_delete_builtin_group_rejected(self, cmdb: CMDB) -> None:
        await cmdb.models.create(_vm())
        basic = await cmdb.repos.attribute_groups.get_by_uid("cloud_vm", "basic")
        assert basic is not None
        with pytest.raises(InvalidError) as exc:
            await cmdb.attributes.delete_attribute_group(basic.id)
        assert exc.value.code == ErrorCode.CANNOT_DELETE_BUILTIN

    async def test_delete_group_with_attributes_rejected(self, cmdb: CMDB) -> None:
        await cmdb.models.create(_vm())
        group = await cmdb.attributes.create_attribute_group(
            AttributeGroup(uid="billing", name="Billing", model_uid="cloud_vm")
        )
        await cmdb.attributes.create_attribute(
            Attribute(
                field_uid="cost", field_name="Cost", model_uid="cloud_vm", group_id=group.id
            )
        )
        with pytest.raises(InvalidError, match="still holds attributes"):
            await cmdb.attributes.delete_attribute_group(group.id)

    async def test_custom_group_is_never_builtin(self, cmdb: CMDB) -> None:
        await cmdb.models.create(_vm())
        group = await cmdb.attributes.create_attribute_group(
            AttributeGroup(uid="billing", name="Billing", model_uid="cloud_vm", is_builtin=True)
        )
        assert not group.is_builtin
        await cmdb.attributes.delete_attribute_group(group.id)

    async def test_builtin_group_keeps_uid_on_update(self, cmdb: CMDB) -> None:
        await cmdb.models.create(_vm())
        basic = await cmdb.repos.attribute_groups.get_by_uid("cloud_vm", "basic")
        assert basic is not None
        body = AttributeGroup(uid="renamed", name="Essentials", model_uid="cloud_vm")
        updated = await cmdb.attributes.update_attribute_group(basic.id, body)
        assert updated.uid == "basic"
        assert updated.is_builtin
        assert updated.name == "Essentials"

    async def test_attributes_with_groups_seeds_missing_groups(self, cmdb: CMDB) -> None:
        await cmdb.repos.models.create(_vm())
        grouped = await cmdb.attributes.list_attributes_with_groups("cloud_vm")
        assert [g.group.uid for g in grouped][0] == "basic"

    def test_field_types(self) -> None:
        types = {t["value"]: t["label"] for t in AttributeService.field_types()}
        assert types["link"] == "Model link"
        assert len(types) == 11


class TestModelGroupService:
    async def test_create_and_get(self, cmdb: CMDB) -> None:
        created = await cmdb.model_groups.create(ModelGroup(uid="compute", name="Compute"))
        assert (await cmdb.model_groups.get("compute")).id == created.id

    async def test_duplicate(self, cmdb: CMDB) -> None:
        await cmdb.model_groups.create(ModelGroup(uid="compute", name="Compute"))
        with pytest.raises(AlreadyExistsError) as exc:
            await cmdb.model_groups.create(ModelGroup(uid="compute", name="Again"))
        assert exc.value.code == ErrorCode.MODEL_GROUP_EXISTS

    async def test_empty_name(self, cmdb: CMDB) -> None:
        with pytest.raises(InvalidError):
            await cmdb.model_groups.create(ModelGroup(uid="compute", name=""))

    async def test_delete_builtin_rejected(self, cmdb: CMDB) -> None:
        await cmdb.model_groups.create(ModelGroup(uid="compute", name="C", is_builtin=True))
        with pytest.raises(InvalidError) as exc:
            await cmdb.model_groups.delete("compute")
        assert exc.value.code == ErrorCode.CANNOT_DELETE_BUILTIN

    async def test_delete_with_models_rejected(self, cmdb: CMDB) -> None:
        group = await cmdb.model_groups.create(ModelGroup(uid="compute", name="Compute"))
        await cmdb.models.create(
            Model(uid="cloud_vm", name="VM", category="compute", model_group_id=group.id)
        )
        with pytest.raises(InvalidError) as exc:
            await cmdb.model_groups.delete("compute")
        assert exc.value.code == ErrorCode.GROUP_HAS_MODELS

    async def test_delete_empty_group(self, cmdb: CMDB) -> None:
        await cmdb.model_groups.create(ModelGroup(uid="misc", name="Misc"))
        await cmdb.model_groups.delete("misc")
        with pytest.raises(NotFoundError):
            await cmdb.model_groups.get("misc")

    async def test_list_with_models_by_provider(self, cmdb: CMDB) -> None:
        group = await cmdb.model_groups.create(ModelGroup(uid="compute", name="Compute"))
        for uid, provider in [("aws_ec2", "aws"), ("aliyun_ecs", "aliyun")]:
            await cmdb.models.create(
                Model(
                    uid=uid,
                    name=uid,
                    category="compute",
                    provider=provider,
                    model_group_id=group.id,
                )
            )
        [entry] = await cmdb.model_groups.list_with_models("aws")
        assert entry.group.uid == "compute"
        assert [m.uid for m in entry.models] == ["aws_ec2"]
