"""Unit tests for the binding rule engine."""

from __future__ import annotations

import pytest

from cloudcmdb.models.errors import ErrorCode, InvalidError, NotFoundError
from cloudcmdb.models.instance import Instance
from cloudcmdb.models.servicetree import (
    BindingFilter,
    BindingRule,
    BindType,
    ResourceBinding,
    RuleCondition,
    RuleFilter,
)
from cloudcmdb.service.cmdb import CMDB
from cloudcmdb.service.rule_engine import (
    MAX_PATTERN_LENGTH,
    compare_value,
    evaluate,
    explain,
    get_field_value,
    match_rule,
    plan_bindings,
)
from tests.conftest import TENANT, add_node, add_vm


def _instance(**attributes: object) -> Instance:
    return Instance(
        id=1,
        tenant_id=TENANT,
        model_uid="cloud_vm",
        asset_id="i-1",
        asset_name="web-prod-01",
        attributes=attributes,
    )


def _rule(rule_id: int, *conditions: tuple[str, str, str], **kwargs: object) -> BindingRule:
    return BindingRule(
        id=rule_id,
        node_id=kwargs.pop("node_id", 10),
        name=kwargs.pop("name", f"rule-{rule_id}"),
        tenant_id=TENANT,
        conditions=[RuleCondition(field=f, operator=op, value=v) for f, op, v in conditions],
        **kwargs,
    )


class TestFieldValue:
    def test_builtin_fields(self) -> None:
        inst = _instance()
        assert get_field_value(inst, "name") == "web-prod-01"
        assert get_field_value(inst, "asset_id") == "i-1"
        assert get_field_value(inst, "model_uid") == "cloud_vm"

    def test_attributes_rendered_as_text(self) -> None:
        inst = _instance(region="cn-hangzhou", cpu=4, public=True, disks=["a"])
        assert get_field_value(inst, "attributes.region") == "cn-hangzhou"
        assert get_field_value(inst, "attributes.cpu") == "4"
        assert get_field_value(inst, "attributes.public") == "true"
        assert get_field_value(inst, "attributes.disks") == ""
        assert get_field_value(inst, "attributes.missing") == ""

    def test_tags(self) -> None:
        inst = _instance(tags={"env": "prod", "tier": 2})
        assert get_field_value(inst, "tag.env") == "prod"
        assert get_field_value(inst, "tag.tier") == "2"
        assert get_field_value(inst, "tag.owner") == ""

    def test_unknown_path(self) -> None:
        assert get_field_value(_instance(), "status") == ""


class TestCompareValue:
    @pytest.mark.parametrize(
        ("actual", "operator", "expected", "result"),
        [
            ("a", "eq", "a", True),
            ("a", "ne", "a", False),
            ("web-prod-01", "contains", "prod", True),
            ("web-prod-01", "regex", r"^web-\w+-\d+$", True),
            ("web-prod-01", "regex", "prod", True),
            ("web", "regex", "[unclosed", False),
            ("b", "in", "a, b ,c", True),
            ("d", "in", "a,b,c", False),
            ("c", "not_in", "a,b", True),
            ("a", "not_in", "a,b", False),
            ("x", "exists", "", True),
            ("", "exists", "", False),
            ("a", "like", "a", False),
        ],
    )
    def test_operators(self, actual: str, operator: str, expected: str, result: bool) -> None:
        assert compare_value(actual, operator, expected) is result

    def test_overlong_pattern_never_matches(self) -> None:
        pattern = "a" * (MAX_PATTERN_LENGTH + 1)
        assert compare_value(pattern, "regex", pattern) is False
        assert compare_value("a" * MAX_PATTERN_LENGTH, "regex", "a" * MAX_PATTERN_LENGTH)


class TestMatching:
    def test_region_and_name(self) -> None:
        rule = _rule(
            1,
            ("attributes.region", "eq", "cn-hangzhou"),
            ("name", "contains", "prod"),
        )
        assert match_rule(_instance(region="cn-hangzhou"), rule)
        assert not match_rule(_instance(region="cn-beijing"), rule)

    def test_not_in(self) -> None:
        rule = _rule(1, ("attributes.env", "not_in", "dev,test"))
        assert match_rule(_instance(env="prod"), rule)
        assert not match_rule(_instance(env="test"), rule)

    def test_rule_without_conditions_never_matches(self) -> None:
        assert not match_rule(_instance(), _rule(1))

    def test_lowest_priority_wins(self) -> None:
        broad = _rule(1, ("name", "contains", "web"), priority=50, node_id=10)
        narrow = _rule(2, ("name", "contains", "prod"), priority=10, node_id=20)
        result = evaluate(_instance(), [broad, narrow])
        assert result.matched
        assert result.rule_id == 2
        assert result.node_id == 20

    def test_priority_tie_broken_by_id(self) -> None:
        first = _rule(1, ("name", "exists", ""), priority=10)
        second = _rule(2, ("name", "exists", ""), priority=10)
        assert evaluate(_instance(), [second, first]).rule_id == 1

    def test_disabled_rule_skipped(self) -> None:
        rule = _rule(1, ("name", "exists", ""), enabled=False)
        result = evaluate(_instance(), [rule])
        assert not result.matched
        assert result.reason == "no rule matched"

    def test_explain_names_failed_condition(self) -> None:
        rule = _rule(1, ("name", "contains", "web"), ("attributes.region", "eq", "us-east-1"))
        result = explain(_instance(region="cn-hangzhou"), rule)
        assert not result.matched
        assert "attributes.region" in result.reason


class TestPlanBindings:
    def test_first_match_per_instance(self) -> None:
        rules = [
            _rule(1, ("name", "exists", ""), priority=20, node_id=10),
            _rule(2, ("name", "exists", ""), priority=10, node_id=20),
        ]
        planned = plan_bindings(rules, [_instance()], [])
        assert [(p.rule_id, p.node_id) for p in planned] == [(2, 20)]
        binding = planned[0].to_binding(TENANT)
        assert binding.bind_type is BindType.RULE
        assert binding.rule_id == 2

    def test_already_bound_is_skipped(self) -> None:
        existing = [ResourceBinding(node_id=99, resource_id=1, tenant_id=TENANT)]
        rules = [_rule(1, ("name", "exists", ""))]
        assert plan_bindings(rules, [_instance()], existing) == []

    def test_other_environment_still_planned(self) -> None:
        existing = [ResourceBinding(node_id=99, resource_id=1, tenant_id=TENANT, env_id=0)]
        rules = [_rule(1, ("name", "exists", ""), env_id=2)]
        [plan] = plan_bindings(rules, [_instance()], existing)
        assert plan.env_id == 2


class TestRuleEngineService:
    async def test_create_requires_node(self, seeded_cmdb: CMDB) -> None:
        rule = BindingRule(
            node_id=404,
            name="r",
            tenant_id=TENANT,
            conditions=[RuleCondition(field="name", operator="exists")],
        )
        with pytest.raises(NotFoundError) as exc:
            await seeded_cmdb.rules.create_rule(rule)
        assert exc.value.code == ErrorCode.NODE_NOT_FOUND

    async def test_create_requires_conditions(self, seeded_cmdb: CMDB) -> None:
        node = await add_node(seeded_cmdb)
        with pytest.raises(InvalidError):
            await seeded_cmdb.rules.create_rule(
                BindingRule(node_id=node.id, name="r", tenant_id=TENANT)
            )

    async def test_execute_binds_matching_instances(self, seeded_cmdb: CMDB) -> None:
        node = await add_node(seeded_cmdb)
        hz = await add_vm(seeded_cmdb, "web-prod-01", region="cn-hangzhou")
        await add_vm(seeded_cmdb, "web-prod-02", region="cn-beijing")
        await seeded_cmdb.rules.create_rule(
            BindingRule(
                node_id=node.id,
                name="hangzhou prod",
                tenant_id=TENANT,
                conditions=[
                    RuleCondition(field="attributes.region", operator="eq", value="cn-hangzhou"),
                    RuleCondition(field="name", operator="contains", value="prod"),
                ],
            )
        )
        assert await seeded_cmdb.rules.execute_rules(TENANT) == 1
        bindings, _ = await seeded_cmdb.bindings.list_bindings(BindingFilter(tenant_id=TENANT))
        assert [(b.resource_id, b.node_id) for b in bindings] == [(hz.id, node.id)]
        assert await seeded_cmdb.rules.execute_rules(TENANT) == 0

    async def test_execute_without_rules(self, seeded_cmdb: CMDB) -> None:
        await add_vm(seeded_cmdb, "i-1")
        assert await seeded_cmdb.rules.execute_rules(TENANT) == 0

    async def test_delete_rule_cascades_bindings(self, seeded_cmdb: CMDB) -> None:
        node = await add_node(seeded_cmdb)
        for i in range(3):
            await add_vm(seeded_cmdb, f"i-{i}")
        rule = await seeded_cmdb.rules.create_rule(
            BindingRule(
                node_id=node.id,
                name="all",
                tenant_id=TENANT,
                conditions=[RuleCondition(field="model_uid", operator="eq", value="cloud_vm")],
            )
        )
        assert await seeded_cmdb.rules.execute_rules(TENANT) == 3
        assert await seeded_cmdb.rules.delete_rule(rule.id) == 3
        _, total = await seeded_cmdb.bindings.list_bindings(BindingFilter(rule_id=rule.id))
        assert total == 0
        with pytest.raises(NotFoundError):
            await seeded_cmdb.rules.get_rule(rule.id)

    async def test_update_keeps_tenant(self, seeded_cmdb: CMDB) -> None:
        node = await add_node(seeded_cmdb)
        rule = await seeded_cmdb.rules.create_rule(
            BindingRule(
                node_id=node.id,
                name="r",
                tenant_id=TENANT,
                conditions=[RuleCondition(field="name", operator="exists")],
            )
        )
        body = rule.model_copy(update={"tenant_id": "t-other", "priority": 5})
        updated = await seeded_cmdb.rules.update_rule(rule.id, body)
        assert updated.tenant_id == TENANT
        assert updated.priority == 5
        items, total = await seeded_cmdb.rules.list_rules(RuleFilter(tenant_id=TENANT))
        assert total == 1
        assert items[0].priority == 5

    async def test_preview(self, seeded_cmdb: CMDB) -> None:
        node = await add_node(seeded_cmdb)
        vm = await add_vm(seeded_cmdb, "web-prod-01")
        for priority, value in [(20, "prod"), (10, "dev")]:
            await seeded_cmdb.rules.create_rule(
                BindingRule(
                    node_id=node.id,
                    name=value,
                    tenant_id=TENANT,
                    priority=priority,
                    conditions=[RuleCondition(field="name", operator="contains", value=value)],
                )
            )
        results = await seeded_cmdb.rules.preview(TENANT, vm.id)
        assert [(r.reason.startswith("matched"), r.matched) for r in results] == [
            (False, False),
            (True, True),
        ]
        with pytest.raises(NotFoundError):
            await seeded_cmdb.rules.preview(TENANT, 999)
