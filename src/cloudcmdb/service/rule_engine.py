"""Attribute-matching rule engine.

Rules bind instances to service tree nodes.  The matching layer is a set of
pure functions over already-loaded rules, instances and bindings;
:class:`RuleEngineService` loads those from the repositories, calls into the
pure layer and persists the decisions.

Rules are always evaluated in ascending ``priority`` order (ties broken by
id), whatever order the store returns them in.  The first rule whose
conditions all hold wins.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from cloudcmdb.models.errors import AlreadyExistsError, ErrorCode, NotFoundError
from cloudcmdb.models.instance import Instance, InstanceFilter, render_scalar
from cloudcmdb.models.servicetree import (
    BindingFilter,
    BindingRule,
    BindType,
    ResourceBinding,
    ResourceType,
    RuleCondition,
    RuleFilter,
    RuleMatchResult,
    RuleOperator,
)
from cloudcmdb.storage.repository import (
    BindingRepository,
    InstanceRepository,
    NodeRepository,
    RuleRepository,
)

logger = logging.getLogger(__name__)

_ATTRIBUTE_PREFIX = "attributes."
_TAG_PREFIX = "tag."

# Longer regex patterns never match.
MAX_PATTERN_LENGTH = 256

# ---------------------------------------------------------------------------
# Field resolution and comparison
# ---------------------------------------------------------------------------


def get_field_value(instance: Instance, field: str) -> str:
    """Resolve *field* on *instance* to text.

    Supported paths are ``name``, ``asset_id``, ``model_uid``,
    ``attributes.<key>`` and ``tag.<key>`` (looked up in the map stored under
    ``attributes["tags"]``).  Scalars are rendered with
    :func:`~cloudcmdb.models.instance.render_scalar`; lists, maps, missing
    keys and unknown paths all give ``""``.
    """
    if field == "name":
        return instance.asset_name
    if field == "asset_id":
        return instance.asset_id
    if field == "model_uid":
        return instance.model_uid
    if field.startswith(_ATTRIBUTE_PREFIX):
        return instance.attribute_text(field[len(_ATTRIBUTE_PREFIX) :])
    if field.startswith(_TAG_PREFIX):
        return render_scalar(instance.tags.get(field[len(_TAG_PREFIX) :]))
    return ""


def _split_values(expected: str) -> list[str]:
    return [v.strip() for v in expected.split(",")]


def compare_value(actual: str, operator: str, expected: str) -> bool:
    """Apply *operator*.  Unknown operators and invalid patterns never match.

    ``regex`` uses :func:`re.search`, a backtracking engine: a pattern with
    nested quantifiers such as ``(a+)+$`` can take exponential time on a
    near-miss value.  Rule authors are trusted tenant operators; patterns
    longer than :data:`MAX_PATTERN_LENGTH` are rejected as non-matching.
    """
    match operator:
        case RuleOperator.EQ:
            return actual == expected
        case RuleOperator.NE:
            return actual != expected
        case RuleOperator.CONTAINS:
            return expected in actual
        case RuleOperator.REGEX:
            if len(expected) > MAX_PATTERN_LENGTH:
                return False
            try:
                return re.search(expected, actual) is not None
            except re.error:
                return False
        case RuleOperator.IN:
            return actual in _split_values(expected)
        case RuleOperator.NOT_IN:
            return actual not in _split_values(expected)
        case RuleOperator.EXISTS:
            return actual != ""
        case _:
            return False


def match_condition(instance: Instance, condition: RuleCondition) -> bool:
    return compare_value(
        get_field_value(instance, condition.field), condition.operator, condition.value
    )


def first_failed_condition(instance: Instance, rule: BindingRule) -> RuleCondition | None:
    for condition in rule.conditions:
        if not match_condition(instance, condition):
            return condition
    return None


def match_rule(instance: Instance, rule: BindingRule) -> bool:
    """True when every condition of *rule* holds.  A rule without conditions never matches."""
    return bool(rule.conditions) and first_failed_condition(instance, rule) is None


def sort_rules(rules: Iterable[BindingRule]) -> list[BindingRule]:
    return sorted(rules, key=lambda r: (r.priority, r.id))


def evaluate(instance: Instance, rules: Iterable[BindingRule]) -> RuleMatchResult:
    """Match *instance* against *rules* in priority order; the first full match wins."""
    for rule in sort_rules(rules):
        if rule.enabled and match_rule(instance, rule):
            return RuleMatchResult(
                rule_id=rule.id,
                node_id=rule.node_id,
                resource_id=instance.id,
                matched=True,
                reason=f"matched rule '{rule.name}'",
            )
    return RuleMatchResult(resource_id=instance.id, matched=False, reason="no rule matched")


def explain(instance: Instance, rule: BindingRule) -> RuleMatchResult:
    """Result of one rule against one instance, naming the failing condition."""
    failed = first_failed_condition(instance, rule)
    if rule.conditions and failed is None:
        reason = f"matched rule '{rule.name}'"
    elif failed is None:
        reason = f"rule '{rule.name}' has no conditions"
    else:
        reason = f"condition {failed.field} {failed.operator} '{failed.value}' failed"
    return RuleMatchResult(
        rule_id=rule.id,
        node_id=rule.node_id,
        resource_id=instance.id,
        matched=bool(rule.conditions) and failed is None,
        reason=reason,
    )


# ---------------------------------------------------------------------------
# Binding planner
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlannedBinding:
    """A decision to bind one instance to one node in one environment."""

    instance_id: int
    rule_id: int
    node_id: int
    env_id: int

    def to_binding(self, tenant_id: str) -> ResourceBinding:
        return ResourceBinding(
            node_id=self.node_id,
            env_id=self.env_id,
            resource_type=ResourceType.INSTANCE,
            resource_id=self.instance_id,
            tenant_id=tenant_id,
            bind_type=BindType.RULE,
            rule_id=self.rule_id,
        )


def plan_bindings(
    rules: Iterable[BindingRule],
    instances: Iterable[Instance],
    existing: Iterable[ResourceBinding],
) -> list[PlannedBinding]:
    """Decide which instances to bind, without touching any store.

    An instance already bound in a rule's environment is not considered for
    that rule.  Per instance, the first matching rule in priority order wins,
    and each (environment, instance) pair is planned at most once.
    """
    ordered = [r for r in sort_rules(rules) if r.enabled]
    bound = {
        (b.env_id, b.resource_id) for b in existing if b.resource_type == ResourceType.INSTANCE
    }
    planned: list[PlannedBinding] = []
    for instance in instances:
        for rule in ordered:
            key = (rule.env_id, instance.id)
            if key in bound:
                continue
            if match_rule(instance, rule):
                planned.append(
                    PlannedBinding(
                        instance_id=instance.id,
                        rule_id=rule.id,
                        node_id=rule.node_id,
                        env_id=rule.env_id,
                    )
                )
                bound.add(key)
                break
    return planned


# ---------------------------------------------------------------------------
# RuleEngineService
# ---------------------------------------------------------------------------


class RuleEngineService:
    def __init__(
        self,
        rules: RuleRepository,
        bindings: BindingRepository,
        nodes: NodeRepository,
        instances: InstanceRepository,
    ) -> None:
        self._rules = rules
        self._bindings = bindings
        self._nodes = nodes
        self._instances = instances

    # -- rule management ---------------------------------------------------------

    async def create_rule(self, rule: BindingRule) -> BindingRule:
        rule.validate_fields()
        if not await self._nodes.exists(rule.node_id):
            raise NotFoundError(f"node {rule.node_id} not found", code=ErrorCode.NODE_NOT_FOUND)
        created = await self._rules.create(rule)
        logger.info("Created rule %d '%s' -> node %d", created.id, created.name, created.node_id)
        return created

    async def update_rule(self, rule_id: int, rule: BindingRule) -> BindingRule:
        existing = await self.get_rule(rule_id)
        rule = rule.model_copy(update={"id": existing.id, "tenant_id": existing.tenant_id})
        rule.validate_fields()
        if not await self._nodes.exists(rule.node_id):
            raise NotFoundError(f"node {rule.node_id} not found", code=ErrorCode.NODE_NOT_FOUND)
        return await self._rules.update(rule)

    async def delete_rule(self, rule_id: int) -> int:
        """Delete a rule and every binding it created.  Returns the bindings removed."""
        await self.get_rule(rule_id)
        removed = await self._bindings.delete_by_rule_id(rule_id)
        await self._rules.delete(rule_id)
        logger.info("Deleted rule %d and %d bindings", rule_id, removed)
        return removed

    async def get_rule(self, rule_id: int) -> BindingRule:
        rule = await self._rules.get_by_id(rule_id)
        if rule is None:
            raise NotFoundError(f"rule {rule_id} not found", code=ErrorCode.RULE_NOT_FOUND)
        return rule

    async def list_rules(self, filter: RuleFilter) -> tuple[list[BindingRule], int]:
        items = await self._rules.list(filter)
        total = await self._rules.count(filter)
        return items, total

    # -- matching ----------------------------------------------------------------

    async def match_instance(self, tenant_id: str, instance: Instance) -> RuleMatchResult:
        rules = await self._rules.list_enabled(tenant_id)
        return evaluate(instance, rules)

    async def preview(self, tenant_id: str, instance_id: int) -> list[RuleMatchResult]:
        """Every enabled rule of *tenant_id* against one instance, in evaluation order."""
        instance = await self._instances.get_by_id(instance_id)
        if instance is None:
            raise NotFoundError(
                f"instance {instance_id} not found", code=ErrorCode.INSTANCE_NOT_FOUND
            )
        rules = sort_rules(await self._rules.list_enabled(tenant_id))
        return [explain(instance, rule) for rule in rules]

    async def execute_rules(self, tenant_id: str) -> int:
        """Bind every matching, not yet bound instance of *tenant_id*.

        Returns the number of bindings created.  A binding that appears
        concurrently for the same (environment, instance) is skipped.
        """
        logger.info("Executing binding rules for tenant %s", tenant_id)
        rules = await self._rules.list_enabled(tenant_id)
        if not rules:
            logger.info("No enabled rules for tenant %s", tenant_id)
            return 0
        instances = await self._instances.list(InstanceFilter(tenant_id=tenant_id))
        if not instances:
            return 0
        existing = await self._bindings.list(
            BindingFilter(tenant_id=tenant_id, resource_type=ResourceType.INSTANCE.value)
        )

        created = 0
        for plan in plan_bindings(rules, instances, existing):
            try:
                await self._bindings.create(plan.to_binding(tenant_id))
            except AlreadyExistsError:
                logger.debug(
                    "Instance %d already bound in env %d, skipping", plan.instance_id, plan.env_id
                )
                continue
            created += 1
        logger.info(
            "Rule execution for tenant %s: %d rules, %d instances, %d new bindings",
            tenant_id,
            len(rules),
            len(instances),
            created,
        )
        return created
