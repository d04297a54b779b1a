"""Instance relation graph and foreign-key reconciliation.

:class:`RelationService` guards the single-edge invariant: a
``(source, target, relation type)`` triple exists at most once.  The service
checks before inserting, and the store rejects duplicates on its own, so two
concurrent creators cannot both succeed.

:meth:`RelationService.reconcile` derives edges from attribute values, e.g.
every ``cloud_vm`` whose ``vpc_id`` names a ``cloud_vpc``.  It is
best-effort: a failing item is counted and the run continues.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from cloudcmdb.models.errors import (
    AlreadyExistsError,
    CMDBError,
    ErrorCode,
    InvalidError,
    NotFoundError,
)
from cloudcmdb.models.instance import Instance, InstanceFilter
from cloudcmdb.models.relation import InstanceRelation, InstanceRelationFilter
from cloudcmdb.storage.repository import InstanceRelationRepository, InstanceRepository

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Reconciliation specs and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReconcileSpec:
    """How to derive one relation type from attribute values.

    A source instance is linked to the target instance whose
    ``target_key`` attribute equals the source's ``source_key`` attribute.
    ``source_filter`` can exclude sources before lookup.
    """

    relation_type_uid: str
    source_model_uid: str
    target_model_uid: str
    source_key: str
    target_key: str
    source_filter: Callable[[Instance], bool] | None = None


@dataclass
class ReconcileResult:
    created: int = 0
    skipped: int = 0
    failed: int = 0


@dataclass
class RelationSyncResult:
    """Totals of a :meth:`RelationService.sync_relations` run."""

    created: int = 0
    skipped: int = 0
    failed: int = 0
    by_relation_type: dict[str, int] = field(default_factory=dict)
    duration_ms: int = 0


def _key_text(instance: Instance, key: str) -> str:
    value = instance.get_attribute(key)
    return value if isinstance(value, str) else ""


def _eip_bound_to_vm(eip: Instance) -> bool:
    return _key_text(eip, "instance_type") in ("", "EcsInstance", "Ecs")


BUILTIN_RECONCILE_SPECS: tuple[ReconcileSpec, ...] = (
    ReconcileSpec("ecs_belongs_to_vpc", "cloud_vm", "cloud_vpc", "vpc_id", "vpc_id"),
    ReconcileSpec(
        "eip_bindto_ecs",
        "cloud_eip",
        "cloud_vm",
        "instance_id",
        "instance_id",
        source_filter=_eip_bound_to_vm,
    ),
    ReconcileSpec("rds_belongs_to_vpc", "cloud_rds", "cloud_vpc", "vpc_id", "vpc_id"),
    ReconcileSpec("redis_belongs_to_vpc", "cloud_redis", "cloud_vpc", "vpc_id", "vpc_id"),
)


# ---------------------------------------------------------------------------
# RelationService
# ---------------------------------------------------------------------------


class RelationService:
    def __init__(
        self, relations: InstanceRelationRepository, instances: InstanceRepository
    ) -> None:
        self._relations = relations
        self._instances = instances

    async def create(self, relation: InstanceRelation) -> InstanceRelation:
        """Create one edge.  Raises ``AlreadyExistsError`` on a duplicate triple."""
        relation.validate_fields()
        if await self._relations.exists(
            relation.source_instance_id, relation.target_instance_id, relation.relation_type_uid
        ):
            raise AlreadyExistsError(
                f"relation {relation.source_instance_id} -> {relation.target_instance_id} "
                f"({relation.relation_type_uid}) already exists",
                code=ErrorCode.RELATION_EXISTS,
            )
        created = await self._relations.create(relation)
        logger.debug(
            "Created relation %d: %d -> %d (%s)",
            created.id,
            created.source_instance_id,
            created.target_instance_id,
            created.relation_type_uid,
        )
        return created

    async def create_batch(self, relations: list[InstanceRelation]) -> int:
        if not relations:
            return 0
        for relation in relations:
            relation.validate_fields()
        return await self._relations.create_batch(relations)

    async def get_by_id(self, relation_id: int) -> InstanceRelation:
        relation = await self._relations.get_by_id(relation_id)
        if relation is None:
            raise NotFoundError(
                f"relation {relation_id} not found", code=ErrorCode.RELATION_NOT_FOUND
            )
        return relation

    async def list(self, filter: InstanceRelationFilter) -> tuple[list[InstanceRelation], int]:
        items = await self._relations.list(filter)
        total = await self._relations.count(filter)
        return items, total

    async def delete(self, relation_id: int) -> None:
        await self.get_by_id(relation_id)
        await self._relations.delete(relation_id)

    async def delete_by_instance_id(self, instance_id: int) -> int:
        """Remove every edge touching *instance_id*, in either direction."""
        removed = await self._relations.delete_by_instance_id(instance_id)
        if removed:
            logger.info("Removed %d relations of instance %d", removed, instance_id)
        return removed

    async def exists(self, source_id: int, target_id: int, relation_type_uid: str) -> bool:
        return await self._relations.exists(source_id, target_id, relation_type_uid)

    # -- reconciliation --------------------------------------------------------

    async def reconcile(self, tenant_id: str, spec: ReconcileSpec) -> ReconcileResult:
        """Create the edges of *spec* that are implied by attribute values.

        Sources without a key are ignored.  Sources whose key matches no
        target, or whose edge already exists, count as skipped.  A failed
        check or insert counts as failed and does not stop the run.
        """
        if not tenant_id:
            raise InvalidError("tenant_id is required", code=ErrorCode.PARAMS_ERROR)
        sources = await self._instances.list(
            InstanceFilter(tenant_id=tenant_id, model_uid=spec.source_model_uid)
        )
        targets = await self._instances.list(
            InstanceFilter(tenant_id=tenant_id, model_uid=spec.target_model_uid)
        )

        index: dict[str, int] = {}
        for target in targets:
            key = _key_text(target, spec.target_key)
            if key:
                index[key] = target.id

        result = ReconcileResult()
        for source in sources:
            key = _key_text(source, spec.source_key)
            if not key:
                continue
            if spec.source_filter is not None and not spec.source_filter(source):
                continue
            target_id = index.get(key)
            if target_id is None:
                result.skipped += 1
                continue
            try:
                if await self._relations.exists(source.id, target_id, spec.relation_type_uid):
                    result.skipped += 1
                    continue
                await self._relations.create(
                    InstanceRelation(
                        source_instance_id=source.id,
                        target_instance_id=target_id,
                        relation_type_uid=spec.relation_type_uid,
                        tenant_id=tenant_id,
                    )
                )
            except CMDBError as exc:
                logger.warning(
                    "Failed to link %s %d -> %d: %s",
                    spec.relation_type_uid,
                    source.id,
                    target_id,
                    exc.message,
                )
                result.failed += 1
                continue
            except Exception:
                # Store backends raise their own driver errors.
                logger.exception(
                    "Failed to link %s %d -> %d", spec.relation_type_uid, source.id, target_id
                )
                result.failed += 1
                continue
            result.created += 1
        return result

    async def sync_relations(
        self,
        tenant_id: str,
        specs: tuple[ReconcileSpec, ...] = BUILTIN_RECONCILE_SPECS,
    ) -> RelationSyncResult:
        """Run every reconciliation spec for *tenant_id* and total the counts.

        A spec whose instance listing fails is logged and left out of the
        totals; the remaining specs still run.
        """
        if not tenant_id:
            raise InvalidError("tenant_id is required", code=ErrorCode.PARAMS_ERROR)
        started = time.monotonic()
        logger.info("Syncing relations for tenant %s", tenant_id)
        total = RelationSyncResult()
        for spec in specs:
            try:
                partial = await self.reconcile(tenant_id, spec)
            except Exception:
                logger.exception("Relation sync %s failed", spec.relation_type_uid)
                continue
            total.created += partial.created
            total.skipped += partial.skipped
            total.failed += partial.failed
            total.by_relation_type[spec.relation_type_uid] = partial.created
        total.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Relation sync done: created=%d skipped=%d failed=%d (%d ms)",
            total.created,
            total.skipped,
            total.failed,
            total.duration_ms,
        )
        return total
