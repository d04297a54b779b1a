"""Manual binding of resources to service tree nodes."""

from __future__ import annotations

import logging

from cloudcmdb.models.errors import AlreadyExistsError, ErrorCode, NotFoundError
from cloudcmdb.models.servicetree import (
    BindingFilter,
    BindType,
    ResourceBinding,
    ResourceType,
)
from cloudcmdb.storage.repository import BindingRepository, NodeRepository

logger = logging.getLogger(__name__)


class BindingService:
    def __init__(self, bindings: BindingRepository, nodes: NodeRepository) -> None:
        self._bindings = bindings
        self._nodes = nodes

    async def bind_resource(self, binding: ResourceBinding) -> ResourceBinding:
        """Bind one resource.

        Re-binding a resource to the node it is already bound to in that
        environment returns the existing binding.  Binding it to another
        node raises ``AlreadyExistsError``.
        """
        await self._require_node(binding.node_id)
        existing = await self._bindings.get_by_resource(
            binding.tenant_id, binding.resource_type.value, binding.resource_id, binding.env_id
        )
        if existing is not None:
            if existing.node_id == binding.node_id:
                return existing
            raise AlreadyExistsError(
                f"{binding.resource_type.value} {binding.resource_id} is already bound to "
                f"node {existing.node_id} in env {binding.env_id}",
                code=ErrorCode.BINDING_EXISTS,
            )
        created = await self._bindings.create(binding)
        logger.debug(
            "Bound %s %d to node %d (env %d)",
            created.resource_type.value,
            created.resource_id,
            created.node_id,
            created.env_id,
        )
        return created

    async def bind_resources(
        self,
        tenant_id: str,
        node_id: int,
        resource_ids: list[int],
        *,
        env_id: int = 0,
        resource_type: ResourceType = ResourceType.INSTANCE,
    ) -> int:
        """Bind many resources to one node, skipping those already bound."""
        await self._require_node(node_id)
        pending: list[ResourceBinding] = []
        for resource_id in dict.fromkeys(resource_ids):
            if await self._bindings.get_by_resource(
                tenant_id, resource_type.value, resource_id, env_id
            ):
                continue
            pending.append(
                ResourceBinding(
                    node_id=node_id,
                    env_id=env_id,
                    resource_type=resource_type,
                    resource_id=resource_id,
                    tenant_id=tenant_id,
                    bind_type=BindType.MANUAL,
                )
            )
        if not pending:
            return 0
        return await self._bindings.create_batch(pending)

    async def unbind_resource(self, binding_id: int) -> None:
        if await self._bindings.get_by_id(binding_id) is None:
            raise NotFoundError(
                f"binding {binding_id} not found", code=ErrorCode.BINDING_NOT_FOUND
            )
        await self._bindings.delete(binding_id)

    async def unbind_everywhere(
        self, tenant_id: str, resource_id: int, resource_type: ResourceType = ResourceType.INSTANCE
    ) -> int:
        """Remove every binding of a resource, in all environments."""
        return await self._bindings.delete_by_resource(tenant_id, resource_type.value, resource_id)

    async def list_bindings(self, filter: BindingFilter) -> tuple[list[ResourceBinding], int]:
        items = await self._bindings.list(filter)
        total = await self._bindings.count(filter)
        return items, total

    async def count_by_node(self, tenant_id: str, node_id: int) -> int:
        return await self._bindings.count(BindingFilter(tenant_id=tenant_id, node_id=node_id))

    async def _require_node(self, node_id: int) -> None:
        if not await self._nodes.exists(node_id):
            raise NotFoundError(f"node {node_id} not found", code=ErrorCode.NODE_NOT_FOUND)
