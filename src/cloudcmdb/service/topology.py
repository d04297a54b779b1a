"""Topology engine: instance-level traversal and the model-level graph.

Instance traversal is breadth-first over an explicit work queue.  The
visited set is seeded with the start instance, so every instance appears in
the result at most once and cycles terminate.  Only the edge through which
an instance is first discovered is emitted.
"""

from __future__ import annotations

import logging
from collections import deque

from cloudcmdb.models.instance import Instance
from cloudcmdb.models.relation import (
    InstanceRelation,
    InstanceRelationFilter,
    ModelRelationTypeFilter,
)
from cloudcmdb.models.schema import ModelFilter
from cloudcmdb.models.topology import (
    ModelTopologyEdge,
    ModelTopologyGraph,
    ModelTopologyNode,
    TopologyEdge,
    TopologyGraph,
    TopologyNode,
    TopologyQuery,
)
from cloudcmdb.storage.repository import (
    InstanceRelationRepository,
    InstanceRepository,
    ModelRelationTypeRepository,
    ModelRepository,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_NODES = 5000


class TopologyService:
    def __init__(
        self,
        instances: InstanceRepository,
        relations: InstanceRelationRepository,
        models: ModelRepository,
        relation_types: ModelRelationTypeRepository,
        max_nodes: int = DEFAULT_MAX_NODES,
    ) -> None:
        self._instances = instances
        self._relations = relations
        self._models = models
        self._relation_types = relation_types
        self._max_nodes = max_nodes

    # -- instance topology -----------------------------------------------------

    async def get_instance_topology(self, query: TopologyQuery) -> TopologyGraph:
        """Expand the relation graph around ``query.instance_id``.

        ``depth <= 0`` expands without a depth limit.  With ``model_uid`` set,
        neighbours of another model are neither added nor expanded through.
        Expansion stops at ``max_nodes`` and the graph is marked truncated.
        An unknown start instance, or one outside ``query.tenant_id``, yields
        an empty graph.
        """
        graph = TopologyGraph()
        seed = await self._instances.get_by_id(query.instance_id)
        if seed is None or (query.tenant_id and seed.tenant_id != query.tenant_id):
            return graph

        graph.nodes.append(await self._to_node(seed))
        visited = {seed.id}
        queue: deque[tuple[int, int]] = deque([(seed.id, 1)])

        while queue:
            current, level = queue.popleft()
            if not query.unbounded and level > query.depth:
                continue
            for rel, neighbor_id in await self._adjacent(current, query):
                if neighbor_id in visited:
                    continue
                neighbor = await self._instances.get_by_id(neighbor_id)
                if neighbor is None:
                    continue
                if query.model_uid and neighbor.model_uid != query.model_uid:
                    continue
                if len(graph.nodes) >= self._max_nodes:
                    logger.warning(
                        "Topology of instance %d truncated at %d nodes",
                        seed.id,
                        self._max_nodes,
                    )
                    graph.truncated = True
                    return graph
                visited.add(neighbor_id)
                graph.nodes.append(await self._to_node(neighbor))
                graph.edges.append(await self._to_edge(rel))
                queue.append((neighbor_id, level + 1))

        return graph

    async def _adjacent(
        self, instance_id: int, query: TopologyQuery
    ) -> list[tuple[InstanceRelation, int]]:
        """Relations of *instance_id* in the queried directions, outgoing first."""
        adjacent: list[tuple[InstanceRelation, int]] = []
        if query.follows_outgoing:
            outgoing = await self._relations.list(
                InstanceRelationFilter(source_instance_id=instance_id, tenant_id=query.tenant_id)
            )
            adjacent.extend((rel, rel.target_instance_id) for rel in outgoing)
        if query.follows_incoming:
            incoming = await self._relations.list(
                InstanceRelationFilter(target_instance_id=instance_id, tenant_id=query.tenant_id)
            )
            adjacent.extend((rel, rel.source_instance_id) for rel in incoming)
        return adjacent

    async def _to_node(self, instance: Instance) -> TopologyNode:
        model = await self._models.get_by_uid(instance.model_uid)
        return TopologyNode(
            id=instance.id,
            model_uid=instance.model_uid,
            model_name=model.name if model else "",
            asset_id=instance.asset_id,
            asset_name=instance.asset_name,
            attributes=instance.attributes,
            icon=model.icon if model else "",
            category=model.category if model else "",
        )

    async def _to_edge(self, rel: InstanceRelation) -> TopologyEdge:
        rel_type = await self._relation_types.get_by_uid(rel.relation_type_uid)
        return TopologyEdge(
            source_id=rel.source_instance_id,
            target_id=rel.target_instance_id,
            relation_type_uid=rel.relation_type_uid,
            relation_name=rel_type.name if rel_type else "",
            relation_type=rel_type.relation_type.value if rel_type else "",
        )

    # -- model topology ----------------------------------------------------------

    async def get_model_topology(self, provider: str = "") -> ModelTopologyGraph:
        """Schema-level graph of models and their relation types.

        With *provider* set, only models of that provider or of ``"all"`` are
        included, and a relation type is kept only when both of its endpoint
        models are included.
        """
        models = await self._models.list(ModelFilter())
        if provider:
            models = [m for m in models if m.matches_provider(provider)]
        by_uid = {m.uid: m for m in models}

        graph = ModelTopologyGraph(
            nodes=[
                ModelTopologyNode(
                    uid=m.uid, name=m.name, category=m.category, provider=m.provider, icon=m.icon
                )
                for m in models
            ]
        )
        for rel in await self._relation_types.list(ModelRelationTypeFilter()):
            if provider:
                source = by_uid.get(rel.source_model_uid)
                target = by_uid.get(rel.target_model_uid)
                if source is None or target is None:
                    continue
                if not source.matches_provider(provider) or not target.matches_provider(provider):
                    continue
            graph.edges.append(
                ModelTopologyEdge(
                    source_model_uid=rel.source_model_uid,
                    target_model_uid=rel.target_model_uid,
                    relation_uid=rel.uid,
                    relation_name=rel.name,
                    relation_type=rel.relation_type.value,
                )
            )
        return graph

    # -- related instances -------------------------------------------------------

    async def get_related_instances(
        self, instance_id: int, relation_type_uid: str = "", limit: int = 100
    ) -> list[Instance]:
        """Direct outgoing neighbours of *instance_id*.  Dangling targets are dropped."""
        relations = await self._relations.list(
            InstanceRelationFilter(
                source_instance_id=instance_id, relation_type_uid=relation_type_uid, limit=limit
            )
        )
        related: list[Instance] = []
        for rel in relations:
            target = await self._instances.get_by_id(rel.target_instance_id)
            if target is not None:
                related.append(target)
        return related
