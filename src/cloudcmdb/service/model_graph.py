"""Model graph: models as nodes, relation types as edges.  Uses networkx."""

from __future__ import annotations

import networkx as nx

from cloudcmdb.models.relation import ModelRelationType
from cloudcmdb.models.schema import Model


class ModelGraph:
    """Directed multigraph of models linked by their relation type declarations.

    Relation types whose endpoints are not among *models* are kept as edges
    and their endpoints are added as bare nodes, so a dangling declaration
    stays visible.
    """

    def __init__(self, models: list[Model], relation_types: list[ModelRelationType]) -> None:
        self._graph: nx.MultiDiGraph[str] = nx.MultiDiGraph()
        self._build(models, relation_types)

    def _build(self, models: list[Model], relation_types: list[ModelRelationType]) -> None:
        for model in models:
            self._graph.add_node(model.uid, model=model)
        for rel in relation_types:
            self._graph.add_edge(
                rel.source_model_uid,
                rel.target_model_uid,
                key=rel.uid,
                relation_type=rel,
            )

    @property
    def graph(self) -> nx.MultiDiGraph[str]:
        return self._graph

    def model_uids(self) -> list[str]:
        return sorted(self._graph.nodes)

    def relation_uids(self) -> list[str]:
        return sorted(key for _, _, key in self._graph.edges(keys=True))

    def neighbors(self, model_uid: str) -> list[str]:
        """Models directly reachable from *model_uid* over one declaration."""
        if model_uid not in self._graph:
            return []
        return sorted(set(self._graph.successors(model_uid)))

    def reachable(self, model_uid: str) -> set[str]:
        if model_uid not in self._graph:
            return set()
        return nx.descendants(self._graph, model_uid)

    def shortest_path(self, source_uid: str, target_uid: str) -> list[str]:
        """Model uids along the shortest declared path, or ``[]`` if none."""
        try:
            return nx.shortest_path(self._graph, source_uid, target_uid)
        except (nx.NetworkXNoPath, nx.NodeNotFound):
            return []

    def detect_cycles(self) -> list[list[str]]:
        """Cycles in the relation type declarations, e.g. A contains B contains A."""
        try:
            cycles = list(nx.simple_cycles(nx.DiGraph(self._graph)))
            return [c for c in cycles if len(c) > 1]
        except nx.NetworkXError:
            return []
