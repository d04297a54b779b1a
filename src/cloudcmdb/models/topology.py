"""Topology query and graph shapes (instance level and model level)."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from cloudcmdb.models.instance import AttributeValue


class TopologyDirection(StrEnum):
    BOTH = "both"
    OUTGOING = "outgoing"
    INCOMING = "incoming"


class TopologyQuery(BaseModel):
    """Input of an instance topology traversal.

    ``depth <= 0`` means unbounded; the traversal is then limited only by
    the visited set and the configured node cap.  An empty ``direction``
    behaves like ``"both"``.
    """

    instance_id: int
    model_uid: str = ""
    tenant_id: str = ""
    depth: int = 1
    direction: TopologyDirection | None = None

    model_config = {"protected_namespaces": ()}

    @field_validator("direction", mode="before")
    @classmethod
    def _empty_direction(cls, value: object) -> object:
        return None if value == "" else value

    @property
    def follows_outgoing(self) -> bool:
        return self.direction in (None, TopologyDirection.BOTH, TopologyDirection.OUTGOING)

    @property
    def follows_incoming(self) -> bool:
        return self.direction in (None, TopologyDirection.BOTH, TopologyDirection.INCOMING)

    @property
    def unbounded(self) -> bool:
        return self.depth <= 0


class TopologyNode(BaseModel):
    id: int
    model_uid: str
    model_name: str = ""
    asset_id: str
    asset_name: str = ""
    attributes: dict[str, AttributeValue] = Field(default_factory=dict)
    icon: str = ""
    category: str = ""

    model_config = {"protected_namespaces": ()}


class TopologyEdge(BaseModel):
    source_id: int
    target_id: int
    relation_type_uid: str
    relation_name: str = ""
    relation_type: str = ""


class TopologyGraph(BaseModel):
    nodes: list[TopologyNode] = []
    edges: list[TopologyEdge] = []
    truncated: bool = False

    def node_ids(self) -> list[int]:
        return [n.id for n in self.nodes]


class ModelTopologyNode(BaseModel):
    uid: str
    name: str
    category: str = ""
    provider: str = ""
    icon: str = ""


class ModelTopologyEdge(BaseModel):
    source_model_uid: str
    target_model_uid: str
    relation_uid: str
    relation_name: str = ""
    relation_type: str = ""

    model_config = {"protected_namespaces": ()}


class ModelTopologyGraph(BaseModel):
    nodes: list[ModelTopologyNode] = []
    edges: list[ModelTopologyEdge] = []
