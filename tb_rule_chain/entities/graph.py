#  Copyright 2025 ThingsBoard
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from tb_rule_chain.constants.node_types import EXTERNAL_NODE_PREFIX


@dataclass
class GraphNode:
    """
    Renderable projection of one node record. ``meta`` is the stored record the node was built from.
    """
    id: str
    x: float
    y: float
    label: str
    node_type: Optional[str] = None
    section: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)
    is_root: bool = False
    is_external: bool = False
    validation_errors: List[str] = field(default_factory=list)
    # Position of the record in the document the graph was built from
    origin_index: Optional[int] = None

    @property
    def selectable(self) -> bool:
        return not self.is_external

    @property
    def draggable(self) -> bool:
        return not self.is_external

    @property
    def connectable(self) -> bool:
        return not self.is_external

    @property
    def index(self) -> Optional[int]:
        if self.is_external:
            return None
        try:
            return int(self.id)
        except ValueError:
            return None

    def copy(self, **changes) -> 'GraphNode':
        return replace(self, **changes)


@dataclass
class GraphEdge:
    id: str
    source: str
    target: str
    label: str
    dashed: bool = False
    selectable: bool = True
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_external(self) -> bool:
        return self.target.startswith(EXTERNAL_NODE_PREFIX)

    def copy(self, **changes) -> 'GraphEdge':
        return replace(self, **changes)


@dataclass
class RuleChainGraph:
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_edge(self, edge_id: str) -> Optional[GraphEdge]:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    @property
    def editable_nodes(self) -> List[GraphNode]:
        return [node for node in self.nodes if not node.is_external]

    @property
    def editable_edges(self) -> List[GraphEdge]:
        return [edge for edge in self.edges if not edge.is_external]

    @property
    def root(self) -> Optional[GraphNode]:
        for node in self.nodes:
            if node.is_root and not node.is_external:
                return node
        return None

    def outgoing_edges(self, node_id: str) -> List[GraphEdge]:
        return [edge for edge in self.edges if edge.source == node_id]

    def copy(self) -> 'RuleChainGraph':
        return RuleChainGraph(nodes=[node.copy() for node in self.nodes],
                              edges=[edge.copy() for edge in self.edges])

    def __repr__(self):
        return f"RuleChainGraph(nodes={len(self.nodes)}, edges={len(self.edges)})"
