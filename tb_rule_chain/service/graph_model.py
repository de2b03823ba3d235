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

"""
Projection of a stored rule chain document onto a renderable graph and back.

Node identity inside a graph is the node's position in ``nodes`` (as a string id). Graph edits
return new graphs; ``build_metadata_from_graph`` is the only place that writes indices back into
the document, compacting them so that every stored index resolves to an existing node.
"""

from math import floor, isfinite
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from tb_rule_chain.common.logging_utils import get_logger
from tb_rule_chain.constants.node_types import (
    DEFAULT_CHAIN_RELATION,
    DEFAULT_RELATION,
    EMPTY_CHAIN_POSITION,
    EXTERNAL_NODE_OFFSET_X,
    EXTERNAL_NODE_OFFSET_Y,
    EXTERNAL_NODE_PREFIX,
    EXTERNAL_NODE_TYPE,
    MSG_TYPE_SWITCH,
    NODE_RELATION_OVERRIDES,
    NODE_SECTION_BY_TYPE,
    NODE_SPACING_X,
    RELATION_OPTIONS,
    SWITCH_BASE_RELATIONS,
    get_node_template,
)
from tb_rule_chain.entities.graph import GraphEdge, GraphNode, RuleChainGraph
from tb_rule_chain.entities.node_template import NodeTemplate
from tb_rule_chain.entities.rule_chain_connection import RuleChainConnectionView
from tb_rule_chain.entities.rule_chain_metadata import (
    ADDITIONAL_INFO_KEYS,
    FROM_INDEX_KEYS,
    TARGET_RULE_CHAIN_KEYS,
    TO_INDEX_KEYS,
    get_additional_info,
    get_connections,
    get_first_node_index,
    get_layout,
    get_nodes,
    get_rule_chain_connections,
    get_value,
    remap_connection_indices,
    to_index,
    with_first_node_index,
    with_rule_chain_connections,
)
from tb_rule_chain.service.config_validator import validate_node_config

logger = get_logger(__name__)

ChainNames = Mapping[Union[int, str], str]


def _js_round(value: float) -> int:
    if not isfinite(value):
        return 0
    return int(floor(value + 0.5))


def _external_node_id(target_rule_chain_id: Any) -> str:
    return f"{EXTERNAL_NODE_PREFIX}{target_rule_chain_id}"


def _resolve_chain_name(chain_names: Optional[ChainNames], target_rule_chain_id: Any) -> Optional[str]:
    if not chain_names:
        return None
    for key in (target_rule_chain_id, to_index(target_rule_chain_id), str(target_rule_chain_id)):
        if key is not None and key in chain_names:
            return chain_names[key]
    return None


def build_graph(metadata: Optional[Dict[str, Any]], chain_names: Optional[ChainNames] = None) -> RuleChainGraph:
    """
    Builds the graph view of a rule chain document.

    Missing layout falls back to ``index * 220`` on x and 0 on y. Connections with undefined or
    out-of-range indices are not rendered. Every distinct target of ``ruleChainConnections`` gets
    one placeholder node placed next to the node that first references it.
    """
    nodes_list = get_nodes(metadata)
    first_node_index = get_first_node_index(metadata)

    nodes: List[GraphNode] = []
    for index, raw_node in enumerate(nodes_list):
        record = raw_node if isinstance(raw_node, dict) else {}
        x, y = get_layout(record)
        node_type = record.get("type")
        nodes.append(GraphNode(
            id=str(index),
            x=x if x is not None else index * NODE_SPACING_X,
            y=y if y is not None else 0,
            label=record.get("name") or f"Node {index + 1}",
            node_type=node_type,
            section=NODE_SECTION_BY_TYPE.get(node_type) if node_type else None,
            meta=record,
            is_root=first_node_index == index,
            validation_errors=validate_node_config(node_type, record.get("configuration", {})),
            origin_index=index,
        ))

    edges: List[GraphEdge] = []
    for position, connection in enumerate(get_connections(metadata)):
        from_index = to_index(get_value(connection, FROM_INDEX_KEYS))
        to_index_ = to_index(get_value(connection, TO_INDEX_KEYS))
        if from_index is None or to_index_ is None:
            continue
        if not (0 <= from_index < len(nodes) and 0 <= to_index_ < len(nodes)):
            logger.debug("Skipping dangling connection %s -> %s", from_index, to_index_)
            continue
        edges.append(GraphEdge(
            id=f"edge-{from_index}-{to_index_}-{position}",
            source=str(from_index),
            target=str(to_index_),
            label=get_value(connection, ("type",)) or DEFAULT_RELATION,
            meta=connection,
        ))

    external_nodes: Dict[str, GraphNode] = {}
    for position, connection in enumerate(get_rule_chain_connections(metadata)):
        from_index = to_index(get_value(connection, FROM_INDEX_KEYS))
        target_rule_chain_id = get_value(connection, TARGET_RULE_CHAIN_KEYS)
        if from_index is None or target_rule_chain_id is None:
            continue
        if not 0 <= from_index < len(nodes):
            logger.debug("Skipping rule chain connection from missing node %s", from_index)
            continue

        external_id = _external_node_id(target_rule_chain_id)
        if external_id not in external_nodes:
            anchor = nodes[from_index]
            name = _resolve_chain_name(chain_names, target_rule_chain_id)
            external_nodes[external_id] = GraphNode(
                id=external_id,
                x=anchor.x + EXTERNAL_NODE_OFFSET_X,
                y=anchor.y + EXTERNAL_NODE_OFFSET_Y,
                label=f"{name} ({target_rule_chain_id})" if name else f"Rule chain {target_rule_chain_id}",
                node_type=EXTERNAL_NODE_TYPE,
                is_external=True,
            )

        edges.append(GraphEdge(
            id=f"edge-chain-{from_index}-{target_rule_chain_id}-{position}",
            source=str(from_index),
            target=external_id,
            label=get_value(connection, ("type",)) or DEFAULT_CHAIN_RELATION,
            dashed=True,
            selectable=False,
            meta=connection,
        ))

    return RuleChainGraph(nodes=nodes + list(external_nodes.values()), edges=edges)


def _ordered_editable_nodes(nodes: Iterable[GraphNode]) -> List[GraphNode]:
    editable = [node for node in nodes if not node.is_external and node.index is not None]
    return sorted(editable, key=lambda node: node.index)


def _node_record(node: GraphNode, base_nodes: List[Any]) -> Dict[str, Any]:
    origin = node.origin_index if node.origin_index is not None else node.index
    fallback = base_nodes[origin] if origin is not None and 0 <= origin < len(base_nodes) else {}
    existing = node.meta or (fallback if isinstance(fallback, dict) else {})

    record = dict(existing)
    record["name"] = node.label or existing.get("name") or f"Node {node.id}"
    node_type = node.node_type or existing.get("type")
    if node_type is not None:
        record["type"] = node_type

    info_key = "additional_info" if "additional_info" in existing and "additionalInfo" not in existing \
        else "additionalInfo"
    info = dict(get_additional_info(existing))
    if "layout_x" in info and "layoutX" not in info:
        info["layout_x"] = _js_round(node.x)
        info["layout_y"] = _js_round(node.y)
    else:
        info["layoutX"] = _js_round(node.x)
        info["layoutY"] = _js_round(node.y)
    record[info_key] = info
    return record


def _connection_entry(edge: GraphEdge, from_index: int, to_index_: int, snake_default: bool) -> Dict[str, Any]:
    entry = {key: value for key, value in edge.meta.items() if key not in FROM_INDEX_KEYS + TO_INDEX_KEYS}
    snake = "from_index" in edge.meta if edge.meta else snake_default
    if snake:
        entry["from_index"] = from_index
        entry["to_index"] = to_index_
    else:
        entry["fromIndex"] = from_index
        entry["toIndex"] = to_index_
    entry["type"] = edge.label or DEFAULT_RELATION
    return entry


def build_metadata_from_graph(base_metadata: Dict[str, Any],
                              nodes: Iterable[GraphNode],
                              edges: Iterable[GraphEdge]) -> Dict[str, Any]:
    """
    Writes graph state back into a copy of ``base_metadata``.

    Placeholder nodes are never written. Surviving nodes are emitted in id order at positions
    ``0..n-1`` with integer layout; connections and rule chain connections are renumbered to match,
    and entries that reference a removed node are dropped. The first node is the graph root, else the
    stored first node if it survived, else the first remaining node (0 for an empty chain).
    """
    base_metadata = base_metadata or {}
    base_nodes = get_nodes(base_metadata)
    ordered = _ordered_editable_nodes(nodes)

    position_by_id = {node.id: position for position, node in enumerate(ordered)}
    position_by_origin = {}
    for position, node in enumerate(ordered):
        origin = node.origin_index if node.origin_index is not None else node.index
        position_by_origin[origin] = position

    updated_nodes = [_node_record(node, base_nodes) for node in ordered]

    snake_default = any("from_index" in entry and "fromIndex" not in entry
                        for entry in get_connections(base_metadata) if isinstance(entry, dict))
    updated_connections = []
    for edge in edges:
        if edge.is_external:
            continue
        from_position = position_by_id.get(edge.source)
        to_position = position_by_id.get(edge.target)
        if from_position is None or to_position is None:
            continue
        updated_connections.append(_connection_entry(edge, from_position, to_position, snake_default))

    root = next((node for node in ordered if node.is_root), None)
    stored_first = get_first_node_index(base_metadata)
    if root is not None:
        first_node_index = position_by_id[root.id]
    elif stored_first is not None and stored_first in position_by_origin:
        first_node_index = position_by_origin[stored_first]
    else:
        first_node_index = 0

    chain_connections = []
    for entry in get_rule_chain_connections(base_metadata):
        from_index = to_index(get_value(entry, FROM_INDEX_KEYS))
        if from_index is None or from_index not in position_by_origin:
            continue
        chain_connections.append(remap_connection_indices(entry, position_by_origin))

    updated = dict(base_metadata)
    updated["nodes"] = updated_nodes
    updated["connections"] = updated_connections
    updated = with_rule_chain_connections(updated, chain_connections)
    return with_first_node_index(updated, first_node_index)


def rebase_graph(graph: RuleChainGraph, metadata: Dict[str, Any]) -> RuleChainGraph:
    """
    Aligns a graph with the document just produced from it by ``build_metadata_from_graph``:
    node ids become their positions and node records are refreshed, so the next write-back
    resolves indices against ``metadata``.
    """
    records = get_nodes(metadata)
    ordered = _ordered_editable_nodes(graph.nodes)
    id_map = {node.id: str(position) for position, node in enumerate(ordered)}
    first_node_index = get_first_node_index(metadata)

    nodes = []
    for position, node in enumerate(ordered):
        record = records[position] if position < len(records) else node.meta
        nodes.append(node.copy(id=str(position), origin_index=position, meta=record,
                               is_root=first_node_index == position))
    nodes.extend(node.copy() for node in graph.nodes if node.is_external)

    edges = []
    for edge in graph.edges:
        source = id_map.get(edge.source)
        if source is None:
            continue
        target = edge.target if edge.is_external else id_map.get(edge.target)
        if target is None:
            continue
        edges.append(edge.copy(source=source, target=target))
    return RuleChainGraph(nodes=nodes, edges=_renumber_edge_ids(edges))


def _renumber_edge_ids(edges: List[GraphEdge]) -> List[GraphEdge]:
    renumbered = []
    for position, edge in enumerate(edges):
        if edge.is_external:
            edge_id = f"edge-chain-{edge.source}-{edge.target[len(EXTERNAL_NODE_PREFIX):]}-{position}"
        else:
            edge_id = f"edge-{edge.source}-{edge.target}-{position}"
        renumbered.append(edge.copy(id=edge_id))
    return renumbered


def delete_node(graph: RuleChainGraph, node_id: str) -> RuleChainGraph:
    """
    Removes a node with all of its edges and renumbers the remaining nodes to ``0..n-2``
    keeping their relative order. If the removed node was the root, the first remaining node becomes root.
    """
    target = graph.get_node(node_id)
    if target is None or target.is_external:
        logger.debug("Node %s is not an editable node, nothing to delete", node_id)
        return graph.copy()

    survivors = [node for node in _ordered_editable_nodes(graph.nodes) if node.id != node_id]
    id_map = {node.id: str(position) for position, node in enumerate(survivors)}

    nodes = [node.copy(id=id_map[node.id]) for node in survivors]
    if target.is_root and nodes:
        nodes[0] = nodes[0].copy(is_root=True)

    edges = []
    for edge in graph.edges:
        if edge.source == node_id or edge.target == node_id:
            continue
        source = id_map.get(edge.source)
        if source is None:
            continue
        target_id = edge.target if edge.is_external else id_map.get(edge.target)
        if target_id is None:
            continue
        edges.append(edge.copy(source=source, target=target_id))

    referenced = {edge.target for edge in edges if edge.is_external}
    nodes.extend(node.copy() for node in graph.nodes if node.is_external and node.id in referenced)
    return RuleChainGraph(nodes=nodes, edges=_renumber_edge_ids(edges))


def delete_edge(graph: RuleChainGraph, edge_id: str) -> RuleChainGraph:
    updated = graph.copy()
    edge = updated.get_edge(edge_id)
    if edge is None or edge.is_external:
        return updated
    updated.edges = [entry for entry in updated.edges if entry.id != edge_id]
    return updated


def move_node(graph: RuleChainGraph, node_id: str, x: float, y: float) -> RuleChainGraph:
    updated = graph.copy()
    updated.nodes = [node.copy(x=x, y=y) if node.id == node_id and node.draggable else node
                     for node in updated.nodes]
    return updated


def allowed_relations(node_type: Optional[str]) -> List[str]:
    if not node_type:
        return list(RELATION_OPTIONS)
    return list(NODE_RELATION_OVERRIDES.get(node_type, RELATION_OPTIONS))


def extract_message_type_switch_mappings(config: Optional[Dict[str, Any]]) -> List[Dict[str, str]]:
    config = config if isinstance(config, dict) else {}
    if isinstance(config.get("mappings"), list):
        raw = config["mappings"]
    elif isinstance(config.get("messageTypeMappings"), list):
        raw = config["messageTypeMappings"]
    elif isinstance(config.get("message_types"), list):
        raw = config["message_types"]
    elif isinstance(config.get("messageTypes"), list):
        raw = config["messageTypes"]
    else:
        raw = []

    mappings = []
    for entry in raw:
        if isinstance(entry, str):
            mappings.append({"type": entry, "relation": ""})
            continue
        entry = entry if isinstance(entry, dict) else {}
        message_type = entry.get("type") if isinstance(entry.get("type"), str) else entry.get("messageType")
        relation = entry.get("relation") if isinstance(entry.get("relation"), str) else entry.get("relationType")
        mappings.append({
            "type": message_type if isinstance(message_type, str) else "",
            "relation": relation if isinstance(relation, str) else "",
        })
    return mappings


def message_type_switch_relations(node: Optional[GraphNode]) -> Optional[List[str]]:
    """
    Relations offered by a message type switch: ``Other``, ``Missing`` and every mapped type.
    Returns None for any other node.
    """
    if node is None or node.node_type != MSG_TYPE_SWITCH:
        return None
    mappings = extract_message_type_switch_mappings(node.meta.get("configuration"))
    relations = list(SWITCH_BASE_RELATIONS)
    for mapping in mappings:
        message_type = mapping["type"].strip()
        if message_type and message_type not in relations:
            relations.append(message_type)
    return relations


def relations_for_node(node: Optional[GraphNode]) -> List[str]:
    return message_type_switch_relations(node) or allowed_relations(node.node_type if node else None)


def connect(graph: RuleChainGraph, source: str, target: str, label: Optional[str] = None) -> RuleChainGraph:
    """
    Adds an edge between two editable nodes. Without an explicit label the first relation allowed
    for the source node and not yet used by its outgoing edges is picked.
    """
    updated = graph.copy()
    source_node = updated.get_node(source)
    target_node = updated.get_node(target)
    if source_node is None or target_node is None or not source_node.connectable or not target_node.connectable:
        logger.debug("Ignoring connection %s -> %s: endpoint is missing or not connectable", source, target)
        return updated

    if not label:
        relations = relations_for_node(source_node)
        used = {edge.label or DEFAULT_RELATION for edge in updated.outgoing_edges(source)}
        label = next((relation for relation in relations if relation not in used), None) \
            or (relations[0] if relations else DEFAULT_RELATION)

    existing_ids = {edge.id for edge in updated.edges}
    position = len(updated.edges)
    edge_id = f"edge-{source}-{target}-{position}"
    while edge_id in existing_ids:
        position += 1
        edge_id = f"edge-{source}-{target}-{position}"
    updated.edges.append(GraphEdge(id=edge_id, source=source, target=target, label=label))
    return updated


def set_edge_label(graph: RuleChainGraph, edge_id: str, label: Optional[str]) -> RuleChainGraph:
    updated = graph.copy()
    updated.edges = [edge.copy(label=label or DEFAULT_RELATION) if edge.id == edge_id and not edge.is_external
                     else edge for edge in updated.edges]
    return updated


def update_node(graph: RuleChainGraph,
                node_id: str,
                name: Optional[str],
                node_type: Optional[str],
                configuration: Dict[str, Any]) -> RuleChainGraph:
    """
    Applies inspector edits to a node. Template defaults fill keys the stored record lacks.
    """
    updated = graph.copy()
    node = updated.get_node(node_id)
    if node is None or node.is_external:
        return updated

    template = get_node_template(node_type)
    template_meta = template.build_meta() if template else {}
    base_meta = node.meta or {}

    meta = {**template_meta, **base_meta}
    meta["name"] = (name or "").strip() or base_meta.get("name") or template_meta.get("name") \
        or node.label or "Node"
    meta["type"] = node_type or base_meta.get("type")
    meta["configuration"] = configuration
    info_key = next((key for key in ADDITIONAL_INFO_KEYS if key in base_meta), "additionalInfo")
    meta[info_key] = {**get_additional_info(template_meta), **get_additional_info(base_meta)}

    updated.nodes = [entry.copy(label=meta["name"],
                                node_type=meta["type"],
                                section=NODE_SECTION_BY_TYPE.get(meta["type"]) if meta["type"] else None,
                                meta=meta,
                                validation_errors=validate_node_config(meta["type"], configuration))
                     if entry.id == node_id else entry for entry in updated.nodes]
    return updated


def next_node_position(nodes: List[Dict[str, Any]]):
    if not nodes:
        return EMPTY_CHAIN_POSITION
    x, y = get_layout(nodes[-1])
    return (x or 0) + NODE_SPACING_X, y or 0


def add_node(metadata: Dict[str, Any], template: Union[NodeTemplate, str]) -> Dict[str, Any]:
    """
    Appends a node built from a template (or a bare node type) after the last node.
    """
    if isinstance(template, str):
        node_type = template
        template = get_node_template(node_type) or NodeTemplate(label=node_type, node_type=node_type,
                                                                section="other", meta={"type": node_type})
    current_nodes = list(get_nodes(metadata))
    x, y = next_node_position(current_nodes)

    record = template.build_meta()
    record["additionalInfo"] = {**get_additional_info(record), "layoutX": x, "layoutY": y}

    updated = dict(metadata)
    updated["nodes"] = current_nodes + [record]
    return updated


def set_first_node(metadata: Dict[str, Any], index: int) -> Dict[str, Any]:
    nodes = get_nodes(metadata)
    if not 0 <= index < len(nodes):
        logger.warning("Cannot mark node %s as first: chain has %d node(s)", index, len(nodes))
        return dict(metadata)
    return with_first_node_index(metadata, index)


def normalize_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """
    Silently drops connections that reference missing nodes and resets an out-of-range first node to 0.
    """
    node_count = len(get_nodes(metadata))
    connections = []
    for connection in get_connections(metadata):
        from_index = to_index(get_value(connection, FROM_INDEX_KEYS))
        to_index_ = to_index(get_value(connection, TO_INDEX_KEYS))
        if from_index is None or to_index_ is None:
            continue
        if 0 <= from_index < node_count and 0 <= to_index_ < node_count:
            connections.append(connection)

    chain_connections = []
    for entry in get_rule_chain_connections(metadata):
        view = RuleChainConnectionView.from_entry(0, entry)
        if view is not None and 0 <= view.from_index < node_count:
            chain_connections.append(entry)

    updated = dict(metadata)
    updated["connections"] = connections
    updated = with_rule_chain_connections(updated, chain_connections)

    first_node_index = get_first_node_index(metadata)
    if first_node_index is None or not 0 <= first_node_index < node_count:
        updated = with_first_node_index(updated, 0)
    return updated


def list_rule_chain_connections(metadata: Dict[str, Any]) -> List[RuleChainConnectionView]:
    views = []
    for index, entry in enumerate(get_rule_chain_connections(metadata)):
        view = RuleChainConnectionView.from_entry(index, entry)
        if view is not None:
            views.append(view)
    return views


def upsert_rule_chain_connection(metadata: Dict[str, Any],
                                 from_index: int,
                                 target_rule_chain_id: Union[int, str],
                                 relation: Optional[str] = None,
                                 index: Optional[int] = None) -> Dict[str, Any]:
    """
    Adds a connection into another rule chain, or replaces the entry at ``index``.
    """
    if target_rule_chain_id is None or target_rule_chain_id == "":
        raise ValueError("Target rule chain id is required")
    if isinstance(target_rule_chain_id, str):
        parsed = to_index(target_rule_chain_id)
        target_rule_chain_id = parsed if parsed is not None else target_rule_chain_id.strip()

    connections = list(get_rule_chain_connections(metadata))
    existing = connections[index] if index is not None and 0 <= index < len(connections) else None
    entry = RuleChainConnectionView.build_entry(existing, from_index, target_rule_chain_id,
                                                relation or DEFAULT_CHAIN_RELATION)
    if existing is not None:
        connections[index] = entry
    else:
        connections.append(entry)
    return with_rule_chain_connections(metadata, connections)


def delete_rule_chain_connection(metadata: Dict[str, Any], index: int) -> Dict[str, Any]:
    connections = [entry for position, entry in enumerate(get_rule_chain_connections(metadata))
                   if position != index]
    return with_rule_chain_connections(metadata, connections)
