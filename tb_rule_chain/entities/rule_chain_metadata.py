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
Accessors for the stored rule chain document.

The document is kept as a plain dict so keys this package does not know about survive a round trip.
Every field may be written in camelCase or snake_case; readers accept both and writers keep the
convention already present in the document.
"""

from math import isfinite
from typing import Any, Dict, Iterable, List, Optional

FIRST_NODE_INDEX_KEYS = ("firstNodeIndex", "first_node_index")
FROM_INDEX_KEYS = ("fromIndex", "from_index")
TO_INDEX_KEYS = ("toIndex", "to_index")
TARGET_RULE_CHAIN_KEYS = ("targetRuleChainId", "target_rule_chain_id")
ADDITIONAL_INFO_KEYS = ("additionalInfo", "additional_info")
RULE_CHAIN_CONNECTIONS_KEYS = ("ruleChainConnections", "rule_chain_connections")


def get_value(obj: Optional[Dict[str, Any]], keys: Iterable[str]) -> Any:
    """
    Returns the first non-null value found under any of the given keys.
    """
    if not isinstance(obj, dict):
        return None
    for key in keys:
        value = obj.get(key)
        if value is not None:
            return value
    return None


def to_number(value: Any) -> Optional[float]:
    """
    Coerces a stored number or numeric string, None for anything else including NaN and infinities.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        if not isfinite(parsed):
            return None
        return int(parsed) if parsed.is_integer() else parsed
    return None


def to_index(value: Any) -> Optional[int]:
    """
    Coerces a stored index (number or numeric string) to int, None when it is not a whole number.
    """
    number = to_number(value)
    if number is None or number != int(number):
        return None
    return int(number)


def uses_snake_case(metadata: Dict[str, Any]) -> bool:
    return "rule_chain_connections" in metadata and "ruleChainConnections" not in metadata


def get_nodes(metadata: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    nodes = metadata.get("nodes") if isinstance(metadata, dict) else None
    return nodes if isinstance(nodes, list) else []


def get_connections(metadata: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    connections = metadata.get("connections") if isinstance(metadata, dict) else None
    return connections if isinstance(connections, list) else []


def get_rule_chain_connections(metadata: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    connections = get_value(metadata, RULE_CHAIN_CONNECTIONS_KEYS)
    return connections if isinstance(connections, list) else []


def get_first_node_index(metadata: Optional[Dict[str, Any]]) -> Optional[int]:
    return to_index(get_value(metadata, FIRST_NODE_INDEX_KEYS))


def get_additional_info(node: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    info = get_value(node, ADDITIONAL_INFO_KEYS)
    return info if isinstance(info, dict) else {}


def get_layout(node: Optional[Dict[str, Any]]):
    info = get_additional_info(node)
    x = to_number(info.get("layoutX", info.get("layout_x")))
    y = to_number(info.get("layoutY", info.get("layout_y")))
    return x, y


def with_first_node_index(metadata: Dict[str, Any], index: int) -> Dict[str, Any]:
    updated = dict(metadata)
    if "firstNodeIndex" in updated:
        updated["firstNodeIndex"] = index
    elif "first_node_index" in updated:
        updated["first_node_index"] = index
    else:
        updated["firstNodeIndex"] = index
    return updated


def with_rule_chain_connections(metadata: Dict[str, Any], connections: List[Dict[str, Any]]) -> Dict[str, Any]:
    updated = dict(metadata)
    if uses_snake_case(metadata):
        updated["rule_chain_connections"] = connections
        updated.pop("ruleChainConnections", None)
    else:
        updated["ruleChainConnections"] = connections
        updated.pop("rule_chain_connections", None)
    return updated


def remap_connection_indices(connection: Dict[str, Any], index_map: Dict[int, int]) -> Dict[str, Any]:
    """
    Rewrites the from/to index of a connection entry in place of its existing keys.
    """
    updated = dict(connection)
    for keys in (FROM_INDEX_KEYS, TO_INDEX_KEYS):
        for key in keys:
            old = to_index(updated.get(key))
            if old is not None and old in index_map:
                updated[key] = index_map[old]
    return updated
