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

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from tb_rule_chain.constants.node_types import DEFAULT_CHAIN_RELATION
from tb_rule_chain.entities.rule_chain_metadata import (
    ADDITIONAL_INFO_KEYS,
    FROM_INDEX_KEYS,
    TARGET_RULE_CHAIN_KEYS,
    get_value,
    to_index,
)


@dataclass(frozen=True)
class RuleChainConnectionView:
    """
    Normalized view of one ``ruleChainConnections`` entry: an edge from a node of this chain into another chain.
    """
    index: int
    from_index: int
    target_rule_chain_id: Union[int, str]
    type: str = DEFAULT_CHAIN_RELATION
    additional_info: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_entry(cls, index: int, entry: Dict[str, Any]) -> Optional['RuleChainConnectionView']:
        from_index = to_index(get_value(entry, FROM_INDEX_KEYS))
        target = get_value(entry, TARGET_RULE_CHAIN_KEYS)
        if from_index is None or target is None:
            return None
        additional_info = get_value(entry, ADDITIONAL_INFO_KEYS)
        return cls(index=index,
                   from_index=from_index,
                   target_rule_chain_id=target,
                   type=get_value(entry, ("type",)) or DEFAULT_CHAIN_RELATION,
                   additional_info=additional_info if isinstance(additional_info, dict) else {},
                   raw=entry)

    @staticmethod
    def build_entry(existing: Optional[Dict[str, Any]],
                    from_index: int,
                    target_rule_chain_id: Union[int, str],
                    relation: str) -> Dict[str, Any]:
        """
        Produces a stored entry, keeping the key convention of the entry being replaced.
        """
        entry = dict(existing or {})
        use_snake = "from_index" in entry or "target_rule_chain_id" in entry
        additional_info = entry.get("additional_info") or entry.get("additionalInfo") or {}
        for key in ("from_index", "target_rule_chain_id", "additional_info",
                    "fromIndex", "targetRuleChainId", "additionalInfo"):
            entry.pop(key, None)
        if use_snake:
            entry["from_index"] = from_index
            entry["target_rule_chain_id"] = target_rule_chain_id
            entry["additional_info"] = additional_info
        else:
            entry["fromIndex"] = from_index
            entry["targetRuleChainId"] = target_rule_chain_id
            entry["additionalInfo"] = additional_info
        entry["type"] = relation
        return entry
