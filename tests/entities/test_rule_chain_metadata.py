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

import pytest

from tb_rule_chain.entities.rule_chain_metadata import (
    FROM_INDEX_KEYS,
    get_additional_info,
    get_connections,
    get_first_node_index,
    get_layout,
    get_nodes,
    get_rule_chain_connections,
    get_value,
    remap_connection_indices,
    to_index,
    to_number,
    uses_snake_case,
    with_first_node_index,
    with_rule_chain_connections,
)


def test_get_value_skips_missing_and_null_keys():
    assert get_value({"fromIndex": None, "from_index": 2}, FROM_INDEX_KEYS) == 2
    assert get_value({"fromIndex": 0, "from_index": 2}, FROM_INDEX_KEYS) == 0
    assert get_value("not a dict", FROM_INDEX_KEYS) is None


@pytest.mark.parametrize("value, expected", [
    (3, 3),
    (2.5, 2.5),
    (" 4 ", 4),
    ("1.5", 1.5),
    ("abc", None),
    (True, None),
    (None, None),
    ("nan", None),
    ("Infinity", None),
    ("-inf", None),
    (float("nan"), None),
    (float("inf"), None),
])
def test_to_number(value, expected):
    assert to_number(value) == expected


@pytest.mark.parametrize("value, expected", [(2, 2), (2.0, 2), ("7", 7), (2.5, None), ("x", None), (False, None),
                                             ("nan", None), ("Infinity", None), (float("inf"), None)])
def test_to_index(value, expected):
    assert to_index(value) == expected


def test_readers_tolerate_malformed_documents():
    for document in (None, [], {"nodes": "x", "connections": {}, "ruleChainConnections": 5}):
        assert get_nodes(document) == []
        assert get_connections(document) == []
        assert get_rule_chain_connections(document) == []
        assert get_first_node_index(document) is None


def test_snake_case_documents_are_read():
    document = {"first_node_index": "1", "rule_chain_connections": [{"from_index": 0}]}

    assert get_first_node_index(document) == 1
    assert get_rule_chain_connections(document) == [{"from_index": 0}]
    assert uses_snake_case(document)
    assert not uses_snake_case({"ruleChainConnections": [], "rule_chain_connections": []})


def test_layout_accepts_both_conventions():
    assert get_layout({"additionalInfo": {"layoutX": 10, "layoutY": "20"}}) == (10, 20)
    assert get_layout({"additional_info": {"layout_x": 1.5, "layout_y": 2}}) == (1.5, 2)
    assert get_layout({"additionalInfo": "broken"}) == (None, None)
    assert get_additional_info(None) == {}


def test_with_first_node_index_keeps_key_convention():
    assert with_first_node_index({"first_node_index": 0}, 2) == {"first_node_index": 2}
    assert with_first_node_index({}, 1) == {"firstNodeIndex": 1}

    original = {"firstNodeIndex": 0}
    with_first_node_index(original, 3)
    assert original == {"firstNodeIndex": 0}


def test_with_rule_chain_connections_keeps_key_convention():
    entries = [{"fromIndex": 0, "targetRuleChainId": 5}]

    assert with_rule_chain_connections({"rule_chain_connections": []}, entries) == {"rule_chain_connections": entries}
    assert with_rule_chain_connections({"nodes": []}, entries) == {"nodes": [], "ruleChainConnections": entries}


def test_remap_connection_indices_rewrites_existing_keys():
    entry = {"from_index": 2, "to_index": 3, "type": "Success"}

    assert remap_connection_indices(entry, {2: 0, 3: 1}) == {"from_index": 0, "to_index": 1, "type": "Success"}
    assert remap_connection_indices({"fromIndex": 4}, {2: 0}) == {"fromIndex": 4}
