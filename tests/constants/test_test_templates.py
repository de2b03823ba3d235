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

from tb_rule_chain.constants.json_typing import validate_json_compatibility
from tb_rule_chain.constants.test_templates import TEST_MESSAGE_VARIANTS, TEST_REQUIRED_FIELDS, TEST_TEMPLATES
from tb_rule_chain.entities.test_message import TestProtocol


@pytest.mark.parametrize("protocol", list(TestProtocol))
def test_every_protocol_has_catalog(protocol):
    assert protocol in TEST_TEMPLATES
    assert protocol in TEST_REQUIRED_FIELDS
    assert TEST_MESSAGE_VARIANTS[protocol]


@pytest.mark.parametrize("protocol", list(TestProtocol))
def test_templates_set_required_fields(protocol):
    template = TEST_TEMPLATES[protocol]
    required = TEST_REQUIRED_FIELDS[protocol]

    assert all(key in template.headers for key in required.headers)
    assert all(key in template.body for key in required.body)


@pytest.mark.parametrize("protocol", list(TestProtocol))
def test_variants_are_named_and_serializable(protocol):
    variants = TEST_MESSAGE_VARIANTS[protocol]
    names = [variant.name for variant in variants]

    assert all(names)
    assert len(names) == len(set(names))
    for variant in variants:
        validate_json_compatibility(variant.body)
        validate_json_compatibility(variant.headers)
