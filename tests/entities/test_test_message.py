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

import re

import pytest

from tb_rule_chain.entities.test_message import TestMessage, TestProtocol, generate_message_id


@pytest.mark.parametrize("value, expected", [
    ("mqtt", TestProtocol.MQTT),
    (" CoAP ", TestProtocol.COAP),
    (TestProtocol.SNMP, TestProtocol.SNMP),
    ("zigbee", TestProtocol.HTTP),
    (None, TestProtocol.HTTP),
    (3, TestProtocol.HTTP),
])
def test_protocol_normalization(value, expected):
    assert TestProtocol.normalize(value) is expected


def test_message_ids_are_short_and_unique():
    ids = {generate_message_id() for _ in range(50)}

    assert len(ids) == 50
    assert all(re.fullmatch(r"msg_[a-z0-9]{8}", message_id) for message_id in ids)


def test_message_defaults():
    message = TestMessage(name="Ping")

    assert (message.headers_text, message.body_text, message.message_type) == ("{}", "{}", "")
    assert message.id.startswith("msg_")


def test_copy_keeps_id_and_unchanged_fields():
    message = TestMessage(name="Ping", body_text='{"a": 1}', message_type="POST_TELEMETRY")

    copied = message.copy(name="Pong", message_type="")

    assert copied.id == message.id
    assert copied.name == "Pong"
    assert copied.body_text == '{"a": 1}'
    assert copied.message_type == ""
    assert message.name == "Ping"
