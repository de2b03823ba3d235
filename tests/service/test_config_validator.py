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

from tb_rule_chain.constants.node_types import NODE_TEMPLATES, RULE_CHAIN_INPUT
from tb_rule_chain.service.config_validator import (
    NODE_CONFIG_VALIDATORS,
    validate_node_config,
    validate_node_config_text,
)


def test_timeseries_requires_ts_path_only_without_server_timestamp():
    config = {"deviceIdPath": "d", "useServerTs": False}

    assert validate_node_config("Telemetry.MsgTimeseriesNode", config) == ["tsPath is required"]

    config["tsPath"] = "t"
    assert validate_node_config("Telemetry.MsgTimeseriesNode", config) == []

    assert validate_node_config("Telemetry.MsgTimeseriesNode", {"deviceIdPath": "d", "useServerTs": True}) == []


def test_timeseries_is_deterministic():
    config = {"deviceIdPath": "d", "useServerTs": False}

    first = validate_node_config("Telemetry.MsgTimeseriesNode", config)
    second = validate_node_config("Telemetry.MsgTimeseriesNode", dict(config))

    assert first == second


def test_timeseries_accepts_snake_case_keys():
    config = {"device_id_path": "d", "use_server_ts": False, "ts_path": "t"}

    assert validate_node_config("Telemetry.MsgTimeseriesNode", config) == []


def test_timeseries_values_are_validated_element_wise():
    config = {
        "deviceIdPath": "d",
        "useServerTs": True,
        "values": [
            {"key": "temperature", "valuePath": "$.t", "valueType": "double"},
            {"key": 1, "value_path": "$.h"},
            "humidity",
        ],
    }

    assert validate_node_config("Telemetry.MsgTimeseriesNode", config) == [
        "values[1].key must be a string",
        "values[1].valueType is required",
        "values[2] must be an object",
    ]


def test_timeseries_values_must_be_an_array():
    config = {"deviceIdPath": "d", "useServerTs": True, "valueMappings": {"key": "t"}}

    assert validate_node_config("Telemetry.MsgTimeseriesNode", config) == ["values must be an array"]


def test_legacy_timeseries_configuration_is_accepted():
    assert validate_node_config("Telemetry.MsgTimeseriesNode", {"defaultTTL": 0}) == []
    assert validate_node_config("Telemetry.MsgTimeseriesNode", {"processingSettings": {"type": "ON_EVERY_MESSAGE"}}) == []


def test_timeseries_type_errors():
    errors = validate_node_config("Telemetry.MsgTimeseriesNode", {"deviceIdPath": 5, "useServerTs": "no"})

    assert errors == ["deviceIdPath must be a string", "useServerTs must be a boolean"]


def test_attributes_rules():
    errors = validate_node_config("Telemetry.MsgAttributesNode", {
        "processingSettings": {},
        "scope": "CLIENT_SCOPE",
        "notifyDevice": False,
        "sendAttributesUpdatedNotification": "yes",
        "attributes": [{"name": "fw", "valuePath": "$.fw"}, {"key": "location"}],
    })

    assert errors == [
        "processingSettings.type is required",
        "sendAttributesUpdatedNotification must be a boolean",
        "updateAttributesOnlyOnValueChange is required",
        "attributes[1].path is required",
    ]


def test_attributes_without_processing_settings():
    errors = validate_node_config("Telemetry.MsgAttributesNode", {"processingSettings": "x"})

    assert errors[0] == "processingSettings is required"
    assert "scope is required" in errors


@pytest.mark.parametrize("node_type, config, expected", [
    ("Filter.MsgTypeSwitchNode", {"version": "1"}, ["version must be a number"]),
    ("Filter.MsgTypeSwitchNode", {}, []),
    ("Action.LogNode", {"label": 1, "message": 2}, ["label must be a string", "messageTemplate must be a string"]),
    ("Rpc.SendRPCRequestNode", {}, ["timeoutInSeconds is required"]),
    ("Rpc.SendRPCRequestNode", {"timeoutInSeconds": True}, ["timeoutInSeconds must be a number"]),
    ("Transform.TransformMsgNode", {}, ["script is required"]),
    ("Filter.JsFilterNode", {"script": 1}, ["script must be a string"]),
    ("Filter.MsgTypeFilterNode", {"messageTypes": "POST_TELEMETRY"}, ["messageTypes must be an array"]),
    ("Delay.MsgDelayNode", {"periodInSeconds": 1, "maxPendingMsgs": 10, "periodInSecondsPattern": 3},
     ["periodInSecondsPattern must be a string", "useMetadataPeriodInSecondsPatterns is required"]),
    ("Flow.RuleChainInputNode", {"ruleChainId": "", "forwardMsgToDefaultRuleChain": False},
     ["ruleChainId is required"]),
    ("Rest.RestApiCallNode", {"restEndpointUrlPattern": "http://x", "requestMethod": "POST", "headers": []},
     ["headers must be an object"]),
    ("Mail.MsgToEmailNode", {"toTemplate": "a", "subjectTemplate": "b", "mailBodyType": False},
     ["bodyTemplate is required", "mailBodyType must be a string"]),
    ("Mail.SendEmailNode", {"timeout": "10"}, ["timeout must be a number"]),
    ("Sms.SendSmsNode", {"numbersToTemplate": "+1", "endpointUrl": 1},
     ["smsMessageTemplate is required", "endpointUrl must be a string"]),
    ("Telegram.SendTelegramNode", {"messageTemplate": "hi", "botToken": 1, "chatIdTemplate": None},
     ["botToken must be a string"]),
])
def test_node_type_rules(node_type, config, expected):
    assert validate_node_config(node_type, config) == expected


def test_unknown_node_types_are_accepted():
    assert validate_node_config("Custom.UnknownNode", {"anything": object()}) == []
    assert validate_node_config(None, {}) == []
    assert validate_node_config("", {}) == []


def test_non_object_configuration_is_rejected():
    assert validate_node_config("Action.LogNode", ["label"]) == ["configuration must be an object"]


def test_template_defaults_are_valid_except_unset_rule_chain_target():
    for template in NODE_TEMPLATES:
        if template.node_type == RULE_CHAIN_INPUT:
            assert validate_node_config(RULE_CHAIN_INPUT, template.meta["configuration"]) == ["ruleChainId is required"]
        elif template.node_type in NODE_CONFIG_VALIDATORS:
            assert validate_node_config(template.node_type, template.meta["configuration"]) == [], template.node_type


def test_validate_text():
    assert validate_node_config_text("Rpc.SendRPCRequestNode", '{"timeoutInSeconds": 3}') == (
        {"timeoutInSeconds": 3}, [])
    assert validate_node_config_text("Rpc.SendRPCRequestNode", "  ") == ({}, ["timeoutInSeconds is required"])
    assert validate_node_config_text("Action.LogNode", "{oops") == (None, ["Invalid JSON"])
    assert validate_node_config_text("Action.LogNode", "[1]") == (None, ["configuration must be an object"])
