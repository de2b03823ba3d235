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

from typing import Dict, List, Optional

from tb_rule_chain.entities.node_template import NodeTemplate

# Node type identifiers
SAVE_TIMESERIES = "Telemetry.MsgTimeseriesNode"
SAVE_ATTRIBUTES = "Telemetry.MsgAttributesNode"
MSG_TYPE_SWITCH = "Filter.MsgTypeSwitchNode"
MSG_TYPE_FILTER = "Filter.MsgTypeFilterNode"
SCRIPT_FILTER = "Filter.JsFilterNode"
CHECK_MESSAGE = "Filter.CheckMessageNode"
CHECK_RELATION = "Filter.CheckRelationNode"
CHECK_ALARM_STATUS = "Filter.CheckAlarmStatusNode"
LOG = "Action.LogNode"
RPC_REQUEST = "Rpc.SendRPCRequestNode"
RPC_REPLY = "Rpc.SendRPCReplyNode"
TRANSFORM_MSG = "Transform.TransformMsgNode"
SPLIT_ARRAY = "Transform.SplitArrayToMsgNode"
DELAY = "Delay.MsgDelayNode"
RULE_CHAIN_INPUT = "Flow.RuleChainInputNode"
REST_API_CALL = "Rest.RestApiCallNode"
MSG_TO_EMAIL = "Mail.MsgToEmailNode"
SEND_EMAIL = "Mail.SendEmailNode"
SEND_SMS = "Sms.SendSmsNode"
SEND_TELEGRAM = "Telegram.SendTelegramNode"

EXTERNAL_NODE_TYPE = "external"
EXTERNAL_NODE_PREFIX = "chain-"

DEFAULT_RELATION = "Success"
DEFAULT_CHAIN_RELATION = "Forward"

RELATION_OPTIONS: List[str] = [
    "Success",
    "Failure",
    "True",
    "False",
    "Post telemetry",
    "Post attributes",
    "RPC Request from Device",
    "RPC Request to Device",
    "Missing",
    "Other",
    "Forward",
]

NODE_RELATION_OVERRIDES: Dict[str, List[str]] = {
    MSG_TYPE_FILTER: ["True", "False", "Missing"],
    MSG_TYPE_SWITCH: [
        "Post telemetry",
        "Post attributes",
        "RPC Request from Device",
        "RPC Request to Device",
        "Other",
        "Missing",
    ],
    SCRIPT_FILTER: ["True", "False"],
    CHECK_MESSAGE: ["True", "False"],
    CHECK_RELATION: ["True", "False"],
    CHECK_ALARM_STATUS: ["True", "False"],
    SPLIT_ARRAY: ["Success", "Failure"],
}

SWITCH_BASE_RELATIONS = ["Other", "Missing"]

NODE_SECTIONS = [
    ("Storage", "storage"),
    ("Telemetry", "telemetry"),
    ("Filters", "filter"),
    ("Transform", "transform"),
    ("Math", "math"),
    ("Metadata", "metadata"),
    ("Relations", "relations"),
    ("Flow", "flow"),
    ("Actions", "action"),
    ("RPC", "rpc"),
]

# Layout
NODE_SPACING_X = 220
EXTERNAL_NODE_OFFSET_X = 280
EXTERNAL_NODE_OFFSET_Y = 80
EMPTY_CHAIN_POSITION = (120, 120)

DEFAULT_LOG_CONFIG = {"label": "Incoming message"}
DEFAULT_SCRIPT_CONFIG = {"script": ".payload"}
DEFAULT_JS_FILTER_CONFIG = {"script": ".payload.temperature > 20"}
DEFAULT_MSG_TYPE_FILTER_CONFIG = {
    "messageTypes": ["POST_ATTRIBUTES_REQUEST", "POST_TELEMETRY_REQUEST", "TO_SERVER_RPC_REQUEST"],
}
DEFAULT_DELAY_CONFIG = {
    "periodInSeconds": 60,
    "maxPendingMsgs": 1000,
    "periodInSecondsPattern": "",
    "useMetadataPeriodInSecondsPatterns": False,
}
DEFAULT_REST_API_CONFIG = {
    "restEndpointUrlPattern": "http://localhost/api",
    "requestMethod": "POST",
    "headers": {"Content-Type": "application/json"},
    "useSimpleClientHttpFactory": False,
    "readTimeoutMs": 0,
    "maxParallelRequestsCount": 0,
    "parseToPlainText": False,
    "enableProxy": False,
    "credentials": {"type": "anonymous"},
    "ignoreRequestBody": False,
    "maxInMemoryBufferSizeInKb": 256,
}
DEFAULT_EMAIL_TO_CONFIG = {
    "fromTemplate": "info@example.com",
    "toTemplate": "${userEmail}",
    "ccTemplate": "",
    "bccTemplate": "",
    "subjectTemplate": "Device ${deviceName} alert",
    "bodyTemplate": "Device ${deviceName} has high temperature $[temperature]",
    "isHtmlTemplate": "false",
    "mailBodyType": "false",
}
DEFAULT_EMAIL_SEND_CONFIG = {
    "endpointUrl": "http://localhost:8090/webhooks/email",
    "headers": {"Content-Type": "application/json"},
    "timeout": 10000,
}
DEFAULT_SMS_SEND_CONFIG = {
    "numbersToTemplate": "${userPhone}",
    "smsMessageTemplate": "Device ${deviceName} has high temperature $[temperature]",
    "endpointUrl": "http://localhost:8090/webhooks/sms",
    "headers": {"Content-Type": "application/json"},
    "timeout": 10000,
}
DEFAULT_TELEGRAM_CONFIG = {
    "botToken": "",
    "chatIdTemplate": "",
    "messageTemplate": "Device ${deviceName} has high temperature $[temperature]",
    "parseMode": "MarkdownV2",
    "timeout": 10000,
}
DEFAULT_RULE_CHAIN_INPUT_CONFIG = {"ruleChainId": "", "forwardMsgToDefaultRuleChain": False}
DEFAULT_DEVICE_PROFILE_CONFIG = {
    "fetchTo": "METADATA",
    "deviceKey": "device",
    "profileKey": "device_model",
    "includeDevice": True,
    "includeProfile": True,
}
DEFAULT_SAVE_TIMESERIES_CONFIG = {
    "deviceIdPath": "device_id",
    "useServerTs": True,
    "tsPath": "",
    "values": [],
}
DEFAULT_SAVE_ATTRIBUTES_CONFIG = {
    "processingSettings": {"type": "ON_EVERY_MESSAGE"},
    "scope": "CLIENT_SCOPE",
    "notifyDevice": False,
    "sendAttributesUpdatedNotification": False,
    "updateAttributesOnlyOnValueChange": True,
}


def _template(label: str, node_type: str, section: str, configuration: Optional[dict] = None,
              configuration_version: Optional[int] = None) -> NodeTemplate:
    meta = {"type": node_type, "name": label, "configuration": configuration or {}}
    if configuration_version is not None:
        meta["configurationVersion"] = configuration_version
    return NodeTemplate(label=label, node_type=node_type, section=section, meta=meta)


NODE_TEMPLATES: List[NodeTemplate] = [
    _template("Save Timeseries", SAVE_TIMESERIES, "storage", DEFAULT_SAVE_TIMESERIES_CONFIG, 1),
    _template("Save Client Attributes", SAVE_ATTRIBUTES, "storage", DEFAULT_SAVE_ATTRIBUTES_CONFIG, 3),
    _template("Message Type Switch", MSG_TYPE_SWITCH, "filter", {"version": 0}),
    _template("Log", LOG, "action", DEFAULT_LOG_CONFIG),
    _template("RPC Call Request", RPC_REQUEST, "rpc", {"timeoutInSeconds": 60}),
    _template("RPC Reply", RPC_REPLY, "rpc", {"status": 200, "headers": {}, "body": "{}"}),
    _template("Transform Message", TRANSFORM_MSG, "transform", DEFAULT_SCRIPT_CONFIG),
    _template("Script Filter", SCRIPT_FILTER, "filter", DEFAULT_JS_FILTER_CONFIG),
    _template("Message Type Filter", MSG_TYPE_FILTER, "filter", DEFAULT_MSG_TYPE_FILTER_CONFIG),
    _template("Delay", DELAY, "flow", DEFAULT_DELAY_CONFIG),
    _template("Checkpoint", "Flow.CheckpointNode", "flow"),
    _template("Rule Chain", RULE_CHAIN_INPUT, "flow", DEFAULT_RULE_CHAIN_INPUT_CONFIG),
    _template("Rule Chain Output", "Flow.RuleChainOutputNode", "flow"),
    _template("Ack", "Flow.AckNode", "flow"),
    _template("REST API Call", REST_API_CALL, "action", DEFAULT_REST_API_CONFIG),
    _template("To Email", MSG_TO_EMAIL, "action", DEFAULT_EMAIL_TO_CONFIG),
    _template("Send Email", SEND_EMAIL, "action", DEFAULT_EMAIL_SEND_CONFIG),
    _template("Send SMS", SEND_SMS, "action", DEFAULT_SMS_SEND_CONFIG),
    _template("Send Telegram", SEND_TELEGRAM, "action", DEFAULT_TELEGRAM_CONFIG),
    _template("Asset Type Switch", "Filter.AssetTypeSwitchNode", "filter"),
    _template("Check Message", CHECK_MESSAGE, "filter"),
    _template("Check Alarm Status", CHECK_ALARM_STATUS, "filter"),
    _template("Device Type Switch", "Filter.DeviceTypeSwitchNode", "filter"),
    _template("Create Alarm", "Action.CreateAlarmNode", "action"),
    _template("Clear Alarm", "Action.ClearAlarmNode", "action"),
    _template("Message Count", "Action.MsgCountNode", "action"),
    _template("Device State", "Action.DeviceStateNode", "action"),
    _template("Kafka", "Kafka.KafkaNode", "action"),
    _template("Create Relation", "Action.CreateRelationNode", "relations"),
    _template("Delete Relation", "Action.DeleteRelationNode", "relations"),
    _template("Check Relation", CHECK_RELATION, "relations"),
    _template("Math", "Math.MathNode", "math"),
    _template("Calculate Delta", "Metadata.CalculateDeltaNode", "math"),
    _template("Get Attributes", "Metadata.GetAttributesNode", "metadata"),
    _template("Get Device Attributes", "Metadata.GetDeviceAttrNode", "metadata"),
    _template("Get Related Attributes", "Metadata.GetRelatedAttributeNode", "metadata"),
    _template("Get Telemetry", "Metadata.GetTelemetryNode", "metadata"),
    _template("Fetch Device Credentials", "Metadata.FetchDeviceCredentialsNode", "metadata", {"fetchTo": "METADATA"}),
    _template("Device Profile", "Profile.DeviceProfileNode", "metadata", DEFAULT_DEVICE_PROFILE_CONFIG),
    _template("Calculated Fields", "Telemetry.CalculatedFieldsNode", "telemetry"),
    _template("Delete Attributes", "Telemetry.MsgDeleteAttributesNode", "telemetry"),
    _template("Copy Keys", "Transform.CopyKeysNode", "transform"),
    _template("Delete Keys", "Transform.DeleteKeysNode", "transform"),
    _template("Rename Keys", "Transform.RenameKeysNode", "transform"),
    _template("SplitArrayToMsg", SPLIT_ARRAY, "transform"),
    _template("Message Deduplication", "Deduplication.MsgDeduplicationNode", "transform"),
]

NODE_TEMPLATES_BY_TYPE: Dict[str, NodeTemplate] = {template.node_type: template for template in NODE_TEMPLATES}
NODE_SECTION_BY_TYPE: Dict[str, str] = {template.node_type: template.section for template in NODE_TEMPLATES}


def get_node_template(node_type: Optional[str]) -> Optional[NodeTemplate]:
    if not node_type:
        return None
    return NODE_TEMPLATES_BY_TYPE.get(node_type)


DEFAULT_METADATA_TEMPLATE = {
    "firstNodeIndex": 2,
    "nodes": [
        {
            "additionalInfo": {"layoutX": 824, "layoutY": 156},
            "type": SAVE_TIMESERIES,
            "name": "Save Timeseries",
            "configurationVersion": 1,
            "configuration": DEFAULT_SAVE_TIMESERIES_CONFIG,
        },
        {
            "additionalInfo": {"layoutX": 825, "layoutY": 52},
            "type": SAVE_ATTRIBUTES,
            "name": "Save Client Attributes",
            "configurationVersion": 3,
            "configuration": DEFAULT_SAVE_ATTRIBUTES_CONFIG,
        },
        {
            "additionalInfo": {"layoutX": 347, "layoutY": 149},
            "type": MSG_TYPE_SWITCH,
            "name": "Message Type Switch",
            "configuration": {"version": 0},
        },
        {
            "additionalInfo": {"layoutX": 825, "layoutY": 266},
            "type": LOG,
            "name": "Log RPC from Device",
            "configuration": DEFAULT_LOG_CONFIG,
        },
        {
            "additionalInfo": {"layoutX": 825, "layoutY": 379},
            "type": LOG,
            "name": "Log Other",
            "configuration": DEFAULT_LOG_CONFIG,
        },
        {
            "additionalInfo": {"layoutX": 825, "layoutY": 468},
            "type": RPC_REQUEST,
            "name": "RPC Call Request",
            "configuration": {"timeoutInSeconds": 60},
        },
    ],
    "connections": [
        {"fromIndex": 2, "toIndex": 4, "type": "Other"},
        {"fromIndex": 2, "toIndex": 1, "type": "Post attributes"},
        {"fromIndex": 2, "toIndex": 0, "type": "Post telemetry"},
        {"fromIndex": 2, "toIndex": 3, "type": "RPC Request from Device"},
        {"fromIndex": 2, "toIndex": 5, "type": "RPC Request to Device"},
    ],
    "ruleChainConnections": [],
}
