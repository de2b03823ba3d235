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

from typing import Any, Callable, Dict, List, Optional, Tuple

from tb_rule_chain.common.logging_utils import get_logger
from tb_rule_chain.constants import node_types
from tb_rule_chain.constants.json_typing import parse_json_text

logger = get_logger(__name__)

_MISSING = object()


def _first_present(source: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = source.get(key)
        if value is not None:
            return value
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class _ErrorCollector:
    def __init__(self):
        self.errors: List[str] = []

    def _require(self, value: Any, label: str, check: Callable[[Any], bool], kind: str):
        if value is None or value is _MISSING:
            self.errors.append(f"{label} is required")
        elif not check(value):
            self.errors.append(f"{label} must be {kind}")

    def _optional(self, value: Any, label: str, check: Callable[[Any], bool], kind: str):
        if value is not _MISSING and value is not None and not check(value):
            self.errors.append(f"{label} must be {kind}")

    def require_string(self, value, label):
        self._require(value, label, lambda v: isinstance(v, str), "a string")

    def require_number(self, value, label):
        self._require(value, label, _is_number, "a number")

    def require_boolean(self, value, label):
        self._require(value, label, lambda v: isinstance(v, bool), "a boolean")

    def optional_string(self, config, key, label=None):
        self._optional(config.get(key, _MISSING), label or key, lambda v: isinstance(v, str), "a string")

    def optional_number(self, config, key, label=None):
        self._optional(config.get(key, _MISSING), label or key, _is_number, "a number")

    def optional_object(self, config, key, label=None):
        self._optional(config.get(key, _MISSING), label or key, lambda v: isinstance(v, dict), "an object")

    def each_object(self, entries: List[Any], label: str, validate: Callable[[Dict[str, Any], str], None]):
        for index, entry in enumerate(entries):
            prefix = f"{label}[{index}]"
            if not isinstance(entry, dict):
                self.errors.append(f"{prefix} must be an object")
                continue
            validate(entry, prefix)


def _is_legacy_timeseries(config: Dict[str, Any]) -> bool:
    has_legacy_keys = "defaultTTL" in config or "processingSettings" in config
    has_current_keys = any(key in config for key in
                           ("deviceIdPath", "device_id_path", "values", "valueMappings", "value_mappings"))
    return has_legacy_keys and not has_current_keys


def _validate_save_timeseries(config, errors: _ErrorCollector):
    if _is_legacy_timeseries(config):
        return

    errors.require_string(_first_present(config, "deviceIdPath", "device_id_path"), "deviceIdPath")
    use_server_ts = _first_present(config, "useServerTs", "use_server_ts")
    errors.require_boolean(use_server_ts, "useServerTs")
    if use_server_ts is False:
        errors.require_string(_first_present(config, "tsPath", "ts_path"), "tsPath")

    values = _first_present(config, "values", "valueMappings", "value_mappings")
    if values is None:
        return
    if not isinstance(values, list):
        errors.errors.append("values must be an array")
        return

    def validate_value(entry, prefix):
        errors.require_string(entry.get("key"), f"{prefix}.key")
        errors.require_string(_first_present(entry, "valuePath", "value_path", "value"), f"{prefix}.valuePath")
        errors.require_string(_first_present(entry, "valueType", "value_type", "type"), f"{prefix}.valueType")

    errors.each_object(values, "values", validate_value)


def _validate_save_attributes(config, errors: _ErrorCollector):
    processing_settings = config.get("processingSettings")
    if not isinstance(processing_settings, dict):
        errors.errors.append("processingSettings is required")
    else:
        errors.require_string(processing_settings.get("type"), "processingSettings.type")
    errors.require_string(config.get("scope"), "scope")
    errors.require_boolean(config.get("notifyDevice"), "notifyDevice")
    errors.require_boolean(config.get("sendAttributesUpdatedNotification"), "sendAttributesUpdatedNotification")
    errors.require_boolean(config.get("updateAttributesOnlyOnValueChange"), "updateAttributesOnlyOnValueChange")

    attributes = _first_present(config, "attributes", "attributeMappings", "attribute_mappings", "fields")
    if attributes is None:
        return
    if not isinstance(attributes, list):
        errors.errors.append("attributes must be an array")
        return

    def validate_attribute(entry, prefix):
        errors.require_string(_first_present(entry, "key", "name", "type"), f"{prefix}.key")
        errors.require_string(_first_present(entry, "path", "valuePath", "value_path", "value"), f"{prefix}.path")

    errors.each_object(attributes, "attributes", validate_attribute)


def _validate_msg_type_switch(config, errors: _ErrorCollector):
    errors.optional_number(config, "version")


def _validate_log(config, errors: _ErrorCollector):
    errors.optional_string(config, "label")
    message_template = _first_present(config, "messageTemplate", "message_template", "message", "text")
    if message_template is not None and not isinstance(message_template, str):
        errors.errors.append("messageTemplate must be a string")


def _validate_rpc_request(config, errors: _ErrorCollector):
    errors.require_number(config.get("timeoutInSeconds"), "timeoutInSeconds")


def _validate_script(config, errors: _ErrorCollector):
    errors.require_string(config.get("script"), "script")


def _validate_msg_type_filter(config, errors: _ErrorCollector):
    if not isinstance(config.get("messageTypes"), list):
        errors.errors.append("messageTypes must be an array")


def _validate_delay(config, errors: _ErrorCollector):
    errors.require_number(config.get("periodInSeconds"), "periodInSeconds")
    errors.require_number(config.get("maxPendingMsgs"), "maxPendingMsgs")
    errors.optional_string(config, "periodInSecondsPattern")
    errors.require_boolean(config.get("useMetadataPeriodInSecondsPatterns"), "useMetadataPeriodInSecondsPatterns")


def _validate_rule_chain_input(config, errors: _ErrorCollector):
    if config.get("ruleChainId") in (None, ""):
        errors.errors.append("ruleChainId is required")
    errors.require_boolean(config.get("forwardMsgToDefaultRuleChain"), "forwardMsgToDefaultRuleChain")


def _validate_rest_api_call(config, errors: _ErrorCollector):
    errors.require_string(config.get("restEndpointUrlPattern"), "restEndpointUrlPattern")
    errors.require_string(config.get("requestMethod"), "requestMethod")
    errors.optional_object(config, "headers")


def _validate_msg_to_email(config, errors: _ErrorCollector):
    errors.require_string(config.get("toTemplate"), "toTemplate")
    errors.require_string(config.get("subjectTemplate"), "subjectTemplate")
    errors.require_string(config.get("bodyTemplate"), "bodyTemplate")
    errors.optional_string(config, "mailBodyType")


def _validate_delivery_settings(config, errors: _ErrorCollector):
    errors.optional_string(config, "endpointUrl")
    errors.optional_object(config, "headers")
    errors.optional_number(config, "timeout")


def _validate_send_sms(config, errors: _ErrorCollector):
    errors.require_string(config.get("numbersToTemplate"), "numbersToTemplate")
    errors.require_string(config.get("smsMessageTemplate"), "smsMessageTemplate")
    _validate_delivery_settings(config, errors)


def _validate_send_telegram(config, errors: _ErrorCollector):
    errors.require_string(config.get("messageTemplate"), "messageTemplate")
    errors.optional_string(config, "botToken")
    errors.optional_string(config, "chatIdTemplate")
    errors.optional_number(config, "timeout")


NODE_CONFIG_VALIDATORS: Dict[str, Callable[[Dict[str, Any], _ErrorCollector], None]] = {
    node_types.SAVE_TIMESERIES: _validate_save_timeseries,
    node_types.SAVE_ATTRIBUTES: _validate_save_attributes,
    node_types.MSG_TYPE_SWITCH: _validate_msg_type_switch,
    node_types.LOG: _validate_log,
    node_types.RPC_REQUEST: _validate_rpc_request,
    node_types.TRANSFORM_MSG: _validate_script,
    node_types.SCRIPT_FILTER: _validate_script,
    node_types.MSG_TYPE_FILTER: _validate_msg_type_filter,
    node_types.DELAY: _validate_delay,
    node_types.RULE_CHAIN_INPUT: _validate_rule_chain_input,
    node_types.REST_API_CALL: _validate_rest_api_call,
    node_types.MSG_TO_EMAIL: _validate_msg_to_email,
    node_types.SEND_EMAIL: _validate_delivery_settings,
    node_types.SEND_SMS: _validate_send_sms,
    node_types.SEND_TELEGRAM: _validate_send_telegram,
}


def validate_node_config(node_type: Optional[str], config: Any) -> List[str]:
    """
    Returns human readable problems found in a node configuration, empty when the configuration is
    acceptable. Node types without a registered validator are always accepted.
    """
    validator = NODE_CONFIG_VALIDATORS.get(node_type) if node_type else None
    if validator is None:
        return []
    if not isinstance(config, dict):
        return ["configuration must be an object"]

    errors = _ErrorCollector()
    validator(config, errors)
    if errors.errors:
        logger.debug("Configuration of %s has %d problem(s)", node_type, len(errors.errors))
    return errors.errors


def validate_node_config_text(node_type: Optional[str], text: str) -> Tuple[Optional[Dict[str, Any]], List[str]]:
    """
    Parses configuration text and validates the result.

    Blank text is an empty configuration. Text that is not a JSON object returns ``(None, [reason])``.
    """
    if not text or not text.strip():
        config = {}
    else:
        try:
            config = parse_json_text(text)
        except ValueError:
            return None, ["Invalid JSON"]
        if not isinstance(config, dict):
            return None, ["configuration must be an object"]
    return config, validate_node_config(node_type, config)
