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

import secrets
import string
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

_ID_ALPHABET = string.ascii_lowercase + string.digits


class TestProtocol(str, Enum):
    """
    Transport a synthetic message is shaped after.
    """
    __test__ = False

    HTTP = "http"
    MQTT = "mqtt"
    COAP = "coap"
    LWM2M = "lwm2m"
    SNMP = "snmp"

    @classmethod
    def normalize(cls, value) -> 'TestProtocol':
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.HTTP


def generate_message_id() -> str:
    return "msg_" + "".join(secrets.choice(_ID_ALPHABET) for _ in range(8))


@dataclass
class TestMessage:
    """
    One synthetic input of a test run. Headers and body are kept as the text the user typed,
    they are parsed only when the run starts.
    """
    __test__ = False

    name: str
    headers_text: str = "{}"
    body_text: str = "{}"
    message_type: str = ""
    id: str = field(default_factory=generate_message_id)

    def copy(self, name: Optional[str] = None, headers_text: Optional[str] = None,
             body_text: Optional[str] = None, message_type: Optional[str] = None) -> 'TestMessage':
        return TestMessage(
            id=self.id,
            name=self.name if name is None else name,
            headers_text=self.headers_text if headers_text is None else headers_text,
            body_text=self.body_text if body_text is None else body_text,
            message_type=self.message_type if message_type is None else message_type,
        )
