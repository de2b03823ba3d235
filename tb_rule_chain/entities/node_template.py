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

from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass(frozen=True)
class NodeTemplate:
    label: str
    node_type: str
    section: str
    meta: Dict[str, Any] = field(default_factory=dict)

    def build_meta(self) -> Dict[str, Any]:
        """
        Returns a fresh node record for this template, safe to mutate.
        """
        meta = deepcopy(self.meta)
        meta.setdefault("type", self.node_type)
        meta.setdefault("name", self.label)
        meta.setdefault("configuration", {})
        return meta
