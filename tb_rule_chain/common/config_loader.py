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

import os
from typing import Optional


DEFAULT_API_URL = "http://localhost:8080/api/v1"
DEFAULT_TIMEOUT = 30.0
DEFAULT_NODE_AUTOSAVE_DELAY = 0.4
DEFAULT_EDGE_AUTOSAVE_DELAY = 0.35
DEFAULT_METADATA_AUTOSAVE_DELAY = 0.8


class EditorConfig:
    """
    Configuration of a rule chain editing session.
    Values come from the optional config dict first and are overridden by environment variables,
    so the same session code can run against different deployments without changes.
    Delays are in seconds.
    """
    def __init__(self, config: Optional[dict] = None):
        config = config or {}

        self.api_url: str = config.get("api_url", DEFAULT_API_URL)
        self.api_token: Optional[str] = config.get("api_token")
        self.timeout: float = float(config.get("timeout", DEFAULT_TIMEOUT))

        # Debounce delays per autosave channel
        self.node_autosave_delay: float = float(config.get("node_autosave_delay", DEFAULT_NODE_AUTOSAVE_DELAY))
        self.edge_autosave_delay: float = float(config.get("edge_autosave_delay", DEFAULT_EDGE_AUTOSAVE_DELAY))
        self.metadata_autosave_delay: float = float(config.get("metadata_autosave_delay",
                                                               DEFAULT_METADATA_AUTOSAVE_DELAY))

        if os.getenv("TB_RULE_CHAIN_API_URL") is not None:
            self.api_url = os.getenv("TB_RULE_CHAIN_API_URL")
        if os.getenv("TB_RULE_CHAIN_API_TOKEN") is not None:
            self.api_token = os.getenv("TB_RULE_CHAIN_API_TOKEN")
        if os.getenv("TB_RULE_CHAIN_TIMEOUT") is not None:
            self.timeout = float(os.getenv("TB_RULE_CHAIN_TIMEOUT"))

        if os.getenv("TB_NODE_AUTOSAVE_DELAY") is not None:
            self.node_autosave_delay = float(os.getenv("TB_NODE_AUTOSAVE_DELAY"))
        if os.getenv("TB_EDGE_AUTOSAVE_DELAY") is not None:
            self.edge_autosave_delay = float(os.getenv("TB_EDGE_AUTOSAVE_DELAY"))
        if os.getenv("TB_METADATA_AUTOSAVE_DELAY") is not None:
            self.metadata_autosave_delay = float(os.getenv("TB_METADATA_AUTOSAVE_DELAY"))

        self.api_url = self.api_url.rstrip("/")

    def use_auth(self) -> bool:
        return bool(self.api_token)

    def __repr__(self):
        return (f"EditorConfig(api_url={self.api_url}, "
                f"auth={'token' if self.use_auth() else 'anonymous'} "
                f"timeout={self.timeout} "
                f"delays=({self.node_autosave_delay}, {self.edge_autosave_delay}, {self.metadata_autosave_delay}))")
