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
from enum import Enum
from typing import Any, Dict, Optional

from tb_rule_chain.common.logging_utils import get_logger
from tb_rule_chain.constants.json_typing import parse_json_text, to_pretty_json, validate_json_compatibility
from tb_rule_chain.constants.node_types import DEFAULT_METADATA_TEMPLATE
from tb_rule_chain.entities.graph import RuleChainGraph
from tb_rule_chain.service.graph_model import ChainNames, build_graph, build_metadata_from_graph, rebase_graph

logger = get_logger(__name__)

INVALID_JSON_ERROR = "Invalid JSON"
NOT_AN_OBJECT_ERROR = "Metadata must be a JSON object"


class SyncAuthority(Enum):
    SERVER = "server"
    TEXT = "text"
    GRAPH = "graph"
    NONE = None


class TextSyncController:
    """
    Keeps the in-memory rule chain document, its JSON text and its graph projection consistent.

    Every update records which representation it came from before touching the document, so that
    regenerating the other representations never feeds back into the one that triggered it:

    * server data overwrites text, document and graph unconditionally;
    * parsed text replaces the document and the graph is rebuilt from it;
    * graph edits only mark the graph dirty; ``flush_graph`` writes document and text once and the
      graph itself is left as is.

    Text that does not parse is kept verbatim in ``text`` with ``text_error`` set and never reaches
    the document.
    """

    def __init__(self, chain_names: Optional[ChainNames] = None):
        self.metadata: Optional[Dict[str, Any]] = None
        self.text: str = ""
        self.version_text: str = ""
        self.text_error: Optional[str] = None
        self.graph = RuleChainGraph()
        self.authority = SyncAuthority.NONE
        self.graph_dirty = False
        self._chain_names: Dict = dict(chain_names or {})

    @property
    def chain_names(self) -> Dict:
        return self._chain_names

    def set_chain_names(self, chain_names: ChainNames):
        self.flush_graph()
        self._chain_names = dict(chain_names or {})
        if self.metadata is not None:
            self.graph = build_graph(self.metadata, self._chain_names)

    def apply_server(self, response: Optional[Dict[str, Any]], not_found: bool = False):
        """
        Loads a server response (``{"version": ..., "metadata": ...}``). Any local edit is discarded.
        A missing document, or ``not_found``, loads the default rule chain.
        """
        response = response or {}
        stored = response.get("metadata")
        version = response.get("version")

        self.authority = SyncAuthority.SERVER
        self.graph_dirty = False
        if stored and not not_found:
            metadata = stored
        else:
            logger.debug("No stored metadata, loading default rule chain")
            metadata = deepcopy(DEFAULT_METADATA_TEMPLATE)
        self.text = to_pretty_json(metadata)
        self.version_text = str(version) if version is not None else ""
        self.text_error = None
        self._set_metadata(metadata)

    def apply_text(self, text: str) -> bool:
        """
        Handles an edit of the metadata text. Returns True when the text was promoted to the document.
        """
        self.text = text
        if not text.strip():
            self.text_error = None
            return False

        try:
            parsed = parse_json_text(text)
        except ValueError:
            logger.trace("Metadata text does not parse, keeping previous document")
            self.text_error = INVALID_JSON_ERROR
            return False
        if not isinstance(parsed, dict):
            self.text_error = NOT_AN_OBJECT_ERROR
            return False

        self.text_error = None
        self.authority = SyncAuthority.TEXT
        self._set_metadata(parsed)
        return True

    def apply_metadata(self, metadata: Dict[str, Any]) -> str:
        """
        Replaces the document programmatically (node added, first node changed, chain connection edited).
        Pending graph edits are superseded. Returns the new text.
        Raises ValueError, leaving the current document in place, when ``metadata`` is not JSON-compatible.
        """
        validate_json_compatibility(metadata)
        self.authority = SyncAuthority.TEXT
        self.graph_dirty = False
        self.text = to_pretty_json(metadata)
        self.text_error = None
        self._set_metadata(metadata)
        return self.text

    def set_version_text(self, version_text: str):
        self.version_text = version_text

    def mark_graph_dirty(self):
        self.graph_dirty = True

    def replace_graph(self, graph: RuleChainGraph):
        self.graph = graph
        self.graph_dirty = True

    def flush_graph(self) -> Optional[str]:
        """
        Writes pending graph edits into the document and text. Returns the new text, or None when
        there was nothing to write or another representation currently holds authority.
        """
        if not self.graph_dirty or self.metadata is None:
            return None
        if self.authority in (SyncAuthority.TEXT, SyncAuthority.SERVER):
            logger.trace("Skipping graph flush, %s update in progress", self.authority.value)
            return None

        self.graph_dirty = False
        updated = build_metadata_from_graph(self.metadata, self.graph.nodes, self.graph.edges)
        self.authority = SyncAuthority.GRAPH
        self.text = to_pretty_json(updated)
        self.text_error = None
        self._set_metadata(updated)
        return self.text

    def parsed_version(self):
        """
        Version to send with a save: None when blank. Raises ValueError when the text is not a whole number.
        """
        if not self.version_text.strip():
            return None
        value = float(self.version_text)
        if not value.is_integer():
            raise ValueError(f"Version must be a whole number, got {self.version_text!r}")
        return int(value)

    def _set_metadata(self, metadata: Dict[str, Any]):
        self.metadata = metadata
        self._on_metadata_changed()

    def _on_metadata_changed(self):
        try:
            if self.authority is SyncAuthority.GRAPH:
                self.graph = rebase_graph(self.graph, self.metadata)
                return
            self.graph = build_graph(self.metadata, self._chain_names)
            logger.trace("Graph rebuilt from %s update: %r", self.authority.value, self.graph)
        finally:
            self.authority = SyncAuthority.NONE
