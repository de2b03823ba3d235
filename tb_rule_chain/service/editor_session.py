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

from typing import Any, Dict, List, Optional, Union

from tb_rule_chain.common.config_loader import EditorConfig
from tb_rule_chain.common.exceptions import ExceptionHandler, MetadataNotFoundError, RuleChainApiError, \
    exception_handler
from tb_rule_chain.common.logging_utils import get_session_logger
from tb_rule_chain.constants.json_typing import to_pretty_json
from tb_rule_chain.constants.node_types import DEFAULT_RELATION, get_node_template
from tb_rule_chain.entities.graph import GraphNode, RuleChainGraph
from tb_rule_chain.entities.node_template import NodeTemplate
from tb_rule_chain.entities.rule_chain_connection import RuleChainConnectionView
from tb_rule_chain.entities.test_message import TestProtocol
from tb_rule_chain.service import graph_model
from tb_rule_chain.service.autosave import AutosaveScheduler
from tb_rule_chain.service.config_validator import validate_node_config_text
from tb_rule_chain.service.rest_client import RuleChainId, RuleChainRestClient
from tb_rule_chain.service.test_runner import TestRunner
from tb_rule_chain.service.text_sync import TextSyncController


class RuleChainEditorSession:
    """
    One editing session of a rule chain.

    Graph edits are written back into the document right away and saved after the metadata idle
    delay. Inspector edits of a node configuration or an edge label are applied to the graph after
    their own shorter delays. Closing the session cancels every pending timer.
    """

    def __init__(self,
                 rule_chain_id: RuleChainId,
                 client: Optional[RuleChainRestClient] = None,
                 config: Optional[EditorConfig] = None,
                 protocol: Any = TestProtocol.HTTP,
                 handler: ExceptionHandler = exception_handler):
        self.rule_chain_id = rule_chain_id
        self.config = config or (client.config if client else EditorConfig())
        self._owns_client = client is None
        self.client = client or RuleChainRestClient(self.config)
        self._handler = handler
        self._log = get_session_logger(__name__, rule_chain_id)

        self.controller = TextSyncController()
        self.autosave = AutosaveScheduler(self.controller,
                                          self._save_metadata,
                                          node_delay=self.config.node_autosave_delay,
                                          edge_delay=self.config.edge_autosave_delay,
                                          metadata_delay=self.config.metadata_autosave_delay,
                                          handler=handler)
        self.test_runner = TestRunner(self._run_test, protocol)
        self.rule_chains: List[Dict[str, Any]] = []

        self.selected_node_id: Optional[str] = None
        self.selected_edge_id: Optional[str] = None
        self.node_name = ""
        self.node_type = ""
        self.node_config_text = ""
        self.node_config_errors: List[str] = []
        self.edge_label = ""
        self.closed = False

    async def __aenter__(self) -> 'RuleChainEditorSession':
        await self.load()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def graph(self) -> RuleChainGraph:
        return self.controller.graph

    @property
    def metadata(self) -> Optional[Dict[str, Any]]:
        return self.controller.metadata

    @property
    def text(self) -> str:
        return self.controller.text

    @property
    def selected_node(self) -> Optional[GraphNode]:
        return self.graph.get_node(self.selected_node_id) if self.selected_node_id else None

    async def load(self):
        """
        Fetches the rule chain directory and the stored metadata. A chain without metadata,
        or one whose metadata cannot be fetched, starts from the default template.
        """
        await self.refresh_rule_chains()

        response, not_found = None, False
        try:
            response = await self.client.async_get_metadata(self.rule_chain_id)
        except MetadataNotFoundError:
            self._log.info("No metadata stored yet")
            not_found = True
        except RuleChainApiError as e:
            self._log.error("Failed to load metadata: %s", e)
            self._handler.handle(e, {"operation": "get_metadata", "rule_chain_id": self.rule_chain_id})
            not_found = True
        self.apply_server_response(response, not_found)

    async def refresh_rule_chains(self):
        try:
            rule_chains = await self.client.async_list_rule_chains()
        except RuleChainApiError as e:
            self._log.warning("Failed to load rule chain directory: %s", e)
            self._handler.handle(e, {"operation": "list_rule_chains"})
            return
        self.rule_chains = [entry for entry in rule_chains or [] if isinstance(entry, dict)]
        self.controller.set_chain_names({entry.get("id"): entry.get("name") for entry in self.rule_chains
                                         if entry.get("id") is not None and entry.get("name")})

    def apply_server_response(self, response: Optional[Dict[str, Any]], not_found: bool = False):
        self.autosave.metadata.cancel()
        self.clear_selection()
        self.controller.apply_server(response, not_found)

    async def close(self):
        if self.closed:
            return
        self.closed = True
        await self.autosave.close()
        if self._owns_client:
            self.client.close()
        self._log.debug("Editing session closed")

    # Metadata text

    def edit_text(self, text: str) -> bool:
        promoted = self.controller.apply_text(text)
        if promoted:
            self.autosave.schedule_metadata()
        return promoted

    def set_version(self, version_text: str):
        self.controller.set_version_text(version_text)

    async def save(self) -> bool:
        self.controller.flush_graph()
        return await self.autosave.save_now()

    # Selection and inspector

    def clear_selection(self):
        self.selected_node_id = None
        self.selected_edge_id = None
        self.node_config_errors = []
        self.autosave.node_config.cancel()
        self.autosave.edge_label.cancel()

    def select_node(self, node_id: str) -> bool:
        node = self.graph.get_node(node_id)
        if node is None or not node.selectable:
            return False
        self.clear_selection()
        self.selected_node_id = node_id
        self.node_name = node.meta.get("name") or node.label
        self.node_type = node.node_type or ""
        self.node_config_text = to_pretty_json(node.meta.get("configuration") or {})
        _, self.node_config_errors = validate_node_config_text(self.node_type, self.node_config_text)
        return True

    def select_edge(self, edge_id: str) -> bool:
        edge = self.graph.get_edge(edge_id)
        if edge is None or not edge.selectable:
            return False
        self.clear_selection()
        self.selected_edge_id = edge_id
        self.edge_label = edge.label or DEFAULT_RELATION
        return True

    def edit_node(self, name: Optional[str] = None, node_type: Optional[str] = None,
                  config_text: Optional[str] = None) -> List[str]:
        """
        Updates the inspector of the selected node and arms the node autosave when the configuration
        is valid. Returns the current validation errors.
        """
        if self.selected_node_id is None:
            return []
        if node_type is not None and node_type != self.node_type:
            self._switch_node_type(node_type)
        if name is not None:
            self.node_name = name
        if config_text is not None:
            self.node_config_text = config_text

        config, self.node_config_errors = validate_node_config_text(self.node_type, self.node_config_text)
        if config is None or self.node_config_errors:
            self.autosave.node_config.cancel()
        else:
            self.autosave.schedule_node_config(self.apply_node_updates)
        return self.node_config_errors

    def _switch_node_type(self, node_type: str):
        self.node_type = node_type
        template = get_node_template(node_type)
        if template and "configuration" in template.meta:
            self.node_config_text = to_pretty_json(template.meta["configuration"])
        if not self.node_name.strip():
            self.node_name = (template.meta.get("name") or template.label) if template else ""

    def apply_node_updates(self) -> bool:
        if self.selected_node_id is None:
            return False
        config, errors = validate_node_config_text(self.node_type, self.node_config_text)
        self.node_config_errors = errors
        if config is None or errors:
            self._log.warning("Node %s not updated, configuration has errors: %s", self.selected_node_id, errors)
            return False
        graph = graph_model.update_node(self.graph, self.selected_node_id, self.node_name, self.node_type, config)
        self._commit_graph(graph)
        return True

    def edit_edge_label(self, label: str):
        if self.selected_edge_id is None:
            return
        self.edge_label = label
        self.autosave.schedule_edge_label(self.apply_edge_label)

    def apply_edge_label(self) -> bool:
        if self.selected_edge_id is None:
            return False
        self._commit_graph(graph_model.set_edge_label(self.graph, self.selected_edge_id, self.edge_label))
        return True

    def relation_options(self, node_id: Optional[str] = None) -> List[str]:
        """
        Relations offered for edges leaving ``node_id``, the selected node, or the source of the selected edge.
        """
        if node_id is None and self.selected_edge_id is not None:
            edge = self.graph.get_edge(self.selected_edge_id)
            node_id = edge.source if edge else None
        node = self.graph.get_node(node_id or self.selected_node_id or "")
        return graph_model.relations_for_node(node)

    # Graph edits

    def move_node(self, node_id: str, x: float, y: float):
        self._commit_graph(graph_model.move_node(self.graph, node_id, x, y))

    def connect(self, source: str, target: str, label: Optional[str] = None):
        self._commit_graph(graph_model.connect(self.graph, source, target, label))

    def delete_node(self, node_id: Optional[str] = None):
        node_id = node_id or self.selected_node_id
        if node_id is None:
            return
        self.clear_selection()
        self._commit_graph(graph_model.delete_node(self.graph, node_id))

    def delete_edge(self, edge_id: Optional[str] = None):
        edge_id = edge_id or self.selected_edge_id
        if edge_id is None:
            return
        self.clear_selection()
        self._commit_graph(graph_model.delete_edge(self.graph, edge_id))

    def add_node(self, template: Union[NodeTemplate, str]):
        self._commit_metadata(graph_model.add_node(self._current_metadata(), template))

    def set_first_node(self, index: int):
        self._commit_metadata(graph_model.set_first_node(self._current_metadata(), index))

    def chain_connections(self) -> List[RuleChainConnectionView]:
        return graph_model.list_rule_chain_connections(self.metadata)

    def upsert_chain_connection(self, from_index: int, target_rule_chain_id: RuleChainId,
                                relation: Optional[str] = None, index: Optional[int] = None):
        self._commit_metadata(graph_model.upsert_rule_chain_connection(
            self._current_metadata(), from_index, target_rule_chain_id, relation, index))

    def delete_chain_connection(self, index: int):
        self._commit_metadata(graph_model.delete_rule_chain_connection(self._current_metadata(), index))

    def _current_metadata(self) -> Dict[str, Any]:
        self.controller.flush_graph()
        return self.controller.metadata or {}

    def _commit_graph(self, graph: RuleChainGraph):
        self.controller.replace_graph(graph)
        text = self.controller.flush_graph()
        if text is not None:
            self.autosave.schedule_metadata(text)

    def _commit_metadata(self, metadata: Dict[str, Any]):
        text = self.controller.apply_metadata(metadata)
        self.autosave.schedule_metadata(text)

    # Remote calls

    async def _save_metadata(self, payload: Dict[str, Any]):
        self._log.debug("Saving metadata")
        return await self.client.async_save_metadata(self.rule_chain_id, payload)

    async def _run_test(self, payload: Dict[str, Any]):
        return await self.client.async_run_test(self.rule_chain_id, payload)

    async def run_test(self, messages=None) -> bool:
        return await self.test_runner.run(messages)
