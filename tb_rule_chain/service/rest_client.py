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

import asyncio
from typing import Any, Dict, List, Optional, Union

import requests

from tb_rule_chain.common.config_loader import EditorConfig
from tb_rule_chain.common.exceptions import MetadataNotFoundError, RuleChainApiError
from tb_rule_chain.common.logging_utils import get_logger

logger = get_logger(__name__)

METADATA_NOT_FOUND_CODE = "rule_chain_metadata_not_found"

RuleChainId = Union[int, str]


class RuleChainRestClient:
    """Client of the rule chain API.

    Every blocking call has an ``async_`` counterpart that runs it in a worker thread,
    so the editor event loop is never blocked by network I/O.

    :param config: Connection settings, read from the environment when omitted.
    :param session: A preconfigured ``requests.Session`` to use instead of a new one.
    """

    def __init__(self, config: Optional[EditorConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or EditorConfig()
        self.__session = session or requests.Session()
        self.__session.headers.update({'Accept': 'application/json'})
        if self.config.use_auth():
            self.__session.headers.update({'Authorization': f'Bearer {self.config.api_token}'})

    def __repr__(self):
        return f"RuleChainRestClient(api_url={self.config.api_url!r})"

    @property
    def session(self) -> requests.Session:
        return self.__session

    def close(self):
        self.__session.close()

    def list_rule_chains(self) -> List[Dict[str, Any]]:
        return self._request('GET', 'rule_chains') or []

    def get_rule_chain(self, rule_chain_id: RuleChainId) -> Dict[str, Any]:
        return self._request('GET', f'rule_chains/{rule_chain_id}')

    def get_metadata(self, rule_chain_id: RuleChainId) -> Optional[Dict[str, Any]]:
        """Fetch ``{"version": ..., "metadata": ...}`` of a rule chain.

        :raises MetadataNotFoundError: The rule chain has no stored metadata yet.
        """
        try:
            return self._request('GET', f'rule_chains/{rule_chain_id}/metadata')
        except MetadataNotFoundError:
            raise
        except RuleChainApiError as e:
            if e.status_code == 404 or METADATA_NOT_FOUND_CODE in str(e):
                raise MetadataNotFoundError(str(e), e.status_code, e.details) from e
            raise

    def save_metadata(self, rule_chain_id: RuleChainId, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._request('POST', f'rule_chains/{rule_chain_id}/metadata', payload)

    def run_test(self, rule_chain_id: RuleChainId, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._request('POST', f'rule_chains/{rule_chain_id}/test', payload)

    async def async_list_rule_chains(self) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self.list_rule_chains)

    async def async_get_rule_chain(self, rule_chain_id: RuleChainId) -> Dict[str, Any]:
        return await asyncio.to_thread(self.get_rule_chain, rule_chain_id)

    async def async_get_metadata(self, rule_chain_id: RuleChainId) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self.get_metadata, rule_chain_id)

    async def async_save_metadata(self, rule_chain_id: RuleChainId, payload: Dict[str, Any]):
        return await asyncio.to_thread(self.save_metadata, rule_chain_id, payload)

    async def async_run_test(self, rule_chain_id: RuleChainId, payload: Dict[str, Any]):
        return await asyncio.to_thread(self.run_test, rule_chain_id, payload)

    def _request(self, method: str, endpoint: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        url = f'{self.config.api_url}/{endpoint}'
        logger.debug("%s %s", method, url)
        try:
            response = self.__session.request(method, url, json=payload, timeout=self.config.timeout)
        except requests.exceptions.RequestException as error:
            logger.error("Rule chain API request failed: %s", error)
            raise RuleChainApiError(f"IoT API error: {error}") from error

        is_json = 'application/json' in response.headers.get('Content-Type', '')
        if not response.ok:
            raise self._build_error(response, is_json)
        if not response.content:
            return None
        if not is_json:
            return response.text

        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict) and 'data' in body:
            return body['data']
        return body

    @staticmethod
    def _build_error(response: requests.Response, is_json: bool) -> RuleChainApiError:
        status = response.status_code
        if not is_json:
            return RuleChainApiError(f"IoT API error: {status} {response.reason}", status)

        try:
            body = response.json()
        except ValueError:
            body = None
        body = body if isinstance(body, dict) else {}

        field_errors = body.get('errors')
        if isinstance(field_errors, dict) and field_errors:
            field, messages = next(iter(field_errors.items()))
            first_message = messages[0] if isinstance(messages, list) and messages else messages
            return RuleChainApiError(f"IoT API error: {field} {first_message}", status, field_errors)

        error = body.get('error')
        details = None
        if isinstance(error, str):
            message = error
        elif isinstance(error, dict):
            message = error.get('message') or error.get('code') or response.reason
            details = error.get('details') if isinstance(error.get('details'), dict) else None
        else:
            message = response.reason

        error_class = MetadataNotFoundError if METADATA_NOT_FOUND_CODE in str(message) else RuleChainApiError
        return error_class(f"IoT API error: {message}", status, details)
