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
import inspect
from contextlib import suppress
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from tb_rule_chain.common.config_loader import (
    DEFAULT_EDGE_AUTOSAVE_DELAY,
    DEFAULT_METADATA_AUTOSAVE_DELAY,
    DEFAULT_NODE_AUTOSAVE_DELAY,
)
from tb_rule_chain.common.exceptions import ExceptionHandler, exception_handler
from tb_rule_chain.common.logging_utils import get_logger
from tb_rule_chain.constants.json_typing import parse_json_text
from tb_rule_chain.service.text_sync import TextSyncController

logger = get_logger(__name__)

SaveCallback = Callable[[Dict[str, Any]], Awaitable[Any]]


class DebouncedChannel:
    """
    Runs a callback once the channel has been idle for ``delay`` seconds.

    Scheduling again while the timer is pending replaces it, so at most one call is pending at a time.
    Once the timer has elapsed the call is no longer cancellable by ``schedule``/``cancel``;
    ``close`` waits for it to finish.
    """

    def __init__(self, name: str, delay: float, handler: ExceptionHandler = exception_handler):
        self.name = name
        self.delay = delay
        self._handler = handler
        self._pending: Optional[asyncio.Task] = None
        self._running: Set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def schedule(self, callback: Callable[..., Any], *args):
        self.cancel()
        logger.trace("Arming %s autosave in %.2fs", self.name, self.delay)
        task = asyncio.get_running_loop().create_task(self._fire_later(callback, args))
        self._pending = task
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    def cancel(self) -> bool:
        if not self.pending:
            return False
        logger.debug("Cancelling pending %s autosave", self.name)
        self._pending.cancel()
        self._pending = None
        return True

    async def wait(self):
        """
        Waits until no call is pending or running on this channel.
        """
        while self._running:
            tasks = list(self._running)
            with suppress(asyncio.CancelledError):
                await asyncio.gather(*tasks, return_exceptions=True)
            self._running.difference_update(tasks)

    async def close(self):
        self.cancel()
        await self.wait()

    async def _fire_later(self, callback: Callable[..., Any], args):
        await asyncio.sleep(self.delay)
        if self._pending is asyncio.current_task():
            self._pending = None
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error("%s autosave failed: %s", self.name, e)
            logger.debug("error details: %s", e, exc_info=True)
            self._handler.handle(e, {"channel": self.name})


class AutosaveScheduler:
    """
    Three independent debounced channels for one editing session.

    ``node_config`` and ``edge_label`` apply inspector edits to the graph after a short idle period;
    ``metadata`` saves the whole document. A metadata save is skipped while another save is in flight,
    while the metadata text is blank or does not parse, or while the version is not a whole number.
    These guards are checked when scheduling and again when the timer fires.
    """

    def __init__(self,
                 controller: TextSyncController,
                 save_callback: SaveCallback,
                 node_delay: float = DEFAULT_NODE_AUTOSAVE_DELAY,
                 edge_delay: float = DEFAULT_EDGE_AUTOSAVE_DELAY,
                 metadata_delay: float = DEFAULT_METADATA_AUTOSAVE_DELAY,
                 handler: ExceptionHandler = exception_handler):
        self._controller = controller
        self._save_callback = save_callback
        self._handler = handler
        self.node_config = DebouncedChannel("node_config", node_delay, handler)
        self.edge_label = DebouncedChannel("edge_label", edge_delay, handler)
        self.metadata = DebouncedChannel("metadata", metadata_delay, handler)
        self.is_saving = False
        self.last_error: Optional[BaseException] = None

    @property
    def channels(self):
        return self.node_config, self.edge_label, self.metadata

    def schedule_node_config(self, apply: Callable[[], Any]):
        self.node_config.schedule(apply)

    def schedule_edge_label(self, apply: Callable[[], Any]):
        self.edge_label.schedule(apply)

    def schedule_metadata(self, text: Optional[str] = None) -> bool:
        """
        Arms the metadata channel. ``text`` pins the document to save, otherwise the controller text at
        fire time is used. Returns False when a guard already blocks the save.
        """
        reason = self.blocking_reason(text)
        if reason:
            logger.debug("Metadata autosave not scheduled: %s", reason)
            self.metadata.cancel()
            return False
        self.metadata.schedule(self._autosave, text)
        return True

    def blocking_reason(self, text: Optional[str] = None) -> Optional[str]:
        if self.is_saving:
            return "save already in progress"
        if self._controller.text_error:
            return f"metadata text has an error ({self._controller.text_error})"
        candidate = self._controller.text if text is None else text
        if not candidate.strip():
            return "metadata text is empty"
        try:
            self._controller.parsed_version()
        except ValueError:
            return "version is not a whole number"
        try:
            parse_json_text(candidate)
        except ValueError:
            return "metadata text is not valid JSON"
        return None

    async def save_now(self) -> bool:
        """
        Saves immediately, bypassing the metadata debounce. Returns True when the document was saved.
        """
        self.metadata.cancel()
        return await self._save(None)

    async def close(self):
        for channel in self.channels:
            await channel.close()

    async def _autosave(self, text: Optional[str]):
        await self._save(text)

    async def _save(self, text: Optional[str]) -> bool:
        reason = self.blocking_reason(text)
        if reason:
            logger.warning("Skipping metadata save: %s", reason)
            return False

        candidate = self._controller.text if text is None else text
        payload = {
            "version": self._controller.parsed_version(),
            "metadata": parse_json_text(candidate),
        }

        self.is_saving = True
        try:
            await self._save_callback(payload)
        except Exception as e:
            logger.error("Failed to save rule chain metadata: %s", e)
            self.last_error = e
            self._handler.handle(e, {"operation": "save_metadata"})
            return False
        finally:
            self.is_saving = False

        self.last_error = None
        logger.debug("Rule chain metadata saved (version=%s)", payload["version"])
        return True
