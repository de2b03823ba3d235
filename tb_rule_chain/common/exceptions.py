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
import logging
from typing import Any, Callable, Dict, List, Optional, Type

logger = logging.getLogger(__name__)

ExceptionCallback = Callable[[BaseException, Optional[dict]], None]


class ExceptionHandler:
    """
    Registry of callbacks that surface failures to the user (notifications, status bars, CLI output).
    Failures are scoped to an editing session, so nothing registered here is expected to stop the process.
    """
    def __init__(self):
        self._callbacks: Dict[Type[BaseException], List[ExceptionCallback]] = {}
        self._default_callbacks: List[ExceptionCallback] = []

    def register(self, exc_type: Optional[Type[BaseException]], callback: ExceptionCallback):
        """
        Register a callback for a specific exception type or all (if exc_type is None).
        """
        if exc_type is None:
            self._default_callbacks.append(callback)
        else:
            self._callbacks.setdefault(exc_type, []).append(callback)

    def unregister(self, callback: ExceptionCallback):
        for callbacks in self._callbacks.values():
            if callback in callbacks:
                callbacks.remove(callback)
        if callback in self._default_callbacks:
            self._default_callbacks.remove(callback)

    def handle(self, exc: BaseException, context: Optional[dict] = None):
        """
        Dispatch the exception to the appropriate registered callbacks.
        """
        handled = False
        for exc_type, callbacks in self._callbacks.items():
            if isinstance(exc, exc_type):
                for cb in callbacks:
                    cb(exc, context)
                handled = True
        if not handled:
            if not self._default_callbacks:
                logger.error("Unhandled error %r, context: %s", exc, context)
            for cb in self._default_callbacks:
                cb(exc, context)

    def install_asyncio_handler(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        """
        Hook into asyncio event loop to catch errors of fire-and-forget autosave tasks.
        """
        loop = loop or asyncio.get_event_loop()

        def _asyncio_handler(loop_, context: dict):
            exception = context.get("exception")
            if exception:
                self.handle(exception, context)
            else:
                logger.error("Unhandled asyncio context: %s", context)

        loop.set_exception_handler(_asyncio_handler)


class RuleChainApiError(Exception):
    """
    Raised when a call to the rule chain API fails.
    """
    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}


class MetadataNotFoundError(RuleChainApiError):
    """
    The rule chain exists but has no stored metadata yet. Callers treat this as an empty document.
    """
    def __init__(self, message: str = "rule_chain_metadata_not_found", status_code: Optional[int] = 404,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code, details)


class TestMessageFormatError(ValueError):
    """
    Headers or body of a synthetic test message cannot be used.
    """
    __test__ = False

    def __init__(self, message_id: str, field: str, message: str):
        super().__init__(message)
        self.message_id = message_id
        self.field = field


exception_handler = ExceptionHandler()
