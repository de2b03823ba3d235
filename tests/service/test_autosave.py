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
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from tb_rule_chain.common.exceptions import ExceptionHandler, RuleChainApiError
from tb_rule_chain.service.autosave import AutosaveScheduler, DebouncedChannel
from tb_rule_chain.service.text_sync import TextSyncController

DELAY = 0.02


@pytest.fixture
def controller():
    sync = TextSyncController()
    sync.apply_server({"version": 2, "metadata": {"firstNodeIndex": 0, "nodes": [], "connections": []}})
    return sync


@pytest.fixture
def handler():
    return MagicMock(spec=ExceptionHandler)


@pytest_asyncio.fixture
async def scheduler(controller, handler):
    save = AsyncMock(return_value={"version": 3})
    autosave = AutosaveScheduler(controller, save, DELAY, DELAY, DELAY, handler=handler)
    try:
        yield autosave
    finally:
        await autosave.close()


@pytest.mark.asyncio
async def test_channel_coalesces_rapid_schedules():
    channel = DebouncedChannel("test", DELAY)
    callback = MagicMock()

    for value in range(5):
        channel.schedule(callback, value)
    assert channel.pending
    await channel.wait()

    callback.assert_called_once_with(4)
    assert not channel.pending


@pytest.mark.asyncio
async def test_channel_awaits_coroutine_callbacks():
    channel = DebouncedChannel("test", DELAY)
    callback = AsyncMock()

    channel.schedule(callback)
    await channel.wait()

    callback.assert_awaited_once()


@pytest.mark.asyncio
async def test_channel_cancel_and_close_drop_pending_call():
    channel = DebouncedChannel("test", DELAY)
    callback = MagicMock()

    channel.schedule(callback)
    assert channel.cancel() is True
    assert channel.cancel() is False
    channel.schedule(callback)
    await channel.close()
    await asyncio.sleep(DELAY * 2)

    callback.assert_not_called()


@pytest.mark.asyncio
async def test_channel_reports_callback_errors(handler):
    channel = DebouncedChannel("test", DELAY, handler)
    error = RuntimeError("boom")

    channel.schedule(MagicMock(side_effect=error))
    await channel.wait()

    handler.handle.assert_called_once_with(error, {"channel": "test"})


@pytest.mark.asyncio
async def test_metadata_autosave_sends_version_and_document(scheduler, controller):
    assert scheduler.schedule_metadata() is True
    await scheduler.metadata.wait()

    scheduler._save_callback.assert_awaited_once_with({
        "version": 2,
        "metadata": {"firstNodeIndex": 0, "nodes": [], "connections": []},
    })
    assert scheduler.is_saving is False


@pytest.mark.asyncio
async def test_pinned_text_is_saved(scheduler):
    scheduler.schedule_metadata('{"nodes": [1]}')
    await scheduler.metadata.wait()

    scheduler._save_callback.assert_awaited_once_with({"version": 2, "metadata": {"nodes": [1]}})


@pytest.mark.asyncio
async def test_only_last_schedule_is_saved(scheduler):
    for index in range(3):
        scheduler.schedule_metadata(f'{{"nodes": [], "revision": {index}}}')
    await scheduler.metadata.wait()

    scheduler._save_callback.assert_awaited_once_with({"version": 2, "metadata": {"nodes": [], "revision": 2}})


@pytest.mark.asyncio
async def test_text_error_blocks_scheduling(scheduler, controller):
    controller.apply_text("{broken")

    assert scheduler.schedule_metadata() is False
    assert not scheduler.metadata.pending


@pytest.mark.asyncio
@pytest.mark.parametrize("version_text, text", [("abc", None), ("1.5", None), ("", "   "), ("", "{nope")])
async def test_guards_block_save(scheduler, controller, version_text, text):
    controller.set_version_text(version_text)

    assert scheduler.schedule_metadata(text) is False
    assert await scheduler.save_now() is (text is not None)
    if text is not None:
        scheduler._save_callback.assert_awaited_once()
    else:
        scheduler._save_callback.assert_not_awaited()


@pytest.mark.asyncio
async def test_guards_are_checked_again_when_timer_fires(scheduler, controller):
    scheduler.schedule_metadata()
    controller.apply_text("{broken")
    await scheduler.metadata.wait()

    scheduler._save_callback.assert_not_awaited()


@pytest.mark.asyncio
async def test_save_in_flight_blocks_new_saves(scheduler):
    scheduler.is_saving = True

    assert scheduler.schedule_metadata() is False
    assert await scheduler.save_now() is False


@pytest.mark.asyncio
async def test_save_now_bypasses_debounce(scheduler):
    scheduler.schedule_metadata()

    assert await scheduler.save_now() is True

    assert not scheduler.metadata.pending
    scheduler._save_callback.assert_awaited_once()


@pytest.mark.asyncio
async def test_remote_failure_is_reported(scheduler, handler):
    error = RuleChainApiError("IoT API error: boom", 500)
    scheduler._save_callback.side_effect = error

    assert await scheduler.save_now() is False

    assert scheduler.last_error is error
    assert scheduler.is_saving is False
    handler.handle.assert_called_once_with(error, {"operation": "save_metadata"})


@pytest.mark.asyncio
async def test_close_cancels_every_channel(scheduler):
    node_apply = MagicMock()
    edge_apply = MagicMock()
    scheduler.schedule_node_config(node_apply)
    scheduler.schedule_edge_label(edge_apply)
    scheduler.schedule_metadata()

    await scheduler.close()
    await asyncio.sleep(DELAY * 2)

    node_apply.assert_not_called()
    edge_apply.assert_not_called()
    scheduler._save_callback.assert_not_awaited()
    assert not any(channel.pending for channel in scheduler.channels)
